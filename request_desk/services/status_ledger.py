import logging
from datetime import datetime
from typing import Any, Optional

from request_desk.db.adapter import PersistenceAdapter, StorageBackend, persistence


logger = logging.getLogger(__name__)

HISTORY_TABLE = "request_status_history"


class StatusLedger:
    def __init__(self, adapter: PersistenceAdapter):
        self.adapter = adapter

    async def record(
        self,
        backend: StorageBackend,
        request_id: str,
        old_status: Optional[str],
        new_status: str,
        changed_by: str,
        notes: Optional[str] = None,
    ) -> Optional[dict[str, Any]]:
        """Append one history row on ``backend``.

        The caller has already accepted the transition; nothing is validated
        here. A failed write must not undo the business operation, so it is
        logged and ``None`` is returned.
        """
        try:
            row = await backend.insert(
                HISTORY_TABLE,
                {
                    "request_id": request_id,
                    "old_status": old_status,
                    "new_status": new_status,
                    "changed_by": changed_by,
                    "change_datetime": datetime.utcnow(),
                    "notes": notes,
                },
            )
        except Exception as exc:
            logger.warning(
                "Status history write failed for request_id=%s %s -> %s: %s",
                request_id,
                old_status,
                new_status,
                exc,
            )
            return None

        logger.info("Status history logged: %s %s -> %s by %s", request_id, old_status, new_status, changed_by)
        return row

    async def entries(self, backend: StorageBackend, request_id: str) -> list[dict[str, Any]]:
        return await backend.select(
            HISTORY_TABLE,
            {"request_id": request_id},
            order_by=[("change_datetime", True), ("id", True)],
        )

    async def history(self, request_id: str) -> list[dict[str, Any]]:
        return await self.adapter.run(
            "status_history.read",
            lambda backend: self.entries(backend, request_id),
        )


status_ledger = StatusLedger(persistence)
