import logging
import math
import re
import time
import uuid
from datetime import datetime
from typing import Any, Optional

from request_desk.core.config import settings
from request_desk.core.errors import NotFoundError, ValidationError
from request_desk.core.validation import (
    is_valid_email,
    optional_string,
    parse_int,
    require_email,
    require_string,
)
from request_desk.db.adapter import PersistenceAdapter, StorageBackend, persistence
from request_desk.models.request import Request, RequestStatus
from request_desk.services.request_dates import normalize_request_dates
from request_desk.services.status_ledger import StatusLedger, status_ledger


logger = logging.getLogger(__name__)

REQUEST_ID_PATTERN = re.compile(r"^REQ\d{13}[0-9A-F]{8}$")


def generate_request_id() -> str:
    return f"REQ{int(time.time() * 1000)}{uuid.uuid4().hex[:8].upper()}"


class RequestService:
    TABLE = "requests"

    def __init__(self, adapter: PersistenceAdapter, ledger: StatusLedger):
        self.adapter = adapter
        self.ledger = ledger

    def _parse_amount(self, raw: Any) -> float:
        if raw is None or raw == "":
            raise ValidationError("Amount is required")
        if isinstance(raw, bool):
            raise ValidationError("Amount must be a number")
        try:
            amount = float(str(raw).strip()) if isinstance(raw, str) else float(raw)
        except (TypeError, ValueError, OverflowError):
            raise ValidationError("Amount must be a number") from None
        if not math.isfinite(amount) or amount <= 0:
            raise ValidationError("Amount must be greater than zero")
        return round(amount, 2)

    def validate_fields(self, fields: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(fields, dict):
            raise ValidationError("Request body must be a JSON object")

        cc_email = optional_string(fields, "ccEmail", max_length=255)
        if cc_email and not is_valid_email(cc_email):
            raise ValidationError("Invalid CC email format")

        if fields.get("adjustment") is None or fields.get("adjustment") == "":
            raise ValidationError("Adjustment is required")

        user_id_raw = fields.get("userId")
        user_id = (
            parse_int(user_id_raw, "userId")
            if user_id_raw not in (None, "")
            else settings.DEFAULT_REQUEST_USER_ID
        )

        return {
            "requestor_name": require_string(fields, "requestorName", "Requestor name", max_length=100),
            "requestor_email": require_email(fields, "requestorEmail", "Requestor email"),
            "cc_email": cc_email,
            "team_name": require_string(fields, "teamName", "Team name"),
            "category_name": require_string(fields, "categoryName", "Category name"),
            "request_dates": normalize_request_dates(fields.get("requestDates")),
            "acct_number": require_string(fields, "acctNumber", "Account number"),
            "request_name": require_string(fields, "requestName", "Request name"),
            "currency": require_string(fields, "currency", "Currency", max_length=10).upper(),
            "amount": self._parse_amount(fields.get("amount")),
            "adjustment": parse_int(fields.get("adjustment"), "Adjustment"),
            "description": optional_string(fields, "description"),
            "user_id": user_id,
        }

    async def create(self, fields: dict[str, Any]) -> str:
        values = self.validate_fields(fields)
        request_id = generate_request_id()
        row = Request(request_id=request_id, status=RequestStatus.SUBMITTED.value, **values).model_dump()

        async def _create(backend: StorageBackend) -> str:
            await backend.insert(self.TABLE, row)
            await self.ledger.record(
                backend,
                request_id,
                None,
                RequestStatus.SUBMITTED.value,
                values["requestor_name"],
                "Initial request submission",
            )
            await backend.sync()
            return request_id

        created = await self.adapter.run("request.create", _create)
        logger.info("Request created (%s): %s", self.adapter.backend_name, created)
        return created

    def _lookup(self, identifier: Any) -> dict[str, Any]:
        text = str(identifier).strip()
        if not text:
            raise NotFoundError("Request not found")
        if text.isdigit():
            try:
                return {"id": parse_int(text, "Request id")}
            except ValidationError:
                raise NotFoundError("Request not found") from None
        return {"request_id": text}

    async def _get(self, backend: StorageBackend, identifier: Any) -> dict[str, Any]:
        row = await backend.get(self.TABLE, self._lookup(identifier))
        if not row:
            raise NotFoundError("Request not found")
        return row

    async def get(self, identifier: Any) -> dict[str, Any]:
        return await self.adapter.run("request.get", lambda backend: self._get(backend, identifier))

    async def transition(
        self,
        identifier: Any,
        new_status: Any,
        actor: str,
        comments: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> dict[str, Any]:
        """Move a request to ``new_status`` and record the change.

        Any recognized status may follow any other, including itself; an
        operator has to be able to undo a mistaken ``failed``. Returns the
        old and new status plus the stored comment.
        """
        status = RequestStatus.parse(new_status)
        actor = (actor or "").strip() or "admin"

        async def _transition(backend: StorageBackend) -> dict[str, Any]:
            current = await self._get(backend, identifier)
            now = datetime.utcnow()
            values: dict[str, Any] = {
                "status": status.value,
                "status_update_datetime": now,
                "updated_at": now,
            }
            if comments:
                values["admin_comments"] = comments
            await backend.update(self.TABLE, values, {"id": current["id"]})
            await self.ledger.record(
                backend,
                current["request_id"],
                current.get("status"),
                status.value,
                actor,
                notes if notes is not None else comments,
            )
            await backend.sync()
            return {
                "id": current["id"],
                "request_id": current["request_id"],
                "old_status": current.get("status"),
                "new_status": status.value,
                "admin_comments": comments or None,
            }

        result = await self.adapter.run("request.transition", _transition)
        logger.info(
            "Request %s status updated %s -> %s (%s)",
            result["request_id"],
            result["old_status"],
            result["new_status"],
            self.adapter.backend_name,
        )
        old_status = result["old_status"]
        if old_status != status.value and old_status in {s.value for s in RequestStatus if s.is_terminal}:
            logger.info("Request %s reopened from %s", result["request_id"], old_status)
        return result

    async def list_requests(self, username: Optional[str] = None, is_admin: bool = False) -> list[dict[str, Any]]:
        newest_first = [("created_at", True), ("id", True)]

        if is_admin:
            return await self.adapter.run(
                "request.list_all",
                lambda backend: backend.select(self.TABLE, order_by=newest_first),
            )

        if not username:
            raise ValidationError("Username is required for non-admin users")

        async def _for_user(backend: StorageBackend) -> list[dict[str, Any]]:
            user = await backend.get("users", {"username": username})
            if not user:
                raise NotFoundError("User not found")
            return await backend.select(self.TABLE, {"user_id": user["id"]}, order_by=newest_first)

        return await self.adapter.run("request.list_for_user", _for_user)

    async def history(self, identifier: Any) -> list[dict[str, Any]]:
        row = await self.get(identifier)
        return await self.ledger.history(row["request_id"])


request_service = RequestService(persistence, status_ledger)
