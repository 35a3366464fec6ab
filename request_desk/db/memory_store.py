from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime
from typing import Any, Iterable, Optional

from request_desk.core.errors import BackendUnavailableError, ConflictError
from request_desk.core.security import get_password_hash

logger = logging.getLogger(__name__)

TABLES = ("users", "requests", "request_status_history")
UNIQUE_COLUMNS = {
    "users": ("username",),
    "requests": ("request_id",),
}

OrderBy = Optional[Iterable[tuple[str, bool]]]


def _seed_rows() -> dict[str, list[dict[str, Any]]]:
    now = datetime.utcnow()
    users = [
        {
            "id": 1,
            "name": "Administrator",
            "username": "admin",
            "email": "admin@system.com",
            "password": get_password_hash("admin123"),
            "team": "Administration",
            "description": "System Administrator",
            "status": "approved",
            "isAdmin": 1,
            "created_at": now,
            "updated_at": now,
        },
        {
            "id": 2,
            "name": "Alice Johnson",
            "username": "alice.johnson",
            "email": "alice@company.com",
            "password": get_password_hash("password123"),
            "team": "Marketing Team",
            "description": "Marketing Specialist",
            "status": "approved",
            "isAdmin": 0,
            "created_at": now,
            "updated_at": now,
        },
    ]
    requests = [
        {
            "id": 1,
            "request_id": "REQ20240101001",
            "requestor_name": "Alice Johnson",
            "requestor_email": "alice@company.com",
            "cc_email": "marketing@company.com",
            "team_name": "Marketing Team",
            "category_name": "val1",
            "request_dates": "2024-01-15,2024-01-16",
            "acct_number": "ACC001",
            "request_name": "Q1 Marketing Campaign",
            "currency": "USD",
            "amount": 15000.00,
            "adjustment": 0,
            "description": "Budget for Q1 digital marketing campaign",
            "status": "submitted",
            "user_id": 2,
            "failed_message": None,
            "admin_comments": None,
            "request_datetime": now,
            "status_update_datetime": now,
            "created_at": now,
            "updated_at": now,
        }
    ]
    history = [
        {
            "id": 1,
            "request_id": "REQ20240101001",
            "old_status": None,
            "new_status": "submitted",
            "changed_by": "Alice Johnson",
            "change_datetime": now,
            "notes": "Initial request submission",
        }
    ]
    return {"users": users, "requests": requests, "request_status_history": history}


def _matches(row: dict[str, Any], where: Optional[dict[str, Any]]) -> bool:
    if not where:
        return True
    return all(row.get(column) == value for column, value in where.items())


def _sort_key(value: Any) -> tuple[int, Any]:
    # None sorts before any real value, like SQLite's NULL ordering.
    return (0, 0) if value is None else (1, value)


class MemoryBackend:
    """In-process stand-in for the relational store.

    Rows are plain dicts, seeded with deterministic data on first use. Every
    read returns copies so callers never mutate the store by accident.
    """

    name = "memory"

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tables: dict[str, list[dict[str, Any]]] = {table: [] for table in TABLES}
        self.initialized = False

    def ensure_seeded(self) -> None:
        with self._lock:
            if self.initialized:
                return
            logger.warning("Using fallback memory data (primary backend not available).")
            self._tables = _seed_rows()
            self.initialized = True

    def _table(self, table: str) -> list[dict[str, Any]]:
        self.ensure_seeded()
        try:
            return self._tables[table]
        except KeyError:
            raise BackendUnavailableError(f"Unknown table in memory store: {table}") from None

    async def query(self, sql: str, params: Optional[dict[str, Any]] = None) -> list[dict[str, Any]]:
        raise BackendUnavailableError("Raw SQL is not available in fallback mode")

    async def select(
        self,
        table: str,
        where: Optional[dict[str, Any]] = None,
        order_by: OrderBy = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        with self._lock:
            rows = [copy.copy(row) for row in self._table(table) if _matches(row, where)]

        # Stable sorts applied last-key-first give multi-column ordering.
        for column, descending in reversed(list(order_by or [])):
            rows.sort(key=lambda row: _sort_key(row.get(column)), reverse=descending)

        if limit is not None:
            rows = rows[:limit]
        return rows

    async def get(self, table: str, where: dict[str, Any]) -> Optional[dict[str, Any]]:
        rows = await self.select(table, where, limit=1)
        return rows[0] if rows else None

    async def count(self, table: str, where: Optional[dict[str, Any]] = None) -> int:
        with self._lock:
            return sum(1 for row in self._table(table) if _matches(row, where))

    async def insert(self, table: str, values: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            rows = self._table(table)
            for column in UNIQUE_COLUMNS.get(table, ()):
                if any(row.get(column) == values.get(column) for row in rows):
                    raise ConflictError(f"Duplicate value for {table}.{column}")

            row = dict(values)
            if row.get("id") is None:
                row["id"] = max((existing["id"] for existing in rows), default=0) + 1
            rows.append(row)
            return copy.copy(row)

    async def update(self, table: str, values: dict[str, Any], where: dict[str, Any]) -> int:
        with self._lock:
            updated = 0
            for row in self._table(table):
                if _matches(row, where):
                    row.update(values)
                    updated += 1
            return updated

    async def delete(self, table: str, where: dict[str, Any]) -> int:
        with self._lock:
            rows = self._table(table)
            kept = [row for row in rows if not _matches(row, where)]
            removed = len(rows) - len(kept)
            rows[:] = kept
            return removed

    async def sync(self) -> None:
        return None
