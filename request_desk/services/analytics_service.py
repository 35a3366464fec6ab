from __future__ import annotations

from collections import Counter, defaultdict
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Optional

from request_desk.core.errors import ValidationError
from request_desk.db.adapter import PersistenceAdapter, StorageBackend, persistence
from request_desk.models.request import RequestStatus
from request_desk.models.user import UserStatus

DAILY_BUCKETS = 30
MONTHLY_BUCKETS = 6
RECENT_ACTIVITY_LIMIT = 10

Rows = list[dict[str, Any]]


def round_half_up(value: float, digits: int = 0) -> float | int:
    quantum = Decimal(1).scaleb(-digits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if digits == 0 else float(rounded)


def percentage(part: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(part / total * 100)


def as_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) if value.tzinfo else value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.replace(tzinfo=None) if parsed.tzinfo else parsed


def _count_status(requests: Iterable[dict[str, Any]], status: RequestStatus) -> int:
    return sum(1 for row in requests if row.get("status") == status.value)


def team_breakdown(users: Rows, requests: Rows) -> Rows:
    user_counts: Counter[str] = Counter()
    request_counts: Counter[str] = Counter()
    active: dict[str, set] = defaultdict(set)

    for user in users:
        team = user.get("team")
        if not team:
            continue
        user_counts[team] += 1
        if user.get("status") == UserStatus.APPROVED.value:
            active[team].add(user.get("id"))

    for request in requests:
        team = request.get("team_name")
        if team:
            request_counts[team] += 1

    teams = set(user_counts) | set(request_counts)
    rows = [
        {
            "team": team,
            "userCount": user_counts[team],
            "requestCount": request_counts[team],
            "activeUsers": len(active[team]),
        }
        for team in teams
    ]
    return sorted(rows, key=lambda row: (-row["userCount"], row["team"]))


def status_breakdown(requests: Rows, now: datetime) -> Rows:
    total = len(requests)
    grouped: dict[str, list[dict[str, Any]]] = defaultdict(list)
    for request in requests:
        grouped[request.get("status") or "unknown"].append(request)

    rows = []
    for status, members in grouped.items():
        ages = [
            (now - created).total_seconds() / 86400
            for created in (as_datetime(row.get("created_at")) for row in members)
            if created is not None
        ]
        rows.append(
            {
                "status": status,
                "count": len(members),
                "percentage": round_half_up(len(members) * 100 / total, 1) if total else 0.0,
                "avgDays": round_half_up(sum(ages) / len(ages)) if ages else 0,
            }
        )
    return sorted(rows, key=lambda row: (-row["count"], row["status"]))


def build_overview(users: Rows, requests: Rows, history: Rows, now: datetime) -> dict[str, Any]:
    day_ago = now - timedelta(days=1)
    total = len(requests)

    def _since(value: Any, threshold: datetime) -> bool:
        moment = as_datetime(value)
        return moment is not None and moment >= threshold

    changes = [row for row in history if row.get("old_status") is not None]

    return {
        "users": {
            "total": len(users),
            "daily_active": sum(1 for row in users if _since(row.get("created_at"), day_ago)),
        },
        "requests": {
            "total": total,
            "today": sum(
                1
                for row in requests
                if (as_datetime(row.get("created_at")) or datetime.min).date() == now.date()
            ),
            "completed_percentage": percentage(_count_status(requests, RequestStatus.COMPLETED), total),
            "failed_percentage": percentage(_count_status(requests, RequestStatus.FAILED), total),
        },
        "status_changes": {
            "total": len(changes),
            "last_24h": sum(1 for row in changes if _since(row.get("change_datetime"), day_ago)),
        },
        "usersBreakdown": team_breakdown(users, requests),
        "requestsBreakdown": status_breakdown(requests, now),
    }


def status_summary(requests: Rows) -> Rows:
    counts: Counter[str] = Counter()
    last_change: dict[str, datetime] = {}
    for row in requests:
        status = row.get("status") or "unknown"
        counts[status] += 1
        moment = as_datetime(row.get("updated_at")) or as_datetime(row.get("created_at"))
        if moment is not None and (status not in last_change or moment > last_change[status]):
            last_change[status] = moment

    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [
        {
            "status": status,
            "count": count,
            "lastChange": last_change[status].isoformat() if status in last_change else None,
        }
        for status, count in ordered
    ]


def recent_activity(requests: Rows, users: Rows, limit: int = RECENT_ACTIVITY_LIMIT) -> Rows:
    usernames = {row.get("id"): row.get("username") for row in users}

    def _touched(row: dict[str, Any]) -> datetime:
        return as_datetime(row.get("updated_at")) or as_datetime(row.get("created_at")) or datetime.min

    ordered = sorted(requests, key=_touched, reverse=True)[:limit]
    return [
        {
            "title": row.get("request_name"),
            "status": row.get("status"),
            "team": row.get("team_name"),
            "requester": usernames.get(row.get("user_id")) or "Unknown",
            "updated_at": row.get("updated_at"),
            "created_at": row.get("created_at"),
        }
        for row in ordered
    ]


def _month_keys(today: date, count: int) -> list[str]:
    keys = []
    year, month = today.year, today.month
    for _ in range(count):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def build_trends(requests: Rows, period: str, now: datetime) -> Rows:
    today = now.date()
    if period == "daily":
        label = "day"
        keys = [(today - timedelta(days=offset)).isoformat() for offset in range(DAILY_BUCKETS - 1, -1, -1)]
        key_format = "%Y-%m-%d"
    elif period == "monthly":
        label = "month"
        keys = _month_keys(today, MONTHLY_BUCKETS)
        key_format = "%Y-%m"
    else:
        raise ValidationError("Invalid period. Must be one of: daily, monthly")

    buckets = {key: {"total_requests": 0, "completed": 0, "failed": 0} for key in keys}
    for row in requests:
        created = as_datetime(row.get("created_at"))
        if created is None:
            continue
        bucket = buckets.get(created.strftime(key_format))
        if bucket is None:
            continue
        bucket["total_requests"] += 1
        if row.get("status") == RequestStatus.COMPLETED.value:
            bucket["completed"] += 1
        elif row.get("status") == RequestStatus.FAILED.value:
            bucket["failed"] += 1

    return [
        {
            label: key,
            **buckets[key],
            "success_rate": percentage(buckets[key]["completed"], buckets[key]["total_requests"]),
        }
        for key in keys
    ]


def build_statistics(requests: Rows) -> dict[str, int]:
    stats = {"total": len(requests)}
    for status in RequestStatus:
        stats[status.value] = _count_status(requests, status)
    return stats


class AnalyticsService:
    def __init__(self, adapter: PersistenceAdapter):
        self.adapter = adapter

    def _now(self) -> datetime:
        return datetime.utcnow()

    async def _load(self, operation: str, *tables: str) -> list[Rows]:
        async def _read(backend: StorageBackend) -> list[Rows]:
            return [await backend.select(table) for table in tables]

        return await self.adapter.run(operation, _read)

    async def overview(self) -> dict[str, Any]:
        users, requests, history = await self._load(
            "analytics.overview", "users", "requests", "request_status_history"
        )
        return build_overview(users, requests, history, self._now())

    async def status_history(self) -> Rows:
        (requests,) = await self._load("analytics.status_history", "requests")
        return status_summary(requests)

    async def recent_activity(self) -> Rows:
        requests, users = await self._load("analytics.recent_activity", "requests", "users")
        return recent_activity(requests, users)

    async def trends(self, period: Optional[str] = None) -> Rows:
        period = (period or "monthly").strip().lower()
        if period not in {"daily", "monthly"}:
            raise ValidationError("Invalid period. Must be one of: daily, monthly")
        (requests,) = await self._load("analytics.trends", "requests")
        return build_trends(requests, period, self._now())

    async def statistics(self) -> dict[str, int]:
        (requests,) = await self._load("analytics.statistics", "requests")
        return build_statistics(requests)


analytics_service = AnalyticsService(persistence)
