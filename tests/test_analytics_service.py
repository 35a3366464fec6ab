import asyncio
from datetime import datetime, timedelta

import pytest

from request_desk.core.errors import ValidationError
from request_desk.db.adapter import PersistenceAdapter
from request_desk.db.memory_store import MemoryBackend
from request_desk.services.analytics_service import (
    AnalyticsService,
    build_overview,
    build_statistics,
    build_trends,
    recent_activity,
    round_half_up,
    status_breakdown,
    status_summary,
    team_breakdown,
)


NOW = datetime(2024, 3, 15, 12, 0, 0)


def _request(request_id: str, status: str, created_at: datetime, **extra):
    row = {
        "id": int(request_id[-1]),
        "request_id": request_id,
        "status": status,
        "team_name": "Finance Team",
        "request_name": f"Request {request_id}",
        "user_id": 2,
        "created_at": created_at,
        "updated_at": created_at,
    }
    row.update(extra)
    return row


def test_round_half_up_differs_from_bankers_rounding():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(66.65, 1) == 66.7
    assert round_half_up(33.333, 1) == 33.3


def test_overview_with_no_data_reports_zero_everywhere():
    overview = build_overview([], [], [], NOW)

    assert overview["users"] == {"total": 0, "daily_active": 0}
    assert overview["requests"]["completed_percentage"] == 0
    assert overview["requests"]["failed_percentage"] == 0
    assert overview["status_changes"] == {"total": 0, "last_24h": 0}
    assert overview["usersBreakdown"] == []
    assert overview["requestsBreakdown"] == []


def test_overview_percentages_and_status_changes():
    requests = [
        _request("R1", "completed", NOW - timedelta(days=2)),
        _request("R2", "completed", NOW - timedelta(days=3)),
        _request("R3", "failed", NOW - timedelta(hours=1)),
    ]
    history = [
        {"request_id": "R1", "old_status": None, "new_status": "submitted", "change_datetime": NOW - timedelta(days=2)},
        {"request_id": "R1", "old_status": "submitted", "new_status": "completed", "change_datetime": NOW - timedelta(days=2)},
        {"request_id": "R3", "old_status": "submitted", "new_status": "failed", "change_datetime": NOW - timedelta(minutes=5)},
    ]
    users = [{"id": 2, "team": "Finance Team", "status": "approved", "created_at": NOW - timedelta(hours=3)}]

    overview = build_overview(users, requests, history, NOW)

    assert overview["users"] == {"total": 1, "daily_active": 1}
    assert overview["requests"]["total"] == 3
    assert overview["requests"]["today"] == 1
    assert overview["requests"]["completed_percentage"] == 67
    assert overview["requests"]["failed_percentage"] == 33
    assert overview["status_changes"] == {"total": 2, "last_24h": 1}


def test_status_breakdown_rounds_percentage_and_age():
    requests = [
        _request("R1", "completed", NOW - timedelta(days=2)),
        _request("R2", "completed", NOW - timedelta(days=3)),
        _request("R3", "failed", NOW - timedelta(days=1)),
    ]

    rows = status_breakdown(requests, NOW)

    assert rows == [
        {"status": "completed", "count": 2, "percentage": 66.7, "avgDays": 3},
        {"status": "failed", "count": 1, "percentage": 33.3, "avgDays": 1},
    ]


def test_team_breakdown_orders_by_user_count_then_name():
    users = [
        {"id": 1, "team": "Support", "status": "approved"},
        {"id": 2, "team": "Finance Team", "status": "approved"},
        {"id": 3, "team": "Finance Team", "status": "pending"},
        {"id": 4, "team": "Audit", "status": "disabled"},
    ]
    requests = [_request("R1", "submitted", NOW, team_name="Legal")]

    rows = team_breakdown(users, requests)

    assert [row["team"] for row in rows] == ["Finance Team", "Audit", "Support", "Legal"]
    assert rows[0] == {"team": "Finance Team", "userCount": 2, "requestCount": 0, "activeUsers": 1}
    assert rows[-1] == {"team": "Legal", "userCount": 0, "requestCount": 1, "activeUsers": 0}


def test_daily_trends_emit_thirty_ascending_buckets():
    requests = [
        _request("R1", "completed", NOW),
        _request("R2", "failed", NOW - timedelta(days=1)),
        _request("R3", "completed", NOW - timedelta(days=40)),
    ]

    buckets = build_trends(requests, "daily", NOW)

    assert len(buckets) == 30
    assert buckets[0]["day"] == "2024-02-15"
    assert buckets[-1] == {"day": "2024-03-15", "total_requests": 1, "completed": 1, "failed": 0, "success_rate": 100}
    assert buckets[-2]["failed"] == 1
    assert buckets[-2]["success_rate"] == 0
    assert sum(bucket["total_requests"] for bucket in buckets) == 2


def test_monthly_trends_cross_year_boundary():
    requests = [_request("R1", "completed", datetime(2023, 11, 2))]

    buckets = build_trends(requests, "monthly", NOW)

    assert [bucket["month"] for bucket in buckets] == [
        "2023-10",
        "2023-11",
        "2023-12",
        "2024-01",
        "2024-02",
        "2024-03",
    ]
    assert buckets[1]["total_requests"] == 1


def test_unknown_trend_period_is_rejected():
    with pytest.raises(ValidationError):
        build_trends([], "weekly", NOW)

    service = AnalyticsService(PersistenceAdapter(memory=MemoryBackend()))
    with pytest.raises(ValidationError):
        asyncio.run(service.trends("yearly"))


def test_status_summary_tracks_latest_change():
    requests = [
        _request("R1", "completed", NOW - timedelta(days=2)),
        _request("R2", "completed", NOW - timedelta(days=5), updated_at=NOW - timedelta(hours=2)),
        _request("R3", "submitted", NOW - timedelta(days=1), updated_at=None),
    ]

    rows = status_summary(requests)

    assert rows == [
        {"status": "completed", "count": 2, "lastChange": (NOW - timedelta(hours=2)).isoformat()},
        {"status": "submitted", "count": 1, "lastChange": (NOW - timedelta(days=1)).isoformat()},
    ]


def test_recent_activity_limits_and_resolves_requester():
    requests = [_request(f"R{i}", "submitted", NOW - timedelta(hours=i), id=i) for i in range(12)]
    requests[0]["user_id"] = 99
    users = [{"id": 2, "username": "alice.johnson"}]

    rows = recent_activity(requests, users)

    assert len(rows) == 10
    assert rows[0]["title"] == "Request R0"
    assert rows[0]["requester"] == "Unknown"
    assert rows[1]["requester"] == "alice.johnson"


def test_statistics_count_each_status():
    requests = [
        _request("R1", "submitted", NOW),
        _request("R2", "processing", NOW),
        _request("R3", "failed", NOW),
    ]

    assert build_statistics(requests) == {
        "total": 3,
        "submitted": 1,
        "processing": 1,
        "completed": 0,
        "failed": 1,
    }


def test_service_recomputes_over_fallback_store():
    service = AnalyticsService(PersistenceAdapter(memory=MemoryBackend()))

    stats = asyncio.run(service.statistics())
    activity = asyncio.run(service.recent_activity())
    summary = asyncio.run(service.status_history())

    assert stats["total"] == 1
    assert stats["submitted"] == 1
    assert activity[0]["requester"] == "alice.johnson"
    assert summary[0]["status"] == "submitted"
