from request_desk.models.user import SessionUser, User, UserStatus, public_profile
from request_desk.models.request import LEGACY_STATUS_ALIASES, Request, RequestStatus
from request_desk.models.status_history import StatusHistoryEntry

__all__ = [
    "User", "UserStatus", "SessionUser", "public_profile",
    "Request", "RequestStatus", "LEGACY_STATUS_ALIASES",
    "StatusHistoryEntry",
]
