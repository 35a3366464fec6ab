from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from request_desk.core.errors import ValidationError


class RequestStatus(str, Enum):
    SUBMITTED = "submitted"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def parse(cls, token: Optional[str]) -> "RequestStatus":
        normalized = str(token or "").strip().lower()
        normalized = LEGACY_STATUS_ALIASES.get(normalized, normalized)
        for member in cls:
            if member.value == normalized:
                return member
        allowed = ", ".join(member.value for member in cls)
        raise ValidationError(f"Invalid status. Must be one of: {allowed}")

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


# Older dashboard builds still send "rejected" for a failed request.
LEGACY_STATUS_ALIASES = {"rejected": "failed"}

TERMINAL_STATUSES = frozenset({RequestStatus.COMPLETED, RequestStatus.FAILED})


class Request(SQLModel, table=True):
    __tablename__ = "requests"

    id: Optional[int] = Field(default=None, primary_key=True)
    request_id: str = Field(unique=True, index=True)

    requestor_name: str
    requestor_email: str
    cc_email: Optional[str] = None
    team_name: str = Field(index=True)
    category_name: str
    request_dates: str
    acct_number: str
    request_name: str

    currency: str
    amount: float
    adjustment: int = Field(default=0)
    description: Optional[str] = None

    status: str = Field(default=RequestStatus.SUBMITTED.value, index=True)
    user_id: Optional[int] = Field(default=None, foreign_key="users.id", index=True)

    failed_message: Optional[str] = None
    admin_comments: Optional[str] = None

    request_datetime: datetime = Field(default_factory=datetime.utcnow)
    status_update_datetime: datetime = Field(default_factory=datetime.utcnow)
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
