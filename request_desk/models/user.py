from enum import Enum
from typing import Optional
from sqlmodel import Field, SQLModel
from datetime import datetime

from request_desk.core.errors import ValidationError


class UserStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DISABLED = "disabled"

    @classmethod
    def parse(cls, token: Optional[str]) -> "UserStatus":
        normalized = str(token or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        allowed = ", ".join(member.value for member in cls)
        raise ValidationError(f"Invalid status. Must be one of: {allowed}")


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    username: str = Field(unique=True, index=True)
    email: str
    password: str
    team: str
    description: Optional[str] = None
    status: str = Field(default=UserStatus.PENDING.value, index=True)
    isAdmin: int = Field(default=0)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class SessionUser(SQLModel):
    """Profile kept in the signed session cookie after login."""

    id: int
    name: Optional[str] = None
    username: str
    email: Optional[str] = None
    team: Optional[str] = None
    isAdmin: bool = False
    description: Optional[str] = None


def public_profile(row: dict) -> dict:
    return {
        "id": row.get("id"),
        "name": row.get("name"),
        "username": row.get("username"),
        "email": row.get("email"),
        "team": row.get("team"),
        "isAdmin": bool(int(row.get("isAdmin") or 0)),
        "description": row.get("description"),
    }
