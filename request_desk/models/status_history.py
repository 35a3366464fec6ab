from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class StatusHistoryEntry(SQLModel, table=True):
    __tablename__ = "request_status_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    request_id: str = Field(foreign_key="requests.request_id", index=True)
    old_status: Optional[str] = None
    new_status: str
    changed_by: Optional[str] = None
    change_datetime: datetime = Field(default_factory=datetime.utcnow, index=True)
    notes: Optional[str] = None
