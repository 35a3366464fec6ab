import logging
from datetime import datetime
from pathlib import Path

from sqlalchemy import inspect, insert, select, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from request_desk.core.config import settings
from request_desk.core.security import get_password_hash

logger = logging.getLogger(__name__)


def _is_sqlite_url(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _ensure_sqlite_directory(database_url: str) -> None:
    database = make_url(database_url).database
    if not database or database == ":memory:":
        return
    Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)


def build_engine(database_url: str) -> AsyncEngine:
    engine_kwargs: dict = {
        "echo": False,
        "future": True,
    }
    if _is_sqlite_url(database_url):
        _ensure_sqlite_directory(database_url)
        # Each call gets its own connection; nothing is shared across event loops.
        engine_kwargs["poolclass"] = NullPool

    return create_async_engine(database_url, **engine_kwargs)


engine = build_engine(settings.DATABASE_URL)


async def init_db(target: AsyncEngine | None = None) -> None:
    from sqlmodel import SQLModel
    from request_desk.models import user
    from request_desk.models import request
    from request_desk.models import status_history

    bind = target or engine
    async with bind.begin() as conn:
        if settings.DB_AUTO_INIT_ON_STARTUP:
            await conn.run_sync(SQLModel.metadata.create_all)
            await conn.run_sync(_ensure_user_columns)
            await conn.run_sync(_ensure_request_columns)
            if settings.SEED_DEFAULT_ADMIN:
                await conn.run_sync(_seed_default_admin)
        else:
            await conn.execute(text("SELECT 1"))


def _ensure_user_columns(sync_conn):
    inspector = inspect(sync_conn)
    if "users" not in inspector.get_table_names():
        return

    existing = {col["name"] for col in inspector.get_columns("users")}
    additions = {
        "description": "TEXT",
        "status": "VARCHAR DEFAULT 'pending'",
        "isAdmin": "INTEGER DEFAULT 0",
        "updated_at": "TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
    }

    for column_name, column_type in additions.items():
        if column_name in existing:
            continue
        sync_conn.execute(text(f"ALTER TABLE users ADD COLUMN {column_name} {column_type}"))


def _ensure_request_columns(sync_conn):
    inspector = inspect(sync_conn)
    if "requests" not in inspector.get_table_names():
        return

    existing = {col["name"] for col in inspector.get_columns("requests")}
    additions = {
        "cc_email": "TEXT",
        "adjustment": "INTEGER DEFAULT 0",
        "status_update_datetime": "TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
        "failed_message": "TEXT",
        "admin_comments": "TEXT",
        "updated_at": "TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
    }

    for column_name, column_type in additions.items():
        if column_name in existing:
            continue
        sync_conn.execute(
            text(f"ALTER TABLE requests ADD COLUMN {column_name} {column_type}")
        )


def _seed_default_admin(sync_conn):
    from request_desk.models.user import User, UserStatus

    users = User.__table__
    existing = sync_conn.execute(select(users.c.id).where(users.c.username == "admin")).first()
    if existing:
        return

    now = datetime.utcnow()
    sync_conn.execute(
        insert(users).values(
            name="Administrator",
            username="admin",
            email="admin@system.com",
            password=get_password_hash("admin123"),
            team="Administration",
            description="System Administrator",
            status=UserStatus.APPROVED.value,
            isAdmin=1,
            created_at=now,
            updated_at=now,
        )
    )
    logger.info("Seeded default admin account.")
