import logging
from datetime import datetime
from typing import Any, Optional

from request_desk.core.errors import AuthError, ConflictError, NotFoundError, ValidationError
from request_desk.core.security import get_password_hash, verify_password
from request_desk.core.validation import (
    optional_string,
    parse_bool,
    parse_int,
    require_email,
    require_string,
)
from request_desk.db.adapter import PersistenceAdapter, StorageBackend, persistence
from request_desk.models.user import User, UserStatus, public_profile


logger = logging.getLogger(__name__)

LISTED_COLUMNS = ("id", "name", "username", "email", "team", "description", "status", "isAdmin", "created_at")


class UserService:
    TABLE = "users"

    def __init__(self, adapter: PersistenceAdapter):
        self.adapter = adapter

    def _user_id(self, raw: Any) -> int:
        try:
            return parse_int(raw, "User id")
        except ValidationError:
            raise NotFoundError("User not found") from None

    def _password(self, fields: dict[str, Any]) -> str:
        password = fields.get("password")
        if not isinstance(password, str) or not (6 <= len(password) <= 255):
            raise ValidationError("Password must be 6-255 characters long")
        return password

    async def _require(self, backend: StorageBackend, user_id: int) -> dict[str, Any]:
        row = await backend.get(self.TABLE, {"id": user_id})
        if not row:
            raise NotFoundError("User not found")
        return row

    async def register(self, fields: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(fields, dict):
            raise ValidationError("Request body must be a JSON object")
        if not all(fields.get(key) for key in ("name", "username", "email", "password", "team")):
            raise ValidationError("Name, username, email, password, and team are required")

        name = require_string(fields, "name", "Name", max_length=100)
        username = require_string(fields, "username", "Username", max_length=50)
        if " " in username:
            raise ValidationError("Invalid username (no spaces allowed)")
        email = require_email(fields, "email", "Email")
        password = self._password(fields)
        team = require_string(fields, "team", "Team")
        description = optional_string(fields, "description") or ""

        row = User(
            name=name,
            username=username,
            email=email,
            password=get_password_hash(password),
            team=team,
            description=description,
            status=UserStatus.PENDING.value,
            isAdmin=0,
        ).model_dump()

        async def _register(backend: StorageBackend) -> dict[str, Any]:
            if await backend.get(self.TABLE, {"username": username}):
                raise ConflictError("Username already exists")
            created = await backend.insert(self.TABLE, row)
            await backend.sync()
            return created

        created = await self.adapter.run("user.register", _register)
        logger.info("User registered (%s): %s", self.adapter.backend_name, username)
        return {
            "id": created["id"],
            "username": username,
            "email": email,
            "team": team,
            "status": UserStatus.PENDING.value,
        }

    async def authenticate(self, username: Optional[str], password: Optional[str]) -> dict[str, Any]:
        if not username or not password:
            raise ValidationError("Username and password are required")

        row = await self.adapter.run(
            "user.authenticate",
            lambda backend: backend.get(self.TABLE, {"username": username}),
        )
        if not row or not verify_password(password, row.get("password")):
            logger.info("Invalid credentials for: %s", username)
            raise AuthError("Invalid username or password", code="invalid_credentials")

        status = row.get("status")
        if status == UserStatus.PENDING.value:
            raise AuthError.forbidden(
                "Your account is pending admin approval. Please wait for approval before logging in.",
                code="account_pending",
            )
        if status != UserStatus.APPROVED.value:
            raise AuthError.forbidden(
                "Your account has been disabled. Please contact an administrator.",
                code="account_disabled",
            )

        logger.info("Login successful (%s): %s", self.adapter.backend_name, username)
        return public_profile(row)

    async def list_users(self) -> list[dict[str, Any]]:
        rows = await self.adapter.run(
            "user.list",
            lambda backend: backend.select(self.TABLE, order_by=[("created_at", True), ("id", True)]),
        )
        users = []
        for row in rows:
            listed = {column: row.get(column) for column in LISTED_COLUMNS}
            listed["isAdmin"] = int(listed["isAdmin"] or 0)
            users.append(listed)
        return users

    async def _apply(self, operation: str, user_id: Any, values: dict[str, Any]) -> dict[str, Any]:
        uid = self._user_id(user_id)
        values = {**values, "updated_at": datetime.utcnow()}

        async def _update(backend: StorageBackend) -> dict[str, Any]:
            current = await self._require(backend, uid)
            await backend.update(self.TABLE, values, {"id": uid})
            await backend.sync()
            return {**current, **values}

        updated = await self.adapter.run(operation, _update)
        logger.info("User %s updated via %s (%s)", uid, operation, self.adapter.backend_name)
        return updated

    async def set_status(self, user_id: Any, status: Any) -> dict[str, Any]:
        parsed = UserStatus.parse(status)
        return await self._apply("user.set_status", user_id, {"status": parsed.value})

    async def set_role(self, user_id: Any, is_admin: Any) -> dict[str, Any]:
        if is_admin is None:
            raise ValidationError("isAdmin is required")
        return await self._apply("user.set_role", user_id, {"isAdmin": 1 if parse_bool(is_admin) else 0})

    async def reset_password(self, user_id: Any, fields: dict[str, Any]) -> dict[str, Any]:
        password = self._password(fields)
        return await self._apply("user.reset_password", user_id, {"password": get_password_hash(password)})

    async def update_user(self, user_id: Any, fields: dict[str, Any]) -> dict[str, Any]:
        values: dict[str, Any] = {}
        if "name" in fields:
            values["name"] = require_string(fields, "name", "Name", max_length=100)
        if "email" in fields:
            values["email"] = require_email(fields, "email", "Email")
        if "team" in fields:
            values["team"] = require_string(fields, "team", "Team")
        if "description" in fields:
            values["description"] = optional_string(fields, "description") or ""
        if not values:
            raise ValidationError("No updatable fields provided")
        return await self._apply("user.update", user_id, values)

    async def update_profile(self, username: Optional[str], description: Any) -> dict[str, Any]:
        if not username:
            raise ValidationError("Username is required")
        cleaned = optional_string({"description": description}, "description") or ""

        async def _update(backend: StorageBackend) -> dict[str, Any]:
            current = await backend.get(self.TABLE, {"username": username})
            if not current:
                raise NotFoundError("User not found")
            values = {"description": cleaned, "updated_at": datetime.utcnow()}
            await backend.update(self.TABLE, values, {"id": current["id"]})
            await backend.sync()
            return {**current, **values}

        return public_profile(await self.adapter.run("user.update_profile", _update))

    async def delete_user(self, user_id: Any, acting_user_id: Optional[int] = None) -> None:
        uid = self._user_id(user_id)
        if acting_user_id is not None and uid == acting_user_id:
            raise ValidationError("You cannot delete your own account")

        async def _delete(backend: StorageBackend) -> None:
            await self._require(backend, uid)
            await backend.delete(self.TABLE, {"id": uid})
            await backend.sync()

        await self.adapter.run("user.delete", _delete)
        logger.info("User %s deleted (%s)", uid, self.adapter.backend_name)


user_service = UserService(persistence)
