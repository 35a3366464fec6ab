from typing import Any, Optional

from fastapi import Depends, Request

from request_desk.core.errors import AuthError, ValidationError
from request_desk.models.user import SessionUser


async def read_json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except Exception:
        raise ValidationError("Request body must be valid JSON") from None
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def get_current_user(request: Request) -> Optional[SessionUser]:
    data = request.session.get("user")
    if not data:
        return None
    try:
        return SessionUser.model_validate(data)
    except ValueError:
        request.session.pop("user", None)
        return None


def require_user(user: Optional[SessionUser] = Depends(get_current_user)) -> SessionUser:
    if not user:
        raise AuthError("Not authenticated", code="not_authenticated")
    return user


def require_admin(user: SessionUser = Depends(require_user)) -> SessionUser:
    if not user.isAdmin:
        raise AuthError.forbidden("Admin access required")
    return user
