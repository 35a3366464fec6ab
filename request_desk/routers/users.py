from typing import Optional

from fastapi import APIRouter, Depends, Request

from request_desk.core.rbac import get_current_user, read_json_body
from request_desk.models.user import SessionUser
from request_desk.services.user_service import user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.put("/profile")
async def update_profile(
    request: Request,
    user: Optional[SessionUser] = Depends(get_current_user),
):
    body = await read_json_body(request)
    # Legacy clients send the username in the body; a session wins when present.
    username = user.username if user else body.get("username")
    profile = await user_service.update_profile(username, body.get("description"))

    if user:
        request.session["user"] = profile
    return {"success": True, "user": profile}
