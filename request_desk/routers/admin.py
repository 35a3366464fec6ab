from typing import Any, Optional

from fastapi import APIRouter, Depends, Request

from request_desk.core.rbac import read_json_body, require_admin
from request_desk.models.user import SessionUser
from request_desk.services.analytics_service import analytics_service
from request_desk.services.request_service import request_service
from request_desk.services.user_service import user_service


router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _text(body: dict[str, Any], key: str) -> Optional[str]:
    value = body.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@router.put("/requests/{request_id}/status")
async def update_request_status(
    request_id: str,
    request: Request,
    user: SessionUser = Depends(require_admin),
):
    body = await read_json_body(request)
    result = await request_service.transition(
        request_id,
        body.get("status"),
        actor=_text(body, "changedBy") or user.username,
        comments=_text(body, "admin_comments"),
        notes=_text(body, "notes"),
    )
    return {
        "success": True,
        "message": f"Request status updated to {result['new_status']}",
        "admin_comments": result["admin_comments"],
    }


@router.get("/analytics")
async def analytics():
    return await analytics_service.overview()


@router.get("/status-history")
async def status_history():
    return await analytics_service.status_history()


@router.get("/recent-activity")
async def recent_activity():
    return await analytics_service.recent_activity()


@router.get("/trends")
async def trends(period: str = "monthly"):
    return await analytics_service.trends(period)


@router.get("/users")
async def list_users():
    return {"success": True, "users": await user_service.list_users()}


@router.put("/users/{user_id}/status")
async def update_user_status(user_id: str, request: Request):
    body = await read_json_body(request)
    updated = await user_service.set_status(user_id, body.get("status"))
    return {"success": True, "message": f"User status updated to {updated['status']}"}


@router.put("/users/{user_id}/role")
async def update_user_role(user_id: str, request: Request):
    body = await read_json_body(request)
    updated = await user_service.set_role(user_id, body.get("isAdmin"))
    role = "admin" if updated["isAdmin"] else "user"
    return {"success": True, "message": f"User role updated to {role}"}


@router.put("/users/{user_id}/password")
async def reset_user_password(user_id: str, request: Request):
    body = await read_json_body(request)
    await user_service.reset_password(user_id, body)
    return {"success": True, "message": "Password updated successfully"}


@router.put("/users/{user_id}")
async def edit_user(user_id: str, request: Request):
    body = await read_json_body(request)
    await user_service.update_user(user_id, body)
    return {"success": True, "message": "User updated successfully"}


@router.delete("/users/{user_id}")
async def delete_user(user_id: str, user: SessionUser = Depends(require_admin)):
    await user_service.delete_user(user_id, acting_user_id=user.id)
    return {"success": True, "message": "User deleted successfully"}
