from typing import Optional

from fastapi import APIRouter, Depends, Request, status

from request_desk.core.rbac import get_current_user, read_json_body
from request_desk.core.validation import parse_bool
from request_desk.models.user import SessionUser
from request_desk.services.analytics_service import analytics_service
from request_desk.services.request_service import request_service

router = APIRouter(tags=["requests"])


@router.post("/requests", status_code=status.HTTP_201_CREATED)
async def create_request(request: Request):
    body = await read_json_body(request)
    request_id = await request_service.create(body)
    return {
        "success": True,
        "message": "Request created successfully",
        "requestId": request_id,
    }


@router.get("/requests")
async def list_requests(
    username: Optional[str] = None,
    isAdmin: Optional[str] = None,
    user: Optional[SessionUser] = Depends(get_current_user),
):
    if user:
        rows = await request_service.list_requests(username=user.username, is_admin=user.isAdmin)
    else:
        rows = await request_service.list_requests(username=username, is_admin=parse_bool(isAdmin))
    return {"success": True, "data": rows}


@router.get("/requests/{request_id}/history")
async def request_history(request_id: str):
    return {"success": True, "data": await request_service.history(request_id)}


@router.get("/statistics")
async def statistics():
    return {"success": True, "data": await analytics_service.statistics()}
