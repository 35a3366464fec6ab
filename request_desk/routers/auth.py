import logging

from fastapi import APIRouter, Request

from request_desk.core.rbac import read_json_body
from request_desk.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login")
async def login(request: Request):
    body = await read_json_body(request)
    user = await user_service.authenticate(body.get("username"), body.get("password"))
    request.session["user"] = user
    return {"success": True, "user": user}


@router.post("/register")
async def register(request: Request):
    body = await read_json_body(request)
    user = await user_service.register(body)
    return {
        "success": True,
        "message": "Registration successful! Your account is pending admin approval.",
        "user": user,
    }


@router.post("/logout")
async def logout(request: Request):
    user = request.session.pop("user", None)
    if user:
        logger.info("User logged out: %s", user.get("username"))
    request.session.clear()
    return {"success": True}
