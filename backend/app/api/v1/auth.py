import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel

from app.api.v1.deps import get_user_service
from app.core.auth_utils import get_current_user
from app.core.config import AuthConfig
from app.core.role_matrix import list_allowed_actions
from app.core.security import create_access_token
from app.schemas.token import AuthResponse
from app.schemas.user import LoginRequest, RegisterRequest, UserPublic
from app.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["Auth"])


class MeResponse(BaseModel):
    user: UserPublic
    allowed_actions: List[str]


def _client_ip(request: Request) -> Optional[str]:
    # 中文注释: 部署在反向代理后面时优先取 X-Forwarded-For 的第一个地址
    forwarded = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
    if forwarded:
        return forwarded
    return request.client.host if request.client else None


def _issue_session(response: Response, user: dict) -> str:
    cfg = AuthConfig.from_env()
    token = create_access_token(user_id=user["id"], role=user["role"], config=cfg)
    response.set_cookie(
        key=cfg.cookie_name,
        value=token,
        httponly=True,
        secure=cfg.cookie_secure,
        samesite="none" if cfg.cookie_secure else "lax",
        max_age=cfg.expires_days * 24 * 60 * 60,
    )
    return token


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    payload: RegisterRequest,
    response: Response,
    users: UserService = Depends(get_user_service),
):
    """
    作者自助注册（角色固定为 AUTHOR）。邮箱重复返回 409。
    """
    # 中文注释: bcrypt 哈希是 CPU 密集操作，放到线程池避免阻塞事件循环
    user = await asyncio.to_thread(users.register_author, payload)
    token = _issue_session(response, user)
    return {"message": "User registered successfully", "token": token, "user": user}


@router.post("/login", response_model=AuthResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    users: UserService = Depends(get_user_service),
):
    user = await asyncio.to_thread(
        users.authenticate,
        payload.email,
        payload.password,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    token = _issue_session(response, user)
    return {"message": "Login successful", "token": token, "user": user}


@router.post("/logout")
async def logout(response: Response):
    cfg = AuthConfig.from_env()
    response.delete_cookie(
        key=cfg.cookie_name,
        httponly=True,
        secure=cfg.cookie_secure,
        samesite="none" if cfg.cookie_secure else "lax",
    )
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=MeResponse)
async def me(current_user: dict = Depends(get_current_user)):
    return {
        "user": current_user,
        "allowed_actions": sorted(list_allowed_actions([current_user.get("role")])),
    }
