from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import AuthConfig
from app.core.errors import Unauthenticated
from app.core.security import decode_access_token
from app.lib.api_client import get_record_store
from app.lib.record_store import RecordStore

# === Auth 核心配置 ===
# 中文注释:
# 1. 会话 JWT 由本服务签发（HS256），见 app.core.security。
# 2. 优先读取 Authorization: Bearer，其次读取 HttpOnly cookie（浏览器端）。
security = HTTPBearer(auto_error=False)


def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    cookie_name = AuthConfig.from_env().cookie_name
    token = (request.cookies.get(cookie_name) or "").strip()
    return token or None


def public_user(row: dict) -> dict:
    """去掉密码哈希后的用户记录"""
    return {k: v for k, v in row.items() if k != "password_hash"}


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    store: RecordStore = Depends(get_record_store),
) -> dict:
    """
    解码会话 JWT 并加载用户记录（以数据库中的角色为准，而不是 token 里的 role 提示）。
    """
    token = _extract_token(request, credentials)
    if not token:
        raise Unauthenticated("Not authorized, no token")

    payload = decode_access_token(token)
    user = store.find_by_id("users", payload.sub)
    if user is None:
        raise Unauthenticated("Not authorized, user not found")
    return public_user(user)
