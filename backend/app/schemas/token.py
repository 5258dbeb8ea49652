from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from app.schemas.user import UserPublic


class TokenPayload(BaseModel):
    """
    会话 JWT 载荷

    中文注释:
    - 载荷只包含用户 ID 与角色（不包含邮箱/姓名等 PII）。
    - role 仅作提示，鉴权时以数据库中的用户记录为准。
    """

    sub: str
    role: Optional[str] = None
    exp: int = Field(..., description="Unix timestamp (seconds)")


class AuthResponse(BaseModel):
    message: str
    token: str
    user: UserPublic
