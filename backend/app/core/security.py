from __future__ import annotations

import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt

from app.core.config import AuthConfig
from app.core.errors import Unauthenticated, ValidationError
from app.schemas.token import TokenPayload
from app.schemas.user import PASSWORD_TOO_LONG, password_too_long

BCRYPT_ROUNDS = 10


def hash_password(plaintext: str) -> str:
    if password_too_long(plaintext):
        raise ValidationError.for_field("password", PASSWORD_TOO_LONG)
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(plaintext.encode("utf-8"), salt).decode("utf-8")


def verify_password(plaintext: str, hashed: Optional[str]) -> bool:
    if not plaintext or not hashed or password_too_long(plaintext):
        return False
    try:
        return bcrypt.checkpw(plaintext.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # 中文注释: 库里存的不是合法 bcrypt 串（例如历史脏数据），视为校验失败
        return False


def generate_temporary_password(length: int = 12) -> str:
    """
    生成高熵临时密码（用于自动开通的通讯作者 / 管理员创建的审稿人）。
    """
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def create_access_token(*, user_id: str, role: str, config: AuthConfig | None = None) -> str:
    cfg = config or AuthConfig.from_env()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": str(role),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(days=cfg.expires_days)).timestamp()),
    }
    return jwt.encode(payload, cfg.jwt_secret, algorithm=cfg.algorithm)


def decode_access_token(token: str, config: AuthConfig | None = None) -> TokenPayload:
    """
    解码并校验会话 JWT。

    抛出:
    - Unauthenticated: token 无效/过期/载荷缺失
    """
    cfg = config or AuthConfig.from_env()
    try:
        raw = jwt.decode(token, cfg.jwt_secret, algorithms=[cfg.algorithm])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Not authorized, token expired")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Not authorized, token failed")

    sub = raw.get("sub")
    if not sub:
        raise Unauthenticated("Not authorized, token failed")
    return TokenPayload(sub=str(sub), role=raw.get("role"), exp=int(raw.get("exp") or 0))
