from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.models.paper import Role

# bcrypt 只处理前 72 字节（按 UTF-8 计），bcrypt>=5 对超长输入直接报错
MAX_PASSWORD_BYTES = 72
PASSWORD_TOO_LONG = f"Password cannot be longer than {MAX_PASSWORD_BYTES} bytes"


def password_too_long(plaintext: str) -> bool:
    return len(plaintext.encode("utf-8")) > MAX_PASSWORD_BYTES


class _NameFields(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    middle_name: Optional[str] = Field(None, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    affiliation: Optional[str] = Field(None, max_length=300)
    email: EmailStr

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_required_names(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("name is required")
        return trimmed

    @field_validator("middle_name", "affiliation", mode="before")
    @classmethod
    def normalize_optional_text_fields(cls, v):
        """
        允许前端传空字符串（例如未填写 middle name）而不触发 422。
        - "" / "   " -> None
        """
        if v is None:
            return None
        if isinstance(v, str):
            stripped = v.strip()
            return stripped or None
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return str(v).strip().lower()


class RegisterRequest(_NameFields):
    password: str = Field(..., min_length=6, max_length=MAX_PASSWORD_BYTES)

    @field_validator("password")
    @classmethod
    def validate_password_bytes(cls, value: str) -> str:
        # 中文注释: 按 UTF-8 字节数限制（中文等多字节字符 72 字节内放不下 72 个）
        if password_too_long(value):
            raise ValueError(PASSWORD_TOO_LONG)
        return value


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return str(v).strip().lower()


class UserPublic(BaseModel):
    """
    对外返回的用户信息（永不包含密码哈希）
    """

    id: str
    first_name: str
    middle_name: Optional[str] = None
    last_name: str
    affiliation: Optional[str] = None
    email: str
    role: Role
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, extra="ignore")
