"""
统一业务异常

中文注释:
- Service 层只抛这里定义的异常，不直接依赖 fastapi.HTTPException。
- API 层由 middleware 中注册的 handler 统一转换成 {"detail", "type"} 响应。
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    status_code = 500
    code = "domain_error"

    def __init__(self, detail: Any = None):
        self.detail = detail if detail is not None else self.__class__.__name__
        super().__init__(str(self.detail))


class ValidationError(DomainError):
    """Malformed or missing input; detail may be a list of field errors."""

    status_code = 422
    code = "validation_error"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls([{"loc": [field], "msg": message}])


class Unauthenticated(DomainError):
    status_code = 401
    code = "unauthenticated"


class Forbidden(DomainError):
    status_code = 403
    code = "forbidden"


class NotFound(DomainError):
    # 中文注释: “不存在”与“无权可见”对调用方不可区分，避免泄露资源存在性
    status_code = 404
    code = "not_found"


class Conflict(DomainError):
    status_code = 409
    code = "conflict"


class DependencyFailure(DomainError):
    status_code = 502
    code = "dependency_failure"
