from typing import Callable

from fastapi import Depends

from app.core.auth_utils import get_current_user
from app.core.errors import Forbidden
from app.core.role_matrix import normalize_role
from app.models.paper import Role


def require_role(*required: Role) -> Callable[[dict], dict]:
    """
    路由级角色门禁（按前缀挂载：/admin、/author、/reviewer）。

    中文注释:
    - 角色互斥且不可变，因此这里只需比对用户记录上的单一 role。
    - 论文级权限仍由 access_guard 在 service 层判定。
    """
    required_set = set(required)

    async def _dep(user: dict = Depends(get_current_user)) -> dict:
        role = normalize_role(user.get("role"))
        if role not in required_set:
            allowed = ", ".join(sorted(r.value for r in required_set))
            raise Forbidden(f"Role {user.get('role')} is not authorized; requires {allowed}")
        return user

    return _dep
