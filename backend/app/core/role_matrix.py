from __future__ import annotations

from typing import Iterable

from app.models.paper import PaperAction, Role

# 中文注释：
# - 这里集中定义“角色 -> 论文动作”权限矩阵，避免权限逻辑散落在各路由。
# - 矩阵只回答“该角色是否可能执行此动作”；论文级可见性（主作者/通讯作者/已分配审稿人）由 access_guard 判定。

ROLE_ACTIONS: dict[Role, frozenset[PaperAction]] = {
    Role.AUTHOR: frozenset(
        {
            PaperAction.SUBMIT,
            PaperAction.VIEW,
            PaperAction.RESUBMIT,
            PaperAction.SUBMIT_FEEDBACK,
            PaperAction.UPLOAD_CAMERA_READY,
        }
    ),
    Role.REVIEWER: frozenset(
        {
            PaperAction.VIEW,
            PaperAction.SUBMIT_REVIEW,
            PaperAction.SUBMIT_FEEDBACK,
        }
    ),
    Role.ADMIN: frozenset(
        {
            PaperAction.VIEW,
            PaperAction.APPROVE,
            PaperAction.ASSIGN_REVIEWERS,
            PaperAction.SET_FINAL_STATUS,
            PaperAction.DELETE,
            PaperAction.SUBMIT_FEEDBACK,
            PaperAction.UPDATE_PAYMENT,
        }
    ),
}

# 只有主作者可以执行的作者动作（通讯作者仅可查看/留言/上传终稿）
PRIMARY_AUTHOR_ONLY: frozenset[PaperAction] = frozenset({PaperAction.RESUBMIT})


def normalize_role(raw: str | Role | None) -> Role | None:
    """
    将输入角色归一化（大写、去空）；未知角色返回 None。
    """
    if raw is None:
        return None
    if isinstance(raw, Role):
        return raw
    value = str(raw).strip().upper()
    try:
        return Role(value)
    except ValueError:
        return None


def can_perform_action(*, action: PaperAction, role: str | Role | None) -> bool:
    normalized = normalize_role(role)
    if normalized is None:
        return False
    return action in ROLE_ACTIONS.get(normalized, frozenset())


def list_allowed_actions(roles: Iterable[str | Role] | None) -> set[str]:
    """
    返回角色集合可执行的动作名（用于 /auth/me 的 capability 输出）。
    """
    actions: set[str] = set()
    for raw in roles or []:
        role = normalize_role(raw)
        if role is None:
            continue
        actions.update(a.value for a in ROLE_ACTIONS.get(role, frozenset()))
    return actions
