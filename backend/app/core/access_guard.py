"""
Paper-scoped access guard.

中文注释:
- 角色级判定（该角色是否可能执行某动作）查 role_matrix.ROLE_ACTIONS。
- 论文级判定由按角色多态的 RolePolicy 完成：
  - ADMIN: 无条件放行；
  - AUTHOR: 主作者，或邮箱与论文上某位通讯作者一致（忽略大小写/首尾空格）；
  - REVIEWER: 存在 (paper, reviewer) 分配记录。
- 错误语义:
  - 角色永远不能执行该动作 -> Forbidden；
  - 论文对调用者不可见 -> NotFound（不泄露论文是否存在）；
  - 论文可见但当前动作不被允许（例如通讯作者尝试仅主作者可做的 resubmit）-> Forbidden。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from app.core.errors import Forbidden, NotFound
from app.core.role_matrix import PRIMARY_AUTHOR_ONLY, can_perform_action, normalize_role
from app.lib.record_store import RecordStore, Row
from app.models.paper import PaperAction, Role

PAPER_NOT_FOUND = "Paper not found"


def normalize_email(value: Any) -> str:
    return str(value or "").strip().lower()


@dataclass
class PaperContext:
    """论文及其访问判定所需的关联数据（作者列表、已分配审稿人）"""

    paper: Row
    authors: list[Row] = field(default_factory=list)
    reviewer_ids: frozenset[str] = frozenset()

    @property
    def paper_id(self) -> str:
        return str(self.paper["id"])

    @property
    def primary_author_id(self) -> str:
        return str(self.paper.get("author_id") or "")

    @property
    def corresponding_authors(self) -> list[Row]:
        return [a for a in self.authors if a.get("is_corresponding")]

    def corresponding_emails(self) -> list[str]:
        out: list[str] = []
        for author in self.corresponding_authors:
            email = normalize_email(author.get("email"))
            if email and email not in out:
                out.append(email)
        return out

    @classmethod
    def load(cls, store: RecordStore, paper_id: str) -> Optional["PaperContext"]:
        paper = store.find_by_id("papers", paper_id)
        if paper is None:
            return None
        authors = store.find_many("paper_authors", {"paper_id": paper["id"]}, order_by="position")
        assignments = store.find_many("reviewer_assignments", {"paper_id": paper["id"]})
        return cls(
            paper=paper,
            authors=authors,
            reviewer_ids=frozenset(str(a["reviewer_id"]) for a in assignments),
        )


class RolePolicy(ABC):
    role: Role

    def allows(self, action: PaperAction) -> bool:
        return can_perform_action(action=action, role=self.role)

    @abstractmethod
    def can_view(self, ctx: PaperContext, user: Mapping[str, Any]) -> bool:
        ...

    def can_act(self, action: PaperAction, ctx: PaperContext, user: Mapping[str, Any]) -> bool:
        return self.allows(action) and self.can_view(ctx, user)


class AdminPolicy(RolePolicy):
    role = Role.ADMIN

    def can_view(self, ctx, user):
        return True


class AuthorPolicy(RolePolicy):
    role = Role.AUTHOR

    @staticmethod
    def is_primary(ctx: PaperContext, user: Mapping[str, Any]) -> bool:
        return bool(ctx.primary_author_id) and ctx.primary_author_id == str(user.get("id") or "")

    @staticmethod
    def is_corresponding(ctx: PaperContext, user: Mapping[str, Any]) -> bool:
        email = normalize_email(user.get("email"))
        return bool(email) and email in ctx.corresponding_emails()

    def can_view(self, ctx, user):
        return self.is_primary(ctx, user) or self.is_corresponding(ctx, user)

    def can_act(self, action, ctx, user):
        if not super().can_act(action, ctx, user):
            return False
        if action in PRIMARY_AUTHOR_ONLY:
            return self.is_primary(ctx, user)
        return True


class ReviewerPolicy(RolePolicy):
    role = Role.REVIEWER

    def can_view(self, ctx, user):
        return str(user.get("id") or "") in ctx.reviewer_ids


_POLICIES: dict[Role, RolePolicy] = {
    Role.ADMIN: AdminPolicy(),
    Role.AUTHOR: AuthorPolicy(),
    Role.REVIEWER: ReviewerPolicy(),
}


def policy_for(user: Mapping[str, Any]) -> RolePolicy:
    role = normalize_role(user.get("role"))
    if role is None:
        raise Forbidden("Unknown role")
    return _POLICIES[role]


def require_action(user: Mapping[str, Any], action: PaperAction) -> RolePolicy:
    """角色级校验：该角色永远不能执行的动作直接 Forbidden。"""
    policy = policy_for(user)
    if not policy.allows(action):
        raise Forbidden(f"Role {policy.role.value} is not authorized to {action.value.replace('_', ' ')}")
    return policy


def authorize(action: PaperAction, ctx: Optional[PaperContext], user: Mapping[str, Any]) -> PaperContext:
    """
    统一的论文级鉴权入口，所有生命周期动作都经过这里。

    返回通过校验的 PaperContext，便于调用方继续使用。
    """
    policy = require_action(user, action)
    if ctx is None or not policy.can_view(ctx, user):
        raise NotFound(PAPER_NOT_FOUND)
    if not policy.can_act(action, ctx, user):
        raise Forbidden(f"Not authorized to {action.value.replace('_', ' ')} this paper")
    return ctx


def load_authorized(
    store: RecordStore, paper_id: str, action: PaperAction, user: Mapping[str, Any]
) -> PaperContext:
    require_action(user, action)
    return authorize(action, PaperContext.load(store, paper_id), user)
