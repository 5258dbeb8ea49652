from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.core.access_guard import normalize_email
from app.core.auth_utils import public_user
from app.core.errors import Conflict, NotFound, Unauthenticated
from app.core.security import generate_temporary_password, hash_password, verify_password
from app.lib.record_store import DuplicateRecord, RecordStore
from app.models.paper import Role
from app.schemas.reviewer import ReviewerCreate
from app.schemas.user import RegisterRequest
from app.services import notification_service as notify
from app.services.notification_service import NotificationIntent

logger = logging.getLogger("paperdesk.users")

INVALID_CREDENTIALS = "Invalid email or password"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ProvisionedAccount:
    user: Dict[str, Any]
    temporary_password: Optional[str] = None

    @property
    def created(self) -> bool:
        return self.temporary_password is not None


@dataclass
class ReviewerRegistration:
    reviewer: Dict[str, Any]
    intents: List[NotificationIntent] = field(default_factory=list)


def create_user(
    store: RecordStore,
    *,
    email: str,
    password: str,
    role: Role,
    first_name: str,
    last_name: str,
    middle_name: Optional[str] = None,
    affiliation: Optional[str] = None,
) -> Dict[str, Any]:
    """
    写入用户记录（密码只保存 bcrypt 哈希）。邮箱重复抛 Conflict。
    """
    try:
        row = store.create(
            "users",
            {
                "first_name": first_name,
                "middle_name": middle_name,
                "last_name": last_name,
                "affiliation": affiliation,
                "email": normalize_email(email),
                "password_hash": hash_password(password),
                "role": role,
                "created_at": _utc_now(),
            },
        )
    except DuplicateRecord as e:
        raise Conflict("User with this email already exists") from e
    return row


def split_display_name(name: str) -> tuple[str, str]:
    """作者条目只有一个 name 字段；拆成 first/last，单个词的姓名 last_name 用 "-" 占位。"""
    parts = str(name or "").strip().split()
    if not parts:
        return "Author", "-"
    if len(parts) == 1:
        return parts[0], "-"
    return " ".join(parts[:-1]), parts[-1]


def provision_author_account(
    store: RecordStore, *, email: str, name: str, affiliation: Optional[str] = None
) -> ProvisionedAccount:
    """
    为通讯作者开通 AUTHOR 账号；已存在同邮箱账号时直接复用（不改其角色与密码）。

    中文注释: 必须在调用方的事务内执行，与论文创建一起提交或回滚。
    """
    existing = store.find_one("users", {"email": normalize_email(email)})
    if existing is not None:
        return ProvisionedAccount(user=public_user(existing))

    temp = generate_temporary_password()
    first, last = split_display_name(name)
    user = create_user(
        store,
        email=email,
        password=temp,
        role=Role.AUTHOR,
        first_name=first,
        last_name=last,
        affiliation=affiliation,
    )
    logger.info(f"[Users] provisioned author account for {user['email']}")
    return ProvisionedAccount(user=public_user(user), temporary_password=temp)


class UserService:
    def __init__(self, store: RecordStore):
        self.store = store

    def register_author(self, payload: RegisterRequest) -> Dict[str, Any]:
        with self.store.transaction():
            user = create_user(
                self.store,
                email=payload.email,
                password=payload.password,
                role=Role.AUTHOR,
                first_name=payload.first_name,
                middle_name=payload.middle_name,
                last_name=payload.last_name,
                affiliation=payload.affiliation,
            )
        return public_user(user)

    def authenticate(
        self, email: str, password: str, *, ip_address: Optional[str] = None, user_agent: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        校验邮箱 + 密码；成功时追加一条 login_logs 记录。

        中文注释: 邮箱不存在与密码错误返回同一条消息，避免枚举账号。
        """
        user = self.store.find_one("users", {"email": normalize_email(email)})
        if user is None or not verify_password(password, user.get("password_hash")):
            raise Unauthenticated(INVALID_CREDENTIALS)

        self.store.create(
            "login_logs",
            {
                "user_id": user["id"],
                "ip_address": ip_address,
                "user_agent": user_agent,
                "login_at": _utc_now(),
            },
        )
        return public_user(user)

    def register_reviewer(self, payload: ReviewerCreate) -> ReviewerRegistration:
        temp = generate_temporary_password()
        with self.store.transaction():
            user = create_user(
                self.store,
                email=payload.email,
                password=temp,
                role=Role.REVIEWER,
                first_name=payload.first_name,
                middle_name=payload.middle_name,
                last_name=payload.last_name,
                affiliation=payload.affiliation,
            )
        reviewer = public_user(user)
        return ReviewerRegistration(
            reviewer=self._with_counts(reviewer),
            intents=[notify.account_created(reviewer, temp)],
        )

    def _with_counts(self, reviewer: Dict[str, Any]) -> Dict[str, Any]:
        rid = reviewer["id"]
        return {
            **reviewer,
            "assignment_count": self.store.count("reviewer_assignments", {"reviewer_id": rid}),
            "review_count": self.store.count("reviews", {"reviewer_id": rid}),
        }

    def list_reviewers(self) -> List[Dict[str, Any]]:
        rows = self.store.find_many("users", {"role": Role.REVIEWER}, order_by="created_at", desc=True)
        return [self._with_counts(public_user(r)) for r in rows]

    def get_reviewer(self, reviewer_id: str) -> Dict[str, Any]:
        row = self.store.find_one("users", {"id": str(reviewer_id), "role": Role.REVIEWER})
        if row is None:
            raise NotFound("Reviewer not found")
        return self._with_counts(public_user(row))
