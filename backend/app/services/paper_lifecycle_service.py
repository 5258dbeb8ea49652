"""
Paper lifecycle service.

中文注释:
- 每个生命周期动作遵循同一流程：读取论文上下文 -> access_guard 鉴权 -> apply_transition 判定
  -> 在 store.transaction() 内原子落库 -> 返回结果与通知意图（由调用方在提交后派发）。
- 状态值只来自 apply_transition 的返回，任何 handler 都不直接写状态字符串。
- 文件上传在事务之外完成；事务失败时新上传的文件尽力删除，旧文件在提交后尽力删除。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from app.core.access_guard import PaperContext, load_authorized, normalize_email, require_action
from app.core.errors import Conflict, ValidationError
from app.lib.record_store import RecordStore
from app.models.paper import (
    PaperAction,
    PaperStatus,
    PaymentStatus,
    Role,
    TransitionResult,
    apply_transition,
)
from app.models.schemas import PaperSubmit, join_keywords
from app.schemas.review import ReviewSubmission
from app.services import notification_service as notify
from app.services.notification_service import NotificationIntent, Recipient
from app.services.storage_service import FileStorage, UploadedFile
from app.services.user_service import ProvisionedAccount, provision_author_account

logger = logging.getLogger("paperdesk.lifecycle")

# 删除论文时的子表删除顺序（先子后父）
_PAPER_CHILD_TABLES = ("feedbacks", "reviews", "reviewer_assignments", "paper_authors")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _display_name(user: Mapping[str, Any]) -> str:
    return " ".join(p for p in (user.get("first_name"), user.get("last_name")) if p) or str(user.get("email") or "")


@dataclass
class LifecycleOutcome:
    """生命周期动作的返回：最新论文记录 + 提交后再派发的通知意图"""

    paper: Optional[Dict[str, Any]]
    transition: Optional[TransitionResult] = None
    intents: List[NotificationIntent] = field(default_factory=list)
    review: Optional[Dict[str, Any]] = None
    feedback: Optional[Dict[str, Any]] = None
    new_assignments: List[Dict[str, Any]] = field(default_factory=list)
    provisioned: List[ProvisionedAccount] = field(default_factory=list)


class PaperLifecycleService:
    def __init__(self, store: RecordStore, storage: FileStorage):
        self.store = store
        self.storage = storage

    # === recipients ===

    def _admin_recipients(self) -> List[Recipient]:
        admins = self.store.find_many("users", {"role": Role.ADMIN})
        return [notify.user_recipient(u) for u in admins]

    @staticmethod
    def _corresponding_recipients(ctx: PaperContext) -> List[Recipient]:
        return [notify.author_recipient(a) for a in ctx.corresponding_authors if a.get("email")]

    def _reviewer_recipients(self, reviewer_ids: Iterable[str]) -> List[Recipient]:
        ids = list(reviewer_ids)
        if not ids:
            return []
        reviewers = self.store.find_many("users", {"id": ids})
        return [notify.user_recipient(u) for u in reviewers]

    # === helpers ===

    def _persist_transition(self, ctx: PaperContext, result: TransitionResult, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        patch: Dict[str, Any] = dict(extra or {})
        if result.changed:
            patch["status"] = result.to_status
        if not patch:
            return ctx.paper
        updated = self.store.update("papers", ctx.paper_id, patch)
        if result.changed:
            logger.info(
                f"[Lifecycle] paper {ctx.paper_id} {result.action.value}: "
                f"{result.from_status.value if result.from_status else None} -> {result.to_status.value}"
            )
        return updated or ctx.paper

    @staticmethod
    def _require_ok(result: TransitionResult) -> TransitionResult:
        if not result.ok:
            raise Conflict(result.conflict)
        return result

    def _discard(self, reference: Optional[str]) -> None:
        if reference and not self.storage.delete(reference):
            logger.warning(f"[Lifecycle] could not remove stored file {reference}")

    # === actions ===

    def submit(self, user: Mapping[str, Any], payload: PaperSubmit, upload: Optional[UploadedFile]) -> LifecycleOutcome:
        """
        作者提交论文：创建 PENDING_APPROVAL 论文与作者条目；
        为邮箱与提交者不同的通讯作者开通（或复用）AUTHOR 账号；通知全部管理员。
        """
        require_action(user, PaperAction.SUBMIT)
        result = self._require_ok(apply_transition(None, PaperAction.SUBMIT))
        file_ref = self.storage.store(upload)  # type: ignore[arg-type]

        submitter_email = normalize_email(user.get("email"))
        provisioned: List[ProvisionedAccount] = []
        try:
            with self.store.transaction():
                paper = self.store.create(
                    "papers",
                    {
                        "title": payload.title,
                        "abstract": payload.abstract,
                        "keywords": join_keywords(payload.keywords),
                        "topic_area": payload.topic_area,
                        "file_url": file_ref,
                        "camera_ready_url": None,
                        "status": result.to_status,
                        "payment_status": PaymentStatus.UNPAID,
                        "submitted_at": _utc_now(),
                        "author_id": user["id"],
                    },
                )
                self.store.create_many(
                    "paper_authors",
                    [
                        {
                            "paper_id": paper["id"],
                            "position": index,
                            "salutation": author.salutation,
                            "name": author.name,
                            "email": author.email,
                            "institute": author.institute,
                            "is_corresponding": author.is_corresponding,
                        }
                        for index, author in enumerate(payload.authors)
                    ],
                )
                for author in payload.authors:
                    email = normalize_email(author.email)
                    if not author.is_corresponding or not email or email == submitter_email:
                        continue
                    provisioned.append(
                        provision_author_account(
                            self.store, email=email, name=author.name, affiliation=author.institute
                        )
                    )
        except Exception:
            self._discard(file_ref)
            raise

        logger.info(f"[Lifecycle] paper {paper['id']} submitted by {user['id']}")
        intents = notify.paper_submitted(self._admin_recipients(), paper, _display_name(user))
        for account in provisioned:
            if account.created:
                intents.append(notify.account_created(account.user, account.temporary_password or "", paper=paper))
        return LifecycleOutcome(paper=paper, transition=result, intents=intents, provisioned=provisioned)

    def approve(self, user: Mapping[str, Any], paper_id: str) -> LifecycleOutcome:
        with self.store.transaction():
            ctx = load_authorized(self.store, paper_id, PaperAction.APPROVE, user)
            result = self._require_ok(apply_transition(ctx.paper["status"], PaperAction.APPROVE))
            paper = self._persist_transition(ctx, result)
        ctx.paper = paper
        return LifecycleOutcome(
            paper=paper,
            transition=result,
            intents=notify.paper_approved(self._corresponding_recipients(ctx), paper),
        )

    def assign_reviewers(self, user: Mapping[str, Any], paper_id: str, reviewer_ids: List[str]) -> LifecycleOutcome:
        """
        分配审稿人（重复分配静默去重）。

        - 只有 REVIEWER 角色的账号可被分配，否则整体 ValidationError，不产生任何写入；
        - PENDING_REVIEW / RESUBMITTED 时流转到 UNDER_REVIEW 并通知通讯作者；
        - 只通知本次新增的审稿人。
        """
        ids = [str(i).strip() for i in reviewer_ids if str(i or "").strip()]
        if not ids:
            raise ValidationError.for_field("reviewer_ids", "Reviewer IDs must be a non-empty array")

        with self.store.transaction():
            ctx = load_authorized(self.store, paper_id, PaperAction.ASSIGN_REVIEWERS, user)
            found = self.store.find_many("users", {"id": ids, "role": Role.REVIEWER})
            valid = {str(u["id"]) for u in found}
            invalid = [i for i in ids if i not in valid]
            if invalid:
                raise ValidationError.for_field("reviewer_ids", f"Not reviewer accounts: {', '.join(invalid)}")

            now = _utc_now()
            inserted = self.store.create_many(
                "reviewer_assignments",
                [{"paper_id": ctx.paper_id, "reviewer_id": rid, "assigned_at": now} for rid in ids],
                skip_duplicates=True,
            )
            result = apply_transition(ctx.paper["status"], PaperAction.ASSIGN_REVIEWERS)
            paper = self._persist_transition(ctx, result)

        intents: List[NotificationIntent] = []
        if result.changed:
            intents.extend(notify.paper_under_review(self._corresponding_recipients(ctx), paper))
        new_ids = [str(a["reviewer_id"]) for a in inserted]
        intents.extend(notify.reviewer_assigned(self._reviewer_recipients(new_ids), paper))
        return LifecycleOutcome(paper=paper, transition=result, intents=intents, new_assignments=inserted)

    def submit_review(self, user: Mapping[str, Any], paper_id: str, payload: ReviewSubmission) -> LifecycleOutcome:
        with self.store.transaction():
            ctx = load_authorized(self.store, paper_id, PaperAction.SUBMIT_REVIEW, user)
            review = self.store.upsert(
                "reviews",
                {
                    "paper_id": ctx.paper_id,
                    "reviewer_id": user["id"],
                    "comments": payload.comments,
                    "recommendation": payload.recommendation,
                    "reviewed_at": _utc_now(),
                },
                conflict=("paper_id", "reviewer_id"),
                update=("comments", "recommendation", "reviewed_at"),
            )
            result = apply_transition(ctx.paper["status"], PaperAction.SUBMIT_REVIEW)
            paper = self._persist_transition(ctx, result)

        return LifecycleOutcome(
            paper=paper,
            transition=result,
            review=review,
            intents=notify.review_submitted(self._corresponding_recipients(ctx), paper, review),
        )

    def set_final_status(self, user: Mapping[str, Any], paper_id: str, status: str | PaperStatus) -> LifecycleOutcome:
        with self.store.transaction():
            ctx = load_authorized(self.store, paper_id, PaperAction.SET_FINAL_STATUS, user)
            try:
                result = apply_transition(ctx.paper["status"], PaperAction.SET_FINAL_STATUS, status)
            except ValueError as e:
                raise ValidationError.for_field("status", str(e)) from e
            paper = self._persist_transition(ctx, result)

        return LifecycleOutcome(
            paper=paper,
            transition=result,
            intents=notify.final_decision(self._corresponding_recipients(ctx), paper),
        )

    def resubmit(self, user: Mapping[str, Any], paper_id: str, upload: Optional[UploadedFile]) -> LifecycleOutcome:
        """
        主作者重投（仅 REVISION_REQUIRED）。

        中文注释: 新文件先上传；任何前置条件失败都会在返回错误前删除新文件，论文 file_url 不变。
        """
        require_action(user, PaperAction.RESUBMIT)
        new_ref = self.storage.store(upload)  # type: ignore[arg-type]
        try:
            with self.store.transaction():
                ctx = load_authorized(self.store, paper_id, PaperAction.RESUBMIT, user)
                result = self._require_ok(apply_transition(ctx.paper["status"], PaperAction.RESUBMIT))
                old_ref = ctx.paper.get("file_url")
                paper = self._persist_transition(ctx, result, {"file_url": new_ref})
        except Exception:
            self._discard(new_ref)
            raise

        if old_ref and old_ref != new_ref:
            self._discard(old_ref)

        recipients = self._admin_recipients() + self._reviewer_recipients(sorted(ctx.reviewer_ids))
        return LifecycleOutcome(
            paper=paper,
            transition=result,
            intents=notify.paper_resubmitted(recipients, paper),
        )

    def delete_paper(self, user: Mapping[str, Any], paper_id: str) -> LifecycleOutcome:
        with self.store.transaction():
            ctx = load_authorized(self.store, paper_id, PaperAction.DELETE, user)
            result = apply_transition(ctx.paper["status"], PaperAction.DELETE)
            for table in _PAPER_CHILD_TABLES:
                self.store.delete_where(table, {"paper_id": ctx.paper_id})
            self.store.delete_where("papers", {"id": ctx.paper_id})

        logger.info(f"[Lifecycle] paper {ctx.paper_id} deleted by {user['id']}")
        for ref in (ctx.paper.get("file_url"), ctx.paper.get("camera_ready_url")):
            self._discard(ref)

        return LifecycleOutcome(
            paper=ctx.paper,
            transition=result,
            intents=notify.paper_deleted(self._corresponding_recipients(ctx), ctx.paper),
        )

    def submit_feedback(self, user: Mapping[str, Any], paper_id: str, message: str) -> LifecycleOutcome:
        """
        追加一条反馈（不改变状态）。审稿人/管理员的反馈会通知通讯作者（审稿人身份不暴露）。
        """
        with self.store.transaction():
            ctx = load_authorized(self.store, paper_id, PaperAction.SUBMIT_FEEDBACK, user)
            result = apply_transition(ctx.paper["status"], PaperAction.SUBMIT_FEEDBACK)
            feedback = self.store.create(
                "feedbacks",
                {
                    "paper_id": ctx.paper_id,
                    "sender_id": user["id"],
                    "message": message,
                    "sent_at": _utc_now(),
                },
            )

        role = str(user.get("role") or "")
        intents: List[NotificationIntent] = []
        if role == Role.REVIEWER.value:
            intents = notify.feedback_received(self._corresponding_recipients(ctx), ctx.paper, message, "a reviewer")
        elif role == Role.ADMIN.value:
            intents = notify.feedback_received(
                self._corresponding_recipients(ctx), ctx.paper, message, "the conference administrators"
            )
        return LifecycleOutcome(paper=ctx.paper, transition=result, feedback=feedback, intents=intents)

    def upload_camera_ready(self, user: Mapping[str, Any], paper_id: str, upload: Optional[UploadedFile]) -> LifecycleOutcome:
        require_action(user, PaperAction.UPLOAD_CAMERA_READY)
        new_ref = self.storage.store(upload)  # type: ignore[arg-type]
        try:
            with self.store.transaction():
                ctx = load_authorized(self.store, paper_id, PaperAction.UPLOAD_CAMERA_READY, user)
                result = apply_transition(ctx.paper["status"], PaperAction.UPLOAD_CAMERA_READY)
                old_ref = ctx.paper.get("camera_ready_url")
                paper = self._persist_transition(ctx, result, {"camera_ready_url": new_ref})
        except Exception:
            self._discard(new_ref)
            raise

        if old_ref and old_ref != new_ref:
            self._discard(old_ref)
        return LifecycleOutcome(paper=paper, transition=result)

    def update_payment(self, user: Mapping[str, Any], paper_id: str, payment_status: PaymentStatus) -> LifecycleOutcome:
        with self.store.transaction():
            ctx = load_authorized(self.store, paper_id, PaperAction.UPDATE_PAYMENT, user)
            result = self._require_ok(apply_transition(ctx.paper["status"], PaperAction.UPDATE_PAYMENT))
            paper = self._persist_transition(ctx, result, {"payment_status": payment_status})
        return LifecycleOutcome(paper=paper, transition=result)
