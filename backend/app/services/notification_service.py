"""
Notification intents and their dispatcher.

中文注释:
- 业务 service 只“产出”通知意图（NotificationIntent），不直接发邮件；
- 路由在事务提交后把意图交给 NotificationDispatcher（通过 BackgroundTasks），
  发送失败只记录日志，既不影响也不回滚已完成的状态流转；
- 每个意图独立发送，至多一次，无重试、无队列。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from fastapi import BackgroundTasks

from app.core.mail import EmailService

logger = logging.getLogger("paperdesk.notifications")

PAPER_TEMPLATE = "paper_notification.html"
CREDENTIALS_TEMPLATE = "account_credentials.html"


@dataclass(frozen=True)
class Recipient:
    email: str
    name: Optional[str] = None


@dataclass(frozen=True)
class NotificationIntent:
    recipient: str
    subject: str
    template: str
    context: Dict[str, Any] = field(default_factory=dict)

    def render_context(self) -> Dict[str, Any]:
        return {"subject": self.subject, **self.context}


def unique_recipients(recipients: Iterable[Recipient]) -> List[Recipient]:
    """按邮箱（忽略大小写）去重，保持顺序；保证同一封通知每人只收到一次。"""
    out: List[Recipient] = []
    seen: set[str] = set()
    for r in recipients:
        email = str(r.email or "").strip().lower()
        if not email or email in seen:
            continue
        seen.add(email)
        out.append(Recipient(email=email, name=r.name))
    return out


def user_recipient(user: Mapping[str, Any]) -> Recipient:
    name = " ".join(p for p in (user.get("first_name"), user.get("last_name")) if p)
    return Recipient(email=str(user.get("email") or ""), name=name or None)


def author_recipient(author: Mapping[str, Any]) -> Recipient:
    return Recipient(email=str(author.get("email") or ""), name=author.get("name"))


def paper_intents(
    recipients: Iterable[Recipient],
    paper: Mapping[str, Any],
    *,
    subject: str,
    lines: Sequence[str],
    quoted: Optional[str] = None,
    include_status: bool = True,
) -> List[NotificationIntent]:
    intents: List[NotificationIntent] = []
    for r in unique_recipients(recipients):
        intents.append(
            NotificationIntent(
                recipient=r.email,
                subject=subject,
                template=PAPER_TEMPLATE,
                context={
                    "recipient_name": r.name,
                    "paper_id": paper.get("id"),
                    "paper_title": paper.get("title"),
                    "status": paper.get("status") if include_status else None,
                    "lines": list(lines),
                    "quoted": quoted,
                },
            )
        )
    return intents


# === 各流转的消息组装 ===

def paper_submitted(admins: Iterable[Recipient], paper: Mapping[str, Any], submitter_name: str) -> List[NotificationIntent]:
    return paper_intents(
        admins,
        paper,
        subject=f"New paper submitted: {paper.get('title')}",
        lines=[f"A new paper has been submitted by {submitter_name} and is awaiting approval."],
    )


def account_created(
    user: Mapping[str, Any],
    temporary_password: str,
    *,
    paper: Optional[Mapping[str, Any]] = None,
) -> NotificationIntent:
    r = user_recipient(user)
    return NotificationIntent(
        recipient=r.email,
        subject="Your conference account has been created",
        template=CREDENTIALS_TEMPLATE,
        context={
            "recipient_name": r.name,
            "role": user.get("role"),
            "email": r.email,
            "temporary_password": temporary_password,
            "paper_title": (paper or {}).get("title"),
        },
    )


def paper_approved(authors: Iterable[Recipient], paper: Mapping[str, Any]) -> List[NotificationIntent]:
    return paper_intents(
        authors,
        paper,
        subject=f"Paper approved for review: {paper.get('title')}",
        lines=["Your paper has been approved by the conference administrators and will now be sent for review."],
    )


def paper_under_review(authors: Iterable[Recipient], paper: Mapping[str, Any]) -> List[NotificationIntent]:
    return paper_intents(
        authors,
        paper,
        subject=f"Paper under review: {paper.get('title')}",
        lines=["Reviewers have been assigned and your paper is now under review."],
    )


def reviewer_assigned(reviewers: Iterable[Recipient], paper: Mapping[str, Any]) -> List[NotificationIntent]:
    return paper_intents(
        reviewers,
        paper,
        subject=f"New review assignment: {paper.get('title')}",
        lines=["You have been assigned to review the following paper. Please sign in to read it and submit your review."],
        include_status=False,
    )


def review_submitted(
    authors: Iterable[Recipient], paper: Mapping[str, Any], review: Mapping[str, Any]
) -> List[NotificationIntent]:
    recommendation = str(review.get("recommendation") or "").replace("_", " ").title()
    return paper_intents(
        authors,
        paper,
        subject=f"New review received: {paper.get('title')}",
        lines=[f"A reviewer has submitted a review of your paper. Recommendation: {recommendation}."],
        quoted=review.get("comments"),
    )


def final_decision(authors: Iterable[Recipient], paper: Mapping[str, Any]) -> List[NotificationIntent]:
    status = str(paper.get("status") or "")
    readable = status.replace("_", " ").lower()
    return paper_intents(
        authors,
        paper,
        subject=f"Decision on your paper: {paper.get('title')}",
        lines=[f"A decision has been recorded for your paper: {readable}."],
    )


def paper_resubmitted(recipients: Iterable[Recipient], paper: Mapping[str, Any]) -> List[NotificationIntent]:
    return paper_intents(
        recipients,
        paper,
        subject=f"Paper resubmitted: {paper.get('title')}",
        lines=["A revised version of this paper has been uploaded by its author."],
    )


def paper_deleted(authors: Iterable[Recipient], paper: Mapping[str, Any]) -> List[NotificationIntent]:
    return paper_intents(
        authors,
        paper,
        subject=f"Paper removed: {paper.get('title')}",
        lines=["Your paper has been removed from the conference system by an administrator."],
        include_status=False,
    )


def feedback_received(
    authors: Iterable[Recipient], paper: Mapping[str, Any], message: str, sender_label: str
) -> List[NotificationIntent]:
    return paper_intents(
        authors,
        paper,
        subject=f"New feedback on your paper: {paper.get('title')}",
        lines=[f"You have received new feedback from {sender_label}."],
        quoted=message,
        include_status=False,
    )


class NotificationDispatcher:
    """
    发送通知意图（同步，供 BackgroundTasks 在线程池中调用）。
    """

    def __init__(self, mailer: Optional[EmailService] = None):
        self._mailer = mailer

    @property
    def mailer(self) -> EmailService:
        if self._mailer is None:
            from app.core.mail import email_service

            self._mailer = email_service
        return self._mailer

    def dispatch(self, intents: Iterable[NotificationIntent]) -> int:
        sent = 0
        for intent in intents:
            try:
                ok = self.mailer.send_template_email(
                    to_email=intent.recipient,
                    subject=intent.subject,
                    template_name=intent.template,
                    context=intent.render_context(),
                )
            except Exception as e:
                logger.warning(f"[Notifications] delivery to {intent.recipient} raised: {e}", exc_info=True)
                continue
            if ok:
                sent += 1
            else:
                logger.warning(f"[Notifications] delivery to {intent.recipient} failed: {intent.subject!r}")
        return sent

    def schedule(self, background_tasks: BackgroundTasks, intents: Sequence[NotificationIntent]) -> None:
        if intents:
            background_tasks.add_task(self.dispatch, list(intents))


_dispatcher: Optional[NotificationDispatcher] = None


def get_notification_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher()
    return _dispatcher
