from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    ADMIN = "ADMIN"
    AUTHOR = "AUTHOR"
    REVIEWER = "REVIEWER"


class PaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PAID = "PAID"
    WAIVED = "WAIVED"


class Recommendation(str, Enum):
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"
    MINOR_REVISION = "MINOR_REVISION"
    MAJOR_REVISION = "MAJOR_REVISION"


class Salutation(str, Enum):
    MR = "Mr"
    MS = "Ms"
    MRS = "Mrs"
    DR = "Dr"
    PROF = "Prof"
    MX = "Mx"


class PaperStatus(str, Enum):
    """
    论文生命周期状态枚举。

    中文注释:
    - 所有状态写入都必须经过 apply_transition，禁止在 handler 中直接拼字符串。
    - ACCEPTED / REJECTED 对评审流程而言是终态（ACCEPTED 之后仍可上传 camera-ready、登记缴费）。
    """

    PENDING_APPROVAL = "PENDING_APPROVAL"
    PENDING_REVIEW = "PENDING_REVIEW"
    UNDER_REVIEW = "UNDER_REVIEW"
    REVISION_REQUIRED = "REVISION_REQUIRED"
    RESUBMITTED = "RESUBMITTED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class PaperAction(str, Enum):
    SUBMIT = "submit"
    VIEW = "view"
    APPROVE = "approve"
    ASSIGN_REVIEWERS = "assign_reviewers"
    SUBMIT_REVIEW = "submit_review"
    SET_FINAL_STATUS = "set_final_status"
    RESUBMIT = "resubmit"
    DELETE = "delete"
    SUBMIT_FEEDBACK = "submit_feedback"
    UPLOAD_CAMERA_READY = "upload_camera_ready"
    UPDATE_PAYMENT = "update_payment"


FINAL_DECISIONS: frozenset[PaperStatus] = frozenset(
    {PaperStatus.ACCEPTED, PaperStatus.REJECTED, PaperStatus.REVISION_REQUIRED}
)

_INTO_REVIEW = {
    PaperStatus.PENDING_REVIEW: PaperStatus.UNDER_REVIEW,
    PaperStatus.RESUBMITTED: PaperStatus.UNDER_REVIEW,
}

# 中文注释:
# - GUARDED: 当前状态必须在表内，否则返回 Conflict（不产生任何副作用）。
# - PASSIVE: 当前状态在表内则流转，不在表内则保持原状态（动作本身照常执行）。
GUARDED_TRANSITIONS: dict[PaperAction, dict[PaperStatus, PaperStatus]] = {
    PaperAction.APPROVE: {PaperStatus.PENDING_APPROVAL: PaperStatus.PENDING_REVIEW},
    PaperAction.RESUBMIT: {PaperStatus.REVISION_REQUIRED: PaperStatus.RESUBMITTED},
    PaperAction.UPDATE_PAYMENT: {PaperStatus.ACCEPTED: PaperStatus.ACCEPTED},
}

PASSIVE_TRANSITIONS: dict[PaperAction, dict[PaperStatus, PaperStatus]] = {
    PaperAction.ASSIGN_REVIEWERS: dict(_INTO_REVIEW),
    PaperAction.SUBMIT_REVIEW: dict(_INTO_REVIEW),
    PaperAction.SUBMIT_FEEDBACK: {},
    PaperAction.UPLOAD_CAMERA_READY: {},
    PaperAction.DELETE: {},
    PaperAction.VIEW: {},
}

_CONFLICT_MESSAGES: dict[PaperAction, str] = {
    PaperAction.APPROVE: "Paper is already {status} and cannot be approved.",
    PaperAction.RESUBMIT: "Paper cannot be resubmitted with status: {status}",
    PaperAction.UPDATE_PAYMENT: "Payment can only be tracked for ACCEPTED papers (current status: {status})",
    PaperAction.SUBMIT: "Paper already exists with status: {status}",
}


@dataclass(frozen=True)
class TransitionResult:
    action: PaperAction
    from_status: Optional[PaperStatus]
    to_status: Optional[PaperStatus]
    conflict: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.conflict is None

    @property
    def changed(self) -> bool:
        return self.ok and self.to_status != self.from_status


def normalize_status(value: str | PaperStatus | None) -> PaperStatus | None:
    if value is None:
        return None
    if isinstance(value, PaperStatus):
        return value
    v = str(value).strip().upper()
    if not v:
        return None
    try:
        return PaperStatus(v)
    except ValueError:
        return None


def apply_transition(
    current: PaperStatus | str | None,
    action: PaperAction,
    target: PaperStatus | str | None = None,
) -> TransitionResult:
    """
    唯一的状态流转入口（纯函数，不访问数据库）。

    - SUBMIT 只允许从“无状态”创建到 PENDING_APPROVAL。
    - SET_FINAL_STATUS 接受任意当前状态，target 必须属于 FINAL_DECISIONS。
    - 其余动作查 GUARDED_TRANSITIONS / PASSIVE_TRANSITIONS。

    返回 TransitionResult；非法流转以 conflict 表示，而不是抛异常。
    """
    cur = normalize_status(current)
    if current is not None and cur is None:
        raise ValueError(f"Unknown paper status: {current!r}")

    if action == PaperAction.SUBMIT:
        if cur is not None:
            return TransitionResult(action, cur, cur, _CONFLICT_MESSAGES[action].format(status=cur.value))
        return TransitionResult(action, None, PaperStatus.PENDING_APPROVAL)

    if cur is None:
        raise ValueError(f"Action {action.value} requires an existing paper status")

    if action == PaperAction.SET_FINAL_STATUS:
        decided = normalize_status(target)
        if decided not in FINAL_DECISIONS:
            raise ValueError(f"Invalid final status: {target!r}")
        return TransitionResult(action, cur, decided)

    if action in GUARDED_TRANSITIONS:
        moves = GUARDED_TRANSITIONS[action]
        if cur not in moves:
            return TransitionResult(action, cur, cur, _CONFLICT_MESSAGES[action].format(status=cur.value))
        return TransitionResult(action, cur, moves[cur])

    if action in PASSIVE_TRANSITIONS:
        return TransitionResult(action, cur, PASSIVE_TRANSITIONS[action].get(cur, cur))

    raise ValueError(f"Action {action.value} has no transition rule")
