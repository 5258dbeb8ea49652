from typing import List

from fastapi import APIRouter, Depends

from app.api.v1.deps import Notifier, get_lifecycle_service, get_notifier, get_query_service
from app.core.roles import require_role
from app.models.paper import Role
from app.models.schemas import AssignmentAck, PaperAck, PaperDetail, PaperSummary
from app.schemas.feedback import FeedbackAck, FeedbackCreate
from app.schemas.review import AssignReviewersRequest, FinalStatusUpdate, PaymentUpdate
from app.services.paper_lifecycle_service import PaperLifecycleService
from app.services.paper_query_service import PaperQueryService

router = APIRouter(prefix="/admin/papers", tags=["Admin Papers"])

admin_only = require_role(Role.ADMIN)


@router.get("", response_model=List[PaperSummary])
async def list_papers(
    _admin: dict = Depends(admin_only),
    queries: PaperQueryService = Depends(get_query_service),
):
    """全部论文（最新在前），附带分配数与评审数"""
    return queries.list_all()


@router.get("/{paper_id}", response_model=PaperDetail)
async def get_paper(
    paper_id: str,
    admin: dict = Depends(admin_only),
    queries: PaperQueryService = Depends(get_query_service),
):
    return queries.get_detail(admin, paper_id)


@router.delete("/{paper_id}")
async def delete_paper(
    paper_id: str,
    admin: dict = Depends(admin_only),
    lifecycle: PaperLifecycleService = Depends(get_lifecycle_service),
    notifier: Notifier = Depends(get_notifier),
):
    """
    删除论文：反馈/评审/分配/作者条目与论文在同一事务内删除；存储文件尽力删除。
    """
    outcome = lifecycle.delete_paper(admin, paper_id)
    notifier(outcome.intents)
    return {"message": "Paper deleted successfully", "paper_id": paper_id}


@router.patch("/{paper_id}/approve", response_model=PaperAck)
async def approve_paper(
    paper_id: str,
    admin: dict = Depends(admin_only),
    lifecycle: PaperLifecycleService = Depends(get_lifecycle_service),
    notifier: Notifier = Depends(get_notifier),
):
    outcome = lifecycle.approve(admin, paper_id)
    notifier(outcome.intents)
    return {"message": "Paper approved and moved to review", "paper": outcome.paper}


@router.patch("/{paper_id}/status", response_model=PaperAck)
async def set_final_status(
    paper_id: str,
    payload: FinalStatusUpdate,
    admin: dict = Depends(admin_only),
    lifecycle: PaperLifecycleService = Depends(get_lifecycle_service),
    notifier: Notifier = Depends(get_notifier),
):
    outcome = lifecycle.set_final_status(admin, paper_id, payload.status)
    notifier(outcome.intents)
    return {"message": f"Paper status updated to {payload.status}", "paper": outcome.paper}


@router.post("/{paper_id}/assign", response_model=AssignmentAck)
async def assign_reviewers(
    paper_id: str,
    payload: AssignReviewersRequest,
    admin: dict = Depends(admin_only),
    lifecycle: PaperLifecycleService = Depends(get_lifecycle_service),
    notifier: Notifier = Depends(get_notifier),
):
    """
    分配审稿人；已分配的审稿人静默跳过，只通知新增的审稿人。
    """
    outcome = lifecycle.assign_reviewers(admin, paper_id, payload.reviewer_ids)
    notifier(outcome.intents)
    return {
        "message": "Reviewers assigned successfully",
        "paper": outcome.paper,
        "assigned": [str(a["reviewer_id"]) for a in outcome.new_assignments],
    }


@router.patch("/{paper_id}/payment", response_model=PaperAck)
async def update_payment(
    paper_id: str,
    payload: PaymentUpdate,
    admin: dict = Depends(admin_only),
    lifecycle: PaperLifecycleService = Depends(get_lifecycle_service),
):
    outcome = lifecycle.update_payment(admin, paper_id, payload.payment_status)
    return {"message": "Payment status updated", "paper": outcome.paper}


@router.post("/{paper_id}/feedback", response_model=FeedbackAck, status_code=201)
async def send_feedback(
    paper_id: str,
    payload: FeedbackCreate,
    admin: dict = Depends(admin_only),
    lifecycle: PaperLifecycleService = Depends(get_lifecycle_service),
    notifier: Notifier = Depends(get_notifier),
):
    outcome = lifecycle.submit_feedback(admin, paper_id, payload.message)
    notifier(outcome.intents)
    return {"feedback": outcome.feedback}
