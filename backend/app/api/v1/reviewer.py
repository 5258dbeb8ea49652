from typing import List

from fastapi import APIRouter, Depends

from app.api.v1.deps import Notifier, get_lifecycle_service, get_notifier, get_query_service
from app.core.roles import require_role
from app.models.paper import Role
from app.models.schemas import PaperDetail, PaperSummary
from app.schemas.feedback import FeedbackAck, FeedbackCreate
from app.schemas.review import ReviewAck, ReviewSubmission
from app.services.paper_lifecycle_service import PaperLifecycleService
from app.services.paper_query_service import PaperQueryService

router = APIRouter(prefix="/reviewer/papers", tags=["Reviewer Papers"])

reviewer_only = require_role(Role.REVIEWER)


@router.get("", response_model=List[PaperSummary])
async def list_assigned_papers(
    reviewer: dict = Depends(reviewer_only),
    queries: PaperQueryService = Depends(get_query_service),
):
    """已分配给当前审稿人的论文，带 has_reviewed 标记"""
    return queries.list_for_reviewer(reviewer)


@router.get("/{paper_id}", response_model=PaperDetail)
async def get_assigned_paper(
    paper_id: str,
    reviewer: dict = Depends(reviewer_only),
    queries: PaperQueryService = Depends(get_query_service),
):
    return queries.get_detail(reviewer, paper_id)


@router.post("/{paper_id}/review", response_model=ReviewAck, status_code=201)
async def submit_review(
    paper_id: str,
    payload: ReviewSubmission,
    reviewer: dict = Depends(reviewer_only),
    lifecycle: PaperLifecycleService = Depends(get_lifecycle_service),
    notifier: Notifier = Depends(get_notifier),
):
    """
    提交评审；同一审稿人重复提交时原地覆盖（同一条记录）。
    """
    outcome = lifecycle.submit_review(reviewer, paper_id, payload)
    notifier(outcome.intents)
    return {"review": outcome.review}


@router.post("/{paper_id}/feedback", response_model=FeedbackAck, status_code=201)
async def send_feedback(
    paper_id: str,
    payload: FeedbackCreate,
    reviewer: dict = Depends(reviewer_only),
    lifecycle: PaperLifecycleService = Depends(get_lifecycle_service),
    notifier: Notifier = Depends(get_notifier),
):
    outcome = lifecycle.submit_feedback(reviewer, paper_id, payload.message)
    notifier(outcome.intents)
    return {"feedback": outcome.feedback}
