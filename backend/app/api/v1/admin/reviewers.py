import asyncio
from typing import List

from fastapi import APIRouter, Depends

from app.api.v1.deps import Notifier, get_notifier, get_user_service
from app.core.roles import require_role
from app.models.paper import Role
from app.schemas.reviewer import ReviewerCreate, ReviewerCreated, ReviewerSummary
from app.services.user_service import UserService

router = APIRouter(prefix="/admin/reviewers", tags=["Admin Reviewers"])

admin_only = require_role(Role.ADMIN)


@router.post("", response_model=ReviewerCreated, status_code=201)
async def register_reviewer(
    payload: ReviewerCreate,
    _admin: dict = Depends(admin_only),
    users: UserService = Depends(get_user_service),
    notifier: Notifier = Depends(get_notifier),
):
    """
    管理员创建审稿人账号：系统生成临时密码，通过邮件下发。
    """
    registration = await asyncio.to_thread(users.register_reviewer, payload)
    notifier(registration.intents)
    return {"reviewer": registration.reviewer}


@router.get("", response_model=List[ReviewerSummary])
async def list_reviewers(
    _admin: dict = Depends(admin_only),
    users: UserService = Depends(get_user_service),
):
    return users.list_reviewers()


@router.get("/{reviewer_id}", response_model=ReviewerSummary)
async def get_reviewer(
    reviewer_id: str,
    _admin: dict = Depends(admin_only),
    users: UserService = Depends(get_user_service),
):
    return users.get_reviewer(reviewer_id)
