from __future__ import annotations

from pydantic import BaseModel

from app.schemas.user import UserPublic, _NameFields


class ReviewerCreate(_NameFields):
    """管理员创建审稿人：密码由系统生成并邮件下发"""


class ReviewerSummary(UserPublic):
    assignment_count: int = 0
    review_count: int = 0


class ReviewerCreated(BaseModel):
    message: str = "Reviewer registered successfully. Credentials have been emailed."
    reviewer: ReviewerSummary
