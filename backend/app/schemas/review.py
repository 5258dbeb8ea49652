from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.paper import PaymentStatus, Recommendation

FinalStatus = Literal["ACCEPTED", "REJECTED", "REVISION_REQUIRED"]


class ReviewSubmission(BaseModel):
    comments: str = Field(min_length=1, max_length=20000)
    recommendation: Recommendation

    @field_validator("comments")
    @classmethod
    def validate_comments(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Comments are required")
        return trimmed


class ReviewResponse(BaseModel):
    id: str
    paper_id: str
    reviewer_id: Optional[str] = None
    comments: str
    recommendation: Recommendation
    reviewed_at: datetime

    model_config = ConfigDict(from_attributes=True, extra="ignore")


class ReviewAck(BaseModel):
    message: str = "Review submitted successfully"
    review: ReviewResponse


class AssignReviewersRequest(BaseModel):
    reviewer_ids: list[str] = Field(..., min_length=1, description="Reviewer user ids")

    @field_validator("reviewer_ids")
    @classmethod
    def dedupe_ids(cls, value: list[str]) -> list[str]:
        # 去重保持顺序
        out: list[str] = []
        seen: set[str] = set()
        for raw in value:
            rid = str(raw or "").strip()
            if rid and rid not in seen:
                seen.add(rid)
                out.append(rid)
        if not out:
            raise ValueError("Reviewer IDs must be a non-empty array")
        return out


class FinalStatusUpdate(BaseModel):
    status: FinalStatus


class PaymentUpdate(BaseModel):
    payment_status: PaymentStatus
