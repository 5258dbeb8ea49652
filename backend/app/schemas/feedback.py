from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FeedbackCreate(BaseModel):
    message: str = Field(..., min_length=1, max_length=10000, description="Message body")

    @field_validator("message")
    @classmethod
    def validate_message(cls, value: str) -> str:
        # 中文注释: 纯空白消息视为空
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Message cannot be empty")
        return trimmed


class FeedbackResponse(BaseModel):
    id: str
    paper_id: str
    sender_id: str
    message: str
    sent_at: datetime

    model_config = ConfigDict(from_attributes=True, extra="ignore")


class FeedbackAck(BaseModel):
    message: str = "Feedback sent"
    feedback: FeedbackResponse
