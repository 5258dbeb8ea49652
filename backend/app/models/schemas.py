from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, EmailStr, Field, field_validator
from pydantic.config import ConfigDict

from app.models.paper import PaperStatus, PaymentStatus, Recommendation, Salutation

# === 核心业务实体模型 (Pydantic v2) ===


def split_keywords(value) -> List[str]:
    """
    关键词统一为字符串列表：
    - 接受 list 或逗号分隔字符串
    - 去空白、去空项、保持顺序去重
    """
    if value is None:
        return []
    if isinstance(value, str):
        raw_items = value.split(",")
    else:
        raw_items = [str(v) for v in value]
    out: List[str] = []
    for item in raw_items:
        kw = item.strip()
        if kw and kw not in out:
            out.append(kw)
    return out


def join_keywords(keywords: List[str]) -> str:
    return ", ".join(keywords)


class AuthorEntry(BaseModel):
    """论文作者条目（按提交顺序保存）"""
    salutation: Optional[Salutation] = None
    name: str = Field(..., min_length=1, max_length=200, description="作者姓名")
    email: Optional[EmailStr] = None
    institute: Optional[str] = Field(None, max_length=300)
    is_corresponding: bool = False

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("author name is required")
        return trimmed

    @field_validator("salutation", "email", "institute", mode="before")
    @classmethod
    def normalize_optional_strings(cls, value):
        # 中文注释: 前端未填写的可选字段可能是空字符串，统一视为 None
        if isinstance(value, str):
            trimmed = value.strip()
            return trimmed or None
        return value

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value):
        if value is None:
            return None
        return str(value).strip().lower()


class PaperSubmit(BaseModel):
    """作者提交论文（multipart 表单字段，文件单独上传）"""
    title: str = Field(..., min_length=1, max_length=500, description="论文标题")
    abstract: str = Field(..., min_length=1, max_length=10000, description="论文摘要")
    keywords: List[str] = Field(default_factory=list)
    topic_area: Optional[str] = Field(None, max_length=200)
    authors: List[AuthorEntry] = Field(..., min_length=1)

    @field_validator("title", "abstract")
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("field is required")
        return trimmed

    @field_validator("keywords", mode="before")
    @classmethod
    def normalize_keywords(cls, value):
        return split_keywords(value)

    @field_validator("topic_area", mode="before")
    @classmethod
    def normalize_topic(cls, value):
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("authors")
    @classmethod
    def require_corresponding_email(cls, value: List[AuthorEntry]) -> List[AuthorEntry]:
        for author in value:
            if author.is_corresponding and not author.email:
                raise ValueError("corresponding authors must have an email")
        return value


class Author(AuthorEntry):
    id: str
    paper_id: str
    position: int = 0

    model_config = ConfigDict(from_attributes=True, extra="ignore")


class Paper(BaseModel):
    """数据库中的完整论文模型"""
    id: str
    title: str
    abstract: str
    keywords: List[str] = Field(default_factory=list)
    topic_area: Optional[str] = None
    file_url: str
    camera_ready_url: Optional[str] = None
    status: PaperStatus
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    submitted_at: datetime
    author_id: str

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    @field_validator("keywords", mode="before")
    @classmethod
    def normalize_keywords(cls, value):
        return split_keywords(value)


class ReviewView(BaseModel):
    """论文详情里的评审意见；reviewer 对作者隐藏（盲审）"""
    id: str
    comments: str
    recommendation: Recommendation
    reviewed_at: datetime
    reviewer_id: Optional[str] = None
    reviewer_name: Optional[str] = None
    reviewer_email: Optional[str] = None


class FeedbackView(BaseModel):
    id: str
    sender_id: Optional[str] = None
    sender_name: Optional[str] = None
    sender_role: Optional[str] = None
    message: str
    sent_at: datetime


class AssignmentView(BaseModel):
    reviewer_id: str
    reviewer_name: Optional[str] = None
    reviewer_email: Optional[str] = None
    assigned_at: datetime
    has_reviewed: bool = False


class PaperSummary(Paper):
    """列表视图：按角色附带不同的统计字段"""
    assignment_count: Optional[int] = None
    review_count: Optional[int] = None
    has_reviewed: Optional[bool] = None
    primary_author_name: Optional[str] = None


class PaperDetail(Paper):
    authors: List[Author] = Field(default_factory=list)
    reviews: List[ReviewView] = Field(default_factory=list)
    feedbacks: List[FeedbackView] = Field(default_factory=list)
    assignments: Optional[List[AssignmentView]] = None
    is_primary_author: Optional[bool] = None


class PaperAck(BaseModel):
    message: str
    paper: Paper


class FileLink(BaseModel):
    url: str
    expires_in: int
    kind: str


class AssignmentAck(BaseModel):
    message: str = "Reviewers assigned successfully"
    paper: Paper
    assigned: List[str] = Field(default_factory=list, description="本次新增的审稿人 ID")
