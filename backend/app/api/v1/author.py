import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from app.api.v1.deps import (
    Notifier,
    get_lifecycle_service,
    get_notifier,
    get_query_service,
    parse_submission,
    read_upload,
)
from app.core.roles import require_role
from app.models.paper import Role
from app.models.schemas import PaperAck, PaperDetail, PaperSummary
from app.schemas.feedback import FeedbackAck, FeedbackCreate
from app.services.paper_lifecycle_service import PaperLifecycleService
from app.services.paper_query_service import PaperQueryService

router = APIRouter(prefix="/author/papers", tags=["Author Papers"])

author_only = require_role(Role.AUTHOR)


@router.post("", response_model=PaperAck, status_code=201)
async def submit_paper(
    title: Optional[str] = Form(None),
    abstract: Optional[str] = Form(None),
    keywords: Optional[str] = Form(None),
    topic_area: Optional[str] = Form(None),
    authors: Optional[str] = Form(None, description="JSON array of author entries"),
    file: Optional[UploadFile] = File(None),
    author: dict = Depends(author_only),
    lifecycle: PaperLifecycleService = Depends(get_lifecycle_service),
    notifier: Notifier = Depends(get_notifier),
):
    """
    投稿（multipart/form-data）。

    中文注释:
    - 表单字段先全部校验，再上传文件；上传失败返回 502。
    - 通讯作者邮箱与提交者不同且尚无账号时自动开通 AUTHOR 账号并邮件下发临时密码。
    """
    payload = parse_submission(
        title=title,
        abstract=abstract,
        keywords=keywords,
        topic_area=topic_area,
        authors=authors,
    )
    upload = await read_upload(file)
    # 中文注释: 文件上传 + 数据库写入均为同步调用，放到线程池执行
    outcome = await asyncio.to_thread(lifecycle.submit, author, payload, upload)
    notifier(outcome.intents)
    return {"message": "Paper submitted successfully", "paper": outcome.paper}


@router.get("", response_model=List[PaperSummary])
async def list_my_papers(
    author: dict = Depends(author_only),
    queries: PaperQueryService = Depends(get_query_service),
):
    return queries.list_for_author(author)


@router.get("/{paper_id}", response_model=PaperDetail)
async def get_my_paper(
    paper_id: str,
    author: dict = Depends(author_only),
    queries: PaperQueryService = Depends(get_query_service),
):
    return queries.get_detail(author, paper_id)


@router.post("/{paper_id}/feedback", response_model=FeedbackAck, status_code=201)
async def send_feedback(
    paper_id: str,
    payload: FeedbackCreate,
    author: dict = Depends(author_only),
    lifecycle: PaperLifecycleService = Depends(get_lifecycle_service),
    notifier: Notifier = Depends(get_notifier),
):
    outcome = lifecycle.submit_feedback(author, paper_id, payload.message)
    notifier(outcome.intents)
    return {"feedback": outcome.feedback}


@router.post("/{paper_id}/resubmit", response_model=PaperAck)
async def resubmit_paper(
    paper_id: str,
    file: Optional[UploadFile] = File(None),
    author: dict = Depends(author_only),
    lifecycle: PaperLifecycleService = Depends(get_lifecycle_service),
    notifier: Notifier = Depends(get_notifier),
):
    """仅主作者、仅 REVISION_REQUIRED 状态可重投"""
    upload = await read_upload(file)
    outcome = await asyncio.to_thread(lifecycle.resubmit, author, paper_id, upload)
    notifier(outcome.intents)
    return {"message": "Paper resubmitted successfully", "paper": outcome.paper}


@router.post("/{paper_id}/camera-ready", response_model=PaperAck)
async def upload_camera_ready(
    paper_id: str,
    file: Optional[UploadFile] = File(None),
    author: dict = Depends(author_only),
    lifecycle: PaperLifecycleService = Depends(get_lifecycle_service),
):
    upload = await read_upload(file)
    outcome = await asyncio.to_thread(lifecycle.upload_camera_ready, author, paper_id, upload)
    return {"message": "Camera-ready version uploaded successfully", "paper": outcome.paper}
