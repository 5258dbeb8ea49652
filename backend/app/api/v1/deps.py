from __future__ import annotations

import json
from typing import Any, List, Optional, Sequence

from fastapi import BackgroundTasks, Depends, UploadFile
from pydantic import ValidationError as PydanticValidationError

from app.core.errors import ValidationError
from app.lib.api_client import get_record_store
from app.lib.record_store import RecordStore
from app.models.schemas import PaperSubmit
from app.services.notification_service import (
    NotificationDispatcher,
    NotificationIntent,
    get_notification_dispatcher,
)
from app.services.paper_lifecycle_service import PaperLifecycleService
from app.services.paper_query_service import PaperQueryService
from app.services.storage_service import FileStorage, UploadedFile, get_file_storage
from app.services.user_service import UserService


def get_user_service(store: RecordStore = Depends(get_record_store)) -> UserService:
    return UserService(store)


def get_lifecycle_service(
    store: RecordStore = Depends(get_record_store),
    storage: FileStorage = Depends(get_file_storage),
) -> PaperLifecycleService:
    return PaperLifecycleService(store, storage)


def get_query_service(store: RecordStore = Depends(get_record_store)) -> PaperQueryService:
    return PaperQueryService(store)


class Notifier:
    """把通知意图挂到 BackgroundTasks 上（响应返回之后才执行）"""

    def __init__(self, background_tasks: BackgroundTasks, dispatcher: NotificationDispatcher):
        self._background_tasks = background_tasks
        self._dispatcher = dispatcher

    def __call__(self, intents: Sequence[NotificationIntent]) -> None:
        self._dispatcher.schedule(self._background_tasks, intents)


def get_notifier(
    background_tasks: BackgroundTasks,
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> Notifier:
    return Notifier(background_tasks, dispatcher)


async def read_upload(file: Optional[UploadFile]) -> Optional[UploadedFile]:
    if file is None or not file.filename:
        return None
    content = await file.read()
    return UploadedFile(
        filename=file.filename,
        content_type=file.content_type or "",
        content=content,
    )


def field_errors(exc: PydanticValidationError) -> ValidationError:
    details: List[dict] = []
    for err in exc.errors():
        details.append({"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg", "invalid")})
    return ValidationError(details)


def _parse_json_list(raw: Optional[str], field: str) -> Optional[List[Any]]:
    if raw is None or not raw.strip():
        return None
    try:
        value = json.loads(raw)
    except ValueError as e:
        raise ValidationError.for_field(field, f"{field} must be a JSON array") from e
    if not isinstance(value, list):
        raise ValidationError.for_field(field, f"{field} must be a JSON array")
    return value


def parse_submission(
    *,
    title: Optional[str],
    abstract: Optional[str],
    keywords: Optional[str],
    topic_area: Optional[str],
    authors: Optional[str],
) -> PaperSubmit:
    """
    解析 multipart 表单中的投稿字段。

    中文注释:
    - authors 以 JSON 字符串传入（数组，每项含 salutation/name/email/institute/is_corresponding）；
    - keywords 支持逗号分隔字符串或 JSON 数组字符串。
    """
    author_items = _parse_json_list(authors, "authors")
    if not author_items:
        raise ValidationError.for_field("authors", "At least one author is required")

    keyword_items: Any = keywords or ""
    if keywords and keywords.strip().startswith("["):
        keyword_items = _parse_json_list(keywords, "keywords") or []

    try:
        return PaperSubmit(
            title=title or "",
            abstract=abstract or "",
            keywords=keyword_items,
            topic_area=topic_area,
            authors=author_items,
        )
    except PydanticValidationError as e:
        raise field_errors(e) from e
