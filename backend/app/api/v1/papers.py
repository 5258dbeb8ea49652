from typing import Literal

from fastapi import APIRouter, Depends, Query

from app.api.v1.deps import get_query_service
from app.core.auth_utils import get_current_user
from app.models.schemas import FileLink
from app.services.paper_query_service import PaperQueryService
from app.services.storage_service import FileStorage, get_file_storage

router = APIRouter(prefix="/papers", tags=["Paper Files"])


@router.get("/{paper_id}/file", response_model=FileLink)
async def get_paper_file(
    paper_id: str,
    kind: Literal["manuscript", "camera_ready"] = Query("manuscript"),
    current_user: dict = Depends(get_current_user),
    queries: PaperQueryService = Depends(get_query_service),
    storage: FileStorage = Depends(get_file_storage),
):
    """
    生成稿件 / camera-ready 文件的短时效 signed URL（任意对该论文可见的角色）。
    """
    reference = queries.file_reference(current_user, paper_id, kind)
    signed = storage.signed_url(reference)
    return {"url": signed.url, "expires_in": signed.expires_in, "kind": kind}
