from __future__ import annotations

import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from app.core.config import StorageConfig
from app.core.errors import DependencyFailure, ValidationError
from app.lib import api_client

logger = logging.getLogger("paperdesk.storage")

ALLOWED_CONTENT_TYPES: dict[str, str] = {
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

# 浏览器/客户端无法识别类型时常见的兜底 MIME
_GENERIC_CONTENT_TYPES = {"", "application/octet-stream", "binary/octet-stream"}

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9\-_]")


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class SignedUrl:
    url: str
    expires_in: int


def file_extension(filename: str) -> str:
    name = str(filename or "")
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].strip().lower()


def validate_upload(upload: Optional[UploadedFile], *, config: StorageConfig, field: str = "file") -> str:
    """
    校验上传文件，返回规范化后的扩展名。

    中文注释:
    - 仅允许 PDF / DOC / DOCX；
    - 大小上限由 MAX_UPLOAD_MB 控制（默认 20MB）；
    - 扩展名与 MIME 需一致（MIME 为通用兜底值时只看扩展名）。
    """
    if upload is None or not upload.filename:
        raise ValidationError.for_field(field, "A paper file is required")
    if upload.size == 0:
        raise ValidationError.for_field(field, "Uploaded file is empty")
    if upload.size > config.max_upload_bytes:
        limit_mb = config.max_upload_bytes // (1024 * 1024)
        raise ValidationError.for_field(field, f"File exceeds the {limit_mb}MB limit")

    ext = file_extension(upload.filename)
    expected = ALLOWED_CONTENT_TYPES.get(ext)
    if expected is None:
        raise ValidationError.for_field(field, "Invalid file type. Only PDF, DOC, and DOCX are allowed.")
    content_type = str(upload.content_type or "").split(";")[0].strip().lower()
    if content_type not in _GENERIC_CONTENT_TYPES and content_type != expected:
        raise ValidationError.for_field(field, "Invalid file type. Only PDF, DOC, and DOCX are allowed.")
    return ext


def build_object_name(filename: str, ext: str, *, now_ms: Optional[int] = None) -> str:
    """原文件名去扩展名后做字符白名单替换，再追加毫秒时间戳。"""
    stem = str(filename or "").rsplit(".", 1)[0] if "." in str(filename or "") else str(filename or "")
    safe = _UNSAFE_NAME_CHARS.sub("_", stem) or "paper"
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{safe}-{stamp}.{ext}"


def _normalize_signed_url(resp: object) -> str | None:
    if not isinstance(resp, dict):
        return None
    return str(resp.get("signedUrl") or resp.get("signedURL") or "") or None


class FileStorage(ABC):
    @abstractmethod
    def store(self, upload: UploadedFile) -> str:
        """校验并保存文件，返回存储引用（object path）。"""

    @abstractmethod
    def delete(self, reference: Optional[str]) -> bool:
        """尽力删除；失败只记录日志，返回 False。"""

    @abstractmethod
    def signed_url(self, reference: str) -> SignedUrl:
        ...


class SupabaseFileStorage(FileStorage):
    """
    Supabase Storage 实现（service_role 客户端）。

    中文注释:
    - client 缺省在调用时读取 api_client.supabase_admin，单测可直接 patch 该属性。
    - bucket 不存在时做一次性兜底创建（私有桶，下载走 signed URL）。
    """

    def __init__(self, config: Optional[StorageConfig] = None, client: Any = None):
        self.config = config or StorageConfig.from_env()
        self._client = client
        self._bucket_checked = False

    @property
    def client(self) -> Any:
        return self._client if self._client is not None else api_client.supabase_admin

    def _ensure_bucket(self) -> None:
        if self._bucket_checked:
            return
        storage = getattr(self.client, "storage", None)
        if storage is None or not hasattr(storage, "get_bucket") or not hasattr(storage, "create_bucket"):
            return
        try:
            storage.get_bucket(self.config.bucket)
        except Exception:
            try:
                storage.create_bucket(self.config.bucket, options={"public": False})
            except Exception as e:
                text = str(e).lower()
                if not ("already" in text or "exists" in text or "duplicate" in text):
                    raise
        self._bucket_checked = True

    def store(self, upload: UploadedFile) -> str:
        ext = validate_upload(upload, config=self.config)
        path = f"{self.config.folder}/{build_object_name(upload.filename, ext)}"
        # storage3 期望 header value 为字符串；传 bool 会触发 httpx "Header value must be str or bytes"。
        opts = {"content-type": ALLOWED_CONTENT_TYPES[ext], "upsert": "false"}
        try:
            self._ensure_bucket()
            self.client.storage.from_(self.config.bucket).upload(path, upload.content, opts)
        except Exception as e:
            logger.error(f"[Storage] upload {path} failed: {e}")
            raise DependencyFailure("File upload failed") from e
        logger.info(f"[Storage] stored {path} ({upload.size} bytes)")
        return path

    def delete(self, reference: Optional[str]) -> bool:
        if not reference:
            return False
        try:
            self.client.storage.from_(self.config.bucket).remove([reference])
            return True
        except Exception as e:
            logger.warning(f"[Storage] delete {reference} failed: {e}")
            return False

    def signed_url(self, reference: str) -> SignedUrl:
        ttl = self.config.signed_url_ttl
        try:
            signed = self.client.storage.from_(self.config.bucket).create_signed_url(reference, ttl)
        except Exception as e:
            logger.error(f"[Storage] signed url for {reference} failed: {e}")
            raise DependencyFailure("Failed to create signed url") from e
        url = _normalize_signed_url(signed)
        if not url:
            raise DependencyFailure("Failed to create signed url")
        return SignedUrl(url=url, expires_in=ttl)


_file_storage: Optional[FileStorage] = None


def get_file_storage() -> FileStorage:
    """FastAPI 依赖入口；测试通过 dependency_overrides 替换。"""
    global _file_storage
    if _file_storage is None:
        _file_storage = SupabaseFileStorage()
    return _file_storage
