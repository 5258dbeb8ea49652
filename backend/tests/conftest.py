import itertools
import json
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# === 全局测试配置 ===
# 中文注释:
# 1. 必须在导入 app 之前固定环境：内存存储 + 固定 JWT 密钥 + 非 secure cookie（httpx 走 http）。
# 2. 数据库 / Storage / 邮件全部通过 dependency_overrides 注入测试替身，测试不访问任何外部服务。
os.environ["RECORD_STORE"] = "memory"
os.environ["APP_ENV"] = "test"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["COOKIE_SECURE"] = "0"
os.environ.pop("SENTRY_DSN", None)

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from main import app  # noqa: E402

from app.core.config import StorageConfig  # noqa: E402
from app.core.errors import DependencyFailure  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.lib.api_client import get_record_store  # noqa: E402
from app.lib.record_store import InMemoryRecordStore  # noqa: E402
from app.models.paper import Role  # noqa: E402
from app.services.notification_service import NotificationDispatcher, get_notification_dispatcher  # noqa: E402
from app.services.storage_service import (  # noqa: E402
    FileStorage,
    SignedUrl,
    UploadedFile,
    build_object_name,
    get_file_storage,
    validate_upload,
)
from app.services.user_service import create_user  # noqa: E402

API_PREFIX = "/api/v1"
DEFAULT_PASSWORD = "password123"


class RecordingFileStorage(FileStorage):
    """
    内存文件存储（测试用）：记录保存 / 删除过的引用。
    """

    def __init__(self, *, fail_uploads: bool = False):
        self.config = StorageConfig(
            bucket="papers",
            folder="conference_papers",
            max_upload_bytes=20 * 1024 * 1024,
            signed_url_ttl=600,
        )
        self.files: Dict[str, bytes] = {}
        self.deleted: List[str] = []
        self.fail_uploads = fail_uploads
        self._clock = itertools.count(1_700_000_000_000)

    def store(self, upload: UploadedFile) -> str:
        ext = validate_upload(upload, config=self.config)
        if self.fail_uploads:
            raise DependencyFailure("File upload failed")
        ref = f"{self.config.folder}/{build_object_name(upload.filename, ext, now_ms=next(self._clock))}"
        self.files[ref] = upload.content
        return ref

    def delete(self, reference: Optional[str]) -> bool:
        if not reference:
            return False
        self.deleted.append(reference)
        self.files.pop(reference, None)
        return True

    def signed_url(self, reference: str) -> SignedUrl:
        return SignedUrl(url=f"https://files.test/{reference}?token=signed", expires_in=self.config.signed_url_ttl)


class RecordingMailer:
    """代替 EmailService：只记录发送请求"""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.fail_for: set = set()

    def send_template_email(self, *, to_email: str, subject: str, template_name: str, context: Dict[str, Any], **_: Any) -> bool:
        if to_email in self.fail_for:
            raise RuntimeError(f"mailbox {to_email} unavailable")
        self.sent.append({"to": to_email, "subject": subject, "template": template_name, "context": context})
        return True

    def to(self, email: str) -> List[Dict[str, Any]]:
        return [m for m in self.sent if m["to"] == email]


def pdf_upload(name: str = "paper.pdf", content: bytes = b"%PDF-1.4 test paper") -> UploadedFile:
    return UploadedFile(filename=name, content_type="application/pdf", content=content)


def auth_headers(token: Optional[str] = None) -> Dict[str, str]:
    if not token:
        return {}
    return {"Authorization": f"Bearer {token}"}


def token_for(user: Dict[str, Any]) -> str:
    return create_access_token(user_id=user["id"], role=user["role"])


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def storage() -> RecordingFileStorage:
    return RecordingFileStorage()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def make_user(store):
    """
    直接写入用户记录并返回（含明文密码，便于登录测试）。
    """
    counter = itertools.count(1)

    def _make(role: Role = Role.AUTHOR, email: Optional[str] = None, password: str = DEFAULT_PASSWORD, **names) -> Dict[str, Any]:
        n = next(counter)
        user = create_user(
            store,
            email=email or f"{role.value.lower()}{n}@example.org",
            password=password,
            role=role,
            first_name=names.get("first_name", f"{role.value.title()}"),
            last_name=names.get("last_name", f"No{n}"),
        )
        return {k: v for k, v in user.items() if k != "password_hash"}

    return _make


@pytest_asyncio.fixture
async def client(store, storage, mailer) -> AsyncGenerator:
    """
    提供一个异步测试客户端（内存存储 + 记录型文件存储 / 邮件）
    """
    app.dependency_overrides[get_record_store] = lambda: store
    app.dependency_overrides[get_file_storage] = lambda: storage
    app.dependency_overrides[get_notification_dispatcher] = lambda: NotificationDispatcher(mailer)
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def expired_token():
    """
    过期的会话令牌
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": "00000000-0000-0000-0000-000000000000",
        "role": "AUTHOR",
        "exp": now - timedelta(hours=1),
        "iat": now - timedelta(hours=2),
    }
    return jwt.encode(payload, os.environ["JWT_SECRET"], algorithm="HS256")


@pytest.fixture
def invalid_token():
    return "invalid.jwt.token"


def paper_form(**overrides) -> Dict[str, str]:
    """
    投稿表单字段（authors 为 JSON 字符串）
    """
    authors = overrides.pop(
        "authors",
        [
            {"salutation": "Dr", "name": "Ada Lovelace", "email": "author1@example.org", "institute": "Analytical Engines", "is_corresponding": True},
            {"name": "Charles Babbage", "email": "charles@example.org", "institute": "Cambridge", "is_corresponding": True},
        ],
    )
    form = {
        "title": "Graph Pruning at Scale",
        "abstract": "We prune very large graphs.",
        "keywords": "graphs, pruning",
        "topic_area": "Systems",
        "authors": json.dumps(authors),
    }
    form.update(overrides)
    return form


def pdf_file(name: str = "paper.pdf", content: bytes = b"%PDF-1.4 test paper", content_type: str = "application/pdf"):
    return {"file": (name, content, content_type)}


async def submit_paper(client: AsyncClient, token: str, **overrides) -> Dict[str, Any]:
    response = await client.post(
        f"{API_PREFIX}/author/papers",
        data=paper_form(**overrides),
        files=pdf_file(),
        headers=auth_headers(token),
    )
    assert response.status_code == 201, response.text
    return response.json()["paper"]
