import os
from typing import Any, Callable, Optional

from supabase import Client, create_client

from app.core.config import app_config
from app.lib.record_store import InMemoryRecordStore, RecordStore

url: str = app_config.supabase_url

# 中文注释:
# - Storage 写入需要 service_role；缺省时回退 SUPABASE_KEY（本地开发常见配置）。
service_role_key: str = app_config.supabase_key or os.environ.get("SUPABASE_KEY", "")


class _LazySupabaseClient:
    """
    延迟初始化 Supabase Client，避免在 import 时因为缺少环境变量导致整个模块导入失败。

    中文注释:
    - 单元测试会 patch `supabase_admin`，因此这里必须保证“可导入”。
    - 真实运行时，如果缺少 URL/KEY，在第一次访问 client 时抛出清晰错误即可。
    """

    def __init__(self, factory: Callable[[], Client], *, name: str):
        self._factory = factory
        self._name = name
        self._client: Optional[Client] = None

    def _get(self) -> Client:
        if self._client is None:
            self._client = self._factory()
        return self._client

    def __getattr__(self, item: str) -> Any:
        return getattr(self._get(), item)


def _require_supabase_url() -> str:
    if not url:
        raise RuntimeError("SUPABASE_URL is required")
    return url


def _create_supabase_admin() -> Client:
    if not service_role_key:
        raise RuntimeError("SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_KEY) is required")
    return create_client(_require_supabase_url(), service_role_key)


# === 管理端 Supabase 客户端（延迟初始化，仅用于 Storage） ===
supabase_admin: Client = _LazySupabaseClient(_create_supabase_admin, name="supabase_admin")  # type: ignore[assignment]


def _create_record_store() -> RecordStore:
    if app_config.record_store == "memory":
        if app_config.is_production:
            raise RuntimeError("RECORD_STORE=memory is not allowed in production")
        return InMemoryRecordStore()

    from app.lib.postgres_store import PostgresRecordStore

    return PostgresRecordStore(app_config.database_url)


_record_store: Optional[RecordStore] = None


def get_record_store() -> RecordStore:
    """
    进程级 RecordStore 单例（FastAPI 依赖入口，测试通过 dependency_overrides 替换）。
    """
    global _record_store
    if _record_store is None:
        _record_store = _create_record_store()
    return _record_store
