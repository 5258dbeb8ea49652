"""
Record store abstraction used by the services layer.

中文注释:
- Service 只依赖这里的最小接口（按 id / 条件查询、增删改、upsert、事务），不关心底层是 Postgres 还是内存。
- 过滤条件统一为“列 = 值”；值为 list/tuple/set 时表示 IN，值为 None 时表示 IS NULL。
- 唯一约束在两种实现里保持一致：users.email、(paper_id, reviewer_id) on reviewer_assignments/reviews。
"""

from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence
from uuid import uuid4

Row = Dict[str, Any]
Filters = Mapping[str, Any]

TABLES = (
    "users",
    "login_logs",
    "papers",
    "paper_authors",
    "reviewer_assignments",
    "reviews",
    "feedbacks",
)

UNIQUE_KEYS: Dict[str, List[tuple[str, ...]]] = {
    "users": [("email",)],
    "reviewer_assignments": [("paper_id", "reviewer_id")],
    "reviews": [("paper_id", "reviewer_id")],
}


class DuplicateRecord(Exception):
    """Raised when a write violates a unique key."""

    def __init__(self, table: str, columns: Sequence[str]):
        self.table = table
        self.columns = tuple(columns)
        super().__init__(f"duplicate key on {table}({', '.join(self.columns)})")


def plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [plain(v) for v in value]
    return value


def plain_row(values: Mapping[str, Any]) -> Row:
    return {k: plain(v) for k, v in values.items()}


class RecordStore(ABC):
    @abstractmethod
    def transaction(self):
        """Context manager; every write inside it commits or rolls back together."""

    @abstractmethod
    def find_many(
        self,
        table: str,
        filters: Optional[Filters] = None,
        *,
        order_by: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        ...

    @abstractmethod
    def create(self, table: str, values: Mapping[str, Any]) -> Row:
        ...

    @abstractmethod
    def create_many(
        self, table: str, rows: Iterable[Mapping[str, Any]], *, skip_duplicates: bool = False
    ) -> List[Row]:
        """Insert rows; returns only the rows actually inserted."""

    @abstractmethod
    def upsert(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        conflict: Sequence[str],
        update: Sequence[str],
    ) -> Row:
        ...

    @abstractmethod
    def update_where(self, table: str, filters: Filters, values: Mapping[str, Any]) -> List[Row]:
        ...

    @abstractmethod
    def delete_where(self, table: str, filters: Filters) -> int:
        ...

    def find_by_id(self, table: str, record_id: Any) -> Optional[Row]:
        if record_id is None:
            return None
        return self.find_one(table, {"id": str(record_id)})

    def find_one(self, table: str, filters: Filters) -> Optional[Row]:
        rows = self.find_many(table, filters, limit=1)
        return rows[0] if rows else None

    def count(self, table: str, filters: Optional[Filters] = None) -> int:
        return len(self.find_many(table, filters))

    def update(self, table: str, record_id: Any, values: Mapping[str, Any]) -> Optional[Row]:
        rows = self.update_where(table, {"id": str(record_id)}, values)
        return rows[0] if rows else None


def _matches(row: Row, filters: Optional[Filters]) -> bool:
    for key, expected in (filters or {}).items():
        actual = row.get(key)
        expected = plain(expected)
        if expected is None:
            if actual is not None:
                return False
        elif isinstance(expected, list):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


def _sort_key(column: str):
    def _key(row: Row):
        value = row.get(column)
        return (value is None, value if value is not None else 0)

    return _key


class InMemoryRecordStore(RecordStore):
    """
    进程内存储（本地演示 / 单元测试）

    中文注释:
    - transaction() 在最外层进入时做快照，异常时整体回滚，语义与 Postgres 事务一致。
    - 使用 RLock 串行化写事务；这里不追求并发性能。
    """

    def __init__(self):
        self._tables: Dict[str, List[Row]] = {name: [] for name in TABLES}
        self._lock = threading.RLock()
        self._depth = 0

    def _rows(self, table: str) -> List[Row]:
        if table not in self._tables:
            raise KeyError(f"unknown table: {table}")
        return self._tables[table]

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            snapshot = copy.deepcopy(self._tables) if self._depth == 0 else None
            self._depth += 1
            try:
                yield
            except BaseException:
                if snapshot is not None:
                    self._tables = snapshot
                raise
            finally:
                self._depth -= 1

    def _check_unique(self, table: str, candidate: Row, *, ignore: Optional[Row] = None) -> None:
        for columns in UNIQUE_KEYS.get(table, []):
            key = tuple(candidate.get(c) for c in columns)
            if any(v is None for v in key):
                continue
            for existing in self._rows(table):
                if existing is ignore:
                    continue
                if tuple(existing.get(c) for c in columns) == key:
                    raise DuplicateRecord(table, columns)

    def find_many(self, table, filters=None, *, order_by=None, desc=False, limit=None):
        with self._lock:
            rows = [dict(r) for r in self._rows(table) if _matches(r, filters)]
        if order_by:
            rows.sort(key=_sort_key(order_by), reverse=desc)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def create(self, table, values):
        with self.transaction():
            row = plain_row(values)
            row.setdefault("id", str(uuid4()))
            self._check_unique(table, row)
            self._rows(table).append(row)
            return dict(row)

    def create_many(self, table, rows, *, skip_duplicates=False):
        inserted: List[Row] = []
        with self.transaction():
            for values in rows:
                try:
                    inserted.append(self.create(table, values))
                except DuplicateRecord:
                    if not skip_duplicates:
                        raise
        return inserted

    def upsert(self, table, values, *, conflict, update):
        with self.transaction():
            row = plain_row(values)
            existing = None
            for candidate in self._rows(table):
                if all(candidate.get(c) == row.get(c) for c in conflict):
                    existing = candidate
                    break
            if existing is None:
                return self.create(table, row)
            for column in update:
                existing[column] = row.get(column)
            return dict(existing)

    def update_where(self, table, filters, values):
        changed: List[Row] = []
        with self.transaction():
            patch = plain_row(values)
            for row in self._rows(table):
                if not _matches(row, filters):
                    continue
                merged = {**row, **patch}
                self._check_unique(table, merged, ignore=row)
                row.update(patch)
                changed.append(dict(row))
        return changed

    def delete_where(self, table, filters):
        with self.transaction():
            rows = self._rows(table)
            keep = [r for r in rows if not _matches(r, filters)]
            removed = len(rows) - len(keep)
            self._tables[table] = keep
            return removed
