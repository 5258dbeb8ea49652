from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Iterator, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

import psycopg2
import psycopg2.errors
from psycopg2 import sql
from psycopg2.extras import RealDictCursor

from app.lib.record_store import DuplicateRecord, Filters, RecordStore, Row, UNIQUE_KEYS, plain, plain_row


def _where(filters: Optional[Filters]) -> Tuple[sql.Composable, List[Any]]:
    if not filters:
        return sql.SQL(""), []
    parts: List[sql.Composable] = []
    params: List[Any] = []
    for column, value in filters.items():
        ident = sql.Identifier(column)
        value = plain(value)
        if value is None:
            parts.append(sql.SQL("{} IS NULL").format(ident))
        elif isinstance(value, list):
            parts.append(sql.SQL("{} = ANY(%s)").format(ident))
            params.append(value)
        else:
            parts.append(sql.SQL("{} = %s").format(ident))
            params.append(value)
    return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(parts), params


def _duplicate_from(table: str, exc: Exception) -> DuplicateRecord:
    # 中文注释: 从约束名里推断冲突列，推断不出时回退到该表的第一个唯一键
    text = str(exc)
    for columns in UNIQUE_KEYS.get(table, []):
        if all(c in text for c in columns):
            return DuplicateRecord(table, columns)
    keys = UNIQUE_KEYS.get(table) or [("id",)]
    return DuplicateRecord(table, keys[0])


class PostgresRecordStore(RecordStore):
    """
    psycopg2 实现

    中文注释:
    - Supabase PostgREST 不支持跨表事务，因此业务写入直连 Postgres（DATABASE_URL / SUPABASE_DB_URL）。
    - 每个最外层 transaction() 独占一个连接，`with conn:` 负责 commit / rollback；
      嵌套的 transaction() 复用外层连接（同线程）。
    - 不在事务内的单条操作会自动包一层短事务。
    """

    def __init__(self, dsn: str, *, connect=None):
        if not dsn:
            raise RuntimeError("DATABASE_URL (or SUPABASE_DB_URL) is required for the postgres record store")
        self._dsn = dsn
        self._connect = connect or psycopg2.connect
        self._local = threading.local()

    def _current(self):
        return getattr(self._local, "conn", None)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._current() is not None:
            yield
            return
        conn = self._connect(self._dsn, cursor_factory=RealDictCursor)
        self._local.conn = conn
        try:
            with conn:
                yield
        finally:
            self._local.conn = None
            conn.close()

    @contextmanager
    def _cursor(self, table: str):
        with self.transaction():
            try:
                with self._current().cursor() as cur:
                    yield cur
            except psycopg2.errors.UniqueViolation as exc:
                raise _duplicate_from(table, exc) from exc

    def find_many(self, table, filters=None, *, order_by=None, desc=False, limit=None):
        where, params = _where(filters)
        query = sql.SQL("SELECT * FROM {}").format(sql.Identifier(table)) + where
        if order_by:
            direction = sql.SQL(" DESC") if desc else sql.SQL(" ASC")
            query += sql.SQL(" ORDER BY {}").format(sql.Identifier(order_by)) + direction
        if limit is not None:
            query += sql.SQL(" LIMIT %s")
            params.append(int(limit))
        with self._cursor(table) as cur:
            cur.execute(query, params)
            return [dict(r) for r in cur.fetchall()]

    def count(self, table, filters=None):
        where, params = _where(filters)
        query = sql.SQL("SELECT COUNT(*) AS n FROM {}").format(sql.Identifier(table)) + where
        with self._cursor(table) as cur:
            cur.execute(query, params)
            row = cur.fetchone() or {}
            return int(row.get("n") or 0)

    def _insert(self, cur, table: str, values: Mapping[str, Any], on_conflict: sql.Composable) -> Optional[Row]:
        row = plain_row(values)
        row.setdefault("id", str(uuid4()))
        columns = list(row.keys())
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
            sql.Identifier(table),
            sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            sql.SQL(", ").join(sql.Placeholder() for _ in columns),
        )
        query += on_conflict + sql.SQL(" RETURNING *")
        cur.execute(query, [row[c] for c in columns])
        result = cur.fetchone()
        return dict(result) if result else None

    def create(self, table, values):
        with self._cursor(table) as cur:
            return self._insert(cur, table, values, sql.SQL(""))

    def create_many(self, table, rows, *, skip_duplicates=False):
        suffix = sql.SQL(" ON CONFLICT DO NOTHING") if skip_duplicates else sql.SQL("")
        inserted: List[Row] = []
        with self._cursor(table) as cur:
            for values in rows:
                created = self._insert(cur, table, values, suffix)
                if created is not None:
                    inserted.append(created)
        return inserted

    def upsert(self, table, values, *, conflict: Sequence[str], update: Sequence[str]):
        on_conflict = sql.SQL(" ON CONFLICT ({}) DO UPDATE SET {}").format(
            sql.SQL(", ").join(sql.Identifier(c) for c in conflict),
            sql.SQL(", ").join(
                sql.SQL("{} = EXCLUDED.{}").format(sql.Identifier(c), sql.Identifier(c)) for c in update
            ),
        )
        with self._cursor(table) as cur:
            return self._insert(cur, table, values, on_conflict)

    def update_where(self, table, filters, values):
        patch = plain_row(values)
        if not patch:
            return self.find_many(table, filters)
        columns = list(patch.keys())
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(c)) for c in columns
        )
        where, params = _where(filters)
        query = (
            sql.SQL("UPDATE {} SET ").format(sql.Identifier(table))
            + assignments
            + where
            + sql.SQL(" RETURNING *")
        )
        with self._cursor(table) as cur:
            cur.execute(query, [patch[c] for c in columns] + params)
            return [dict(r) for r in cur.fetchall()]

    def delete_where(self, table, filters):
        where, params = _where(filters)
        query = sql.SQL("DELETE FROM {}").format(sql.Identifier(table)) + where
        with self._cursor(table) as cur:
            cur.execute(query, params)
            return cur.rowcount
