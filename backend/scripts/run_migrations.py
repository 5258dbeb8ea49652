"""
Apply the SQL files under supabase/migrations to DATABASE_URL (or SUPABASE_DB_URL).

Usage:
    python backend/scripts/run_migrations.py [migrations_dir]
"""

import os
import sys
from pathlib import Path
from typing import Callable, Iterable, List, Optional

import psycopg2
from dotenv import load_dotenv

DEFAULT_MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "supabase" / "migrations"


def migration_files(directory: Path) -> List[Path]:
    # 中文注释: 文件名以时间戳开头，按名称排序即为执行顺序
    return sorted(p for p in Path(directory).glob("*.sql") if p.is_file())


def apply_migrations(dsn: str, files: Iterable[Path], *, connect: Optional[Callable] = None) -> List[str]:
    """
    逐个执行迁移文件；每个文件在独立事务内执行，失败即停止并抛出。
    """
    connect = connect or psycopg2.connect
    applied: List[str] = []
    conn = connect(dsn)
    try:
        for path in files:
            print(f"📄 Applying {path.name}...")
            with conn:
                with conn.cursor() as cur:
                    cur.execute(path.read_text(encoding="utf-8"))
            applied.append(path.name)
    finally:
        conn.close()
    return applied


def main(argv: List[str]) -> int:
    load_dotenv()
    dsn = (os.environ.get("DATABASE_URL") or os.environ.get("SUPABASE_DB_URL") or "").strip()
    if not dsn:
        print("❌ Error: Missing DATABASE_URL (or SUPABASE_DB_URL).")
        return 1

    directory = Path(argv[1]) if len(argv) > 1 else DEFAULT_MIGRATIONS_DIR
    files = migration_files(directory)
    if not files:
        print(f"⚠️ No migrations found in {directory}")
        return 0

    try:
        applied = apply_migrations(dsn, files)
    except Exception as e:
        print(f"❌ Migration failed: {e}")
        return 1
    print(f"✅ Applied {len(applied)} migration(s).")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
