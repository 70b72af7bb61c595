"""
Forward-only schema fixes for databases created by older builds.

``create_all`` only adds missing tables, so column additions and data
backfills on existing tables go here. Each step runs once and is recorded
in ``schema_migrations``.
"""
import logging
from datetime import datetime

from sqlalchemy import text

logger = logging.getLogger("tavoli.migrations")


async def ensure_migrations_table(conn):
    await conn.execute(text(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            name TEXT PRIMARY KEY,
            applied_at TEXT NOT NULL
        )
        """
    ))


async def applied_migrations(conn) -> set[str]:
    result = await conn.execute(text("SELECT name FROM schema_migrations"))
    return {row[0] for row in result}


async def column_exists(conn, table: str, column: str) -> bool:
    result = await conn.execute(text(f"PRAGMA table_info({table})"))
    return any(row.get("name") == column for row in result.mappings())


async def add_created_by_to_tables(conn):
    if await column_exists(conn, "tables", "created_by"):
        return
    await conn.execute(text("ALTER TABLE tables ADD COLUMN created_by VARCHAR"))


async def backfill_last_balance_change(conn):
    # 排行榜并列时按该时间排序，旧数据用创建时间补齐
    await conn.execute(text(
        "UPDATE tables SET last_balance_change_at = created_at WHERE last_balance_change_at IS NULL"
    ))


async def normalize_qr_tokens(conn):
    # 旧版本按原样保存前缀，查询时统一转大写
    await conn.execute(text(
        "UPDATE tables SET qr_token = UPPER(TRIM(qr_token)) WHERE qr_token != UPPER(TRIM(qr_token))"
    ))


MIGRATIONS = [
    ("202601_add_created_by_to_tables", add_created_by_to_tables),
    ("202601_backfill_last_balance_change", backfill_last_balance_change),
    ("202602_normalize_qr_tokens", normalize_qr_tokens),
]


async def run_migrations(conn):
    await ensure_migrations_table(conn)
    done = await applied_migrations(conn)
    for name, handler in MIGRATIONS:
        if name in done:
            continue
        await handler(conn)
        await conn.execute(
            text("INSERT INTO schema_migrations(name, applied_at) VALUES (:name, :applied_at)"),
            {"name": name, "applied_at": datetime.utcnow().isoformat()},
        )
        logger.info("migration applied name=%s", name)
