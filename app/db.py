# app/db.py
import os
import asyncpg
from fastapi import HTTPException, Request

_POOL = None

async def __init_conn(conn: asyncpg.Connection):
    # Ensure the 'public' schema is visible for unqualified table names
    await conn.execute("SET search_path TO public")

def _dsn() -> str:
    dsn = os.getenv("DATABASE_URL")
    if not dsn:
        raise RuntimeError("No DATABASE_URL set")
    return dsn

async def get_pool() -> asyncpg.Pool:
    global _POOL
    if _POOL is None:
        _POOL = await asyncpg.create_pool(
            dsn=_dsn(),
            min_size=int(os.getenv("POOL_MIN", 1)),
            max_size=int(os.getenv("POOL_MAX", 10)),
            init=__init_conn,
        )
    return _POOL

async def close_pool() -> None:
    global _POOL
    if _POOL is not None:
        await _POOL.close()
        _POOL = None

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
      id TEXT PRIMARY KEY,
      name TEXT,
      rank TEXT NOT NULL DEFAULT 'NEW',
      subscription_plan TEXT NOT NULL DEFAULT 'FREE',
      is_leaderboard_public BOOLEAN NOT NULL DEFAULT FALSE,
      created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )""",
    """
    CREATE TABLE IF NOT EXISTS habits (
      id TEXT PRIMARY KEY DEFAULT md5(random()::text || clock_timestamp()::text),
      user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
      title TEXT NOT NULL,
      is_active BOOLEAN NOT NULL DEFAULT TRUE,
      created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )""",
    "CREATE INDEX IF NOT EXISTS idx_habits_user ON habits(user_id)",
    """
    CREATE TABLE IF NOT EXISTS habit_completions (
      id BIGSERIAL PRIMARY KEY,
      user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
      habit_id TEXT NOT NULL REFERENCES habits(id) ON DELETE CASCADE,
      completion_date DATE NOT NULL,
      is_completed BOOLEAN NOT NULL DEFAULT TRUE,
      notes TEXT,
      created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )""",
    """
    CREATE UNIQUE INDEX IF NOT EXISTS habit_completions_key
    ON habit_completions (user_id, habit_id, completion_date)
    """,
    "CREATE INDEX IF NOT EXISTS idx_completions_user_done ON habit_completions(user_id, is_completed)",
    """
    CREATE TABLE IF NOT EXISTS discord_profiles (
      user_id TEXT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
      discord_id TEXT,
      discord_username TEXT,
      discord_connected BOOLEAN NOT NULL DEFAULT FALSE,
      discord_role_synced BOOLEAN NOT NULL DEFAULT FALSE,
      last_discord_sync TIMESTAMPTZ
    )""",
    """
    CREATE TABLE IF NOT EXISTS subscription_plans (
      name TEXT PRIMARY KEY,
      display_name TEXT NOT NULL,
      price INTEGER NOT NULL DEFAULT 0,
      currency VARCHAR(3) NOT NULL DEFAULT 'EUR',
      max_habits INTEGER NOT NULL,
      max_trading_entries INTEGER NOT NULL,
      max_annual_goals INTEGER NOT NULL,
      max_quarterly_goals INTEGER NOT NULL,
      max_monthly_goals INTEGER NOT NULL,
      has_discord_integration BOOLEAN NOT NULL DEFAULT FALSE,
      has_priority_support BOOLEAN NOT NULL DEFAULT FALSE,
      has_early_access BOOLEAN NOT NULL DEFAULT FALSE,
      has_monthly_challenges BOOLEAN NOT NULL DEFAULT FALSE,
      has_premium_discord BOOLEAN NOT NULL DEFAULT FALSE
    )""",
    """
    CREATE TABLE IF NOT EXISTS monthly_usage (
      user_id TEXT NOT NULL,
      month CHAR(7) NOT NULL,
      trading_entries_count INTEGER NOT NULL DEFAULT 0,
      habits_created_count INTEGER NOT NULL DEFAULT 0,
      goals_created_count INTEGER NOT NULL DEFAULT 0,
      PRIMARY KEY (user_id, month)
    )""",
    """
    CREATE TABLE IF NOT EXISTS trades (
      id BIGSERIAL PRIMARY KEY,
      user_id TEXT NOT NULL,
      created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )""",
    "CREATE INDEX IF NOT EXISTS idx_trades_user_created ON trades(user_id, created_at)",
    """
    CREATE TABLE IF NOT EXISTS goals (
      id BIGSERIAL PRIMARY KEY,
      user_id TEXT NOT NULL,
      type TEXT NOT NULL,
      title TEXT NOT NULL,
      created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )""",
]

async def ensure_schema(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        for ddl in SCHEMA:
            await conn.execute(ddl)

# FastAPI dependency (pool created in main.lifespan)
def get_app_pool(request: Request) -> asyncpg.Pool:
    pool = getattr(request.app.state, "pool", None)
    if pool is None:
        raise HTTPException(status_code=500, detail="Database pool not initialized")
    return pool
