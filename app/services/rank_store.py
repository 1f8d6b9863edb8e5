# app/services/rank_store.py
# asyncpg access for habit completions, user ranks and the Discord linkage.
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import asyncpg

from app.services.ranks import Tier


@dataclass
class RankRecord:
    id: str
    rank: Tier
    updated_at: datetime
    discord_id: Optional[str] = None
    discord_connected: bool = False


class CompletionStore:
    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def list_completed_dates(self, user_id: str) -> List[date]:
        rows = await self.pool.fetch(
            """
            SELECT completion_date FROM habit_completions
            WHERE user_id=$1 AND is_completed = TRUE
            ORDER BY completion_date
            """,
            user_id,
        )
        return [r["completion_date"] for r in rows]

    async def habit_belongs_to(self, user_id: str, habit_id: str) -> bool:
        found = await self.pool.fetchval(
            "SELECT 1 FROM habits WHERE id=$1 AND user_id=$2", habit_id, user_id
        )
        return bool(found)

    async def upsert_completion(
        self,
        user_id: str,
        habit_id: str,
        completion_date: date,
        is_completed: bool,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        row = await self.pool.fetchrow(
            """
            INSERT INTO habit_completions (user_id, habit_id, completion_date, is_completed, notes)
            VALUES ($1,$2,$3,$4,$5)
            ON CONFLICT (user_id, habit_id, completion_date)
            DO UPDATE SET is_completed = EXCLUDED.is_completed,
                          notes        = EXCLUDED.notes,
                          updated_at   = NOW()
            RETURNING id, user_id, habit_id, completion_date, is_completed, notes, updated_at
            """,
            user_id, habit_id, completion_date, is_completed, notes,
        )
        return dict(row)


class UserRankStore:
    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get_rank(self, user_id: str) -> Optional[Tier]:
        row = await self.pool.fetchrow("SELECT rank FROM users WHERE id=$1", user_id)
        if not row:
            return None
        return Tier.parse(row["rank"])

    async def set_rank(self, user_id: str, tier: Tier) -> Optional[RankRecord]:
        async with self.pool.acquire() as con:
            row = await con.fetchrow(
                "UPDATE users SET rank=$2, updated_at=NOW() WHERE id=$1 RETURNING id, rank, updated_at",
                user_id, Tier(tier).value,
            )
            if not row:
                return None
            prof = await con.fetchrow(
                "SELECT discord_id, discord_connected FROM discord_profiles WHERE user_id=$1",
                user_id,
            )
        return RankRecord(
            id=row["id"],
            rank=Tier.parse(row["rank"]),
            updated_at=row["updated_at"],
            discord_id=prof["discord_id"] if prof else None,
            discord_connected=bool(prof["discord_connected"]) if prof else False,
        )

    async def mark_discord_synced(self, user_id: str) -> None:
        await self.pool.execute(
            """
            UPDATE discord_profiles
               SET discord_role_synced = TRUE, last_discord_sync = NOW()
             WHERE user_id=$1
            """,
            user_id,
        )

    async def list_connected_users(self) -> List[Dict[str, Any]]:
        rows = await self.pool.fetch(
            """
            SELECT u.id, u.rank, p.discord_id
              FROM users u
              JOIN discord_profiles p ON p.user_id = u.id
             WHERE p.discord_id IS NOT NULL AND p.discord_connected = TRUE
            """
        )
        return [{"id": r["id"], "rank": r["rank"], "discord_id": r["discord_id"]} for r in rows]
