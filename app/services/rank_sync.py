# app/services/rank_sync.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from app.errors import InternalError, NotFoundError
from app.services.ranks import Tier, streak_to_rank
from app.services.streaks import Clock, get_user_streak
from app.utils.timebox import today_local

log = logging.getLogger("rank_sync")


@dataclass
class RankUpdate:
    id: str
    rank: Tier
    updated_at: datetime
    previous_rank: Tier
    current_streak: int
    total_active_days: int
    discord_id: Optional[str] = None
    discord_connected: bool = False

    @property
    def changed(self) -> bool:
        return self.rank != self.previous_rank

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "rank": self.rank.value,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "previousRank": self.previous_rank.value,
            "currentStreak": self.current_streak,
            "totalActiveDays": self.total_active_days,
            "discordId": self.discord_id,
            "discordConnected": self.discord_connected,
        }


async def update_user_rank(
    user_id: str,
    *,
    completions,
    users,
    notifier,
    clock: Clock = today_local,
) -> RankUpdate:
    """
    Recompute the user's streak, persist the matching tier and, when the
    tier moved, push it to Discord.

    Read/write failures abort the update. The Discord push is best effort:
    its errors are logged and never reach the caller.
    """
    try:
        previous = await users.get_rank(user_id)
        if previous is None:
            raise NotFoundError("User not found", user_id=user_id)

        stats = await get_user_streak(completions, user_id, clock)
        new_rank = streak_to_rank(stats.current_streak)

        record = await users.set_rank(user_id, new_rank)
        if record is None:
            raise NotFoundError("User not found after update", user_id=user_id)
    except NotFoundError:
        raise
    except Exception as e:
        log.exception("rank update failed for %s", user_id)
        raise InternalError(f"rank update failed for {user_id}") from e

    result = RankUpdate(
        id=record.id,
        rank=record.rank,
        updated_at=record.updated_at,
        previous_rank=previous,
        current_streak=stats.current_streak,
        total_active_days=stats.total_active_days,
        discord_id=record.discord_id,
        discord_connected=record.discord_connected,
    )

    if result.changed and result.discord_connected and result.discord_id:
        log.info("Rank %s -> %s for %s, syncing Discord %s",
                 previous.value, new_rank.value, user_id, result.discord_id)
        await _push_rank(users, notifier, user_id, result.discord_id, new_rank)
    else:
        log.info("Rank for %s unchanged or Discord not linked (%s)", user_id, new_rank.value)

    return result


async def _push_rank(users, notifier, user_id: str, discord_id: str, tier: Tier) -> bool:
    try:
        await notifier.notify_rank_change(discord_id, tier)
        await users.mark_discord_synced(user_id)
        return True
    except Exception as e:
        log.error("Discord rank sync failed for %s (%s): %s", user_id, discord_id, e)
        return False


async def sync_all_connected_users(users, notifier) -> Dict[str, int]:
    """Re-send every connected user's stored rank to Discord."""
    connected = await users.list_connected_users()
    log.info("Discord bulk sync: %d connected users", len(connected))

    success = failed = 0
    for row in connected:
        if not (row.get("discord_id") and row.get("rank")):
            log.warning("Skipping %s: missing discord id or rank", row.get("id"))
            continue
        ok = await _push_rank(users, notifier, row["id"], row["discord_id"], Tier.parse(row["rank"]))
        if ok:
            success += 1
        else:
            failed += 1

    log.info("Discord bulk sync done: %d ok, %d failed", success, failed)
    return {"success": success, "failed": failed}
