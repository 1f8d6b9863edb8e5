from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, Literal, Optional, Tuple

import asyncpg
from fastapi import Depends, HTTPException

from app.auth.session import get_current_user
from app.db import get_app_pool
from app.errors import NotFoundError
from app.utils.timebox import month_key, month_start, today_local

log = logging.getLogger("entitlements")

GoalType = Literal["annual", "quarterly", "monthly"]
UsageKind = Literal["trading", "habits", "goals"]
Feature = Literal[
    "has_discord_integration",
    "has_priority_support",
    "has_early_access",
    "has_monthly_challenges",
    "has_premium_discord",
]


@dataclass(frozen=True)
class PlanLimits:
    max_habits: int
    max_trading_entries: int
    max_annual_goals: int
    max_quarterly_goals: int
    max_monthly_goals: int
    has_discord_integration: bool = False
    has_priority_support: bool = False
    has_early_access: bool = False
    has_monthly_challenges: bool = False
    has_premium_discord: bool = False


@dataclass(frozen=True)
class UsageStats:
    current_habits: int
    current_trading_entries: int
    current_annual_goals: int
    current_quarterly_goals: int
    current_monthly_goals: int
    monthly_trading_entries: int


# ---- Config (overridable via env) -------------------------------------------
FREE_PLAN_LIMITS = PlanLimits(
    max_habits=int(os.getenv("FREE_MAX_HABITS", "3")),
    max_trading_entries=int(os.getenv("FREE_MAX_TRADING_ENTRIES", "10")),
    max_annual_goals=int(os.getenv("FREE_MAX_ANNUAL_GOALS", "1")),
    max_quarterly_goals=int(os.getenv("FREE_MAX_QUARTERLY_GOALS", "1")),
    max_monthly_goals=int(os.getenv("FREE_MAX_MONTHLY_GOALS", "0")),
)

_PLAN_COLUMNS = ", ".join(PlanLimits.__dataclass_fields__)

_USAGE_COLUMNS = {
    "trading": "trading_entries_count",
    "habits": "habits_created_count",
    "goals": "goals_created_count",
}


async def get_user_plan_limits(pool, user_id: str) -> PlanLimits:
    plan_name = await pool.fetchval("SELECT subscription_plan FROM users WHERE id=$1", user_id)
    if plan_name is None:
        exists = await pool.fetchval("SELECT 1 FROM users WHERE id=$1", user_id)
        if not exists:
            raise NotFoundError("User not found", user_id=user_id)
        return FREE_PLAN_LIMITS

    row = await pool.fetchrow(f"SELECT {_PLAN_COLUMNS} FROM subscription_plans WHERE name=$1", plan_name)
    if not row:
        # unknown or unseeded plan -> FREE
        return FREE_PLAN_LIMITS
    return PlanLimits(**dict(row))


async def get_user_usage_stats(pool, user_id: str, clock=today_local) -> UsageStats:
    habits = await pool.fetchval(
        "SELECT COUNT(*) FROM habits WHERE user_id=$1 AND is_active = TRUE", user_id
    )
    trades = await pool.fetchval(
        "SELECT COUNT(*) FROM trades WHERE user_id=$1 AND created_at >= $2",
        user_id, month_start(clock()),
    )

    goals: Dict[str, int] = {}
    try:
        rows = await pool.fetch(
            "SELECT type, COUNT(*) AS count FROM goals WHERE user_id=$1 GROUP BY type", user_id
        )
        goals = {r["type"]: int(r["count"]) for r in rows}
    except asyncpg.exceptions.UndefinedTableError as e:
        log.warning("goals table missing, counting zero goals: %s", e)

    return UsageStats(
        current_habits=int(habits or 0),
        current_trading_entries=int(trades or 0),
        current_annual_goals=goals.get("annual", 0),
        current_quarterly_goals=goals.get("quarterly", 0),
        current_monthly_goals=goals.get("monthly", 0),
        monthly_trading_entries=int(trades or 0),
    )


async def _limits_and_usage(pool, user_id: str) -> Tuple[PlanLimits, UsageStats]:
    limits, usage = await asyncio.gather(
        get_user_plan_limits(pool, user_id),
        get_user_usage_stats(pool, user_id),
    )
    return limits, usage


async def can_create_habit(pool, user_id: str) -> Tuple[bool, Optional[str]]:
    limits, usage = await _limits_and_usage(pool, user_id)
    if usage.current_habits >= limits.max_habits:
        return False, f"You have reached the limit of {limits.max_habits} habits for your plan."
    return True, None


async def can_create_trading_entry(pool, user_id: str) -> Tuple[bool, Optional[str]]:
    limits, usage = await _limits_and_usage(pool, user_id)
    if usage.monthly_trading_entries >= limits.max_trading_entries:
        return False, (
            f"You have reached the limit of {limits.max_trading_entries} "
            "trading entries per month for your plan."
        )
    return True, None


async def can_create_goal(pool, user_id: str, goal_type: str) -> Tuple[bool, Optional[str]]:
    limits, usage = await _limits_and_usage(pool, user_id)
    counts = {
        "annual": (usage.current_annual_goals, limits.max_annual_goals),
        "quarterly": (usage.current_quarterly_goals, limits.max_quarterly_goals),
        "monthly": (usage.current_monthly_goals, limits.max_monthly_goals),
    }
    if goal_type not in counts:
        return False, "Unrecognized goal type."
    current, maximum = counts[goal_type]
    if current >= maximum:
        return False, f"You have reached the limit of {maximum} {goal_type} goals for your plan."
    return True, None


async def has_feature_access(pool, user_id: str, feature: Feature) -> bool:
    limits = await get_user_plan_limits(pool, user_id)
    return bool(getattr(limits, feature, False))


async def increment_monthly_usage(pool, user_id: str, kind: UsageKind, clock=today_local) -> None:
    col = _USAGE_COLUMNS.get(kind)
    if not col:
        raise ValueError(f"Unsupported usage kind: {kind}")
    await pool.execute(
        f"""
        INSERT INTO monthly_usage (user_id, month, {col}) VALUES ($1, $2, 1)
        ON CONFLICT (user_id, month) DO UPDATE SET {col} = monthly_usage.{col} + 1
        """,
        user_id, month_key(clock()),
    )


async def compute_entitlements(pool, user_id: str) -> Dict[str, Any]:
    limits, usage = await _limits_and_usage(pool, user_id)
    return {"user_id": user_id, "limits": asdict(limits), "usage": asdict(usage)}


_CHECKS = {
    "habits": can_create_habit,
    "trading": can_create_trading_entry,
}


def require_capacity(kind: str, goal_type: Optional[GoalType] = None):
    """
    FastAPI dependency that errors with 402 when the user's plan is full.
    """
    async def _dep(user_id: str = Depends(get_current_user), pool=Depends(get_app_pool)):
        if kind == "goals":
            allowed, reason = await can_create_goal(pool, user_id, goal_type or "")
        else:
            allowed, reason = await _CHECKS[kind](pool, user_id)
        if not allowed:
            # soft gate with 402 so frontend can show upgrade CTA
            raise HTTPException(
                status_code=402,
                detail={
                    "error": "limit_reached",
                    "feature": kind,
                    "message": reason,
                    "upgrade_url": "/billing",
                },
            )
        return True

    return _dep
