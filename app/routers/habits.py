# app/routers/habits.py
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.auth.entitlements import increment_monthly_usage, require_capacity
from app.auth.session import get_current_user
from app.db import get_app_pool
from app.deps import get_completion_store, get_notifier, get_rank_store
from app.errors import NotFoundError
from app.services.rank_sync import update_user_rank
from app.services.ranks import rank_progress
from app.services.streaks import get_user_streak

log = logging.getLogger("habits")

router = APIRouter(prefix="/api", tags=["habits"])


class HabitCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)


class CompletionToggle(BaseModel):
    completion_date: date
    is_completed: bool = True
    notes: Optional[str] = None


@router.post("/habits", dependencies=[Depends(require_capacity("habits"))])
async def create_habit(
    item: HabitCreate,
    user_id: str = Depends(get_current_user),
    pool=Depends(get_app_pool),
) -> Dict[str, Any]:
    row = await pool.fetchrow(
        "INSERT INTO habits (user_id, title) VALUES ($1, $2) RETURNING id, title, is_active, created_at",
        user_id, item.title.strip(),
    )
    await increment_monthly_usage(pool, user_id, "habits")
    return {"ok": True, "habit": dict(row)}


@router.post("/habits/{habit_id}/completions")
async def toggle_completion(
    habit_id: str,
    body: CompletionToggle,
    user_id: str = Depends(get_current_user),
    completions=Depends(get_completion_store),
    users=Depends(get_rank_store),
    notifier=Depends(get_notifier),
) -> Dict[str, Any]:
    if not await completions.habit_belongs_to(user_id, habit_id):
        raise NotFoundError("Habit not found", user_id=user_id)

    completion = await completions.upsert_completion(
        user_id, habit_id, body.completion_date, body.is_completed, body.notes
    )
    update = await update_user_rank(user_id, completions=completions, users=users, notifier=notifier)
    return {"completion": completion, "rank": update.to_dict()}


@router.post("/rank/refresh")
async def refresh_rank(
    user_id: str = Depends(get_current_user),
    completions=Depends(get_completion_store),
    users=Depends(get_rank_store),
    notifier=Depends(get_notifier),
) -> Dict[str, Any]:
    update = await update_user_rank(user_id, completions=completions, users=users, notifier=notifier)
    return update.to_dict()


@router.get("/rank")
async def get_rank(
    user_id: str = Depends(get_current_user),
    completions=Depends(get_completion_store),
    users=Depends(get_rank_store),
) -> Dict[str, Any]:
    stored = await users.get_rank(user_id)
    if stored is None:
        raise HTTPException(status_code=404, detail="User not found")
    stats = await get_user_streak(completions, user_id)
    return {
        "stored_rank": stored.value,
        "total_active_days": stats.total_active_days,
        **rank_progress(stats.current_streak),
    }
