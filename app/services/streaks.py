# app/services/streaks.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Iterable, Set

from app.utils.timebox import today_local

MAX_STREAK_DAYS = 365

Clock = Callable[[], date]


@dataclass(frozen=True)
class StreakStats:
    current_streak: int
    total_active_days: int


def compute_streak(active_dates: Set[date], today: date, max_days: int = MAX_STREAK_DAYS) -> int:
    """
    Count consecutive active days walking backward from `today`.

    The walk starts on `today` itself, so a day without a completion today
    gives 0 even if yesterday closed a long run.
    """
    streak = 0
    for i in range(max_days):
        if today - timedelta(days=i) in active_dates:
            streak += 1
        else:
            break
    return streak


def active_date_set(dates: Iterable[date]) -> Set[date]:
    # several habits on one day still count as a single active day
    return set(dates)


async def get_user_streak(store, user_id: str, clock: Clock = today_local) -> StreakStats:
    dates = active_date_set(await store.list_completed_dates(user_id))
    return StreakStats(
        current_streak=compute_streak(dates, clock()),
        total_active_days=len(dates),
    )
