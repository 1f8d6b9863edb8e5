# app/services/ranks.py
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional

log = logging.getLogger("ranks")


class Tier(str, Enum):
    NEW = "NEW"
    BEGINNER = "BEGINNER"
    RISING = "RISING"
    CHAMPION = "CHAMPION"
    EXPERT = "EXPERT"
    LEGEND = "LEGEND"
    MASTER = "MASTER"
    GRANDMASTER = "GRANDMASTER"
    IMMORTAL = "IMMORTAL"

    @property
    def order(self) -> int:
        return TIER_ORDER.index(self)

    @property
    def min_streak(self) -> int:
        return MIN_STREAK[self]

    @classmethod
    def parse(cls, value: Any) -> "Tier":
        """
        Validate a rank read back from the users table.
        The column is free text, so anything unknown (or NULL) reads as NEW.
        """
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.NEW
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            log.warning("Unknown rank %r in storage, treating as NEW", value)
            return cls.NEW


TIER_ORDER = list(Tier)

MIN_STREAK: Dict[Tier, int] = {
    Tier.NEW: 0,
    Tier.BEGINNER: 1,
    Tier.RISING: 3,
    Tier.CHAMPION: 7,
    Tier.EXPERT: 14,
    Tier.LEGEND: 30,
    Tier.MASTER: 90,
    Tier.GRANDMASTER: 180,
    Tier.IMMORTAL: 365,
}

# highest first, first match wins
_THRESHOLDS = sorted(MIN_STREAK.items(), key=lambda kv: kv[1], reverse=True)


def streak_to_rank(streak: int) -> Tier:
    for tier, minimum in _THRESHOLDS:
        if streak >= minimum:
            return tier
    return Tier.NEW


def next_rank(streak: int) -> Optional[Tier]:
    higher = [t for t in TIER_ORDER if t.min_streak > streak]
    return higher[0] if higher else None


def days_to_next_rank(streak: int) -> int:
    nxt = next_rank(streak)
    return nxt.min_streak - streak if nxt else 0


def rank_progress(streak: int) -> Dict[str, Any]:
    current = streak_to_rank(streak)
    nxt = next_rank(streak)
    return {
        "rank": current.value,
        "streak": streak,
        "next_rank": nxt.value if nxt else None,
        "days_to_next_rank": days_to_next_rank(streak),
    }
