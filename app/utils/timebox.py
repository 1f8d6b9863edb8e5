from __future__ import annotations
import os
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

UTC = timezone.utc
APP_TZ = ZoneInfo(os.getenv("APP_TIMEZONE", "UTC"))

def now_utc() -> datetime:
    return datetime.now(UTC)

def local_now() -> datetime:
    return datetime.now(APP_TZ)

def today_local() -> date:
    """Calendar day used for streaks and monthly usage buckets."""
    return local_now().date()

def month_start(day: date) -> datetime:
    return datetime(day.year, day.month, 1, tzinfo=APP_TZ)

def month_key(day: date) -> str:
    return day.strftime("%Y-%m")
