import os
from datetime import date, datetime, timedelta, timezone

import pytest

# main.py refuses to import without these
os.environ.setdefault("DATABASE_URL", "postgresql://localhost/coaching_test")
os.environ.setdefault("SECRET_KEY", "test-secret")

from app.errors import ExternalSyncError
from app.services.rank_store import RankRecord
from app.services.ranks import Tier

TODAY = date(2026, 3, 14)


def days_back(*offsets):
    return [TODAY - timedelta(days=i) for i in offsets]


class FakeCompletionStore:
    def __init__(self, dates=None, habits=None):
        self.dates = list(dates or [])
        self.habits = set(habits or [])
        self.upserts = []
        self.fail = False

    async def list_completed_dates(self, user_id):
        if self.fail:
            raise ConnectionError("db down")
        return list(self.dates)

    async def habit_belongs_to(self, user_id, habit_id):
        return (user_id, habit_id) in self.habits

    async def upsert_completion(self, user_id, habit_id, completion_date, is_completed, notes=None):
        self.upserts.append((user_id, habit_id, completion_date, is_completed, notes))
        if is_completed:
            self.dates.append(completion_date)
        return {
            "user_id": user_id,
            "habit_id": habit_id,
            "completion_date": completion_date,
            "is_completed": is_completed,
            "notes": notes,
        }


class FakeRankStore:
    def __init__(self):
        self.ranks = {}
        self.profiles = {}
        self.synced = []
        self.writes = []
        self.drop_on_write = False

    def add_user(self, user_id, rank=Tier.NEW, discord_id=None, connected=False):
        self.ranks[user_id] = rank
        if discord_id:
            self.profiles[user_id] = (discord_id, connected)

    async def get_rank(self, user_id):
        return self.ranks.get(user_id)

    async def set_rank(self, user_id, tier):
        self.writes.append((user_id, tier))
        if self.drop_on_write or user_id not in self.ranks:
            return None
        self.ranks[user_id] = tier
        discord_id, connected = self.profiles.get(user_id, (None, False))
        return RankRecord(
            id=user_id,
            rank=tier,
            updated_at=datetime.now(timezone.utc),
            discord_id=discord_id,
            discord_connected=connected,
        )

    async def mark_discord_synced(self, user_id):
        self.synced.append(user_id)

    async def list_connected_users(self):
        return [
            {"id": uid, "rank": self.ranks[uid].value, "discord_id": did}
            for uid, (did, connected) in self.profiles.items()
            if connected
        ]


class FakeNotifier:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def notify_rank_change(self, discord_id, tier):
        self.calls.append((discord_id, tier))
        if self.fail:
            raise ExternalSyncError("bot offline")
        return True

    async def bot_status(self):
        return {"online": True, "status": 200, "url": "http://bot", "timestamp": "now"}


class FakePool:
    """Answers the handful of queries the limits service issues."""

    def __init__(self, plan="FREE", plan_row=None, habits=0, trades=0, goals=None):
        self.plan = plan
        self.plan_row = plan_row
        self.habits = habits
        self.trades = trades
        self.goals = goals or {}
        self.executed = []

    async def fetchval(self, sql, *args):
        if "subscription_plan FROM users" in sql:
            return self.plan
        if "SELECT 1 FROM users" in sql:
            return None
        if "FROM habits" in sql:
            return self.habits
        if "FROM trades" in sql:
            return self.trades
        raise AssertionError(sql)

    async def fetchrow(self, sql, *args):
        assert "FROM subscription_plans" in sql
        return self.plan_row

    async def fetch(self, sql, *args):
        return [{"type": k, "count": v} for k, v in self.goals.items()]

    async def execute(self, sql, *args):
        self.executed.append((sql, args))


@pytest.fixture
def completions():
    return FakeCompletionStore()


@pytest.fixture
def users():
    return FakeRankStore()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def clock():
    return lambda: TODAY
