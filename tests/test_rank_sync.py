import asyncio

import pytest

from app.errors import InternalError, NotFoundError
from app.services.rank_sync import sync_all_connected_users, update_user_rank
from app.services.ranks import Tier

from conftest import FakeNotifier, days_back


def run_update(user_id, completions, users, notifier, clock):
    return asyncio.run(update_user_rank(
        user_id, completions=completions, users=users, notifier=notifier, clock=clock,
    ))


def test_rank_change_syncs_connected_discord(completions, users, notifier, clock):
    completions.dates = days_back(0, 1, 2)
    users.add_user("u1", Tier.BEGINNER, discord_id="d-1", connected=True)

    result = run_update("u1", completions, users, notifier, clock)

    assert result.rank == Tier.RISING
    assert result.previous_rank == Tier.BEGINNER
    assert result.current_streak == 3
    assert result.total_active_days == 3
    assert notifier.calls == [("d-1", Tier.RISING)]
    assert users.synced == ["u1"]


def test_unchanged_rank_skips_discord(completions, users, notifier, clock):
    completions.dates = days_back(0, 1, 2)
    users.add_user("u1", Tier.RISING, discord_id="d-1", connected=True)

    result = run_update("u1", completions, users, notifier, clock)

    assert result.rank == Tier.RISING
    assert notifier.calls == []
    # the write still happens
    assert users.writes == [("u1", Tier.RISING)]


def test_disconnected_profile_is_not_synced(completions, users, notifier, clock):
    completions.dates = days_back(0)
    users.add_user("u1", Tier.NEW, discord_id="d-1", connected=False)

    result = run_update("u1", completions, users, notifier, clock)

    assert result.rank == Tier.BEGINNER
    assert notifier.calls == []
    assert users.synced == []


def test_discord_failure_does_not_fail_update(completions, users, clock):
    notifier = FakeNotifier(fail=True)
    completions.dates = days_back(*range(7))
    users.add_user("u1", Tier.NEW, discord_id="d-1", connected=True)

    result = run_update("u1", completions, users, notifier, clock)

    assert result.rank == Tier.CHAMPION
    assert users.ranks["u1"] == Tier.CHAMPION
    assert len(notifier.calls) == 1
    assert users.synced == []


def test_second_run_is_idempotent(completions, users, notifier, clock):
    completions.dates = days_back(*range(14))
    users.add_user("u1", Tier.NEW, discord_id="d-1", connected=True)

    first = run_update("u1", completions, users, notifier, clock)
    second = run_update("u1", completions, users, notifier, clock)

    assert first.rank == second.rank == Tier.EXPERT
    assert second.previous_rank == Tier.EXPERT
    assert len(notifier.calls) == 1


def test_gap_today_demotes_to_new(completions, users, notifier, clock):
    completions.dates = days_back(1, 2, 3)
    users.add_user("u1", Tier.RISING)

    result = run_update("u1", completions, users, notifier, clock)

    assert result.current_streak == 0
    assert result.rank == Tier.NEW


def test_missing_user_is_not_found(completions, users, notifier, clock):
    with pytest.raises(NotFoundError):
        run_update("ghost", completions, users, notifier, clock)
    assert users.writes == []


def test_user_vanishing_before_write_is_not_found(completions, users, notifier, clock):
    users.add_user("u1")
    users.drop_on_write = True
    with pytest.raises(NotFoundError):
        run_update("u1", completions, users, notifier, clock)


def test_read_failure_is_internal_error(completions, users, notifier, clock):
    users.add_user("u1")
    completions.fail = True
    with pytest.raises(InternalError):
        run_update("u1", completions, users, notifier, clock)
    assert users.writes == []


def test_result_payload_shape(completions, users, notifier, clock):
    completions.dates = days_back(0)
    users.add_user("u1", Tier.NEW)

    payload = run_update("u1", completions, users, notifier, clock).to_dict()

    assert payload["id"] == "u1"
    assert payload["rank"] == "BEGINNER"
    assert payload["previousRank"] == "NEW"
    assert payload["currentStreak"] == 1
    assert payload["totalActiveDays"] == 1
    assert payload["updatedAt"]
    assert payload["discordConnected"] is False


class TestBulkSync:
    def test_counts_success_and_failure(self, users):
        users.add_user("a", Tier.LEGEND, discord_id="d-a", connected=True)
        users.add_user("b", Tier.NEW, discord_id="d-b", connected=True)
        users.add_user("c", Tier.MASTER, discord_id="d-c", connected=False)

        class Flaky(FakeNotifier):
            async def notify_rank_change(self, discord_id, tier):
                self.calls.append((discord_id, tier))
                if discord_id == "d-b":
                    raise RuntimeError("member left guild")
                return True

        notifier = Flaky()
        result = asyncio.run(sync_all_connected_users(users, notifier))

        assert result == {"success": 1, "failed": 1}
        assert ("d-a", Tier.LEGEND) in notifier.calls
        assert users.synced == ["a"]
