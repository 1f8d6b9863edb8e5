import asyncio

from app.services.streaks import compute_streak, get_user_streak

from conftest import TODAY, FakeCompletionStore, days_back


def test_no_completions_is_zero():
    assert compute_streak(set(), TODAY) == 0


def test_missing_today_zeroes_the_streak():
    assert compute_streak(set(days_back(1, 2, 3)), TODAY) == 0


def test_counts_until_first_gap():
    assert compute_streak(set(days_back(0, 1, 2, 4, 5)), TODAY) == 3


def test_walk_is_capped_at_a_year():
    assert compute_streak(set(days_back(*range(400))), TODAY) == 365


def test_user_streak_dedupes_days_across_habits():
    # two habits done today and yesterday, one three days ago
    store = FakeCompletionStore(days_back(0, 0, 1, 1, 3))
    stats = asyncio.run(get_user_streak(store, "u1", clock=lambda: TODAY))
    assert stats.current_streak == 2
    assert stats.total_active_days == 3


def test_total_active_days_counts_history_beyond_streak():
    store = FakeCompletionStore(days_back(*range(5, 25)))
    stats = asyncio.run(get_user_streak(store, "u1", clock=lambda: TODAY))
    assert stats.current_streak == 0
    assert stats.total_active_days == 20
