from datetime import datetime, timedelta

import pytest

from kidleague.exceptions import InvalidCategoryError
from kidleague.models import (
    TASK_STATUS_PENDING,
    TRANSACTION_SPENT,
    CareInteraction,
    Category,
    CurrencyTransaction,
    PromotedActivity,
    TaskCompletion,
    Window,
)
from kidleague.scoring import ScoreAggregator

WEEK = Window(datetime(2024, 5, 13), datetime(2024, 5, 19, 23, 59, 59, 999999))


def test_experience_sums_earned_transactions_inside_window(family, clock) -> None:
    family.record_transaction(CurrencyTransaction("ava", "fam-1", 30, datetime(2024, 5, 13, 0, 0)))
    family.record_transaction(CurrencyTransaction("ava", "fam-1", 20, datetime(2024, 5, 19, 23, 59, 59)))
    family.record_transaction(CurrencyTransaction("ava", "fam-1", 99, datetime(2024, 5, 12, 23, 59)))
    family.record_transaction(
        CurrencyTransaction("ava", "fam-1", 15, datetime(2024, 5, 14), subtype=TRANSACTION_SPENT)
    )
    aggregator = ScoreAggregator(family, clock=clock)

    assert aggregator.score("ava", Category.EXPERIENCE, WEEK) == 50


def test_tasks_completed_counts_only_approved(family, clock) -> None:
    family.record_task_completion(TaskCompletion("ben", "fam-1", datetime(2024, 5, 14, 9)))
    family.record_task_completion(TaskCompletion("ben", "fam-1", datetime(2024, 5, 14, 10)))
    family.record_task_completion(
        TaskCompletion("ben", "fam-1", datetime(2024, 5, 15, 8), status=TASK_STATUS_PENDING)
    )
    aggregator = ScoreAggregator(family, clock=clock)

    assert aggregator.score("ben", "tasksCompleted", WEEK) == 2


def test_promoted_earnings_use_completed_requests(family, clock) -> None:
    family.record_promoted_activity(PromotedActivity("cleo", "fam-1", 250, datetime(2024, 5, 16)))
    family.record_promoted_activity(PromotedActivity("cleo", "fam-1", 100, None, status="open"))
    family.record_promoted_activity(PromotedActivity("cleo", "fam-1", 75, datetime(2024, 5, 1)))
    aggregator = ScoreAggregator(family, clock=clock)

    assert aggregator.score("cleo", Category.PROMOTED_EARNINGS, WEEK) == 250


def test_care_interactions_count_once_each(family, clock) -> None:
    for hour in (8, 9, 10):
        family.record_care_interaction(CareInteraction("ava", "fam-1", datetime(2024, 5, 14, hour)))
    aggregator = ScoreAggregator(family, clock=clock)

    assert aggregator.score("ava", "care-interactions", WEEK) == 3


def test_streak_counts_distinct_days_in_trailing_lookback(family, clock) -> None:
    now = clock.now()
    for delta in (timedelta(hours=1), timedelta(hours=2), timedelta(days=1), timedelta(days=3)):
        family.record_task_completion(TaskCompletion("ava", "fam-1", now - delta))
    family.record_task_completion(TaskCompletion("ava", "fam-1", now - timedelta(days=8)))
    aggregator = ScoreAggregator(family, clock=clock)

    # The window is ignored: a window far in the past still yields the trailing count.
    old_window = Window(datetime(2023, 1, 2), datetime(2023, 1, 8, 23, 59))
    assert aggregator.score("ava", Category.STREAK, old_window) == 3
    assert aggregator.score("ava", Category.STREAK, WEEK) == 3


def test_streak_can_follow_the_window(family, clock) -> None:
    family.record_task_completion(TaskCompletion("ava", "fam-1", datetime(2023, 1, 3, 10)))
    family.record_task_completion(TaskCompletion("ava", "fam-1", datetime(2023, 1, 4, 10)))
    aggregator = ScoreAggregator(family, clock=clock, streak_follows_window=True)

    old_window = Window(datetime(2023, 1, 2), datetime(2023, 1, 8, 23, 59))
    assert aggregator.score("ava", Category.STREAK, old_window) == 2


def test_missing_data_scores_zero(family, clock) -> None:
    aggregator = ScoreAggregator(family, clock=clock)

    for category in Category:
        assert aggregator.score("cleo", category, WEEK) == 0


def test_unknown_category_is_rejected(family, clock) -> None:
    aggregator = ScoreAggregator(family, clock=clock)

    with pytest.raises(InvalidCategoryError):
        aggregator.score("ava", "kindness", WEEK)
