from datetime import datetime, timedelta

import pytest

from kidleague.exceptions import InvalidScopeError
from kidleague.models import (
    CONNECTION_PENDING,
    Category,
    CurrencyTransaction,
    Participant,
    PromotedActivity,
    Scope,
    TaskCompletion,
    Tier,
    Window,
)
from kidleague.ops import StructuredLogger
from kidleague.ranking import UNKNOWN_DISPLAY_NAME, RankingEngine
from kidleague.scoring import ScoreAggregator

WEEK = Window.week_of(datetime(2024, 5, 15, 12, 0))


def build_engine(store, clock, logger=None) -> RankingEngine:
    return RankingEngine(store, store, ScoreAggregator(store, clock=clock), snapshots=store, logger=logger)


def earn(store, participant_id: str, amount: int, when: datetime = datetime(2024, 5, 14, 9, 0)) -> None:
    store.record_transaction(CurrencyTransaction(participant_id, "fam-1", amount, when))


def test_ranking_sorts_descending_and_keeps_tie_order(family, clock) -> None:
    earn(family, "ava", 10)
    earn(family, "ben", 30)
    earn(family, "cleo", 30)
    engine = build_engine(family, clock)

    result = engine.compute_ranking("fam-1", Scope.FAMILY, Category.EXPERIENCE, WEEK)

    assert [entry.participant_id for entry in result.entries] == ["ben", "cleo", "ava"]
    assert [entry.rank for entry in result.entries] == [1, 2, 3]
    assert [entry.tier for entry in result.entries] == [Tier.DIAMOND, Tier.SILVER, Tier.BRONZE]
    assert result.leader.display_name == "Ben"
    assert result.entry_for("ava").avatar == "fox"
    assert result.window_start == WEEK.start
    assert result.window_end == WEEK.end


def test_ranks_form_a_permutation_with_non_increasing_scores(store, clock) -> None:
    amounts = [5, 40, 40, 0, 12, 7, 40, 3, 99, 12, 0, 18]
    for index, amount in enumerate(amounts):
        participant_id = f"kid-{index}"
        store.add_participant(Participant(participant_id, "fam-9", f"Kid {index}"))
        if amount:
            store.record_transaction(CurrencyTransaction(participant_id, "fam-9", amount, datetime(2024, 5, 14)))
    engine = build_engine(store, clock)

    result = engine.compute_ranking("fam-9", "family", "experience", WEEK)

    assert sorted(entry.rank for entry in result.entries) == list(range(1, len(amounts) + 1))
    scores = [entry.score for entry in result.entries]
    assert scores == sorted(scores, reverse=True)
    tied = [entry.participant_id for entry in result.entries if entry.score == 40]
    assert tied == ["kid-1", "kid-2", "kid-6"]


def test_empty_scope_returns_empty_result(store, clock) -> None:
    engine = build_engine(store, clock)

    result = engine.compute_ranking("nobody", Scope.FAMILY, Category.STREAK, WEEK)

    assert len(result) == 0
    assert result.leader is None


def test_friends_scope_unions_accepted_connections_in_both_directions(family, clock) -> None:
    family.add_participant(Participant("dina", "fam-2", "Dina"))
    family.connect("ava", "dina")
    family.connect("eli", "ben")
    family.connect("ava", "finn", status=CONNECTION_PENDING)
    family.connect("cleo", "dina")
    engine = build_engine(family, clock)

    members = engine.resolve_scope("fam-1", Scope.FRIENDS, WEEK)
    result = engine.compute_ranking("fam-1", "friends", Category.EXPERIENCE, WEEK)

    assert members == ["dina", "eli"]
    assert result.entry_for("eli").display_name == UNKNOWN_DISPLAY_NAME


def test_promoted_scope_requires_completed_activity_in_window(family, clock) -> None:
    family.record_promoted_activity(PromotedActivity("ben", "fam-1", 300, datetime(2024, 5, 14)))
    family.record_promoted_activity(PromotedActivity("cleo", "fam-1", 300, datetime(2024, 4, 1)))
    engine = build_engine(family, clock)

    result = engine.compute_ranking("fam-1", "promotedActivity", Category.PROMOTED_EARNINGS, WEEK)

    assert [entry.participant_id for entry in result.entries] == ["ben"]
    assert result.leader.score == 300


def test_invalid_scope_is_rejected(family, clock) -> None:
    engine = build_engine(family, clock)

    with pytest.raises(InvalidScopeError):
        engine.compute_ranking("fam-1", "galaxy", Category.EXPERIENCE, WEEK)


def test_zero_streak_lands_in_bronze(family, clock) -> None:
    for day in range(3):
        family.record_task_completion(TaskCompletion("ava", "fam-1", clock.now() - timedelta(days=day)))
        family.record_task_completion(TaskCompletion("ben", "fam-1", clock.now() - timedelta(days=day)))
    engine = build_engine(family, clock)

    result = engine.compute_ranking("fam-1", Scope.FAMILY, Category.STREAK, WEEK)

    cleo = result.entry_for("cleo")
    assert cleo.score == 0
    assert cleo.tier is Tier.BRONZE


def test_snapshots_store_one_per_key_and_feed_previous_rank(family, clock) -> None:
    logger = StructuredLogger()
    earn(family, "ava", 50, datetime(2024, 5, 8))
    earn(family, "ben", 10, datetime(2024, 5, 8))
    earn(family, "ben", 80, datetime(2024, 5, 14))
    engine = build_engine(family, clock, logger)

    first = engine.update_snapshots("fam-1", WEEK.previous())
    engine.update_snapshots("fam-1", WEEK.previous())

    assert len(first) == len(Scope) * len(Category)
    assert len(family.snapshots("fam-1")) == len(Scope) * len(Category)
    assert len(logger.events("snapshots_updated")) == 2

    current = engine.compute_ranking("fam-1", Scope.FAMILY, Category.EXPERIENCE, WEEK)
    ben = current.entry_for("ben")
    assert ben.rank == 1
    assert ben.previous_rank == 2
    assert ben.rank_change == 1
    assert current.entry_for("ava").rank_change == -1
