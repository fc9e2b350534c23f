import random
import threading
from datetime import datetime

import pytest

from conftest import ScriptedRandom
from kidleague.admin import AuditLog
from kidleague.draws import CollectibleItem
from kidleague.exceptions import (
    InsufficientFundsError,
    NoUnitsAvailableError,
    ParticipantNotFoundError,
    RewardMutationError,
    UnknownProductError,
)
from kidleague.models import (
    CollectibleReward,
    CurrencyReward,
    DailyAllowance,
    DuplicateCompensation,
    ExperienceReward,
    FlatBonusReward,
    Participant,
    ProductType,
    Rarity,
)
from kidleague.ops import StructuredLogger
from kidleague.rewards import RewardGenerator
from kidleague.store import InMemoryStore


def make_generator(store, clock, rolls=(), **kwargs) -> RewardGenerator:
    rng = kwargs.pop("rng", None) or ScriptedRandom(rolls)
    return RewardGenerator(store, store, store, rng=rng, clock=clock, **kwargs)


# ---------------------------------------------------------------------------
# Daily spin
# ---------------------------------------------------------------------------
def test_first_spin_pays_points_and_unlocks_milestone(family, clock) -> None:
    generator = make_generator(family, clock, [0.0])

    outcome = generator.draw_spin("ava")

    assert outcome.payload == CurrencyReward(10)
    assert outcome.label == "10 Points"
    assert outcome.product_type is ProductType.SPIN
    assert family.currency_balance("ava") == 110
    assert [a.achievement_id for a in family.achievements("ava")] == ["first_spin"]
    allowance = family.get_allowance("ava", ProductType.SPIN)
    assert (allowance.units_available, allowance.lifetime_units_used) == (0, 1)


def test_second_spin_same_day_is_rejected(family, clock) -> None:
    generator = make_generator(family, clock, [0.0, 0.0])
    generator.draw_spin("ava")

    with pytest.raises(NoUnitsAvailableError):
        generator.draw_spin("ava")

    assert family.currency_balance("ava") == 110


def test_spins_reset_on_the_next_day(family, clock) -> None:
    generator = make_generator(family, clock, [0.0, 0.0])
    generator.draw_spin("ava")

    clock.advance(days=1)

    assert generator.spin_status("ava").units_available == 1
    generator.draw_spin("ava")
    assert family.currency_balance("ava") == 120


def test_spin_can_award_experience(family, clock) -> None:
    outcome = make_generator(family, clock, [0.4]).draw_spin("ben")

    assert outcome.payload == ExperienceReward(25)
    assert family.experience("ben") == 25
    assert family.currency_balance("ben") == 40


def test_bonus_prize_pays_flat_amount(family, clock) -> None:
    outcome = make_generator(family, clock, [0.999]).draw_spin("ava")

    assert outcome.payload == FlatBonusReward(25, code="double_next")
    assert outcome.is_special_effect
    assert outcome.rarity is Rarity.LEGENDARY
    assert family.currency_balance("ava") == 125


def test_sticker_prize_adds_collectible_of_prize_rarity(family, clock) -> None:
    outcome = make_generator(family, clock, [0.8, 0.5]).draw_spin("ava")

    assert outcome.payload == CollectibleReward("elephant", "Elephant", premium_variant=False)
    assert family.collection("ava") == {"elephant": False}


def test_unsupported_prize_falls_back_to_first_slot(family, clock) -> None:
    logger = StructuredLogger()
    generator = make_generator(family, clock, [0.96], logger=logger)

    outcome = generator.draw_spin("ava")

    assert outcome.payload == CurrencyReward(10)
    assert outcome.label == "10 Points"
    warning = logger.events("unknown_prize_descriptor", level="warning")[0]
    assert warning["kind"] == "avatar_item"
    assert family.currency_balance("ava") == 110


def test_seventh_lifetime_spin_awards_milestone(family, clock) -> None:
    family.save_allowance(
        DailyAllowance("ben", ProductType.SPIN, clock.today(), units_available=1, lifetime_units_used=6)
    )

    make_generator(family, clock, [0.0]).draw_spin("ben")

    milestone = family.achievements("ben")[-1]
    assert milestone.achievement_id == "spin_week"
    assert milestone.xp_reward == 50
    # Milestones are recorded only; experience is not credited for them.
    assert family.experience("ben") == 0


class BrokenBalanceStore(InMemoryStore):
    def adjust_currency(self, participant_id, delta, *, reason=""):
        if delta > 0:
            raise RuntimeError("ledger offline")
        return super().adjust_currency(participant_id, delta, reason=reason)


@pytest.fixture
def broken(clock) -> BrokenBalanceStore:
    store = BrokenBalanceStore(clock=clock)
    store.add_participant(Participant("ava", "fam-1", "Ava"), balance=100)
    return store


def test_failed_spin_returns_the_unit(broken, clock) -> None:
    logger = StructuredLogger()
    audit = AuditLog()
    generator = make_generator(broken, clock, [0.0], logger=logger, audit_log=audit)

    with pytest.raises(RewardMutationError) as excinfo:
        generator.draw_spin("ava")

    assert excinfo.value.participant_id == "ava"
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    allowance = broken.get_allowance("ava", ProductType.SPIN)
    assert (allowance.units_available, allowance.lifetime_units_used) == (1, 0)
    assert [event.action for event in audit.for_participant("ava")] == ["spin_drawn", "spin_refunded"]
    failure = logger.events("reward_mutation_failed", level="error")[0]
    assert failure["unit_refunded"] is True
    assert broken.achievements("ava") == ()


def test_spin_status_reports_next_midnight(family, clock) -> None:
    status = make_generator(family, clock).spin_status("cleo")

    assert status.units_available == 1
    assert status.next_reset == datetime(2024, 5, 16)


def test_unknown_participant_cannot_spin(family, clock) -> None:
    generator = make_generator(family, clock, [0.0])

    with pytest.raises(ParticipantNotFoundError):
        generator.draw_spin("zed")
    with pytest.raises(ParticipantNotFoundError):
        generator.spin_status("zed")


# ---------------------------------------------------------------------------
# Collectible packs
# ---------------------------------------------------------------------------
def test_basic_pack_charges_cost_and_fills_collection(family, clock) -> None:
    audit = AuditLog()
    generator = make_generator(family, clock, rng=random.Random(42), audit_log=audit)

    opening = generator.open_pack("ava", "basic_pack")

    duplicates = len(opening.duplicates)
    assert len(opening.outcomes) == 5
    assert opening.cost == 25
    assert family.currency_balance("ava") == 100 - 25 + 10 * duplicates
    assert len(family.collection("ava")) == 5 - duplicates
    assert audit.latest().action == "pack_opened"
    assert len(audit.latest().details["items"]) == 5


def test_duplicates_are_compensated(family, clock) -> None:
    catalog = [CollectibleItem("dog", "Dog", "animals", Rarity.COMMON)]
    generator = make_generator(family, clock, [0.0, 0.5] * 5, catalog=catalog)

    opening = generator.open_pack("ava", "basic_pack")

    assert isinstance(opening.outcomes[0].payload, CollectibleReward)
    assert [o.payload for o in opening.duplicates] == [DuplicateCompensation("dog", 10)] * 4
    assert family.collection("ava") == {"dog": False}
    assert family.currency_balance("ava") == 115


def test_premium_pack_guarantee_applies_once(family, clock) -> None:
    rolls = [0.1, 0.5] + [0.0, 0.5] * 4
    generator = make_generator(family, clock, rolls)

    opening = generator.open_pack("ava", "premium_pack")

    assert [o.rarity for o in opening.outcomes] == [Rarity.RARE] + [Rarity.COMMON] * 4
    assert opening.outcomes[0].label == "Elephant"
    assert len(opening.duplicates) == 3
    assert family.currency_balance("ava") == 100 - 50 + 30


def test_legendary_items_are_always_premium(family, clock) -> None:
    generator = make_generator(family, clock, [0.9999] * 10)

    opening = generator.open_pack("ava", "legendary_pack")

    assert all(o.rarity is Rarity.LEGENDARY for o in opening.outcomes)
    assert all(o.is_special_effect for o in opening.outcomes)
    assert family.collection("ava") == {"dragon": True}


def test_pack_requires_enough_points(family, clock) -> None:
    generator = make_generator(family, clock, rng=random.Random(1))

    with pytest.raises(InsufficientFundsError):
        generator.open_pack("cleo", "basic_pack")

    assert family.collection("cleo") == {}
    assert family.currency_balance("cleo") == 0


def test_unknown_pack_is_rejected(family, clock) -> None:
    with pytest.raises(UnknownProductError):
        make_generator(family, clock).open_pack("ava", "mystery_pack")


class BrokenCollectionStore(InMemoryStore):
    def add_collectible_item(self, participant_id, item_id, *, premium_variant=False):
        raise RuntimeError("collection offline")


def test_failed_pack_refunds_cost(clock) -> None:
    store = BrokenCollectionStore(clock=clock)
    store.add_participant(Participant("ava", "fam-1", "Ava"), balance=100)
    logger = StructuredLogger()
    generator = make_generator(store, clock, rng=random.Random(3), logger=logger)

    with pytest.raises(RewardMutationError) as excinfo:
        generator.open_pack("ava", "basic_pack")

    assert store.currency_balance("ava") == 100
    assert excinfo.value.context["cost_refunded"] == 25
    assert excinfo.value.context["reverted"] == []
    assert len(excinfo.value.context["pending"]) == 5
    assert logger.events("reward_mutation_failed", level="error")


class FlakyCompensationStore(InMemoryStore):
    def __init__(self, *, clock) -> None:
        super().__init__(clock=clock)
        self.compensations = 0

    def adjust_currency(self, participant_id, delta, *, reason=""):
        if reason.startswith("Duplicate bonus"):
            self.compensations += 1
            if self.compensations == 2:
                raise RuntimeError("ledger offline")
        return super().adjust_currency(participant_id, delta, reason=reason)


def test_failed_pack_takes_back_items_already_applied(clock) -> None:
    store = FlakyCompensationStore(clock=clock)
    store.add_participant(Participant("ava", "fam-1", "Ava"), balance=100)
    catalog = [CollectibleItem("dog", "Dog", "animals", Rarity.COMMON)]
    audit = AuditLog()
    generator = make_generator(store, clock, [0.0, 0.5] * 5, catalog=catalog, audit_log=audit)

    with pytest.raises(RewardMutationError) as excinfo:
        generator.open_pack("ava", "basic_pack")

    context = excinfo.value.context
    assert store.collection("ava") == {}
    assert store.currency_balance("ava") == 100
    assert [item["kind"] for item in context["reverted"]] == ["CollectibleReward", "DuplicateCompensation"]
    assert context["not_reverted"] == []
    assert len(context["pending"]) == 3
    assert [event.action for event in audit.for_participant("ava")] == ["pack_opened", "pack_refunded"]


class StuckCollectionStore(InMemoryStore):
    def adjust_currency(self, participant_id, delta, *, reason=""):
        if reason.startswith("Duplicate bonus"):
            raise RuntimeError("ledger offline")
        return super().adjust_currency(participant_id, delta, reason=reason)

    def remove_collectible_item(self, participant_id, item_id):
        raise RuntimeError("collection offline")


def test_items_that_cannot_be_taken_back_are_reported(clock) -> None:
    store = StuckCollectionStore(clock=clock)
    store.add_participant(Participant("ava", "fam-1", "Ava"), balance=100)
    catalog = [CollectibleItem("dog", "Dog", "animals", Rarity.COMMON)]
    logger = StructuredLogger()
    generator = make_generator(store, clock, [0.0, 0.5] * 5, catalog=catalog, logger=logger)

    with pytest.raises(RewardMutationError) as excinfo:
        generator.open_pack("ava", "basic_pack")

    assert excinfo.value.context["reverted"] == []
    assert excinfo.value.context["not_reverted"][0]["item_id"] == "dog"
    assert store.collection("ava") == {"dog": False}
    assert store.currency_balance("ava") == 100
    assert logger.events("reward_revert_failed", level="error")


# ---------------------------------------------------------------------------
# Concurrent rewards
# ---------------------------------------------------------------------------
class GatedStore(InMemoryStore):
    """Holds debits and spin consumption until two callers arrive together."""

    def __init__(self, *, clock) -> None:
        super().__init__(clock=clock)
        self.gate = threading.Barrier(2, timeout=5)

    def consume_unit(self, *args, **kwargs):
        self.gate.wait()
        return super().consume_unit(*args, **kwargs)

    def adjust_currency(self, participant_id, delta, *, reason=""):
        if delta < 0:
            self.gate.wait()
        return super().adjust_currency(participant_id, delta, reason=reason)


def run_together(action, count=2):
    results = []

    def worker():
        try:
            results.append(action())
        except Exception as exc:
            results.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)
    return results


def test_concurrent_spins_cannot_share_one_unit(clock) -> None:
    store = GatedStore(clock=clock)
    store.add_participant(Participant("ava", "fam-1", "Ava"), balance=100)
    generator = make_generator(store, clock, [0.0, 0.0])

    results = run_together(lambda: generator.draw_spin("ava"))

    assert sorted(type(result).__name__ for result in results) == ["NoUnitsAvailableError", "RewardOutcome"]
    assert store.currency_balance("ava") == 110
    allowance = store.get_allowance("ava", ProductType.SPIN)
    assert (allowance.units_available, allowance.lifetime_units_used) == (0, 1)


def test_concurrent_pack_purchases_cannot_overdraw(clock) -> None:
    store = GatedStore(clock=clock)
    store.add_participant(Participant("ava", "fam-1", "Ava"), balance=25)
    catalog = [CollectibleItem("dog", "Dog", "animals", Rarity.COMMON)]
    generator = make_generator(store, clock, [0.0, 0.5] * 10, catalog=catalog)

    results = run_together(lambda: generator.open_pack("ava", "basic_pack"))

    assert sorted(type(result).__name__ for result in results) == ["InsufficientFundsError", "PackOpening"]
    assert store.currency_balance("ava") == 40
    assert store.collection("ava") == {"dog": False}
