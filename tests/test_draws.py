import random
from collections import Counter

import pytest

from conftest import ScriptedRandom
from kidleague.draws import (
    COLLECTIBLE_CATALOG,
    DEFAULT_PACKS,
    DEFAULT_SPIN_TABLE,
    PRIZE_BONUS,
    PRIZE_POINTS,
    PackConfig,
    WeightedEntry,
    WeightedTable,
    items_of_rarity,
    parse_spin_table,
    rarity_table,
)
from kidleague.models import Rarity
from kidleague.ops import StructuredLogger


def test_draw_frequencies_track_weights() -> None:
    table = DEFAULT_PACKS["basic_pack"].rarities
    rng = random.Random(20240515)
    draws = 100_000

    counts = Counter(table.draw(rng) for _ in range(draws))

    for entry in table.entries:
        assert abs(counts[entry.value] / draws - entry.weight / 100) < 0.02


def test_roll_on_boundary_selects_earlier_entry() -> None:
    table = WeightedTable([WeightedEntry("a", 25), WeightedEntry("b", 75)])

    assert table.draw(ScriptedRandom([0.25])) == "a"
    assert table.draw(ScriptedRandom([0.25001])) == "b"
    assert table.draw(ScriptedRandom([0.0])) == "a"


def test_roll_beyond_total_falls_back_to_first_entry() -> None:
    logger = StructuredLogger()
    table = WeightedTable([WeightedEntry("a", 20), WeightedEntry("b", 30)], name="short")

    assert table.draw(ScriptedRandom([0.9]), logger=logger) == "a"
    warnings = logger.events("weighted_draw_fallback", level="warning")
    assert len(warnings) == 1
    assert warnings[0]["table"] == "short"


def test_zero_weight_entry_only_wins_exact_zero_roll() -> None:
    table = WeightedTable([WeightedEntry("never", 0), WeightedEntry("always", 100)])

    assert table.draw(ScriptedRandom([0.5])) == "always"


@pytest.mark.parametrize(
    "entries",
    [[], [WeightedEntry("a", -1)]],
)
def test_invalid_tables_are_rejected(entries) -> None:
    with pytest.raises(ValueError):
        WeightedTable(entries)


def test_default_spin_table_shape() -> None:
    prizes = DEFAULT_SPIN_TABLE.values()

    assert DEFAULT_SPIN_TABLE.total_weight == pytest.approx(100)
    assert len(DEFAULT_SPIN_TABLE) == 8
    assert prizes[0].kind == PRIZE_POINTS and prizes[0].amount == 10
    assert prizes[-1].kind == PRIZE_BONUS and prizes[-1].code == "double_next"
    assert prizes[-1].rarity is Rarity.LEGENDARY


def test_parse_spin_table_splits_amounts_and_codes() -> None:
    table = parse_spin_table(
        [
            {"type": "points", "value": 5, "label": "5 Points", "probability": 60},
            {"type": "mystery", "value": "box", "label": "Mystery", "probability": 40, "rarity": "epic"},
        ],
        name="custom",
    )

    points, mystery = table.values()
    assert table.name == "custom"
    assert (points.amount, points.code, points.rarity) == (5, None, Rarity.COMMON)
    assert (mystery.kind, mystery.amount, mystery.code, mystery.rarity) == ("mystery", 0, "box", Rarity.EPIC)


def test_pack_configuration_is_validated() -> None:
    rarities = rarity_table(100, 0, 0, 0, name="test")

    with pytest.raises(ValueError):
        PackConfig("broken", "Broken", cost=-1, size=5, rarities=rarities)
    with pytest.raises(ValueError):
        PackConfig("empty", "Empty", cost=10, size=0, rarities=rarities)


def test_default_packs_sum_to_one_hundred() -> None:
    for pack in DEFAULT_PACKS.values():
        assert pack.rarities.total_weight == pytest.approx(100)
        assert pack.size == 5


@pytest.mark.parametrize("rarity", list(Rarity))
def test_catalog_has_items_of_every_rarity(rarity: Rarity) -> None:
    assert items_of_rarity(COLLECTIBLE_CATALOG, rarity)


def test_catalog_ids_are_unique() -> None:
    ids = [item.item_id for item in COLLECTIBLE_CATALOG]

    assert len(ids) == len(set(ids)) == 31
