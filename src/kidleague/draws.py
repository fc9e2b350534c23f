"""Weighted random tables and the reward catalogs drawn from them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple, TypeVar

from .models import Rarity
from .ops import StructuredLogger

T = TypeVar("T")

PRIZE_POINTS = "points"
PRIZE_XP = "xp"
PRIZE_STICKER = "sticker"
PRIZE_AVATAR_ITEM = "avatar_item"
PRIZE_BONUS = "bonus"


class RandomSource(Protocol):
    """The subset of :class:`random.Random` the generators rely on."""

    def random(self) -> float:
        ...

    def choice(self, seq: Sequence[Any]) -> Any:
        ...


@dataclass(frozen=True, slots=True)
class WeightedEntry(Generic[T]):
    value: T
    weight: float


class WeightedTable(Generic[T]):
    """Ordered outcomes with relative weights expressed on a 0-100 scale.

    The weights need not sum to exactly 100. A draw that lands beyond the
    last cumulative weight selects the first entry and logs a warning.
    """

    def __init__(self, entries: Iterable[WeightedEntry[T]], *, name: str = "table") -> None:
        self.entries: Tuple[WeightedEntry[T], ...] = tuple(entries)
        self.name = name
        if not self.entries:
            raise ValueError(f"Weighted table '{name}' needs at least one entry.")
        if any(entry.weight < 0 for entry in self.entries):
            raise ValueError(f"Weighted table '{name}' has a negative weight.")

    @property
    def total_weight(self) -> float:
        return sum(entry.weight for entry in self.entries)

    def values(self) -> List[T]:
        return [entry.value for entry in self.entries]

    def first(self) -> T:
        return self.entries[0].value

    def draw(self, rng: RandomSource, *, logger: Optional[StructuredLogger] = None) -> T:
        roll = rng.random() * 100
        cumulative = 0.0
        for entry in self.entries:
            cumulative += entry.weight
            if cumulative >= roll:
                return entry.value
        if logger is not None:
            logger.warning("weighted_draw_fallback", table=self.name, roll=roll, total=cumulative)
        return self.first()

    def __len__(self) -> int:
        return len(self.entries)


# ---------------------------------------------------------------------------
# Daily spin
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class SpinPrize:
    """One slot on the spin wheel."""

    kind: str
    label: str
    rarity: Rarity
    amount: int = 0
    code: Optional[str] = None


def parse_spin_table(rows: Iterable[Mapping[str, Any]], *, name: str = "daily_spin") -> WeightedTable[SpinPrize]:
    """Build a spin table from plain mappings such as a JSON config block.

    Each row carries ``type``, ``value``, ``label``, ``probability`` and
    ``rarity``. Numeric values become amounts; anything else becomes a code.
    Prize types are not validated here so that unknown types survive until
    the generator can log them.
    """

    entries = []
    for row in rows:
        value = row.get("value")
        numeric = isinstance(value, (int, float)) and not isinstance(value, bool)
        prize = SpinPrize(
            kind=str(row["type"]),
            label=str(row.get("label", "")),
            rarity=Rarity(row.get("rarity", Rarity.COMMON.value)),
            amount=int(value) if numeric else 0,
            code=None if numeric or value is None else str(value),
        )
        entries.append(WeightedEntry(prize, float(row["probability"])))
    return WeightedTable(entries, name=name)


DEFAULT_SPIN_TABLE: WeightedTable[SpinPrize] = parse_spin_table(
    [
        {"type": PRIZE_POINTS, "value": 10, "label": "10 Points", "probability": 30, "rarity": "common"},
        {"type": PRIZE_XP, "value": 25, "label": "25 XP", "probability": 25, "rarity": "common"},
        {"type": PRIZE_POINTS, "value": 25, "label": "25 Points", "probability": 20, "rarity": "rare"},
        {"type": PRIZE_STICKER, "value": "random", "label": "New Sticker", "probability": 15, "rarity": "rare"},
        {"type": PRIZE_XP, "value": 50, "label": "50 XP", "probability": 5, "rarity": "epic"},
        {"type": PRIZE_AVATAR_ITEM, "value": "random", "label": "Avatar Item", "probability": 3, "rarity": "epic"},
        {"type": PRIZE_POINTS, "value": 50, "label": "50 Points", "probability": 1.5, "rarity": "legendary"},
        {
            "type": PRIZE_BONUS,
            "value": "double_next",
            "label": "Double Points Tomorrow!",
            "probability": 0.5,
            "rarity": "legendary",
        },
    ]
)


# ---------------------------------------------------------------------------
# Collectible packs
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CollectibleItem:
    item_id: str
    name: str
    category: str
    rarity: Rarity


@dataclass(frozen=True, slots=True)
class PackConfig:
    pack_id: str
    name: str
    cost: int
    size: int
    rarities: WeightedTable[Rarity]
    guaranteed_rarity: Optional[Rarity] = None

    def __post_init__(self) -> None:
        if self.cost < 0:
            raise ValueError("Pack cost must be zero or greater.")
        if self.size < 1:
            raise ValueError("Pack size must be at least 1.")


def rarity_table(common: float, rare: float, epic: float, legendary: float, *, name: str) -> WeightedTable[Rarity]:
    return WeightedTable(
        [
            WeightedEntry(Rarity.COMMON, common),
            WeightedEntry(Rarity.RARE, rare),
            WeightedEntry(Rarity.EPIC, epic),
            WeightedEntry(Rarity.LEGENDARY, legendary),
        ],
        name=name,
    )


DEFAULT_PACKS: Mapping[str, PackConfig] = {
    pack.pack_id: pack
    for pack in (
        PackConfig(
            pack_id="basic_pack",
            name="Basic Pack",
            cost=25,
            size=5,
            rarities=rarity_table(70, 25, 4.5, 0.5, name="basic_pack"),
        ),
        PackConfig(
            pack_id="premium_pack",
            name="Premium Pack",
            cost=50,
            size=5,
            rarities=rarity_table(40, 45, 13, 2, name="premium_pack"),
            guaranteed_rarity=Rarity.RARE,
        ),
        PackConfig(
            pack_id="legendary_pack",
            name="Legendary Pack",
            cost=100,
            size=5,
            rarities=rarity_table(20, 30, 40, 10, name="legendary_pack"),
            guaranteed_rarity=Rarity.EPIC,
        ),
    )
}


def _items(category: str, *rows: Tuple[str, str, Rarity]) -> Tuple[CollectibleItem, ...]:
    return tuple(CollectibleItem(item_id, name, category, rarity) for item_id, name, rarity in rows)


COLLECTIBLE_CATALOG: Tuple[CollectibleItem, ...] = (
    *_items(
        "animals",
        ("dog", "Dog", Rarity.COMMON),
        ("cat", "Cat", Rarity.COMMON),
        ("elephant", "Elephant", Rarity.RARE),
        ("lion", "Lion", Rarity.RARE),
        ("unicorn", "Unicorn", Rarity.EPIC),
        ("dragon", "Dragon", Rarity.LEGENDARY),
    ),
    *_items(
        "fairy_tales",
        ("cinderella", "Cinderella", Rarity.COMMON),
        ("snow_white", "Snow White", Rarity.COMMON),
        ("little_red", "Little Red Riding Hood", Rarity.RARE),
        ("sleeping_beauty", "Sleeping Beauty", Rarity.EPIC),
        ("fairy_godmother", "Fairy Godmother", Rarity.LEGENDARY),
    ),
    *_items(
        "space",
        ("rocket", "Rocket", Rarity.COMMON),
        ("planet", "Planet", Rarity.COMMON),
        ("alien", "Alien", Rarity.RARE),
        ("spaceship", "Spaceship", Rarity.EPIC),
        ("black_hole", "Black Hole", Rarity.LEGENDARY),
    ),
    *_items(
        "sports",
        ("football", "Football", Rarity.COMMON),
        ("basketball", "Basketball", Rarity.COMMON),
        ("tennis", "Tennis", Rarity.RARE),
        ("swimming", "Swimming", Rarity.EPIC),
        ("olympics", "Olympic Games", Rarity.LEGENDARY),
    ),
    *_items(
        "vehicles",
        ("car", "Car", Rarity.COMMON),
        ("bicycle", "Bicycle", Rarity.COMMON),
        ("motorcycle", "Motorcycle", Rarity.RARE),
        ("helicopter", "Helicopter", Rarity.EPIC),
        ("formula1", "Formula 1", Rarity.LEGENDARY),
    ),
    *_items(
        "food",
        ("pizza", "Pizza", Rarity.COMMON),
        ("ice_cream", "Ice Cream", Rarity.COMMON),
        ("cake", "Cake", Rarity.RARE),
        ("sushi", "Sushi", Rarity.EPIC),
        ("golden_apple", "Golden Apple", Rarity.LEGENDARY),
    ),
)


def items_of_rarity(catalog: Sequence[CollectibleItem], rarity: Rarity) -> List[CollectibleItem]:
    return [item for item in catalog if item.rarity is rarity]


__all__ = [
    "COLLECTIBLE_CATALOG",
    "DEFAULT_PACKS",
    "DEFAULT_SPIN_TABLE",
    "PRIZE_AVATAR_ITEM",
    "PRIZE_BONUS",
    "PRIZE_POINTS",
    "PRIZE_STICKER",
    "PRIZE_XP",
    "CollectibleItem",
    "PackConfig",
    "RandomSource",
    "SpinPrize",
    "WeightedEntry",
    "WeightedTable",
    "items_of_rarity",
    "parse_spin_table",
    "rarity_table",
]
