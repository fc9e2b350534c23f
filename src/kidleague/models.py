"""Domain models used by the KidLeague package."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

from .clock import utcnow
from .exceptions import InvalidCategoryError, InvalidScopeError

TASK_STATUS_APPROVED = "approved"
TASK_STATUS_PENDING = "pending"
TASK_STATUS_REJECTED = "rejected"

PROMOTED_STATUS_COMPLETED = "completed"
PROMOTED_STATUS_OPEN = "open"

TRANSACTION_EARNED = "earned"
TRANSACTION_SPENT = "spent"
TRANSACTION_BONUS = "bonus"

CONNECTION_PENDING = "pending"
CONNECTION_ACCEPTED = "accepted"

FEED_WEEKLY_CHAMPION = "weekly_champion"

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _normalise_key(value: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", value.strip()).replace("-", "_").lower()


class Scope(str, Enum):
    """Participant cohorts a ranking can be computed over."""

    FAMILY = "family"
    FRIENDS = "friends"
    PROMOTED_ACTIVITY = "promoted_activity"

    @classmethod
    def parse(cls, value: Union["Scope", str]) -> "Scope":
        if isinstance(value, cls):
            return value
        try:
            return cls(_normalise_key(str(value)))
        except ValueError as exc:
            raise InvalidScopeError(f"Unknown ranking scope: {value!r}") from exc


class Category(str, Enum):
    """Scoring dimensions for leaderboards."""

    EXPERIENCE = "experience"
    TASKS_COMPLETED = "tasks_completed"
    PROMOTED_EARNINGS = "promoted_earnings"
    STREAK = "streak"
    CARE_INTERACTIONS = "care_interactions"

    @classmethod
    def parse(cls, value: Union["Category", str]) -> "Category":
        if isinstance(value, cls):
            return value
        try:
            return cls(_normalise_key(str(value)))
        except ValueError as exc:
            raise InvalidCategoryError(f"Unknown ranking category: {value!r}") from exc

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class Tier(str, Enum):
    """Coarse percentile buckets derived from a rank within a cohort."""

    DIAMOND = "diamond"
    GOLD = "gold"
    SILVER = "silver"
    BRONZE = "bronze"


class Rarity(str, Enum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class ProductType(str, Enum):
    """Randomised reward products a participant can draw from."""

    SPIN = "daily_spin"
    PACK = "collectible_pack"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True, slots=True)
class Window:
    """Inclusive time window used for score aggregation."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError("Window end must not be before its start.")

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    @property
    def length(self) -> timedelta:
        return self.end - self.start + timedelta(microseconds=1)

    def shift(self, periods: int) -> "Window":
        """Return the window moved by ``periods`` whole window lengths."""

        delta = self.length * periods
        return Window(start=self.start + delta, end=self.end + delta)

    def previous(self) -> "Window":
        return self.shift(-1)

    @classmethod
    def week_of(cls, moment: datetime) -> "Window":
        """Return the Monday-to-Sunday week containing ``moment``."""

        monday = moment.date() - timedelta(days=moment.weekday())
        start = datetime.combine(monday, time.min)
        return cls(start=start, end=start + timedelta(days=7) - timedelta(microseconds=1))


# ---------------------------------------------------------------------------
# Activity records (read-only input)
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TaskCompletion:
    participant_id: str
    group_id: str
    submitted_at: datetime
    status: str = TASK_STATUS_APPROVED

    @property
    def approved(self) -> bool:
        return self.status == TASK_STATUS_APPROVED


@dataclass(frozen=True, slots=True)
class CurrencyTransaction:
    participant_id: str
    group_id: str
    amount: int
    created_at: datetime
    subtype: str = TRANSACTION_EARNED
    description: str = ""


@dataclass(frozen=True, slots=True)
class PromotedActivity:
    """An externally brokered, paid task."""

    participant_id: str
    group_id: str
    offered_amount: int
    completed_at: Optional[datetime]
    status: str = PROMOTED_STATUS_COMPLETED


@dataclass(frozen=True, slots=True)
class CareInteraction:
    participant_id: str
    group_id: str
    occurred_at: datetime


ActivityRecord = Union[TaskCompletion, CurrencyTransaction, PromotedActivity, CareInteraction]


@dataclass(slots=True)
class Participant:
    """Directory entry for a child taking part in the league."""

    participant_id: str
    group_id: str
    name: str
    avatar: Optional[str] = None
    level: int = 1


# ---------------------------------------------------------------------------
# Rankings and champions
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class RankEntry:
    participant_id: str
    score: int
    rank: int
    tier: Tier
    title: str
    display_name: str
    avatar: Optional[str] = None
    previous_rank: Optional[int] = None

    @property
    def rank_change(self) -> Optional[int]:
        """Positive when the participant climbed since the previous period."""

        if self.previous_rank is None:
            return None
        return self.previous_rank - self.rank


@dataclass(slots=True)
class RankingResult:
    scope: Scope
    category: Category
    window: Window
    entries: Tuple[RankEntry, ...] = ()

    @property
    def window_start(self) -> datetime:
        return self.window.start

    @property
    def window_end(self) -> datetime:
        return self.window.end

    @property
    def leader(self) -> Optional[RankEntry]:
        return self.entries[0] if self.entries else None

    def entry_for(self, participant_id: str) -> Optional[RankEntry]:
        return next((entry for entry in self.entries if entry.participant_id == participant_id), None)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(frozen=True, slots=True)
class SnapshotRow:
    participant_id: str
    score: int
    rank: int
    tier: Tier
    title: str


@dataclass(slots=True)
class RankSnapshot:
    """Persisted copy of a ranking for historical display."""

    group_id: str
    scope: Scope
    category: Category
    window_start: datetime
    window_end: datetime
    rows: Tuple[SnapshotRow, ...] = ()
    created_at: datetime = field(default_factory=utcnow)

    @property
    def key(self) -> tuple[str, Scope, Category, datetime]:
        return (self.group_id, self.scope, self.category, self.window_start)

    @classmethod
    def from_result(cls, group_id: str, result: RankingResult) -> "RankSnapshot":
        rows = tuple(
            SnapshotRow(
                participant_id=entry.participant_id,
                score=entry.score,
                rank=entry.rank,
                tier=entry.tier,
                title=entry.title,
            )
            for entry in result.entries
        )
        return cls(
            group_id=group_id,
            scope=result.scope,
            category=result.category,
            window_start=result.window_start,
            window_end=result.window_end,
            rows=rows,
        )


@dataclass(slots=True)
class ChampionRecord:
    group_id: str
    participant_id: str
    scope: Scope
    category: Category
    window_start: datetime
    window_end: datetime
    score: int
    rewards: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def key(self) -> tuple[str, str, Scope, Category, datetime]:
        return (self.group_id, self.participant_id, self.scope, self.category, self.window_start)


@dataclass(slots=True)
class ChampionStatus:
    is_champion: bool
    categories: Tuple[Category, ...] = ()
    golden_effect_active: bool = False
    golden_effect_expires_at: Optional[datetime] = None


@dataclass(slots=True)
class RankingSettings:
    """Per-group switches controlling which leaderboards are shown."""

    group_id: str
    rankings_enabled: bool = True
    family_enabled: bool = True
    friends_enabled: bool = False
    promoted_enabled: bool = True
    updated_at: datetime = field(default_factory=utcnow)

    def allows(self, scope: Scope) -> bool:
        if not self.rankings_enabled:
            return False
        return {
            Scope.FAMILY: self.family_enabled,
            Scope.FRIENDS: self.friends_enabled,
            Scope.PROMOTED_ACTIVITY: self.promoted_enabled,
        }[scope]


# ---------------------------------------------------------------------------
# Economy
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class DynamicPricingConfig:
    threshold: int = 500
    max_correction: Decimal = Decimal("1.5")
    correction_step: Decimal = Decimal("0.1")
    stabilization_period_days: int = 7

    def __post_init__(self) -> None:
        if self.threshold <= 0:
            raise ValueError("Inflation threshold must be greater than zero.")
        if Decimal(self.max_correction) < Decimal("1"):
            raise ValueError("max_correction must be at least 1.0.")
        if Decimal(self.correction_step) <= 0:
            raise ValueError("correction_step must be greater than zero.")


@dataclass(frozen=True, slots=True)
class EconomicMetrics:
    """Currency-flow measurements for one window."""

    average_balance: float
    total_earned: int = 0
    total_spent: int = 0
    inflation_rate: float = 0.0

    @classmethod
    def from_balances(
        cls,
        balances: Sequence[int],
        *,
        earned: int,
        spent: int,
        previous_average: Optional[float] = None,
    ) -> "EconomicMetrics":
        """Derive a snapshot from raw balances and this window's flows."""

        average = sum(balances) / len(balances) if balances else 0.0
        if previous_average:
            inflation = (average - previous_average) / previous_average * 100
        else:
            inflation = 0.0
        return cls(
            average_balance=average,
            total_earned=earned,
            total_spent=spent,
            inflation_rate=inflation,
        )


@dataclass(slots=True)
class EconomicHealth:
    score: int
    status: HealthStatus
    recommendations: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PointSink:
    """Catalog-priced item that removes currency from circulation."""

    sink_id: str
    name: str
    cost: int
    category: str
    rarity: Rarity
    active: bool = True
    unlock_level: Optional[int] = None
    season: Optional[str] = None
    description: str = ""

    @property
    def seasonal(self) -> bool:
        return self.season is not None


@dataclass(slots=True)
class EconomicDashboard:
    health: EconomicHealth
    inflation_correction: Decimal
    recommendations: Tuple[str, ...]
    active_point_sinks: Tuple[PointSink, ...]


# ---------------------------------------------------------------------------
# Randomised rewards
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CurrencyReward:
    amount: int


@dataclass(frozen=True, slots=True)
class ExperienceReward:
    amount: int


@dataclass(frozen=True, slots=True)
class FlatBonusReward:
    """Immediate flat currency bonus standing in for a deferred effect."""

    amount: int
    code: str = "double_next"


@dataclass(frozen=True, slots=True)
class CollectibleReward:
    item_id: str
    name: str
    premium_variant: bool = False


@dataclass(frozen=True, slots=True)
class DuplicateCompensation:
    item_id: str
    amount: int


RewardPayload = Union[
    CurrencyReward,
    ExperienceReward,
    FlatBonusReward,
    CollectibleReward,
    DuplicateCompensation,
]


@dataclass(frozen=True, slots=True)
class RewardOutcome:
    product_type: ProductType
    rarity: Rarity
    payload: RewardPayload
    label: str = ""
    is_duplicate: bool = False
    is_special_effect: bool = False


@dataclass(frozen=True, slots=True)
class PackOpening:
    pack_id: str
    cost: int
    outcomes: Tuple[RewardOutcome, ...]

    @property
    def duplicates(self) -> Tuple[RewardOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes if outcome.is_duplicate)


@dataclass(slots=True)
class DailyAllowance:
    participant_id: str
    product_type: ProductType
    last_grant_date: date
    units_available: int = 0
    lifetime_units_used: int = 0

    def roll_to(self, today: date, daily_grant: int) -> bool:
        """Reset the allowance when ``today`` is a later day; return ``True`` if reset."""

        if self.last_grant_date < today:
            self.last_grant_date = today
            self.units_available = daily_grant
            return True
        return False

    def consume(self) -> None:
        if self.units_available <= 0:
            raise ValueError("No units available to consume.")
        self.units_available -= 1
        self.lifetime_units_used += 1

    def refund(self) -> None:
        self.units_available += 1
        self.lifetime_units_used = max(self.lifetime_units_used - 1, 0)


@dataclass(frozen=True, slots=True)
class SpinStatus:
    units_available: int
    next_reset: datetime


@dataclass(slots=True)
class Achievement:
    participant_id: str
    group_id: str
    achievement_id: str
    name: str
    description: str = ""
    category: str = "special"
    xp_reward: int = 0
    awarded_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class FeedEvent:
    group_id: str
    participant_id: str
    type: str
    message: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
