"""KidLeague package: rankings, champions, inflation control and randomised rewards for family chores."""

from .admin import AuditEvent, AuditLog
from .api import ApiExporter
from .champions import ChampionProcessor
from .clock import FixedClock, SystemClock
from .config import EngineSettings
from .draws import DEFAULT_PACKS, DEFAULT_SPIN_TABLE, PackConfig, WeightedEntry, WeightedTable
from .economy import (
    DEFAULT_POINT_SINKS,
    active_point_sinks,
    apply_dynamic_pricing,
    convert_external_payment,
    economic_dashboard,
    economic_health,
    inflation_correction,
)
from .exceptions import (
    DuplicateRecordError,
    InsufficientFundsError,
    InvalidCategoryError,
    InvalidPricingConfigError,
    InvalidScopeError,
    KidLeagueError,
    NoUnitsAvailableError,
    ParticipantNotFoundError,
    RewardMutationError,
    UnknownProductError,
)
from .models import (
    Category,
    ChampionRecord,
    ChampionStatus,
    DynamicPricingConfig,
    EconomicDashboard,
    EconomicHealth,
    EconomicMetrics,
    HealthStatus,
    PackOpening,
    Participant,
    PointSink,
    ProductType,
    RankEntry,
    RankingResult,
    RankingSettings,
    RankSnapshot,
    Rarity,
    RewardOutcome,
    Scope,
    Tier,
    Window,
)
from .ops import StructuredLogger
from .ranking import RankingEngine
from .rewards import RewardGenerator
from .scoring import ScoreAggregator
from .service import GamificationEngine
from .store import InMemoryStore
from .tiers import classify, tier_for_rank, title_for

__all__ = [
    "ApiExporter",
    "AuditEvent",
    "AuditLog",
    "Category",
    "ChampionProcessor",
    "ChampionRecord",
    "ChampionStatus",
    "DEFAULT_PACKS",
    "DEFAULT_POINT_SINKS",
    "DEFAULT_SPIN_TABLE",
    "DuplicateRecordError",
    "DynamicPricingConfig",
    "EconomicDashboard",
    "EconomicHealth",
    "EconomicMetrics",
    "EngineSettings",
    "FixedClock",
    "GamificationEngine",
    "HealthStatus",
    "InMemoryStore",
    "InsufficientFundsError",
    "InvalidCategoryError",
    "InvalidPricingConfigError",
    "InvalidScopeError",
    "KidLeagueError",
    "NoUnitsAvailableError",
    "PackConfig",
    "PackOpening",
    "Participant",
    "ParticipantNotFoundError",
    "PointSink",
    "ProductType",
    "RankEntry",
    "RankSnapshot",
    "RankingEngine",
    "RankingResult",
    "RankingSettings",
    "Rarity",
    "RewardGenerator",
    "RewardMutationError",
    "RewardOutcome",
    "ScoreAggregator",
    "Scope",
    "StructuredLogger",
    "SystemClock",
    "Tier",
    "UnknownProductError",
    "WeightedEntry",
    "WeightedTable",
    "Window",
    "active_point_sinks",
    "apply_dynamic_pricing",
    "classify",
    "convert_external_payment",
    "economic_dashboard",
    "economic_health",
    "inflation_correction",
    "tier_for_rank",
    "title_for",
]
