"""Configuration constants and environment-driven settings for KidLeague."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import load_dotenv

from .models import DynamicPricingConfig
from .money import to_ratio

load_dotenv()

DATABASE_URL = os.environ.get("KIDLEAGUE_DATABASE_URL", "sqlite:///kidleague.db")

CHAMPION_EXPERIENCE_BONUS = 50
CHAMPION_BONUS_SPINS = 1
CHAMPION_REWARD_MANIFEST = ("golden_crown", "extra_spin", "golden_pet", "xp_bonus")
DUPLICATE_COMPENSATION = 10
FLAT_BONUS_AMOUNT = 25
GUARANTEED_RARITY_CHANCE = 0.3
PREMIUM_VARIANT_CHANCE = 0.1
STREAK_LOOKBACK_DAYS = 7
DEFAULT_DAILY_SPINS = 1
SPIN_MILESTONES: Mapping[int, tuple[str, str, int]] = {
    1: ("first_spin", "First Spin", 10),
    7: ("spin_week", "Spin Champion", 50),
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    return int(raw) if raw else default


@dataclass(slots=True)
class EngineSettings:
    """Tunable knobs shared by the ranking, economy and reward components."""

    pricing: DynamicPricingConfig = field(default_factory=DynamicPricingConfig)
    daily_spins: int = DEFAULT_DAILY_SPINS
    streak_follows_window: bool = False
    champion_bonus_xp: int = CHAMPION_EXPERIENCE_BONUS
    duplicate_compensation: int = DUPLICATE_COMPENSATION
    log_file: Optional[str] = None

    def __post_init__(self) -> None:
        if self.daily_spins < 0:
            raise ValueError("daily_spins must be zero or greater.")

    @classmethod
    def from_env(cls) -> "EngineSettings":
        defaults = DynamicPricingConfig()
        pricing = DynamicPricingConfig(
            threshold=_env_int("KIDLEAGUE_INFLATION_THRESHOLD", defaults.threshold),
            max_correction=to_ratio(os.environ.get("KIDLEAGUE_MAX_CORRECTION") or defaults.max_correction),
            correction_step=to_ratio(os.environ.get("KIDLEAGUE_CORRECTION_STEP") or defaults.correction_step),
            stabilization_period_days=defaults.stabilization_period_days,
        )
        return cls(
            pricing=pricing,
            daily_spins=_env_int("KIDLEAGUE_DAILY_SPINS", DEFAULT_DAILY_SPINS),
            streak_follows_window=_env_flag("KIDLEAGUE_STREAK_FOLLOWS_WINDOW", False),
            log_file=os.environ.get("KIDLEAGUE_LOG_FILE") or None,
        )


__all__ = [
    "DATABASE_URL",
    "CHAMPION_EXPERIENCE_BONUS",
    "CHAMPION_BONUS_SPINS",
    "CHAMPION_REWARD_MANIFEST",
    "DUPLICATE_COMPENSATION",
    "FLAT_BONUS_AMOUNT",
    "GUARANTEED_RARITY_CHANCE",
    "PREMIUM_VARIANT_CHANCE",
    "STREAK_LOOKBACK_DAYS",
    "DEFAULT_DAILY_SPINS",
    "SPIN_MILESTONES",
    "EngineSettings",
]
