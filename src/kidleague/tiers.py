"""Tier and title assignment for leaderboard positions."""

from __future__ import annotations

from fractions import Fraction
from typing import Dict, Mapping, Tuple, Union

from .exceptions import InvalidCategoryError
from .models import Category, Tier

DEFAULT_TITLE = "Helper"

_TIER_THRESHOLDS: Tuple[Tuple[Fraction, Tier], ...] = (
    (Fraction(9, 10), Tier.DIAMOND),
    (Fraction(7, 10), Tier.GOLD),
    (Fraction(1, 2), Tier.SILVER),
)

TITLES: Mapping[Tier, Mapping[Category, str]] = {
    Tier.DIAMOND: {
        Category.EXPERIENCE: "XP Champion",
        Category.TASKS_COMPLETED: "Chore Royalty",
        Category.PROMOTED_EARNINGS: "Power Task Hero",
        Category.STREAK: "Streak Legend",
        Category.CARE_INTERACTIONS: "Extraordinary Pet Keeper",
    },
    Tier.GOLD: {
        Category.EXPERIENCE: "XP Hero",
        Category.TASKS_COMPLETED: "Super Helper",
        Category.PROMOTED_EARNINGS: "Power Task Star",
        Category.STREAK: "Streak Champion",
        Category.CARE_INTERACTIONS: "Pet Keeper",
    },
    Tier.SILVER: {
        Category.EXPERIENCE: "XP Expert",
        Category.TASKS_COMPLETED: "Handy Helper",
        Category.PROMOTED_EARNINGS: "Power Task Pal",
        Category.STREAK: "Streak Star",
        Category.CARE_INTERACTIONS: "Pet Helper",
    },
    Tier.BRONZE: {
        Category.EXPERIENCE: "XP Starter",
        Category.TASKS_COMPLETED: "New Helper",
        Category.PROMOTED_EARNINGS: "Power Task Buddy",
        Category.STREAK: "Streak Starter",
        Category.CARE_INTERACTIONS: "Pet Friend",
    },
}


def tier_for_rank(rank: int, cohort_size: int) -> Tier:
    """Return the tier for a 1-based ``rank`` within a cohort of ``cohort_size``."""

    if cohort_size < 1:
        raise ValueError("Cohort size must be at least 1.")
    if not 1 <= rank <= cohort_size:
        raise ValueError(f"Rank {rank} is outside a cohort of {cohort_size}.")
    # Exact arithmetic so boundaries such as 9/10 are not lost to float rounding.
    percentile = Fraction(cohort_size - rank + 1, cohort_size)
    for threshold, tier in _TIER_THRESHOLDS:
        if percentile >= threshold:
            return tier
    return Tier.BRONZE


def title_for(tier: Tier, category: Union[Category, str]) -> str:
    """Look up the display title; unknown categories fall back to a generic title."""

    titles: Dict[Category, str] = dict(TITLES.get(tier, {}))
    try:
        key = Category.parse(category)
    except InvalidCategoryError:
        return DEFAULT_TITLE
    return titles.get(key, DEFAULT_TITLE)


def classify(rank: int, cohort_size: int, category: Union[Category, str]) -> Tuple[Tier, str]:
    tier = tier_for_rank(rank, cohort_size)
    return tier, title_for(tier, category)


__all__ = ["DEFAULT_TITLE", "TITLES", "classify", "tier_for_rank", "title_for"]
