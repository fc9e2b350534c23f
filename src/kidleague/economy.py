"""Inflation control, economic health scoring and point-sink availability."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_FLOOR, Decimal
from typing import List, Mapping, Optional, Sequence, Tuple

from .clock import utcnow
from .models import (
    DynamicPricingConfig,
    EconomicDashboard,
    EconomicHealth,
    EconomicMetrics,
    HealthStatus,
    PointSink,
    Rarity,
)
from .money import AmountLike, ceil_points, require_non_negative, to_ratio

NO_CORRECTION = Decimal("1.0")

EURO_TO_POINTS = "euro_to_points"
POINTS_TO_EURO = "points_to_euro"

# Month in which each seasonal sink is offered.
SEASONS: Mapping[str, int] = {
    "halloween": 10,
    "christmas": 12,
}

DEFAULT_PRICING = DynamicPricingConfig()

DEFAULT_POINT_SINKS: Tuple[PointSink, ...] = (
    PointSink(
        sink_id="avatar_hat_rare",
        name="Rare Hat",
        cost=150,
        category="avatar",
        rarity=Rarity.RARE,
        unlock_level=15,
        description="A cool rare hat for your avatar",
    ),
    PointSink(
        sink_id="avatar_background_epic",
        name="Epic Background",
        cost=300,
        category="avatar",
        rarity=Rarity.EPIC,
        unlock_level=25,
        description="A spectacular background for your profile",
    ),
    PointSink(
        sink_id="pet_food_premium",
        name="Premium Pet Food",
        cost=75,
        category="pet",
        rarity=Rarity.COMMON,
        unlock_level=5,
        description="Special food for extra fast growth",
    ),
    PointSink(
        sink_id="pet_house_luxury",
        name="Luxury Pet House",
        cost=200,
        category="pet",
        rarity=Rarity.RARE,
        unlock_level=20,
        description="A beautiful house for your virtual pet",
    ),
    PointSink(
        sink_id="event_halloween_costume",
        name="Halloween Costume",
        cost=100,
        category="event",
        rarity=Rarity.RARE,
        active=False,
        season="halloween",
        description="Special Halloween costume (seasonal)",
    ),
    PointSink(
        sink_id="event_christmas_sweater",
        name="Christmas Sweater",
        cost=100,
        category="event",
        rarity=Rarity.RARE,
        active=False,
        season="christmas",
        description="Festive Christmas sweater (seasonal)",
    ),
    PointSink(
        sink_id="donation_multiplier_2x",
        name="2x Donation Multiplier",
        cost=250,
        category="donation",
        rarity=Rarity.EPIC,
        unlock_level=30,
        description="Your donations count double for a week",
    ),
)


@dataclass(frozen=True, slots=True)
class ExchangeRates:
    """Conversion rates for externally paid tasks."""

    euro_to_points: int = 100
    points_to_euro: int = 150


DEFAULT_RATES = ExchangeRates()


def inflation_correction(
    metrics: EconomicMetrics,
    config: DynamicPricingConfig = DEFAULT_PRICING,
) -> Decimal:
    """Return the price multiplier for the measured average balance.

    Each whole multiple of ``threshold`` beyond the first adds one
    ``correction_step``; the result never exceeds ``max_correction``.
    """

    average = to_ratio(metrics.average_balance)
    threshold = Decimal(config.threshold)
    if average <= threshold:
        return NO_CORRECTION
    breaches = (average / threshold).to_integral_value(rounding=ROUND_FLOOR) - 1
    correction = NO_CORRECTION + breaches * to_ratio(config.correction_step)
    return min(correction, to_ratio(config.max_correction))


def apply_dynamic_pricing(base_cost: int, correction: AmountLike) -> int:
    require_non_negative(base_cost, name="base_cost")
    return ceil_points(Decimal(base_cost) * to_ratio(correction))


def economic_health(metrics: EconomicMetrics) -> EconomicHealth:
    recommendations: List[str] = []
    score = 100

    if metrics.inflation_rate > 20:
        score -= 30
        recommendations.append("High inflation detected - consider price adjustments")
    elif metrics.inflation_rate > 10:
        score -= 15
        recommendations.append("Moderate inflation - monitor progress")

    # Nothing earned means there is no ratio to judge.
    if metrics.total_earned > 0:
        spending_ratio = metrics.total_spent / metrics.total_earned
        if spending_ratio < 0.3:
            score -= 25
            recommendations.append("Too little spending - points are piling up")
        elif spending_ratio < 0.6:
            score -= 10
            recommendations.append("Average spending - keep an eye on it")

    if metrics.average_balance > 1000:
        score -= 20
        recommendations.append("High average balance - consider new rewards")
    elif metrics.average_balance > 500:
        score -= 10
        recommendations.append("Average balance above normal")

    if score >= 80:
        status = HealthStatus.HEALTHY
    elif score >= 60:
        status = HealthStatus.WARNING
    else:
        status = HealthStatus.CRITICAL
    return EconomicHealth(score=score, status=status, recommendations=tuple(recommendations))


def is_in_season(sink: PointSink, today: date) -> bool:
    if sink.season is None:
        return False
    return SEASONS.get(sink.season) == today.month


def active_point_sinks(
    level: int,
    sinks: Sequence[PointSink] = DEFAULT_POINT_SINKS,
    today: Optional[date] = None,
) -> Tuple[PointSink, ...]:
    """Return the sinks a participant at ``level`` can currently buy."""

    today = today or utcnow().date()
    available: List[PointSink] = []
    for sink in sinks:
        if sink.unlock_level is not None and level < sink.unlock_level:
            continue
        if sink.seasonal:
            if is_in_season(sink, today):
                available.append(sink)
            continue
        if sink.active:
            available.append(sink)
    return tuple(available)


def convert_external_payment(
    amount: AmountLike,
    direction: str,
    rates: ExchangeRates = DEFAULT_RATES,
) -> Decimal:
    """Convert between euros and points for externally paid tasks."""

    value = Decimal(str(amount))
    if direction == EURO_TO_POINTS:
        return value * rates.euro_to_points
    if direction == POINTS_TO_EURO:
        return to_ratio(value / rates.points_to_euro)
    raise ValueError(f"Unknown conversion direction: {direction!r}")


def economic_dashboard(
    metrics: EconomicMetrics,
    config: DynamicPricingConfig = DEFAULT_PRICING,
    *,
    level: int = 1,
    today: Optional[date] = None,
    sinks: Sequence[PointSink] = DEFAULT_POINT_SINKS,
) -> EconomicDashboard:
    health = economic_health(metrics)
    correction = inflation_correction(metrics, config)
    available = active_point_sinks(level, sinks, today)

    recommendations = list(health.recommendations)
    if correction > Decimal("1.1"):
        recommendations.append("Price corrections active - monitor impact")
    if len(available) < 5:
        recommendations.append("Consider adding new rewards")
    return EconomicDashboard(
        health=health,
        inflation_correction=correction,
        recommendations=tuple(recommendations),
        active_point_sinks=available,
    )


__all__ = [
    "DEFAULT_POINT_SINKS",
    "DEFAULT_PRICING",
    "DEFAULT_RATES",
    "EURO_TO_POINTS",
    "POINTS_TO_EURO",
    "SEASONS",
    "ExchangeRates",
    "active_point_sinks",
    "apply_dynamic_pricing",
    "convert_external_payment",
    "economic_dashboard",
    "economic_health",
    "inflation_correction",
    "is_in_season",
]
