"""High level engine wiring the ranking, champion, economy and reward components."""

from __future__ import annotations

import random
from datetime import date
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Union

from .admin import AuditLog
from .champions import ChampionProcessor
from .clock import Clock, SystemClock
from .config import EngineSettings
from .draws import (
    COLLECTIBLE_CATALOG,
    DEFAULT_PACKS,
    DEFAULT_SPIN_TABLE,
    CollectibleItem,
    PackConfig,
    RandomSource,
    SpinPrize,
    WeightedTable,
)
from .economy import DEFAULT_POINT_SINKS, apply_dynamic_pricing, economic_dashboard, inflation_correction
from .models import (
    Category,
    ChampionRecord,
    ChampionStatus,
    DynamicPricingConfig,
    EconomicDashboard,
    EconomicMetrics,
    PackOpening,
    PointSink,
    RankingResult,
    RankingSettings,
    RankSnapshot,
    RewardOutcome,
    Scope,
    SpinStatus,
    Window,
)
from .ops import StructuredLogger
from .ranking import RankingEngine
from .rewards import RewardGenerator
from .scoring import ScoreAggregator
from .store import EngineStore


class GamificationEngine:
    """Single entry point for the surrounding application.

    ``store`` must implement every collaborator interface from
    :mod:`kidleague.store`; both :class:`~kidleague.store.InMemoryStore` and
    :class:`~kidleague.persistence.SqlStore` do.
    """

    def __init__(
        self,
        store: EngineStore,
        *,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        rng: RandomSource | None = None,
        logger: StructuredLogger | None = None,
        audit_log: AuditLog | None = None,
        spin_table: WeightedTable[SpinPrize] = DEFAULT_SPIN_TABLE,
        packs: Mapping[str, PackConfig] = DEFAULT_PACKS,
        catalog: Sequence[CollectibleItem] = COLLECTIBLE_CATALOG,
        point_sinks: Sequence[PointSink] = DEFAULT_POINT_SINKS,
    ) -> None:
        self.store = store
        self.settings = settings or EngineSettings()
        self.clock = clock or SystemClock()
        self.logger = logger or StructuredLogger(
            path=Path(self.settings.log_file) if self.settings.log_file else None
        )
        self.audit_log = audit_log or AuditLog(clock=self.clock)
        self.point_sinks = tuple(point_sinks)
        self.aggregator = ScoreAggregator(
            store,
            clock=self.clock,
            streak_follows_window=self.settings.streak_follows_window,
        )
        self.ranking = RankingEngine(
            store,
            store,
            self.aggregator,
            snapshots=store,
            logger=self.logger,
        )
        self.champions = ChampionProcessor(
            self.ranking,
            store,
            store,
            store,
            store,
            clock=self.clock,
            logger=self.logger,
            audit_log=self.audit_log,
            daily_spins=self.settings.daily_spins,
            bonus_xp=self.settings.champion_bonus_xp,
        )
        self.rewards = RewardGenerator(
            store,
            store,
            store,
            rng=rng or random.Random(),
            clock=self.clock,
            logger=self.logger,
            audit_log=self.audit_log,
            spin_table=spin_table,
            packs=packs,
            catalog=catalog,
            daily_spins=self.settings.daily_spins,
            duplicate_compensation=self.settings.duplicate_compensation,
        )

    # ------------------------------------------------------------------
    # Rankings
    # ------------------------------------------------------------------
    def current_window(self) -> Window:
        return Window.week_of(self.clock.now())

    def compute_ranking(
        self,
        group_id: str,
        scope: Union[Scope, str],
        category: Union[Category, str],
        window: Optional[Window] = None,
    ) -> RankingResult:
        return self.ranking.compute_ranking(group_id, scope, category, window or self.current_window())

    def ranking_settings(self, group_id: str) -> RankingSettings:
        settings = self.store.get_ranking_settings(group_id)
        return settings or RankingSettings(group_id=group_id, updated_at=self.clock.now())

    def update_ranking_settings(self, settings: RankingSettings) -> RankingSettings:
        settings.updated_at = self.clock.now()
        self.store.save_ranking_settings(settings)
        self.logger.log(
            "ranking_settings_updated",
            group=settings.group_id,
            rankings_enabled=settings.rankings_enabled,
            friends_enabled=settings.friends_enabled,
        )
        return settings

    def ranking_for_display(
        self,
        group_id: str,
        scope: Union[Scope, str],
        category: Union[Category, str],
        window: Optional[Window] = None,
    ) -> Optional[RankingResult]:
        """Return the ranking, or ``None`` when the group has switched that scope off."""

        resolved = Scope.parse(scope)
        Category.parse(category)
        if not self.ranking_settings(group_id).allows(resolved):
            return None
        return self.compute_ranking(group_id, resolved, category, window)

    def update_weekly_rankings(self, group_id: str, window: Optional[Window] = None) -> List[RankSnapshot]:
        return self.ranking.update_snapshots(group_id, window or self.current_window())

    # ------------------------------------------------------------------
    # Champions
    # ------------------------------------------------------------------
    def process_champions(self, group_id: str) -> List[ChampionRecord]:
        return self.champions.process(group_id)

    def champion_status(self, group_id: str, participant_id: str) -> ChampionStatus:
        return self.champions.status(group_id, participant_id)

    # ------------------------------------------------------------------
    # Economy
    # ------------------------------------------------------------------
    def economic_dashboard(
        self,
        metrics: EconomicMetrics,
        config: Optional[DynamicPricingConfig] = None,
        *,
        level: int = 1,
        today: Optional[date] = None,
    ) -> EconomicDashboard:
        return economic_dashboard(
            metrics,
            config or self.settings.pricing,
            level=level,
            today=today or self.clock.today(),
            sinks=self.point_sinks,
        )

    def adjusted_cost(self, base_cost: int, metrics: EconomicMetrics) -> int:
        """Return ``base_cost`` after the current inflation correction."""

        return apply_dynamic_pricing(base_cost, inflation_correction(metrics, self.settings.pricing))

    # ------------------------------------------------------------------
    # Randomised rewards
    # ------------------------------------------------------------------
    def draw_spin(self, participant_id: str) -> RewardOutcome:
        return self.rewards.draw_spin(participant_id)

    def spin_status(self, participant_id: str) -> SpinStatus:
        return self.rewards.spin_status(participant_id)

    def open_pack(self, participant_id: str, pack_id: str) -> PackOpening:
        return self.rewards.open_pack(participant_id, pack_id)


__all__ = ["GamificationEngine"]
