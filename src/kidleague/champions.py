"""Weekly champion detection and one-time reward issuance."""

from __future__ import annotations

from typing import List, Optional

from .admin import SYSTEM_ACTOR, AuditLog
from .clock import Clock, SystemClock
from .config import (
    CHAMPION_BONUS_SPINS,
    CHAMPION_EXPERIENCE_BONUS,
    CHAMPION_REWARD_MANIFEST,
    DEFAULT_DAILY_SPINS,
)
from .exceptions import DuplicateRecordError
from .models import (
    FEED_WEEKLY_CHAMPION,
    Achievement,
    Category,
    ChampionRecord,
    ChampionStatus,
    ProductType,
    RankEntry,
    Scope,
    Window,
)
from .ops import StructuredLogger
from .ranking import RankingEngine
from .store import AllowanceStore, BalanceMutator, ChampionStore, FeedSink


class ChampionProcessor:
    """Reward the rank-1 participant of every leaderboard for the last completed week.

    Running :meth:`process` repeatedly for the same week is safe: the champion
    store's uniqueness constraint rejects the second insert and the reward
    sequence is skipped.
    """

    def __init__(
        self,
        ranking: RankingEngine,
        champions: ChampionStore,
        allowances: AllowanceStore,
        mutator: BalanceMutator,
        feed: FeedSink,
        *,
        clock: Clock | None = None,
        logger: StructuredLogger | None = None,
        audit_log: AuditLog | None = None,
        daily_spins: int = DEFAULT_DAILY_SPINS,
        bonus_xp: int = CHAMPION_EXPERIENCE_BONUS,
    ) -> None:
        self._ranking = ranking
        self._champions = champions
        self._allowances = allowances
        self._mutator = mutator
        self._feed = feed
        self._clock = clock or SystemClock()
        self._logger = logger or StructuredLogger()
        self._audit_log = audit_log or AuditLog(clock=self._clock)
        self._daily_spins = daily_spins
        self._bonus_xp = bonus_xp

    def champion_window(self) -> Window:
        """Return the most recently completed week."""

        return Window.week_of(self._clock.now()).previous()

    def process(self, group_id: str) -> List[ChampionRecord]:
        window = self.champion_window()
        issued: List[ChampionRecord] = []
        for scope in Scope:
            for category in Category:
                try:
                    record = self._process_pair(group_id, scope, category, window)
                except Exception as exc:
                    self._logger.error(
                        "champion_failed",
                        group=group_id,
                        scope=scope.value,
                        category=category.value,
                        window_start=window.start.isoformat(),
                        error=repr(exc),
                    )
                    continue
                if record is not None:
                    issued.append(record)
        self._logger.log(
            "champions_processed",
            group=group_id,
            window_start=window.start.isoformat(),
            issued=len(issued),
        )
        return issued

    def status(self, group_id: str, participant_id: str) -> ChampionStatus:
        window = self.champion_window()
        records = self._champions.list_champions(group_id, participant_id, window.start)
        if not records:
            return ChampionStatus(is_champion=False)
        categories = tuple(dict.fromkeys(record.category for record in records))
        return ChampionStatus(
            is_champion=True,
            categories=categories,
            golden_effect_active=True,
            golden_effect_expires_at=window.shift(2).start,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _process_pair(
        self,
        group_id: str,
        scope: Scope,
        category: Category,
        window: Window,
    ) -> Optional[ChampionRecord]:
        result = self._ranking.compute_ranking(group_id, scope, category, window)
        champion = result.leader
        if champion is None:
            return None
        record = ChampionRecord(
            group_id=group_id,
            participant_id=champion.participant_id,
            scope=scope,
            category=category,
            window_start=window.start,
            window_end=window.end,
            score=champion.score,
            rewards={
                "golden_crown_badge": True,
                "extra_spin": True,
                "golden_pet_effect": True,
                "champion_title": f"{category.label} Champion",
            },
            created_at=self._clock.now(),
        )
        try:
            self._champions.insert_champion(record)
        except DuplicateRecordError:
            self._logger.debug(
                "champion_already_rewarded",
                group=group_id,
                participant=champion.participant_id,
                scope=scope.value,
                category=category.value,
                window_start=window.start.isoformat(),
            )
            return None
        self._award(group_id, champion, scope, category, window)
        return record

    def _award(
        self,
        group_id: str,
        champion: RankEntry,
        scope: Scope,
        category: Category,
        window: Window,
    ) -> None:
        participant_id = champion.participant_id
        self._grant_bonus_spin(participant_id)
        self._mutator.add_achievement(
            Achievement(
                participant_id=participant_id,
                group_id=group_id,
                achievement_id=f"weekly_champion_{scope.value}_{category.value}_{window.start:%Y%m%d}",
                name=f"Weekly Champion - {category.label}",
                description=f"Congratulations! You were this week's champion in {category.label}!",
                category="special",
                xp_reward=self._bonus_xp,
                awarded_at=self._clock.now(),
            )
        )
        self._mutator.adjust_experience(participant_id, self._bonus_xp)
        self._feed.publish_event(
            group_id,
            participant_id,
            FEED_WEEKLY_CHAMPION,
            f"{champion.display_name} is this week's champion in {category.label}! Congratulations!",
            {
                "scope": scope.value,
                "category": category.value,
                "window_start": window.start.isoformat(),
                "rewards": list(CHAMPION_REWARD_MANIFEST),
            },
        )
        self._audit_log.record(
            SYSTEM_ACTOR,
            "champion_rewarded",
            participant_id,
            details={"group": group_id, "scope": scope.value, "category": category.value},
        )
        self._logger.log(
            "champion_rewarded",
            group=group_id,
            participant=participant_id,
            scope=scope.value,
            category=category.value,
            score=champion.score,
        )

    def _grant_bonus_spin(self, participant_id: str) -> None:
        self._allowances.grant_units(
            participant_id, ProductType.SPIN, self._clock.today(), self._daily_spins, CHAMPION_BONUS_SPINS
        )


__all__ = ["ChampionProcessor"]
