"""Leaderboard computation across scopes and categories."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Union

from .models import (
    PROMOTED_STATUS_COMPLETED,
    Category,
    RankEntry,
    RankingResult,
    RankSnapshot,
    Scope,
    Window,
)
from .ops import StructuredLogger
from .scoring import ScoreAggregator
from .store import ActivityStore, ParticipantDirectory, SnapshotStore
from .tiers import classify

UNKNOWN_DISPLAY_NAME = "Unknown"


def _unique(ids: Sequence[str]) -> List[str]:
    seen: set[str] = set()
    ordered: List[str] = []
    for participant_id in ids:
        if participant_id not in seen:
            seen.add(participant_id)
            ordered.append(participant_id)
    return ordered


class RankingEngine:
    """Resolve a scope, score every participant and produce a ranked result."""

    def __init__(
        self,
        directory: ParticipantDirectory,
        activity: ActivityStore,
        aggregator: ScoreAggregator,
        *,
        snapshots: SnapshotStore | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._directory = directory
        self._activity = activity
        self._aggregator = aggregator
        self._snapshots = snapshots
        self._logger = logger or StructuredLogger()

    # ------------------------------------------------------------------
    # Scope resolution
    # ------------------------------------------------------------------
    def resolve_scope(self, group_id: str, scope: Union[Scope, str], window: Window) -> List[str]:
        resolved = Scope.parse(scope)
        members = [member.participant_id for member in self._directory.list_group_members(group_id)]
        if resolved is Scope.FAMILY:
            return _unique(members)
        if resolved is Scope.FRIENDS:
            friends: List[str] = []
            for member_id in members:
                friends.extend(self._directory.list_accepted_connections(member_id))
            return _unique(friends)
        return [
            member_id
            for member_id in _unique(members)
            if self._activity.list_promoted_activity(
                member_id, PROMOTED_STATUS_COMPLETED, window.start, window.end
            )
        ]

    # ------------------------------------------------------------------
    # Rankings
    # ------------------------------------------------------------------
    def compute_ranking(
        self,
        group_id: str,
        scope: Union[Scope, str],
        category: Union[Category, str],
        window: Window,
    ) -> RankingResult:
        resolved_scope = Scope.parse(scope)
        resolved_category = Category.parse(category)
        participant_ids = self.resolve_scope(group_id, resolved_scope, window)
        if not participant_ids:
            return RankingResult(scope=resolved_scope, category=resolved_category, window=window)

        scores = [
            (participant_id, self._aggregator.score(participant_id, resolved_category, window))
            for participant_id in participant_ids
        ]
        # sorted() is stable, so ties keep their resolution order.
        scores = sorted(scores, key=lambda item: item[1], reverse=True)
        previous = self._previous_ranks(group_id, resolved_scope, resolved_category, window)

        entries: List[RankEntry] = []
        cohort = len(scores)
        for index, (participant_id, score) in enumerate(scores):
            rank = index + 1
            tier, title = classify(rank, cohort, resolved_category)
            participant = self._directory.get_participant(participant_id)
            entries.append(
                RankEntry(
                    participant_id=participant_id,
                    score=score,
                    rank=rank,
                    tier=tier,
                    title=title,
                    display_name=participant.name if participant else UNKNOWN_DISPLAY_NAME,
                    avatar=participant.avatar if participant else None,
                    previous_rank=previous.get(participant_id),
                )
            )
        return RankingResult(
            scope=resolved_scope,
            category=resolved_category,
            window=window,
            entries=tuple(entries),
        )

    def update_snapshots(self, group_id: str, window: Window) -> List[RankSnapshot]:
        """Persist one snapshot per (scope, category) for ``window``."""

        if self._snapshots is None:
            raise RuntimeError("No snapshot store is configured.")
        written: List[RankSnapshot] = []
        for scope in Scope:
            for category in Category:
                try:
                    result = self.compute_ranking(group_id, scope, category, window)
                    snapshot = RankSnapshot.from_result(group_id, result)
                    self._snapshots.replace_snapshot(snapshot)
                except Exception as exc:
                    self._logger.error(
                        "snapshot_failed",
                        group=group_id,
                        scope=scope.value,
                        category=category.value,
                        window_start=window.start.isoformat(),
                        error=repr(exc),
                    )
                    continue
                written.append(snapshot)
        self._logger.log("snapshots_updated", group=group_id, count=len(written))
        return written

    def _previous_ranks(
        self,
        group_id: str,
        scope: Scope,
        category: Category,
        window: Window,
    ) -> Dict[str, int]:
        if self._snapshots is None:
            return {}
        snapshot: Optional[RankSnapshot] = self._snapshots.get_snapshot(
            group_id, scope, category, window.previous().start
        )
        if snapshot is None:
            return {}
        return {row.participant_id: row.rank for row in snapshot.rows}


__all__ = ["RankingEngine", "UNKNOWN_DISPLAY_NAME"]
