"""API helpers converting KidLeague results to JSON friendly dictionaries."""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Dict, List

from .models import (
    ChampionRecord,
    ChampionStatus,
    EconomicDashboard,
    PackOpening,
    PointSink,
    RankingResult,
    RankingSettings,
    RankSnapshot,
    RewardOutcome,
    SpinStatus,
)


class ApiExporter:
    """Convert engine results to plain dictionaries for the HTTP layer."""

    def ranking(self, result: RankingResult) -> Dict[str, object]:
        return {
            "scope": result.scope.value,
            "category": result.category.value,
            "window_start": result.window_start.isoformat(),
            "window_end": result.window_end.isoformat(),
            "entries": [
                {
                    "participant_id": entry.participant_id,
                    "score": entry.score,
                    "rank": entry.rank,
                    "tier": entry.tier.value,
                    "title": entry.title,
                    "display_name": entry.display_name,
                    "avatar": entry.avatar,
                    "previous_rank": entry.previous_rank,
                    "rank_change": entry.rank_change,
                }
                for entry in result.entries
            ],
        }

    def snapshot(self, snapshot: RankSnapshot) -> Dict[str, object]:
        return {
            "group_id": snapshot.group_id,
            "scope": snapshot.scope.value,
            "category": snapshot.category.value,
            "window_start": snapshot.window_start.isoformat(),
            "window_end": snapshot.window_end.isoformat(),
            "rows": [
                {
                    "participant_id": row.participant_id,
                    "score": row.score,
                    "rank": row.rank,
                    "tier": row.tier.value,
                    "title": row.title,
                }
                for row in snapshot.rows
            ],
        }

    def champion(self, record: ChampionRecord) -> Dict[str, object]:
        return {
            "group_id": record.group_id,
            "participant_id": record.participant_id,
            "scope": record.scope.value,
            "category": record.category.value,
            "window_start": record.window_start.isoformat(),
            "window_end": record.window_end.isoformat(),
            "score": record.score,
            "rewards": dict(record.rewards),
        }

    def champion_status(self, status: ChampionStatus) -> Dict[str, object]:
        expires = status.golden_effect_expires_at
        return {
            "is_champion": status.is_champion,
            "categories": [category.value for category in status.categories],
            "golden_effect_active": status.golden_effect_active,
            "golden_effect_expires_at": expires.isoformat() if expires else None,
        }

    def settings(self, settings: RankingSettings) -> Dict[str, object]:
        return {
            "group_id": settings.group_id,
            "rankings_enabled": settings.rankings_enabled,
            "family_enabled": settings.family_enabled,
            "friends_enabled": settings.friends_enabled,
            "promoted_enabled": settings.promoted_enabled,
        }

    def dashboard(self, dashboard: EconomicDashboard) -> Dict[str, object]:
        return {
            "health": {
                "score": dashboard.health.score,
                "status": dashboard.health.status.value,
                "recommendations": list(dashboard.health.recommendations),
            },
            "inflation_correction": float(dashboard.inflation_correction),
            "recommendations": list(dashboard.recommendations),
            "active_point_sinks": [self._serialise_sink(sink) for sink in dashboard.active_point_sinks],
        }

    def outcome(self, outcome: RewardOutcome) -> Dict[str, object]:
        return {
            "product_type": outcome.product_type.value,
            "rarity": outcome.rarity.value,
            "label": outcome.label,
            "kind": type(outcome.payload).__name__,
            "payload": asdict(outcome.payload),
            "is_duplicate": outcome.is_duplicate,
            "is_special_effect": outcome.is_special_effect,
        }

    def pack(self, opening: PackOpening) -> Dict[str, object]:
        outcomes: List[Dict[str, object]] = [self.outcome(outcome) for outcome in opening.outcomes]
        return {
            "pack_id": opening.pack_id,
            "cost": opening.cost,
            "outcomes": outcomes,
            "duplicates": len(opening.duplicates),
        }

    def spin_status(self, status: SpinStatus) -> Dict[str, object]:
        return {
            "units_available": status.units_available,
            "next_reset": status.next_reset.isoformat(),
        }

    def to_json(self, payload: Dict[str, object]) -> str:
        return json.dumps(payload, sort_keys=True)

    def _serialise_sink(self, sink: PointSink) -> Dict[str, object]:
        return {
            "id": sink.sink_id,
            "name": sink.name,
            "cost": sink.cost,
            "category": sink.category,
            "rarity": sink.rarity.value,
            "unlock_level": sink.unlock_level,
            "season": sink.season,
        }


__all__ = ["ApiExporter"]
