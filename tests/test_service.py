import json
from datetime import datetime
from decimal import Decimal

import pytest

from conftest import ScriptedRandom
from kidleague.config import EngineSettings
from kidleague.exceptions import InvalidCategoryError, InvalidScopeError
from kidleague.models import (
    Category,
    CurrencyTransaction,
    EconomicMetrics,
    RankingSettings,
    Scope,
    Window,
)
from kidleague.service import GamificationEngine


@pytest.fixture
def engine(family, clock) -> GamificationEngine:
    return GamificationEngine(family, clock=clock, rng=ScriptedRandom([0.0] * 10))


def test_ranking_defaults_to_current_week(engine, family) -> None:
    family.record_transaction(CurrencyTransaction("cleo", "fam-1", 30, datetime(2024, 5, 14, 8)))
    family.record_transaction(CurrencyTransaction("ava", "fam-1", 90, datetime(2024, 5, 10, 8)))

    result = engine.compute_ranking("fam-1", "family", "experience")

    assert result.window == Window.week_of(datetime(2024, 5, 15, 12))
    assert result.leader.participant_id == "cleo"
    assert result.leader.score == 30


def test_display_ranking_respects_group_settings(engine) -> None:
    assert engine.ranking_for_display("fam-1", Scope.FRIENDS, Category.STREAK) is None
    assert engine.ranking_for_display("fam-1", "family", "streak") is not None

    engine.update_ranking_settings(RankingSettings("fam-1", friends_enabled=True))
    assert engine.ranking_for_display("fam-1", "friends", "streak") is not None

    engine.update_ranking_settings(RankingSettings("fam-1", rankings_enabled=False))
    assert engine.ranking_for_display("fam-1", "family", "streak") is None


def test_display_ranking_validates_before_checking_settings(engine) -> None:
    engine.update_ranking_settings(RankingSettings("fam-1", rankings_enabled=False))

    with pytest.raises(InvalidScopeError):
        engine.ranking_for_display("fam-1", "neighbours", "streak")
    with pytest.raises(InvalidCategoryError):
        engine.ranking_for_display("fam-1", "family", "height")


def test_settings_updates_are_stamped_and_logged(engine, clock) -> None:
    saved = engine.update_ranking_settings(RankingSettings("fam-1", promoted_enabled=False))

    assert saved.updated_at == clock.now()
    assert engine.ranking_settings("fam-1").promoted_enabled is False
    assert engine.ranking_settings("fam-2").promoted_enabled is True
    assert engine.logger.events("ranking_settings_updated")[0]["group"] == "fam-1"


def test_weekly_snapshots_cover_every_board(engine, family) -> None:
    snapshots = engine.update_weekly_rankings("fam-1")

    assert len(snapshots) == len(Scope) * len(Category)
    assert len(family.snapshots("fam-1")) == 15


def test_adjusted_cost_uses_configured_pricing(engine) -> None:
    assert engine.adjusted_cost(100, EconomicMetrics(average_balance=1200)) == 110
    assert engine.adjusted_cost(100, EconomicMetrics(average_balance=300)) == 100


def test_dashboard_uses_engine_clock_for_seasons(engine, clock) -> None:
    clock.set(datetime(2024, 10, 2, 9))

    dashboard = engine.economic_dashboard(EconomicMetrics(average_balance=100), level=30)

    assert "event_halloween_costume" in {sink.sink_id for sink in dashboard.active_point_sinks}
    assert dashboard.inflation_correction == Decimal("1.0")


def test_daily_spin_count_follows_settings(family, clock) -> None:
    engine = GamificationEngine(
        family,
        settings=EngineSettings(daily_spins=2),
        clock=clock,
        rng=ScriptedRandom([0.0, 0.0]),
    )

    engine.draw_spin("ava")

    assert engine.spin_status("ava").units_available == 1


def test_settings_from_environment(monkeypatch, tmp_path) -> None:
    log_file = tmp_path / "engine.log"
    monkeypatch.setenv("KIDLEAGUE_DAILY_SPINS", "2")
    monkeypatch.setenv("KIDLEAGUE_STREAK_FOLLOWS_WINDOW", "yes")
    monkeypatch.setenv("KIDLEAGUE_INFLATION_THRESHOLD", "300")
    monkeypatch.setenv("KIDLEAGUE_MAX_CORRECTION", "2.0")
    monkeypatch.setenv("KIDLEAGUE_LOG_FILE", str(log_file))

    settings = EngineSettings.from_env()

    assert settings.daily_spins == 2
    assert settings.streak_follows_window is True
    assert settings.pricing.threshold == 300
    assert settings.pricing.max_correction == Decimal("2.0")
    assert settings.pricing.correction_step == Decimal("0.1")
    assert settings.log_file == str(log_file)


def test_negative_daily_spins_rejected() -> None:
    with pytest.raises(ValueError):
        EngineSettings(daily_spins=-1)


def test_engine_writes_log_file(family, clock, tmp_path) -> None:
    log_file = tmp_path / "logs" / "engine.log"
    engine = GamificationEngine(family, settings=EngineSettings(log_file=str(log_file)), clock=clock)

    engine.process_champions("fam-1")

    lines = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    assert lines[-1]["event"] == "champions_processed"
    assert lines[-1]["issued"] == 5
