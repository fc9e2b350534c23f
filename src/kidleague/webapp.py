"""FastAPI adapter exposing the KidLeague engine to the UI and admin layers."""
from __future__ import annotations

from typing import Dict, Optional, Type

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .api import ApiExporter
from .config import DATABASE_URL, EngineSettings
from .exceptions import (
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
from .models import DynamicPricingConfig, EconomicMetrics, Scope
from .money import to_ratio
from .service import GamificationEngine

_STATUS_CODES: Dict[Type[KidLeagueError], int] = {
    InvalidCategoryError: 400,
    InvalidPricingConfigError: 400,
    InvalidScopeError: 400,
    UnknownProductError: 400,
    ParticipantNotFoundError: 404,
    NoUnitsAvailableError: 409,
    InsufficientFundsError: 409,
    RewardMutationError: 500,
}


class MetricsIn(BaseModel):
    average_balance: float
    total_earned: int = 0
    total_spent: int = 0
    inflation_rate: float = 0.0
    level: int = 1
    threshold: Optional[int] = None
    max_correction: Optional[float] = None
    correction_step: Optional[float] = None


def _pricing_config(payload: MetricsIn, defaults: DynamicPricingConfig) -> DynamicPricingConfig:
    """Overlay the request's pricing overrides on the configured defaults."""

    try:
        return DynamicPricingConfig(
            threshold=payload.threshold if payload.threshold is not None else defaults.threshold,
            max_correction=(
                to_ratio(payload.max_correction) if payload.max_correction is not None else defaults.max_correction
            ),
            correction_step=(
                to_ratio(payload.correction_step) if payload.correction_step is not None else defaults.correction_step
            ),
            stabilization_period_days=defaults.stabilization_period_days,
        )
    except ValueError as exc:
        raise InvalidPricingConfigError(str(exc)) from exc


def _status_for(exc: KidLeagueError) -> int:
    for error_type, status in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status
    return 400


def create_app(engine: GamificationEngine | None = None) -> FastAPI:
    """Build the HTTP application around ``engine`` (SQL backed by default)."""

    if engine is None:
        from .persistence import SqlStore, make_engine

        engine = GamificationEngine(SqlStore(make_engine(DATABASE_URL)), settings=EngineSettings.from_env())

    app = FastAPI(title="Kid League")
    exporter = ApiExporter()
    app.state.engine = engine

    @app.exception_handler(KidLeagueError)
    async def _kidleague_error(request: Request, exc: KidLeagueError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            engine.logger.error("http_error", path=request.url.path, error=str(exc))
        return JSONResponse({"error": str(exc), "type": type(exc).__name__}, status_code=status)

    @app.get("/rankings/{group_id}")
    def get_ranking(group_id: str, scope: str = "family", category: str = "experience") -> JSONResponse:
        result = engine.ranking_for_display(group_id, scope, category)
        if result is None:
            return JSONResponse({"enabled": False, "scope": Scope.parse(scope).value, "entries": []})
        return JSONResponse({"enabled": True, **exporter.ranking(result)})

    @app.post("/rankings/{group_id}/snapshots")
    def update_snapshots(group_id: str) -> JSONResponse:
        snapshots = engine.update_weekly_rankings(group_id)
        return JSONResponse({"snapshots": [exporter.snapshot(snapshot) for snapshot in snapshots]})

    @app.post("/champions/{group_id}/process")
    def process_champions(group_id: str) -> JSONResponse:
        records = engine.process_champions(group_id)
        return JSONResponse({"issued": [exporter.champion(record) for record in records]})

    @app.get("/champions/{group_id}/{participant_id}")
    def champion_status(group_id: str, participant_id: str) -> JSONResponse:
        return JSONResponse(exporter.champion_status(engine.champion_status(group_id, participant_id)))

    @app.post("/economy/dashboard")
    def dashboard(payload: MetricsIn) -> JSONResponse:
        config = _pricing_config(payload, engine.settings.pricing)
        metrics = EconomicMetrics(
            average_balance=payload.average_balance,
            total_earned=payload.total_earned,
            total_spent=payload.total_spent,
            inflation_rate=payload.inflation_rate,
        )
        return JSONResponse(exporter.dashboard(engine.economic_dashboard(metrics, config, level=payload.level)))

    @app.get("/spins/{participant_id}")
    def spin_status(participant_id: str) -> JSONResponse:
        return JSONResponse(exporter.spin_status(engine.spin_status(participant_id)))

    @app.post("/spins/{participant_id}")
    def draw_spin(participant_id: str) -> JSONResponse:
        outcome = engine.draw_spin(participant_id)
        status = engine.spin_status(participant_id)
        return JSONResponse({"reward": exporter.outcome(outcome), "spins_remaining": status.units_available})

    @app.post("/packs/{participant_id}/{pack_id}")
    def open_pack(participant_id: str, pack_id: str) -> JSONResponse:
        return JSONResponse(exporter.pack(engine.open_pack(participant_id, pack_id)))

    return app


__all__ = ["MetricsIn", "create_app"]
