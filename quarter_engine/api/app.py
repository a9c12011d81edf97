"""
Quarter Engine API — FastAPI endpoints.

Exposes the round engine via a REST API for:
- Game creation and inspection
- Round processing
- Facilitator event injection
- Achievement progress and the public catalog
- Round ledger queries
- Stand-alone logistics tools
"""

import logging
from typing import Dict, Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from quarter_engine.achievements.catalog import CATALOG_VERSION
from quarter_engine.achievements.engine import AchievementEngine
from quarter_engine.core.errors import (
    EngineError,
    MethodUnavailableError,
    RouteNotFoundError,
    UnknownEventError,
)
from quarter_engine.core.random_context import RandomContext
from quarter_engine.engine.orchestrator import ENGINE_VERSION
from quarter_engine.engine.session import GameSession, GameStore
from quarter_engine.ledger.store import RoundLedger
from quarter_engine.logistics.engine import LogisticsEngine
from quarter_engine.models.config import Difficulty, EngineConfig
from quarter_engine.models.decisions import TeamDecisions
from quarter_engine.models.events import EventInjection
from quarter_engine.models.logistics import Region, ShippingMethod
from quarter_engine.models.team import Shipment


# --- Request/Response Models ---

class GameCreateRequest(BaseModel):
    team_ids: list
    seed: int = 0
    difficulty: Difficulty = Difficulty.NORMAL
    config: dict = {}
    max_rounds: int = 10
    game_id: Optional[str] = None


class RoundRequest(BaseModel):
    decisions: Dict[str, TeamDecisions] = {}


class ShipmentRequest(BaseModel):
    origin: Region
    destination: Region
    weight_tons: float
    volume_m3: float
    production_days: int = 0
    seed: int = 0


class CalculateRequest(ShipmentRequest):
    method: ShippingMethod = ShippingMethod.SEA


class RecommendationRequest(ShipmentRequest):
    budget: float
    max_days: int


class TrackRequest(BaseModel):
    shipment: Shipment
    current_round: int


# --- Application Factory ---

def create_app(
    store: Optional[GameStore] = None,
    ledger: Optional[RoundLedger] = None,
    logistics: Optional[LogisticsEngine] = None,
    configure_logging: bool = False,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    if configure_logging:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    app = FastAPI(
        title="Quarter Engine API",
        description="Round resolution for a turn-based phone manufacturing simulation",
        version=ENGINE_VERSION,
    )

    gs = store or GameStore()
    rl = ledger or RoundLedger()
    le = logistics or LogisticsEngine()

    app.state.game_store = gs
    app.state.round_ledger = rl
    app.state.logistics = le

    def get_session(game_id: str) -> GameSession:
        session = gs.get(game_id)
        if session is None:
            raise HTTPException(404, "Game not found")
        return session

    # === GAMES ===

    @app.post("/games", response_model=dict)
    def create_game(req: GameCreateRequest):
        """Start a game with fresh team and market states."""
        game_id = req.game_id or f"game_{uuid4().hex[:12]}"
        try:
            config = EngineConfig.model_validate({**req.config, "difficulty": req.difficulty})
            session = gs.create(game_id, [str(t) for t in req.team_ids], req.seed, config, req.max_rounds)
        except EngineError as exc:
            raise HTTPException(400, str(exc))
        except ValueError as exc:
            raise HTTPException(422, str(exc))
        return {
            "id": session.game_id,
            "round": session.current_round,
            "teams": session.team_ids,
            "difficulty": config.difficulty.value,
        }

    @app.get("/games/{game_id}")
    def get_game(game_id: str):
        """Current state of a game."""
        session = get_session(game_id)
        return {
            "id": session.game_id,
            "round": session.current_round,
            "finished": session.finished,
            "teams": {tid: s.model_dump(mode="json") for tid, s in session.teams.items()},
            "market": session.market.model_dump(mode="json"),
            "events": session.events.model_dump(mode="json"),
            "rankings": [r.model_dump(mode="json") for r in session.rankings],
        }

    @app.post("/games/{game_id}/rounds")
    def play_round(game_id: str, req: RoundRequest):
        """Process the next round with the submitted decisions."""
        session = get_session(game_id)
        try:
            output = session.play_round(req.decisions)
        except EngineError as exc:
            raise HTTPException(400, str(exc))
        record = rl.append(game_id, output)
        body = output.model_dump(mode="json")
        body["ledger_signature"] = record.signature
        return body

    @app.get("/games/{game_id}/rankings")
    def get_rankings(game_id: str):
        """Rankings from the latest processed round."""
        session = get_session(game_id)
        return [r.model_dump(mode="json") for r in session.rankings]

    @app.post("/games/{game_id}/events")
    def inject_event(game_id: str, injection: EventInjection):
        """Queue a facilitator event for the next round."""
        session = get_session(game_id)
        try:
            session.inject(injection)
        except UnknownEventError as exc:
            raise HTTPException(400, str(exc))
        return {"status": "queued", "round": session.current_round}

    @app.get("/games/{game_id}/teams/{team_id}/achievements")
    def get_team_achievements(game_id: str, team_id: str):
        """Awarded achievements, score, and category totals for a team."""
        session = get_session(game_id)
        progress = session.progress.get(team_id)
        if progress is None:
            raise HTTPException(404, "Team not found")
        engine = session.orchestrator.achievements
        return {
            "team_id": team_id,
            "score": progress.score,
            "category_totals": progress.category_totals(),
            "awarded": [
                {**award.model_dump(mode="json"), "name": engine.get(award.achievement_id).name}
                for award in progress.awarded
            ],
        }

    @app.get("/games/{game_id}/ledger")
    def get_ledger(game_id: str):
        """Recorded rounds for a game plus a chain integrity check."""
        get_session(game_id)
        return {
            "records": [r.model_dump(mode="json") for r in rl.query_by_game(game_id)],
            "integrity_valid": rl.verify_chain(),
        }

    # === ACHIEVEMENTS ===

    @app.get("/achievements")
    def list_achievements():
        """Public achievement catalog (hidden entries omitted)."""
        engine = AchievementEngine()
        return {
            "version": CATALOG_VERSION,
            "achievements": [
                {**a.model_dump(mode="json"), "points": a.points} for a in engine.visible()
            ],
        }

    # === LOGISTICS ===

    @app.post("/logistics/calculate")
    def calculate(req: CalculateRequest):
        """Cost, time, and risk for one shipment."""
        try:
            calc = le.calculate_logistics(
                RandomContext(req.seed), req.origin, req.destination, req.method,
                req.weight_tons, req.volume_m3, req.production_days,
            )
        except RouteNotFoundError as exc:
            raise HTTPException(404, str(exc))
        except MethodUnavailableError as exc:
            raise HTTPException(400, str(exc))
        return calc.model_dump(mode="json")

    @app.post("/logistics/compare")
    def compare(req: ShipmentRequest):
        """Every method on the route, best overall first."""
        try:
            options = le.compare_shipping_options(
                RandomContext(req.seed), req.origin, req.destination,
                req.weight_tons, req.volume_m3, req.production_days,
            )
        except RouteNotFoundError as exc:
            raise HTTPException(404, str(exc))
        return [o.model_dump(mode="json") for o in options]

    @app.post("/logistics/recommendations")
    def recommendations(req: RecommendationRequest):
        """Best option under a budget and a deadline, with relaxation warnings."""
        try:
            rec = le.get_recommendations(
                RandomContext(req.seed), req.origin, req.destination,
                req.weight_tons, req.volume_m3, req.budget, req.max_days, req.production_days,
            )
        except RouteNotFoundError as exc:
            raise HTTPException(404, str(exc))
        return rec.model_dump(mode="json")

    @app.post("/logistics/track")
    def track(req: TrackRequest):
        """Stage and timeline of a shipment at a given round."""
        return le.track_shipment(req.shipment, req.current_round).model_dump(mode="json")

    return app
