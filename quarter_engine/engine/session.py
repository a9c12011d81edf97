"""
Game sessions — the state a game carries between rounds.

A GameSession owns the latest team states, market state, event state, and
achievement progress, plus the full round history. play_round() builds one
RoundInput from them, hands it to the orchestrator, and adopts the output.
"""

import logging
from typing import Dict, List, Optional

from quarter_engine.core.errors import EngineError, InvalidDecisionError
from quarter_engine.engine.orchestrator import (
    RoundOrchestrator,
    create_initial_market_state,
    create_initial_team_state,
)
from quarter_engine.models.achievements import AchievementProgress
from quarter_engine.models.config import EngineConfig
from quarter_engine.models.decisions import TeamDecisions
from quarter_engine.models.events import EventInjection, EventState
from quarter_engine.models.market import MarketState
from quarter_engine.models.results import RoundInput, RoundOutput, TeamInput, TeamRanking
from quarter_engine.models.team import TeamState

logger = logging.getLogger(__name__)


class GameSession:
    def __init__(
        self,
        game_id: str,
        team_ids: List[str],
        seed: int,
        config: Optional[EngineConfig] = None,
        max_rounds: int = 10,
    ):
        if not team_ids:
            raise EngineError("A game needs at least one team")
        if len(set(team_ids)) != len(team_ids):
            raise EngineError(f"Duplicate team ids: {team_ids}")

        self.game_id = game_id
        self.seed = seed
        self.config = config or EngineConfig()
        self.max_rounds = max_rounds
        self.orchestrator = RoundOrchestrator(self.config)

        self.team_ids = list(team_ids)
        self.teams: Dict[str, TeamState] = {
            team_id: create_initial_team_state(team_id, self.config.preset) for team_id in team_ids
        }
        self.market: MarketState = create_initial_market_state()
        self.events = EventState()
        self.progress: Dict[str, AchievementProgress] = {
            team_id: AchievementProgress(team_id=team_id) for team_id in team_ids
        }
        self.history: List[RoundOutput] = []
        self._pending: Dict[str, TeamDecisions] = {}
        self._injections: List[EventInjection] = []

    @property
    def current_round(self) -> int:
        return len(self.history) + 1

    @property
    def finished(self) -> bool:
        return len(self.history) >= self.max_rounds

    @property
    def rankings(self) -> List[TeamRanking]:
        return self.history[-1].rankings if self.history else []

    def submit(self, team_id: str, decisions: TeamDecisions) -> Dict[str, List[str]]:
        """Queue a team's decisions for the next round. Returns validation problems."""
        if team_id not in self.teams:
            raise InvalidDecisionError(f"Unknown team '{team_id}'")
        self._pending[team_id] = decisions
        return self.orchestrator.validate_decisions(self.teams[team_id], decisions, self.market)

    def inject(self, injection: EventInjection) -> None:
        """Queue a facilitator event for the next round."""
        self.orchestrator.events.validate_injection(injection, self.team_ids)
        self._injections.append(injection)

    def build_input(self) -> RoundInput:
        return RoundInput(
            round_number=self.current_round,
            seed=self.seed,
            teams=[
                TeamInput(id=team_id, state=self.teams[team_id],
                          decisions=self._pending.get(team_id, TeamDecisions()))
                for team_id in self.team_ids
            ],
            market_state=self.market,
            event_state=self.events,
            achievement_progress=self.progress,
            injected_events=list(self._injections),
            previous_results=self.history[-1].results if self.history else [],
        )

    def play_round(self, decisions: Optional[Dict[str, TeamDecisions]] = None) -> RoundOutput:
        if self.finished:
            raise EngineError(f"Game {self.game_id} already finished after {self.max_rounds} rounds")
        for team_id, team_decisions in (decisions or {}).items():
            self.submit(team_id, team_decisions)

        output = self.orchestrator.process(self.build_input())

        self.teams = {r.team_id: r.state for r in output.results}
        self.market = output.new_market_state
        self.events = output.event_state
        self.progress = output.achievement_progress
        self.history.append(output)
        self._pending = {}
        self._injections = []
        logger.info("Game %s finished round %d", self.game_id, output.round_number)
        return output

    def replay_achievements(self, team_id: str) -> AchievementProgress:
        """Rebuild a team's achievement progress from the recorded metrics."""
        entries = []
        for output in self.history:
            for result in output.results:
                if result.team_id == team_id:
                    entries.append((result.round_number, result.metrics, result.counters))
        return self.orchestrator.achievements.replay(team_id, entries)


class GameStore:
    """
    In-memory game registry.
    Nothing survives a restart; the round ledger keeps the audit trail.
    """

    def __init__(self):
        self._games: Dict[str, GameSession] = {}

    def create(self, game_id: str, team_ids: List[str], seed: int,
               config: Optional[EngineConfig] = None, max_rounds: int = 10) -> GameSession:
        if game_id in self._games:
            raise EngineError(f"Game {game_id} already exists")
        session = GameSession(game_id, team_ids, seed, config, max_rounds)
        self._games[game_id] = session
        return session

    def get(self, game_id: str) -> Optional[GameSession]:
        return self._games.get(game_id)

    def list_ids(self) -> List[str]:
        return sorted(self._games)

    def remove(self, game_id: str) -> bool:
        if game_id in self._games:
            del self._games[game_id]
            return True
        return False
