"""Round I/O — module results, per-team round results, rankings, and the audit record."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from quarter_engine.models.achievements import AchievementProgress
from quarter_engine.models.base import EngineModel
from quarter_engine.models.decisions import TeamDecisions
from quarter_engine.models.events import EventInjection, EventState
from quarter_engine.models.market import MarketState, Segment
from quarter_engine.models.team import TeamState


class ModuleName(str, Enum):
    FACTORY = "factory"
    HR = "hr"
    RD = "rd"
    MARKETING = "marketing"
    FINANCE = "finance"


class ModuleResult(EngineModel):
    """Uniform resolver output, produced on success and on failure alike."""

    module: ModuleName
    success: bool
    changes: Dict[str, Any] = {}
    costs: float = Field(default=0.0, ge=0)
    revenue: float = Field(default=0.0, ge=0)
    messages: List[str] = []

    @classmethod
    def failed(cls, module: ModuleName, error: str) -> "ModuleResult":
        return cls(module=module, success=False, messages=[error])


class SegmentSales(EngineModel):
    segment: Segment
    product_id: Optional[str] = None
    score: float = 0.0
    allocated_units: int = 0
    units_sold: int = 0
    capacity: int = 0
    price: float = 0.0
    revenue: float = 0.0
    market_share: float = 0.0


class SegmentClearing(EngineModel):
    segment: Segment
    demand: int
    units_sold: int
    lost_units: int
    competitors: int


class FinancialSummary(EngineModel):
    revenue: float
    operating_costs: float
    cogs: float
    total_costs: float
    net_income: float
    eps: float
    cash: float
    total_assets: float
    total_liabilities: float
    equity: float
    other_income: float = 0.0               # Event cash effects, may be negative
    ratios: Dict[str, float] = {}


class TeamRanking(EngineModel):
    team_id: str
    overall_rank: int
    eps_rank: int
    share_rank: int
    net_income: float
    eps: float
    market_share: float


class TeamRoundResult(EngineModel):
    """Append-only history entry for one team and one round."""

    team_id: str
    round_number: int
    state: TeamState
    module_results: List[ModuleResult]
    sales: List[SegmentSales] = []
    competitor_actions: List[str] = []
    financials: FinancialSummary
    overall_rank: int
    eps_rank: int
    share_rank: int
    new_achievements: List[str] = []
    event_effects: List[str] = []
    metrics: Dict[str, float] = {}          # Achievement inputs, kept for replay
    counters: Dict[str, float] = {}         # Custom counter increments this round


class TeamInput(EngineModel):
    id: str
    state: TeamState
    decisions: TeamDecisions = TeamDecisions()


class RoundInput(EngineModel):
    round_number: int = Field(ge=1)
    seed: int = Field(ge=0)
    teams: List[TeamInput]
    market_state: MarketState
    event_state: EventState = EventState()
    achievement_progress: Dict[str, AchievementProgress] = {}
    injected_events: List[EventInjection] = []
    previous_results: List[TeamRoundResult] = []   # Last round, for rank movement


class RoundAudit(EngineModel):
    seed: int
    round_seed: int
    engine_version: str
    draws: int
    state_hashes_before: Dict[str, str] = {}
    state_hashes_after: Dict[str, str] = {}
    market_hash: str = ""


class RoundOutput(EngineModel):
    round_number: int
    results: List[TeamRoundResult]
    rankings: List[TeamRanking]
    market_clearing: List[SegmentClearing] = []
    new_market_state: MarketState
    event_state: EventState
    achievement_progress: Dict[str, AchievementProgress] = {}
    audit: RoundAudit
