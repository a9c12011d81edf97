"""Event models — catalog entries, live instances, and the event state machine."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import Field

from quarter_engine.models.base import EngineModel, FrozenModel


class EventCategory(str, Enum):
    OPPORTUNITY = "opportunity"
    CRISIS = "crisis"
    MARKET_SHIFT = "market_shift"
    REGULATORY = "regulatory"
    COMPETITIVE = "competitive"
    ECONOMIC = "economic"
    CUSTOM = "custom"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class EffectMode(str, Enum):
    ADD = "add"
    MULTIPLY = "multiply"                   # value is a relative change: x *= (1 + value)


class ConditionKind(str, Enum):
    ROUND = "round"                         # Compares the round number
    METRIC = "metric"                       # Compares a market field
    TEAM_METRIC = "team_metric"             # Compares a team metric; filters eligible teams


class EventCondition(FrozenModel):
    kind: ConditionKind
    field: Optional[str] = None             # Market or team field
    operator: str = ">="
    value: float


class EventEffect(FrozenModel):
    target: str                             # e.g. "gdp", "demand_budget", "cash", "brand"
    value: float
    mode: EffectMode = EffectMode.ADD


class EventChoice(FrozenModel):
    id: str
    label: str
    cost: float = Field(default=0.0, ge=0)
    success_probability: float = Field(default=1.0, ge=0, le=1)
    effects: List[EventEffect] = []         # Applied to the choosing team on success
    failure_effects: List[EventEffect] = []


class GameEvent(FrozenModel):
    """A catalog entry. Never mutated; activation creates an ActiveEvent."""

    id: str
    title: str
    description: str
    category: EventCategory
    severity: Severity = Severity.MEDIUM
    base_probability: float = Field(default=0.0, ge=0, le=1)
    conditions: List[EventCondition] = []
    market_effects: List[EventEffect] = []
    team_effects: List[EventEffect] = []
    duration: int = Field(default=1, ge=1)
    choices: List[EventChoice] = []
    single_team: bool = False               # Target one team drawn from the context


class EventResponse(EngineModel):
    event_id: str                           # ActiveEvent instance id
    choice_id: str
    success: bool
    round_number: int


class ActiveEvent(EngineModel):
    instance_id: str
    event_id: str
    title: str
    description: str
    category: EventCategory
    severity: Severity
    market_effects: List[EventEffect] = []
    team_effects: List[EventEffect] = []
    choices: List[EventChoice] = []
    targets: List[str] = ["all"]            # Team ids, or ["all"]
    rounds_remaining: int = Field(ge=0)
    started_round: int
    injected: bool = False
    responses: Dict[str, EventResponse] = {}

    def targets_team(self, team_id: str) -> bool:
        return "all" in self.targets or team_id in self.targets


class EventHistoryEntry(EngineModel):
    instance_id: str
    event_id: str
    title: str
    round_number: int
    action: str                             # "activated" | "expired" | "choice"
    detail: str = ""


class EventState(EngineModel):
    active: List[ActiveEvent] = []
    history: List[EventHistoryEntry] = []
    crisis_level: float = Field(default=0.0, ge=0, le=100)
    total_triggered: int = 0


class EventInjection(FrozenModel):
    """Facilitator-injected event. Bypasses trigger evaluation."""

    type: Optional[str] = None              # Named market shock or template id
    title: str = "Custom event"
    description: str = ""
    effects: Dict[str, float] = {}          # Market targets, e.g. {"gdp": -2}
    team_effects: Dict[str, float] = {}
    targets: List[str] = ["all"]
    duration: int = Field(default=1, ge=1)
