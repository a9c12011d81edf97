"""Quarter Engine data models."""

from quarter_engine.models.achievements import (
    Achievement,
    AchievementAward,
    AchievementCategory,
    AchievementProgress,
    AchievementRequirement,
    AchievementTier,
    RequirementKind,
)
from quarter_engine.models.config import PRESETS, Difficulty, DifficultyPreset, EngineConfig
from quarter_engine.models.decisions import (
    FactoryDecisions,
    FinanceDecisions,
    HRDecisions,
    MarketingDecisions,
    MaterialOrder,
    RDDecisions,
    TeamDecisions,
)
from quarter_engine.models.events import (
    ActiveEvent,
    EventEffect,
    EventInjection,
    EventState,
    GameEvent,
)
from quarter_engine.models.ledger import RoundLedgerRecord
from quarter_engine.models.logistics import (
    LogisticsCalculation,
    Region,
    ShippingMethod,
    ShippingRecommendation,
    ShippingRoute,
    Tariff,
)
from quarter_engine.models.market import SEGMENTS, MarketState, Segment, SegmentDemand
from quarter_engine.models.results import (
    FinancialSummary,
    ModuleName,
    ModuleResult,
    RoundAudit,
    RoundInput,
    RoundOutput,
    TeamInput,
    TeamRanking,
    TeamRoundResult,
)
from quarter_engine.models.team import Factory, MaterialStock, Product, Shipment, TeamState, Workforce

__all__ = [
    "Achievement",
    "AchievementAward",
    "AchievementCategory",
    "AchievementProgress",
    "AchievementRequirement",
    "AchievementTier",
    "ActiveEvent",
    "Difficulty",
    "DifficultyPreset",
    "EngineConfig",
    "EventEffect",
    "EventInjection",
    "EventState",
    "Factory",
    "FactoryDecisions",
    "FinanceDecisions",
    "FinancialSummary",
    "GameEvent",
    "HRDecisions",
    "LogisticsCalculation",
    "MarketState",
    "MarketingDecisions",
    "MaterialOrder",
    "MaterialStock",
    "ModuleName",
    "ModuleResult",
    "PRESETS",
    "Product",
    "RDDecisions",
    "Region",
    "RequirementKind",
    "RoundAudit",
    "RoundInput",
    "RoundLedgerRecord",
    "RoundOutput",
    "SEGMENTS",
    "Segment",
    "SegmentDemand",
    "Shipment",
    "ShippingMethod",
    "ShippingRecommendation",
    "ShippingRoute",
    "Tariff",
    "TeamDecisions",
    "TeamInput",
    "TeamRanking",
    "TeamRoundResult",
    "TeamState",
    "Workforce",
]
