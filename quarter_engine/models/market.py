"""Market State — the shared, per-game economic environment."""

from enum import Enum
from typing import Dict

from pydantic import Field

from quarter_engine.models.base import EngineModel


class Segment(str, Enum):
    BUDGET = "Budget"
    GENERAL = "General"
    ENTHUSIAST = "Enthusiast"
    PROFESSIONAL = "Professional"
    ACTIVE_LIFESTYLE = "Active Lifestyle"


SEGMENTS = list(Segment)


class SegmentDemand(EngineModel):
    total_units: int = Field(ge=0)          # Base demand before macro modifiers
    price_min: float = Field(gt=0)
    price_max: float = Field(gt=0)
    growth_rate: float = 0.0                # Per round


class InterestRates(EngineModel):
    federal_rate: float = 5.0               # Percent
    ten_year_bond: float = 4.5
    corporate_bond: float = 6.0


class MarketPressures(EngineModel):
    price_competition: float = Field(default=0.5, ge=0, le=1)
    quality_expectations: float = Field(default=0.6, ge=0, le=1)
    sustainability_premium: float = Field(default=0.3, ge=0, le=1)


class MarketState(EngineModel):
    """Single instance per game. Written once per round by the market/event pass."""

    round_number: int = Field(default=1, ge=1)
    gdp: float = 2.5                        # Growth, percent
    inflation: float = 2.0                  # Percent
    consumer_confidence: float = 75.0       # 0-100
    unemployment: float = 4.5               # Percent
    fx_rates: Dict[str, float] = {}
    fx_volatility: float = 0.15
    interest_rates: InterestRates = InterestRates()
    demand: Dict[Segment, SegmentDemand] = {}
    pressures: MarketPressures = MarketPressures()
