"""Logistics models — static route catalog entries and computed shipment results."""

from enum import Enum
from typing import List, Optional

from pydantic import Field

from quarter_engine.models.base import EngineModel, FrozenModel


class ShippingMethod(str, Enum):
    SEA = "sea"
    AIR = "air"
    LAND = "land"
    RAIL = "rail"


class Region(str, Enum):
    NORTH_AMERICA = "North America"
    SOUTH_AMERICA = "South America"
    EUROPE = "Europe"
    AFRICA = "Africa"
    ASIA = "Asia"
    OCEANIA = "Oceania"
    MIDDLE_EAST = "Middle East"


class ShippingMethodSpec(FrozenModel):
    method: ShippingMethod
    name: str
    cost_multiplier: float
    time_multiplier: float
    reliability: float = Field(ge=0, le=1)
    co2_per_ton: float                      # kg CO2 per ton shipped
    min_volume: float                       # m3
    insurance_rate: float                   # Fraction of cargo value
    handling_cost_per_ton: float


class ShippingRoute(FrozenModel):
    id: str
    origin: Region
    destination: Region
    methods: List[ShippingMethod]
    base_lead_time: int                     # Days
    base_cost: float                        # $ per ton
    distance_km: float
    infrastructure_quality: float = Field(ge=0, le=1)
    congestion: float = Field(ge=0, le=1)
    customs_efficiency: float = Field(ge=0, le=1)


class ClearanceRequirement(FrozenModel):
    origin: Optional[Region] = None         # None on the catch-all default
    destination: Optional[Region] = None
    inspection_probability: float = Field(ge=0, le=1)
    base_days: int
    base_cost: float
    documents: List[str] = []


class CostBreakdown(EngineModel):
    shipping: float
    clearance: float
    insurance: float
    handling: float
    total: float


class TimeBreakdown(EngineModel):
    production_days: int
    shipping_days: int
    clearance_days: int
    inspection_delay: int                   # Included in clearance_days
    total_days: int


class RiskAssessment(EngineModel):
    on_time_probability: float = Field(ge=0, le=1)
    expected_delay_days: int = Field(ge=0)
    loss_probability: float = Field(ge=0, le=1)


class LogisticsCalculation(EngineModel):
    """Ephemeral result for one shipment. Informs scheduling; never persisted as such."""

    route_id: str
    origin: Region
    destination: Region
    method: ShippingMethod
    weight_tons: float
    volume_m3: float
    chargeable_weight_tons: float
    cost: CostBreakdown
    time: TimeBreakdown
    risk: RiskAssessment
    co2_kg: float


class ShippingStrategy(FrozenModel):
    default_method: ShippingMethod = ShippingMethod.SEA
    rush_method: ShippingMethod = ShippingMethod.AIR
    cost_threshold: Optional[float] = None  # Max total cost per shipment
    time_threshold: Optional[int] = None    # Max total days
    urgent: bool = False


class ShippingOption(EngineModel):
    method: ShippingMethod
    calculation: LogisticsCalculation
    cost_efficiency: float                  # 0-100, cheapest = 100
    time_efficiency: float                  # 0-100, fastest = 100
    overall_score: float                    # 0.6 * cost + 0.4 * time


class ShippingRecommendation(EngineModel):
    recommended: ShippingOption
    alternatives: List[ShippingOption] = []
    warnings: List[str] = []
    reasoning: str = ""
    tier: str                               # "both" | "budget_only" | "time_only" | "best_overall"


class TrackingStage(str, Enum):
    ORIGIN = "origin"
    IN_TRANSIT = "in_transit"
    CUSTOMS = "customs"
    INSPECTION = "inspection"
    DELIVERED = "delivered"


class ShipmentDelay(EngineModel):
    round_number: int
    reason: str
    delay_days: int = Field(ge=0)


class TrackingEvent(EngineModel):
    round_number: int
    kind: str                               # departed | arrived_port | cleared_customs | delayed | delivered
    stage: TrackingStage
    description: str
    location: str


class ShipmentTracking(EngineModel):
    shipment_id: str
    stage: TrackingStage
    location: str
    progress: float = Field(ge=0, le=1)
    events: List[TrackingEvent] = []
    delays: List[ShipmentDelay] = []
    estimated_arrival_round: int
    delayed: bool = False


class Disruption(FrozenModel):
    id: str
    description: str
    affected_routes: List[str] = []
    affected_methods: List[ShippingMethod] = []
    delay_multiplier: float = Field(default=1.0, ge=1)
    cost_multiplier: float = Field(default=1.0, ge=1)


class Tariff(FrozenModel):
    id: str
    name: str
    origin: Region
    destination: Region
    rate: float = Field(ge=0, le=1)         # Fraction of declared material value
