"""Decisions — one immutable bundle per team per round, one sub-object per module."""

from typing import Dict, List, Optional

from pydantic import Field

from quarter_engine.models.base import FrozenModel
from quarter_engine.models.logistics import Region, ShippingMethod
from quarter_engine.models.market import Segment
from quarter_engine.models.team import Role


class FactoryUpgradeOrder(FrozenModel):
    factory_id: str
    upgrade: str                            # Key in the upgrade catalog


class NewFactoryOrder(FrozenModel):
    name: str
    region: Region = Region.NORTH_AMERICA


class MaterialOrder(FrozenModel):
    origin: Region
    destination: Region
    method: ShippingMethod = ShippingMethod.SEA
    weight_tons: float = Field(gt=0)
    volume_m3: float = Field(gt=0)
    material_cost: float = Field(default=0.0, ge=0)     # Declared value, before duty
    segment: Segment = Segment.GENERAL                  # Kits are built for one segment
    units: Optional[int] = Field(default=None, ge=0)    # Defaults to value / raw material cost


class FactoryDecisions(FrozenModel):
    efficiency_investments: Dict[str, float] = {}       # category -> $
    green_investment: float = Field(default=0.0, ge=0)
    upgrades: List[FactoryUpgradeOrder] = []
    new_factories: List[NewFactoryOrder] = []
    production_allocation: Dict[str, Dict[Segment, float]] = {}  # factory id -> shares
    esg_initiatives: List[str] = []
    material_orders: List[MaterialOrder] = []


class HRDecisions(FrozenModel):
    hires: Dict[Role, int] = {}
    fires: Dict[Role, int] = {}
    salary_multiplier: Optional[float] = Field(default=None, ge=0.8, le=2.2)
    benefits_budget: float = Field(default=0.0, ge=0)
    training: List[Role] = []


class NewProductSpec(FrozenModel):
    name: str
    segment: Segment
    target_quality: float = Field(ge=1, le=100)
    target_features: float = Field(ge=1, le=100)
    price: Optional[float] = Field(default=None, gt=0)


class ProductImprovement(FrozenModel):
    product_id: str
    quality_increase: float = Field(default=0.0, ge=0)
    feature_increase: float = Field(default=0.0, ge=0)


class RDDecisions(FrozenModel):
    rd_budget: float = Field(default=0.0, ge=0)
    new_products: List[NewProductSpec] = []
    improvements: List[ProductImprovement] = []


class MarketingDecisions(FrozenModel):
    advertising: Dict[Segment, float] = {}
    branding_investment: float = Field(default=0.0, ge=0)
    prices: Dict[str, float] = {}                       # product id -> new price
    promotions: Dict[Segment, float] = {}               # Discount fraction, 0-0.5
    sponsorships: List[str] = []


class LoanRequest(FrozenModel):
    amount: float = Field(gt=0)
    term_months: int = Field(default=12, ge=1, le=120)


class FinanceDecisions(FrozenModel):
    t_bills: float = Field(default=0.0, ge=0)
    corporate_bonds: float = Field(default=0.0, ge=0)
    loans: List[LoanRequest] = []
    stock_issuance: int = Field(default=0, ge=0)        # New shares
    buyback_amount: float = Field(default=0.0, ge=0)
    dividend_per_share: float = Field(default=0.0, ge=0)
    board_proposals: List[str] = []


class TeamDecisions(FrozenModel):
    factory: FactoryDecisions = FactoryDecisions()
    hr: HRDecisions = HRDecisions()
    rd: RDDecisions = RDDecisions()
    marketing: MarketingDecisions = MarketingDecisions()
    finance: FinanceDecisions = FinanceDecisions()
    event_responses: Dict[str, str] = {}                # active event id -> choice id
    tools_used: List[str] = []                          # e.g. "route_comparison"
