"""Team State — one company's full snapshot, owned by its team."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import Field

from quarter_engine.models.base import EngineModel
from quarter_engine.models.events import EventResponse
from quarter_engine.models.logistics import Region, ShipmentDelay, ShippingMethod
from quarter_engine.models.market import Segment


class Role(str, Enum):
    WORKER = "worker"
    ENGINEER = "engineer"
    SUPERVISOR = "supervisor"


class ProductStatus(str, Enum):
    IN_DEVELOPMENT = "in_development"
    LAUNCHED = "launched"


class DebtKind(str, Enum):
    T_BILL = "t_bill"
    CORPORATE_BOND = "corporate_bond"
    LOAN = "loan"


class Workforce(EngineModel):
    workers: int = Field(default=50, ge=0)
    engineers: int = Field(default=8, ge=0)
    supervisors: int = Field(default=5, ge=0)
    morale: float = Field(default=70.0, ge=0, le=100)
    efficiency: float = Field(default=70.0, ge=0, le=100)
    loyalty: float = Field(default=60.0, ge=0, le=100)
    burnout: float = Field(default=10.0, ge=0, le=100)
    salary_multiplier: float = Field(default=1.0, ge=0.8, le=2.2)
    trainings_this_year: Dict[Role, int] = {}

    @property
    def headcount(self) -> int:
        return self.workers + self.engineers + self.supervisors

    def count(self, role: Role) -> int:
        return getattr(self, _ROLE_FIELDS[role])

    def set_count(self, role: Role, value: int) -> None:
        setattr(self, _ROLE_FIELDS[role], max(0, value))


_ROLE_FIELDS = {
    Role.WORKER: "workers",
    Role.ENGINEER: "engineers",
    Role.SUPERVISOR: "supervisors",
}


class Factory(EngineModel):
    id: str
    name: str
    region: Region = Region.NORTH_AMERICA
    base_capacity: int = Field(default=700_000, ge=0)    # Units per round at full efficiency
    efficiency: float = Field(default=0.7, ge=0, le=1)
    defect_rate: float = Field(default=0.05, ge=0, le=1)
    allocation: Dict[Segment, float] = {}               # Share of capacity per segment
    upgrades: List[str] = []
    co2_emissions: float = 1000.0                        # Tons per round
    efficiency_investment: Dict[str, float] = {}         # Cumulative $ per category


class Product(EngineModel):
    id: str
    name: str
    segment: Segment
    price: float = Field(gt=0)
    quality: float = Field(ge=0, le=100)
    features: float = Field(ge=0, le=100)
    status: ProductStatus = ProductStatus.LAUNCHED
    target_quality: Optional[float] = None
    target_features: Optional[float] = None
    development_rounds_remaining: int = 0
    launched_round: Optional[int] = None


class DebtInstrument(EngineModel):
    id: str
    kind: DebtKind
    principal: float = Field(ge=0)
    annual_rate: float = Field(ge=0)                     # Percent
    rounds_remaining: int = Field(ge=0)
    issued_round: int

    @property
    def short_term(self) -> bool:
        return self.kind == DebtKind.T_BILL or self.rounds_remaining <= 4


class DividendRecord(EngineModel):
    round_number: int
    per_share: float
    total: float


class BoardDecision(EngineModel):
    round_number: int
    proposal: str
    probability: float
    approved: bool


class Shipment(EngineModel):
    id: str
    origin: Region
    destination: Region
    method: ShippingMethod
    weight_tons: float
    volume_m3: float
    cost: float
    total_days: int
    placed_round: int
    arrival_round: int
    segment: Optional[Segment] = None
    units: int = Field(default=0, ge=0)                 # Component kits on board
    landed_cost: float = Field(default=0.0, ge=0)       # Materials + duty + freight
    delays: List[ShipmentDelay] = []


class MaterialStock(EngineModel):
    units: int = Field(default=0, ge=0)                 # Component kits on hand
    average_cost: float = Field(default=0.0, ge=0)      # Landed cost per kit

    @property
    def value(self) -> float:
        return self.units * self.average_cost


class TeamState(EngineModel):
    id: str
    name: str = ""
    cash: float = 200_000_000.0
    revenue: float = 0.0                                 # Last round
    costs: float = 0.0
    net_income: float = 0.0
    eps: float = 0.0
    cumulative_revenue: float = 0.0
    cumulative_costs: float = 0.0
    brand: Dict[Segment, float] = {}                     # 0-1 per segment
    workforce: Workforce = Workforce()
    factories: List[Factory] = []
    products: List[Product] = []
    rd_points: float = 0.0                               # Cumulative
    rd_progress: float = 0.0                             # Unspent, funds improvements
    patents: int = 0
    esg_score: float = Field(default=100.0, ge=0, le=1000)
    debt: List[DebtInstrument] = []
    shares_outstanding: int = Field(default=10_000_000, ge=1)
    share_price: float = 50.0
    market_cap: float = 500_000_000.0
    dividend_history: List[DividendRecord] = []
    shipments: List[Shipment] = []
    materials: Dict[Segment, MaterialStock] = {}
    segment_capacity: Dict[Segment, int] = {}            # Sellable units this round
    unit_costs: Dict[Segment, float] = {}
    advertising: Dict[Segment, float] = {}               # This round's spend
    promotions: Dict[Segment, float] = {}                # This round's discount
    market_share: Dict[Segment, float] = {}
    last_share_rank: Optional[int] = None
    board_history: List[BoardDecision] = []
    event_responses: Dict[str, EventResponse] = {}
    rounds_played: int = 0

    @property
    def short_term_debt(self) -> float:
        return sum(d.principal for d in self.debt if d.short_term)

    @property
    def long_term_debt(self) -> float:
        return sum(d.principal for d in self.debt if not d.short_term)

    @property
    def total_debt(self) -> float:
        return sum(d.principal for d in self.debt)

    def launched_products(self, segment: Optional[Segment] = None) -> List[Product]:
        return [
            p for p in self.products
            if p.status == ProductStatus.LAUNCHED and (segment is None or p.segment == segment)
        ]

    def find_product(self, product_id: str) -> Optional[Product]:
        for product in self.products:
            if product.id == product_id:
                return product
        return None
