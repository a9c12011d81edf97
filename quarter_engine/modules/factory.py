"""
Factory resolver — capacity, efficiency, sustainability, and material orders.

Behavioral Contract:
- Runs first for every team; later modules and the market read the
  per-segment sellable capacity and unit costs it writes
- Efficiency investments have diminishing returns past $10M per category
- Material orders are priced through the Logistics Engine with the round's
  context plus any import duty; an order with no route is reported
  unplaceable, not failed
- Purchases the team cannot cover from cash are skipped with a message
- Delivered kits join the segment's inventory at weighted average landed
  cost and leave the shipment list; inventory carries a 2% holding cost
"""

import logging
import math
from typing import Dict, List, Optional

from pydantic import Field

from quarter_engine.core.errors import RouteLookupError
from quarter_engine.core.random_context import IdGenerator, RandomContext
from quarter_engine.logistics.engine import LogisticsEngine
from quarter_engine.logistics.tariffs import duty
from quarter_engine.models.base import FrozenModel
from quarter_engine.models.config import EngineConfig
from quarter_engine.models.decisions import FactoryDecisions
from quarter_engine.models.logistics import ShipmentDelay
from quarter_engine.models.market import SEGMENTS, MarketState, Segment
from quarter_engine.models.results import ModuleName, ModuleResult, SegmentSales
from quarter_engine.models.team import Factory, MaterialStock, Shipment, TeamState
from quarter_engine.modules.base import ModuleResolver, affordable, clamp

logger = logging.getLogger(__name__)

# Efficiency gain per $1M invested, by category
EFFICIENCY_RATES: Dict[str, float] = {
    "workers": 0.010,
    "supervisors": 0.015,
    "engineers": 0.020,
    "machinery": 0.012,
    "factory": 0.008,
}
DIMINISHING_THRESHOLD = 10_000_000
MAX_EFFICIENCY = 1.0

NEW_FACTORY_COST = 50_000_000
NEW_FACTORY_EFFICIENCY = 0.5
FACTORY_OVERHEAD = 2_000_000            # Per factory per round
UNITS_PER_WORKER = 14_000               # Per round
WORKERS_PER_SUPERVISOR = 15
HOLDING_COST_RATE = 0.02                # Of inventory value, per round

RAW_MATERIAL_COST: Dict[Segment, float] = {
    Segment.BUDGET: 50,
    Segment.GENERAL: 100,
    Segment.ENTHUSIAST: 200,
    Segment.PROFESSIONAL: 350,
    Segment.ACTIVE_LIFESTYLE: 150,
}
LABOR_COST_PER_UNIT = 20
OVERHEAD_PER_UNIT = 15

DEFAULT_ALLOCATION: Dict[Segment, float] = {
    Segment.BUDGET: 0.35,
    Segment.GENERAL: 0.30,
    Segment.ENTHUSIAST: 0.15,
    Segment.PROFESSIONAL: 0.08,
    Segment.ACTIVE_LIFESTYLE: 0.12,
}


class UpgradeProfile(FrozenModel):
    cost: float
    capacity_multiplier: float = 1.0
    defect_multiplier: float = 1.0
    efficiency_bonus: float = 0.0
    overhead_multiplier: float = 1.0
    esg_bonus: float = 0.0
    co2_multiplier: float = 1.0
    quality_bonus: float = 0.0
    staffing_multiplier: float = 1.0    # Scales workers required


UPGRADES: Dict[str, UpgradeProfile] = {
    "six_sigma": UpgradeProfile(cost=75_000_000, defect_multiplier=0.6),
    "automation": UpgradeProfile(cost=75_000_000, capacity_multiplier=1.25, staffing_multiplier=0.5),
    "lean_manufacturing": UpgradeProfile(cost=40_000_000, efficiency_bonus=0.05, overhead_multiplier=0.9),
    "iso_14001": UpgradeProfile(cost=20_000_000, esg_bonus=50, co2_multiplier=0.9),
    "solar_panels": UpgradeProfile(cost=30_000_000, esg_bonus=40, co2_multiplier=0.8),
    "quality_lab": UpgradeProfile(cost=25_000_000, quality_bonus=2.0),
}


class EsgInitiative(FrozenModel):
    cost: float
    esg: float
    co2_multiplier: float = 1.0


ESG_INITIATIVES: Dict[str, EsgInitiative] = {
    "community_program": EsgInitiative(cost=2_000_000, esg=30),
    "recycling_program": EsgInitiative(cost=3_000_000, esg=40, co2_multiplier=0.95),
    "fair_wage_audit": EsgInitiative(cost=1_000_000, esg=20),
    "renewable_energy_contract": EsgInitiative(cost=5_000_000, esg=60, co2_multiplier=0.85),
}


def efficiency_gain(category: str, amount: float, already_invested: float) -> float:
    """Full rate up to the threshold, half rate beyond it."""
    rate = EFFICIENCY_RATES[category]
    full = max(0.0, min(amount, DIMINISHING_THRESHOLD - already_invested))
    reduced = amount - full
    return (full * rate + reduced * rate * 0.5) / 1_000_000


def required_workers(factories: List[Factory]) -> int:
    total = 0.0
    for factory in factories:
        multiplier = 1.0
        for upgrade in factory.upgrades:
            multiplier *= UPGRADES[upgrade].staffing_multiplier
        total += factory.base_capacity / UNITS_PER_WORKER * multiplier
    return math.ceil(total)


def unit_cost(segment: Segment, factories: List[Factory], salary_multiplier: float = 1.0) -> float:
    overhead = OVERHEAD_PER_UNIT
    if factories and all("lean_manufacturing" in f.upgrades for f in factories):
        overhead *= UPGRADES["lean_manufacturing"].overhead_multiplier
    return RAW_MATERIAL_COST[segment] + LABOR_COST_PER_UNIT * salary_multiplier + overhead


def segment_capacity(state: TeamState) -> Dict[Segment, int]:
    """Sellable units per segment for this round."""
    workforce = state.workforce
    needed = required_workers(state.factories)
    staffing = min(1.0, workforce.workers / needed) if needed > 0 else 1.0
    needed_supervisors = math.ceil(workforce.workers / WORKERS_PER_SUPERVISOR)
    if needed_supervisors > 0 and workforce.supervisors < needed_supervisors:
        supervision = 0.9 + 0.1 * workforce.supervisors / needed_supervisors
    else:
        supervision = 1.0
    labor = clamp(workforce.efficiency / 70.0, 0.6, 1.3)

    capacity = {segment: 0 for segment in SEGMENTS}
    for factory in state.factories:
        multiplier = 1.0
        for upgrade in factory.upgrades:
            multiplier *= UPGRADES[upgrade].capacity_multiplier
        effective = (factory.base_capacity * factory.efficiency * staffing * supervision
                     * labor * multiplier * (1 - factory.defect_rate))
        for segment, share in factory.allocation.items():
            capacity[segment] += int(math.floor(effective * share))
    return capacity


class FactoryResolver(ModuleResolver[FactoryDecisions]):
    module = ModuleName.FACTORY

    def __init__(self, config: Optional[EngineConfig] = None,
                 logistics: Optional[LogisticsEngine] = None):
        self.config = config or EngineConfig()
        self.logistics = logistics or LogisticsEngine()

    def validate(self, state: TeamState, decisions: FactoryDecisions, market: MarketState) -> List[str]:
        problems = []
        factory_ids = {f.id for f in state.factories}
        for category, amount in decisions.efficiency_investments.items():
            if category not in EFFICIENCY_RATES:
                problems.append(f"unknown efficiency category '{category}'")
            if amount < 0:
                problems.append(f"negative investment in '{category}'")
        for order in decisions.upgrades:
            if order.factory_id not in factory_ids:
                problems.append(f"unknown factory '{order.factory_id}'")
            if order.upgrade not in UPGRADES:
                problems.append(f"unknown upgrade '{order.upgrade}'")
        for factory_id, shares in decisions.production_allocation.items():
            if factory_id not in factory_ids:
                problems.append(f"unknown factory '{factory_id}'")
            if any(s < 0 or s > 1 for s in shares.values()):
                problems.append(f"allocation shares for '{factory_id}' must be within 0-1")
            if sum(shares.values()) > 1.0001:
                problems.append(f"allocation for '{factory_id}' exceeds 100%")
        for initiative in decisions.esg_initiatives:
            if initiative not in ESG_INITIATIVES:
                problems.append(f"unknown ESG initiative '{initiative}'")
        return problems

    def apply(self, state: TeamState, decisions: FactoryDecisions, ctx: RandomContext,
              market: MarketState) -> ModuleResult:
        round_number = market.round_number
        ids = IdGenerator(round_number, state.id)
        costs = 0.0
        messages: List[str] = []
        changes: Dict[str, object] = {}

        for factory_id, shares in decisions.production_allocation.items():
            for factory in state.factories:
                if factory.id == factory_id:
                    factory.allocation = dict(shares)

        if decisions.efficiency_investments and state.factories:
            per_factory_share = 1.0 / len(state.factories)
            for category, amount in decisions.efficiency_investments.items():
                if amount <= 0:
                    continue
                for factory in state.factories:
                    portion = amount * per_factory_share
                    invested = factory.efficiency_investment.get(category, 0.0)
                    gain = efficiency_gain(category, portion, invested)
                    factory.efficiency = min(MAX_EFFICIENCY, factory.efficiency + gain)
                    factory.efficiency_investment[category] = invested + portion
                costs += amount
                messages.append(f"Invested ${amount:,.0f} in {category} efficiency")
            changes["efficiency"] = {f.id: round(f.efficiency, 4) for f in state.factories}

        if decisions.green_investment > 0:
            amount = decisions.green_investment
            state.esg_score = min(1000.0, state.esg_score + amount / 100_000)
            for factory in state.factories:
                factory.co2_emissions = max(0.0, factory.co2_emissions - 10 * amount / 100_000 / len(state.factories))
            for segment in list(state.brand):
                state.brand[segment] = min(1.0, state.brand[segment] + amount / 100_000_000)
            costs += amount
            messages.append(f"Green investment of ${amount:,.0f} raised ESG to {state.esg_score:.0f}")

        for order in decisions.upgrades:
            factory = next(f for f in state.factories if f.id == order.factory_id)
            if order.upgrade in factory.upgrades:
                messages.append(f"{factory.name} already has {order.upgrade}")
                continue
            upgrade = UPGRADES[order.upgrade]
            if not affordable(state, costs, upgrade.cost):
                messages.append(f"Insufficient funds for {order.upgrade} at {factory.name}")
                continue
            factory.upgrades.append(order.upgrade)
            factory.defect_rate *= upgrade.defect_multiplier
            factory.efficiency = min(MAX_EFFICIENCY, factory.efficiency + upgrade.efficiency_bonus)
            factory.co2_emissions *= upgrade.co2_multiplier
            state.esg_score = min(1000.0, state.esg_score + upgrade.esg_bonus)
            if upgrade.quality_bonus:
                for product in state.products:
                    product.quality = min(100.0, product.quality + upgrade.quality_bonus)
            costs += upgrade.cost
            messages.append(f"Installed {order.upgrade} at {factory.name}")

        for order in decisions.new_factories:
            if not affordable(state, costs, NEW_FACTORY_COST):
                messages.append(f"Insufficient funds to build factory {order.name}")
                continue
            factory = Factory(
                id=ids.next("factory"),
                name=order.name,
                region=order.region,
                efficiency=NEW_FACTORY_EFFICIENCY,
                allocation=dict(DEFAULT_ALLOCATION),
            )
            state.factories.append(factory)
            costs += NEW_FACTORY_COST
            messages.append(f"Built new factory {order.name} in {order.region.value}")
            changes.setdefault("new_factories", []).append(factory.id)

        for name in decisions.esg_initiatives:
            initiative = ESG_INITIATIVES[name]
            if not affordable(state, costs, initiative.cost):
                messages.append(f"Insufficient funds for ESG initiative {name}")
                continue
            state.esg_score = min(1000.0, state.esg_score + initiative.esg)
            for factory in state.factories:
                factory.co2_emissions *= initiative.co2_multiplier
            costs += initiative.cost
            messages.append(f"Launched ESG initiative {name}")

        costs += self._place_orders(state, decisions, ctx, round_number, ids, costs, messages)
        delivered = self._receive_shipments(state, round_number, messages)
        holding = holding_cost(state)
        costs += holding

        capacity = segment_capacity(state)
        state.segment_capacity = capacity
        state.unit_costs = {
            segment: unit_cost(segment, state.factories, state.workforce.salary_multiplier)
            for segment in SEGMENTS
        }
        costs += FACTORY_OVERHEAD * len(state.factories)

        changes["capacity"] = {s.value: units for s, units in capacity.items()}
        changes["esg_score"] = state.esg_score
        changes["shipments_delivered"] = len(delivered)
        changes["delivered_shipment_ids"] = delivered
        changes["materials"] = {s.value: stock.units for s, stock in state.materials.items()}
        changes["holding_cost"] = holding
        return ModuleResult(
            module=self.module,
            success=True,
            changes=changes,
            costs=costs,
            messages=messages,
        )

    def _place_orders(self, state: TeamState, decisions: FactoryDecisions, ctx: RandomContext,
                      round_number: int, ids: IdGenerator, committed: float, messages: List[str]) -> float:
        spent = 0.0
        for order in decisions.material_orders:
            try:
                calc = self.logistics.calculate_logistics(
                    ctx, order.origin, order.destination, order.method,
                    order.weight_tons, order.volume_m3,
                )
            except RouteLookupError as exc:
                logger.warning("Team %s material order unplaceable: %s", state.id, exc)
                messages.append(f"Material order unplaceable: {exc}")
                continue
            tariff = duty(order.material_cost, order.origin, order.destination)
            landed = order.material_cost + tariff + calc.cost.total
            if not affordable(state, committed + spent, landed):
                messages.append(
                    f"Insufficient funds for material order {order.origin.value} -> {order.destination.value}"
                )
                continue
            units = order.units
            if units is None:
                units = int(order.material_cost // RAW_MATERIAL_COST[order.segment])
            transit = self.logistics.rounds_in_transit(calc.time.total_days, self.config.days_per_round)
            shipment = Shipment(
                id=ids.next("shipment"),
                origin=order.origin,
                destination=order.destination,
                method=order.method,
                weight_tons=order.weight_tons,
                volume_m3=order.volume_m3,
                cost=calc.cost.total,
                total_days=calc.time.total_days,
                placed_round=round_number,
                arrival_round=round_number + transit,
                segment=order.segment,
                units=units,
                landed_cost=landed,
            )
            if calc.time.inspection_delay:
                shipment.delays.append(ShipmentDelay(
                    round_number=round_number, reason="customs inspection",
                    delay_days=calc.time.inspection_delay,
                ))
            state.shipments.append(shipment)
            spent += landed
            messages.append(
                f"Ordered {units:,} {order.segment.value} kits {order.origin.value} -> "
                f"{order.destination.value} by {order.method.value}: ${calc.cost.total:,.0f} freight, "
                f"${tariff:,.0f} duty, {calc.time.total_days} days"
            )
        return spent

    @staticmethod
    def _receive_shipments(state: TeamState, round_number: int, messages: List[str]) -> List[str]:
        """Move arrived kits into inventory and drop the shipments from the state."""
        delivered = []
        in_transit = []
        for shipment in state.shipments:
            if shipment.arrival_round > round_number:
                in_transit.append(shipment)
                continue
            if shipment.segment is not None and shipment.units:
                stock = state.materials.setdefault(shipment.segment, MaterialStock())
                total = stock.units + shipment.units
                stock.average_cost = (stock.value + shipment.landed_cost) / total
                stock.units = total
            delivered.append(shipment.id)
            messages.append(f"Shipment {shipment.id} delivered to {shipment.destination.value}")
        state.shipments = in_transit
        return delivered


def holding_cost(state: TeamState) -> float:
    """Per-round cost of carrying the current material inventory."""
    return sum(stock.value for stock in state.materials.values()) * HOLDING_COST_RATE


def consume_materials(state: TeamState, sales: List[SegmentSales]) -> float:
    """
    Draw one kit from inventory per unit sold.

    Returns the raw material cost those kits cover; they were paid for when
    ordered, so the caller takes it off the round's COGS.
    """
    covered = 0.0
    for sale in sales:
        stock = state.materials.get(sale.segment)
        if stock is None or not stock.units or not sale.units_sold:
            continue
        used = min(stock.units, sale.units_sold)
        stock.units -= used
        if not stock.units:
            stock.average_cost = 0.0
        covered += used * RAW_MATERIAL_COST[sale.segment]
    return covered
