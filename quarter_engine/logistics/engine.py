"""
Logistics Engine — prices and schedules material shipments.

Behavioral Contract:
- calculate_logistics composes time (production + shipping + clearance),
  cost (shipping + clearance + insurance + handling) and risk for one shipment
- The customs inspection draw comes from the caller's RandomContext, never
  from an ambient source, so shipments are reproducible from the round seed
- compare_shipping_options computes each method once, then scores
  cost/time efficiency 0-100 and ranks by 0.6 * cost + 0.4 * time
- get_recommendations relaxes constraints in a fixed order and reports every
  relaxation as a warning instead of failing
- Missing routes raise RouteNotFoundError; callers decide how to report it
"""

import logging
import math
from typing import Dict, List, Optional

from quarter_engine.core.errors import MethodUnavailableError, RouteNotFoundError
from quarter_engine.core.random_context import RandomContext
from quarter_engine.logistics.routes import (
    CLEARANCE_REQUIREMENTS,
    ROUTES,
    SHIPPING_METHODS,
    find_clearance,
    find_route,
)
from quarter_engine.models.logistics import (
    ClearanceRequirement,
    CostBreakdown,
    Disruption,
    LogisticsCalculation,
    Region,
    RiskAssessment,
    ShipmentTracking,
    ShippingMethod,
    ShippingMethodSpec,
    ShippingOption,
    ShippingRecommendation,
    ShippingRoute,
    ShippingStrategy,
    TimeBreakdown,
    TrackingEvent,
    TrackingStage,
)
from quarter_engine.models.team import Shipment

logger = logging.getLogger(__name__)

INSPECTION_DELAY_DAYS = 2
COST_WEIGHT = 0.6
TIME_WEIGHT = 0.4


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _efficiency(value: float, low: float, high: float) -> float:
    """Scale so the best (lowest) value scores 100 and the worst 0."""
    if high == low:
        return 100.0
    return (high - value) / (high - low) * 100.0


class LogisticsEngine:
    """Stateless calculator over a (replaceable) route catalog."""

    def __init__(
        self,
        routes: Optional[List[ShippingRoute]] = None,
        methods: Optional[Dict[ShippingMethod, ShippingMethodSpec]] = None,
        clearance: Optional[List[ClearanceRequirement]] = None,
    ):
        self.routes = routes if routes is not None else ROUTES
        self.methods = methods if methods is not None else SHIPPING_METHODS
        self.clearance = clearance if clearance is not None else CLEARANCE_REQUIREMENTS

    def get_route(self, origin: Region, destination: Region) -> ShippingRoute:
        route = find_route(origin, destination, self.routes)
        if route is None:
            raise RouteNotFoundError(origin.value, destination.value)
        return route

    # --- Core calculation ---

    def calculate_logistics(
        self,
        ctx: RandomContext,
        origin: Region,
        destination: Region,
        method: ShippingMethod,
        weight_tons: float,
        volume_m3: float,
        production_days: int = 0,
    ) -> LogisticsCalculation:
        """Price and schedule one shipment. Consumes exactly one draw from ``ctx``."""
        route = self.get_route(origin, destination)
        if method not in route.methods:
            raise MethodUnavailableError(route.id, method.value)
        profile = self.methods[method]

        shipping_days = math.ceil(route.base_lead_time * profile.time_multiplier)
        requirement = find_clearance(origin, destination, self.clearance)
        inspection = INSPECTION_DELAY_DAYS if ctx.chance(requirement.inspection_probability) else 0
        clearance_days = requirement.base_days + inspection
        total_days = production_days + shipping_days + clearance_days

        chargeable = self.chargeable_weight(method, weight_tons, volume_m3)
        shipping_cost = self._shipping_cost(route, profile, chargeable)
        insurance = _round_half_up(shipping_cost * profile.insurance_rate)
        handling = _round_half_up(weight_tons * profile.handling_cost_per_ton)
        total_cost = shipping_cost + requirement.base_cost + insurance + handling

        on_time = profile.reliability * route.customs_efficiency * (1 - route.congestion * 0.3)
        expected_delay = math.ceil((1 - on_time) * shipping_days * 0.3)
        loss = (1 - profile.reliability) * 0.05

        return LogisticsCalculation(
            route_id=route.id,
            origin=origin,
            destination=destination,
            method=method,
            weight_tons=weight_tons,
            volume_m3=volume_m3,
            chargeable_weight_tons=chargeable,
            cost=CostBreakdown(
                shipping=shipping_cost,
                clearance=requirement.base_cost,
                insurance=insurance,
                handling=handling,
                total=total_cost,
            ),
            time=TimeBreakdown(
                production_days=production_days,
                shipping_days=shipping_days,
                clearance_days=clearance_days,
                inspection_delay=inspection,
                total_days=total_days,
            ),
            risk=RiskAssessment(
                on_time_probability=on_time,
                expected_delay_days=expected_delay,
                loss_probability=loss,
            ),
            co2_kg=weight_tons * profile.co2_per_ton * route.distance_km / 1000.0,
        )

    @staticmethod
    def chargeable_weight(method: ShippingMethod, weight_tons: float, volume_m3: float) -> float:
        """Greater of actual and volumetric weight (air 6 m3/t, others 3 m3/t)."""
        divisor = 6.0 if method == ShippingMethod.AIR else 3.0
        return max(weight_tons, volume_m3 / divisor)

    @staticmethod
    def _shipping_cost(route: ShippingRoute, profile: ShippingMethodSpec, chargeable: float) -> int:
        cost = route.base_cost * profile.cost_multiplier * chargeable
        cost *= 1 + (route.distance_km / 10000.0) * 0.2
        cost *= 2 - route.infrastructure_quality
        if route.congestion > 0.5:
            cost *= 1 + (route.congestion - 0.5)
        return _round_half_up(cost)

    # --- Method selection ---

    def get_optimal_shipping_method(
        self,
        ctx: RandomContext,
        origin: Region,
        destination: Region,
        weight_tons: float,
        volume_m3: float,
        strategy: ShippingStrategy,
    ) -> ShippingMethod:
        """Most reliable method meeting both thresholds, else the strategy default."""
        route = self.get_route(origin, destination)
        if strategy.urgent:
            return strategy.rush_method

        best: Optional[LogisticsCalculation] = None
        for method in route.methods:
            calc = self.calculate_logistics(ctx, origin, destination, method, weight_tons, volume_m3)
            if strategy.cost_threshold is not None and calc.cost.total > strategy.cost_threshold:
                continue
            if strategy.time_threshold is not None and calc.time.total_days > strategy.time_threshold:
                continue
            if best is None or calc.risk.on_time_probability > best.risk.on_time_probability:
                best = calc

        if best is not None:
            return best.method
        if strategy.default_method in route.methods:
            return strategy.default_method
        return route.methods[0]

    def compare_shipping_options(
        self,
        ctx: RandomContext,
        origin: Region,
        destination: Region,
        weight_tons: float,
        volume_m3: float,
        production_days: int = 0,
    ) -> List[ShippingOption]:
        """All methods on the route, best overall score first."""
        route = self.get_route(origin, destination)
        calculations = [
            self.calculate_logistics(ctx, origin, destination, m, weight_tons, volume_m3, production_days)
            for m in route.methods
        ]
        costs = [c.cost.total for c in calculations]
        times = [c.time.total_days for c in calculations]

        options = []
        for calc in calculations:
            cost_eff = _efficiency(calc.cost.total, min(costs), max(costs))
            time_eff = _efficiency(calc.time.total_days, min(times), max(times))
            options.append(ShippingOption(
                method=calc.method,
                calculation=calc,
                cost_efficiency=cost_eff,
                time_efficiency=time_eff,
                overall_score=COST_WEIGHT * cost_eff + TIME_WEIGHT * time_eff,
            ))
        # Stable sort keeps catalog order on ties
        return sorted(options, key=lambda o: -o.overall_score)

    def get_recommendations(
        self,
        ctx: RandomContext,
        origin: Region,
        destination: Region,
        weight_tons: float,
        volume_m3: float,
        budget: float,
        max_days: int,
        production_days: int = 0,
    ) -> ShippingRecommendation:
        """
        Relaxation order: both constraints, budget only, time only, best
        overall. Never raises for unsatisfiable constraints.
        """
        options = self.compare_shipping_options(
            ctx, origin, destination, weight_tons, volume_m3, production_days,
        )
        within_budget = [o for o in options if o.calculation.cost.total <= budget]
        within_time = [o for o in options if o.calculation.time.total_days <= max_days]
        viable = [o for o in within_budget if o in within_time]

        if viable:
            best = viable[0]
            return ShippingRecommendation(
                recommended=best,
                alternatives=viable[1:3],
                tier="both",
                reasoning=(
                    f"Best balance of cost (${best.calculation.cost.total:,.0f}) and time "
                    f"({best.calculation.time.total_days} days) with "
                    f"{best.calculation.risk.on_time_probability:.0%} on-time probability"
                ),
            )

        warnings = ["No shipping methods meet both budget and time constraints"]

        if within_budget:
            best = within_budget[0]
            over = best.calculation.time.total_days - max_days
            warnings.append(f"Delivery time exceeds limit by {over} days")
            return ShippingRecommendation(
                recommended=best,
                alternatives=within_budget[1:3],
                warnings=warnings,
                tier="budget_only",
                reasoning=(
                    f"Budget constraint met, but delivery will take "
                    f"{best.calculation.time.total_days} days ({over} days over target)"
                ),
            )

        if within_time:
            best = within_time[0]
            over_cost = best.calculation.cost.total - budget
            warnings.append(f"Cost exceeds budget by ${over_cost:,.0f}")
            return ShippingRecommendation(
                recommended=best,
                alternatives=within_time[1:3],
                warnings=warnings,
                tier="time_only",
                reasoning=(
                    f"Time constraint met, but cost is ${best.calculation.cost.total:,.0f} "
                    f"(${over_cost:,.0f} over budget)"
                ),
            )

        best = options[0]
        warnings.append(f"Cost exceeds budget by ${best.calculation.cost.total - budget:,.0f}")
        warnings.append(f"Delivery time exceeds limit by {best.calculation.time.total_days - max_days} days")
        return ShippingRecommendation(
            recommended=best,
            alternatives=options[1:3],
            warnings=warnings,
            tier="best_overall",
            reasoning="Best overall option despite exceeding both constraints",
        )

    # --- Tracking and disruption ---

    @staticmethod
    def rounds_in_transit(total_days: int, days_per_round: int) -> int:
        return max(1, math.ceil(total_days / days_per_round))

    def track_shipment(self, shipment: Shipment, current_round: int) -> ShipmentTracking:
        """Derive stage and timeline from elapsed/total rounds only."""
        total_rounds = shipment.arrival_round - shipment.placed_round
        elapsed = current_round - shipment.placed_round
        progress = elapsed / total_rounds if total_rounds > 0 else 1.0
        progress = min(1.0, max(0.0, progress))
        origin = shipment.origin.value
        destination = shipment.destination.value

        if progress < 0.2:
            stage, location = TrackingStage.ORIGIN, f"Departing {origin}"
        elif progress < 0.7:
            stage, location = TrackingStage.IN_TRANSIT, f"En route to {destination}"
        elif progress < 0.9:
            stage, location = TrackingStage.CUSTOMS, f"Customs clearance in {destination}"
        elif progress < 1.0:
            stage, location = TrackingStage.INSPECTION, f"Final inspection in {destination}"
        else:
            stage, location = TrackingStage.DELIVERED, f"Delivered to {destination}"

        def at(fraction: float) -> int:
            return shipment.placed_round + math.ceil(total_rounds * fraction)

        events = [TrackingEvent(
            round_number=shipment.placed_round, kind="departed", stage=TrackingStage.ORIGIN,
            description=f"Shipment departed from {origin}", location=origin,
        )]
        if progress >= 0.2:
            events.append(TrackingEvent(
                round_number=at(0.2), kind="arrived_port", stage=TrackingStage.IN_TRANSIT,
                description="Arrived at departure port", location=f"Port in {origin}",
            ))
        if progress >= 0.7:
            events.append(TrackingEvent(
                round_number=at(0.7), kind="arrived_port", stage=TrackingStage.CUSTOMS,
                description="Arrived at destination port", location=f"Port in {destination}",
            ))
        if progress >= 0.85:
            events.append(TrackingEvent(
                round_number=at(0.85), kind="cleared_customs", stage=TrackingStage.INSPECTION,
                description=f"Cleared customs in {destination}", location=destination,
            ))
        if progress >= 1.0:
            events.append(TrackingEvent(
                round_number=shipment.arrival_round, kind="delivered", stage=TrackingStage.DELIVERED,
                description=f"Delivered to {destination}", location=destination,
            ))
        for delay in shipment.delays:
            events.append(TrackingEvent(
                round_number=delay.round_number, kind="delayed", stage=stage,
                description=f"Delayed due to {delay.reason}: +{delay.delay_days} days",
                location=location,
            ))
        events.sort(key=lambda e: e.round_number)

        return ShipmentTracking(
            shipment_id=shipment.id,
            stage=stage,
            location=location,
            progress=progress,
            events=events,
            delays=list(shipment.delays),
            estimated_arrival_round=shipment.arrival_round,
            delayed=bool(shipment.delays),
        )

    @staticmethod
    def apply_disruption(calculation: LogisticsCalculation, disruption: Disruption) -> LogisticsCalculation:
        """Degrade a calculation when both its route and method are affected."""
        if calculation.route_id not in disruption.affected_routes:
            return calculation
        if calculation.method not in disruption.affected_methods:
            return calculation

        shipping_days = calculation.time.shipping_days
        time = calculation.time.model_copy(update={
            "shipping_days": math.ceil(shipping_days * disruption.delay_multiplier),
            "total_days": math.ceil(calculation.time.total_days * disruption.delay_multiplier),
        })
        cost = calculation.cost.model_copy(update={
            "shipping": math.ceil(calculation.cost.shipping * disruption.cost_multiplier),
            "total": math.ceil(calculation.cost.total * disruption.cost_multiplier),
        })
        risk = calculation.risk.model_copy(update={
            "on_time_probability": calculation.risk.on_time_probability * 0.5,
            "expected_delay_days": calculation.risk.expected_delay_days
            + math.ceil(shipping_days * (disruption.delay_multiplier - 1)),
        })
        logger.debug("Disruption %s applied to %s/%s", disruption.id, calculation.route_id,
                     calculation.method.value)
        return calculation.model_copy(update={"time": time, "cost": cost, "risk": risk})
