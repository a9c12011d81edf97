"""
Static logistics catalog: shipping methods, routes between regions, and
customs clearance requirements. Routes are bidirectional.
"""

from typing import Dict, List, Optional

from quarter_engine.models.logistics import (
    ClearanceRequirement,
    Region,
    ShippingMethod,
    ShippingMethodSpec,
    ShippingRoute,
)

NA = Region.NORTH_AMERICA
SA = Region.SOUTH_AMERICA
EU = Region.EUROPE
AF = Region.AFRICA
AS = Region.ASIA
OC = Region.OCEANIA
ME = Region.MIDDLE_EAST

SEA = ShippingMethod.SEA
AIR = ShippingMethod.AIR
LAND = ShippingMethod.LAND
RAIL = ShippingMethod.RAIL

SHIPPING_METHODS: Dict[ShippingMethod, ShippingMethodSpec] = {
    SEA: ShippingMethodSpec(
        method=SEA, name="Sea freight", cost_multiplier=1.0, time_multiplier=1.0,
        reliability=0.85, co2_per_ton=10, min_volume=100, insurance_rate=0.015,
        handling_cost_per_ton=50,
    ),
    AIR: ShippingMethodSpec(
        method=AIR, name="Air freight", cost_multiplier=5.0, time_multiplier=0.2,
        reliability=0.95, co2_per_ton=500, min_volume=1, insurance_rate=0.008,
        handling_cost_per_ton=120,
    ),
    LAND: ShippingMethodSpec(
        method=LAND, name="Road freight", cost_multiplier=2.0, time_multiplier=0.6,
        reliability=0.90, co2_per_ton=60, min_volume=10, insurance_rate=0.012,
        handling_cost_per_ton=80,
    ),
    RAIL: ShippingMethodSpec(
        method=RAIL, name="Rail freight", cost_multiplier=1.3, time_multiplier=0.7,
        reliability=0.88, co2_per_ton=30, min_volume=50, insurance_rate=0.010,
        handling_cost_per_ton=60,
    ),
}


def _route(route_id, origin, destination, methods, lead, cost, distance, infra, congestion, customs):
    return ShippingRoute(
        id=route_id, origin=origin, destination=destination, methods=methods,
        base_lead_time=lead, base_cost=cost, distance_km=distance,
        infrastructure_quality=infra, congestion=congestion, customs_efficiency=customs,
    )


# id, origin, destination, methods, lead days, $/ton, km, infrastructure, congestion, customs
ROUTES: List[ShippingRoute] = [
    _route("na_to_asia", NA, AS, [SEA, AIR, RAIL], 25, 3500, 10000, 0.92, 0.40, 0.85),
    _route("na_to_europe", NA, EU, [SEA, AIR], 20, 3000, 7000, 0.94, 0.35, 0.90),
    _route("na_to_sa", NA, SA, [SEA, AIR, LAND], 18, 2500, 6000, 0.75, 0.30, 0.70),
    _route("na_to_oceania", NA, OC, [SEA, AIR], 22, 3200, 12000, 0.88, 0.25, 0.88),
    _route("na_to_me", NA, ME, [SEA, AIR], 28, 3800, 11000, 0.85, 0.45, 0.75),
    _route("na_to_africa", NA, AF, [SEA, AIR], 30, 4000, 10500, 0.65, 0.55, 0.60),
    _route("asia_to_europe", AS, EU, [SEA, AIR, RAIL], 30, 3200, 11000, 0.93, 0.50, 0.88),
    _route("asia_to_oceania", AS, OC, [SEA, AIR], 15, 2200, 7000, 0.90, 0.35, 0.90),
    _route("asia_to_me", AS, ME, [SEA, AIR, LAND], 20, 2800, 7500, 0.88, 0.40, 0.80),
    _route("asia_to_africa", AS, AF, [SEA, AIR], 25, 3000, 9000, 0.70, 0.50, 0.65),
    _route("asia_to_sa", AS, SA, [SEA, AIR], 35, 4200, 18000, 0.75, 0.40, 0.68),
    _route("europe_to_africa", EU, AF, [SEA, AIR, LAND], 12, 1800, 3500, 0.75, 0.45, 0.68),
    _route("europe_to_me", EU, ME, [SEA, AIR, LAND], 15, 2000, 4500, 0.88, 0.40, 0.82),
    _route("europe_to_oceania", EU, OC, [SEA, AIR], 35, 4500, 17000, 0.90, 0.30, 0.88),
    _route("europe_to_sa", EU, SA, [SEA, AIR], 22, 3200, 9000, 0.80, 0.35, 0.72),
    _route("sa_to_africa", SA, AF, [SEA, AIR], 20, 2800, 6000, 0.65, 0.40, 0.62),
    _route("sa_to_oceania", SA, OC, [SEA, AIR], 28, 3800, 12000, 0.75, 0.30, 0.75),
    _route("sa_to_me", SA, ME, [SEA, AIR], 25, 3500, 11000, 0.72, 0.40, 0.70),
    _route("africa_to_me", AF, ME, [SEA, AIR, LAND], 10, 1600, 4000, 0.72, 0.45, 0.68),
    _route("africa_to_oceania", AF, OC, [SEA, AIR], 22, 3200, 10000, 0.75, 0.35, 0.72),
    _route("me_to_oceania", ME, OC, [SEA, AIR], 20, 3000, 9500, 0.85, 0.35, 0.80),
]

CLEARANCE_REQUIREMENTS: List[ClearanceRequirement] = [
    ClearanceRequirement(
        origin=AS, destination=NA, inspection_probability=0.15, base_days=3, base_cost=800,
        documents=["commercial_invoice", "packing_list", "bill_of_lading", "certificate_of_origin"],
    ),
    ClearanceRequirement(
        origin=AS, destination=EU, inspection_probability=0.20, base_days=4, base_cost=900,
        documents=["commercial_invoice", "packing_list", "ce_declaration"],
    ),
    ClearanceRequirement(
        origin=NA, destination=AS, inspection_probability=0.12, base_days=2, base_cost=600,
        documents=["commercial_invoice", "export_declaration"],
    ),
    ClearanceRequirement(
        origin=EU, destination=AF, inspection_probability=0.25, base_days=6, base_cost=500,
        documents=["commercial_invoice", "certificate_of_origin", "import_permit"],
    ),
    ClearanceRequirement(
        origin=AF, destination=ME, inspection_probability=0.30, base_days=5, base_cost=450,
        documents=["commercial_invoice", "certificate_of_origin"],
    ),
]

DEFAULT_CLEARANCE = ClearanceRequirement(
    inspection_probability=0.15, base_days=3, base_cost=600,
    documents=["commercial_invoice", "packing_list"],
)


def find_route(origin: Region, destination: Region,
               routes: Optional[List[ShippingRoute]] = None) -> Optional[ShippingRoute]:
    """Look up a route in either direction."""
    for route in routes if routes is not None else ROUTES:
        if route.origin == origin and route.destination == destination:
            return route
        if route.origin == destination and route.destination == origin:
            return route
    return None


def find_clearance(origin: Region, destination: Region,
                   requirements: Optional[List[ClearanceRequirement]] = None) -> ClearanceRequirement:
    """Clearance is directional; unknown pairs get the default requirement."""
    for req in requirements if requirements is not None else CLEARANCE_REQUIREMENTS:
        if req.origin == origin and req.destination == destination:
            return req
    return DEFAULT_CLEARANCE
