"""
Import duties on material orders, keyed by (origin, destination).

Duties are charged on the declared material value only; freight, insurance,
and handling are never dutiable. A route with no listed tariff is duty-free.
"""

from typing import List

from quarter_engine.models.logistics import Region, Tariff

BASELINE_TARIFFS: List[Tariff] = [
    Tariff(id="asia_na_electronics", name="Electronics import tariff",
           origin=Region.ASIA, destination=Region.NORTH_AMERICA, rate=0.25),
    Tariff(id="na_asia_retaliatory", name="Retaliatory semiconductor tariff",
           origin=Region.NORTH_AMERICA, destination=Region.ASIA, rate=0.20),
    Tariff(id="asia_eu_standard", name="Standard electronics duty",
           origin=Region.ASIA, destination=Region.EUROPE, rate=0.10),
    Tariff(id="asia_africa_protection", name="Local industry protection",
           origin=Region.ASIA, destination=Region.AFRICA, rate=0.15),
]


def tariff_rate(origin: Region, destination: Region, tariffs: List[Tariff] = BASELINE_TARIFFS) -> float:
    """Combined duty rate for goods shipped from ``origin`` to ``destination``."""
    return sum(t.rate for t in tariffs if t.origin == origin and t.destination == destination)


def duty(material_cost: float, origin: Region, destination: Region,
         tariffs: List[Tariff] = BASELINE_TARIFFS) -> float:
    return round(material_cost * tariff_rate(origin, destination, tariffs), 2)
