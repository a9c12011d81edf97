"""
Market Engine — the one place where teams affect each other.

Behavioral Contract:
- clear() runs once per round after every team's resolvers have finished
- Demand per segment comes from the market state (macro modifiers plus one
  noise draw per segment from the round's context, in segment order)
- Each team's best launched product in a segment gets a competitiveness
  score; demand is shared in proportion to score ** score_exponent
- Realized sales never exceed allocated demand or sellable capacity; unmet
  demand is redistributed to teams with spare capacity, the rest is lost
- Per segment, total units sold never exceed total demand
- rank() gives a strict total order with team id as the tie-break
"""

import logging
import math
from typing import Dict, List, Optional, Tuple

import numpy as np

from quarter_engine.core.random_context import RandomContext
from quarter_engine.models.config import EngineConfig
from quarter_engine.models.events import EffectMode, EventEffect
from quarter_engine.models.market import SEGMENTS, MarketState, Segment
from quarter_engine.models.results import SegmentClearing, SegmentSales, TeamRanking
from quarter_engine.models.team import Product, TeamState

logger = logging.getLogger(__name__)

# price / quality / brand / esg / features
SEGMENT_WEIGHTS: Dict[Segment, Dict[str, float]] = {
    Segment.BUDGET: {"price": 0.65, "quality": 0.15, "brand": 0.05, "esg": 0.05, "features": 0.10},
    Segment.GENERAL: {"price": 0.30, "quality": 0.25, "brand": 0.15, "esg": 0.10, "features": 0.20},
    Segment.ENTHUSIAST: {"price": 0.12, "quality": 0.30, "brand": 0.08, "esg": 0.05, "features": 0.45},
    Segment.PROFESSIONAL: {"price": 0.08, "quality": 0.50, "brand": 0.05, "esg": 0.20, "features": 0.17},
    Segment.ACTIVE_LIFESTYLE: {"price": 0.20, "quality": 0.30, "brand": 0.15, "esg": 0.10, "features": 0.25},
}

QUALITY_EXPECTATIONS: Dict[Segment, float] = {
    Segment.BUDGET: 50,
    Segment.GENERAL: 65,
    Segment.ENTHUSIAST: 80,
    Segment.PROFESSIONAL: 90,
    Segment.ACTIVE_LIFESTYLE: 70,
}

# Effect targets that shift macro indicators additively
MACRO_TARGETS = {
    "gdp": ("gdp", -5.0, 10.0),
    "inflation": ("inflation", 0.0, 15.0),
    "consumerConfidence": ("consumer_confidence", 20.0, 100.0),
    "unemployment": ("unemployment", 2.0, 15.0),
}
PRESSURE_TARGETS = {
    "priceCompetition": "price_competition",
    "qualityExpectations": "quality_expectations",
    "sustainabilityPremium": "sustainability_premium",
}
DEMAND_TARGETS: Dict[str, Segment] = {
    "demand_budget": Segment.BUDGET,
    "demand_general": Segment.GENERAL,
    "demand_enthusiast": Segment.ENTHUSIAST,
    "demand_professional": Segment.PROFESSIONAL,
    "demand_active": Segment.ACTIVE_LIFESTYLE,
}
MARKET_TARGETS = set(MACRO_TARGETS) | set(PRESSURE_TARGETS) | set(DEMAND_TARGETS) | {
    "demand_all", "federalRate", "fxVolatility",
}


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def curve(ratio: float) -> float:
    """Linear up to expectation, square-root bonus above it, capped at 1.3."""
    if ratio <= 1:
        return max(0.0, ratio)
    return min(1.3, 1 + math.sqrt(ratio - 1) * 0.5)


class TeamClearing:
    """Per-team output of one market pass."""

    def __init__(self, team_id: str):
        self.team_id = team_id
        self.sales: List[SegmentSales] = []

    @property
    def revenue(self) -> float:
        return sum(s.revenue for s in self.sales)

    @property
    def units_sold(self) -> int:
        return sum(s.units_sold for s in self.sales)


class MarketClearing:
    def __init__(self):
        self.teams: Dict[str, TeamClearing] = {}
        self.segments: List[SegmentClearing] = []

    @property
    def total_demand(self) -> int:
        return sum(s.demand for s in self.segments)


class MarketEngine:
    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    # --- Demand ---

    def segment_demand(self, market: MarketState, segment: Segment, ctx: RandomContext) -> int:
        base = market.demand[segment].total_units
        macro = (
            (1 + market.gdp / 100)
            * (market.consumer_confidence / 75)
            * (1 - market.inflation / 200)
        )
        noise = ctx.range(1 - self.config.demand_noise, 1 + self.config.demand_noise)
        return max(0, int(math.floor(base * macro * noise)))

    # --- Scoring ---

    def effective_price(self, team: TeamState, product: Product) -> float:
        return product.price * (1 - team.promotions.get(product.segment, 0.0))

    def score_product(self, team: TeamState, product: Product, market: MarketState) -> float:
        segment = product.segment
        weights = SEGMENT_WEIGHTS[segment]
        band = market.demand[segment]
        price = self.effective_price(team, product)

        adjusted_max = band.price_max * (1 + product.quality * 0.002)
        span = adjusted_max - band.price_min
        position = _clamp((adjusted_max - price) / span, 0.0, 1.0) if span > 0 else 0.5
        floor_price = band.price_min * 0.85
        if price < floor_price:
            position *= 1 - min(0.3, (floor_price - price) / band.price_min)

        expectation = QUALITY_EXPECTATIONS[segment] + (market.pressures.quality_expectations - 0.6) * 20
        quality = curve(product.quality / expectation)
        features = curve(product.features / expectation)
        brand = math.sqrt(max(0.0, team.brand.get(segment, 0.0)))
        esg = team.esg_score / 1000 * (0.5 + market.pressures.sustainability_premium)

        score = (
            weights["price"] * position
            + weights["quality"] * quality
            + weights["brand"] * brand
            + weights["esg"] * esg
            + weights["features"] * features
            + product.quality * 0.001
        )
        score *= 1 + min(0.05, team.patents * 0.005)
        threshold = self.config.esg_penalty_threshold
        if team.esg_score < threshold:
            score *= 1 - (0.08 - team.esg_score / threshold * 0.07)
        return max(0.0, score)

    def best_offer(self, team: TeamState, segment: Segment,
                   market: MarketState) -> Tuple[Optional[Product], float]:
        best: Optional[Product] = None
        best_score = -1.0
        for product in team.launched_products(segment):
            score = self.score_product(team, product, market)
            if score > best_score:
                best, best_score = product, score
        return best, max(0.0, best_score)

    def rubber_band(self, team: TeamState, team_count: int, round_number: int) -> float:
        if team_count < 2 or round_number < self.config.rubber_band_start_round:
            return 1.0
        if team.last_share_rank == team_count:
            return self.config.rubber_band_trailing
        if team.last_share_rank == 1:
            return self.config.rubber_band_leading
        return 1.0

    # --- Allocation ---

    def allocate(self, demand: int, scores: np.ndarray, capacity: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Share ``demand`` by score ** exponent, cap by capacity, and redistribute
        the unmet part to teams with spare capacity. Returns (allocated, sold).
        """
        n = len(scores)
        if n == 0 or demand <= 0:
            return np.zeros(n, dtype=np.int64), np.zeros(n, dtype=np.int64)

        if not np.any(scores > 0) or np.allclose(scores, scores[0]):
            weights = np.ones(n, dtype=float)
        else:
            weights = np.power(np.clip(scores, 0.0, None), self.config.score_exponent)
        shares = weights / weights.sum()

        allocated = np.floor(demand * shares).astype(np.int64)
        sold = np.minimum(allocated, capacity)
        unmet = int(allocated.sum() - sold.sum())

        for _ in range(n):
            spare = capacity - sold
            eligible = spare > 0
            if unmet <= 0 or not np.any(eligible):
                break
            eligible_weights = np.where(eligible, weights, 0.0)
            if eligible_weights.sum() <= 0:
                break
            extra = np.floor(unmet * eligible_weights / eligible_weights.sum()).astype(np.int64)
            extra = np.minimum(extra, spare)
            moved = int(extra.sum())
            if moved == 0:
                break
            sold = sold + extra
            unmet -= moved

        overshoot = int(sold.sum()) - demand
        while overshoot > 0:
            i = int(np.argmax(sold))
            cut = min(overshoot, int(sold[i]))
            sold[i] -= cut
            overshoot -= cut
        return allocated, sold

    def clear(self, teams: List[TeamState], market: MarketState, ctx: RandomContext) -> MarketClearing:
        clearing = MarketClearing()
        for team in teams:
            clearing.teams[team.id] = TeamClearing(team.id)
        round_number = market.round_number
        n = len(teams)

        for segment in SEGMENTS:
            if segment not in market.demand:
                continue
            demand = self.segment_demand(market, segment, ctx)

            offers = []
            for team in teams:
                product, score = self.best_offer(team, segment, market)
                if product is not None:
                    score *= self.rubber_band(team, n, round_number)
                    offers.append((team, product, score))

            if not offers:
                clearing.segments.append(SegmentClearing(
                    segment=segment, demand=demand, units_sold=0, lost_units=demand, competitors=0,
                ))
                continue

            total_ads = sum(t.advertising.get(segment, 0.0) for t, _, _ in offers)
            scores = np.array([
                s + (self.config.advertising_weight * t.advertising.get(segment, 0.0) / total_ads
                     if total_ads > 0 else 0.0)
                for t, _, s in offers
            ], dtype=float)
            capacity = np.array([t.segment_capacity.get(segment, 0) for t, _, _ in offers], dtype=np.int64)
            allocated, sold = self.allocate(demand, scores, capacity)

            for i, (team, product, _) in enumerate(offers):
                units = int(sold[i])
                price = self.effective_price(team, product)
                clearing.teams[team.id].sales.append(SegmentSales(
                    segment=segment,
                    product_id=product.id,
                    score=float(scores[i]),
                    allocated_units=int(allocated[i]),
                    units_sold=units,
                    capacity=int(capacity[i]),
                    price=price,
                    revenue=units * price,
                    market_share=units / demand if demand else 0.0,
                ))
            units_sold = int(sold.sum())
            clearing.segments.append(SegmentClearing(
                segment=segment,
                demand=demand,
                units_sold=units_sold,
                lost_units=demand - units_sold,
                competitors=len(offers),
            ))
            logger.debug("Cleared %s: demand=%d sold=%d competitors=%d",
                         segment.value, demand, units_sold, len(offers))
        return clearing

    # --- Rankings ---

    @staticmethod
    def rank(entries: List[Tuple[str, float, float, float]]) -> List[TeamRanking]:
        """
        entries: (team_id, net_income, eps, market_share). Each rank is a strict
        total order, descending by metric, ascending team id on ties.
        """
        def ranks_by(index: int) -> Dict[str, int]:
            ordered = sorted(entries, key=lambda e: (-e[index], e[0]))
            return {entry[0]: position + 1 for position, entry in enumerate(ordered)}

        overall = ranks_by(1)
        eps = ranks_by(2)
        share = ranks_by(3)
        rankings = [
            TeamRanking(
                team_id=team_id,
                overall_rank=overall[team_id],
                eps_rank=eps[team_id],
                share_rank=share[team_id],
                net_income=net_income,
                eps=team_eps,
                market_share=market_share,
            )
            for team_id, net_income, team_eps, market_share in entries
        ]
        return sorted(rankings, key=lambda r: r.overall_rank)

    # --- Market evolution ---

    def next_market_state(self, market: MarketState, ctx: RandomContext) -> MarketState:
        """Random walk of macro indicators, FX, rates, demand, and pressures."""
        nxt = market.model_copy(deep=True)
        nxt.round_number = market.round_number + 1
        nxt.gdp = _clamp(market.gdp + ctx.range(-0.5, 0.5), -5, 10)
        nxt.inflation = _clamp(market.inflation + ctx.range(-0.25, 0.25), 0, 15)
        nxt.consumer_confidence = _clamp(market.consumer_confidence + ctx.range(-2.5, 2.5), 20, 100)
        nxt.unemployment = _clamp(market.unemployment + ctx.range(-0.15, 0.15), 2, 15)

        nxt.fx_volatility = ctx.range(0.15, 0.25)
        for pair in sorted(nxt.fx_rates):
            nxt.fx_rates[pair] = nxt.fx_rates[pair] * (1 + (ctx.next() - 0.5) * nxt.fx_volatility * 0.1)

        rates = nxt.interest_rates
        if nxt.inflation > 3:
            rates.federal_rate = min(10.0, rates.federal_rate + 0.25)
        elif nxt.inflation < 1.5:
            rates.federal_rate = max(0.0, rates.federal_rate - 0.25)
        rates.ten_year_bond = max(0.0, rates.federal_rate - 0.5)
        rates.corporate_bond = rates.federal_rate + 1.0

        for segment in SEGMENTS:
            if segment in nxt.demand:
                band = nxt.demand[segment]
                band.total_units = int(math.floor(band.total_units * (1 + band.growth_rate)))

        pressures = nxt.pressures
        pressures.price_competition = _clamp(pressures.price_competition + ctx.range(-0.05, 0.05), 0, 1)
        pressures.quality_expectations = _clamp(pressures.quality_expectations + 0.02, 0, 1)
        pressures.sustainability_premium = _clamp(pressures.sustainability_premium + 0.01, 0, 1)
        return nxt

    @staticmethod
    def apply_effect(market: MarketState, effect: EventEffect) -> None:
        """Apply one event effect to ``market`` in place."""
        target = effect.target
        if target in MACRO_TARGETS:
            field, low, high = MACRO_TARGETS[target]
            current = getattr(market, field)
            if effect.mode == EffectMode.MULTIPLY:
                value = current * (1 + effect.value)
            else:
                value = current + effect.value
            setattr(market, field, _clamp(value, low, high))
        elif target in PRESSURE_TARGETS:
            field = PRESSURE_TARGETS[target]
            current = getattr(market.pressures, field)
            if effect.mode == EffectMode.MULTIPLY:
                value = current * (1 + effect.value)
            else:
                value = current + effect.value
            setattr(market.pressures, field, _clamp(value, 0, 1))
        elif target in DEMAND_TARGETS or target == "demand_all":
            segments = SEGMENTS if target == "demand_all" else [DEMAND_TARGETS[target]]
            for segment in segments:
                if segment in market.demand:
                    band = market.demand[segment]
                    band.total_units = max(0, int(math.floor(band.total_units * (1 + effect.value))))
        elif target == "federalRate":
            rates = market.interest_rates
            rates.federal_rate = _clamp(rates.federal_rate + effect.value, 0, 10)
            rates.ten_year_bond = max(0.0, rates.federal_rate - 0.5)
            rates.corporate_bond = rates.federal_rate + 1.0
        elif target == "fxVolatility":
            market.fx_volatility = _clamp(market.fx_volatility + effect.value, 0, 1)
        else:
            raise KeyError(f"Unknown market effect target '{target}'")
