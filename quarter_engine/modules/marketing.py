"""
Marketing resolver — per-segment brand building, pricing, and promotions.

Behavioral Contract:
- Every segment's brand decays by a fixed rate each round (2% by default),
  then gains from advertising, branding, and sponsorships are added
- Gains are capped per segment per round; brand stays within 0-1
- Advertising returns diminish by 40% for every further $3M in a segment
- Spending the team cannot cover from cash is skipped with a message; only
  paid advertising and this round's promotions reach the market
- Draws nothing from the random context
"""

from typing import Dict, List, Optional

from quarter_engine.core.random_context import RandomContext
from quarter_engine.models.base import FrozenModel
from quarter_engine.models.config import EngineConfig
from quarter_engine.models.decisions import MarketingDecisions
from quarter_engine.models.market import SEGMENTS, MarketState, Segment
from quarter_engine.models.results import ModuleName, ModuleResult
from quarter_engine.models.team import TeamState
from quarter_engine.modules.base import ModuleResolver, affordable, clamp

AD_EFFECT_PER_MILLION = 0.0015
BRANDING_EFFECT_PER_MILLION = 0.001
DIMINISHING_STEP = 3_000_000
DIMINISHING_FACTOR = 0.6
MAX_PROMOTION = 0.5

SEGMENT_AD_MULTIPLIER: Dict[Segment, float] = {
    Segment.BUDGET: 1.1,
    Segment.GENERAL: 1.0,
    Segment.ENTHUSIAST: 0.75,
    Segment.PROFESSIONAL: 0.5,
    Segment.ACTIVE_LIFESTYLE: 0.85,
}


class Sponsorship(FrozenModel):
    cost: float
    brand: Dict[Segment, float]
    esg: float = 0.0


SPONSORSHIPS: Dict[str, Sponsorship] = {
    "esports_league": Sponsorship(
        cost=8_000_000, brand={Segment.ENTHUSIAST: 0.012, Segment.GENERAL: 0.004},
    ),
    "marathon_series": Sponsorship(
        cost=5_000_000, brand={Segment.ACTIVE_LIFESTYLE: 0.015},
    ),
    "university_program": Sponsorship(
        cost=3_000_000, brand={Segment.PROFESSIONAL: 0.008}, esg=10,
    ),
    "music_festival": Sponsorship(
        cost=6_000_000, brand={Segment.GENERAL: 0.008, Segment.BUDGET: 0.008},
    ),
}


def diminishing_effect(amount: float, per_million: float) -> float:
    """Effect of ``amount`` where each successive $3M block is 60% as effective."""
    effect = 0.0
    multiplier = 1.0
    remaining = amount
    while remaining > 0:
        block = min(remaining, DIMINISHING_STEP)
        effect += block / 1_000_000 * per_million * multiplier
        remaining -= block
        multiplier *= DIMINISHING_FACTOR
    return effect


class MarketingResolver(ModuleResolver[MarketingDecisions]):
    module = ModuleName.MARKETING

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def validate(self, state: TeamState, decisions: MarketingDecisions, market: MarketState) -> List[str]:
        problems = []
        for segment, amount in decisions.advertising.items():
            if amount < 0:
                problems.append(f"negative advertising in {segment.value}")
        for product_id, price in decisions.prices.items():
            if state.find_product(product_id) is None:
                problems.append(f"unknown product '{product_id}'")
            if price <= 0:
                problems.append(f"price for '{product_id}' must be positive")
        for segment, discount in decisions.promotions.items():
            if discount < 0 or discount > MAX_PROMOTION:
                problems.append(f"promotion in {segment.value} must be within 0-{MAX_PROMOTION:.0%}")
        for name in decisions.sponsorships:
            if name not in SPONSORSHIPS:
                problems.append(f"unknown sponsorship '{name}'")
        return problems

    def apply(self, state: TeamState, decisions: MarketingDecisions, ctx: RandomContext,
              market: MarketState) -> ModuleResult:
        costs = 0.0
        messages: List[str] = []
        gains = {segment: 0.0 for segment in SEGMENTS}
        advertising: Dict[Segment, float] = {}

        for segment, amount in sorted(decisions.advertising.items()):
            if amount <= 0:
                continue
            if not affordable(state, costs, amount):
                messages.append(f"Insufficient funds for {segment.value} advertising")
                continue
            advertising[segment] = amount
            gains[segment] += diminishing_effect(amount, AD_EFFECT_PER_MILLION) * SEGMENT_AD_MULTIPLIER[segment]
            costs += amount

        if decisions.branding_investment > 0 and not affordable(state, costs, decisions.branding_investment):
            messages.append("Insufficient funds for the brand campaign")
        elif decisions.branding_investment > 0:
            effect = diminishing_effect(decisions.branding_investment, BRANDING_EFFECT_PER_MILLION)
            for segment in SEGMENTS:
                gains[segment] += effect
            costs += decisions.branding_investment
            messages.append(f"Brand campaign ${decisions.branding_investment:,.0f}")

        for name in decisions.sponsorships:
            sponsorship = SPONSORSHIPS[name]
            if not affordable(state, costs, sponsorship.cost):
                messages.append(f"Insufficient funds for the {name} sponsorship")
                continue
            for segment, boost in sponsorship.brand.items():
                gains[segment] += boost
            state.esg_score = min(1000.0, state.esg_score + sponsorship.esg)
            costs += sponsorship.cost
            messages.append(f"Sponsored {name}")

        decay = self.config.brand_decay_rate
        cap = self.config.brand_growth_cap
        for segment in SEGMENTS:
            current = state.brand.get(segment, 0.0)
            state.brand[segment] = clamp(current * (1 - decay) + min(cap, gains[segment]), 0.0, 1.0)

        for product_id, price in decisions.prices.items():
            product = state.find_product(product_id)
            product.price = price
            messages.append(f"Repriced {product.name} to ${price:,.2f}")

        state.advertising = advertising
        state.promotions = {s: d for s, d in decisions.promotions.items() if d > 0}
        total_ads = sum(state.advertising.values())
        if total_ads:
            messages.append(f"Advertising spend ${total_ads:,.0f}")

        return ModuleResult(
            module=self.module,
            success=True,
            changes={
                "brand": {s.value: round(v, 6) for s, v in state.brand.items()},
                "advertising": total_ads,
            },
            costs=costs,
            messages=messages,
        )
