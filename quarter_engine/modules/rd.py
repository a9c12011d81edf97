"""
R&D resolver — research points, patents, product development and improvement.

Products under development advance one round per resolution and launch when
their remaining rounds reach zero; the Marketing resolver and the market
see launched products in the same round. New products and improvements
the team cannot pay for out of cash are skipped with a message.
"""

import math
from typing import Dict, List

from quarter_engine.core.random_context import IdGenerator, RandomContext
from quarter_engine.models.decisions import RDDecisions
from quarter_engine.models.market import MarketState, Segment
from quarter_engine.models.results import ModuleName, ModuleResult
from quarter_engine.models.team import Product, ProductStatus, TeamState
from quarter_engine.modules.base import ModuleResolver, affordable

POINTS_PER_MILLION = 25
POINTS_PER_ENGINEER = 10
POINTS_PER_PATENT = 500
PASSIVE_QUALITY_PER_10M = 0.5           # Quality points on launched products

DEVELOPMENT_COST: Dict[Segment, float] = {
    Segment.BUDGET: 5_000_000,
    Segment.GENERAL: 10_000_000,
    Segment.ENTHUSIAST: 20_000_000,
    Segment.PROFESSIONAL: 35_000_000,
    Segment.ACTIVE_LIFESTYLE: 15_000_000,
}
QUALITY_POINT_COST = 1_000_000
FEATURE_POINT_COST = 500_000
PROGRESS_PER_QUALITY_POINT = 10
PROGRESS_PER_FEATURE_POINT = 5


def development_cost(segment: Segment, target_quality: float) -> float:
    return DEVELOPMENT_COST[segment] * max(0.5, 1 + (target_quality - 50) / 50)


def development_rounds(target_quality: float, engineers: int) -> int:
    base = 2 + max(0.0, target_quality - 50) * 0.02
    speedup = 1 - min(0.5, engineers * 0.05)
    return max(1, int(math.floor(base * speedup + 0.5)))


def engineer_points(state: TeamState) -> float:
    wf = state.workforce
    return wf.engineers * POINTS_PER_ENGINEER * (wf.efficiency / 100) * (1 - wf.burnout / 200)


class RDResolver(ModuleResolver[RDDecisions]):
    module = ModuleName.RD

    def validate(self, state: TeamState, decisions: RDDecisions, market: MarketState) -> List[str]:
        problems = []
        for improvement in decisions.improvements:
            product = state.find_product(improvement.product_id)
            if product is None:
                problems.append(f"unknown product '{improvement.product_id}'")
            elif product.status != ProductStatus.LAUNCHED:
                problems.append(f"product '{improvement.product_id}' is still in development")
        names = [p.name for p in decisions.new_products]
        if len(names) != len(set(names)):
            problems.append("duplicate new product names")
        return problems

    def apply(self, state: TeamState, decisions: RDDecisions, ctx: RandomContext,
              market: MarketState) -> ModuleResult:
        round_number = market.round_number
        ids = IdGenerator(round_number, state.id)
        costs = decisions.rd_budget
        messages: List[str] = []
        launched: List[str] = []

        points = decisions.rd_budget / 1_000_000 * POINTS_PER_MILLION + engineer_points(state)
        patents_before = state.patents
        state.rd_points += points
        state.rd_progress += points
        state.patents = int(state.rd_points // POINTS_PER_PATENT)
        if state.patents > patents_before:
            messages.append(f"Filed {state.patents - patents_before} new patent(s)")

        passive = decisions.rd_budget / 10_000_000 * PASSIVE_QUALITY_PER_10M
        if passive > 0:
            for product in state.launched_products():
                product.quality = min(100.0, product.quality + passive)

        for product in state.products:
            if product.status != ProductStatus.IN_DEVELOPMENT:
                continue
            remaining = product.development_rounds_remaining
            product.quality += (product.target_quality - product.quality) / max(1, remaining)
            product.features += (product.target_features - product.features) / max(1, remaining)
            product.development_rounds_remaining = max(0, remaining - 1)
            if product.development_rounds_remaining == 0:
                product.status = ProductStatus.LAUNCHED
                product.quality = product.target_quality
                product.features = product.target_features
                product.launched_round = round_number
                launched.append(product.id)
                messages.append(f"Launched {product.name} in {product.segment.value}")

        for plan in decisions.new_products:
            cost = development_cost(plan.segment, plan.target_quality)
            if not affordable(state, costs, cost):
                messages.append(f"Insufficient funds to develop {plan.name}")
                continue
            band = market.demand.get(plan.segment)
            price = plan.price or ((band.price_min + band.price_max) / 2 if band else 500.0)
            rounds = development_rounds(plan.target_quality, state.workforce.engineers)
            product = Product(
                id=ids.next("product"),
                name=plan.name,
                segment=plan.segment,
                price=price,
                quality=plan.target_quality * 0.5,
                features=plan.target_features * 0.5,
                status=ProductStatus.IN_DEVELOPMENT,
                target_quality=plan.target_quality,
                target_features=plan.target_features,
                development_rounds_remaining=rounds,
            )
            state.products.append(product)
            costs += cost
            messages.append(f"Started development of {plan.name} ({rounds} rounds)")

        for improvement in decisions.improvements:
            product = state.find_product(improvement.product_id)
            needed = (improvement.quality_increase * PROGRESS_PER_QUALITY_POINT
                      + improvement.feature_increase * PROGRESS_PER_FEATURE_POINT)
            if needed > state.rd_progress:
                messages.append(
                    f"Not enough R&D progress to improve {product.name} "
                    f"({state.rd_progress:.0f} of {needed:.0f})"
                )
                continue
            improvement_cost = (improvement.quality_increase * QUALITY_POINT_COST
                                + improvement.feature_increase * FEATURE_POINT_COST)
            if not affordable(state, costs, improvement_cost):
                messages.append(f"Insufficient funds to improve {product.name}")
                continue
            state.rd_progress -= needed
            product.quality = min(100.0, product.quality + improvement.quality_increase)
            product.features = min(100.0, product.features + improvement.feature_increase)
            costs += improvement_cost
            messages.append(f"Improved {product.name} to quality {product.quality:.0f}")

        return ModuleResult(
            module=self.module,
            success=True,
            changes={
                "rd_points": points,
                "patents": state.patents,
                "launched": launched,
                "in_development": [p.id for p in state.products
                                   if p.status == ProductStatus.IN_DEVELOPMENT],
            },
            costs=costs,
            messages=messages,
        )
