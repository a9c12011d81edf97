"""
Round Orchestrator — one deterministic pass over every team for one round.

Behavioral Contract:
- process_round() is a pure function of its input: the same RoundInput and
  config always produce a byte-identical RoundOutput
- Every random draw comes from a single RandomContext, seeded from the game
  seed and round number, in this order: per team (in caller order) Factory,
  HR, R&D, Marketing, Finance, then event choices; then market demand;
  then the next market state; then event triggers
- Input states are never mutated; each team works on its own typed snapshot
- A failing resolver is isolated: the team keeps its pre-module state for
  that module and the round continues for everyone
- Event choices and effects are applied per team on copies; a failure keeps
  the team and event state as they were before the step
- Advertising and promotions are cleared at the start of every round and
  only what the Marketing module pays for reaches the market
- COGS excludes the raw material cost of kits drawn from inventory
- Achievements are evaluated last, from the metrics this module computes
"""

import hashlib
import logging
from typing import Dict, List, Optional, Tuple, Union

from quarter_engine.achievements.engine import AchievementEngine
from quarter_engine.core.errors import EngineError, InvalidDecisionError
from quarter_engine.core.random_context import RandomContext, derive_seed
from quarter_engine.core.snapshot import assert_finite, snapshot
from quarter_engine.events.engine import EventEngine
from quarter_engine.logistics.engine import LogisticsEngine
from quarter_engine.market.engine import MarketClearing, MarketEngine
from quarter_engine.models.achievements import AchievementProgress
from quarter_engine.models.config import PRESETS, Difficulty, DifficultyPreset, EngineConfig
from quarter_engine.models.decisions import TeamDecisions
from quarter_engine.models.events import EventCategory, EventState
from quarter_engine.models.logistics import ShippingMethod
from quarter_engine.models.market import SEGMENTS, MarketState, Segment, SegmentDemand
from quarter_engine.models.results import (
    FinancialSummary,
    ModuleName,
    ModuleResult,
    RoundAudit,
    RoundInput,
    RoundOutput,
    TeamRanking,
    TeamRoundResult,
)
from quarter_engine.models.team import Factory, Product, TeamState, Workforce
from quarter_engine.modules.base import ModuleResolver
from quarter_engine.modules.factory import (
    DEFAULT_ALLOCATION,
    FactoryResolver,
    consume_materials,
    segment_capacity,
    unit_cost,
)
from quarter_engine.modules.finance import (
    FACTORY_BOOK_VALUE,
    FinanceResolver,
    book_equity,
    financial_ratios,
    update_market_cap,
)
from quarter_engine.modules.hr import HRResolver
from quarter_engine.modules.marketing import MarketingResolver
from quarter_engine.modules.rd import RDResolver

logger = logging.getLogger(__name__)

ENGINE_VERSION = "1.4.0"

# name, segment, price, quality, features
STARTER_PRODUCTS = [
    ("General", Segment.GENERAL, 450, 65, 50),
    ("Budget", Segment.BUDGET, 200, 50, 30),
    ("Enthusiast", Segment.ENTHUSIAST, 800, 80, 70),
    ("Professional", Segment.PROFESSIONAL, 1250, 90, 85),
    ("Active", Segment.ACTIVE_LIFESTYLE, 600, 70, 60),
]

# total units, price min, price max, growth per round
STARTING_DEMAND = {
    Segment.BUDGET: (500_000, 100, 300, 0.02),
    Segment.GENERAL: (400_000, 300, 600, 0.03),
    Segment.ENTHUSIAST: (200_000, 600, 1000, 0.04),
    Segment.PROFESSIONAL: (100_000, 1000, 1500, 0.02),
    Segment.ACTIVE_LIFESTYLE: (150_000, 400, 800, 0.05),
}

STARTING_FX = {"EUR/USD": 1.10, "GBP/USD": 1.27, "JPY/USD": 0.0067, "CNY/USD": 0.14}


# --- Initial state ---

def create_initial_team_state(
    team_id: str,
    preset: Union[DifficultyPreset, Difficulty, None] = None,
    name: str = "",
) -> TeamState:
    if preset is None:
        preset = PRESETS[Difficulty.NORMAL]
    elif isinstance(preset, Difficulty):
        preset = PRESETS[preset]

    state = TeamState(
        id=team_id,
        name=name or team_id,
        cash=preset.starting_cash,
        brand={segment: preset.starting_brand for segment in SEGMENTS},
        workforce=Workforce(
            workers=preset.workers, engineers=preset.engineers, supervisors=preset.supervisors,
        ),
        factories=[Factory(id=f"{team_id}-factory-1", name="Main Factory",
                           allocation=dict(DEFAULT_ALLOCATION))],
        products=[
            Product(
                id=f"{team_id}-{segment.name.lower()}", name=f"{label} Phone", segment=segment,
                price=price, quality=quality, features=features, launched_round=0,
            )
            for label, segment, price, quality, features in STARTER_PRODUCTS
        ],
    )
    state.segment_capacity = segment_capacity(state)
    state.unit_costs = {
        segment: unit_cost(segment, state.factories, state.workforce.salary_multiplier)
        for segment in SEGMENTS
    }
    state.market_cap = state.share_price * state.shares_outstanding
    return state


def create_initial_market_state(round_number: int = 1) -> MarketState:
    return MarketState(
        round_number=round_number,
        fx_rates=dict(STARTING_FX),
        demand={
            segment: SegmentDemand(total_units=units, price_min=low, price_max=high, growth_rate=growth)
            for segment, (units, low, high, growth) in STARTING_DEMAND.items()
        },
    )


# --- Orchestration ---

def state_hash(model) -> str:
    return hashlib.sha256(model.model_dump_json().encode("utf-8")).hexdigest()


def round_seed(game_seed: int, round_number: int) -> int:
    return derive_seed(game_seed, "round", round_number)


class RoundOrchestrator:
    """Holds the engines for one configuration; process() runs one round."""

    def __init__(self, config: Optional[EngineConfig] = None,
                 resolvers: Optional[List[ModuleResolver]] = None):
        self.config = config or EngineConfig()
        self.logistics = LogisticsEngine()
        self.market = MarketEngine(self.config)
        self.events = EventEngine(self.config)
        self.achievements = AchievementEngine()
        self.resolvers: List[ModuleResolver] = resolvers if resolvers is not None else [
            FactoryResolver(self.config, self.logistics),
            HRResolver(),
            RDResolver(),
            MarketingResolver(self.config),
            FinanceResolver(),
        ]

    def validate_decisions(self, state: TeamState, decisions: TeamDecisions,
                           market: MarketState) -> Dict[str, List[str]]:
        """Problems per module, checked against the team's current state."""
        problems: Dict[str, List[str]] = {}
        for resolver in self.resolvers:
            found = resolver.validate(state, _module_decisions(decisions, resolver.module), market)
            if found:
                problems[resolver.module.value] = found
        return problems

    def process(self, round_input: RoundInput, context: Optional[RandomContext] = None) -> RoundOutput:
        round_number = round_input.round_number
        ctx = context or RandomContext(round_seed(round_input.seed, round_number))
        market = round_input.market_state.model_copy(deep=True)
        market.round_number = round_number
        team_ids = [t.id for t in round_input.teams]
        if len(set(team_ids)) != len(team_ids):
            raise EngineError(f"Duplicate team ids in round input: {team_ids}")
        for team in round_input.teams:
            if team.state.id != team.id:
                raise EngineError(f"Team input {team.id} carries state for {team.state.id}")
        for injection in round_input.injected_events:
            self.events.validate_injection(injection, team_ids)

        logger.info("Processing round %d for %d teams (seed=%d)",
                    round_number, len(team_ids), round_input.seed)
        hashes_before = {t.id: state_hash(t.state) for t in round_input.teams}

        # 1. Module resolvers, per team in caller order
        states: Dict[str, TeamState] = {}
        module_results: Dict[str, List[ModuleResult]] = {}
        for team in round_input.teams:
            state = snapshot(team.state)
            # advertising and promotions only count in the round they are paid for
            state.advertising = {}
            state.promotions = {}
            results = []
            for resolver in self.resolvers:
                output = resolver.resolve(state, _module_decisions(team.decisions, resolver.module),
                                          ctx, market)
                state = output.state
                results.append(output.result)
            states[team.id] = state
            module_results[team.id] = results

        # 2. Event choices and team-targeted effects
        event_state = round_input.event_state.model_copy(deep=True)
        event_costs: Dict[str, float] = {}
        other_income: Dict[str, float] = {}
        event_messages: Dict[str, List[str]] = {}
        event_counters: Dict[str, Dict[str, float]] = {}
        for team in round_input.teams:
            state, event_state, outcome = self._apply_events(
                states[team.id], event_state, team.decisions, ctx, round_number,
            )
            states[team.id] = state
            event_costs[team.id], other_income[team.id], event_messages[team.id], event_counters[team.id] = outcome

        # 3. Market clearing
        ordered_states = [states[t] for t in team_ids]
        clearing = self.market.clear(ordered_states, market, ctx)
        total_demand = clearing.total_demand

        # 4. Financials
        financials: Dict[str, FinancialSummary] = {}
        shares: Dict[str, float] = {}
        for team_id in team_ids:
            state = states[team_id]
            sales = clearing.teams[team_id]
            financials[team_id] = self._settle(
                state, module_results[team_id], sales.sales, event_costs[team_id], other_income[team_id],
            )
            shares[team_id] = sales.units_sold / total_demand if total_demand else 0.0

        # 5. Rankings
        rankings = self.market.rank([
            (team_id, financials[team_id].net_income, financials[team_id].eps, shares[team_id])
            for team_id in team_ids
        ])
        by_team = {r.team_id: r for r in rankings}
        for team_id in team_ids:
            states[team_id].last_share_rank = by_team[team_id].share_rank

        # 6. Market evolution and events
        next_market = self.market.next_market_state(market, ctx)
        event_state, next_market = self.events.advance(
            event_state, next_market, ordered_states, ctx, round_input.injected_events, round_number,
        )

        # 7. Achievements
        previous_ranks = {r.team_id: r.overall_rank for r in round_input.previous_results}
        leaders = _segment_leaders(clearing)
        progress_out: Dict[str, AchievementProgress] = {}
        results: List[TeamRoundResult] = []
        for team in round_input.teams:
            state = states[team.id]
            ranking = by_team[team.id]
            metrics = _metrics(state, financials[team.id], ranking, clearing, leaders,
                               shares[team.id], len(team_ids), previous_ranks.get(team.id))
            counters = _counters(state, team.decisions, module_results[team.id], financials[team.id],
                                 round_number)
            for key, value in event_counters[team.id].items():
                counters[key] = counters.get(key, 0.0) + value
            progress = round_input.achievement_progress.get(team.id) or AchievementProgress(team_id=team.id)
            progress, awards = self.achievements.evaluate(progress, metrics, counters, round_number)
            progress_out[team.id] = progress

            assert_finite(state, f"teams[{team.id}]")
            results.append(TeamRoundResult(
                team_id=team.id,
                round_number=round_number,
                state=state,
                module_results=module_results[team.id],
                sales=clearing.teams[team.id].sales,
                competitor_actions=_competitor_actions(team.id, round_input, module_results),
                financials=financials[team.id],
                overall_rank=ranking.overall_rank,
                eps_rank=ranking.eps_rank,
                share_rank=ranking.share_rank,
                new_achievements=[a.achievement_id for a in awards],
                event_effects=event_messages[team.id],
                metrics=metrics,
                counters=counters,
            ))

        for team_id, progress in round_input.achievement_progress.items():
            progress_out.setdefault(team_id, progress.model_copy(deep=True))

        # 8. Audit
        audit = RoundAudit(
            seed=round_input.seed,
            round_seed=ctx.seed,
            engine_version=ENGINE_VERSION,
            draws=ctx.draws,
            state_hashes_before=hashes_before,
            state_hashes_after={r.team_id: state_hash(r.state) for r in results},
            market_hash=state_hash(next_market),
        )
        logger.info("Round %d complete: %d draws, leader %s",
                    round_number, ctx.draws, rankings[0].team_id if rankings else "-")
        return RoundOutput(
            round_number=round_number,
            results=results,
            rankings=rankings,
            market_clearing=clearing.segments,
            new_market_state=next_market,
            event_state=event_state,
            achievement_progress=progress_out,
            audit=audit,
        )

    def _apply_events(self, state: TeamState, event_state: EventState, decisions: TeamDecisions,
                      ctx: RandomContext, round_number: int):
        """
        Run one team's event choices and team-targeted effects on copies.

        On any failure the team and the shared event state keep their
        pre-step values; draws already taken stay consumed.
        """
        team_copy = snapshot(state)
        events_copy = event_state.model_copy(deep=True)
        try:
            costs, counters, messages = self._respond(events_copy, team_copy, decisions, ctx, round_number)
            cash_moved, effect_messages = self.events.apply_team_effects(events_copy, team_copy)
            assert_finite(team_copy, "state")
        except Exception as exc:  # event boundary: the round continues
            logger.warning("Event effects failed for team %s: %s", state.id, exc)
            return state, event_state, (0.0, 0.0, [f"Event effects failed: {exc}"], {})
        return team_copy, events_copy, (costs, cash_moved, messages + effect_messages, counters)

    def _respond(self, event_state: EventState, state: TeamState, decisions: TeamDecisions,
                 ctx: RandomContext, round_number: int) -> Tuple[float, Dict[str, float], List[str]]:
        costs = 0.0
        counters: Dict[str, float] = {}
        messages = []
        for instance_id in sorted(decisions.event_responses):
            choice_id = decisions.event_responses[instance_id]
            try:
                response, cost = self.events.respond(event_state, state, instance_id, choice_id,
                                                     ctx, round_number)
            except InvalidDecisionError as exc:
                messages.append(f"Event response rejected: {exc}")
                continue
            costs += cost
            event = next(e for e in event_state.active if e.instance_id == instance_id)
            choice = next(c for c in event.choices if c.id == choice_id)
            outcome = "succeeded" if response.success else "failed"
            messages.append(f"{event.title}: chose '{choice.label}' ({outcome})")
            counters["event_choices"] = counters.get("event_choices", 0.0) + 1
            if event.category == EventCategory.CRISIS:
                counters["crisis_choices"] = counters.get("crisis_choices", 0.0) + 1
            elif event.category == EventCategory.OPPORTUNITY:
                counters["opportunity_choices"] = counters.get("opportunity_choices", 0.0) + 1
            if response.success and choice.success_probability <= 0.5:
                counters["long_shot_wins"] = counters.get("long_shot_wins", 0.0) + 1
        return costs, counters, messages

    def _settle(self, state: TeamState, results: List[ModuleResult], sales, event_costs: float,
                other_income: float) -> FinancialSummary:
        """Book sales, COGS, and the round's income statement onto ``state``."""
        sales_revenue = sum(s.revenue for s in sales)
        gross_cogs = sum(s.units_sold * state.unit_costs.get(s.segment, 0.0) for s in sales)
        cogs = gross_cogs - consume_materials(state, sales)
        module_revenue = sum(r.revenue for r in results)
        operating_costs = sum(r.costs for r in results) + event_costs

        revenue = sales_revenue + module_revenue
        total_costs = operating_costs + cogs
        net_income = revenue - total_costs + other_income
        state.cash += sales_revenue - cogs
        state.revenue = revenue
        state.costs = total_costs
        state.net_income = net_income
        state.eps = net_income / state.shares_outstanding
        state.cumulative_revenue += revenue
        state.cumulative_costs += total_costs
        state.rounds_played += 1
        state.market_share = {s.segment: s.market_share for s in sales}
        update_market_cap(state)

        assets = state.cash + len(state.factories) * FACTORY_BOOK_VALUE
        return FinancialSummary(
            revenue=revenue,
            operating_costs=operating_costs,
            cogs=cogs,
            total_costs=total_costs,
            net_income=net_income,
            eps=state.eps,
            cash=state.cash,
            total_assets=assets,
            total_liabilities=state.total_debt,
            equity=book_equity(state),
            other_income=other_income,
            ratios=financial_ratios(state, revenue, net_income, cogs),
        )


def process_round(round_input: RoundInput, config: Optional[EngineConfig] = None,
                  context: Optional[RandomContext] = None) -> RoundOutput:
    return RoundOrchestrator(config).process(round_input, context)


def validate_decisions(state: TeamState, decisions: TeamDecisions, market: MarketState,
                       config: Optional[EngineConfig] = None) -> Dict[str, List[str]]:
    return RoundOrchestrator(config).validate_decisions(state, decisions, market)


# --- Helpers ---

def _module_decisions(decisions: TeamDecisions, module: ModuleName):
    return {
        ModuleName.FACTORY: decisions.factory,
        ModuleName.HR: decisions.hr,
        ModuleName.RD: decisions.rd,
        ModuleName.MARKETING: decisions.marketing,
        ModuleName.FINANCE: decisions.finance,
    }[module]


def _segment_leaders(clearing: MarketClearing) -> Dict[Segment, str]:
    leaders: Dict[Segment, str] = {}
    best: Dict[Segment, Tuple[int, str]] = {}
    for team_id in sorted(clearing.teams):
        for sale in clearing.teams[team_id].sales:
            if sale.units_sold <= 0:
                continue
            current = best.get(sale.segment)
            if current is None or sale.units_sold > current[0]:
                best[sale.segment] = (sale.units_sold, team_id)
    for segment, (_, team_id) in best.items():
        leaders[segment] = team_id
    return leaders


def _metrics(state: TeamState, financials: FinancialSummary, ranking: TeamRanking,
             clearing: MarketClearing, leaders: Dict[Segment, str], market_share: float,
             team_count: int, previous_rank: Optional[int]) -> Dict[str, float]:
    launched = state.launched_products()
    sales = clearing.teams[state.id].sales
    factories = state.factories
    return {
        "revenue": financials.revenue,
        "net_income": financials.net_income,
        "eps": financials.eps,
        "cash": state.cash,
        "market_cap": state.market_cap,
        "cumulative_revenue": state.cumulative_revenue,
        "debt_to_equity": financials.ratios.get("debt_to_equity", 0.0),
        "esg_score": state.esg_score,
        "brand_avg": sum(state.brand.values()) / len(state.brand) if state.brand else 0.0,
        "morale": state.workforce.morale,
        "burnout": state.workforce.burnout,
        "headcount": float(state.workforce.headcount),
        "avg_quality": sum(p.quality for p in launched) / len(launched) if launched else 0.0,
        "max_quality": max((p.quality for p in launched), default=0.0),
        "patents": float(state.patents),
        "rd_points": state.rd_points,
        "factories": float(len(factories)),
        "factory_regions": float(len({f.region for f in factories})),
        "efficiency_avg": sum(f.efficiency for f in factories) / len(factories) if factories else 0.0,
        "defect_rate": max((f.defect_rate for f in factories), default=0.0),
        "upgrades": float(sum(len(f.upgrades) for f in factories)),
        "segments_covered": float(sum(1 for s in sales if s.units_sold > 0)),
        "segments_led": float(sum(1 for team_id in leaders.values() if team_id == state.id)),
        "max_segment_share": max((s.market_share for s in sales), default=0.0),
        "market_share": market_share,
        "units_sold": float(sum(s.units_sold for s in sales)),
        "promotion_max": max(state.promotions.values(), default=0.0),
        "overall_rank": float(ranking.overall_rank),
        "eps_rank": float(ranking.eps_rank),
        "share_rank": float(ranking.share_rank),
        "is_last": 1.0 if team_count > 1 and ranking.overall_rank == team_count else 0.0,
        "rank_improvement": float(previous_rank - ranking.overall_rank) if previous_rank else 0.0,
    }


def _counters(state: TeamState, decisions: TeamDecisions, results: List[ModuleResult],
              financials: FinancialSummary, round_number: int) -> Dict[str, float]:
    ok = {r.module: r for r in results if r.success}
    counters: Dict[str, float] = {}

    def bump(key: str, amount: float = 1.0) -> None:
        if amount:
            counters[key] = counters.get(key, 0.0) + amount

    for tool in decisions.tools_used:
        bump(f"tool:{tool}")

    factory = ok.get(ModuleName.FACTORY)
    if factory is not None:
        placed = [s for s in state.shipments if s.placed_round == round_number]
        bump("material_orders", len(placed))
        bump("air_shipments", sum(1 for s in placed if s.method == ShippingMethod.AIR))
        bump("shipments_delayed", sum(1 for s in placed if s.delays))
        bump("shipments_delivered", factory.changes.get("shipments_delivered", 0))

    hr = ok.get(ModuleName.HR)
    if hr is not None:
        bump("trainings", len(decisions.hr.training))
        bump("fires", hr.changes.get("fired", 0))

    rd = ok.get(ModuleName.RD)
    if rd is not None:
        bump("products_launched", len(rd.changes.get("launched", [])))

    marketing = ok.get(ModuleName.MARKETING)
    if marketing is not None:
        bump("sponsorships", len(decisions.marketing.sponsorships))

    finance = ok.get(ModuleName.FINANCE)
    if finance is not None:
        fin = decisions.finance
        changes = finance.changes
        borrowed = bool(fin.loans) or fin.corporate_bonds > 0
        bump("loans_taken", len(fin.loans))
        bump("bonds_issued", 1 if fin.corporate_bonds > 0 else 0)
        bump("stock_issued", 1 if changes.get("shares_issued") else 0)
        bump("buybacks", 1 if changes.get("shares_bought_back") else 0)
        paid = bool(changes.get("dividends_paid"))
        bump("dividends_paid", 1 if paid else 0)
        bump("dividend_while_loss", 1 if paid and financials.net_income < 0 else 0)
        bump("borrowed_for_dividend", 1 if paid and borrowed else 0)
        approved = len(changes.get("board_approved", []))
        bump("board_approvals", approved)
        bump("board_rejections", len(fin.board_proposals) - approved)
    return counters


def _competitor_actions(team_id: str, round_input: RoundInput,
                        module_results: Dict[str, List[ModuleResult]]) -> List[str]:
    """Publicly visible moves by every other team this round."""
    actions = []
    for other in round_input.teams:
        if other.id == team_id:
            continue
        decisions = other.decisions
        ok = {r.module for r in module_results[other.id] if r.success}
        if ModuleName.MARKETING in ok:
            spend = sum(decisions.marketing.advertising.values())
            if spend > 0:
                actions.append(f"{other.id} spent ${spend / 1_000_000:.1f}M on advertising")
            if decisions.marketing.prices:
                actions.append(f"{other.id} repriced {len(decisions.marketing.prices)} product(s)")
            for name in decisions.marketing.sponsorships:
                actions.append(f"{other.id} signed the {name} sponsorship")
        if ModuleName.RD in ok:
            for plan in decisions.rd.new_products:
                actions.append(f"{other.id} started developing a {plan.segment.value} product")
        if ModuleName.FACTORY in ok:
            for order in decisions.factory.new_factories:
                actions.append(f"{other.id} is building a factory in {order.region.value}")
        if ModuleName.FINANCE in ok and decisions.finance.dividend_per_share > 0:
            actions.append(f"{other.id} paid a ${decisions.finance.dividend_per_share:.2f} dividend")
    return actions
