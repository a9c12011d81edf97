"""Tests for process_round: determinism, isolation, settlement and audit."""

import math
import random

import numpy as np
import pytest

from quarter_engine.achievements.catalog import ACHIEVEMENTS
from quarter_engine.core.errors import EngineError, NonFiniteValueError, UnknownEventError
from quarter_engine.core.random_context import RandomContext
from quarter_engine.engine.orchestrator import (
    ENGINE_VERSION,
    RoundOrchestrator,
    create_initial_market_state,
    create_initial_team_state,
    process_round,
    round_seed,
    state_hash,
    validate_decisions,
)
from quarter_engine.models.achievements import RequirementKind
from quarter_engine.models.config import Difficulty, EngineConfig
from quarter_engine.models.decisions import (
    FinanceDecisions,
    HRDecisions,
    MarketingDecisions,
    TeamDecisions,
)
from quarter_engine.models.events import EventInjection
from quarter_engine.models.market import SEGMENTS, Segment
from quarter_engine.models.results import ModuleName, RoundInput, TeamInput
from quarter_engine.models.team import MaterialStock, Role
from quarter_engine.modules.base import ModuleResolver
from quarter_engine.modules.factory import FactoryResolver
from quarter_engine.modules.finance import FinanceResolver
from quarter_engine.modules.hr import HRResolver
from quarter_engine.modules.marketing import MarketingResolver
from quarter_engine.modules.rd import RDResolver

QUIET = EngineConfig(random_events=False)


def _make_input(seed=42, round_number=1, decisions=None, team_ids=("team-a", "team-b"), injections=None):
    decisions = decisions or {}
    return RoundInput(
        round_number=round_number,
        seed=seed,
        teams=[
            TeamInput(id=tid, state=create_initial_team_state(tid), decisions=decisions.get(tid, TeamDecisions()))
            for tid in team_ids
        ],
        market_state=create_initial_market_state(round_number),
        injected_events=injections or [],
    )


def _busy_decisions():
    return {
        "team-a": TeamDecisions(
            hr=HRDecisions(hires={Role.WORKER: 3}, training=[Role.WORKER]),
            marketing=MarketingDecisions(advertising={Segment.GENERAL: 5_000_000}),
            finance=FinanceDecisions(board_proposals=["expansion"]),
        ),
        "team-b": TeamDecisions(
            marketing=MarketingDecisions(promotions={Segment.BUDGET: 0.1}),
        ),
    }


class _ExplodingHR(ModuleResolver):
    module = ModuleName.HR

    def apply(self, state, decisions, ctx, market):
        raise RuntimeError("payroll system down")


class TestDeterminism:
    def test_same_input_byte_identical_output(self):
        first = process_round(_make_input(decisions=_busy_decisions()))
        second = process_round(_make_input(decisions=_busy_decisions()))
        assert first.model_dump_json() == second.model_dump_json()

    def test_seed_changes_outcome(self):
        first = process_round(_make_input(seed=1))
        second = process_round(_make_input(seed=2))
        assert first.audit.round_seed != second.audit.round_seed
        assert first.new_market_state != second.new_market_state

    def test_inputs_are_not_mutated(self):
        round_input = _make_input(decisions=_busy_decisions(), injections=[EventInjection(type="boom")])
        before = round_input.model_dump_json()
        process_round(round_input)
        assert round_input.model_dump_json() == before

    def test_no_ambient_randomness(self, monkeypatch):
        def forbidden(*args, **kwargs):
            raise AssertionError("ambient random source used")

        for name in ("random", "uniform", "randint", "choice", "shuffle", "gauss"):
            monkeypatch.setattr(random, name, forbidden)
        for name in ("random", "rand", "randint", "normal", "uniform", "choice"):
            monkeypatch.setattr(np.random, name, forbidden)
        output = process_round(_make_input(decisions=_busy_decisions()))
        assert output.round_number == 1

    def test_explicit_context_is_used(self):
        ctx = RandomContext(round_seed(42, 1))
        output = RoundOrchestrator().process(_make_input(), ctx)
        assert output.audit.draws == ctx.draws
        assert output.model_dump_json() == process_round(_make_input()).model_dump_json()


class TestValidation:
    def test_duplicate_team_ids(self):
        with pytest.raises(EngineError):
            process_round(_make_input(team_ids=("team-a", "team-a")))

    def test_mismatched_state_id(self):
        round_input = _make_input()
        round_input.teams[0].id = "team-z"
        with pytest.raises(EngineError):
            process_round(round_input)

    def test_unknown_injection(self):
        with pytest.raises(UnknownEventError):
            process_round(_make_input(injections=[EventInjection(type="meteor")]))

    def test_non_finite_input_is_rejected(self):
        round_input = _make_input()
        round_input.teams[0].state.cash = float("nan")
        with pytest.raises(NonFiniteValueError):
            process_round(round_input)

    def test_validate_decisions_reports_by_module(self):
        state = create_initial_team_state("team-a")
        decisions = TeamDecisions(
            hr=HRDecisions(fires={Role.ENGINEER: 500}),
            marketing=MarketingDecisions(promotions={Segment.BUDGET: 0.9}),
        )
        problems = validate_decisions(state, decisions, create_initial_market_state())
        assert set(problems) == {"hr", "marketing"}
        assert validate_decisions(state, TeamDecisions(), create_initial_market_state()) == {}


class TestFailureIsolation:
    def test_failing_resolver_does_not_stop_round(self):
        orchestrator = RoundOrchestrator(resolvers=[
            FactoryResolver(), _ExplodingHR(), RDResolver(), MarketingResolver(), FinanceResolver(),
        ])
        output = orchestrator.process(_make_input())
        assert len(output.results) == 2
        for result in output.results:
            hr = result.module_results[1]
            assert hr.module == ModuleName.HR
            assert not hr.success
            assert "payroll system down" in hr.messages[0]
            assert all(r.success for i, r in enumerate(result.module_results) if i != 1)
            assert result.state.workforce.workers == 50

    def test_invalid_decisions_fail_one_module_for_one_team(self):
        decisions = {"team-a": TeamDecisions(hr=HRDecisions(fires={Role.ENGINEER: 500}))}
        output = process_round(_make_input(decisions=decisions), QUIET)
        results = {r.team_id: r for r in output.results}
        assert not results["team-a"].module_results[1].success
        assert results["team-a"].state.workforce.engineers <= 8
        assert all(r.success for r in results["team-b"].module_results)


class TestSettlement:
    def test_cash_moves_by_net_income(self):
        output = process_round(_make_input(decisions={
            "team-a": TeamDecisions(marketing=MarketingDecisions(advertising={Segment.BUDGET: 2_000_000})),
        }), QUIET)
        for result in output.results:
            fin = result.financials
            assert result.state.cash - 200_000_000 == pytest.approx(fin.net_income, rel=1e-9)
            assert fin.net_income == pytest.approx(fin.revenue - fin.total_costs + fin.other_income)
            assert fin.total_costs == pytest.approx(fin.operating_costs + fin.cogs)
            assert result.state.rounds_played == 1

    def test_sales_within_demand(self):
        output = process_round(_make_input(team_ids=("team-a", "team-b", "team-c")))
        for segment in output.market_clearing:
            sold = sum(
                s.units_sold for r in output.results for s in r.sales if s.segment == segment.segment
            )
            assert sold == segment.units_sold <= segment.demand

    def test_rankings_are_total(self):
        output = process_round(_make_input(team_ids=("team-c", "team-a", "team-b")))
        assert sorted(r.overall_rank for r in output.rankings) == [1, 2, 3]
        incomes = [r.net_income for r in output.rankings]
        assert incomes == sorted(incomes, reverse=True)
        for result in output.results:
            assert result.state.last_share_rank == result.share_rank

    def test_results_follow_caller_order(self):
        output = process_round(_make_input(team_ids=("team-c", "team-a")))
        assert [r.team_id for r in output.results] == ["team-c", "team-a"]

    def test_competitor_actions_are_visible(self):
        output = process_round(_make_input(decisions=_busy_decisions()))
        team_b = next(r for r in output.results if r.team_id == "team-b")
        assert "team-a spent $5.0M on advertising" in team_b.competitor_actions

    def test_difficulty_changes_starting_point(self):
        state = create_initial_team_state("team-a", Difficulty.HARD)
        assert state.cash == 150_000_000
        assert state.brand[Segment.GENERAL] == 0.4


class TestMarketAndEvents:
    def test_recession_injection(self):
        calm = process_round(_make_input(), QUIET)
        hit = process_round(_make_input(injections=[EventInjection(type="recession")]), QUIET)
        assert hit.new_market_state.gdp == pytest.approx(calm.new_market_state.gdp - 2)
        for segment in SEGMENTS:
            assert hit.new_market_state.demand[segment].total_units < calm.new_market_state.demand[segment].total_units
        assert hit.event_state.active[0].event_id == "recession"
        assert hit.event_state.crisis_level == 20

    def test_market_advances_one_round(self):
        output = process_round(_make_input(round_number=4))
        assert output.new_market_state.round_number == 5
        assert output.round_number == 4


class TestAchievementsInRound:
    def test_metrics_cover_catalog(self):
        output = process_round(_make_input())
        metrics = output.results[0].metrics
        for achievement in ACHIEVEMENTS:
            for req in achievement.requirements:
                if req.kind != RequirementKind.CUSTOM:
                    assert req.metric in metrics, req.metric
        assert all(math.isfinite(v) for v in metrics.values())

    def test_tool_usage_counts(self):
        decisions = {"team-a": TeamDecisions(tools_used=["route_comparison"])}
        output = process_round(_make_input(decisions=decisions))
        result = next(r for r in output.results if r.team_id == "team-a")
        assert result.counters["tool:route_comparison"] == 1
        assert "route_scholar" in result.new_achievements
        assert "route_scholar" in output.achievement_progress["team-a"].awarded_ids

    def test_progress_for_every_team(self):
        output = process_round(_make_input())
        assert set(output.achievement_progress) == {"team-a", "team-b"}
        assert all(p.last_round == 1 for p in output.achievement_progress.values())


class TestAudit:
    def test_audit_record(self):
        round_input = _make_input()
        output = process_round(round_input)
        audit = output.audit
        assert audit.seed == 42
        assert audit.round_seed == round_seed(42, 1)
        assert audit.engine_version == ENGINE_VERSION
        assert audit.draws > 0
        assert audit.state_hashes_before == {t.id: state_hash(t.state) for t in round_input.teams}
        assert audit.state_hashes_after == {r.team_id: state_hash(r.state) for r in output.results}
        assert audit.market_hash == state_hash(output.new_market_state)


class _ExplodingMarketing(ModuleResolver):
    module = ModuleName.MARKETING

    def apply(self, state, decisions, ctx, market):
        raise RuntimeError("ad server down")


def _carry_over_input(decisions):
    """Round 2 input where team-a still carries round 1's advertising and promotions."""
    state = create_initial_team_state("team-a")
    state.advertising = {Segment.GENERAL: 40_000_000}
    state.promotions = {Segment.GENERAL: 0.4}
    return RoundInput(
        round_number=2,
        seed=42,
        teams=[
            TeamInput(id="team-a", state=state, decisions=decisions),
            TeamInput(id="team-b", state=create_initial_team_state("team-b"), decisions=TeamDecisions()),
        ],
        market_state=create_initial_market_state(2),
    )


class TestRoundScopedMarketing:
    def test_rejected_marketing_does_not_carry_old_spend(self):
        decisions = TeamDecisions(marketing=MarketingDecisions(prices={"team-a-general": -1.0}))
        output = process_round(_carry_over_input(decisions), QUIET)
        team_a = output.results[0]
        marketing = team_a.module_results[3]
        assert not marketing.success
        assert marketing.costs == 0
        assert team_a.state.advertising == {}
        assert team_a.state.promotions == {}

    def test_failed_marketing_does_not_carry_old_spend(self):
        orchestrator = RoundOrchestrator(QUIET, resolvers=[
            FactoryResolver(), HRResolver(), RDResolver(), _ExplodingMarketing(), FinanceResolver(),
        ])
        output = orchestrator.process(_carry_over_input(TeamDecisions()))
        team_a = output.results[0]
        assert not team_a.module_results[3].success
        assert team_a.state.advertising == {}
        assert team_a.state.promotions == {}
        general = next(s for s in team_a.sales if s.segment == Segment.GENERAL)
        assert general.price == 450

    def test_paid_advertising_is_kept_for_the_round(self):
        decisions = TeamDecisions(marketing=MarketingDecisions(advertising={Segment.BUDGET: 2_000_000}))
        output = process_round(_carry_over_input(decisions), QUIET)
        assert output.results[0].state.advertising == {Segment.BUDGET: 2_000_000}


class TestEventStepBoundary:
    def setup_method(self):
        self.orchestrator = RoundOrchestrator(QUIET)

    def test_non_finite_effect_is_rolled_back(self, monkeypatch):
        def poisoned(event_state, team):
            team.cash = float("nan")
            return 0.0, []

        monkeypatch.setattr(self.orchestrator.events, "apply_team_effects", poisoned)
        output = self.orchestrator.process(_make_input())
        for result in output.results:
            assert math.isfinite(result.state.cash)
            assert any(m.startswith("Event effects failed") for m in result.event_effects)
            assert result.financials.other_income == 0

    def test_raising_effect_keeps_pre_step_state(self, monkeypatch):
        calm = RoundOrchestrator(QUIET).process(_make_input())

        def broken(event_state, team):
            team.esg_score = 999
            event_state.crisis_level = 99
            raise UnknownEventError("Unknown team effect target 'teleport'")

        monkeypatch.setattr(self.orchestrator.events, "apply_team_effects", broken)
        output = self.orchestrator.process(_make_input())
        assert len(output.results) == 2
        for hit, baseline in zip(output.results, calm.results):
            assert hit.state.esg_score == baseline.state.esg_score
            assert hit.financials.net_income == pytest.approx(baseline.financials.net_income)
        assert output.event_state.model_dump() == calm.event_state.model_dump()


class TestMaterialsInSettlement:
    def test_inventory_kits_come_off_cogs(self):
        stocked = create_initial_team_state("team-a")
        stocked.materials = {Segment.BUDGET: MaterialStock(units=1_000_000, average_cost=60.0)}
        round_input = RoundInput(
            round_number=1,
            seed=42,
            teams=[
                TeamInput(id="team-a", state=stocked, decisions=TeamDecisions()),
                TeamInput(id="team-b", state=create_initial_team_state("team-b"), decisions=TeamDecisions()),
            ],
            market_state=create_initial_market_state(1),
        )
        output = process_round(round_input, QUIET)
        team_a = output.results[0]
        gross = sum(s.units_sold * team_a.state.unit_costs[s.segment] for s in team_a.sales)
        budget_sold = next(s.units_sold for s in team_a.sales if s.segment == Segment.BUDGET)
        assert budget_sold > 0
        assert team_a.financials.cogs == pytest.approx(gross - budget_sold * 50)
        assert team_a.state.materials[Segment.BUDGET].units == 1_000_000 - budget_sold
        assert team_a.module_results[0].changes["holding_cost"] == pytest.approx(1_200_000)
