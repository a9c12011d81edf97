"""Tests for the five per-team module resolvers and the resolver boundary."""

import pytest
from pydantic import ValidationError

from quarter_engine.core.random_context import RandomContext
from quarter_engine.core.result import Result
from quarter_engine.engine.orchestrator import create_initial_market_state, create_initial_team_state
from quarter_engine.logistics.tariffs import duty, tariff_rate
from quarter_engine.models.config import EngineConfig
from quarter_engine.models.decisions import (
    FactoryDecisions,
    FactoryUpgradeOrder,
    FinanceDecisions,
    HRDecisions,
    LoanRequest,
    MarketingDecisions,
    MaterialOrder,
    NewFactoryOrder,
    NewProductSpec,
    ProductImprovement,
    RDDecisions,
)
from quarter_engine.models.logistics import Region, ShippingMethod
from quarter_engine.models.market import SEGMENTS, Segment
from quarter_engine.models.results import ModuleName, ModuleResult, SegmentSales
from quarter_engine.models.team import DebtInstrument, DebtKind, MaterialStock, ProductStatus, Role, Shipment
from quarter_engine.modules.base import ModuleResolver
from quarter_engine.modules.factory import (
    FactoryResolver,
    consume_materials,
    efficiency_gain,
    holding_cost,
    required_workers,
)
from quarter_engine.modules.finance import FinanceResolver, board_approval_probability
from quarter_engine.modules.hr import HRResolver
from quarter_engine.modules.marketing import MarketingResolver, diminishing_effect
from quarter_engine.modules.rd import RDResolver, development_rounds


def _make_team(team_id="team-a"):
    return create_initial_team_state(team_id)


def _make_market(round_number=1):
    return create_initial_market_state(round_number)


class _ExplodingResolver(ModuleResolver):
    module = ModuleName.HR

    def apply(self, state, decisions, ctx, market):
        state.cash -= 1
        raise RuntimeError("boom")


class _NaNResolver(ModuleResolver):
    module = ModuleName.FINANCE

    def apply(self, state, decisions, ctx, market):
        state.cash = float("nan")
        return ModuleResult(module=self.module, success=True)


class TestResolverBoundary:
    def test_exception_returns_original_state(self):
        state = _make_team()
        out = _ExplodingResolver().resolve(state, HRDecisions(), RandomContext(1), _make_market())
        assert out.state is state
        assert state.cash == 200_000_000
        assert not out.result.success
        assert "boom" in out.result.messages[0]

    def test_non_finite_value_is_a_failure(self):
        state = _make_team()
        out = _NaNResolver().resolve(state, FinanceDecisions(), RandomContext(1), _make_market())
        assert out.state is state
        assert not out.result.success
        assert "Non-finite" in out.result.messages[0]

    def test_success_never_mutates_input(self):
        state = _make_team()
        before = state.model_dump_json()
        decisions = FactoryDecisions(efficiency_investments={"workers": 5_000_000})
        out = FactoryResolver().resolve(state, decisions, RandomContext(1), _make_market())
        assert out.result.success
        assert out.state is not state
        assert state.model_dump_json() == before

    def test_attempt_reports_rejection_without_upkeep(self):
        outcome = HRResolver().attempt(_make_team(), HRDecisions(fires={Role.ENGINEER: 99}),
                                       RandomContext(3), _make_market())
        assert not outcome.ok
        assert outcome.value is None
        assert "Invalid hr decisions" in outcome.error
        with pytest.raises(ValueError):
            outcome.unwrap()

    def test_result_carries_typed_value(self):
        outcome = Result[int].success(7)
        assert outcome.ok
        assert outcome.unwrap() == 7
        failed = Result[int].failure("nope")
        assert failed.error == "nope"
        with pytest.raises(ValidationError):
            Result[int](ok=True, value="seven")


class TestFactoryResolver:
    def setup_method(self):
        self.resolver = FactoryResolver()
        self.market = _make_market()

    def test_initial_capacity(self):
        state = _make_team()
        assert required_workers(state.factories) == 50
        total = sum(state.segment_capacity.values())
        assert 0 < total <= 700_000 * 0.7 * 0.95
        assert set(state.segment_capacity) == set(SEGMENTS)

    def test_efficiency_investment(self):
        decisions = FactoryDecisions(efficiency_investments={"workers": 5_000_000})
        out = self.resolver.resolve(_make_team(), decisions, RandomContext(1), self.market)
        assert out.state.factories[0].efficiency == pytest.approx(0.75)
        assert out.result.costs == 7_000_000
        assert out.state.cash == 193_000_000

    def test_diminishing_returns(self):
        assert efficiency_gain("workers", 15_000_000, 0) == pytest.approx(0.125)
        assert efficiency_gain("engineers", 2_000_000, 9_000_000) == pytest.approx(0.03)

    def test_upgrade_applies_effects(self):
        state = _make_team()
        order = FactoryUpgradeOrder(factory_id=state.factories[0].id, upgrade="six_sigma")
        out = self.resolver.resolve(state, FactoryDecisions(upgrades=[order]), RandomContext(1), self.market)
        factory = out.state.factories[0]
        assert factory.upgrades == ["six_sigma"]
        assert factory.defect_rate == pytest.approx(0.03)
        assert out.result.costs == 77_000_000

    def test_unknown_upgrade_fails_validation(self):
        state = _make_team()
        order = FactoryUpgradeOrder(factory_id=state.factories[0].id, upgrade="teleporter")
        out = self.resolver.resolve(state, FactoryDecisions(upgrades=[order]), RandomContext(1), self.market)
        assert not out.result.success
        assert out.result.messages[0].startswith("Invalid factory decisions")
        assert out.state.factories[0].upgrades == []
        assert out.result.costs == 2_000_000
        assert out.state.cash == 198_000_000
        assert state.cash == 200_000_000

    def test_new_factories_stop_when_cash_runs_out(self):
        orders = [NewFactoryOrder(name=f"Plant {i}", region=Region.ASIA) for i in range(20)]
        out = self.resolver.resolve(_make_team(), FactoryDecisions(new_factories=orders),
                                    RandomContext(1), self.market)
        assert out.result.success
        assert len(out.state.factories) == 5
        assert sum("Insufficient funds" in m for m in out.result.messages) == 16
        assert out.result.costs == 4 * 50_000_000 + 5 * 2_000_000

    def test_unaffordable_material_order_is_skipped(self):
        state = _make_team()
        state.cash = 5_000
        order = MaterialOrder(origin=Region.ASIA, destination=Region.NORTH_AMERICA,
                              weight_tons=1.0, volume_m3=1.0, material_cost=10_000)
        ctx = RandomContext(1)
        out = self.resolver.resolve(state, FactoryDecisions(material_orders=[order]), ctx, self.market)
        assert ctx.draws == 1
        assert out.state.shipments == []
        assert any("Insufficient funds for material order" in m for m in out.result.messages)

    def test_new_factory_ids_are_deterministic(self):
        decisions = FactoryDecisions(new_factories=[NewFactoryOrder(name="Plant 2", region=Region.EUROPE)])
        out = self.resolver.resolve(_make_team(), decisions, RandomContext(1), self.market)
        assert [f.id for f in out.state.factories] == ["team-a-factory-1", "factory-team-a-r1-1"]
        assert out.result.costs == 50_000_000 + 2 * 2_000_000

    def test_material_order_becomes_shipment(self):
        order = MaterialOrder(origin=Region.ASIA, destination=Region.NORTH_AMERICA,
                              method=ShippingMethod.SEA, weight_tons=1.0, volume_m3=1.0,
                              material_cost=10_000)
        ctx = RandomContext(1)
        out = self.resolver.resolve(_make_team(), FactoryDecisions(material_orders=[order]), ctx, self.market)
        assert ctx.draws == 1
        shipment = out.state.shipments[0]
        assert shipment.cost == 5454
        assert shipment.arrival_round == 2
        assert shipment.segment == Segment.GENERAL
        assert shipment.units == 100
        assert shipment.landed_cost == pytest.approx(10_000 + 2_500 + 5454)
        assert out.result.costs == pytest.approx(10_000 + 2_500 + 5454 + 2_000_000)

    def test_unroutable_order_is_reported_not_failed(self):
        order = MaterialOrder(origin=Region.EUROPE, destination=Region.EUROPE,
                              weight_tons=1.0, volume_m3=1.0)
        out = self.resolver.resolve(_make_team(), FactoryDecisions(material_orders=[order]),
                                    RandomContext(1), self.market)
        assert out.result.success
        assert out.state.shipments == []
        assert any("unplaceable" in m for m in out.result.messages)

    def test_shipments_delivered_on_arrival(self):
        order = MaterialOrder(origin=Region.ASIA, destination=Region.NORTH_AMERICA,
                              weight_tons=1.0, volume_m3=1.0, material_cost=10_000)
        first = self.resolver.resolve(_make_team(), FactoryDecisions(material_orders=[order]),
                                      RandomContext(1), self.market)
        assert first.state.materials == {}
        second = self.resolver.resolve(first.state, FactoryDecisions(), RandomContext(2), _make_market(2))
        assert second.state.shipments == []
        assert second.result.changes["shipments_delivered"] == 1
        assert second.result.changes["delivered_shipment_ids"] == [first.state.shipments[0].id]
        stock = second.state.materials[Segment.GENERAL]
        assert stock.units == 100
        assert stock.average_cost == pytest.approx(179.54)
        assert second.result.changes["holding_cost"] == pytest.approx(359.08)
        assert second.result.costs == pytest.approx(359.08 + 2_000_000)

    def test_deliveries_average_landed_cost(self):
        state = _make_team()
        state.materials = {Segment.GENERAL: MaterialStock(units=100, average_cost=100.0)}
        state.shipments = [Shipment(id="s-1", origin=Region.ASIA, destination=Region.NORTH_AMERICA,
                                    method=ShippingMethod.SEA, weight_tons=1.0, volume_m3=1.0, cost=0,
                                    total_days=30, placed_round=0, arrival_round=1,
                                    segment=Segment.GENERAL, units=100, landed_cost=30_000)]
        out = self.resolver.resolve(state, FactoryDecisions(), RandomContext(1), self.market)
        stock = out.state.materials[Segment.GENERAL]
        assert stock.units == 200
        assert stock.average_cost == pytest.approx(200.0)
        assert out.result.changes["holding_cost"] == pytest.approx(40_000 * 0.02)


class TestMaterials:
    def test_sales_draw_kits_from_inventory(self):
        state = _make_team()
        state.materials = {Segment.ACTIVE_LIFESTYLE: MaterialStock(units=100, average_cost=150.0)}
        sales = [SegmentSales(segment=Segment.ACTIVE_LIFESTYLE, units_sold=60),
                 SegmentSales(segment=Segment.BUDGET, units_sold=500)]
        assert consume_materials(state, sales) == pytest.approx(60 * 150)
        assert state.materials[Segment.ACTIVE_LIFESTYLE].units == 40

    def test_inventory_runs_dry(self):
        state = _make_team()
        state.materials = {Segment.BUDGET: MaterialStock(units=10, average_cost=60.0)}
        covered = consume_materials(state, [SegmentSales(segment=Segment.BUDGET, units_sold=25)])
        assert covered == pytest.approx(10 * 50)
        assert state.materials[Segment.BUDGET].units == 0
        assert state.materials[Segment.BUDGET].value == 0

    def test_holding_cost_on_inventory_value(self):
        state = _make_team()
        assert holding_cost(state) == 0
        state.materials = {Segment.GENERAL: MaterialStock(units=1_000, average_cost=120.0)}
        assert holding_cost(state) == pytest.approx(2_400)

    def test_tariff_lanes(self):
        assert tariff_rate(Region.ASIA, Region.NORTH_AMERICA) == pytest.approx(0.25)
        assert tariff_rate(Region.NORTH_AMERICA, Region.ASIA) == pytest.approx(0.20)
        assert tariff_rate(Region.EUROPE, Region.ASIA) == 0
        assert duty(10_000, Region.ASIA, Region.EUROPE) == pytest.approx(1_000)


class TestHRResolver:
    def setup_method(self):
        self.resolver = HRResolver()
        self.market = _make_market()

    def test_hiring(self):
        decisions = HRDecisions(hires={Role.WORKER: 10})
        out = self.resolver.resolve(_make_team(), decisions, RandomContext(3), self.market)
        assert out.result.success
        assert out.result.changes["hired"] == 10
        assert out.result.costs >= 10 * 45_000 * 0.15
        assert out.state.workforce.efficiency < 70

    def test_one_turnover_draw_per_role(self):
        ctx = RandomContext(3)
        self.resolver.resolve(_make_team(), HRDecisions(), ctx, self.market)
        assert ctx.draws == 3

    def test_training_adds_one_draw(self):
        ctx = RandomContext(3)
        self.resolver.resolve(_make_team(), HRDecisions(training=[Role.ENGINEER]), ctx, self.market)
        assert ctx.draws == 4

    def test_cannot_fire_more_than_employed(self):
        state = _make_team()
        ctx = RandomContext(3)
        out = self.resolver.resolve(state, HRDecisions(fires={Role.ENGINEER: 99}), ctx, self.market)
        assert not out.result.success
        assert out.result.messages[0].startswith("Invalid hr decisions")
        assert ctx.draws == 3
        assert out.result.changes["fired"] == 0

    def test_rejected_decisions_still_pay_payroll(self):
        rejected = self.resolver.resolve(_make_team(), HRDecisions(fires={Role.ENGINEER: 99}),
                                         RandomContext(3), self.market)
        baseline = self.resolver.resolve(_make_team(), HRDecisions(), RandomContext(3), self.market)
        assert rejected.result.costs == pytest.approx(baseline.result.costs)
        assert rejected.result.costs > 0
        assert rejected.state.cash == pytest.approx(baseline.state.cash)

    def test_training_fatigue(self):
        state = _make_team()
        state.workforce.trainings_this_year = {Role.WORKER: 2}
        out = self.resolver.resolve(state, HRDecisions(training=[Role.WORKER]), RandomContext(3), _make_market(2))
        assert any("Training fatigue" in m for m in out.result.messages)

    def test_training_counts_reset_each_year(self):
        state = _make_team()
        state.workforce.trainings_this_year = {Role.WORKER: 2}
        out = self.resolver.resolve(state, HRDecisions(training=[Role.WORKER]), RandomContext(3), _make_market(5))
        assert not any("Training fatigue" in m for m in out.result.messages)
        assert out.state.workforce.trainings_this_year == {Role.WORKER: 1}

    def test_raise_lifts_morale(self):
        out = self.resolver.resolve(_make_team(), HRDecisions(salary_multiplier=1.5), RandomContext(3), self.market)
        assert out.state.workforce.morale == pytest.approx(80.0)

    def test_benefits_reduce_burnout(self):
        out = self.resolver.resolve(_make_team(), HRDecisions(benefits_budget=5_000_000),
                                    RandomContext(3), self.market)
        assert out.state.workforce.burnout == pytest.approx(5.0)
        assert out.state.workforce.morale == pytest.approx(80.0)


class TestRDResolver:
    def setup_method(self):
        self.resolver = RDResolver()
        self.market = _make_market()

    def test_budget_generates_points(self):
        out = self.resolver.resolve(_make_team(), RDDecisions(rd_budget=10_000_000), RandomContext(1), self.market)
        assert out.state.rd_points == pytest.approx(250 + 53.2)
        assert out.state.patents == 0
        assert out.result.costs == 10_000_000

    def test_patents_follow_cumulative_points(self):
        out = self.resolver.resolve(_make_team(), RDDecisions(rd_budget=20_000_000), RandomContext(1), self.market)
        assert out.state.patents == 1

    def test_development_then_launch(self):
        plan = NewProductSpec(name="Nova", segment=Segment.GENERAL, target_quality=70, target_features=60)
        assert development_rounds(70, 8) == 1
        first = self.resolver.resolve(_make_team(), RDDecisions(new_products=[plan]), RandomContext(1), self.market)
        product = first.state.products[-1]
        assert product.id == "product-team-a-r1-1"
        assert product.status == ProductStatus.IN_DEVELOPMENT
        assert first.result.costs == pytest.approx(14_000_000)

        second = self.resolver.resolve(first.state, RDDecisions(), RandomContext(2), _make_market(2))
        launched = second.state.find_product(product.id)
        assert launched.status == ProductStatus.LAUNCHED
        assert launched.quality == 70
        assert launched.launched_round == 2
        assert second.result.changes["launched"] == [product.id]

    def test_improvement_needs_progress(self):
        improvement = ProductImprovement(product_id="team-a-general", quality_increase=10)
        out = self.resolver.resolve(_make_team(), RDDecisions(improvements=[improvement]),
                                    RandomContext(1), self.market)
        assert out.result.success
        assert out.state.find_product("team-a-general").quality == 65
        assert any("Not enough R&D progress" in m for m in out.result.messages)

    def test_unknown_product_fails(self):
        improvement = ProductImprovement(product_id="nope", quality_increase=1)
        out = self.resolver.resolve(_make_team(), RDDecisions(improvements=[improvement]),
                                    RandomContext(1), self.market)
        assert not out.result.success

    def test_unaffordable_development_is_skipped(self):
        state = _make_team()
        state.cash = 1_000_000
        plan = NewProductSpec(name="Nova", segment=Segment.GENERAL, target_quality=70, target_features=60)
        out = self.resolver.resolve(state, RDDecisions(new_products=[plan]), RandomContext(1), self.market)
        assert out.result.success
        assert len(out.state.products) == len(state.products)
        assert out.result.costs == 0
        assert any("Insufficient funds to develop Nova" in m for m in out.result.messages)

    def test_draws_nothing(self):
        ctx = RandomContext(1)
        self.resolver.resolve(_make_team(), RDDecisions(rd_budget=5_000_000), ctx, self.market)
        assert ctx.draws == 0


class TestMarketingResolver:
    def setup_method(self):
        self.resolver = MarketingResolver()
        self.market = _make_market()

    def test_brand_decays_without_spend(self):
        state = _make_team()
        for _ in range(5):
            state = self.resolver.resolve(state, MarketingDecisions(), RandomContext(1), self.market).state
        for segment in SEGMENTS:
            assert state.brand[segment] == pytest.approx(0.5 * 0.98 ** 5)

    def test_gain_is_capped(self):
        decisions = MarketingDecisions(advertising={Segment.GENERAL: 50_000_000})
        out = self.resolver.resolve(_make_team(), decisions, RandomContext(1), self.market)
        assert out.state.brand[Segment.GENERAL] == pytest.approx(0.49 + 0.02)
        assert out.result.costs == 50_000_000

    def test_diminishing_advertising(self):
        assert diminishing_effect(3_000_000, 0.0015) == pytest.approx(0.0045)
        assert diminishing_effect(6_000_000, 0.0015) == pytest.approx(0.0045 + 0.0027)

    def test_custom_decay_rate(self):
        resolver = MarketingResolver(EngineConfig(brand_decay_rate=0.1))
        out = resolver.resolve(_make_team(), MarketingDecisions(), RandomContext(1), self.market)
        assert out.state.brand[Segment.BUDGET] == pytest.approx(0.45)

    def test_promotion_limit(self):
        decisions = MarketingDecisions(promotions={Segment.BUDGET: 0.6})
        out = self.resolver.resolve(_make_team(), decisions, RandomContext(1), self.market)
        assert not out.result.success

    def test_reprice(self):
        decisions = MarketingDecisions(prices={"team-a-budget": 180.0}, promotions={Segment.BUDGET: 0.1})
        out = self.resolver.resolve(_make_team(), decisions, RandomContext(1), self.market)
        assert out.state.find_product("team-a-budget").price == 180.0
        assert out.state.promotions == {Segment.BUDGET: 0.1}

    def test_sponsorship_raises_esg(self):
        decisions = MarketingDecisions(sponsorships=["university_program"])
        out = self.resolver.resolve(_make_team(), decisions, RandomContext(1), self.market)
        assert out.state.esg_score == 110
        assert out.result.costs == 3_000_000

    def test_unaffordable_sponsorship_is_skipped(self):
        state = _make_team()
        state.cash = 1_000_000
        decisions = MarketingDecisions(sponsorships=["university_program"])
        out = self.resolver.resolve(state, decisions, RandomContext(1), self.market)
        assert out.state.esg_score == 100
        assert out.result.costs == 0
        assert any("Insufficient funds" in m for m in out.result.messages)

    def test_unpaid_advertising_does_not_reach_the_market(self):
        state = _make_team()
        state.cash = 4_000_000
        decisions = MarketingDecisions(advertising={Segment.BUDGET: 3_000_000, Segment.GENERAL: 3_000_000})
        out = self.resolver.resolve(state, decisions, RandomContext(1), self.market)
        assert len(out.state.advertising) == 1
        assert out.result.costs == 3_000_000

    def test_brand_still_decays_when_decisions_are_rejected(self):
        state = _make_team()
        state.advertising = {Segment.GENERAL: 9_000_000}
        decisions = MarketingDecisions(prices={"team-a-budget": -1.0}, advertising={Segment.GENERAL: 9_000_000})
        out = self.resolver.resolve(state, decisions, RandomContext(1), self.market)
        assert not out.result.success
        assert out.result.costs == 0
        assert out.state.advertising == {}
        assert out.state.brand[Segment.GENERAL] == pytest.approx(0.49)


class TestFinanceResolver:
    def setup_method(self):
        self.resolver = FinanceResolver()
        self.market = _make_market()

    def test_loan(self):
        decisions = FinanceDecisions(loans=[LoanRequest(amount=10_000_000, term_months=12)])
        out = self.resolver.resolve(_make_team(), decisions, RandomContext(1), self.market)
        assert out.state.cash == 200_000_000 + 10_000_000 - 100_000
        loan = out.state.debt[0]
        assert loan.kind == DebtKind.LOAN
        assert loan.annual_rate == 7.0
        assert loan.rounds_remaining == 4
        assert out.result.changes["loans_taken"] == 1

    def test_interest_and_maturity(self):
        state = _make_team()
        state.debt = [DebtInstrument(id="bond-1", kind=DebtKind.CORPORATE_BOND, principal=40_000_000,
                                     annual_rate=6.0, rounds_remaining=1, issued_round=0)]
        out = self.resolver.resolve(state, FinanceDecisions(), RandomContext(1), self.market)
        assert out.result.costs == pytest.approx(600_000)
        assert out.state.debt == []
        assert out.state.cash == pytest.approx(200_000_000 - 40_000_000 - 600_000)

    def test_dividends_move_cash_not_costs(self):
        out = self.resolver.resolve(_make_team(), FinanceDecisions(dividend_per_share=1.0),
                                    RandomContext(1), self.market)
        assert out.result.costs == 0
        assert out.state.cash == 190_000_000
        assert out.state.dividend_history[0].total == 10_000_000

    def test_stock_issuance(self):
        out = self.resolver.resolve(_make_team(), FinanceDecisions(stock_issuance=1_000_000),
                                    RandomContext(1), self.market)
        assert out.state.shares_outstanding == 11_000_000
        assert out.result.costs == pytest.approx(47_500_000 * 0.03)

    def test_buyback_over_cash_is_invalid(self):
        state = _make_team()
        out = self.resolver.resolve(state, FinanceDecisions(buyback_amount=500_000_000),
                                    RandomContext(1), self.market)
        assert not out.result.success
        assert out.result.messages[0].startswith("Invalid finance decisions")
        assert out.state.shares_outstanding == state.shares_outstanding
        assert out.state.cash == 200_000_000

    def test_rejected_decisions_still_pay_interest(self):
        state = _make_team()
        state.debt = [DebtInstrument(id="bond-1", kind=DebtKind.CORPORATE_BOND, principal=40_000_000,
                                     annual_rate=6.0, rounds_remaining=1, issued_round=0)]
        out = self.resolver.resolve(state, FinanceDecisions(buyback_amount=500_000_000),
                                    RandomContext(1), self.market)
        assert not out.result.success
        assert out.result.costs == pytest.approx(600_000)
        assert out.state.debt == []
        assert out.state.cash == pytest.approx(200_000_000 - 40_000_000 - 600_000)

    def test_board_vote_one_draw_per_proposal(self):
        state = _make_team()
        assert board_approval_probability(state, "dividend_increase") == 53
        ctx = RandomContext(1)
        decisions = FinanceDecisions(board_proposals=["dividend_increase", "expansion"])
        out = self.resolver.resolve(state, decisions, ctx, self.market)
        assert ctx.draws == 2
        assert [d.proposal for d in out.state.board_history] == ["dividend_increase", "expansion"]

    def test_unknown_proposal(self):
        out = self.resolver.resolve(_make_team(), FinanceDecisions(board_proposals=["moon_base"]),
                                    RandomContext(1), self.market)
        assert not out.result.success
