"""
Event catalog — named market shocks and randomly triggered game events.

Market shocks are what a facilitator usually injects ("recession", "boom");
the same effect sets back the economic templates that can trigger on their own.
"""

from typing import Dict, List

from quarter_engine.models.events import (
    ConditionKind,
    EffectMode,
    EventCategory,
    EventChoice,
    EventCondition,
    EventEffect,
    GameEvent,
    Severity,
)


def _fx(target: str, value: float, mode: EffectMode = EffectMode.ADD) -> EventEffect:
    return EventEffect(target=target, value=value, mode=mode)


MARKET_SHOCKS: Dict[str, List[EventEffect]] = {
    "recession": [
        _fx("gdp", -2), _fx("consumerConfidence", -15), _fx("unemployment", 1.5),
        _fx("demand_all", -0.15),
    ],
    "boom": [
        _fx("gdp", 2), _fx("consumerConfidence", 10), _fx("unemployment", -0.5),
        _fx("demand_all", 0.15),
    ],
    "inflation_spike": [
        _fx("inflation", 3), _fx("federalRate", 0.75), _fx("consumerConfidence", -8),
    ],
    "tech_breakthrough": [
        _fx("demand_enthusiast", 0.25), _fx("demand_professional", 0.20),
        _fx("qualityExpectations", 0.05),
    ],
    "sustainability_regulation": [_fx("sustainabilityPremium", 0.15)],
    "price_war": [_fx("priceCompetition", 0.2), _fx("demand_budget", 0.15)],
    "supply_chain_crisis": [_fx("demand_all", -0.10)],
    "currency_crisis": [_fx("fxVolatility", 0.2)],
}

SEVERITY_CRISIS_POINTS: Dict[Severity, float] = {
    Severity.LOW: 5,
    Severity.MEDIUM: 10,
    Severity.HIGH: 20,
    Severity.CRITICAL: 30,
}

EVENT_CATALOG: List[GameEvent] = [
    GameEvent(
        id="tech_breakthrough",
        title="Research Breakthrough",
        description="Your R&D team has made a significant discovery that could accelerate product development.",
        category=EventCategory.OPPORTUNITY,
        base_probability=0.05,
        single_team=True,
        team_effects=[_fx("rd_points", 500)],
        choices=[
            EventChoice(id="patent", label="Patent the Discovery", cost=1_000_000,
                        effects=[_fx("rd_points", 200), _fx("brand", 0.02)]),
            EventChoice(id="publish", label="Publish Research",
                        effects=[_fx("brand", 0.03), _fx("morale", 10)]),
            EventChoice(id="commercialize", label="Fast-Track Commercialization", cost=5_000_000,
                        success_probability=0.7, effects=[_fx("quality", 5)]),
        ],
    ),
    GameEvent(
        id="market_expansion",
        title="New Market Opportunity",
        description="A major retailer wants to feature your products prominently.",
        category=EventCategory.OPPORTUNITY,
        base_probability=0.08,
        duration=2,
        single_team=True,
        conditions=[EventCondition(kind=ConditionKind.TEAM_METRIC, field="brand", operator=">", value=0.3)],
        team_effects=[_fx("brand", 0.01)],
        choices=[
            EventChoice(id="exclusive", label="Exclusive Partnership", cost=2_000_000,
                        effects=[_fx("brand", 0.02), _fx("capacity", 0.05, EffectMode.MULTIPLY)]),
            EventChoice(id="standard", label="Standard Distribution Deal", cost=500_000,
                        effects=[_fx("brand", 0.015)]),
        ],
    ),
    GameEvent(
        id="talent_pool",
        title="Talent Acquisition Opportunity",
        description="A competitor is downsizing, making top talent available.",
        category=EventCategory.OPPORTUNITY,
        base_probability=0.06,
        single_team=True,
        choices=[
            EventChoice(id="hire_engineers", label="Recruit Engineers", cost=3_000_000,
                        effects=[_fx("rd_points", 300), _fx("morale", -5)]),
            EventChoice(id="hire_workers", label="Recruit Production Staff", cost=1_500_000,
                        effects=[_fx("capacity", 0.1, EffectMode.MULTIPLY)]),
            EventChoice(id="pass", label="Pass on Opportunity", effects=[_fx("morale", 5)]),
        ],
    ),
    GameEvent(
        id="product_recall",
        title="Product Quality Issue",
        description="Defect reports are piling up and regulators are asking questions.",
        category=EventCategory.CRISIS,
        severity=Severity.HIGH,
        base_probability=0.3,
        duration=2,
        conditions=[EventCondition(kind=ConditionKind.TEAM_METRIC, field="defect_rate", operator=">", value=0.08)],
        team_effects=[_fx("brand", -0.05), _fx("cash", -5_000_000)],
        choices=[
            EventChoice(id="full_recall", label="Full Product Recall", cost=25_000_000,
                        effects=[_fx("brand", 0.025)]),
            EventChoice(id="limited_recall", label="Limited Recall", cost=10_000_000,
                        effects=[_fx("brand", -0.015)]),
            EventChoice(id="advisory", label="Issue Advisory Only", success_probability=0.4,
                        effects=[_fx("brand", -0.01)],
                        failure_effects=[_fx("brand", -0.04), _fx("cash", -2_500_000)]),
        ],
    ),
    GameEvent(
        id="labor_dispute",
        title="Labor Dispute",
        description="Workers are threatening to strike over conditions and pay.",
        category=EventCategory.CRISIS,
        severity=Severity.MEDIUM,
        base_probability=0.4,
        duration=2,
        conditions=[EventCondition(kind=ConditionKind.TEAM_METRIC, field="morale", operator="<", value=40)],
        team_effects=[_fx("capacity", -0.3, EffectMode.MULTIPLY), _fx("morale", -5)],
        choices=[
            EventChoice(id="negotiate", label="Negotiate Settlement", cost=5_000_000,
                        effects=[_fx("morale", 10)]),
            EventChoice(id="hardline", label="Take Hard Line", success_probability=0.3,
                        effects=[_fx("morale", -5)],
                        failure_effects=[_fx("capacity", -0.5, EffectMode.MULTIPLY), _fx("morale", -8)]),
            EventChoice(id="mediation", label="Third-Party Mediation", cost=1_000_000,
                        effects=[_fx("morale", 5), _fx("capacity", -0.1, EffectMode.MULTIPLY)]),
        ],
    ),
    GameEvent(
        id="cyber_attack",
        title="Cyber Security Breach",
        description="Hackers accessed customer data. The press has the story.",
        category=EventCategory.CRISIS,
        severity=Severity.HIGH,
        base_probability=0.03,
        duration=2,
        single_team=True,
        team_effects=[_fx("brand", -0.04), _fx("cash", -2_500_000)],
        choices=[
            EventChoice(id="transparent", label="Full Transparency", cost=8_000_000,
                        effects=[_fx("brand", 0.015), _fx("esg", 25)]),
            EventChoice(id="minimal", label="Minimal Disclosure", cost=2_000_000,
                        effects=[_fx("brand", -0.025), _fx("esg", -50)]),
        ],
    ),
    GameEvent(
        id="trend_shift",
        title="Consumer Trend Shift",
        description="Consumers are increasingly choosing sustainable products.",
        category=EventCategory.MARKET_SHIFT,
        base_probability=0.04,
        duration=4,
        market_effects=[_fx("sustainabilityPremium", 0.02)],
        team_effects=[_fx("esg", 25)],
        choices=[
            EventChoice(id="embrace", label="Embrace Sustainability", cost=10_000_000,
                        effects=[_fx("esg", 50), _fx("brand", 0.0125)]),
            EventChoice(id="gradual", label="Gradual Transition", cost=3_000_000,
                        effects=[_fx("esg", 25)]),
            EventChoice(id="ignore", label="Stay the Course", effects=[_fx("brand", -0.005)]),
        ],
    ),
    GameEvent(
        id="new_regulation",
        title="New Industry Regulation",
        description="Regulators introduce stricter environmental reporting rules.",
        category=EventCategory.REGULATORY,
        base_probability=0.03,
        market_effects=[_fx("sustainabilityPremium", 0.05)],
        choices=[
            EventChoice(id="exceed", label="Exceed Requirements", cost=8_000_000,
                        effects=[_fx("esg", 150), _fx("brand", 0.03)]),
            EventChoice(id="comply", label="Minimum Compliance", cost=2_000_000),
        ],
    ),
    GameEvent(
        id="competitor_exit",
        title="Competitor Exits Market",
        description="An established rival is leaving the phone market.",
        category=EventCategory.COMPETITIVE,
        base_probability=0.03,
        market_effects=[_fx("demand_all", 0.05)],
        choices=[
            EventChoice(id="aggressive", label="Aggressive Expansion", cost=15_000_000,
                        effects=[_fx("brand", 0.05)]),
            EventChoice(id="selective", label="Selective Targeting", cost=5_000_000,
                        effects=[_fx("brand", 0.02)]),
        ],
    ),
    GameEvent(
        id="recession",
        title="Economic Recession",
        description="Output is contracting and consumers are cutting back.",
        category=EventCategory.ECONOMIC,
        severity=Severity.HIGH,
        base_probability=0.04,
        conditions=[
            EventCondition(kind=ConditionKind.ROUND, operator=">=", value=3),
            EventCondition(kind=ConditionKind.METRIC, field="gdp", operator="<", value=1.5),
        ],
        market_effects=MARKET_SHOCKS["recession"],
    ),
    GameEvent(
        id="boom",
        title="Economic Boom",
        description="Strong growth lifts consumer spending across the board.",
        category=EventCategory.ECONOMIC,
        base_probability=0.04,
        conditions=[EventCondition(kind=ConditionKind.METRIC, field="gdp", operator=">", value=3.0)],
        market_effects=MARKET_SHOCKS["boom"],
    ),
    GameEvent(
        id="inflation_spike",
        title="Inflation Spike",
        description="Prices jump and the central bank responds.",
        category=EventCategory.ECONOMIC,
        severity=Severity.MEDIUM,
        base_probability=0.03,
        conditions=[EventCondition(kind=ConditionKind.METRIC, field="inflation", operator=">", value=2.5)],
        market_effects=MARKET_SHOCKS["inflation_spike"],
    ),
    GameEvent(
        id="supply_chain_crisis",
        title="Supply Chain Crisis",
        description="Component shortages ripple through the industry.",
        category=EventCategory.ECONOMIC,
        severity=Severity.MEDIUM,
        base_probability=0.02,
        market_effects=MARKET_SHOCKS["supply_chain_crisis"],
    ),
]


def find_template(event_id: str) -> GameEvent:
    for event in EVENT_CATALOG:
        if event.id == event_id:
            return event
    raise KeyError(event_id)
