"""
Event Engine — activates, applies, and expires game events.

Behavioral Contract:
- advance() runs once per round after market clearing, on the next market state:
  (a) expire events with no rounds remaining
  (b) evaluate catalog triggers in catalog order, then activate injections
  (c) apply each active event's market effects and decrement its duration
- Trigger draws come only from the round's RandomContext. A template whose
  conditions fail, or which is already active, consumes no draw
- Injected events bypass trigger evaluation and the per-round cap
- Team effects apply once per round to every targeted team while the event
  is active. A recorded choice replaces the default effects for that team
- Crisis level decays by 5 each round and rises with crisis severity
"""

import logging
from typing import Dict, List, Optional, Tuple

from quarter_engine.core.errors import InvalidDecisionError, UnknownEventError
from quarter_engine.core.random_context import IdGenerator, RandomContext
from quarter_engine.events.catalog import EVENT_CATALOG, MARKET_SHOCKS, SEVERITY_CRISIS_POINTS
from quarter_engine.market.engine import MARKET_TARGETS, MarketEngine
from quarter_engine.models.config import EngineConfig
from quarter_engine.models.events import (
    ActiveEvent,
    ConditionKind,
    EffectMode,
    EventCategory,
    EventCondition,
    EventEffect,
    EventHistoryEntry,
    EventInjection,
    EventResponse,
    EventState,
    GameEvent,
    Severity,
)
from quarter_engine.models.market import MarketState
from quarter_engine.models.team import ProductStatus, TeamState

logger = logging.getLogger(__name__)

TEAM_TARGETS = {"cash", "brand", "esg", "morale", "efficiency", "capacity", "rd_points", "quality"}
CRISIS_DECAY = 5.0
CRISIS_CATEGORIES = {EventCategory.CRISIS, EventCategory.ECONOMIC}

_OPERATORS = {
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
}

_MARKET_FIELDS = {
    "gdp": lambda m: m.gdp,
    "inflation": lambda m: m.inflation,
    "consumerConfidence": lambda m: m.consumer_confidence,
    "unemployment": lambda m: m.unemployment,
    "federalRate": lambda m: m.interest_rates.federal_rate,
    "fxVolatility": lambda m: m.fx_volatility,
}


def team_metric(team: TeamState, field: str) -> float:
    """Scalar team metric used by event conditions."""
    if field == "brand":
        return sum(team.brand.values()) / len(team.brand) if team.brand else 0.0
    if field == "morale":
        return team.workforce.morale
    if field == "defect_rate":
        return max((f.defect_rate for f in team.factories), default=0.0)
    if field == "efficiency":
        if not team.factories:
            return 0.0
        return sum(f.efficiency for f in team.factories) / len(team.factories)
    if field == "cash":
        return team.cash
    if field == "esg_score":
        return team.esg_score
    raise KeyError(f"Unknown team metric '{field}'")


def _apply_mode(current: float, effect: EventEffect) -> float:
    if effect.mode == EffectMode.MULTIPLY:
        return current * (1 + effect.value)
    return current + effect.value


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class EventEngine:
    def __init__(self, config: Optional[EngineConfig] = None, catalog: Optional[List[GameEvent]] = None):
        self.config = config or EngineConfig()
        self.catalog = catalog if catalog is not None else EVENT_CATALOG
        self._templates: Dict[str, GameEvent] = {e.id: e for e in self.catalog}

    @property
    def probability_multiplier(self) -> float:
        return self.config.event_probability_multiplier * self.config.preset.event_probability_multiplier

    # --- Injection validation ---

    def validate_injection(self, injection: EventInjection, team_ids: List[str]) -> None:
        """Raise UnknownEventError when an injection cannot be activated."""
        if injection.type is not None and injection.type not in MARKET_SHOCKS \
                and injection.type not in self._templates:
            raise UnknownEventError(f"Unknown event type '{injection.type}'")
        for target in injection.effects:
            if target not in MARKET_TARGETS:
                raise UnknownEventError(f"Unknown market effect target '{target}'")
        for target in injection.team_effects:
            if target not in TEAM_TARGETS:
                raise UnknownEventError(f"Unknown team effect target '{target}'")
        for team_id in injection.targets:
            if team_id != "all" and team_id not in team_ids:
                raise UnknownEventError(f"Unknown target team '{team_id}'")

    # --- Round advance ---

    def advance(
        self,
        state: EventState,
        market: MarketState,
        teams: List[TeamState],
        ctx: RandomContext,
        injections: Optional[List[EventInjection]] = None,
        round_number: Optional[int] = None,
    ) -> Tuple[EventState, MarketState]:
        """Advance one round. Returns new copies; inputs are not mutated."""
        injections = injections or []
        round_number = market.round_number if round_number is None else round_number
        team_ids = [t.id for t in teams]
        for injection in injections:
            self.validate_injection(injection, team_ids)

        nxt = state.model_copy(deep=True)
        market = market.model_copy(deep=True)
        ids = IdGenerator(round_number, "event")

        # (a) expire
        still_active = []
        for event in nxt.active:
            if event.rounds_remaining <= 0:
                nxt.history.append(EventHistoryEntry(
                    instance_id=event.instance_id, event_id=event.event_id, title=event.title,
                    round_number=round_number, action="expired",
                ))
                logger.debug("Event %s expired in round %d", event.instance_id, round_number)
            else:
                still_active.append(event)
        nxt.active = still_active
        nxt.crisis_level = max(0.0, nxt.crisis_level - CRISIS_DECAY)

        # (b) trigger
        activated: List[ActiveEvent] = []
        if self.config.random_events:
            activated.extend(self._trigger(nxt, market, teams, ctx, ids, round_number))
        for injection in injections:
            activated.append(self._from_injection(injection, ids, round_number))

        for event in activated:
            nxt.active.append(event)
            nxt.total_triggered += 1
            nxt.history.append(EventHistoryEntry(
                instance_id=event.instance_id, event_id=event.event_id, title=event.title,
                round_number=round_number, action="activated",
                detail=",".join(event.targets),
            ))
            if event.category in CRISIS_CATEGORIES and event.severity != Severity.LOW:
                nxt.crisis_level = min(100.0, nxt.crisis_level + SEVERITY_CRISIS_POINTS[event.severity])
            logger.info("Event %s (%s) activated for %s", event.instance_id, event.event_id, event.targets)

        # (c) apply market effects
        for event in nxt.active:
            for effect in event.market_effects:
                MarketEngine.apply_effect(market, effect)
            event.rounds_remaining -= 1

        return nxt, market

    def _conditions_hold(self, conditions: List[EventCondition], market: MarketState,
                         round_number: int) -> bool:
        for condition in conditions:
            compare = _OPERATORS.get(condition.operator)
            if compare is None:
                raise UnknownEventError(f"Unknown condition operator '{condition.operator}'")
            if condition.kind == ConditionKind.ROUND:
                if not compare(round_number, condition.value):
                    return False
            elif condition.kind == ConditionKind.METRIC:
                getter = _MARKET_FIELDS.get(condition.field or "")
                if getter is None:
                    raise UnknownEventError(f"Unknown market condition field '{condition.field}'")
                if not compare(getter(market), condition.value):
                    return False
        return True

    def _eligible_teams(self, conditions: List[EventCondition], teams: List[TeamState]) -> List[str]:
        team_conditions = [c for c in conditions if c.kind == ConditionKind.TEAM_METRIC]
        return [
            t.id for t in teams
            if all(_OPERATORS[c.operator](team_metric(t, c.field or ""), c.value) for c in team_conditions)
        ]

    def _trigger(self, state: EventState, market: MarketState, teams: List[TeamState],
                 ctx: RandomContext, ids: IdGenerator, round_number: int) -> List[ActiveEvent]:
        active_ids = {e.event_id for e in state.active}
        probability_scale = self.probability_multiplier
        triggered: List[ActiveEvent] = []

        for template in self.catalog:
            if len(triggered) >= self.config.max_events_per_round:
                break
            if template.id in active_ids or template.base_probability <= 0:
                continue
            if not self._conditions_hold(template.conditions, market, round_number):
                continue
            eligible = self._eligible_teams(template.conditions, teams)
            if not eligible:
                continue
            if not ctx.chance(min(1.0, template.base_probability * probability_scale)):
                continue

            if template.single_team:
                targets = [ctx.pick(eligible)]
            elif any(c.kind == ConditionKind.TEAM_METRIC for c in template.conditions):
                targets = eligible
            else:
                targets = ["all"]
            triggered.append(self._activate(template, targets, ids, round_number))
        return triggered

    def _activate(self, template: GameEvent, targets: List[str], ids: IdGenerator,
                  round_number: int, injected: bool = False) -> ActiveEvent:
        return ActiveEvent(
            instance_id=ids.next(template.id),
            event_id=template.id,
            title=template.title,
            description=template.description,
            category=template.category,
            severity=template.severity,
            market_effects=list(template.market_effects),
            team_effects=list(template.team_effects),
            choices=list(template.choices),
            targets=list(targets),
            rounds_remaining=template.duration,
            started_round=round_number,
            injected=injected,
        )

    def _from_injection(self, injection: EventInjection, ids: IdGenerator, round_number: int) -> ActiveEvent:
        template = self._templates.get(injection.type) if injection.type else None

        market_effects: Dict[str, EventEffect] = {}
        team_effects: Dict[str, EventEffect] = {}
        if injection.type in MARKET_SHOCKS:
            for effect in MARKET_SHOCKS[injection.type]:
                market_effects[effect.target] = effect
        elif template is not None:
            for effect in template.market_effects:
                market_effects[effect.target] = effect
        if template is not None:
            for effect in template.team_effects:
                team_effects[effect.target] = effect

        # Explicit values override a named shock's defaults
        for target, value in injection.effects.items():
            market_effects[target] = EventEffect(target=target, value=value)
        for target, value in injection.team_effects.items():
            mode = EffectMode.MULTIPLY if target == "capacity" else EffectMode.ADD
            team_effects[target] = EventEffect(target=target, value=value, mode=mode)

        event_id = injection.type or "custom"
        title = injection.title
        if template is not None and title == "Custom event":
            title = template.title
        return ActiveEvent(
            instance_id=ids.next(event_id),
            event_id=event_id,
            title=title,
            description=injection.description or (template.description if template else ""),
            category=template.category if template else (
                EventCategory.ECONOMIC if injection.type in MARKET_SHOCKS else EventCategory.CUSTOM
            ),
            severity=template.severity if template else Severity.MEDIUM,
            market_effects=list(market_effects.values()),
            team_effects=list(team_effects.values()),
            choices=list(template.choices) if template else [],
            targets=list(injection.targets),
            rounds_remaining=injection.duration,
            started_round=round_number,
            injected=True,
        )

    # --- Team side ---

    def respond(
        self,
        state: EventState,
        team: TeamState,
        instance_id: str,
        choice_id: str,
        ctx: RandomContext,
        round_number: int,
    ) -> Tuple[EventResponse, float]:
        """Record ``team``'s choice on an active event. Mutates both in place.

        Returns the response and the cost paid.
        """
        event = next((e for e in state.active if e.instance_id == instance_id), None)
        if event is None:
            raise InvalidDecisionError(f"Event {instance_id} is not active")
        if not event.targets_team(team.id):
            raise InvalidDecisionError(f"Event {instance_id} does not target team {team.id}")
        if team.id in event.responses:
            raise InvalidDecisionError(f"Team {team.id} already responded to {instance_id}")
        choice = next((c for c in event.choices if c.id == choice_id), None)
        if choice is None:
            raise InvalidDecisionError(f"Event {instance_id} has no choice '{choice_id}'")
        if choice.cost > team.cash:
            raise InvalidDecisionError(
                f"Choice '{choice_id}' costs {choice.cost:,.0f}, only {team.cash:,.0f} available"
            )

        success = True
        if choice.success_probability < 1:
            success = ctx.chance(choice.success_probability)

        team.cash -= choice.cost
        response = EventResponse(
            event_id=instance_id, choice_id=choice_id, success=success, round_number=round_number,
        )
        event.responses[team.id] = response
        team.event_responses[instance_id] = response
        state.history.append(EventHistoryEntry(
            instance_id=instance_id, event_id=event.event_id, title=event.title,
            round_number=round_number, action="choice",
            detail=f"{team.id}:{choice_id}:{'success' if success else 'failure'}",
        ))
        return response, choice.cost

    def effects_for(self, event: ActiveEvent, team_id: str) -> List[EventEffect]:
        response = event.responses.get(team_id)
        if response is None:
            return event.team_effects
        choice = next(c for c in event.choices if c.id == response.choice_id)
        return choice.effects if response.success else choice.failure_effects

    def apply_team_effects(self, state: EventState, team: TeamState) -> Tuple[float, List[str]]:
        """Apply every active event's effects to ``team`` in place.

        Returns the net cash moved and a description per effect applied.
        """
        cash_delta = 0.0
        messages = []
        for event in state.active:
            if not event.targets_team(team.id):
                continue
            for effect in self.effects_for(event, team.id):
                cash_delta += self._apply_team_effect(team, effect)
                messages.append(f"{event.title}: {effect.target} {effect.mode.value} {effect.value:g}")
        return cash_delta, messages

    @staticmethod
    def _apply_team_effect(team: TeamState, effect: EventEffect) -> float:
        target = effect.target
        if target == "cash":
            before = team.cash
            team.cash = _apply_mode(team.cash, effect)
            return team.cash - before
        if target == "brand":
            for segment in list(team.brand):
                team.brand[segment] = _clamp(_apply_mode(team.brand[segment], effect), 0.0, 1.0)
        elif target == "esg":
            team.esg_score = _clamp(_apply_mode(team.esg_score, effect), 0.0, 1000.0)
        elif target == "morale":
            team.workforce.morale = _clamp(_apply_mode(team.workforce.morale, effect), 0.0, 100.0)
        elif target == "efficiency":
            for factory in team.factories:
                factory.efficiency = _clamp(_apply_mode(factory.efficiency, effect), 0.1, 1.0)
        elif target == "capacity":
            for segment in list(team.segment_capacity):
                team.segment_capacity[segment] = max(0, int(_apply_mode(team.segment_capacity[segment], effect)))
        elif target == "rd_points":
            gained = _apply_mode(team.rd_points, effect) - team.rd_points
            team.rd_points = max(0.0, team.rd_points + gained)
            team.rd_progress = max(0.0, team.rd_progress + gained)
        elif target == "quality":
            for product in team.products:
                if product.status == ProductStatus.LAUNCHED:
                    product.quality = _clamp(_apply_mode(product.quality, effect), 0.0, 100.0)
        else:
            raise UnknownEventError(f"Unknown team effect target '{target}'")
        return 0.0
