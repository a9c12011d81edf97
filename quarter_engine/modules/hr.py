"""
HR resolver — hiring, firing, pay, training, and turnover.

Turnover and training effectiveness draw from the round's context in a fixed
order (training first, then one turnover draw per role) so the number of
draws does not depend on headcounts.
"""

import math
from typing import Dict, List

from quarter_engine.core.random_context import RandomContext
from quarter_engine.models.decisions import HRDecisions
from quarter_engine.models.market import MarketState
from quarter_engine.models.results import ModuleName, ModuleResult
from quarter_engine.models.team import Role, TeamState, Workforce
from quarter_engine.modules.base import ModuleResolver, clamp

BASE_SALARY: Dict[Role, float] = {
    Role.WORKER: 45_000,
    Role.ENGINEER: 85_000,
    Role.SUPERVISOR: 75_000,
}
TRAINING_COST: Dict[Role, float] = {
    Role.WORKER: 500_000,
    Role.ENGINEER: 800_000,
    Role.SUPERVISOR: 600_000,
}
TRAINING_WEIGHT: Dict[Role, float] = {
    Role.WORKER: 1.0,
    Role.SUPERVISOR: 0.6,
    Role.ENGINEER: 0.4,
}
HIRING_COST_RATE = 0.15                 # Of annual salary
TRAINING_FATIGUE_THRESHOLD = 2          # Programs per role per year
TRAINING_FATIGUE_PENALTY = 0.2
BASE_TURNOVER = 0.12                    # Annual
ROUNDS_PER_YEAR = 4
MAX_HIRES_PER_ROUND = 1000


def annual_salary(role: Role, multiplier: float) -> float:
    return BASE_SALARY[role] * multiplier


def labor_cost(workforce: Workforce) -> float:
    """Quarterly payroll."""
    return sum(
        workforce.count(role) * annual_salary(role, workforce.salary_multiplier)
        for role in Role
    ) / ROUNDS_PER_YEAR


def turnover_rate(workforce: Workforce) -> float:
    rate = BASE_TURNOVER / ROUNDS_PER_YEAR
    if workforce.morale < 50:
        rate += 0.15 / ROUNDS_PER_YEAR
    if workforce.burnout > 50:
        rate += 0.10 / ROUNDS_PER_YEAR
    return rate * (150 - workforce.loyalty) / 100


class HRResolver(ModuleResolver[HRDecisions]):
    module = ModuleName.HR

    def validate(self, state: TeamState, decisions: HRDecisions, market: MarketState) -> List[str]:
        problems = []
        for role, count in decisions.hires.items():
            if count < 0 or count > MAX_HIRES_PER_ROUND:
                problems.append(f"cannot hire {count} {role.value}s")
        for role, count in decisions.fires.items():
            if count < 0:
                problems.append(f"cannot fire {count} {role.value}s")
            elif count > state.workforce.count(role):
                problems.append(f"cannot fire {count} {role.value}s, only {state.workforce.count(role)} employed")
        return problems

    def apply(self, state: TeamState, decisions: HRDecisions, ctx: RandomContext,
              market: MarketState) -> ModuleResult:
        wf = state.workforce
        costs = 0.0
        messages: List[str] = []

        if market.round_number % ROUNDS_PER_YEAR == 1:
            wf.trainings_this_year = {}

        if decisions.salary_multiplier is not None and decisions.salary_multiplier != wf.salary_multiplier:
            delta = decisions.salary_multiplier - wf.salary_multiplier
            wf.morale = clamp(wf.morale + delta * 20, 0, 100)
            wf.loyalty = clamp(wf.loyalty + delta * 15, 0, 100)
            wf.salary_multiplier = decisions.salary_multiplier
            messages.append(f"Salary multiplier set to {wf.salary_multiplier:.2f}")

        hired = 0
        for role, count in decisions.hires.items():
            if count <= 0:
                continue
            existing = wf.headcount
            costs += count * annual_salary(role, wf.salary_multiplier) * HIRING_COST_RATE
            wf.set_count(role, wf.count(role) + count)
            # New hires start below the team's average efficiency
            wf.efficiency = (wf.efficiency * existing + 60.0 * count) / (existing + count)
            hired += count
            messages.append(f"Hired {count} {role.value}s")

        fired = 0
        for role, count in decisions.fires.items():
            if count <= 0:
                continue
            before = wf.headcount
            costs += count * annual_salary(role, wf.salary_multiplier) / 12
            wf.set_count(role, wf.count(role) - count)
            fired += count
            if before > 0:
                wf.morale = clamp(wf.morale - 2 * (count / before) / 0.05, 0, 100)
            messages.append(f"Let go {count} {role.value}s")

        if decisions.benefits_budget > 0:
            millions = decisions.benefits_budget / 1_000_000
            wf.morale = clamp(wf.morale + min(10.0, millions * 2), 0, 100)
            wf.burnout = clamp(wf.burnout - millions, 0, 100)
            costs += decisions.benefits_budget
            messages.append(f"Benefits budget ${decisions.benefits_budget:,.0f}")
        else:
            wf.burnout = clamp(wf.burnout + 1.0, 0, 100)

        for role in decisions.training:
            costs += TRAINING_COST[role]
            gain = ctx.range(5, 15) * TRAINING_WEIGHT[role]
            done = wf.trainings_this_year.get(role, 0)
            if done >= TRAINING_FATIGUE_THRESHOLD:
                gain *= TRAINING_FATIGUE_PENALTY
                messages.append(f"Training fatigue: {role.value} program had reduced effect")
            wf.trainings_this_year[role] = done + 1
            wf.efficiency = clamp(wf.efficiency + gain, 0, 100)
            messages.append(f"Trained {role.value}s (+{gain:.1f} efficiency)")

        rate = turnover_rate(wf)
        departures: Dict[str, int] = {}
        for role in Role:
            count = wf.count(role)
            # Stochastic rounding: one draw per role
            leaving = min(count, int(math.floor(count * rate + ctx.next())))
            if leaving:
                wf.set_count(role, count - leaving)
                departures[role.value] = leaving
        if departures:
            messages.append("Turnover: " + ", ".join(f"{n} {r}s" for r, n in departures.items()))

        payroll = labor_cost(wf)
        costs += payroll
        return ModuleResult(
            module=self.module,
            success=True,
            changes={
                "hired": hired,
                "fired": fired,
                "departures": departures,
                "headcount": wf.headcount,
                "morale": wf.morale,
                "efficiency": wf.efficiency,
                "payroll": payroll,
            },
            costs=costs,
            messages=messages,
        )
