"""
Module resolver boundary.

Behavioral Contract:
- resolve(state, decisions, ctx, market) always returns a ResolverOutput
  carrying a ModuleResult, on success and on failure alike
- attempt() works on a typed snapshot and returns a Result; validation
  errors, raised exceptions, negative costs/revenue, and non-finite numbers
  all become Result.failure
- Rejected decisions still cost the round's upkeep: the resolver re-runs with
  empty decisions (payroll, overhead, interest, brand decay) and reports the
  module as failed with the rejection message first
- When processing itself fails the caller gets back the original, unchanged
  state object
- On success the net cash effect (revenue - costs) is applied to the snapshot
"""

import logging
from typing import Generic, List, TypeVar

from pydantic import BaseModel

from quarter_engine.core.errors import InvalidDecisionError
from quarter_engine.core.random_context import RandomContext
from quarter_engine.core.result import Result
from quarter_engine.core.snapshot import assert_finite, snapshot
from quarter_engine.models.market import MarketState
from quarter_engine.models.results import ModuleName, ModuleResult
from quarter_engine.models.team import TeamState

logger = logging.getLogger(__name__)

D = TypeVar("D", bound=BaseModel)


class ResolverOutput(BaseModel):
    """New state plus the uniform module result."""

    state: TeamState
    result: ModuleResult


class ModuleResolver(Generic[D]):
    """Base class for the five per-team resolvers."""

    module: ModuleName

    def validate(self, state: TeamState, decisions: D, market: MarketState) -> List[str]:
        """Return human-readable problems with ``decisions``; empty when valid."""
        return []

    def apply(self, state: TeamState, decisions: D, ctx: RandomContext,
              market: MarketState) -> ModuleResult:
        """Mutate the working snapshot ``state`` and describe what happened."""
        raise NotImplementedError

    def attempt(self, state: TeamState, decisions: D, ctx: RandomContext,
                market: MarketState) -> Result[ResolverOutput]:
        problems = self.validate(state, decisions, market)
        if problems:
            return Result.failure(self._rejection(problems))
        return self._execute(state, decisions, ctx, market)

    def _rejection(self, problems: List[str]) -> str:
        error = InvalidDecisionError(f"Invalid {self.module.value} decisions: " + "; ".join(problems))
        return str(error)

    def _execute(self, state: TeamState, decisions: D, ctx: RandomContext,
                 market: MarketState) -> Result[ResolverOutput]:
        try:
            working = snapshot(state)
            result = self.apply(working, decisions, ctx, market)
            if result.costs < 0 or result.revenue < 0:
                return Result.failure(f"{self.module.value} produced negative costs or revenue")
            working.cash += result.revenue - result.costs
            assert_finite(working, "state")
            assert_finite(result, "result")
        except Exception as exc:  # resolver boundary: nothing escapes
            logger.debug("%s resolver raised", self.module.value, exc_info=True)
            return Result.failure(f"{self.module.value} processing failed: {exc}")
        return Result.success(ResolverOutput(state=working, result=result))

    def resolve(self, state: TeamState, decisions: D, ctx: RandomContext,
                market: MarketState) -> ResolverOutput:
        problems = self.validate(state, decisions, market)
        if problems:
            return self._upkeep(state, decisions, self._rejection(problems), ctx, market)

        outcome = self._execute(state, decisions, ctx, market)
        if outcome.ok:
            return outcome.value
        logger.warning("Module %s failed for team %s: %s", self.module.value, state.id, outcome.error)
        return ResolverOutput(state=state, result=ModuleResult.failed(self.module, outcome.error))

    def _upkeep(self, state: TeamState, decisions: D, error: str, ctx: RandomContext,
                market: MarketState) -> ResolverOutput:
        """Run the round with empty decisions after ``decisions`` were rejected."""
        logger.warning("Module %s rejected decisions for team %s: %s", self.module.value, state.id, error)
        outcome = self._execute(state, type(decisions)(), ctx, market)
        if not outcome.ok:
            return ResolverOutput(
                state=state, result=ModuleResult.failed(self.module, f"{error}; {outcome.error}"),
            )
        result = outcome.value.result
        rejected = result.model_copy(update={"success": False, "messages": [error] + result.messages})
        return ResolverOutput(state=outcome.value.state, result=rejected)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def affordable(state: TeamState, committed: float, amount: float) -> bool:
    """Whether ``amount`` fits in the cash left after this round's ``committed`` spending."""
    return state.cash - committed >= amount
