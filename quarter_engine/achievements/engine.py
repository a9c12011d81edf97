"""
Achievement Engine — awards permanent, point-valued badges after each round.

Behavioral Contract:
- evaluate() is called once per team per round with that round's metrics and
  the round's increments to the team's custom counters
- Sustained counters are per (team, requirement key): +1 while the condition
  holds, reset to 0 when it fails. They update before awards are checked
- Every unawarded achievement whose requirements all hold is awarded exactly
  once. Awards are never revoked
- Re-evaluating a round already seen is a no-op
- replay() rebuilds progress from the per-round metric history alone, and
  always agrees with the incrementally maintained progress
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from quarter_engine.achievements.catalog import ACHIEVEMENTS, CATALOG_VERSION
from quarter_engine.models.achievements import (
    Achievement,
    AchievementAward,
    AchievementProgress,
    AchievementRequirement,
    RequirementKind,
)

logger = logging.getLogger(__name__)

_OPERATORS = {
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
}

# (round_number, metrics, custom counter increments)
HistoryEntry = Tuple[int, Dict[str, float], Dict[str, float]]


def _compare(actual: Optional[float], operator: str, expected: float) -> bool:
    if actual is None:
        return False
    compare = _OPERATORS.get(operator)
    if compare is None:
        raise ValueError(f"Unknown operator '{operator}'")
    return compare(actual, expected)


class AchievementEngine:
    def __init__(self, catalog: Optional[List[Achievement]] = None):
        self.catalog = catalog if catalog is not None else ACHIEVEMENTS
        self.version = CATALOG_VERSION if catalog is None else "custom"
        self._by_id: Dict[str, Achievement] = {a.id: a for a in self.catalog}
        self._sustained: Dict[str, AchievementRequirement] = {}
        for achievement in self.catalog:
            for req in achievement.requirements:
                if req.kind == RequirementKind.SUSTAINED:
                    self._sustained.setdefault(req.counter_key, req)

    def get(self, achievement_id: str) -> Achievement:
        return self._by_id[achievement_id]

    def visible(self) -> List[Achievement]:
        """Catalog entries safe to show before they are earned."""
        return [a for a in self.catalog if not a.hidden]

    def _satisfied(self, req: AchievementRequirement, progress: AchievementProgress,
                   metrics: Dict[str, float]) -> bool:
        if req.kind == RequirementKind.THRESHOLD:
            return _compare(metrics.get(req.metric), req.operator, req.value)
        if req.kind == RequirementKind.SUSTAINED:
            return progress.sustained.get(req.counter_key, 0) >= req.rounds
        return _compare(progress.counters.get(req.metric, 0.0), req.operator, req.value)

    def evaluate(
        self,
        progress: AchievementProgress,
        metrics: Dict[str, float],
        custom: Optional[Dict[str, float]] = None,
        round_number: Optional[int] = None,
    ) -> Tuple[AchievementProgress, List[AchievementAward]]:
        """Return updated progress and the awards newly earned this round."""
        round_number = progress.last_round + 1 if round_number is None else round_number
        if round_number <= progress.last_round:
            return progress.model_copy(deep=True), []

        updated = progress.model_copy(deep=True)
        updated.last_round = round_number

        for key, value in sorted((custom or {}).items()):
            updated.counters[key] = updated.counters.get(key, 0.0) + value

        for key, req in self._sustained.items():
            if _compare(metrics.get(req.metric), req.operator, req.value):
                updated.sustained[key] = updated.sustained.get(key, 0) + 1
            else:
                updated.sustained[key] = 0

        already = set(updated.awarded_ids)
        new_awards = []
        for achievement in self.catalog:
            if achievement.id in already:
                continue
            if all(self._satisfied(req, updated, metrics) for req in achievement.requirements):
                award = AchievementAward(
                    achievement_id=achievement.id,
                    round_number=round_number,
                    points=achievement.points,
                    category=achievement.category,
                )
                updated.awarded.append(award)
                new_awards.append(award)

        if new_awards:
            logger.info(
                "Team %s earned %s in round %d",
                updated.team_id, [a.achievement_id for a in new_awards], round_number,
            )
        return updated, new_awards

    def replay(self, team_id: str, history: Iterable[HistoryEntry]) -> AchievementProgress:
        """Rebuild a team's progress from its metric history."""
        progress = AchievementProgress(team_id=team_id)
        for round_number, metrics, custom in sorted(history, key=lambda entry: entry[0]):
            progress, _ = self.evaluate(progress, metrics, custom, round_number)
        return progress

    @staticmethod
    def leaderboard(progress: Iterable[AchievementProgress]) -> List[Tuple[str, int]]:
        """(team_id, score) pairs, highest score first, team id breaks ties."""
        return sorted(((p.team_id, p.score) for p in progress), key=lambda item: (-item[1], item[0]))
