"""Achievement models — static catalog entries and per-team progress."""

from enum import Enum
from typing import Dict, List

from pydantic import Field

from quarter_engine.models.base import EngineModel, FrozenModel


class AchievementCategory(str, Enum):
    FINANCE = "finance"
    RD = "rd"
    LOGISTICS = "logistics"
    RESULTS = "results"
    FACTORY = "factory"
    HR = "hr"
    MARKETING = "marketing"
    NEWS = "news"
    MEGA = "mega"
    SECRET = "secret"


class AchievementTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"
    SECRET = "secret"
    INFAMY = "infamy"


TIER_POINTS: Dict[AchievementTier, int] = {
    AchievementTier.BRONZE: 10,
    AchievementTier.SILVER: 25,
    AchievementTier.GOLD: 50,
    AchievementTier.PLATINUM: 100,
    AchievementTier.SECRET: 75,
    AchievementTier.INFAMY: -25,
}


class RequirementKind(str, Enum):
    THRESHOLD = "threshold"
    SUSTAINED = "sustained"
    CUSTOM = "custom"


class AchievementRequirement(FrozenModel):
    kind: RequirementKind = RequirementKind.THRESHOLD
    metric: str                             # Round metric, or custom counter for CUSTOM
    operator: str = ">="
    value: float
    rounds: int = Field(default=1, ge=1)    # Consecutive rounds for SUSTAINED

    @property
    def counter_key(self) -> str:
        return f"{self.metric}{self.operator}{self.value:g}"


class Achievement(FrozenModel):
    id: str
    name: str
    description: str
    flavor: str = ""
    category: AchievementCategory
    tier: AchievementTier
    requirements: List[AchievementRequirement]
    hidden: bool = False

    @property
    def points(self) -> int:
        return TIER_POINTS[self.tier]


class AchievementAward(EngineModel):
    achievement_id: str
    round_number: int
    points: int
    category: AchievementCategory


class AchievementProgress(EngineModel):
    """Per-team mutable progress. ``awarded`` only ever grows."""

    team_id: str
    awarded: List[AchievementAward] = []
    sustained: Dict[str, int] = {}          # counter key -> consecutive rounds held
    counters: Dict[str, float] = {}         # cumulative custom counters
    last_round: int = 0

    @property
    def awarded_ids(self) -> List[str]:
        return [a.achievement_id for a in self.awarded]

    @property
    def score(self) -> int:
        return sum(a.points for a in self.awarded)

    def category_totals(self) -> Dict[str, int]:
        totals: Dict[str, int] = {}
        for award in self.awarded:
            key = award.category.value
            totals[key] = totals.get(key, 0) + award.points
        return totals
