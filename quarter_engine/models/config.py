"""Engine configuration and difficulty presets."""

from enum import Enum
from typing import Dict

from pydantic import Field

from quarter_engine.models.base import FrozenModel


class Difficulty(str, Enum):
    EASY = "easy"
    NORMAL = "normal"
    HARD = "hard"


class DifficultyPreset(FrozenModel):
    difficulty: Difficulty
    starting_cash: float = Field(gt=0)
    workers: int = Field(ge=0)
    engineers: int = Field(ge=0)
    supervisors: int = Field(ge=0)
    starting_brand: float = Field(ge=0, le=1)
    event_probability_multiplier: float = Field(ge=0)


PRESETS: Dict[Difficulty, DifficultyPreset] = {
    Difficulty.EASY: DifficultyPreset(
        difficulty=Difficulty.EASY, starting_cash=250_000_000, workers=60,
        engineers=10, supervisors=6, starting_brand=0.55, event_probability_multiplier=0.6,
    ),
    Difficulty.NORMAL: DifficultyPreset(
        difficulty=Difficulty.NORMAL, starting_cash=200_000_000, workers=50,
        engineers=8, supervisors=5, starting_brand=0.5, event_probability_multiplier=1.0,
    ),
    Difficulty.HARD: DifficultyPreset(
        difficulty=Difficulty.HARD, starting_cash=150_000_000, workers=45,
        engineers=6, supervisors=4, starting_brand=0.4, event_probability_multiplier=1.5,
    ),
}


class EngineConfig(FrozenModel):
    """Tunables for one game. Loaded from JSON with ``load_config``."""

    difficulty: Difficulty = Difficulty.NORMAL
    score_exponent: float = Field(default=2.5, gt=0, le=10)     # Share-of-voice sharpness
    advertising_weight: float = Field(default=0.05, ge=0, le=1)
    rubber_band_start_round: int = Field(default=3, ge=1)
    rubber_band_trailing: float = Field(default=1.05, ge=1)
    rubber_band_leading: float = Field(default=0.97, gt=0, le=1)
    esg_penalty_threshold: float = Field(default=300, ge=0, le=1000)
    brand_decay_rate: float = Field(default=0.02, ge=0, lt=1)
    brand_growth_cap: float = Field(default=0.02, ge=0, le=1)
    demand_noise: float = Field(default=0.05, ge=0, lt=1)
    random_events: bool = True
    max_events_per_round: int = Field(default=2, ge=0)
    event_probability_multiplier: float = Field(default=1.0, ge=0)
    days_per_round: int = Field(default=90, ge=1)

    @property
    def preset(self) -> DifficultyPreset:
        return PRESETS[self.difficulty]
