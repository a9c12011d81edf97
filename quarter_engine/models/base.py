"""Shared pydantic configuration for engine models."""

from pydantic import BaseModel, ConfigDict


class EngineModel(BaseModel):
    """Mutable engine state. NaN and infinity are rejected on construction."""

    model_config = ConfigDict(allow_inf_nan=False)


class FrozenModel(BaseModel):
    """Immutable input bundle."""

    model_config = ConfigDict(allow_inf_nan=False, frozen=True)
