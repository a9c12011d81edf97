"""Load and validate JSON configuration with pydantic."""

import json
import logging
from pathlib import Path
from typing import Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from quarter_engine.core.errors import ConfigurationError
from quarter_engine.models.config import EngineConfig

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def load_and_validate(path: Union[str, Path], model: Type[M]) -> M:
    """Read ``path`` as JSON and validate it against ``model``."""
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return model.model_validate(raw)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid JSON in {path}: {exc}") from exc
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid {model.__name__} in {path}: {exc}") from exc


def load_config(path: Union[str, Path]) -> EngineConfig:
    config = load_and_validate(path, EngineConfig)
    logger.info("Loaded engine config from %s (difficulty=%s)", path, config.difficulty.value)
    return config
