"""
Typed state copies.

Every copy of a model is an explicit ``model_copy(deep=True)`` followed by a
walk that rejects NaN and infinity, so a corrupted value is caught where the
copy is made instead of travelling through the round.
"""

import math
from typing import Any, TypeVar

from pydantic import BaseModel

from quarter_engine.core.errors import NonFiniteValueError

M = TypeVar("M", bound=BaseModel)


def assert_finite(value: Any, path: str = "state") -> None:
    """Raise NonFiniteValueError on the first NaN/inf found in ``value``."""
    if isinstance(value, bool):
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise NonFiniteValueError(path, value)
        return
    if isinstance(value, BaseModel):
        for name in type(value).model_fields:
            assert_finite(getattr(value, name), f"{path}.{name}")
        return
    if isinstance(value, dict):
        for key, item in value.items():
            assert_finite(item, f"{path}[{key!r}]")
        return
    if isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            assert_finite(item, f"{path}[{index}]")


def is_finite(value: Any) -> bool:
    try:
        assert_finite(value)
    except NonFiniteValueError:
        return False
    return True


def snapshot(model: M) -> M:
    """Deep, independent copy of a model whose numbers are all finite."""
    copied = model.model_copy(deep=True)
    assert_finite(copied, type(model).__name__)
    return copied
