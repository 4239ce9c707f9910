from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional

# Keys the upstream has been seen to wrap record arrays in, most likely first
ROW_KEYS: tuple[str, ...] = (
    "points",
    "observations",
    "history",
    "data",
    "results",
    "records",
    "items",
)


class Shape(enum.Enum):
    ARRAY = "array"              # the response is the record array itself
    KEYED_ARRAY = "keyed_array"  # an object holding the array under some key
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class Unwrapped:
    shape: Shape
    rows: list = field(default_factory=list)
    key: Optional[str] = None  # wrapping key for KEYED_ARRAY


def detect_shape(response: Any) -> Unwrapped:
    """Classify a decoded response and locate its record array.

    Known wrapping keys win in ROW_KEYS order; otherwise the first list-valued
    entry of the object is used. Anything else is UNRECOGNIZED with no rows.
    """
    if isinstance(response, list):
        return Unwrapped(Shape.ARRAY, response)
    if not isinstance(response, dict):
        return Unwrapped(Shape.UNRECOGNIZED)

    for key in ROW_KEYS:
        if isinstance(response.get(key), list):
            return Unwrapped(Shape.KEYED_ARRAY, response[key], key)

    for key, val in response.items():
        if isinstance(val, list):
            return Unwrapped(Shape.KEYED_ARRAY, val, str(key))

    return Unwrapped(Shape.UNRECOGNIZED)


def extract_rows(response: Any) -> list:
    """Return the raw record array inside ``response``, or [] if there is none."""
    return detect_shape(response).rows
