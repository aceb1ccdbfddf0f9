"""Shared arithmetic for every source adapter.

All rate metrics and period-over-period deltas go through these helpers so the
numbers in the weekly snapshot are comparable across vendors.
"""

from __future__ import annotations

import math
from typing import Any, Callable, Iterable, Mapping, Sequence, TypeVar


T = TypeVar("T")


def round_half_away(value: float, decimals: int = 1) -> float:
    """Round on ``value * 10**decimals`` with halves going away from zero."""
    factor = 10**decimals
    scaled = abs(float(value)) * factor
    rounded = math.floor(scaled + 0.5) / factor
    return -rounded if value < 0 else rounded


def compute_delta(current: float | None, previous: float | None) -> float | None:
    """Percent change with one decimal; ``None`` when there is no usable baseline."""
    if current is None or previous is None:
        return None
    try:
        current_value = float(current)
        previous_value = float(previous)
    except (TypeError, ValueError):
        return None
    if previous_value == 0 or math.isnan(previous_value) or math.isnan(current_value):
        return None
    return round_half_away(((current_value - previous_value) / previous_value) * 1000, 0) / 10


def to_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return default if math.isnan(result) else result


def to_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def first_present(payload: Mapping[str, Any] | None, *keys: str, default: Any = None) -> Any:
    """Return the first key whose value is not ``None`` (field A, else B, else default)."""
    if not isinstance(payload, Mapping):
        return default
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return default


def average(values: Iterable[float | None], *, skip_zero: bool = False) -> float | None:
    valid: list[float] = []
    for value in values:
        if value is None:
            continue
        number = to_float(value, default=math.nan)
        if math.isnan(number):
            continue
        if skip_zero and number == 0:
            continue
        valid.append(number)
    if not valid:
        return None
    return sum(valid) / len(valid)


def flag_underperformers(
    items: Sequence[T],
    *,
    rate: Callable[[T], float | None],
    volume: Callable[[T], float | None],
    fraction: float,
    min_volume: float,
    cohort_average: float | None = None,
) -> list[T]:
    """Items whose rate is below ``fraction`` of the cohort average AND whose volume beats the floor.

    The cohort average ignores missing and zero rates unless it is passed in.
    """
    if cohort_average is None:
        cohort_average = average((rate(item) for item in items), skip_zero=True) or 0.0
    threshold = cohort_average * fraction
    flagged: list[T] = []
    for item in items:
        item_volume = volume(item)
        item_rate = rate(item)
        if item_volume is None or item_rate is None:
            continue
        if item_volume > min_volume and item_rate < threshold:
            flagged.append(item)
    return flagged
