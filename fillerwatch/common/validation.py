"""Validation helpers shared across modules."""

from __future__ import annotations

from typing import Any


def require_positive(value: int, *, name: str) -> int:
    """Return *value* if it is a positive integer, otherwise raise an error."""

    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return value


def require_non_negative(value: float, *, name: str) -> float:
    """Return *value* as a float if it is zero or greater."""

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{name} must be a number")
    if value < 0:
        raise ValueError(f"{name} must be non-negative")
    return float(value)


def coerce_year(raw_year: Any) -> int | None:
    """Best-effort conversion of a year-like value to an integer.

    Accepts integers, digit strings and ISO dates such as ``"2002-10-03"``.
    """

    if raw_year is None or isinstance(raw_year, bool):
        return None
    if isinstance(raw_year, int):
        return raw_year
    if isinstance(raw_year, str):
        head = raw_year.strip()[:4]
        if len(head) == 4 and head.isdigit():
            return int(head)
        return None
    try:
        return int(raw_year)
    except (TypeError, ValueError):
        return None


__all__ = ["require_positive", "require_non_negative", "coerce_year"]
