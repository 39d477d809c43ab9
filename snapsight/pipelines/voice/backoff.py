"""Restart delay policy after consecutive speech engine errors."""

from __future__ import annotations


def next_delay(
    consecutive_errors: int,
    *,
    base: float = 1.5,
    factor: float = 1.5,
    exponent_cap: int = 4,
    max_delay: float = 10.0,
) -> float:
    """Return the wait in seconds before restarting after ``consecutive_errors``.

    The first error waits ``base``; each further error multiplies by
    ``factor`` until the exponent reaches ``exponent_cap``. The result never
    exceeds ``max_delay``.
    """

    exponent = min(max(consecutive_errors - 1, 0), exponent_cap)
    return min(base * factor**exponent, max_delay)


__all__ = ["next_delay"]
