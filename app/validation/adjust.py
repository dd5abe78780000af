"""
Parameter tweak for the single quality-driven retry.
"""

from __future__ import annotations

from typing import Any, Literal

__all__ = ("tweak_for_retry",)

# (step, lower bound, upper bound) per tunable parameter
_STEPS: dict[str, tuple[float, float, float]] = {
    "tolerance": (10, 10, 50),
    "amount": (0.2, 0.1, 1.0),
}


def tweak_for_retry(
    parameters: dict[str, Any],
    verdict: Literal["too_much", "too_little"],
) -> dict[str, Any] | None:
    """
    Nudge selectivity in the direction the result validator asked for.

    Returns the new parameter dict, or None when nothing can move (already at
    the bound, or the tool has no tunable parameter).
    """
    tweaked = dict(parameters)
    changed = False
    for name, (step, low, high) in _STEPS.items():
        current = parameters.get(name)
        if not isinstance(current, (int, float)) or isinstance(current, bool):
            continue
        if verdict == "too_much":
            new = min(current, max(low, current - step))
        else:
            new = max(current, min(high, current + step))
        new = round(new, 2)
        if new != current:
            tweaked[name] = new
            changed = True
    return tweaked if changed else None
