"""Easing for zoom intro/outro interpolation. Progress is normalized to [0, 1]."""
from __future__ import annotations


def clamp(value: float, min_value: float = 0.0, max_value: float = 1.0) -> float:
    return max(min_value, min(max_value, value))


def ease_in_out(t: float) -> float:
    if t < 0.5:
        return 2 * t * t
    return 1 - ((-2 * t + 2) ** 2) / 2


def interpolate(start: float, end: float, t: float) -> float:
    """Eased value between start and end; t is clamped first."""
    return start + (end - start) * ease_in_out(clamp(t))
