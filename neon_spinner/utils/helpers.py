# neon_spinner/utils/helpers.py
"""Utility functions and helpers."""

import math
import random


def calculate_distance(x1: float, y1: float, x2: float, y2: float) -> float:
    """Calculate distance between two points."""
    return math.hypot(x2 - x1, y2 - y1)


def clamp(value: float, low: float, high: float) -> float:
    """Limit value to the [low, high] range."""
    return max(low, min(value, high))


def is_collision(
    x1: float, y1: float, r1: float, x2: float, y2: float, r2: float
) -> bool:
    """Check if two circles are colliding."""
    return calculate_distance(x1, y1, x2, y2) < (r1 + r2)


def is_out_of_bounds(
    x: float, y: float, width: float, height: float, margin: float
) -> bool:
    """Check if a point has left the playfield by more than margin."""
    return x < -margin or x > width + margin or y < -margin or y > height + margin


def random_neon_color(rng=random) -> str:
    """Random vivid colour in hsl() notation."""
    return f"hsl({rng.random() * 360:.0f},100%,60%)"
