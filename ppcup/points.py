# ppcup/points.py

import math

BRACKET_SIZE = 1000


def round_half_away(value: float) -> int:
    """Round to the nearest integer, .5 going away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def calculate_points(rating_start: float, rating_end: float) -> int:
    """
    Convert a pp gain into cup points.

    The gain [floor(start), floor(end)) is cut into thousand-pp brackets
    [1000k, 1000(k+1)); every pp gained inside bracket k is worth k+1 points,
    so a 7k player climbing 10pp scores as much as a 1k player climbing 80pp.
    A drop (or no change) scores 0.

    >>> calculate_points(500, 1500)
    1500
    >>> calculate_points(2999, 3001)
    7
    """
    start = math.floor(rating_start)
    end = math.floor(rating_end)
    if end <= start:
        return 0

    total = 0
    bracket = start // BRACKET_SIZE
    while bracket * BRACKET_SIZE < end:
        low = max(start, bracket * BRACKET_SIZE)
        high = min(end, (bracket + 1) * BRACKET_SIZE)
        if high > low:
            total += (high - low) * (bracket + 1)
        bracket += 1

    return round_half_away(total)
