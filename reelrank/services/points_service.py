"""
Per-catch points calculation.

The same rules run on the client for optimistic display, so any change
here must be mirrored there.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from reelrank.utils.constants import (
    BASE_POINTS,
    MAX_SIZE_BONUS,
    WEIGHT_BONUS_PER_LB,
    LENGTH_BONUS_PER_INCH,
    PRIME_TIME_BONUS,
    PRIME_TIME_HOURS,
    SCORING_TIMEZONE,
)
from reelrank.utils.datetime_utils import to_local


@dataclass(frozen=True)
class PointsCalculation:
    """Result of a points calculation."""

    points: int
    bonuses: List[str] = field(default_factory=list)


def size_bonus(weight: Optional[float], length: Optional[float]) -> tuple:
    """
    Calculate the size bonus for a catch.

    Weight takes precedence over length; only one of the two applies.

    Returns:
        Tuple of (bonus, label) where label is None when no bonus applies
    """
    if weight:
        bonus = min(math.floor(weight * WEIGHT_BONUS_PER_LB), MAX_SIZE_BONUS)
        return max(bonus, 0), "Size bonus"
    if length:
        bonus = min(math.floor(length * LENGTH_BONUS_PER_INCH), MAX_SIZE_BONUS)
        return max(bonus, 0), "Length bonus"
    return 0, None


def is_prime_time(caught_at: datetime, tz: Optional[str] = None) -> bool:
    """Check whether the local hour of caught_at falls in a prime-time window."""
    hour = to_local(caught_at, tz or SCORING_TIMEZONE).hour
    return any(start <= hour <= end for start, end in PRIME_TIME_HOURS)


def compute_points(
    weight: Optional[float] = None,
    length: Optional[float] = None,
    caught_at: Optional[datetime] = None,
    tz: Optional[str] = None,
) -> PointsCalculation:
    """
    Compute the points awarded for a catch.

    Base points plus a capped size bonus plus a flat prime-time bonus.

    Args:
        weight: Weight in pounds
        length: Length in inches
        caught_at: When the fish was caught. Naive values are read as local
            wall-clock time, aware values are converted to tz.
        tz: Timezone used for the prime-time check (defaults to SCORING_TIMEZONE)

    Returns:
        PointsCalculation with the total and the human-readable bonuses
    """
    points = BASE_POINTS
    bonuses: List[str] = []

    bonus, label = size_bonus(weight, length)
    points += bonus
    if bonus > 0:
        bonuses.append(f"{label}: +{bonus}")

    if caught_at is not None and is_prime_time(caught_at, tz):
        points += PRIME_TIME_BONUS
        bonuses.append(f"Time bonus: +{PRIME_TIME_BONUS}")

    return PointsCalculation(points=points, bonuses=bonuses)
