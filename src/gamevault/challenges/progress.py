"""Challenge completion percentage.

The aggregate is the unweighted mean of per-goal percentages, each capped
at 100, floored to an integer. A goal's target magnitude does not change
its weight.
"""

import math
from typing import Any, Iterable, Mapping, Optional

COMPLETE_PERCENT = 100


def _clean_progress(value: Optional[Any]) -> float:
    """Coerce a stored progress value; negative, NaN or non-numeric is 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    if math.isnan(value) or value < 0:
        return 0.0
    return float(value)


def goal_percentage(target: float, progress: Optional[Any]) -> float:
    """Percentage of a single goal, capped at 100.

    A non-positive target counts as already met.
    """
    if not target or target <= 0:
        return float(COMPLETE_PERCENT)
    return min(float(COMPLETE_PERCENT), (_clean_progress(progress) / target) * 100)


def calculate_challenge_progress(
    goals: Iterable[Any],
    goal_progress: Mapping[str, float],
) -> int:
    """Aggregate completion of a challenge.

    Args:
        goals: Goals exposing ``id`` and ``target``
        goal_progress: Current progress keyed by goal id; missing goals count as 0

    Returns:
        Integer percentage in [0, 100]
    """
    goals = list(goals)
    if not goals:
        return 0

    total = sum(goal_percentage(goal.target, goal_progress.get(goal.id, 0)) for goal in goals)
    return math.floor(total / len(goals))


def is_complete(percent: float) -> bool:
    return percent >= COMPLETE_PERCENT


MILESTONES = (25, 50, 75, COMPLETE_PERCENT)


def milestone_reached(before: int, after: int) -> Optional[str]:
    """Label of the highest milestone crossed going from ``before`` to ``after``."""
    crossed = [m for m in MILESTONES if before < m <= after]
    if not crossed:
        return None
    if crossed[-1] == COMPLETE_PERCENT:
        return "Challenge completed"
    return f"{crossed[-1]}% complete"


def team_progress(member_progress: Iterable[int]) -> int:
    """Mean of the members' percentages, floored. An empty team is at 0."""
    values = list(member_progress)
    if not values:
        return 0
    return math.floor(sum(values) / len(values))
