"""Challenge rule evaluation.

Rules are free text. Each rule is lower-cased and scanned for five keyword
categories; every category found adds a gate on the user's statistics.
Thresholds come from the first integer anywhere in the rule, so a rule
mentioning two numbers binds the first to every category it matches.
Text with no recognised keyword never fails.
"""

import re
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from ..profiles.schemas import UserStats

_FIRST_INTEGER = re.compile(r"\d+")

# "complete game", "finish game", and the counted forms "complete 1 game"
_COMPLETION = re.compile(r"(?:complete|finish)\s+(?:\d+\s+)?game")


StatsLike = Union[UserStats, Mapping[str, Any], None]


def _first_integer(text: str) -> int:
    match = _FIRST_INTEGER.search(text)
    return int(match.group()) if match else 0


def _positive(value: Optional[float]) -> bool:
    return value is not None and value > 0


def _at_least(value: Optional[float], threshold: int) -> bool:
    return value is not None and value >= threshold


def _gates(text: str, stats: UserStats) -> Iterable[Callable[[], bool]]:
    """Yield the checks a lower-cased rule imposes, in evaluation order."""
    if _COMPLETION.search(text):
        yield lambda: _positive(stats.completed_games)
    if "achievement" in text or "trophy" in text:
        yield lambda: _positive(stats.achievements)
    if "play" in text and "hours" in text:
        yield lambda: _at_least(stats.playtime, _first_integer(text))
    if "reach level" in text or "achieve level" in text:
        yield lambda: _at_least(stats.level, _first_integer(text))
    if "score" in text or "points" in text:
        yield lambda: _at_least(stats.score, _first_integer(text))


def _coerce_stats(user_stats: StatsLike) -> UserStats:
    if isinstance(user_stats, UserStats):
        return user_stats
    return UserStats.from_mapping(user_stats)


def rule_satisfied(rule: str, user_stats: StatsLike) -> bool:
    """Check a single rule string."""
    stats = _coerce_stats(user_stats)
    return all(gate() for gate in _gates(rule.lower(), stats))


def check_challenge_rules(rules: Iterable[str], user_stats: StatsLike) -> bool:
    """Whether the user currently satisfies every rule.

    Stops at the first failing gate. An empty rule list is satisfied.
    """
    stats = _coerce_stats(user_stats)
    return all(rule_satisfied(rule, stats) for rule in rules)


def failing_rules(rules: Iterable[str], user_stats: StatsLike) -> list[str]:
    """Every rule the user does not satisfy, in order."""
    stats = _coerce_stats(user_stats)
    return [rule for rule in rules if not rule_satisfied(rule, stats)]
