"""Community challenges module.

Provides functionality for:
- Validating challenge creation and update payloads
- Computing a participant's completion percentage across goals
- Checking free-text challenge rules against user statistics
- Joining, leaving, progress tracking, leaderboards and reward claims
- Teams in collaborative challenges and per-participant progress history
"""

from .manager import ChallengeManager
from .models import (
    Challenge,
    ChallengeGoal,
    ChallengeParticipant,
    ChallengeReward,
    ChallengeRule,
    ChallengeTeam,
)
from .progress import calculate_challenge_progress
from .rules import check_challenge_rules
from .schemas import (
    ChallengeCreate,
    ChallengeResponse,
    ChallengeStatus,
    ChallengeSummary,
    ChallengeType,
    ChallengeUpdate,
    GoalType,
    RewardType,
    TeamCreate,
    TeamMembershipUpdate,
    validate_create_challenge,
    validate_update_challenge,
)

__all__ = [
    "ChallengeManager",
    "Challenge",
    "ChallengeGoal",
    "ChallengeParticipant",
    "ChallengeReward",
    "ChallengeRule",
    "ChallengeTeam",
    "calculate_challenge_progress",
    "check_challenge_rules",
    "ChallengeCreate",
    "ChallengeResponse",
    "ChallengeStatus",
    "ChallengeSummary",
    "ChallengeType",
    "ChallengeUpdate",
    "GoalType",
    "RewardType",
    "TeamCreate",
    "TeamMembershipUpdate",
    "validate_create_challenge",
    "validate_update_challenge",
]
