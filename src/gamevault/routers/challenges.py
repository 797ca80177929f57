"""Challenge endpoints.

Bodies of create, update and goal calls are passed raw to the challenge
manager, whose schemas report every violated field in ``details``.
"""

from flask import Blueprint, g, request

from ..challenges.schemas import ChallengeStatus, GoalProgressUpdate
from ..errors import ChallengeValidationError, FieldError, NotFoundError
from .deps import (
    bool_arg,
    challenge_manager,
    envelope,
    int_arg,
    json_body,
    login_required,
    parse_body,
)

challenges_bp = Blueprint("challenges", __name__)

MAX_LEADERBOARD_LIMIT = 500


def _status_arg():
    raw = request.args.get("status")
    if not raw:
        return None
    try:
        return ChallengeStatus(raw)
    except ValueError:
        allowed = ", ".join(s.value for s in ChallengeStatus)
        raise ChallengeValidationError(
            [FieldError(field="status", message=f"Must be one of: {allowed}")]
        ) from None


@challenges_bp.route("")
@login_required
def list_challenges():
    """List challenges. ``?status=`` filters, ``?mine=true`` keeps joined ones."""
    challenges = challenge_manager().list_challenges(
        status=_status_arg(),
        user_id=g.user.id if bool_arg("mine") else None,
    )
    return envelope(challenges)


@challenges_bp.route("", methods=["POST"])
@login_required
def create_challenge():
    """Create a challenge with its goals, rewards and rules."""
    return envelope(challenge_manager().create_challenge(g.user.id, json_body()), 201)


@challenges_bp.route("/<challenge_id>")
@login_required
def get_challenge(challenge_id: str):
    """Get a challenge with goals, rewards, rules and participants."""
    challenge = challenge_manager().get_challenge(challenge_id)
    if not challenge:
        raise NotFoundError("Challenge not found")
    return envelope(challenge)


@challenges_bp.route("/<challenge_id>", methods=["PATCH"])
@login_required
def update_challenge(challenge_id: str):
    """Partially update a challenge. A ``type`` in the body is ignored."""
    return envelope(challenge_manager().update_challenge(challenge_id, g.user.id, json_body()))


@challenges_bp.route("/<challenge_id>", methods=["DELETE"])
@login_required
def delete_challenge(challenge_id: str):
    challenge_manager().delete_challenge(challenge_id, g.user.id)
    return envelope({"id": challenge_id, "deleted": True})


@challenges_bp.route("/<challenge_id>/join", methods=["POST"])
@login_required
def join_challenge(challenge_id: str):
    """Join a challenge if the caller meets its rules."""
    return envelope(challenge_manager().join_challenge(challenge_id, g.user.id), 201)


@challenges_bp.route("/<challenge_id>/leave", methods=["POST"])
@login_required
def leave_challenge(challenge_id: str):
    challenge_manager().leave_challenge(challenge_id, g.user.id)
    return envelope({"challenge_id": challenge_id, "left": True})


@challenges_bp.route("/<challenge_id>/leaderboard")
@login_required
def get_leaderboard(challenge_id: str):
    """Participants ranked by progress."""
    limit = int_arg("limit", 1, MAX_LEADERBOARD_LIMIT)
    return envelope(challenge_manager().get_leaderboard(challenge_id, limit=limit))


@challenges_bp.route("/<challenge_id>/goals")
@login_required
def get_goals(challenge_id: str):
    """Goals with the caller's progress."""
    return envelope(challenge_manager().get_goals_with_progress(challenge_id, g.user.id))


@challenges_bp.route("/<challenge_id>/goals", methods=["POST"])
@login_required
def add_goal(challenge_id: str):
    """Add a goal before the challenge starts. Creator only."""
    return envelope(challenge_manager().add_goal(challenge_id, g.user.id, json_body()), 201)


@challenges_bp.route("/<challenge_id>/goals", methods=["PUT"])
@login_required
def update_goal_progress(challenge_id: str):
    """Record the caller's progress on one goal (``{"goalId", "progress"}``)."""
    update = parse_body(GoalProgressUpdate)
    participant = challenge_manager().update_goal_progress(
        challenge_id, g.user.id, update.goal_id, update.progress
    )
    return envelope(participant)


@challenges_bp.route("/<challenge_id>/rewards/<reward_id>/claim", methods=["POST"])
@login_required
def claim_reward(challenge_id: str, reward_id: str):
    """Claim a reward after completing the challenge."""
    return envelope(challenge_manager().claim_reward(challenge_id, g.user.id, reward_id), 201)


@challenges_bp.route("/<challenge_id>/teams")
@login_required
def list_teams(challenge_id: str):
    """Teams with their members and combined progress."""
    return envelope(challenge_manager().list_teams(challenge_id))


@challenges_bp.route("/<challenge_id>/teams", methods=["POST"])
@login_required
def create_team(challenge_id: str):
    """Create a team in a collaborative challenge and join it."""
    return envelope(challenge_manager().create_team(challenge_id, g.user.id, json_body()), 201)


@challenges_bp.route("/<challenge_id>/teams", methods=["PUT"])
@login_required
def update_team_membership(challenge_id: str):
    """Join (``{"action": "join", "teamId"}``) or leave (``{"action": "leave"}``) a team."""
    team = challenge_manager().update_team_membership(challenge_id, g.user.id, json_body())
    if team is None:
        return envelope({"challenge_id": challenge_id, "left": True})
    return envelope(team)


@challenges_bp.route("/<challenge_id>/teams/leaderboard")
@login_required
def get_team_leaderboard(challenge_id: str):
    return envelope(challenge_manager().get_team_leaderboard(challenge_id))


@challenges_bp.route("/<challenge_id>/progress/history")
@login_required
def get_progress_history(challenge_id: str):
    """The caller's progress reports, oldest first. ``?goalId=`` narrows to one goal."""
    history = challenge_manager().get_progress_history(
        challenge_id, g.user.id, goal_id=request.args.get("goalId") or None
    )
    return envelope(history)
