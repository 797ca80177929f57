"""Challenge manager for community challenge operations."""

import logging
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..db.models import to_iso, utc_now_iso
from ..db.sqlite import Database, get_db
from ..errors import (
    ChallengeStateError,
    ChallengeValidationError,
    ConflictError,
    FieldError,
    NotFoundError,
    PermissionDeniedError,
    RulesNotMetError,
)
from ..profiles.models import Profile
from .models import (
    Challenge,
    ChallengeGoal,
    ChallengeParticipant,
    ChallengeReward,
    ChallengeRewardClaim,
    ChallengeRule,
    ChallengeTeam,
    GoalProgress,
    ProgressHistory,
    status_for_dates,
)
from .progress import (
    calculate_challenge_progress,
    goal_percentage,
    is_complete,
    milestone_reached,
)
from .rules import check_challenge_rules, failing_rules
from .schemas import (
    ChallengeCreate,
    ChallengeGoal as ChallengeGoalSchema,
    ChallengeResponse,
    ChallengeReward as ChallengeRewardSchema,
    ChallengeStatus,
    ChallengeSummary,
    ChallengeType,
    ChallengeUpdate,
    GoalProgressUpdate,
    GoalResponse,
    GoalWithProgress,
    Leaderboard,
    LeaderboardEntry,
    ParticipantResponse,
    ProgressHistoryEntry,
    RewardClaimResponse,
    TeamAction,
    TeamCreate,
    TeamLeaderboard,
    TeamLeaderboardEntry,
    TeamMembershipUpdate,
    TeamResponse,
    challenge_invariant_errors,
    field_errors,
    validate_create_challenge,
    validate_payload,
    validate_update_challenge,
)

logger = logging.getLogger(__name__)

DEFAULT_LEADERBOARD_LIMIT = 50

# Fields that cannot be cleared by sending null
_REQUIRED_FIELDS = {"title", "description", "start_date", "end_date", "goals"}


def _goal_row(goal: ChallengeGoalSchema, position: int) -> ChallengeGoal:
    return ChallengeGoal(
        type=goal.type.value,
        target=goal.target,
        description=goal.description,
        position=position,
    )


def _reward_row(reward: ChallengeRewardSchema, position: int) -> ChallengeReward:
    return ChallengeReward(
        type=reward.type.value,
        name=reward.name,
        description=reward.description,
        badge_id=str(reward.badge_id) if reward.badge_id else None,
        position=position,
    )


def _rule_rows(rules: list[str]) -> list[ChallengeRule]:
    return [ChallengeRule(rule=rule, position=i) for i, rule in enumerate(rules)]


class ChallengeManager:
    """Manages challenge operations."""

    def __init__(self, db: Optional[Database] = None, leaderboard_limit: Optional[int] = None):
        """Initialize challenge manager.

        Args:
            db: Database instance
            leaderboard_limit: Default number of leaderboard entries
        """
        self.db = db or get_db()
        self.leaderboard_limit = leaderboard_limit or DEFAULT_LEADERBOARD_LIMIT

    # ========================================================================
    # Loading helpers
    # ========================================================================

    def _find(self, session: Session, challenge_id: str) -> Optional[Challenge]:
        stmt = (
            select(Challenge)
            .options(
                selectinload(Challenge.goals),
                selectinload(Challenge.rewards),
                selectinload(Challenge.rules),
                selectinload(Challenge.participants).selectinload(ChallengeParticipant.user),
                selectinload(Challenge.participants).selectinload(
                    ChallengeParticipant.goal_progress
                ),
                selectinload(Challenge.teams).selectinload(ChallengeTeam.members),
            )
            .where(Challenge.id == challenge_id)
        )
        return session.execute(stmt).scalar_one_or_none()

    def _load(self, session: Session, challenge_id: str) -> Challenge:
        challenge = self._find(session, challenge_id)
        if not challenge:
            raise NotFoundError("Challenge not found")
        return challenge

    @staticmethod
    def _participant(challenge: Challenge, user_id: str) -> Optional[ChallengeParticipant]:
        return next((p for p in challenge.participants if p.user_id == user_id), None)

    @staticmethod
    def _sync_status(challenge: Challenge, now: Optional[datetime] = None) -> ChallengeStatus:
        """Bring the stored status in line with the dates."""
        status = challenge.compute_status(now)
        if challenge.status != status.value:
            challenge.status = status.value
        return status

    @staticmethod
    def _require_creator(challenge: Challenge, user_id: str, action: str) -> None:
        if challenge.creator_id != user_id:
            logger.warning("User %s tried to %s challenge %s", user_id, action, challenge.id)
            raise PermissionDeniedError(f"Only the challenge creator can {action} this challenge")

    @staticmethod
    def _clear_goal_progress(challenge: Challenge) -> None:
        """Discard per-goal progress and history of every participant."""
        for participant in challenge.participants:
            participant.goal_progress = []
            participant.history = []

    @staticmethod
    def _recompute_participants(challenge: Challenge) -> None:
        """Re-derive every participant's aggregate from the current goals."""
        for participant in challenge.participants:
            participant.progress = calculate_challenge_progress(
                challenge.goals, participant.progress_map()
            )
            participant.completed = is_complete(participant.progress)

    @staticmethod
    def _require_collaborative(challenge: Challenge) -> None:
        if challenge.type != ChallengeType.COLLABORATIVE.value:
            raise ChallengeStateError("Teams are only available in collaborative challenges")

    # ========================================================================
    # Challenge CRUD
    # ========================================================================

    def create_challenge(
        self,
        creator_id: str,
        payload: Union[ChallengeCreate, dict[str, Any]],
    ) -> ChallengeResponse:
        """Create a challenge with its goals, rewards and rules.

        Args:
            creator_id: Profile ID of the creator
            payload: Validated ChallengeCreate or raw payload

        Returns:
            Created challenge

        Raises:
            ChallengeValidationError: If the payload is invalid
            NotFoundError: If the creator does not exist
        """
        data = payload if isinstance(payload, ChallengeCreate) else validate_create_challenge(payload)

        with self.db.get_session() as session:
            if not session.get(Profile, creator_id):
                raise NotFoundError("Profile not found")

            challenge = Challenge(
                creator_id=creator_id,
                title=data.title,
                description=data.description,
                type=data.type.value,
                status=status_for_dates(data.start_date, data.end_date).value,
                start_date=to_iso(data.start_date),
                end_date=to_iso(data.end_date),
                min_participants=data.min_participants,
                max_participants=data.max_participants,
                cover_url=str(data.cover_url) if data.cover_url else None,
            )
            challenge.goals = [_goal_row(g, i) for i, g in enumerate(data.goals)]
            challenge.rewards = [_reward_row(r, i) for i, r in enumerate(data.rewards)]
            challenge.rules = _rule_rows(data.rules)
            challenge.participants = []

            session.add(challenge)
            session.flush()

            logger.info(
                "Created %s challenge %s '%s' with %d goal(s)",
                challenge.type,
                challenge.id,
                challenge.title,
                len(challenge.goals),
            )
            return ChallengeResponse.model_validate(challenge)

    def get_challenge(self, challenge_id: str) -> Optional[ChallengeResponse]:
        """Get a challenge by ID.

        Args:
            challenge_id: Challenge ID

        Returns:
            Challenge or None
        """
        with self.db.get_session() as session:
            challenge = self._find(session, challenge_id)
            if not challenge:
                return None
            self._sync_status(challenge)
            return ChallengeResponse.model_validate(challenge)

    def list_challenges(
        self,
        status: Optional[ChallengeStatus] = None,
        user_id: Optional[str] = None,
    ) -> list[ChallengeSummary]:
        """List challenges, newest start first.

        Args:
            status: Filter by lifecycle status
            user_id: Only challenges this user participates in

        Returns:
            List of challenge summaries
        """
        self.refresh_statuses()

        with self.db.get_session() as session:
            stmt = select(Challenge).options(
                selectinload(Challenge.goals),
                selectinload(Challenge.participants),
            )

            if status:
                stmt = stmt.where(Challenge.status == ChallengeStatus(status).value)

            if user_id:
                stmt = stmt.join(
                    ChallengeParticipant, ChallengeParticipant.challenge_id == Challenge.id
                ).where(ChallengeParticipant.user_id == user_id)

            stmt = stmt.order_by(Challenge.start_date.desc(), Challenge.created_at.desc())

            challenges = session.execute(stmt).scalars().unique().all()
            return [ChallengeSummary.model_validate(c) for c in challenges]

    def update_challenge(
        self,
        challenge_id: str,
        user_id: str,
        payload: Union[ChallengeUpdate, dict[str, Any]],
    ) -> ChallengeResponse:
        """Partially update a challenge. The challenge type never changes.

        Args:
            challenge_id: Challenge ID
            user_id: Profile ID of the caller, must be the creator
            payload: Validated ChallengeUpdate or raw payload

        Returns:
            Updated challenge

        Raises:
            ChallengeValidationError: If the payload or the merged result is invalid
            ChallengeStateError: If goals or the start date change after the start
            NotFoundError: If the challenge does not exist
            PermissionDeniedError: If the caller is not the creator
        """
        data = payload if isinstance(payload, ChallengeUpdate) else validate_update_challenge(payload)
        fields = data.model_fields_set

        with self.db.get_session() as session:
            challenge = self._load(session, challenge_id)
            self._require_creator(challenge, user_id, "update")

            started = challenge.has_started()
            if data.goals is not None and started:
                raise ChallengeStateError("Goals cannot be changed after the challenge has started")
            if data.start_date is not None and started and data.start_date != challenge.starts_at:
                raise ChallengeStateError(
                    "The start date cannot be changed after the challenge has started"
                )

            # Invariants against the merged state
            start = data.start_date if data.start_date is not None else challenge.starts_at
            end = data.end_date if data.end_date is not None else challenge.ends_at
            min_p = data.min_participants if "min_participants" in fields else challenge.min_participants
            max_p = data.max_participants if "max_participants" in fields else challenge.max_participants
            errors = challenge_invariant_errors(start, end, min_p, max_p)
            count = challenge.participant_count
            if "max_participants" in fields and max_p is not None and max_p < count:
                errors.append(
                    FieldError(
                        field="max_participants",
                        message=(
                            "Maximum participants cannot be lower than the current "
                            f"number of participants ({count})"
                        ),
                    )
                )
            if errors:
                raise ChallengeValidationError(errors)

            for field in fields:
                value = getattr(data, field)
                if value is None and field in _REQUIRED_FIELDS:
                    continue

                if field in ("start_date", "end_date"):
                    setattr(challenge, field, to_iso(value))
                elif field == "goals":
                    self._clear_goal_progress(challenge)
                    challenge.goals = [_goal_row(g, i) for i, g in enumerate(value)]
                elif field == "rewards":
                    challenge.rewards = [_reward_row(r, i) for i, r in enumerate(value or [])]
                elif field == "rules":
                    challenge.rules = _rule_rows(value or [])
                elif field == "cover_url":
                    challenge.cover_url = str(value) if value else None
                else:
                    setattr(challenge, field, value)

            challenge.updated_at = utc_now_iso()
            self._sync_status(challenge)
            session.flush()
            if data.goals is not None:
                self._recompute_participants(challenge)
                session.flush()

            logger.info("Updated challenge %s (%s)", challenge_id, ", ".join(sorted(fields)))
            return ChallengeResponse.model_validate(challenge)

    def delete_challenge(self, challenge_id: str, user_id: str) -> bool:
        """Delete a challenge and everything attached to it.

        Raises:
            NotFoundError: If the challenge does not exist
            PermissionDeniedError: If the caller is not the creator
        """
        with self.db.get_session() as session:
            challenge = self._load(session, challenge_id)
            self._require_creator(challenge, user_id, "delete")

            session.delete(challenge)
            logger.info("Deleted challenge %s", challenge_id)
            return True

    def add_goal(
        self,
        challenge_id: str,
        user_id: str,
        goal: Union[ChallengeGoalSchema, dict[str, Any]],
    ) -> GoalResponse:
        """Add a goal to a challenge that has not started yet.

        Raises:
            ChallengeValidationError: If the goal is invalid
            ChallengeStateError: If the challenge has started
            NotFoundError: If the challenge does not exist
            PermissionDeniedError: If the caller is not the creator
        """
        if not isinstance(goal, ChallengeGoalSchema):
            try:
                goal = ChallengeGoalSchema.model_validate(goal)
            except ValidationError as e:
                raise ChallengeValidationError(field_errors(e)) from e

        with self.db.get_session() as session:
            challenge = self._load(session, challenge_id)
            self._require_creator(challenge, user_id, "add goals to")

            if challenge.has_started():
                raise ChallengeStateError("Goals cannot be changed after the challenge has started")

            row = _goal_row(goal, len(challenge.goals))
            challenge.goals.append(row)
            session.flush()
            self._recompute_participants(challenge)
            session.flush()

            logger.info("Added %s goal %s to challenge %s", row.type, row.id, challenge_id)
            return GoalResponse.model_validate(row)

    # ========================================================================
    # Participation
    # ========================================================================

    def join_challenge(self, challenge_id: str, user_id: str) -> ParticipantResponse:
        """Join a challenge.

        The user's statistics snapshot must satisfy every challenge rule.

        Raises:
            NotFoundError: If the challenge or profile does not exist
            ChallengeStateError: If the challenge has ended or is full
            ConflictError: If the user already participates
            RulesNotMetError: If the user's statistics fail a rule
        """
        with self.db.get_session() as session:
            challenge = self._load(session, challenge_id)
            profile = session.get(Profile, user_id)
            if not profile:
                raise NotFoundError("Profile not found")

            if self._sync_status(challenge) == ChallengeStatus.COMPLETED:
                raise ChallengeStateError("This challenge has already ended")

            if self._participant(challenge, user_id):
                raise ConflictError("Already participating in this challenge")

            if challenge.is_full:
                raise ChallengeStateError("This challenge is full")

            rules = challenge.rule_texts
            stats = profile.stats
            if not check_challenge_rules(rules, stats):
                failing = failing_rules(rules, stats)
                logger.warning(
                    "User %s does not meet %d rule(s) of challenge %s",
                    user_id,
                    len(failing),
                    challenge_id,
                )
                raise RulesNotMetError(failing)

            participant = ChallengeParticipant(
                challenge_id=challenge_id,
                user_id=user_id,
                progress=0,
                completed=False,
            )
            session.add(participant)
            try:
                session.flush()
            except IntegrityError as e:
                raise ConflictError("Already participating in this challenge") from e

            logger.info("User %s joined challenge %s", user_id, challenge_id)
            return ParticipantResponse.model_validate(participant)

    def leave_challenge(self, challenge_id: str, user_id: str) -> bool:
        """Leave a challenge, discarding recorded progress.

        Raises:
            NotFoundError: If the challenge does not exist or the user is not in it
        """
        with self.db.get_session() as session:
            challenge = self._load(session, challenge_id)
            participant = self._participant(challenge, user_id)
            if not participant:
                raise NotFoundError("Not participating in this challenge")

            session.delete(participant)
            logger.info("User %s left challenge %s", user_id, challenge_id)
            return True

    # ========================================================================
    # Goals and progress
    # ========================================================================

    def get_goals_with_progress(self, challenge_id: str, user_id: str) -> list[GoalWithProgress]:
        """Get a challenge's goals with the user's progress on each.

        Non-participants see every goal at 0.

        Raises:
            NotFoundError: If the challenge does not exist
        """
        with self.db.get_session() as session:
            challenge = self._load(session, challenge_id)
            participant = self._participant(challenge, user_id)
            progress = participant.progress_map() if participant else {}

            result = []
            for goal in challenge.goals:
                current = progress.get(goal.id, 0)
                result.append(
                    GoalWithProgress(
                        id=goal.id,
                        type=goal.type,
                        target=goal.target,
                        description=goal.description,
                        progress=current,
                        percent=round(goal_percentage(goal.target, current), 2),
                    )
                )
            return result

    def update_goal_progress(
        self,
        challenge_id: str,
        user_id: str,
        goal_id: str,
        progress: float,
    ) -> ParticipantResponse:
        """Record a participant's current progress on one goal.

        The participant's aggregate percentage is recomputed from all goals
        and the participant is marked completed when it reaches 100.
        Every report is appended to the participant's progress history.

        Args:
            challenge_id: Challenge ID
            user_id: Participant profile ID
            goal_id: Goal ID
            progress: Accumulated value (hours, games, points...)

        Returns:
            Updated participant

        Raises:
            ChallengeValidationError: If the progress value is invalid
            ChallengeStateError: If the challenge is not active
            NotFoundError: If the challenge, goal or participation does not exist
        """
        try:
            update = GoalProgressUpdate(goal_id=goal_id, progress=progress)
        except ValidationError as e:
            raise ChallengeValidationError(field_errors(e)) from e

        with self.db.get_session() as session:
            challenge = self._load(session, challenge_id)

            if self._sync_status(challenge) != ChallengeStatus.ACTIVE:
                raise ChallengeStateError(
                    "Progress can only be recorded while the challenge is active"
                )

            participant = self._participant(challenge, user_id)
            if not participant:
                raise NotFoundError("Not participating in this challenge")

            if not any(g.id == update.goal_id for g in challenge.goals):
                raise NotFoundError("Goal not found")

            row = next(
                (p for p in participant.goal_progress if p.goal_id == update.goal_id), None
            )
            if row is None:
                participant.goal_progress.append(
                    GoalProgress(goal_id=update.goal_id, progress=update.progress)
                )
            else:
                row.progress = update.progress
                row.updated_at = utc_now_iso()

            before = participant.progress or 0
            participant.progress = calculate_challenge_progress(
                challenge.goals, participant.progress_map()
            )
            participant.completed = is_complete(participant.progress)
            participant.history.append(
                ProgressHistory(
                    goal_id=update.goal_id,
                    sequence=len(participant.history) + 1,
                    value=update.progress,
                    progress=participant.progress,
                    milestone=milestone_reached(before, participant.progress),
                )
            )
            session.flush()

            logger.info(
                "User %s progress on challenge %s is now %d%%",
                user_id,
                challenge_id,
                participant.progress,
            )
            return ParticipantResponse.model_validate(participant)

    def get_leaderboard(self, challenge_id: str, limit: Optional[int] = None) -> Leaderboard:
        """Rank participants by progress, earliest joiner first on ties.

        Raises:
            NotFoundError: If the challenge does not exist
        """
        with self.db.get_session() as session:
            if not session.get(Challenge, challenge_id):
                raise NotFoundError("Challenge not found")

            stmt = (
                select(ChallengeParticipant)
                .options(selectinload(ChallengeParticipant.user))
                .where(ChallengeParticipant.challenge_id == challenge_id)
                .order_by(
                    ChallengeParticipant.progress.desc(),
                    ChallengeParticipant.joined_at.asc(),
                )
                .limit(limit or self.leaderboard_limit)
            )
            participants = session.execute(stmt).scalars().all()

            return Leaderboard(
                challenge_id=challenge_id,
                rankings=[
                    LeaderboardEntry(
                        rank=rank,
                        user_id=p.user_id,
                        username=p.username,
                        avatar_url=p.avatar_url,
                        progress=p.progress,
                        completed=p.completed,
                    )
                    for rank, p in enumerate(participants, start=1)
                ],
            )

    # ========================================================================
    # Rewards
    # ========================================================================

    def claim_reward(self, challenge_id: str, user_id: str, reward_id: str) -> RewardClaimResponse:
        """Claim a reward of a completed challenge.

        Raises:
            NotFoundError: If the challenge or reward does not exist
            PermissionDeniedError: If the user is not a participant
            ChallengeStateError: If the participant has not completed the challenge
            ConflictError: If the reward was already claimed by this user
        """
        with self.db.get_session() as session:
            challenge = self._load(session, challenge_id)

            if not any(r.id == reward_id for r in challenge.rewards):
                raise NotFoundError("Reward not found")

            participant = self._participant(challenge, user_id)
            if not participant:
                raise PermissionDeniedError("Only participants can claim rewards")

            if not participant.completed:
                raise ChallengeStateError("Complete the challenge before claiming its rewards")

            existing = session.execute(
                select(ChallengeRewardClaim).where(
                    ChallengeRewardClaim.reward_id == reward_id,
                    ChallengeRewardClaim.user_id == user_id,
                )
            ).scalar_one_or_none()
            if existing:
                raise ConflictError("Reward already claimed")

            claim = ChallengeRewardClaim(
                challenge_id=challenge_id,
                reward_id=reward_id,
                user_id=user_id,
            )
            session.add(claim)
            try:
                session.flush()
            except IntegrityError as e:
                raise ConflictError("Reward already claimed") from e

            logger.info("User %s claimed reward %s of challenge %s", user_id, reward_id, challenge_id)
            return RewardClaimResponse.model_validate(claim)

    # ========================================================================
    # Teams
    # ========================================================================

    def _team_participant(
        self, challenge: Challenge, user_id: str
    ) -> ChallengeParticipant:
        self._require_collaborative(challenge)
        if self._sync_status(challenge) == ChallengeStatus.COMPLETED:
            raise ChallengeStateError("This challenge has already ended")
        participant = self._participant(challenge, user_id)
        if not participant:
            raise NotFoundError("Not participating in this challenge")
        return participant

    def list_teams(self, challenge_id: str) -> list[TeamResponse]:
        """Teams of a challenge with their members, oldest first.

        Raises:
            NotFoundError: If the challenge does not exist
        """
        with self.db.get_session() as session:
            challenge = self._load(session, challenge_id)
            return [TeamResponse.model_validate(t) for t in challenge.teams]

    def create_team(
        self,
        challenge_id: str,
        user_id: str,
        payload: Union[TeamCreate, dict[str, Any]],
    ) -> TeamResponse:
        """Create a team and put its creator in it.

        Raises:
            ChallengeValidationError: If the team name is invalid
            ChallengeStateError: If the challenge is not collaborative or has ended
            NotFoundError: If the challenge does not exist or the user is not in it
            ConflictError: If the name is taken or the user already has a team
        """
        data = validate_payload(TeamCreate, payload)

        with self.db.get_session() as session:
            challenge = self._load(session, challenge_id)
            participant = self._team_participant(challenge, user_id)

            if participant.team_id:
                raise ConflictError("Leave your current team first")
            if any(t.name.lower() == data.name.lower() for t in challenge.teams):
                raise ConflictError("Team name already taken")

            team = ChallengeTeam(name=data.name, created_by=user_id)
            challenge.teams.append(team)
            team.members.append(participant)
            try:
                session.flush()
            except IntegrityError as e:
                raise ConflictError("Team name already taken") from e

            logger.info("User %s created team %s in challenge %s", user_id, team.id, challenge_id)
            return TeamResponse.model_validate(team)

    def join_team(self, challenge_id: str, user_id: str, team_id: str) -> TeamResponse:
        """Move a participant without a team into ``team_id``.

        Raises:
            ChallengeStateError: If the challenge is not collaborative or has ended
            NotFoundError: If the challenge or team does not exist, or the user is not in it
            ConflictError: If the user already has a team
        """
        with self.db.get_session() as session:
            challenge = self._load(session, challenge_id)
            participant = self._team_participant(challenge, user_id)

            team = next((t for t in challenge.teams if t.id == team_id), None)
            if not team:
                raise NotFoundError("Team not found")
            if participant.team_id == team.id:
                raise ConflictError("Already a member of this team")
            if participant.team_id:
                raise ConflictError("Leave your current team first")

            team.members.append(participant)
            session.flush()

            logger.info("User %s joined team %s", user_id, team_id)
            return TeamResponse.model_validate(team)

    def leave_team(self, challenge_id: str, user_id: str) -> bool:
        """Remove a participant from their team. The team itself stays.

        Raises:
            ChallengeStateError: If the challenge is not collaborative or has ended
            NotFoundError: If the user is not in the challenge or has no team
        """
        with self.db.get_session() as session:
            challenge = self._load(session, challenge_id)
            participant = self._team_participant(challenge, user_id)

            team = participant.team
            if not team:
                raise NotFoundError("Not a member of any team")

            team.members.remove(participant)
            session.flush()

            logger.info("User %s left team %s", user_id, team.id)
            return True

    def update_team_membership(
        self,
        challenge_id: str,
        user_id: str,
        payload: Union[TeamMembershipUpdate, dict[str, Any]],
    ) -> Optional[TeamResponse]:
        """Apply a ``{"action": "join" | "leave", "teamId"}`` request.

        Returns:
            The joined team, or None after leaving
        """
        data = validate_payload(TeamMembershipUpdate, payload)
        if data.action == TeamAction.JOIN:
            return self.join_team(challenge_id, user_id, str(data.team_id))
        self.leave_team(challenge_id, user_id)
        return None

    def get_team_leaderboard(self, challenge_id: str) -> TeamLeaderboard:
        """Rank teams by mean member progress, oldest team first on ties.

        Raises:
            NotFoundError: If the challenge does not exist
            ChallengeStateError: If the challenge is not collaborative
        """
        with self.db.get_session() as session:
            challenge = self._load(session, challenge_id)
            self._require_collaborative(challenge)

            # sorted() is stable, so equal progress keeps creation order
            teams = sorted(challenge.teams, key=lambda t: t.progress, reverse=True)
            return TeamLeaderboard(
                challenge_id=challenge_id,
                rankings=[
                    TeamLeaderboardEntry(
                        rank=rank,
                        team_id=t.id,
                        name=t.name,
                        progress=t.progress,
                        member_count=t.member_count,
                    )
                    for rank, t in enumerate(teams, start=1)
                ],
            )

    # ========================================================================
    # Progress history
    # ========================================================================

    def get_progress_history(
        self,
        challenge_id: str,
        user_id: str,
        goal_id: Optional[str] = None,
    ) -> list[ProgressHistoryEntry]:
        """A participant's progress reports, oldest first.

        Args:
            challenge_id: Challenge ID
            user_id: Participant profile ID
            goal_id: Only reports on this goal

        Returns:
            History entries; empty for non-participants

        Raises:
            NotFoundError: If the challenge or the goal does not exist
        """
        with self.db.get_session() as session:
            challenge = self._load(session, challenge_id)
            if goal_id and not any(g.id == goal_id for g in challenge.goals):
                raise NotFoundError("Goal not found")

            participant = self._participant(challenge, user_id)
            if not participant:
                return []

            return [
                ProgressHistoryEntry.model_validate(h)
                for h in participant.history
                if not goal_id or h.goal_id == goal_id
            ]

    # ========================================================================
    # Maintenance
    # ========================================================================

    def refresh_statuses(self, now: Optional[datetime] = None) -> int:
        """Recompute stored statuses from the challenge dates.

        Returns:
            Number of challenges whose status changed
        """
        with self.db.get_session() as session:
            stmt = select(Challenge).where(Challenge.status != ChallengeStatus.COMPLETED.value)
            changed = 0
            for challenge in session.execute(stmt).scalars().all():
                before = challenge.status
                if self._sync_status(challenge, now).value != before:
                    changed += 1

            if changed:
                logger.info("Refreshed status of %d challenge(s)", changed)
            return changed
