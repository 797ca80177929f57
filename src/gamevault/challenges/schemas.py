"""Pydantic schemas for community challenges.

Creation and update payloads are validated field by field first; the
cross-field invariants (date order, participant bounds) run only once every
field is individually valid, and all of them are reported together.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import UUID

from pydantic import (
    AwareDatetime,
    BaseModel,
    Field,
    HttpUrl,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_core import PydanticCustomError

from ..errors import ChallengeValidationError, FieldError

INVARIANT_ERROR_TYPE = "challenge_invariant"

END_BEFORE_START_MESSAGE = "End date must be after start date"
PARTICIPANT_BOUNDS_MESSAGE = (
    "Maximum participants must be greater than or equal to minimum participants"
)


class ChallengeType(str, Enum):
    """How participants relate to each other. Fixed at creation."""

    COMPETITIVE = "competitive"
    COLLABORATIVE = "collaborative"


class ChallengeStatus(str, Enum):
    """Lifecycle status derived from the challenge dates."""

    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"


class GoalType(str, Enum):
    """Measurable objective kinds."""

    PLAY_TIME = "play_time"  # Hours played
    COMPLETE_GAMES = "complete_games"
    ACHIEVE_TROPHIES = "achieve_trophies"
    REVIEW_GAMES = "review_games"
    SCORE_POINTS = "score_points"
    REACH_LEVEL = "reach_level"


class RewardType(str, Enum):
    """Incentive granted on completion."""

    BADGE = "badge"
    POINTS = "points"
    TITLE = "title"


Title = Annotated[str, Field(min_length=3, max_length=100)]
Description = Annotated[str, Field(min_length=10)]
ParticipantCount = Annotated[int, Field(gt=0)]


class ChallengeGoal(BaseModel):
    """One measurable objective of a challenge."""

    type: GoalType
    target: float = Field(..., gt=0, allow_inf_nan=False)
    description: Optional[str] = None


class ChallengeReward(BaseModel):
    """Incentive attached to a challenge."""

    type: RewardType
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    badge_id: Optional[UUID] = None


def _normalize_rules(value: Any) -> Any:
    """Accept ``{"rule": "..."}`` objects alongside plain strings."""
    if not isinstance(value, list):
        return value
    return [
        item["rule"] if isinstance(item, dict) and "rule" in item else item
        for item in value
    ]


def challenge_invariant_errors(
    start_date: Optional[datetime],
    end_date: Optional[datetime],
    min_participants: Optional[int],
    max_participants: Optional[int],
) -> list[FieldError]:
    """Evaluate the cross-field invariants.

    Both checks always run; a pair with a missing side is skipped.
    """
    errors = []
    if start_date is not None and end_date is not None and end_date <= start_date:
        errors.append(FieldError(field="end_date", message=END_BEFORE_START_MESSAGE))
    if (
        min_participants is not None
        and max_participants is not None
        and max_participants < min_participants
    ):
        errors.append(
            FieldError(field="max_participants", message=PARTICIPANT_BOUNDS_MESSAGE)
        )
    return errors


def _raise_invariants(errors: list[FieldError]) -> None:
    if errors:
        raise PydanticCustomError(
            INVARIANT_ERROR_TYPE,
            "; ".join(e.message for e in errors),
            {"violations": [e.model_dump() for e in errors]},
        )


class ChallengeCreate(BaseModel):
    """Schema for creating a challenge."""

    title: Title
    description: Description
    type: ChallengeType
    start_date: AwareDatetime
    end_date: AwareDatetime
    min_participants: Optional[ParticipantCount] = None
    max_participants: Optional[ParticipantCount] = None
    goals: list[ChallengeGoal] = Field(..., min_length=1)
    rewards: list[ChallengeReward] = Field(default_factory=list)
    rules: list[str] = Field(default_factory=list)
    cover_url: Optional[HttpUrl] = None

    @field_validator("rules", mode="before")
    @classmethod
    def normalize_rules(cls, v):
        return _normalize_rules(v)

    @model_validator(mode="after")
    def check_invariants(self) -> "ChallengeCreate":
        _raise_invariants(
            challenge_invariant_errors(
                self.start_date,
                self.end_date,
                self.min_participants,
                self.max_participants,
            )
        )
        return self


class ChallengeUpdate(BaseModel):
    """Schema for partially updating a challenge.

    ``type`` is deliberately absent: it is dropped from incoming payloads.
    """

    model_config = {"extra": "ignore"}

    title: Optional[Title] = None
    description: Optional[Description] = None
    start_date: Optional[AwareDatetime] = None
    end_date: Optional[AwareDatetime] = None
    min_participants: Optional[ParticipantCount] = None
    max_participants: Optional[ParticipantCount] = None
    goals: Optional[Annotated[list[ChallengeGoal], Field(min_length=1)]] = None
    rewards: Optional[list[ChallengeReward]] = None
    rules: Optional[list[str]] = None
    cover_url: Optional[HttpUrl] = None

    @field_validator("rules", mode="before")
    @classmethod
    def normalize_rules(cls, v):
        return _normalize_rules(v)

    @model_validator(mode="after")
    def check_invariants(self) -> "ChallengeUpdate":
        _raise_invariants(
            challenge_invariant_errors(
                self.start_date,
                self.end_date,
                self.min_participants,
                self.max_participants,
            )
        )
        return self


def field_errors(exc: ValidationError) -> list[FieldError]:
    """Flatten a pydantic ValidationError into field/message pairs."""
    errors: list[FieldError] = []
    for err in exc.errors():
        if err["type"] == INVARIANT_ERROR_TYPE:
            errors.extend(FieldError(**v) for v in err["ctx"]["violations"])
            continue
        field = ".".join(str(part) for part in err["loc"]) or "payload"
        errors.append(FieldError(field=field, message=err["msg"]))
    return errors


def validate_create_challenge(payload: Any) -> ChallengeCreate:
    """Validate a challenge creation payload.

    Args:
        payload: Decoded JSON body

    Returns:
        Validated ChallengeCreate

    Raises:
        ChallengeValidationError: With every violated field
    """
    try:
        return ChallengeCreate.model_validate(payload)
    except ValidationError as e:
        raise ChallengeValidationError(field_errors(e)) from e


def validate_update_challenge(payload: Any) -> ChallengeUpdate:
    """Validate a partial update payload. Any ``type`` key is discarded.

    Raises:
        ChallengeValidationError: With every violated field
    """
    try:
        return ChallengeUpdate.model_validate(payload)
    except ValidationError as e:
        raise ChallengeValidationError(field_errors(e)) from e


class GoalProgressUpdate(BaseModel):
    """Progress report for one goal."""

    model_config = {"populate_by_name": True}

    goal_id: str = Field(..., alias="goalId", min_length=1)
    progress: float = Field(..., ge=0, allow_inf_nan=False)


TEAM_NAME_PATTERN = r"^[a-zA-Z0-9\s\-_]+$"
TEAM_NAME_MESSAGE = (
    "Team name can only contain letters, numbers, spaces, hyphens, and underscores"
)
TEAM_ID_REQUIRED_MESSAGE = "Team ID is required when joining a team"


class TeamAction(str, Enum):
    JOIN = "join"
    LEAVE = "leave"


class TeamCreate(BaseModel):
    """Schema for creating a team in a collaborative challenge."""

    name: str = Field(..., min_length=3, max_length=50)

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        if not re.match(TEAM_NAME_PATTERN, v):
            raise PydanticCustomError("team_name", TEAM_NAME_MESSAGE)
        return v


class TeamMembershipUpdate(BaseModel):
    """Join a team (``teamId`` required) or leave the current one."""

    model_config = {"populate_by_name": True}

    team_id: Optional[UUID] = Field(None, alias="teamId")
    action: TeamAction

    @model_validator(mode="after")
    def require_team_to_join(self) -> "TeamMembershipUpdate":
        if self.action == TeamAction.JOIN and self.team_id is None:
            _raise_invariants([FieldError(field="teamId", message=TEAM_ID_REQUIRED_MESSAGE)])
        return self


def validate_payload(model: type[BaseModel], payload: Any) -> Any:
    """Validate ``payload`` against ``model``, reporting every violated field.

    Raises:
        ChallengeValidationError: With every violated field
    """
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise ChallengeValidationError(field_errors(e)) from e


# ============================================================================
# Responses
# ============================================================================


class GoalResponse(ChallengeGoal):
    """Stored goal."""

    id: str

    model_config = {"from_attributes": True}


class GoalWithProgress(GoalResponse):
    """Stored goal plus one participant's progress toward it."""

    progress: float = 0
    percent: float = 0


class RewardResponse(ChallengeReward):
    """Stored reward."""

    id: str

    model_config = {"from_attributes": True}


class ParticipantResponse(BaseModel):
    """Challenge participant."""

    user_id: str
    username: Optional[str] = None
    team_id: Optional[str] = None
    joined_at: datetime
    progress: int
    completed: bool

    model_config = {"from_attributes": True}


class ChallengeResponse(BaseModel):
    """Full challenge with goals, rewards, rules and participants."""

    id: str
    creator_id: str
    title: str
    description: str
    type: ChallengeType
    status: ChallengeStatus
    start_date: datetime
    end_date: datetime
    min_participants: Optional[int] = None
    max_participants: Optional[int] = None
    cover_url: Optional[str] = None
    goals: list[GoalResponse] = Field(default_factory=list)
    rewards: list[RewardResponse] = Field(default_factory=list)
    rules: list[str] = Field(default_factory=list)
    participants: list[ParticipantResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("rules", mode="before")
    @classmethod
    def rule_text(cls, v):
        """Stored rules are rows; expose their text."""
        return [getattr(r, "rule", r) for r in v or []]


class ChallengeSummary(BaseModel):
    """Summary of a challenge for listing."""

    id: str
    title: str
    type: ChallengeType
    status: ChallengeStatus
    start_date: datetime
    end_date: datetime
    participant_count: int
    goal_count: int
    max_participants: Optional[int] = None

    model_config = {"from_attributes": True}


class LeaderboardEntry(BaseModel):
    """One ranked participant."""

    rank: int
    user_id: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    progress: int
    completed: bool


class Leaderboard(BaseModel):
    """Ranked participants of a challenge."""

    challenge_id: str
    rankings: list[LeaderboardEntry]


class RewardClaimResponse(BaseModel):
    """A claimed reward."""

    id: str
    challenge_id: str
    reward_id: str
    user_id: str
    claimed_at: datetime

    model_config = {"from_attributes": True}


class TeamResponse(BaseModel):
    """A team with its members and combined progress."""

    id: str
    challenge_id: str
    name: str
    progress: int
    member_count: int
    members: list[ParticipantResponse] = Field(default_factory=list)
    created_at: datetime

    model_config = {"from_attributes": True}


class TeamLeaderboardEntry(BaseModel):
    """One ranked team."""

    rank: int
    team_id: str
    name: str
    progress: int
    member_count: int


class TeamLeaderboard(BaseModel):
    """Ranked teams of a collaborative challenge."""

    challenge_id: str
    rankings: list[TeamLeaderboardEntry]


class ProgressHistoryEntry(BaseModel):
    """One progress report, oldest first in listings."""

    timestamp: datetime = Field(validation_alias="recorded_at")
    goal_id: str
    value: float
    progress: int
    milestone: Optional[str] = None

    model_config = {"from_attributes": True}
