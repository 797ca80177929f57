"""SQLAlchemy models for community challenges.

Tables:
- challenges: Challenge definitions
- challenge_goals: Measurable objectives of a challenge
- challenge_rewards: Incentives granted on completion
- challenge_rules: Free-text eligibility rules
- challenge_teams: Teams within collaborative challenges
- challenge_participants: Users who joined a challenge
- challenge_participant_progress: Per-goal progress of a participant
- challenge_progress_history: Every progress report, for charts
- challenge_reward_claims: Rewards claimed by participants
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.models import Base, from_iso, generate_uuid, utc_now, utc_now_iso
from ..profiles.models import Profile
from .progress import team_progress
from .schemas import ChallengeStatus


def status_for_dates(start: datetime, end: datetime, now: Optional[datetime] = None) -> ChallengeStatus:
    """Lifecycle status of a challenge running from ``start`` to ``end``."""
    now = now or utc_now()
    if now < start:
        return ChallengeStatus.UPCOMING
    if now > end:
        return ChallengeStatus.COMPLETED
    return ChallengeStatus.ACTIVE


class Challenge(Base):
    """Challenge model - stores challenge definitions."""

    __tablename__ = "challenges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    creator_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # competitive or collaborative, never changed after creation
    type: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=ChallengeStatus.UPCOMING.value, index=True
    )

    # Time period, UTC ISO datetimes
    start_date: Mapped[str] = mapped_column(String(32), nullable=False)
    end_date: Mapped[str] = mapped_column(String(32), nullable=False)

    min_participants: Mapped[Optional[int]] = mapped_column(Integer)
    max_participants: Mapped[Optional[int]] = mapped_column(Integer)
    cover_url: Mapped[Optional[str]] = mapped_column(Text)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)
    updated_at: Mapped[str] = mapped_column(
        String(32), default=utc_now_iso, onupdate=utc_now_iso
    )

    # Relationships
    creator: Mapped["Profile"] = relationship("Profile")
    goals: Mapped[list["ChallengeGoal"]] = relationship(
        "ChallengeGoal",
        back_populates="challenge",
        cascade="all, delete-orphan",
        order_by="ChallengeGoal.position",
    )
    rewards: Mapped[list["ChallengeReward"]] = relationship(
        "ChallengeReward",
        back_populates="challenge",
        cascade="all, delete-orphan",
        order_by="ChallengeReward.position",
    )
    rules: Mapped[list["ChallengeRule"]] = relationship(
        "ChallengeRule",
        back_populates="challenge",
        cascade="all, delete-orphan",
        order_by="ChallengeRule.position",
    )
    participants: Mapped[list["ChallengeParticipant"]] = relationship(
        "ChallengeParticipant",
        back_populates="challenge",
        cascade="all, delete-orphan",
        order_by="ChallengeParticipant.joined_at",
    )
    teams: Mapped[list["ChallengeTeam"]] = relationship(
        "ChallengeTeam",
        back_populates="challenge",
        cascade="all, delete-orphan",
        order_by="ChallengeTeam.created_at",
    )

    def __repr__(self) -> str:
        return f"<Challenge(id={self.id}, title='{self.title}', status={self.status})>"

    @property
    def starts_at(self) -> datetime:
        return from_iso(self.start_date)

    @property
    def ends_at(self) -> datetime:
        return from_iso(self.end_date)

    @property
    def rule_texts(self) -> list[str]:
        return [r.rule for r in self.rules]

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    @property
    def goal_count(self) -> int:
        return len(self.goals)

    @property
    def is_full(self) -> bool:
        return (
            self.max_participants is not None
            and self.participant_count >= self.max_participants
        )

    def has_started(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= self.starts_at

    def compute_status(self, now: Optional[datetime] = None) -> ChallengeStatus:
        return status_for_dates(self.starts_at, self.ends_at, now)


class ChallengeGoal(Base):
    """One measurable objective of a challenge."""

    __tablename__ = "challenge_goals"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    challenge_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("challenges.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    target: Mapped[float] = mapped_column(Float, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    position: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)

    challenge: Mapped["Challenge"] = relationship("Challenge", back_populates="goals")

    def __repr__(self) -> str:
        return f"<ChallengeGoal(id={self.id}, type={self.type}, target={self.target})>"


class ChallengeReward(Base):
    """Incentive attached to a challenge."""

    __tablename__ = "challenge_rewards"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    challenge_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("challenges.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    badge_id: Mapped[Optional[str]] = mapped_column(String(36))
    position: Mapped[int] = mapped_column(Integer, default=0)

    challenge: Mapped["Challenge"] = relationship("Challenge", back_populates="rewards")
    claims: Mapped[list["ChallengeRewardClaim"]] = relationship(
        "ChallengeRewardClaim", back_populates="reward", cascade="all, delete-orphan"
    )


class ChallengeRule(Base):
    """Free-text eligibility rule."""

    __tablename__ = "challenge_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    challenge_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("challenges.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    rule: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0)

    challenge: Mapped["Challenge"] = relationship("Challenge", back_populates="rules")


class ChallengeParticipant(Base):
    """A user taking part in a challenge."""

    __tablename__ = "challenge_participants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    challenge_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("challenges.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    joined_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)
    team_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("challenge_teams.id", ondelete="SET NULL"), index=True
    )

    # Aggregate completion percentage, 0-100
    progress: Mapped[int] = mapped_column(Integer, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, default=False)

    challenge: Mapped["Challenge"] = relationship("Challenge", back_populates="participants")
    user: Mapped["Profile"] = relationship("Profile")
    goal_progress: Mapped[list["GoalProgress"]] = relationship(
        "GoalProgress", back_populates="participant", cascade="all, delete-orphan"
    )
    team: Mapped[Optional["ChallengeTeam"]] = relationship(
        "ChallengeTeam", back_populates="members"
    )
    history: Mapped[list["ProgressHistory"]] = relationship(
        "ProgressHistory",
        back_populates="participant",
        cascade="all, delete-orphan",
        order_by="ProgressHistory.sequence",
    )

    # One membership per user and challenge
    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_challenge_participant"),
    )

    def __repr__(self) -> str:
        return f"<ChallengeParticipant(challenge_id={self.challenge_id}, user_id={self.user_id}, progress={self.progress})>"

    @property
    def username(self) -> Optional[str]:
        return self.user.username if self.user else None

    @property
    def avatar_url(self) -> Optional[str]:
        return self.user.avatar_url if self.user else None

    def progress_map(self) -> dict[str, float]:
        """Current progress keyed by goal id."""
        return {p.goal_id: p.progress for p in self.goal_progress}


class GoalProgress(Base):
    """Accumulated progress of one participant toward one goal."""

    __tablename__ = "challenge_participant_progress"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    participant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("challenge_participants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    goal_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("challenge_goals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    progress: Mapped[float] = mapped_column(Float, default=0)
    updated_at: Mapped[str] = mapped_column(
        String(32), default=utc_now_iso, onupdate=utc_now_iso
    )

    participant: Mapped["ChallengeParticipant"] = relationship(
        "ChallengeParticipant", back_populates="goal_progress"
    )

    __table_args__ = (
        UniqueConstraint("participant_id", "goal_id", name="uq_participant_goal"),
    )


class ChallengeRewardClaim(Base):
    """A reward claimed by a participant who completed the challenge."""

    __tablename__ = "challenge_reward_claims"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    challenge_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("challenges.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reward_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("challenge_rewards.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    claimed_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)

    reward: Mapped["ChallengeReward"] = relationship("ChallengeReward", back_populates="claims")

    __table_args__ = (
        UniqueConstraint("reward_id", "user_id", name="uq_reward_claim"),
    )


class ChallengeTeam(Base):
    """A team of participants in a collaborative challenge."""

    __tablename__ = "challenge_teams"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    challenge_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("challenges.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="SET NULL")
    )
    created_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)

    challenge: Mapped["Challenge"] = relationship("Challenge", back_populates="teams")
    members: Mapped[list["ChallengeParticipant"]] = relationship(
        "ChallengeParticipant",
        back_populates="team",
        order_by="ChallengeParticipant.joined_at",
    )

    __table_args__ = (
        UniqueConstraint("challenge_id", "name", name="uq_challenge_team_name"),
    )

    def __repr__(self) -> str:
        return f"<ChallengeTeam(id={self.id}, name='{self.name}', members={len(self.members)})>"

    @property
    def member_count(self) -> int:
        return len(self.members)

    @property
    def progress(self) -> int:
        return team_progress(m.progress or 0 for m in self.members)


class ProgressHistory(Base):
    """One progress report of a participant on a goal."""

    __tablename__ = "challenge_progress_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    participant_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("challenge_participants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    goal_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("challenge_goals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Reports are numbered per participant, recorded_at can collide
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    # Reported goal value and the challenge percentage it produced
    value: Mapped[float] = mapped_column(Float, nullable=False)
    progress: Mapped[int] = mapped_column(Integer, nullable=False)
    milestone: Mapped[Optional[str]] = mapped_column(String(50))
    recorded_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)

    participant: Mapped["ChallengeParticipant"] = relationship(
        "ChallengeParticipant", back_populates="history"
    )
