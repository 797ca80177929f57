"""SQLAlchemy models for user profiles.

Tables:
- profiles: Users and their gameplay statistics snapshot
"""

from typing import Optional

from sqlalchemy import Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .schemas import UserStats
from ..db.models import Base, generate_uuid, utc_now_iso


class Profile(Base):
    """Profile model - a user of the vault."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    username: Mapped[str] = mapped_column(String(30), nullable=False, unique=True, index=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(Text)

    # Statistics snapshot, fed by gameplay tracking
    completed_games: Mapped[Optional[float]] = mapped_column(Float)
    achievements: Mapped[Optional[float]] = mapped_column(Float)
    playtime: Mapped[Optional[float]] = mapped_column(Float)  # hours
    level: Mapped[Optional[float]] = mapped_column(Float)
    score: Mapped[Optional[float]] = mapped_column(Float)

    created_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)
    updated_at: Mapped[str] = mapped_column(
        String(32), default=utc_now_iso, onupdate=utc_now_iso
    )

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, username='{self.username}')>"

    @property
    def stats(self) -> UserStats:
        """Statistics in the shape rule checks expect."""
        return UserStats(
            completed_games=self.completed_games,
            achievements=self.achievements,
            playtime=self.playtime,
            level=self.level,
            score=self.score,
        )
