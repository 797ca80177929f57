"""Pydantic schemas for user profiles and statistics."""

import math
from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import AliasChoices, BaseModel, Field, HttpUrl


class UserStats(BaseModel):
    """Snapshot of a user's gameplay statistics.

    Every field is optional; an absent value fails any rule that reads it.
    """

    model_config = {"populate_by_name": True}

    completed_games: Optional[float] = Field(
        None, validation_alias=AliasChoices("completed_games", "completedGames")
    )
    achievements: Optional[float] = None
    playtime: Optional[float] = None  # hours
    level: Optional[float] = None
    score: Optional[float] = None

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "UserStats":
        """Build from an untyped mapping, dropping values that are not numbers."""
        if not data:
            return cls()

        def pick(*keys: str) -> Optional[float]:
            for key in keys:
                value = data.get(key)
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    continue
                if math.isnan(value):
                    continue
                return float(value)
            return None

        return cls(
            completed_games=pick("completed_games", "completedGames"),
            achievements=pick("achievements"),
            playtime=pick("playtime"),
            level=pick("level"),
            score=pick("score"),
        )


class UserStatsUpdate(BaseModel):
    """Partial statistics update. Omitted fields are left unchanged."""

    model_config = {"populate_by_name": True}

    completed_games: Optional[float] = Field(
        None,
        ge=0,
        allow_inf_nan=False,
        validation_alias=AliasChoices("completed_games", "completedGames"),
    )
    achievements: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    playtime: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    level: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    score: Optional[float] = Field(None, ge=0, allow_inf_nan=False)


class ProfileCreate(BaseModel):
    """Schema for creating a profile."""

    username: str = Field(..., min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_-]+$")
    avatar_url: Optional[HttpUrl] = None


class ProfileResponse(BaseModel):
    """Schema for profile responses."""

    id: str
    username: str
    avatar_url: Optional[str] = None
    stats: UserStats
    created_at: datetime

    model_config = {"from_attributes": True}
