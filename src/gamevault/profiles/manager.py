"""Profile manager for user and statistics operations."""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from ..db.sqlite import Database, get_db
from ..errors import ConflictError, NotFoundError
from .models import Profile
from .schemas import ProfileCreate, ProfileResponse, UserStats, UserStatsUpdate

logger = logging.getLogger(__name__)


class ProfileManager:
    """Manages profiles and their statistics snapshots."""

    def __init__(self, db: Optional[Database] = None):
        """Initialize profile manager.

        Args:
            db: Database instance
        """
        self.db = db or get_db()

    def create_profile(self, data: ProfileCreate) -> ProfileResponse:
        """Create a new profile.

        Raises:
            ConflictError: If the username is taken (case-insensitive)
        """
        with self.db.get_session() as session:
            taken = session.execute(
                select(Profile.id).where(func.lower(Profile.username) == data.username.lower())
            ).first()
            if taken:
                raise ConflictError(f"Username '{data.username}' is already taken")

            profile = Profile(
                username=data.username,
                avatar_url=str(data.avatar_url) if data.avatar_url else None,
            )
            session.add(profile)
            try:
                session.flush()
            except IntegrityError as e:
                raise ConflictError(f"Username '{data.username}' is already taken") from e

            logger.info("Created profile %s (%s)", profile.id, profile.username)
            return ProfileResponse.model_validate(profile)

    def get_profile(self, profile_id: str) -> Optional[ProfileResponse]:
        """Get a profile by ID, or None."""
        with self.db.get_session() as session:
            profile = session.get(Profile, profile_id)
            return ProfileResponse.model_validate(profile) if profile else None

    def get_by_username(self, username: str) -> Optional[ProfileResponse]:
        """Get a profile by username (case-insensitive), or None."""
        with self.db.get_session() as session:
            profile = session.execute(
                select(Profile).where(func.lower(Profile.username) == username.lower())
            ).scalar_one_or_none()
            return ProfileResponse.model_validate(profile) if profile else None

    def get_stats(self, profile_id: str) -> UserStats:
        """Get the statistics snapshot of a profile.

        Raises:
            NotFoundError: If the profile does not exist
        """
        with self.db.get_session() as session:
            profile = session.get(Profile, profile_id)
            if not profile:
                raise NotFoundError("Profile not found")
            return profile.stats

    def update_stats(self, profile_id: str, data: UserStatsUpdate) -> UserStats:
        """Apply a partial statistics update.

        Args:
            profile_id: Profile ID
            data: Fields to change; unset fields are kept

        Returns:
            The updated statistics

        Raises:
            NotFoundError: If the profile does not exist
        """
        with self.db.get_session() as session:
            profile = session.get(Profile, profile_id)
            if not profile:
                raise NotFoundError("Profile not found")

            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(profile, field, value)

            session.flush()
            logger.info("Updated stats for profile %s", profile_id)
            return profile.stats
