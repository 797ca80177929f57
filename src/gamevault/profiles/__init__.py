"""User profiles module.

Provides functionality for:
- Creating profiles and looking them up
- Keeping the gameplay statistics snapshot challenge rules are checked against
"""

from .manager import ProfileManager
from .models import Profile
from .schemas import ProfileCreate, ProfileResponse, UserStats, UserStatsUpdate

__all__ = [
    "ProfileManager",
    "Profile",
    "ProfileCreate",
    "ProfileResponse",
    "UserStats",
    "UserStatsUpdate",
]
