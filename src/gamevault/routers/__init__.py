"""HTTP API blueprints."""

from .challenges import challenges_bp
from .profiles import profiles_bp

__all__ = ["challenges_bp", "profiles_bp"]
