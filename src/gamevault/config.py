"""Configuration management for gamevault.

Loads configuration from environment variables and provides defaults.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

VALID_ENVS = ("development", "production")


@dataclass
class Config:
    """Application configuration."""

    # Database
    db_path: Path

    # Logging
    log_level: str
    env: str

    # HTTP surface
    api_prefix: str

    # Leaderboards
    leaderboard_limit: int

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "GAMEVAULT_DB_PATH",
            str(Path.home() / ".gamevault" / "gamevault.db"),
        )
        db_path = Path(db_path_str).expanduser()

        return cls(
            db_path=db_path,
            log_level=os.environ.get("GAMEVAULT_LOG_LEVEL", "INFO").upper(),
            env=os.environ.get("GAMEVAULT_ENV", "development").lower(),
            api_prefix=os.environ.get("GAMEVAULT_API_PREFIX", "/api").rstrip("/"),
            leaderboard_limit=int(os.environ.get("GAMEVAULT_LEADERBOARD_LIMIT", "50")),
        )

    @property
    def is_memory_db(self) -> bool:
        return str(self.db_path) == ":memory:"

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.env not in VALID_ENVS:
            errors.append(
                f"GAMEVAULT_ENV must be one of {', '.join(VALID_ENVS)}, got '{self.env}'"
            )

        if not isinstance(logging.getLevelName(self.log_level), int):
            errors.append(f"Unknown log level: {self.log_level}")

        if self.leaderboard_limit < 1:
            errors.append("GAMEVAULT_LEADERBOARD_LIMIT must be at least 1")

        # Check database directory is writable
        if not self.is_memory_db and not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        return errors


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
