"""Application error hierarchy.

Every error carries the HTTP status it maps to so the web layer can render
the ``{"error": ..., "details": ...}`` envelope without a lookup table.
"""

import builtins
from typing import Any, Optional

from pydantic import BaseModel


class FieldError(BaseModel):
    """One violated field and the reason."""

    field: str
    message: str


class GameVaultError(Exception):
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Any] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code:
            self.status_code = status_code


class ChallengeValidationError(GameVaultError, ValueError):
    """Payload failed schema validation. ``errors`` lists every failure."""

    status_code = 400

    def __init__(self, errors: list[FieldError], message: str = "Validation failed"):
        super().__init__(message, details=[e.model_dump() for e in errors])
        self.errors = errors


class ChallengeStateError(GameVaultError, ValueError):
    """Operation not allowed in the challenge's current state."""

    status_code = 400


class AuthenticationError(GameVaultError):
    status_code = 401


class PermissionDeniedError(GameVaultError, builtins.PermissionError):
    status_code = 403


class RulesNotMetError(PermissionDeniedError):
    """User statistics do not satisfy the challenge rules."""

    def __init__(self, failing_rules: list[str]):
        super().__init__(
            "You do not meet the requirements for this challenge",
            details={"failing_rules": failing_rules},
        )
        self.failing_rules = failing_rules


class NotFoundError(GameVaultError, LookupError):
    status_code = 404


class ConflictError(GameVaultError):
    status_code = 409


class ConfigurationError(GameVaultError):
    """Settings failed ``Config.validate``. ``details`` lists each problem."""

    def __init__(self, errors: list[str]):
        super().__init__("Invalid configuration", details=errors)
        self.errors = errors
