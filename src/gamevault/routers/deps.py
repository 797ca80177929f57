"""Helpers shared by the API blueprints."""

from functools import wraps
from typing import Any, Optional, Type, TypeVar

from flask import current_app, g, jsonify, request
from pydantic import BaseModel, ValidationError

from ..challenges.manager import ChallengeManager
from ..challenges.schemas import field_errors
from ..db.sqlite import Database
from ..errors import AuthenticationError, ChallengeValidationError, FieldError
from ..profiles.manager import ProfileManager

ModelT = TypeVar("ModelT", bound=BaseModel)


def get_database() -> Database:
    return current_app.extensions["gamevault_db"]


def profile_manager() -> ProfileManager:
    return ProfileManager(get_database())


def challenge_manager() -> ChallengeManager:
    config = current_app.config["GAMEVAULT"]
    return ChallengeManager(get_database(), leaderboard_limit=config.leaderboard_limit)


def login_required(view):
    """Resolve the caller from the ``X-User-Id`` header into ``g.user``.

    Raises:
        AuthenticationError: If the header is missing or names no profile
    """

    @wraps(view)
    def wrapped(*args, **kwargs):
        user_id = request.headers.get("X-User-Id")
        if not user_id:
            raise AuthenticationError("Authentication required")

        profile = profile_manager().get_profile(user_id)
        if not profile:
            raise AuthenticationError("Unknown user")

        g.user = profile
        return view(*args, **kwargs)

    return wrapped


def json_body() -> Any:
    """Decoded JSON body.

    Raises:
        ChallengeValidationError: If the body is missing or not JSON
    """
    data = request.get_json(silent=True)
    if data is None:
        raise ChallengeValidationError(
            [FieldError(field="body", message="Request body must be valid JSON")]
        )
    return data


def parse_body(model: Type[ModelT]) -> ModelT:
    """Validate the JSON body against ``model``."""
    try:
        return model.model_validate(json_body())
    except ValidationError as e:
        raise ChallengeValidationError(field_errors(e)) from e


def int_arg(name: str, minimum: int, maximum: int) -> Optional[int]:
    """Optional bounded integer query parameter."""
    raw = request.args.get(name)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        value = None
    if value is None or not minimum <= value <= maximum:
        raise ChallengeValidationError(
            [FieldError(field=name, message=f"Must be an integer from {minimum} to {maximum}")]
        )
    return value


def bool_arg(name: str) -> bool:
    return request.args.get(name, "false").lower() in ("1", "true", "yes")


def _to_json(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, list):
        return [_to_json(item) for item in data]
    return data


def envelope(data: Any, status_code: int = 200):
    """Success envelope."""
    return jsonify({"data": _to_json(data)}), status_code
