"""Flask application factory.

Every response uses the same envelope: ``{"data": ...}`` on success and
``{"error": message, "details": ...}`` on failure.
"""

import logging
from typing import Any, Optional

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import Config, get_config
from .db.sqlite import Database, get_db
from .errors import ConfigurationError, GameVaultError
from .logging_setup import configure_logging
from .routers import challenges_bp, profiles_bp

logger = logging.getLogger(__name__)


def _error_response(message: str, status_code: int, details: Any = None):
    payload = {"error": message}
    if details is not None:
        payload["details"] = details
    return jsonify(payload), status_code


def create_app(db: Optional[Database] = None, config: Optional[Config] = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        db: Database to serve; defaults to the configured global database
        config: Configuration; defaults to the environment

    Returns:
        Configured Flask app

    Raises:
        ConfigurationError: If the configuration does not validate
    """
    config = config or get_config()
    errors = config.validate()
    if errors:
        raise ConfigurationError(errors)
    configure_logging(config.log_level, config.env)

    app = Flask(__name__)
    app.config["GAMEVAULT"] = config
    app.extensions["gamevault_db"] = db or get_db(str(config.db_path))

    app.register_blueprint(profiles_bp, url_prefix=f"{config.api_prefix}/profiles")
    app.register_blueprint(challenges_bp, url_prefix=f"{config.api_prefix}/challenges")

    @app.errorhandler(GameVaultError)
    def handle_gamevault_error(exc: GameVaultError):
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log(
            level, "%s %s -> %d: %s", request.method, request.path, exc.status_code, exc.message
        )
        return _error_response(exc.message, exc.status_code, exc.details)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return _error_response(exc.name, exc.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        logger.error("Unexpected error in %s %s", request.method, request.path, exc_info=exc)
        return _error_response("An unexpected error occurred", 500)

    return app
