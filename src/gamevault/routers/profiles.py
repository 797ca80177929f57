"""Profile endpoints."""

from flask import Blueprint, g

from ..profiles.schemas import ProfileCreate, UserStatsUpdate
from .deps import envelope, login_required, parse_body, profile_manager

profiles_bp = Blueprint("profiles", __name__)


@profiles_bp.route("", methods=["POST"])
def create_profile():
    """Register a new profile."""
    data = parse_body(ProfileCreate)
    return envelope(profile_manager().create_profile(data), 201)


@profiles_bp.route("/me")
@login_required
def get_me():
    """Get the caller's profile and statistics."""
    return envelope(g.user)


@profiles_bp.route("/me/stats", methods=["PUT"])
@login_required
def update_my_stats():
    """Update the caller's statistics snapshot.

    Rules of challenges the caller wants to join are checked against it.
    """
    data = parse_body(UserStatsUpdate)
    return envelope(profile_manager().update_stats(g.user.id, data))
