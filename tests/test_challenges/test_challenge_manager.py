"""Tests for ChallengeManager."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from gamevault.challenges import ChallengeManager, ChallengeStatus, ChallengeType
from gamevault.challenges.models import ChallengeParticipant, GoalProgress
from gamevault.db.models import utc_now
from gamevault.errors import (
    ChallengeStateError,
    ChallengeValidationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    RulesNotMetError,
)
from gamevault.profiles.schemas import UserStatsUpdate


def mark_progress(db, challenge_id, user_id, values):
    """Store per-goal progress directly, bypassing the active-window check."""
    with db.get_session() as session:
        participant = session.execute(
            select(ChallengeParticipant).where(
                ChallengeParticipant.challenge_id == challenge_id,
                ChallengeParticipant.user_id == user_id,
            )
        ).scalar_one()
        for goal_id, value in values.items():
            participant.goal_progress.append(GoalProgress(goal_id=goal_id, progress=value))
        participant.progress = 100
        participant.completed = True


class TestChallengeCrud:
    """Tests for creating, reading, updating and deleting challenges."""

    def test_create_challenge(self, manager, alice, challenge_payload):
        """Test creating a challenge with goals, rewards and rules."""
        challenge_payload["rules"] = ["Be nice to others"]
        challenge = manager.create_challenge(alice.id, challenge_payload)

        assert challenge.id is not None
        assert challenge.creator_id == alice.id
        assert challenge.type == ChallengeType.COLLABORATIVE
        assert challenge.status == ChallengeStatus.ACTIVE
        assert [g.target for g in challenge.goals] == [10, 20]
        assert all(g.id for g in challenge.goals)
        assert challenge.rewards[0].name == "Backlog Buster"
        assert challenge.rules == ["Be nice to others"]
        assert challenge.participants == []

    def test_create_status_from_dates(self, manager, alice, make_payload):
        upcoming = manager.create_challenge(alice.id, make_payload(start_in_days=2))
        ended = manager.create_challenge(alice.id, make_payload(start_in_days=-10, duration_days=5))

        assert upcoming.status == ChallengeStatus.UPCOMING
        assert ended.status == ChallengeStatus.COMPLETED

    def test_create_invalid_payload(self, manager, alice, make_payload):
        with pytest.raises(ChallengeValidationError) as exc_info:
            manager.create_challenge(alice.id, make_payload(duration_days=-1))

        assert exc_info.value.errors[0].field == "end_date"
        assert manager.list_challenges() == []

    def test_create_unknown_creator(self, manager, db, challenge_payload):
        with pytest.raises(NotFoundError):
            manager.create_challenge("no-such-user", challenge_payload)

    def test_get_challenge(self, manager, alice, challenge_payload):
        created = manager.create_challenge(alice.id, challenge_payload)

        fetched = manager.get_challenge(created.id)

        assert fetched is not None
        assert fetched.title == created.title
        assert [g.id for g in fetched.goals] == [g.id for g in created.goals]

    def test_get_challenge_not_found(self, manager):
        assert manager.get_challenge("missing") is None

    def test_list_challenges(self, manager, alice, make_payload):
        manager.create_challenge(alice.id, make_payload(title="Active one"))
        manager.create_challenge(alice.id, make_payload(title="Upcoming one", start_in_days=3))

        assert len(manager.list_challenges()) == 2

        upcoming = manager.list_challenges(status=ChallengeStatus.UPCOMING)
        assert [c.title for c in upcoming] == ["Upcoming one"]
        assert upcoming[0].goal_count == 2
        assert upcoming[0].participant_count == 0

    def test_list_newest_start_first(self, manager, alice, make_payload):
        manager.create_challenge(alice.id, make_payload(title="Earlier", start_in_days=-5))
        manager.create_challenge(alice.id, make_payload(title="Later", start_in_days=-1))

        assert [c.title for c in manager.list_challenges()] == ["Later", "Earlier"]

    def test_list_for_participant(self, manager, alice, bob, make_payload):
        joined = manager.create_challenge(alice.id, make_payload(title="Joined"))
        manager.create_challenge(alice.id, make_payload(title="Not joined"))
        manager.join_challenge(joined.id, bob.id)

        mine = manager.list_challenges(user_id=bob.id)

        assert [c.title for c in mine] == ["Joined"]
        assert mine[0].participant_count == 1

    def test_update_challenge(self, manager, alice, challenge_payload):
        created = manager.create_challenge(alice.id, challenge_payload)

        updated = manager.update_challenge(
            created.id,
            alice.id,
            {"title": "Renamed Sprint", "rules": ["Reach level 2"], "max_participants": 10},
        )

        assert updated.title == "Renamed Sprint"
        assert updated.description == created.description
        assert updated.rules == ["Reach level 2"]
        assert updated.max_participants == 10

    def test_update_ignores_type(self, manager, alice, challenge_payload):
        created = manager.create_challenge(alice.id, challenge_payload)

        updated = manager.update_challenge(
            created.id, alice.id, {"type": "competitive", "title": "Still collaborative"}
        )

        assert updated.type == ChallengeType.COLLABORATIVE
        assert manager.get_challenge(created.id).type == ChallengeType.COLLABORATIVE

    def test_update_by_other_user(self, manager, alice, bob, challenge_payload):
        created = manager.create_challenge(alice.id, challenge_payload)

        with pytest.raises(PermissionDeniedError):
            manager.update_challenge(created.id, bob.id, {"title": "Hijacked"})

        assert manager.get_challenge(created.id).title == created.title

    def test_update_checks_merged_dates(self, manager, alice, challenge_payload):
        """A lone end date is compared with the stored start date."""
        created = manager.create_challenge(alice.id, challenge_payload)
        too_early = created.start_date - timedelta(hours=1)

        with pytest.raises(ChallengeValidationError) as exc_info:
            manager.update_challenge(created.id, alice.id, {"end_date": too_early.isoformat()})

        assert [e.field for e in exc_info.value.errors] == ["end_date"]

    def test_update_checks_merged_participant_bounds(self, manager, alice, make_payload):
        created = manager.create_challenge(alice.id, make_payload(min_participants=4))

        with pytest.raises(ChallengeValidationError) as exc_info:
            manager.update_challenge(created.id, alice.id, {"max_participants": 2})

        assert [e.field for e in exc_info.value.errors] == ["max_participants"]

    def test_update_goals_before_start(self, manager, alice, make_payload):
        created = manager.create_challenge(alice.id, make_payload(start_in_days=2))

        updated = manager.update_challenge(
            created.id, alice.id, {"goals": [{"type": "reach_level", "target": 5}]}
        )

        assert len(updated.goals) == 1
        assert updated.goals[0].target == 5

    def test_update_goals_after_start(self, manager, alice, challenge_payload):
        created = manager.create_challenge(alice.id, challenge_payload)

        with pytest.raises(ChallengeStateError):
            manager.update_challenge(
                created.id, alice.id, {"goals": [{"type": "reach_level", "target": 5}]}
            )

    def test_update_start_date_after_start(self, manager, alice, challenge_payload):
        """Moving the start back into the future would reopen goal edits."""
        created = manager.create_challenge(alice.id, challenge_payload)
        later = utc_now() + timedelta(days=2)

        with pytest.raises(ChallengeStateError):
            manager.update_challenge(created.id, alice.id, {"start_date": later.isoformat()})

        stored = manager.get_challenge(created.id)
        assert stored.start_date == created.start_date
        assert stored.status == ChallengeStatus.ACTIVE

    def test_update_unchanged_start_date_after_start(self, manager, alice, challenge_payload):
        created = manager.create_challenge(alice.id, challenge_payload)

        updated = manager.update_challenge(
            created.id,
            alice.id,
            {"start_date": created.start_date.isoformat(), "title": "Same start"},
        )

        assert updated.title == "Same start"
        assert updated.start_date == created.start_date

    def test_update_start_date_before_start(self, manager, alice, make_payload):
        created = manager.create_challenge(alice.id, make_payload(start_in_days=2))
        earlier = created.start_date - timedelta(days=1)

        updated = manager.update_challenge(
            created.id, alice.id, {"start_date": earlier.isoformat()}
        )

        assert updated.start_date == earlier

    def test_update_max_below_participant_count(self, manager, alice, bob, challenge_payload):
        created = manager.create_challenge(alice.id, challenge_payload)
        manager.join_challenge(created.id, alice.id)
        manager.join_challenge(created.id, bob.id)

        with pytest.raises(ChallengeValidationError) as exc_info:
            manager.update_challenge(created.id, alice.id, {"max_participants": 1})

        assert [e.field for e in exc_info.value.errors] == ["max_participants"]
        assert "(2)" in exc_info.value.errors[0].message
        assert manager.get_challenge(created.id).max_participants is None

    def test_update_max_equal_to_participant_count(self, manager, alice, bob, challenge_payload):
        created = manager.create_challenge(alice.id, challenge_payload)
        manager.join_challenge(created.id, bob.id)

        updated = manager.update_challenge(created.id, alice.id, {"max_participants": 1})

        assert updated.max_participants == 1

    def test_replacing_goals_resets_participants(self, manager, db, alice, bob, make_payload):
        """Progress on removed goals is dropped and aggregates are recomputed."""
        created = manager.create_challenge(alice.id, make_payload(start_in_days=2))
        manager.join_challenge(created.id, bob.id)
        mark_progress(db, created.id, bob.id, {g.id: g.target for g in created.goals})

        manager.update_challenge(
            created.id, alice.id, {"goals": [{"type": "reach_level", "target": 5}]}
        )

        entry = manager.get_leaderboard(created.id).rankings[0]
        assert entry.progress == 0
        assert entry.completed is False
        with db.get_session() as session:
            assert session.execute(select(GoalProgress)).scalars().all() == []
        with pytest.raises(ChallengeStateError):
            manager.claim_reward(created.id, bob.id, created.rewards[0].id)

    def test_adding_goal_recomputes_participants(self, manager, db, alice, bob, make_payload):
        created = manager.create_challenge(alice.id, make_payload(start_in_days=2))
        manager.join_challenge(created.id, bob.id)
        mark_progress(db, created.id, bob.id, {g.id: g.target for g in created.goals})

        manager.add_goal(created.id, alice.id, {"type": "score_points", "target": 500})

        entry = manager.get_leaderboard(created.id).rankings[0]
        assert entry.progress == 66
        assert entry.completed is False

    def test_update_not_found(self, manager, alice):
        with pytest.raises(NotFoundError):
            manager.update_challenge("missing", alice.id, {"title": "Nothing"})

    def test_delete_challenge(self, manager, alice, bob, challenge_payload):
        created = manager.create_challenge(alice.id, challenge_payload)
        manager.join_challenge(created.id, bob.id)

        assert manager.delete_challenge(created.id, alice.id) is True
        assert manager.get_challenge(created.id) is None
        assert manager.list_challenges(user_id=bob.id) == []

    def test_delete_by_other_user(self, manager, alice, bob, challenge_payload):
        created = manager.create_challenge(alice.id, challenge_payload)

        with pytest.raises(PermissionDeniedError):
            manager.delete_challenge(created.id, bob.id)

        assert manager.get_challenge(created.id) is not None

    def test_add_goal(self, manager, alice, make_payload):
        created = manager.create_challenge(alice.id, make_payload(start_in_days=1))

        goal = manager.add_goal(created.id, alice.id, {"type": "score_points", "target": 500})

        assert goal.target == 500
        assert [g.id for g in manager.get_challenge(created.id).goals][-1] == goal.id

    def test_add_goal_after_start(self, manager, alice, challenge_payload):
        created = manager.create_challenge(alice.id, challenge_payload)

        with pytest.raises(ChallengeStateError):
            manager.add_goal(created.id, alice.id, {"type": "score_points", "target": 500})

    def test_add_invalid_goal(self, manager, alice, make_payload):
        created = manager.create_challenge(alice.id, make_payload(start_in_days=1))

        with pytest.raises(ChallengeValidationError) as exc_info:
            manager.add_goal(created.id, alice.id, {"type": "score_points", "target": -1})

        assert exc_info.value.errors[0].field == "target"


class TestParticipation:
    """Tests for joining and leaving challenges."""

    def test_join(self, manager, alice, bob, challenge_payload):
        created = manager.create_challenge(alice.id, challenge_payload)

        participant = manager.join_challenge(created.id, bob.id)

        assert participant.user_id == bob.id
        assert participant.username == "bob"
        assert participant.progress == 0
        assert participant.completed is False
        assert [p.user_id for p in manager.get_challenge(created.id).participants] == [bob.id]

    def test_join_twice(self, manager, alice, bob, challenge_payload):
        created = manager.create_challenge(alice.id, challenge_payload)
        manager.join_challenge(created.id, bob.id)

        with pytest.raises(ConflictError):
            manager.join_challenge(created.id, bob.id)

    def test_join_full_challenge(self, manager, alice, bob, make_payload):
        created = manager.create_challenge(alice.id, make_payload(max_participants=1))
        manager.join_challenge(created.id, alice.id)

        with pytest.raises(ChallengeStateError):
            manager.join_challenge(created.id, bob.id)

    def test_join_ended_challenge(self, manager, alice, bob, make_payload):
        created = manager.create_challenge(alice.id, make_payload(start_in_days=-10, duration_days=5))

        with pytest.raises(ChallengeStateError):
            manager.join_challenge(created.id, bob.id)

    def test_join_upcoming_challenge(self, manager, alice, bob, make_payload):
        created = manager.create_challenge(alice.id, make_payload(start_in_days=2))
        assert manager.join_challenge(created.id, bob.id).user_id == bob.id

    def test_join_missing_challenge(self, manager, bob):
        with pytest.raises(NotFoundError):
            manager.join_challenge("missing", bob.id)

    def test_join_requires_rules(self, manager, profiles, alice, bob, make_payload):
        created = manager.create_challenge(
            alice.id, make_payload(rules=["Complete 1 game", "Be nice to others"])
        )

        with pytest.raises(RulesNotMetError) as exc_info:
            manager.join_challenge(created.id, bob.id)

        assert exc_info.value.failing_rules == ["Complete 1 game"]
        assert exc_info.value.status_code == 403

        profiles.update_stats(bob.id, UserStatsUpdate(completed_games=1))
        assert manager.join_challenge(created.id, bob.id).user_id == bob.id

    def test_leave(self, manager, alice, bob, challenge_payload):
        created = manager.create_challenge(alice.id, challenge_payload)
        manager.join_challenge(created.id, bob.id)
        manager.update_goal_progress(created.id, bob.id, created.goals[0].id, 5)

        assert manager.leave_challenge(created.id, bob.id) is True
        assert manager.get_leaderboard(created.id).rankings == []

    def test_rejoin_starts_from_zero(self, manager, alice, bob, challenge_payload):
        created = manager.create_challenge(alice.id, challenge_payload)
        manager.join_challenge(created.id, bob.id)
        manager.update_goal_progress(created.id, bob.id, created.goals[0].id, 10)
        manager.leave_challenge(created.id, bob.id)

        manager.join_challenge(created.id, bob.id)

        goals = manager.get_goals_with_progress(created.id, bob.id)
        assert [g.progress for g in goals] == [0, 0]

    def test_leave_without_joining(self, manager, alice, bob, challenge_payload):
        created = manager.create_challenge(alice.id, challenge_payload)

        with pytest.raises(NotFoundError):
            manager.leave_challenge(created.id, bob.id)


class TestGoalProgress:
    """Tests for recording progress and computing the aggregate."""

    @pytest.fixture
    def joined(self, manager, alice, bob, challenge_payload):
        """Active challenge (targets 10 and 20) that bob has joined."""
        challenge = manager.create_challenge(alice.id, challenge_payload)
        manager.join_challenge(challenge.id, bob.id)
        return challenge

    def test_progress_aggregates(self, manager, bob, joined):
        first, second = joined.goals

        assert manager.update_goal_progress(joined.id, bob.id, first.id, 5).progress == 25
        assert manager.update_goal_progress(joined.id, bob.id, first.id, 10).progress == 50

        participant = manager.update_goal_progress(joined.id, bob.id, second.id, 20)
        assert participant.progress == 100
        assert participant.completed is True

    def test_progress_replaces_previous_value(self, manager, bob, joined):
        first = joined.goals[0]
        manager.update_goal_progress(joined.id, bob.id, first.id, 10)

        participant = manager.update_goal_progress(joined.id, bob.id, first.id, 2)

        assert participant.progress == 10
        assert participant.completed is False

    def test_overshoot_is_capped(self, manager, bob, joined):
        first = joined.goals[0]
        assert manager.update_goal_progress(joined.id, bob.id, first.id, 1000).progress == 50

    def test_goals_with_progress(self, manager, bob, joined):
        first, second = joined.goals
        manager.update_goal_progress(joined.id, bob.id, second.id, 5)

        goals = manager.get_goals_with_progress(joined.id, bob.id)

        assert [(g.id, g.progress, g.percent) for g in goals] == [
            (first.id, 0, 0),
            (second.id, 5, 25),
        ]

    def test_goals_for_non_participant(self, manager, alice, joined):
        goals = manager.get_goals_with_progress(joined.id, alice.id)
        assert [g.percent for g in goals] == [0, 0]

    def test_unknown_goal(self, manager, bob, joined):
        with pytest.raises(NotFoundError):
            manager.update_goal_progress(joined.id, bob.id, "missing-goal", 1)

    def test_negative_progress(self, manager, bob, joined):
        with pytest.raises(ChallengeValidationError):
            manager.update_goal_progress(joined.id, bob.id, joined.goals[0].id, -1)

    def test_non_participant(self, manager, alice, joined):
        with pytest.raises(NotFoundError):
            manager.update_goal_progress(joined.id, alice.id, joined.goals[0].id, 1)

    def test_upcoming_challenge(self, manager, alice, bob, make_payload):
        created = manager.create_challenge(alice.id, make_payload(start_in_days=1))
        manager.join_challenge(created.id, bob.id)

        with pytest.raises(ChallengeStateError):
            manager.update_goal_progress(created.id, bob.id, created.goals[0].id, 1)


class TestProgressHistory:
    """Tests for the per-participant progress history."""

    @pytest.fixture
    def joined(self, manager, alice, bob, challenge_payload):
        challenge = manager.create_challenge(alice.id, challenge_payload)
        manager.join_challenge(challenge.id, bob.id)
        return challenge

    def test_every_report_is_recorded(self, manager, bob, joined):
        first, second = joined.goals
        manager.update_goal_progress(joined.id, bob.id, first.id, 5)
        manager.update_goal_progress(joined.id, bob.id, second.id, 20)
        manager.update_goal_progress(joined.id, bob.id, first.id, 10)

        history = manager.get_progress_history(joined.id, bob.id)

        assert [h.goal_id for h in history] == [first.id, second.id, first.id]
        assert [h.value for h in history] == [5, 20, 10]
        assert [h.progress for h in history] == [25, 75, 100]
        assert [h.milestone for h in history] == [
            "25% complete",
            "75% complete",
            "Challenge completed",
        ]
        assert all(h.timestamp.tzinfo is not None for h in history)

    def test_no_milestone_without_crossing(self, manager, bob, joined):
        first = joined.goals[0]
        manager.update_goal_progress(joined.id, bob.id, first.id, 1)
        manager.update_goal_progress(joined.id, bob.id, first.id, 2)

        history = manager.get_progress_history(joined.id, bob.id)

        assert [h.milestone for h in history] == [None, None]

    def test_filter_by_goal(self, manager, bob, joined):
        first, second = joined.goals
        manager.update_goal_progress(joined.id, bob.id, first.id, 3)
        manager.update_goal_progress(joined.id, bob.id, second.id, 4)

        history = manager.get_progress_history(joined.id, bob.id, goal_id=second.id)

        assert [h.value for h in history] == [4]

    def test_unknown_goal(self, manager, bob, joined):
        with pytest.raises(NotFoundError):
            manager.get_progress_history(joined.id, bob.id, goal_id="missing-goal")

    def test_non_participant(self, manager, alice, joined):
        assert manager.get_progress_history(joined.id, alice.id) == []

    def test_leaving_discards_history(self, manager, bob, joined):
        manager.update_goal_progress(joined.id, bob.id, joined.goals[0].id, 5)
        manager.leave_challenge(joined.id, bob.id)
        manager.join_challenge(joined.id, bob.id)

        assert manager.get_progress_history(joined.id, bob.id) == []


class TestLeaderboard:
    """Tests for leaderboard ranking."""

    def test_ranked_by_progress(self, manager, profiles, alice, bob, challenge_payload):
        from gamevault.profiles.schemas import ProfileCreate

        carol = profiles.create_profile(ProfileCreate(username="carol"))
        challenge = manager.create_challenge(alice.id, challenge_payload)
        for user in (alice, bob, carol):
            manager.join_challenge(challenge.id, user.id)

        manager.update_goal_progress(challenge.id, bob.id, challenge.goals[0].id, 10)
        manager.update_goal_progress(challenge.id, carol.id, challenge.goals[0].id, 5)

        board = manager.get_leaderboard(challenge.id)

        assert board.challenge_id == challenge.id
        assert [(e.rank, e.username, e.progress) for e in board.rankings] == [
            (1, "bob", 50),
            (2, "carol", 25),
            (3, "alice", 0),
        ]

    def test_ties_keep_join_order(self, manager, alice, bob, challenge_payload):
        challenge = manager.create_challenge(alice.id, challenge_payload)
        manager.join_challenge(challenge.id, alice.id)
        manager.join_challenge(challenge.id, bob.id)

        board = manager.get_leaderboard(challenge.id)

        assert [e.username for e in board.rankings] == ["alice", "bob"]

    def test_limit(self, manager, alice, bob, challenge_payload):
        challenge = manager.create_challenge(alice.id, challenge_payload)
        manager.join_challenge(challenge.id, alice.id)
        manager.join_challenge(challenge.id, bob.id)

        assert len(manager.get_leaderboard(challenge.id, limit=1).rankings) == 1

    def test_default_limit(self, db, alice, bob, challenge_payload):
        manager = ChallengeManager(db, leaderboard_limit=1)
        challenge = manager.create_challenge(alice.id, challenge_payload)
        manager.join_challenge(challenge.id, alice.id)
        manager.join_challenge(challenge.id, bob.id)

        assert len(manager.get_leaderboard(challenge.id).rankings) == 1

    def test_missing_challenge(self, manager):
        with pytest.raises(NotFoundError):
            manager.get_leaderboard("missing")


class TestRewards:
    """Tests for claiming rewards."""

    @pytest.fixture
    def challenge(self, manager, alice, bob, challenge_payload):
        challenge = manager.create_challenge(alice.id, challenge_payload)
        manager.join_challenge(challenge.id, bob.id)
        return challenge

    def complete(self, manager, challenge, user_id):
        for goal in challenge.goals:
            manager.update_goal_progress(challenge.id, user_id, goal.id, goal.target)

    def test_claim_after_completion(self, manager, bob, challenge):
        self.complete(manager, challenge, bob.id)
        reward = challenge.rewards[0]

        claim = manager.claim_reward(challenge.id, bob.id, reward.id)

        assert claim.reward_id == reward.id
        assert claim.user_id == bob.id

    def test_claim_twice(self, manager, bob, challenge):
        self.complete(manager, challenge, bob.id)
        reward = challenge.rewards[0]
        manager.claim_reward(challenge.id, bob.id, reward.id)

        with pytest.raises(ConflictError):
            manager.claim_reward(challenge.id, bob.id, reward.id)

    def test_claim_before_completion(self, manager, bob, challenge):
        with pytest.raises(ChallengeStateError):
            manager.claim_reward(challenge.id, bob.id, challenge.rewards[0].id)

    def test_claim_by_non_participant(self, manager, alice, challenge):
        with pytest.raises(PermissionDeniedError):
            manager.claim_reward(challenge.id, alice.id, challenge.rewards[0].id)

    def test_claim_unknown_reward(self, manager, bob, challenge):
        with pytest.raises(NotFoundError):
            manager.claim_reward(challenge.id, bob.id, "missing-reward")


class TestRefreshStatuses:
    """Tests for status maintenance."""

    def test_refresh(self, manager, alice, make_payload):
        manager.create_challenge(alice.id, make_payload(start_in_days=1, duration_days=2))
        manager.create_challenge(alice.id, make_payload())

        assert manager.refresh_statuses() == 0
        assert manager.refresh_statuses(now=utc_now() + timedelta(days=2)) == 1

    def test_refresh_to_completed(self, manager, alice, make_payload):
        manager.create_challenge(alice.id, make_payload())

        assert manager.refresh_statuses(now=utc_now() + timedelta(days=365)) == 1
