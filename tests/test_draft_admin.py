"""Tests for host-only settings changes and budget overrides."""

import logging

import pytest

from src.draft_engine.errors import ErrorCode, PreconditionError
from tests.helpers import due_user, team_of


# ── Budget override ──────────────────────────────────────────────────

class TestAdjustBudget:
    def test_override_logged_and_recorded(self, admin, make_draft, store, caplog):
        draft_id, users = make_draft(team_count=2, start=True)
        team = team_of(store, draft_id, users[1])
        with caplog.at_level(logging.WARNING, logger="src.draft_engine.draft_admin"):
            updated = admin.adjust_budget(draft_id, "host", team.team_id, 40, reason="penalty")

        assert updated.budget_remaining == 40
        assert team_of(store, draft_id, users[1]).budget_remaining == 40
        assert "Budget override" in caplog.text

        action = store.list_actions(draft_id)[-1]
        assert action.action_type == "budget_adjusted"
        assert action.metadata["previous_budget"] == 100
        assert action.metadata["reason"] == "penalty"

    def test_negative_budget(self, admin, make_draft, store):
        draft_id, users = make_draft(team_count=2)
        team = team_of(store, draft_id, users[1])
        with pytest.raises(PreconditionError) as exc:
            admin.adjust_budget(draft_id, "host", team.team_id, -5)
        assert exc.value.code == ErrorCode.INVALID_BUDGET

    def test_host_only(self, admin, make_draft, store):
        draft_id, users = make_draft(team_count=2)
        team = team_of(store, draft_id, users[1])
        with pytest.raises(PreconditionError) as exc:
            admin.adjust_budget(draft_id, users[1], team.team_id, 50)
        assert exc.value.code == ErrorCode.HOST_ONLY

    def test_unknown_team(self, admin, make_draft):
        draft_id, _ = make_draft(team_count=2)
        with pytest.raises(PreconditionError) as exc:
            admin.adjust_budget(draft_id, "host", "missing", 50)
        assert exc.value.code == ErrorCode.TEAM_NOT_FOUND


# ── Settings ─────────────────────────────────────────────────────────

class TestTimeLimit:
    def test_applied_immediately_in_setup(self, admin, make_draft, store):
        draft_id, _ = make_draft(team_count=2, time_limit_seconds=60)
        settings = admin.set_time_limit(draft_id, "host", 30)
        assert settings.time_limit_seconds == 30
        assert settings.pending_time_limit_seconds is None
        assert store.get_draft(draft_id).settings.time_limit_seconds == 30

    def test_queued_while_active(self, admin, make_draft, store):
        draft_id, _ = make_draft(team_count=2, start=True, time_limit_seconds=60)
        settings = admin.set_time_limit(draft_id, "host", 0)
        assert settings.time_limit_seconds == 60
        assert settings.pending_time_limit_seconds == 0

    def test_negative_rejected(self, admin, make_draft):
        draft_id, _ = make_draft(team_count=2)
        with pytest.raises(PreconditionError) as exc:
            admin.set_time_limit(draft_id, "host", -1)
        assert exc.value.code == ErrorCode.INVALID_INPUT


class TestToggles:
    def test_proxy_and_undo_flags(self, admin, make_draft, store):
        draft_id, _ = make_draft(team_count=2, start=True)
        admin.set_proxy_picking(draft_id, "host", True)
        admin.set_allow_undo(draft_id, "host", True)
        settings = store.get_draft(draft_id).settings
        assert settings.proxy_picking_enabled
        assert settings.allow_undo

    def test_auction_duration(self, admin, make_draft, store):
        draft_id, _ = make_draft(team_count=2, draft_type="auction")
        admin.set_auction_duration(draft_id, "host", 15)
        assert store.get_draft(draft_id).settings.auction_duration_seconds == 15

    def test_settings_change_published(self, admin, make_draft, notifier):
        draft_id, _ = make_draft(team_count=2)
        admin.set_allow_undo(draft_id, "host", True)
        assert notifier.events[-1].event_type == "settings_changed"
        assert notifier.events[-1].payload == {"allow_undo": True}


class TestSetupOnlySettings:
    def test_entities_per_team(self, admin, make_draft, store):
        draft_id, _ = make_draft(team_count=2)
        admin.set_entities_per_team(draft_id, "host", 3)
        assert store.load_snapshot(draft_id).total_turns == 6

    def test_locked_after_start(self, admin, make_draft):
        draft_id, _ = make_draft(team_count=2, start=True)
        with pytest.raises(PreconditionError) as exc:
            admin.set_entities_per_team(draft_id, "host", 3)
        assert exc.value.code == ErrorCode.DRAFT_ALREADY_STARTED
        with pytest.raises(PreconditionError):
            admin.set_draft_type(draft_id, "host", "auction")

    def test_draft_type(self, admin, make_draft, store):
        draft_id, _ = make_draft(team_count=2)
        admin.set_draft_type(draft_id, "host", "auction")
        assert store.get_draft(draft_id).is_auction
        with pytest.raises(PreconditionError):
            admin.set_draft_type(draft_id, "host", "linear")

    def test_budget_per_team_resets_teams(self, admin, make_draft, store):
        draft_id, _ = make_draft(team_count=3)
        admin.set_budget_per_team(draft_id, "host", 250)
        snapshot = store.load_snapshot(draft_id)
        assert snapshot.draft.budget_per_team == 250
        assert all(t.budget_remaining == 250 for t in snapshot.teams)

    def test_undo_limit_resets_teams(self, admin, controller, make_draft, store):
        draft_id, _ = make_draft(team_count=2)
        settings = admin.set_max_undos_per_team(draft_id, "host", 5)
        assert settings.max_undos_per_team == 5
        snapshot = store.load_snapshot(draft_id)
        assert snapshot.draft.settings.max_undos_per_team == 5
        assert all(t.undos_remaining == 5 for t in snapshot.teams)

        outcome = controller.join_draft(snapshot.draft.room_code, "late", "Late", "Late Team")
        assert outcome.team.undos_remaining == 5
        with pytest.raises(PreconditionError) as exc:
            admin.set_max_undos_per_team(draft_id, "host", -1)
        assert exc.value.code == ErrorCode.INVALID_INPUT

    def test_max_teams_not_below_current(self, admin, make_draft, store):
        draft_id, _ = make_draft(team_count=3)
        with pytest.raises(PreconditionError) as exc:
            admin.set_max_teams(draft_id, "host", 2)
        assert exc.value.code == ErrorCode.INVALID_INPUT
        admin.set_max_teams(draft_id, "host", 3)
        assert store.get_draft(draft_id).max_teams == 3

    def test_reduced_max_teams_turns_joiners_into_spectators(
        self, admin, controller, make_draft, store
    ):
        draft_id, _ = make_draft(team_count=2)
        admin.set_max_teams(draft_id, "host", 2)
        room = store.get_draft(draft_id).room_code
        outcome = controller.join_draft(room, "late", "Late", "Late Team")
        assert outcome.participant.team_id is None


class TestBudgetAfterPicks:
    def test_override_then_pick_uses_new_budget(self, admin, controller, make_draft, store):
        draft_id, _ = make_draft(team_count=2, start=True)
        user = due_user(store, draft_id)
        team = team_of(store, draft_id, user)
        admin.adjust_budget(draft_id, "host", team.team_id, 5)
        with pytest.raises(PreconditionError) as exc:
            controller.make_pick(draft_id, user, "alpha", expected_turn=1)
        assert exc.value.code == ErrorCode.INSUFFICIENT_BUDGET
        result = controller.make_pick(draft_id, user, "charlie", expected_turn=1)
        assert result.budget_remaining == 0
