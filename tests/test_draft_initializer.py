"""Tests for draft initializer - creating new drafts with their host team."""

import random

import pytest

from src.draft_engine.config import ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH
from src.draft_engine.draft_initializer import DraftInitializer


def _create(initializer, **overrides):
    kwargs = {
        "name": "Friday Draft",
        "host_id": "host",
        "host_name": "Host",
        "team_name": "Sharks",
    }
    kwargs.update(overrides)
    return initializer.create_draft(**kwargs)


# ── Input Validation ─────────────────────────────────────────────────

class TestInputValidation:
    def test_name_required(self, initializer):
        with pytest.raises(ValueError, match="Draft name"):
            _create(initializer, name="   ")

    def test_team_name_required(self, initializer):
        with pytest.raises(ValueError, match="Team name"):
            _create(initializer, team_name="")

    @pytest.mark.parametrize("max_teams", [1, 21])
    def test_max_teams_range(self, initializer, max_teams):
        with pytest.raises(ValueError, match="Max teams"):
            _create(initializer, max_teams=max_teams)

    def test_budget_must_be_positive(self, initializer):
        with pytest.raises(ValueError, match="Budget"):
            _create(initializer, budget_per_team=0)

    def test_entities_per_team(self, initializer):
        with pytest.raises(ValueError, match="Entities per team"):
            _create(initializer, entities_per_team=0)

    def test_invalid_draft_type(self, initializer):
        with pytest.raises(ValueError, match="Invalid draft type"):
            _create(initializer, draft_type="linear")

    def test_negative_time_limit(self, initializer):
        with pytest.raises(ValueError, match="Time limit"):
            _create(initializer, time_limit_seconds=-1)

    def test_negative_undo_limit(self, initializer):
        with pytest.raises(ValueError, match="Max undos"):
            _create(initializer, max_undos_per_team=-1)

    def test_failed_validation_writes_nothing(self, initializer, store):
        with pytest.raises(ValueError):
            _create(initializer, max_teams=1)
        assert store.list_active_draft_ids() == []


# ── Draft creation ───────────────────────────────────────────────────

class TestCreateDraft:
    def test_new_draft_in_setup(self, initializer):
        snapshot = _create(initializer)
        draft = snapshot.draft
        assert draft.status == "setup"
        assert draft.current_turn is None
        assert draft.current_round == 1
        assert draft.host_id == "host"
        assert not draft.order_shuffled

    def test_host_team_and_participant(self, initializer):
        snapshot = _create(initializer, budget_per_team=50)
        assert snapshot.team_count == 1
        team = snapshot.teams[0]
        assert team.name == "Sharks"
        assert team.draft_order == 1
        assert team.budget_remaining == 50
        host = snapshot.get_participant("host")
        assert host.is_host
        assert host.team_id == team.team_id

    def test_settings_stored(self, initializer, store):
        snapshot = _create(
            initializer,
            draft_type="auction",
            entities_per_team=3,
            time_limit_seconds=0,
            allow_undo=True,
            proxy_picking_enabled=True,
            auction_duration_seconds=45,
        )
        settings = store.get_draft(snapshot.draft.draft_id).settings
        assert settings.draft_type == "auction"
        assert settings.entities_per_team == 3
        assert settings.time_limit_seconds == 0
        assert settings.allow_undo
        assert settings.proxy_picking_enabled
        assert settings.auction_duration_seconds == 45

    def test_room_code_format(self, initializer):
        code = _create(initializer).draft.room_code
        assert len(code) == ROOM_CODE_LENGTH
        assert all(c in ROOM_CODE_ALPHABET for c in code)

    def test_room_codes_unique(self, initializer, store):
        codes = {_create(initializer).draft.room_code for _ in range(5)}
        assert len(codes) == 5

    def test_room_code_collision_retried(self, store):
        first = DraftInitializer(store, rng=random.Random(3))
        taken = _create(first).draft.room_code
        again = DraftInitializer(store, rng=random.Random(3))
        code = _create(again).draft.room_code
        assert code != taken

    def test_room_code_resolves(self, initializer, store):
        snapshot = _create(initializer)
        assert store.find_draft_id(snapshot.draft.room_code.lower()) == snapshot.draft.draft_id

    def test_create_logged(self, initializer, store):
        snapshot = _create(initializer)
        actions = store.list_actions(snapshot.draft.draft_id)
        assert [a.action_type for a in actions] == ["create"]
        assert actions[0].actor_id == "host"
