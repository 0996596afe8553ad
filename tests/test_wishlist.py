"""Tests for participant wishlists."""

import pytest

from src.draft_engine.errors import ErrorCode, PreconditionError, ValidationError
from src.draft_engine.wishlist import wishlist_owner
from tests.helpers import due_user, team_of


class TestWishlistEdits:
    def test_add_appends_with_catalog_cost(self, wishlists, make_draft):
        draft_id, users = make_draft(team_count=2)
        wishlists.add_item(draft_id, users[1], "charlie")
        item = wishlists.add_item(draft_id, users[1], "alpha")
        assert item.priority == 2
        assert item.cost == 10
        assert item.entity_name == "Alpha"
        assert [i.entity_id for i in wishlists.get_wishlist(draft_id, users[1])] == [
            "charlie",
            "alpha",
        ]

    def test_illegal_entity_rejected(self, wishlists, make_draft):
        draft_id, users = make_draft(team_count=2)
        with pytest.raises(ValidationError):
            wishlists.add_item(draft_id, users[1], "banned")

    def test_duplicate_entry_rejected(self, wishlists, make_draft):
        draft_id, users = make_draft(team_count=2)
        wishlists.add_item(draft_id, users[1], "alpha")
        with pytest.raises(PreconditionError):
            wishlists.add_item(draft_id, users[1], "alpha")

    def test_wishlists_are_per_participant(self, wishlists, make_draft):
        draft_id, users = make_draft(team_count=2)
        wishlists.add_item(draft_id, users[0], "alpha")
        assert wishlists.get_wishlist(draft_id, users[1]) == []

    def test_remove_closes_gap(self, wishlists, make_draft):
        draft_id, users = make_draft(team_count=2)
        for entity_id in ("alpha", "bravo", "charlie"):
            wishlists.add_item(draft_id, users[1], entity_id)
        assert wishlists.remove_item(draft_id, users[1], "bravo")
        items = wishlists.get_wishlist(draft_id, users[1])
        assert [(i.entity_id, i.priority) for i in items] == [("alpha", 1), ("charlie", 2)]
        assert not wishlists.remove_item(draft_id, users[1], "bravo")

    def test_reorder(self, wishlists, make_draft):
        draft_id, users = make_draft(team_count=2)
        for entity_id in ("alpha", "bravo", "charlie"):
            wishlists.add_item(draft_id, users[1], entity_id)
        items = wishlists.reorder(draft_id, users[1], ["charlie", "alpha", "bravo"])
        assert [i.entity_id for i in items] == ["charlie", "alpha", "bravo"]

    def test_reorder_must_match(self, wishlists, make_draft):
        draft_id, users = make_draft(team_count=2)
        wishlists.add_item(draft_id, users[1], "alpha")
        with pytest.raises(PreconditionError) as exc:
            wishlists.reorder(draft_id, users[1], ["alpha", "bravo"])
        assert exc.value.code == ErrorCode.INVALID_INPUT

    def test_unknown_user(self, wishlists, make_draft):
        draft_id, _ = make_draft(team_count=2)
        with pytest.raises(PreconditionError) as exc:
            wishlists.get_wishlist(draft_id, "ghost")
        assert exc.value.code == ErrorCode.USER_NOT_IN_DRAFT


class TestWishlistSummary:
    def test_summary_against_draft_state(self, controller, wishlists, make_draft, store):
        draft_id, users = make_draft(team_count=2, start=True, budget_per_team=12)
        first = due_user(store, draft_id)
        other = next(u for u in users if u != first)
        for entity_id in ("alpha", "delta", "charlie", "echo"):
            wishlists.add_item(draft_id, other, entity_id)
        controller.make_pick(draft_id, first, "alpha", expected_turn=1)

        summary = wishlists.get_summary(draft_id, other)
        assert summary == {"total": 4, "available": 3, "affordable": 2, "top_pick": "charlie"}

    def test_spectator_summary_ignores_budget(self, controller, wishlists, make_draft, store):
        draft_id, _ = make_draft(team_count=2)
        room = store.get_draft(draft_id).room_code
        controller.join_as_spectator(room, "watcher", "Watcher")
        wishlists.add_item(draft_id, "watcher", "delta")
        assert wishlists.get_summary(draft_id, "watcher")["top_pick"] == "delta"


class TestWishlistOwner:
    def test_owner_is_team_owner(self, make_draft, store):
        draft_id, users = make_draft(team_count=2)
        snapshot = store.load_snapshot(draft_id)
        team = team_of(store, draft_id, users[1])
        assert wishlist_owner(snapshot, team).user_id == users[1]
