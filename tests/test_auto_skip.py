"""Tests for auto-skip - expired turns become wishlist picks or skips."""

from datetime import timedelta

from src.draft_engine.auto_skip import (
    AUTO_PICKED,
    NOOP,
    SKIPPED,
    is_turn_expired,
    remaining_time,
)
from tests.helpers import T0, due_user, team_of

EXPIRED = T0 + timedelta(seconds=61)


class TestTurnClock:
    def test_remaining_time(self, make_draft, store):
        draft_id, _ = make_draft(team_count=2, start=True, time_limit_seconds=60)
        snapshot = store.load_snapshot(draft_id)
        assert remaining_time(snapshot, T0 + timedelta(seconds=45)) == 15
        assert remaining_time(snapshot, EXPIRED) == 0
        assert not is_turn_expired(snapshot, T0 + timedelta(seconds=60))
        assert is_turn_expired(snapshot, EXPIRED)

    def test_no_clock_without_limit(self, make_draft, store):
        draft_id, _ = make_draft(team_count=2, start=True, time_limit_seconds=0)
        snapshot = store.load_snapshot(draft_id)
        assert remaining_time(snapshot, EXPIRED) is None
        assert not is_turn_expired(snapshot, EXPIRED)

    def test_no_clock_before_start(self, make_draft, store):
        draft_id, _ = make_draft(team_count=2)
        assert remaining_time(store.load_snapshot(draft_id), EXPIRED) is None


class TestHandleTimeExpired:
    def test_empty_wishlist_skips_turn(self, auto_skip, make_draft, store, notifier):
        draft_id, _ = make_draft(team_count=2, start=True, time_limit_seconds=60)
        result = auto_skip.handle_time_expired(draft_id, expected_turn=1, now=EXPIRED)

        assert result.outcome == SKIPPED
        assert result.pick is None
        assert result.next_turn == 2
        snapshot = store.load_snapshot(draft_id)
        assert snapshot.picks == []
        assert snapshot.draft.current_turn == 2
        assert snapshot.draft.turn_started_at == EXPIRED
        assert store.list_actions(draft_id)[-1].action_type == "skip"
        assert "turn_skipped" in notifier.types()

    def test_wishlist_pick_skips_taken_and_unaffordable(
        self, controller, auto_skip, wishlists, make_draft, store, notifier
    ):
        draft_id, _ = make_draft(team_count=2, start=True, time_limit_seconds=60,
                                 budget_per_team=12)
        first_user = due_user(store, draft_id)
        controller.make_pick(draft_id, first_user, "alpha", expected_turn=1, now=T0)

        second_user = due_user(store, draft_id)
        for entity_id in ("delta", "alpha", "charlie", "echo"):
            wishlists.add_item(draft_id, second_user, entity_id)

        result = auto_skip.handle_time_expired(draft_id, expected_turn=2, now=EXPIRED)

        assert result.outcome == AUTO_PICKED
        assert result.pick.entity_id == "charlie"
        assert result.pick.picked_by is None
        assert result.next_turn == 3
        assert team_of(store, draft_id, second_user).budget_remaining == 7
        assert store.list_actions(draft_id)[-1].action_type == "auto_pick"
        assert "auto_pick" in notifier.types()

    def test_nothing_viable_skips(self, controller, auto_skip, wishlists, make_draft, store):
        draft_id, _ = make_draft(team_count=2, start=True, time_limit_seconds=60,
                                 budget_per_team=12)
        user = due_user(store, draft_id)
        wishlists.add_item(draft_id, user, "delta")
        result = auto_skip.handle_time_expired(draft_id, now=EXPIRED)
        assert result.outcome == SKIPPED
        assert store.load_snapshot(draft_id).picks == []

    def test_not_expired_is_noop(self, auto_skip, make_draft, store):
        draft_id, _ = make_draft(team_count=2, start=True, time_limit_seconds=60)
        result = auto_skip.handle_time_expired(draft_id, now=T0 + timedelta(seconds=30))
        assert result.outcome == NOOP
        assert store.get_draft(draft_id).current_turn == 1

    def test_stale_turn_is_noop(self, controller, auto_skip, make_draft, store):
        draft_id, _ = make_draft(team_count=2, start=True, time_limit_seconds=60)
        controller.make_pick(draft_id, due_user(store, draft_id), "alpha", expected_turn=1,
                             now=T0)
        result = auto_skip.handle_time_expired(draft_id, expected_turn=1, now=EXPIRED)
        assert result.outcome == NOOP
        assert result.reason == "turn changed"
        assert store.get_draft(draft_id).current_turn == 2

    def test_paused_draft_is_noop(self, controller, auto_skip, make_draft, store):
        draft_id, _ = make_draft(team_count=2, start=True, time_limit_seconds=60)
        controller.pause_draft(draft_id, "host")
        result = auto_skip.handle_time_expired(draft_id, now=EXPIRED)
        assert result.outcome == NOOP
        assert store.get_draft(draft_id).current_turn == 1

    def test_timer_disabled_is_noop(self, auto_skip, make_draft):
        draft_id, _ = make_draft(team_count=2, start=True, time_limit_seconds=0)
        assert auto_skip.handle_time_expired(draft_id, now=EXPIRED).outcome == NOOP

    def test_auction_draft_is_noop(self, auto_skip, make_draft):
        draft_id, _ = make_draft(team_count=2, start=True, draft_type="auction")
        assert auto_skip.handle_time_expired(draft_id, now=EXPIRED).outcome == NOOP

    def test_retired_draft_is_noop(self, controller, auto_skip, make_draft):
        draft_id, _ = make_draft(team_count=2, start=True, time_limit_seconds=60)
        controller.retire_draft(draft_id, "host")
        assert auto_skip.handle_time_expired(draft_id, now=EXPIRED).outcome == NOOP

    def test_last_turn_skip_completes(self, controller, auto_skip, make_draft, store):
        draft_id, _ = make_draft(team_count=2, start=True, time_limit_seconds=60,
                                 entities_per_team=1)
        controller.make_pick(draft_id, due_user(store, draft_id), "alpha", expected_turn=1,
                             now=T0)
        result = auto_skip.handle_time_expired(draft_id, now=EXPIRED)
        assert result.outcome == SKIPPED
        assert store.get_draft(draft_id).status == "completed"
