"""Tests for change notifications."""

import logging

import pytest

from src.draft_engine.errors import ValidationError
from src.draft_engine.notifications import ChangeNotifier
from tests.helpers import due_user


class TestChangeNotifier:
    def test_delivers_to_draft_subscribers_only(self):
        notifier = ChangeNotifier()
        seen, other = [], []
        notifier.subscribe("d1", seen.append)
        notifier.subscribe("d2", other.append)

        notifier.publish("d1", "pick_made", {"turn": 2})

        assert [e.event_type for e in seen] == ["pick_made"]
        assert seen[0].payload == {"turn": 2}
        assert other == []

    def test_unsubscribe(self):
        notifier = ChangeNotifier()
        seen = []
        subscription = notifier.subscribe("d1", seen.append)
        subscription.unsubscribe()
        subscription.unsubscribe()
        notifier.publish("d1", "pick_made")
        assert seen == []
        assert notifier.subscriber_count("d1") == 0

    def test_subscription_as_context_manager(self):
        notifier = ChangeNotifier()
        with notifier.subscribe("d1", lambda e: None):
            assert notifier.subscriber_count("d1") == 1
        assert notifier.subscriber_count("d1") == 0

    def test_failing_subscriber_does_not_block_others(self, caplog):
        notifier = ChangeNotifier()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        notifier.subscribe("d1", broken)
        notifier.subscribe("d1", seen.append)
        with caplog.at_level(logging.ERROR):
            notifier.publish("d1", "draft_started")
        assert len(seen) == 1
        assert "Subscriber failed" in caplog.text

    def test_close_drops_everything(self):
        notifier = ChangeNotifier()
        subscription = notifier.subscribe("d1", lambda e: None)
        notifier.close()
        assert notifier.subscriber_count("d1") == 0
        assert not subscription.active


class TestEngineEvents:
    def test_events_follow_commits(self, controller, make_draft, store, notifier):
        draft_id, _ = make_draft(team_count=2, start=True)
        seen = []
        notifier.subscribe(draft_id, seen.append)

        controller.make_pick(draft_id, due_user(store, draft_id), "alpha", expected_turn=1)

        assert [e.event_type for e in seen] == ["pick_made"]
        assert seen[0].payload["next_turn"] == 2
        # Subscribers re-read state and see the committed pick
        assert len(store.load_snapshot(draft_id).picks) == 1

    def test_failed_operation_publishes_nothing(self, controller, make_draft, store, notifier):
        draft_id, _ = make_draft(team_count=2, start=True)
        before = len(notifier.events)
        with pytest.raises(ValidationError):
            controller.make_pick(draft_id, due_user(store, draft_id), "banned", expected_turn=1)
        assert len(notifier.events) == before
