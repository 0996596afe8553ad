"""Shared fixtures for the draft engine test suite."""

import random

import pandas as pd
import pytest

from src.draft_engine.auction import AuctionManager
from src.draft_engine.auto_skip import AutoSkipHandler
from src.draft_engine.draft_admin import DraftAdmin
from src.draft_engine.draft_controller import DraftController, Joined
from src.draft_engine.draft_initializer import DraftInitializer
from src.draft_engine.draft_store import DraftStore
from src.draft_engine.notifications import ChangeNotifier
from src.draft_engine.undo import UndoManager
from src.draft_engine.validator import CATALOG_COLUMNS, FormatCatalogValidator
from src.draft_engine.wishlist import WishlistManager
from tests.helpers import T0

CATALOG_ROWS = [
    ("default", "alpha", "Alpha", 10, True),
    ("default", "bravo", "Bravo", 1, True),
    ("default", "charlie", "Charlie", 5, True),
    ("default", "delta", "Delta", 20, True),
    ("default", "echo", "Echo", 3, True),
    ("default", "foxtrot", "Foxtrot", 2, True),
    ("default", "golf", "Golf", 8, True),
    ("default", "hotel", "Hotel", 4, True),
    ("default", "banned", "Banned", 1, False),
    ("alt", "alpha", "Alpha", 7, True),
]


class RecordingNotifier(ChangeNotifier):
    """ChangeNotifier that also keeps every published event."""

    def __init__(self):
        super().__init__()
        self.events = []

    def publish(self, draft_id, event_type, payload=None):
        event = super().publish(draft_id, event_type, payload)
        self.events.append(event)
        return event

    def types(self):
        return [e.event_type for e in self.events]


# ------------------------------------------------------------------
# Collaborators
# ------------------------------------------------------------------

@pytest.fixture
def catalog_df():
    return pd.DataFrame(CATALOG_ROWS, columns=CATALOG_COLUMNS)


@pytest.fixture
def validator(catalog_df):
    return FormatCatalogValidator(catalog_df)


@pytest.fixture
def store(tmp_path):
    draft_store = DraftStore(tmp_path / "drafts.db")
    draft_store.init_db()
    return draft_store


@pytest.fixture
def notifier():
    return RecordingNotifier()


# ------------------------------------------------------------------
# Engine components
# ------------------------------------------------------------------

@pytest.fixture
def initializer(store):
    return DraftInitializer(store, rng=random.Random(7))


@pytest.fixture
def controller(store, validator, notifier):
    return DraftController(store, validator, notifier)


@pytest.fixture
def admin(store, notifier):
    return DraftAdmin(store, notifier)


@pytest.fixture
def auctions(store, validator, notifier):
    return AuctionManager(store, validator, notifier)


@pytest.fixture
def undo(store, notifier):
    return UndoManager(store, notifier)


@pytest.fixture
def auto_skip(controller):
    return AutoSkipHandler(controller)


@pytest.fixture
def wishlists(store, validator):
    return WishlistManager(store, validator)


# ------------------------------------------------------------------
# Draft factory
# ------------------------------------------------------------------

@pytest.fixture
def make_draft(initializer, controller):
    """Create a draft with ``team_count`` teams; the host owns Team 1.

    Returns (draft_id, user_ids) where user_ids[0] is "host".
    """

    def _make(team_count=2, start=False, now=T0, **kwargs):
        snapshot = initializer.create_draft(
            name="Test Draft",
            host_id="host",
            host_name="Host",
            team_name="Team 1",
            **kwargs,
        )
        draft_id = snapshot.draft.draft_id
        users = ["host"]
        for i in range(2, team_count + 1):
            user_id = f"user{i}"
            outcome = controller.join_draft(
                snapshot.draft.room_code, user_id, f"User {i}", f"Team {i}", now=now
            )
            assert isinstance(outcome, Joined)
            users.append(user_id)
        if start:
            controller.start_draft(draft_id, "host", now=now, rng=random.Random(1))
        return draft_id, users

    return _make

