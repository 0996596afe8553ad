"""Small helpers shared by the test modules."""

from datetime import datetime, timezone

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def due_user(store, draft_id):
    """User id owning the team that is currently due."""
    snapshot = store.load_snapshot(draft_id)
    return snapshot.current_team().owner_id


def team_of(store, draft_id, user_id):
    snapshot = store.load_snapshot(draft_id)
    return snapshot.get_team(snapshot.get_participant(user_id).team_id)
