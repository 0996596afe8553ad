"""Ranked wishlists used by participants and by auto-skip."""

import logging
from typing import Any, Dict, List, Optional

from src.draft_engine.draft_rules import DraftRules
from src.draft_engine.draft_state import DraftSnapshot, Participant, Team, WishlistItem, new_id
from src.draft_engine.draft_store import DraftStore, DraftTransaction
from src.draft_engine.errors import ErrorCode, PreconditionError
from src.draft_engine.validator import LegalityValidator

logger = logging.getLogger(__name__)


def wishlist_owner(snapshot: DraftSnapshot, team: Team) -> Optional[Participant]:
    """Participant whose wishlist drives the team's automatic picks."""
    members = snapshot.participants_for_team(team.team_id)
    owner = next((p for p in members if p.user_id == team.owner_id), None)
    return owner or (members[0] if members else None)


def team_wishlist(tx: DraftTransaction, snapshot: DraftSnapshot, team: Team) -> List[WishlistItem]:
    owner = wishlist_owner(snapshot, team)
    if owner is None:
        return []
    return tx.list_wishlist(snapshot.draft.draft_id, owner.participant_id)


class WishlistManager:
    """Add, remove, reorder and summarize a participant's wishlist."""

    def __init__(self, store: DraftStore, validator: LegalityValidator):
        self.store = store
        self.validator = validator

    def add_item(self, draft_id: str, user_id: str, entity_id: str) -> WishlistItem:
        """Append an entity at the lowest priority; cost comes from the validator."""
        format_id = self.store.get_draft(draft_id).format_id
        validation = self.validator.require_legal(entity_id, format_id)

        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            participant = DraftRules(snapshot).require_participant(user_id)
            items = tx.list_wishlist(draft_id, participant.participant_id)
            item = WishlistItem(
                item_id=new_id(),
                draft_id=draft_id,
                participant_id=participant.participant_id,
                entity_id=entity_id,
                entity_name=validation.entity_name or entity_id,
                cost=validation.cost,
                priority=max((i.priority for i in items), default=0) + 1,
            )
            tx.insert_wishlist_item(item)

        logger.debug("Wishlist add in draft %s: %s -> %s (priority %d)",
                     draft_id, user_id, entity_id, item.priority)
        return item

    def remove_item(self, draft_id: str, user_id: str, entity_id: str) -> bool:
        """Remove an entity and close the priority gap. Returns False if absent."""
        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            participant = DraftRules(snapshot).require_participant(user_id)
            removed = tx.delete_wishlist_item(draft_id, participant.participant_id, entity_id)
            if removed:
                remaining = tx.list_wishlist(draft_id, participant.participant_id)
                for priority, item in enumerate(remaining, start=1):
                    if item.priority != priority:
                        tx.set_wishlist_priority(item.item_id, priority)
        return removed

    def reorder(self, draft_id: str, user_id: str, entity_ids: List[str]) -> List[WishlistItem]:
        """Set priorities from the given order (first is highest).

        Raises:
            PreconditionError: If ``entity_ids`` is not exactly the wishlist's entities
        """
        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            participant = DraftRules(snapshot).require_participant(user_id)
            items = {i.entity_id: i for i in tx.list_wishlist(draft_id, participant.participant_id)}
            if sorted(entity_ids) != sorted(items):
                raise PreconditionError(
                    "Reorder must list every wishlist entity exactly once",
                    ErrorCode.INVALID_INPUT,
                    {"entity_ids": entity_ids},
                )
            for priority, entity_id in enumerate(entity_ids, start=1):
                tx.set_wishlist_priority(items[entity_id].item_id, priority)
            return tx.list_wishlist(draft_id, participant.participant_id)

    def get_wishlist(self, draft_id: str, user_id: str) -> List[WishlistItem]:
        with self.store.transaction(write=False) as tx:
            snapshot = tx.load_snapshot(draft_id)
            participant = DraftRules(snapshot).require_participant(user_id)
            return tx.list_wishlist(draft_id, participant.participant_id)

    def get_summary(self, draft_id: str, user_id: str) -> Dict[str, Any]:
        """
        Summarize a wishlist against the current draft state.

        Returns:
            Dict with total, available (not picked by anyone), affordable
            (available within the team's budget) and top_pick (first
            affordable entity id, or None)
        """
        with self.store.transaction(write=False) as tx:
            snapshot = tx.load_snapshot(draft_id)
            participant = DraftRules(snapshot).require_participant(user_id)
            items = tx.list_wishlist(draft_id, participant.participant_id)

        team = snapshot.get_team(participant.team_id) if participant.team_id else None
        budget: Optional[int] = team.budget_remaining if team else None
        available = [i for i in items if not snapshot.is_entity_picked(i.entity_id)]
        affordable = [i for i in available if budget is None or i.cost <= budget]
        return {
            "total": len(items),
            "available": len(available),
            "affordable": len(affordable),
            "top_pick": affordable[0].entity_id if affordable else None,
        }
