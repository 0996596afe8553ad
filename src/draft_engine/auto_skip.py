"""Auto-skip - handles snake turns whose time limit has elapsed.

When the due team runs out of time its wishlist is walked in priority order
and the first viable entity is picked through the normal commit path. If
nothing is viable the turn advances with no pick. Runs are triggered by an
external poller, so a draft that vanished, stopped, or moved on is a silent
no-op rather than an error.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from src.draft_engine.draft_controller import DraftController
from src.draft_engine.draft_rules import DraftRules
from src.draft_engine.draft_state import DraftAction, DraftSnapshot, Pick, PickResult, utc_now
from src.draft_engine.errors import (
    ConcurrencyError,
    ErrorCode,
    PreconditionError,
    ValidationError,
)
from src.draft_engine.wishlist import team_wishlist

logger = logging.getLogger(__name__)

AUTO_PICKED = "auto_picked"
SKIPPED = "skipped"
NOOP = "noop"

# Failures that mean the draft moved on before the timer fired
_STALE_CODES = (
    ErrorCode.DRAFT_NOT_FOUND,
    ErrorCode.DRAFT_NOT_ACTIVE,
    ErrorCode.DRAFT_PAUSED,
    ErrorCode.DRAFT_COMPLETED,
)


@dataclass
class AutoSkipResult:
    """What a timeout run did."""

    outcome: str  # AUTO_PICKED, SKIPPED or NOOP
    pick: Optional[Pick] = None
    next_turn: Optional[int] = None
    reason: Optional[str] = None


def remaining_time(snapshot: DraftSnapshot, now: Optional[datetime] = None) -> Optional[float]:
    """Seconds left on the current turn, or None when no clock is running."""
    draft = snapshot.draft
    limit = draft.settings.time_limit_seconds
    if draft.status != "active" or limit <= 0 or draft.turn_started_at is None:
        return None
    elapsed = ((now or utc_now()) - draft.turn_started_at).total_seconds()
    return max(0.0, limit - elapsed)


def is_turn_expired(snapshot: DraftSnapshot, now: Optional[datetime] = None) -> bool:
    draft = snapshot.draft
    limit = draft.settings.time_limit_seconds
    if draft.status != "active" or limit <= 0 or draft.turn_started_at is None:
        return False
    return ((now or utc_now()) - draft.turn_started_at).total_seconds() > limit


class AutoSkipHandler:
    """Turns an expired snake turn into an automatic pick or a skip."""

    def __init__(self, controller: DraftController):
        self.controller = controller
        self.store = controller.store
        self.validator = controller.validator

    def handle_time_expired(
        self,
        draft_id: str,
        expected_turn: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> AutoSkipResult:
        """
        Act on an expired turn.

        Args:
            draft_id: Draft whose clock fired
            expected_turn: Turn the scheduler saw; defaults to the stored one.
                If the draft has moved past it the run is a no-op.

        Returns:
            AutoSkipResult with outcome AUTO_PICKED, SKIPPED or NOOP
        """
        now = now or utc_now()
        try:
            return self._handle(draft_id, expected_turn, now)
        except ConcurrencyError as e:
            logger.debug("Auto-skip for draft %s lost a race: %s", draft_id, e.message)
            return AutoSkipResult(NOOP, reason="turn changed")
        except PreconditionError as e:
            if e.code in _STALE_CODES:
                logger.debug("Auto-skip for draft %s is a no-op: %s", draft_id, e.message)
                return AutoSkipResult(NOOP, reason=e.message)
            raise

    def _handle(self, draft_id: str, expected_turn: Optional[int], now: datetime) -> AutoSkipResult:
        snapshot = self.store.load_snapshot(draft_id)
        draft = snapshot.draft
        if draft.status != "active":
            return AutoSkipResult(NOOP, reason=f"draft is {draft.status}")
        if draft.is_auction:
            return AutoSkipResult(NOOP, reason="auction drafts have no turn clock")
        if draft.settings.time_limit_seconds <= 0:
            return AutoSkipResult(NOOP, reason="turn timer disabled")
        turn = expected_turn if expected_turn is not None else draft.current_turn
        if turn != draft.current_turn:
            return AutoSkipResult(NOOP, reason="turn changed")
        if not is_turn_expired(snapshot, now):
            return AutoSkipResult(NOOP, reason="turn not expired")

        team = snapshot.current_team()
        if team is None:
            return AutoSkipResult(NOOP, reason="no team is due")

        with self.store.transaction(write=False) as tx:
            wishlist = team_wishlist(tx, snapshot, team)

        at_cap = len(snapshot.picks_for_team(team.team_id)) >= draft.settings.entities_per_team
        candidates = [] if at_cap else [
            item for item in wishlist
            if not snapshot.is_entity_picked(item.entity_id)
            and item.cost <= team.budget_remaining
        ]

        for item in candidates:
            try:
                validation = self.validator.require_legal(item.entity_id, draft.format_id)
            except ValidationError as e:
                logger.debug("Skipping wishlist entry %s: %s", item.entity_id, e.message)
                continue
            if validation.cost > team.budget_remaining:
                continue
            try:
                result = self._auto_pick(draft_id, turn, item.entity_id,
                                         validation.entity_name or item.entity_name,
                                         validation.cost, now)
            except PreconditionError as e:
                if e.code in _STALE_CODES:
                    raise
                logger.debug("Wishlist entry %s not pickable: %s", item.entity_id, e.message)
                continue
            self.controller.announce_pick(result, "auto_pick")
            logger.info("Auto-picked %s for %s in draft %s", result.pick.entity_name,
                        team.name, draft_id)
            return AutoSkipResult(AUTO_PICKED, pick=result.pick, next_turn=result.next_turn)

        next_turn = self._skip(draft_id, turn, now)
        logger.info("Turn %d skipped for %s in draft %s (no viable wishlist entry)",
                    turn, team.name, draft_id)
        self.controller.publish(
            draft_id, "turn_skipped", {"team_id": team.team_id, "turn": turn}
        )
        return AutoSkipResult(SKIPPED, next_turn=next_turn, reason="no viable wishlist entry")

    def _auto_pick(
        self,
        draft_id: str,
        turn: int,
        entity_id: str,
        entity_name: str,
        cost: int,
        now: datetime,
    ) -> PickResult:
        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            rules = DraftRules(snapshot)
            rules.require_turn(turn)
            team = snapshot.current_team()
            rules.validate_pick(team, entity_id, cost)
            if snapshot.is_entity_picked(entity_id):
                raise PreconditionError(
                    f"{entity_id} has already been drafted",
                    ErrorCode.ENTITY_ALREADY_PICKED,
                    {"entity_id": entity_id},
                )
            return self.controller.commit_pick(
                tx, snapshot, team, entity_id, entity_name, cost,
                picked_by=None, now=now, action_type="auto_pick",
            )

    def _skip(self, draft_id: str, turn: int, now: datetime) -> int:
        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            rules = DraftRules(snapshot)
            rules.require_turn(turn)
            team = snapshot.current_team()
            changes = rules.advance_changes(now)
            tx.update_draft(draft_id, {"status": "active", "current_turn": turn}, changes)
            tx.record_action(
                DraftAction.create(
                    draft_id,
                    "skip",
                    team_id=team.team_id if team else None,
                    round=snapshot.draft.current_round,
                    pick_number=turn,
                    metadata={"reason": "time_expired"},
                )
            )
        return changes["current_turn"]
