"""Undo protocol - reverses the most recent pick."""

import logging
from datetime import datetime
from typing import Optional

from src.draft_engine.draft_order import round_for_turn
from src.draft_engine.draft_rules import TURN_ACTIONS, DraftRules
from src.draft_engine.draft_state import DraftAction, UndoResult, utc_now
from src.draft_engine.draft_store import DraftStore
from src.draft_engine.errors import DraftError, ErrorCode, PreconditionError
from src.draft_engine.notifications import ChangeNotifier

logger = logging.getLogger(__name__)


class UndoManager:
    """Host-only rollback of the tail pick, gated by the draft's allow_undo flag."""

    def __init__(self, store: DraftStore, notifier: Optional[ChangeNotifier] = None):
        self.store = store
        self.notifier = notifier

    def undo_last_pick(
        self,
        draft_id: str,
        host_id: str,
        expected_pick_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> UndoResult:
        """
        Delete the most recent pick and restore what it consumed.

        In one transaction: the pick is deleted, its cost is credited back to
        the team, one of that team's undos is spent, the turn steps back by
        one and the round is recomputed. A draft completed by that pick
        returns to active.

        Args:
            draft_id: Draft to undo in
            host_id: Acting user, must be host
            expected_pick_id: Pick the caller means to undo; if another pick
                has been made since, the undo is refused

        Raises:
            PreconditionError: Undo disabled, not host, no picks, the team has
                no undos left, the pick is not the most recent one, or the
                draft is in setup
            ConcurrencyError: The draft changed while the undo was applied
        """
        now = now or utc_now()
        try:
            with self.store.transaction() as tx:
                snapshot = tx.load_snapshot(draft_id)
                rules = DraftRules(snapshot)
                draft = snapshot.draft

                if not draft.settings.allow_undo:
                    raise PreconditionError(
                        "Undo is not enabled for this draft", ErrorCode.UNDO_NOT_ENABLED
                    )
                rules.require_host(host_id, "undo picks")
                rules.require_status("active", "paused", "completed", action="undo")

                pick = snapshot.last_pick()
                if pick is None:
                    raise PreconditionError("No picks to undo", ErrorCode.UNDO_NO_PICKS)
                if expected_pick_id is not None and expected_pick_id != pick.pick_id:
                    raise PreconditionError(
                        "Only the most recent pick can be undone",
                        ErrorCode.UNDO_NOT_RECENT,
                        {"pick_id": expected_pick_id, "last_pick_id": pick.pick_id},
                    )

                team = rules.require_team(pick.team_id)
                if team.undos_remaining <= 0:
                    raise PreconditionError(
                        f"{team.name} has no undos remaining",
                        ErrorCode.UNDO_LIMIT_REACHED,
                        {
                            "team_id": team.team_id,
                            "max_undos_per_team": draft.settings.max_undos_per_team,
                        },
                    )
                restored_budget = team.budget_remaining + pick.cost

                tx.delete_pick(pick.pick_id)
                tx.set_budget(team.team_id, team.budget_remaining, restored_budget)
                tx.use_undo(team.team_id, team.undos_remaining)

                current_turn = max((draft.current_turn or 1) - 1, 1)
                changes = {
                    "current_turn": current_turn,
                    "current_round": round_for_turn(current_turn, snapshot.team_count),
                    "turn_started_at": now,
                }
                status = draft.status
                last_turn_action = tx.last_action(draft_id, TURN_ACTIONS)
                if rules.completed_by_pick(pick, last_turn_action):
                    status = "active"
                    changes["status"] = status

                tx.update_draft(
                    draft_id,
                    {"status": draft.status, "current_turn": draft.current_turn},
                    changes,
                )
                tx.record_action(
                    DraftAction.create(
                        draft_id,
                        "undo",
                        team_id=team.team_id,
                        actor_id=host_id,
                        entity_id=pick.entity_id,
                        cost=pick.cost,
                        round=pick.round,
                        pick_number=pick.pick_order,
                        metadata={
                            "pick_id": pick.pick_id,
                            "undos_remaining": team.undos_remaining - 1,
                        },
                    )
                )
        except DraftError as e:
            logger.warning("Undo rejected in draft %s: %s", draft_id, e.message)
            raise

        logger.info(
            "Undid pick %d in draft %s: %s returned by %s (+%d budget)",
            pick.pick_order,
            draft_id,
            pick.entity_name,
            team.name,
            pick.cost,
        )
        if self.notifier is not None:
            self.notifier.publish(
                draft_id, "pick_undone", {"pick_id": pick.pick_id, "team_id": team.team_id}
            )
        return UndoResult(
            pick=pick,
            budget_remaining=restored_budget,
            undos_remaining=team.undos_remaining - 1,
            current_turn=current_turn,
            current_round=changes["current_round"],
            status=status,
        )

    def get_undos_remaining(self, draft_id: str, team_id: str) -> int:
        """How many more of this team's picks the host may still undo."""
        snapshot = self.store.load_snapshot(draft_id)
        return DraftRules(snapshot).require_team(team_id).undos_remaining
