"""Draft controller - lifecycle state machine and the pick commit protocol."""

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from src.draft_engine.draft_order import shuffled_order
from src.draft_engine.draft_rules import DraftRules
from src.draft_engine.draft_state import (
    DraftAction,
    DraftSnapshot,
    Participant,
    Pick,
    PickResult,
    Team,
    new_id,
    utc_now,
)
from src.draft_engine.draft_store import DraftStore, DraftTransaction
from src.draft_engine.errors import DraftError, ErrorCode, PreconditionError
from src.draft_engine.notifications import ChangeNotifier
from src.draft_engine.validator import LegalityValidator

logger = logging.getLogger(__name__)


# ── Join outcomes ────────────────────────────────────────────────────


@dataclass
class Joined:
    """The user holds a team in the draft."""

    team: Team
    participant: Participant


@dataclass
class JoinedAsSpectator:
    """The user is in the draft without a team."""

    participant: Participant
    reason: Optional[str] = None


@dataclass
class Rejected:
    """The user could not join."""

    reason: str
    code: ErrorCode


JoinOutcome = Union[Joined, JoinedAsSpectator, Rejected]


class DraftController:
    """Main controller for draft orchestration.

    Stateless between calls: every operation opens a store transaction, reads
    the draft snapshot, checks it with DraftRules, and applies conditional
    writes. Change notifications go out only after the transaction commits.
    """

    def __init__(
        self,
        store: DraftStore,
        validator: LegalityValidator,
        notifier: Optional[ChangeNotifier] = None,
    ):
        self.store = store
        self.validator = validator
        self.notifier = notifier

    def publish(self, draft_id: str, event_type: str, payload: Optional[Dict[str, Any]] = None):
        if self.notifier is not None:
            self.notifier.publish(draft_id, event_type, payload)

    # ── Joining and leaving ──────────────────────────────────────────

    def join_draft(
        self,
        room_code: str,
        user_id: str,
        display_name: str,
        team_name: str,
        now: Optional[datetime] = None,
    ) -> JoinOutcome:
        """
        Join a draft by room code, creating a team when possible.

        A full or already started draft admits the user as a spectator
        instead. Rejoining returns the user's existing membership.

        Returns:
            Joined, JoinedAsSpectator or Rejected
        """
        now = now or utc_now()
        team_name = (team_name or "").strip()

        with self.store.transaction() as tx:
            draft_id = tx.find_draft_id(room_code)
            if draft_id is None:
                return Rejected(f"No draft with room code {room_code}", ErrorCode.DRAFT_NOT_FOUND)
            snapshot = tx.load_snapshot(draft_id)

            existing = snapshot.get_participant(user_id)
            if existing is not None:
                tx.touch_participant(draft_id, user_id, now)
                team = snapshot.get_team(existing.team_id) if existing.team_id else None
                if team is not None:
                    return Joined(team, existing)
                return JoinedAsSpectator(existing, "already spectating")

            if snapshot.draft.status != "setup" or snapshot.team_count >= snapshot.draft.max_teams:
                reason = (
                    "draft already started"
                    if snapshot.draft.status != "setup"
                    else "draft is full"
                )
                participant = self._add_participant(tx, draft_id, user_id, display_name, None, now)
                outcome: JoinOutcome = JoinedAsSpectator(participant, reason)
            else:
                if not team_name:
                    return Rejected("Team name is required", ErrorCode.INVALID_INPUT)
                if any(t.name.lower() == team_name.lower() for t in snapshot.teams):
                    return Rejected(
                        f'Team name "{team_name}" is already taken',
                        ErrorCode.DUPLICATE_TEAM_NAME,
                    )
                team = Team(
                    team_id=new_id(),
                    draft_id=draft_id,
                    name=team_name,
                    owner_id=user_id,
                    draft_order=snapshot.team_count + 1,
                    budget_remaining=snapshot.draft.budget_per_team,
                    undos_remaining=snapshot.draft.settings.max_undos_per_team,
                )
                tx.insert_team(team)
                participant = self._add_participant(
                    tx, draft_id, user_id, display_name, team.team_id, now
                )
                outcome = Joined(team, participant)

            tx.record_action(
                DraftAction.create(
                    draft_id,
                    "join",
                    team_id=participant.team_id,
                    actor_id=user_id,
                    metadata={"spectator": participant.team_id is None},
                )
            )

        if isinstance(outcome, Joined):
            logger.info("User %s joined draft %s as team %s", user_id, draft_id, team_name)
        else:
            logger.info("User %s joined draft %s as spectator (%s)",
                        user_id, draft_id, outcome.reason)
        self.publish(draft_id, "participant_joined", {"user_id": user_id})
        return outcome

    def join_as_spectator(
        self,
        room_code: str,
        user_id: str,
        display_name: str,
        now: Optional[datetime] = None,
    ) -> Union[JoinedAsSpectator, Rejected]:
        now = now or utc_now()
        with self.store.transaction() as tx:
            draft_id = tx.find_draft_id(room_code)
            if draft_id is None:
                return Rejected(f"No draft with room code {room_code}", ErrorCode.DRAFT_NOT_FOUND)
            snapshot = tx.load_snapshot(draft_id)
            existing = snapshot.get_participant(user_id)
            if existing is not None:
                if existing.team_id is not None:
                    return Rejected("You already have a team in this draft", ErrorCode.INVALID_INPUT)
                tx.touch_participant(draft_id, user_id, now)
                return JoinedAsSpectator(existing, "already spectating")
            participant = self._add_participant(tx, draft_id, user_id, display_name, None, now)
            tx.record_action(
                DraftAction.create(draft_id, "join", actor_id=user_id, metadata={"spectator": True})
            )

        logger.info("User %s is spectating draft %s", user_id, draft_id)
        self.publish(draft_id, "participant_joined", {"user_id": user_id})
        return JoinedAsSpectator(participant)

    @staticmethod
    def _add_participant(
        tx: DraftTransaction,
        draft_id: str,
        user_id: str,
        display_name: str,
        team_id: Optional[str],
        now: datetime,
    ) -> Participant:
        participant = Participant(
            participant_id=new_id(),
            draft_id=draft_id,
            user_id=user_id,
            display_name=display_name or user_id,
            team_id=team_id,
            is_host=False,
            last_seen=now,
        )
        tx.insert_participant(participant)
        return participant

    def leave_draft(self, draft_id: str, user_id: str) -> None:
        """
        Leave a draft.

        In setup a team owner's team is removed and the remaining draft
        orders are renumbered densely. After setup teams stay in place
        (their turns are handled by auto-skip) and only the participant
        record goes away. The host cannot leave.
        """
        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            rules = DraftRules(snapshot)
            participant = rules.require_participant(user_id)
            if participant.is_host:
                raise PreconditionError(
                    "The host cannot leave the draft",
                    ErrorCode.INVALID_INPUT,
                    {"user_id": user_id},
                )

            team = snapshot.get_team(participant.team_id) if participant.team_id else None
            if snapshot.draft.status == "setup" and team is not None and team.owner_id == user_id:
                tx.delete_team(team.team_id)
                remaining = [t for t in snapshot.teams_by_order() if t.team_id != team.team_id]
                tx.set_team_orders({t.team_id: i for i, t in enumerate(remaining, start=1)})
            else:
                tx.delete_participant(participant.participant_id)

            tx.record_action(
                DraftAction.create(
                    draft_id, "leave", team_id=participant.team_id, actor_id=user_id
                )
            )

        logger.info("User %s left draft %s", user_id, draft_id)
        self.publish(draft_id, "participant_left", {"user_id": user_id})

    def heartbeat(self, draft_id: str, user_id: str, now: Optional[datetime] = None) -> bool:
        """Stamp the participant's last activity. Returns False if not in the draft."""
        with self.store.transaction() as tx:
            return tx.touch_participant(draft_id, user_id, now or utc_now())

    # ── Lifecycle ────────────────────────────────────────────────────

    def shuffle_order(
        self, draft_id: str, user_id: str, rng: Optional[random.Random] = None
    ) -> List[Team]:
        """Randomize draft order (host only, setup only)."""
        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            rules = DraftRules(snapshot)
            rules.require_host(user_id, "shuffle the draft order")
            rules.require_status("setup", action="shuffle the draft order")

            orders = self._shuffled_orders(snapshot, rng)
            tx.set_team_orders(orders)
            tx.update_draft(draft_id, {"status": "setup"}, {"order_shuffled": True})
            tx.record_action(
                DraftAction.create(draft_id, "shuffle", actor_id=user_id, metadata={"order": orders})
            )
            teams = tx.load_snapshot(draft_id).teams_by_order()

        logger.info("Draft %s order shuffled: %s", draft_id, [t.name for t in teams])
        self.publish(draft_id, "order_shuffled")
        return teams

    @staticmethod
    def _shuffled_orders(
        snapshot: DraftSnapshot, rng: Optional[random.Random] = None
    ) -> Dict[str, int]:
        order = shuffled_order(snapshot.team_count, rng)
        return {team.team_id: order[i] for i, team in enumerate(snapshot.teams_by_order())}

    def start_draft(
        self,
        draft_id: str,
        user_id: str,
        now: Optional[datetime] = None,
        rng: Optional[random.Random] = None,
    ) -> DraftSnapshot:
        """
        Move a draft from setup to active.

        Starting an already active draft is a no-op. If the host never
        shuffled, the order is shuffled exactly once here.

        Raises:
            PreconditionError: Not host, wrong status, or the teams are not
                ready (too few, empty team, orphaned participant, bad order)
        """
        now = now or utc_now()
        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            rules = DraftRules(snapshot)
            rules.require_host(user_id, "start the draft")
            if snapshot.draft.status == "active":
                logger.debug("Draft %s already active, start is a no-op", draft_id)
                return snapshot
            rules.require_status("setup", action="start the draft")

            orders = None
            if not snapshot.draft.order_shuffled:
                orders = self._shuffled_orders(snapshot, rng)
            error = rules.start_error(orders)
            if error is not None:
                logger.warning("Draft %s cannot start: %s", draft_id, error.message)
                raise error

            if orders is not None:
                tx.set_team_orders(orders)
            tx.update_draft(
                draft_id,
                {"status": "setup"},
                {
                    "status": "active",
                    "current_turn": 1,
                    "current_round": 1,
                    "turn_started_at": now,
                    "order_shuffled": True,
                },
            )
            tx.record_action(
                DraftAction.create(
                    draft_id,
                    "start",
                    actor_id=user_id,
                    round=1,
                    pick_number=1,
                    metadata={"auto_shuffled": orders is not None},
                )
            )
            started = tx.load_snapshot(draft_id)

        logger.info(
            "Draft %s started with %d teams (%s)",
            draft_id,
            started.team_count,
            started.draft.settings.draft_type,
        )
        self.publish(draft_id, "draft_started")
        return started

    def pause_draft(self, draft_id: str, user_id: str) -> None:
        self._transition(draft_id, user_id, "pause", ("active",), {"status": "paused"})

    def resume_draft(self, draft_id: str, user_id: str, now: Optional[datetime] = None) -> None:
        """Resume a paused draft; the turn clock restarts from now."""
        self._transition(
            draft_id,
            user_id,
            "resume",
            ("paused",),
            {"status": "active", "turn_started_at": now or utc_now()},
        )

    def end_draft(self, draft_id: str, user_id: str) -> None:
        """End the draft early; a running auction is cancelled with it."""
        self._transition(
            draft_id,
            user_id,
            "end",
            ("active", "paused"),
            {"status": "completed"},
            cancel_auction=True,
        )

    def _transition(
        self,
        draft_id: str,
        user_id: str,
        action: str,
        allowed: Tuple[str, ...],
        changes: Dict[str, Any],
        cancel_auction: bool = False,
    ) -> None:
        cancelled = None
        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            rules = DraftRules(snapshot)
            rules.require_host(user_id, f"{action} the draft")
            rules.require_status(*allowed, action=f"{action} the draft")
            if cancel_auction:
                cancelled = snapshot.active_auction()
            if cancelled is not None:
                tx.update_auction(
                    cancelled.auction_id, {"status": "active"}, {"status": "cancelled"}
                )
                tx.record_action(
                    DraftAction.create(
                        draft_id,
                        "auction_cancelled",
                        actor_id=user_id,
                        entity_id=cancelled.entity_id,
                        metadata={
                            "auction_id": cancelled.auction_id,
                            "reason": f"draft_{action}",
                        },
                    )
                )
            tx.update_draft(draft_id, {"status": snapshot.draft.status}, changes)
            tx.record_action(
                DraftAction.create(
                    draft_id,
                    action,
                    actor_id=user_id,
                    round=snapshot.draft.current_round,
                    pick_number=snapshot.draft.current_turn,
                )
            )

        logger.info("Draft %s: %s by %s", draft_id, action, user_id)
        if cancelled is not None:
            logger.info("Auction %s for %s cancelled", cancelled.auction_id, cancelled.entity_name)
            self.publish(draft_id, "auction_cancelled", {"auction_id": cancelled.auction_id})
        self.publish(draft_id, f"draft_{action}", {"status": changes["status"]})

    def reset_draft(self, draft_id: str, user_id: str) -> None:
        """Delete all picks and auctions, restore budgets and undos, and return to setup.

        The draft order is kept but marked unshuffled, so the next start
        shuffles it once more.
        """
        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            rules = DraftRules(snapshot)
            rules.require_host(user_id, "reset the draft")

            tx.clear_draft_results(draft_id)
            tx.reset_budgets(draft_id, snapshot.draft.budget_per_team)
            tx.reset_undos(draft_id, snapshot.draft.settings.max_undos_per_team)
            tx.update_draft(
                draft_id,
                {"status": snapshot.draft.status},
                {
                    "status": "setup",
                    "current_turn": None,
                    "current_round": 1,
                    "turn_started_at": None,
                    "order_shuffled": False,
                },
            )
            tx.record_action(
                DraftAction.create(
                    draft_id,
                    "reset",
                    actor_id=user_id,
                    metadata={"picks_removed": len(snapshot.picks)},
                )
            )

        logger.info("Draft %s reset by %s (%d picks removed)",
                    draft_id, user_id, len(snapshot.picks))
        self.publish(draft_id, "draft_reset")

    def retire_draft(self, draft_id: str, user_id: str, now: Optional[datetime] = None) -> None:
        """Soft-retire a draft; it reads as not found afterwards."""
        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            DraftRules(snapshot).require_host(user_id, "retire the draft")
            tx.update_draft(draft_id, {"retired_at": None}, {"retired_at": now or utc_now()})
            tx.record_action(DraftAction.create(draft_id, "retire", actor_id=user_id))

        logger.info("Draft %s retired", draft_id)
        self.publish(draft_id, "draft_retired")

    # ── Picks ────────────────────────────────────────────────────────

    def make_pick(
        self,
        draft_id: str,
        user_id: str,
        entity_id: str,
        expected_turn: int,
        proposed_cost: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> PickResult:
        """Validate and commit a pick for the acting user's team.

        Args:
            draft_id: Draft to pick in.
            user_id: Acting user; their team must be the one due.
            entity_id: Entity being picked.
            expected_turn: The turn the caller believes is current.
            proposed_cost: Client-side cost; the validator's cost wins.

        Returns:
            PickResult with the new budget, next turn and completion flag.

        Raises:
            PreconditionError: Wrong status, not this team's turn, budget,
                cap or duplicate entity.
            ValidationError: Entity is not legal in the draft's format.
            ConcurrencyError: The turn moved before the commit.
        """
        now = now or utc_now()
        format_id = self._resolve_team(draft_id, user_id)
        validation = self.validator.require_legal(entity_id, format_id)
        if proposed_cost is not None and proposed_cost != validation.cost:
            logger.debug(
                "Proposed cost %d for %s overridden by catalog cost %d",
                proposed_cost,
                entity_id,
                validation.cost,
            )

        try:
            with self.store.transaction() as tx:
                snapshot = tx.load_snapshot(draft_id)
                rules = DraftRules(snapshot)
                rules.require_draft_type("snake")
                rules.require_turn(expected_turn)
                team = rules.require_team_for_user(user_id)
                rules.validate_pick(team, entity_id, validation.cost)
                result = self.commit_pick(
                    tx,
                    snapshot,
                    team,
                    entity_id,
                    validation.entity_name or entity_id,
                    validation.cost,
                    picked_by=user_id,
                    now=now,
                )
        except DraftError as e:
            logger.warning("Pick rejected in draft %s: %s", draft_id, e.message)
            raise

        self.announce_pick(result, "pick_made")
        return result

    def make_proxy_pick(
        self,
        draft_id: str,
        host_id: str,
        team_id: str,
        entity_id: str,
        expected_turn: int,
        now: Optional[datetime] = None,
    ) -> PickResult:
        """Host picks on behalf of a team.

        The target team gets the pick whether or not it is the team due, and
        the turn advances once. The host is recorded as the acting user.
        """
        now = now or utc_now()
        snapshot = self.store.load_snapshot(draft_id)
        DraftRules(snapshot).require_host(host_id, "make proxy picks")
        validation = self.validator.require_legal(entity_id, snapshot.draft.format_id)

        try:
            with self.store.transaction() as tx:
                snapshot = tx.load_snapshot(draft_id)
                rules = DraftRules(snapshot)
                rules.require_host(host_id, "make proxy picks")
                if not snapshot.draft.settings.proxy_picking_enabled:
                    raise PreconditionError(
                        "Proxy picking is disabled for this draft",
                        ErrorCode.PROXY_PICKING_DISABLED,
                    )
                rules.require_draft_type("snake")
                rules.require_turn(expected_turn)
                team = rules.require_team(team_id)
                rules.validate_pick(team, entity_id, validation.cost, require_due_team=False)
                result = self.commit_pick(
                    tx,
                    snapshot,
                    team,
                    entity_id,
                    validation.entity_name or entity_id,
                    validation.cost,
                    picked_by=host_id,
                    now=now,
                    action_type="proxy_pick",
                )
        except DraftError as e:
            logger.warning("Proxy pick rejected in draft %s: %s", draft_id, e.message)
            raise

        self.announce_pick(result, "pick_made")
        return result

    def _resolve_team(self, draft_id: str, user_id: str) -> str:
        """Check the user has a team before consulting the validator; returns the format."""
        snapshot = self.store.load_snapshot(draft_id)
        DraftRules(snapshot).require_team_for_user(user_id)
        return snapshot.draft.format_id

    def commit_pick(
        self,
        tx: DraftTransaction,
        snapshot: DraftSnapshot,
        team: Team,
        entity_id: str,
        entity_name: str,
        cost: int,
        picked_by: Optional[str],
        now: datetime,
        action_type: str = "pick",
    ) -> PickResult:
        """Append the pick, charge the team and advance the turn in ``tx``.

        Callers have already checked the pick against ``snapshot`` inside the
        same transaction. The turn and budget writes are conditional on the
        values in that snapshot.
        """
        rules = DraftRules(snapshot)
        draft = snapshot.draft
        pick = Pick.create(
            draft_id=draft.draft_id,
            team_id=team.team_id,
            entity_id=entity_id,
            entity_name=entity_name,
            cost=cost,
            pick_order=rules.next_pick_order(),
            team_count=snapshot.team_count,
            picked_by=picked_by,
            now=now,
        )
        tx.insert_pick(pick)

        budget_remaining = team.budget_remaining - cost
        tx.set_budget(team.team_id, team.budget_remaining, budget_remaining)

        changes = rules.advance_changes(now)
        tx.update_draft(
            draft.draft_id,
            {"status": "active", "current_turn": draft.current_turn},
            changes,
        )
        tx.record_action(
            DraftAction.create(
                draft.draft_id,
                action_type,
                team_id=team.team_id,
                actor_id=picked_by,
                entity_id=entity_id,
                cost=cost,
                round=pick.round,
                pick_number=pick.pick_order,
                metadata={"pick_id": pick.pick_id, "turn": draft.current_turn},
            )
        )

        is_complete = changes.get("status") == "completed"
        logger.info(
            "Pick %d (Rd %d): %s selects %s for %d (budget left %d)%s",
            pick.pick_order,
            pick.round,
            team.name,
            entity_name,
            cost,
            budget_remaining,
            " - draft complete" if is_complete else "",
        )
        return PickResult(
            pick=pick,
            budget_remaining=budget_remaining,
            next_turn=changes["current_turn"],
            next_round=changes.get("current_round", draft.current_round),
            is_complete=is_complete,
        )

    def announce_pick(self, result: PickResult, event_type: str) -> None:
        self.publish(
            result.pick.draft_id,
            event_type,
            {
                "pick_id": result.pick.pick_id,
                "team_id": result.pick.team_id,
                "entity_id": result.pick.entity_id,
                "next_turn": result.next_turn,
            },
        )
        if result.is_complete:
            self.publish(result.pick.draft_id, "draft_completed")

    # ── Queries ──────────────────────────────────────────────────────

    def get_state(self, draft_id: str) -> DraftSnapshot:
        return self.store.load_snapshot(draft_id)

    def get_history(self, draft_id: str, limit: Optional[int] = None) -> List[DraftAction]:
        """Audit log of the draft, oldest first."""
        self.store.get_draft(draft_id)
        return self.store.list_actions(draft_id, limit)

    def get_current_team(self, draft_id: str) -> Optional[Team]:
        """Get the team currently on the clock (or holding the nomination)."""
        snapshot = self.store.load_snapshot(draft_id)
        if snapshot.draft.status != "active":
            return None
        return snapshot.current_team()

    def can_start(self, draft_id: str) -> Tuple[bool, Optional[str]]:
        return DraftRules(self.store.load_snapshot(draft_id)).can_start()

    def validate_user_can_pick(self, draft_id: str, user_id: str) -> Tuple[bool, Optional[str]]:
        """
        Check whether the user could pick right now.

        Returns:
            (can_pick, reason) - (True, None) if it is their turn
        """
        snapshot = self.store.load_snapshot(draft_id)
        rules = DraftRules(snapshot)
        try:
            rules.require_status("active", action="pick")
            team = rules.require_team_for_user(user_id)
        except PreconditionError as e:
            return False, e.message
        due = snapshot.current_team()
        if due is None or due.team_id != team.team_id:
            return False, "It is not your turn"
        return True, None

    def get_team_roster(self, draft_id: str, team_id: str) -> List[Pick]:
        snapshot = self.store.load_snapshot(draft_id)
        DraftRules(snapshot).require_team(team_id)
        return snapshot.picks_for_team(team_id)

    def get_draft_summary(self, draft_id: str) -> Dict[str, Any]:
        """Generate a summary of the draft's results, per team in draft order."""
        snapshot = self.store.load_snapshot(draft_id)
        draft = snapshot.draft
        summary: Dict[str, Any] = {
            "draft_id": draft.draft_id,
            "name": draft.name,
            "status": draft.status,
            "draft_type": draft.settings.draft_type,
            "total_picks": len(snapshot.picks),
            "total_turns": snapshot.total_turns,
            "teams": [],
        }
        for team in snapshot.teams_by_order():
            picks = snapshot.picks_for_team(team.team_id)
            summary["teams"].append(
                {
                    "team_id": team.team_id,
                    "name": team.name,
                    "draft_order": team.draft_order,
                    "budget_remaining": team.budget_remaining,
                    "budget_spent": snapshot.budget_spent(team.team_id),
                    "picks": [
                        {"entity_id": p.entity_id, "name": p.entity_name, "cost": p.cost,
                         "round": p.round, "pick_order": p.pick_order}
                        for p in picks
                    ],
                }
            )
        return summary
