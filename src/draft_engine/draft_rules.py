"""Draft rule enforcement and turn-progress arithmetic.

``DraftRules`` works on a ``DraftSnapshot`` read inside the same store
transaction that will apply the resulting writes, so every check here is
re-validated atomically with the mutation it guards.
"""

from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from src.draft_engine.draft_order import is_valid_permutation, round_for_turn
from src.draft_engine.draft_state import DraftAction, DraftSnapshot, Participant, Pick, Team
from src.draft_engine.errors import (
    ErrorCode,
    PreconditionError,
    host_only,
    insufficient_budget,
    turn_changed,
)
from src.draft_engine.config import MIN_TEAMS

# Logged actions that add a pick and advance the snake turn
PICK_ACTIONS = ("pick", "proxy_pick", "auto_pick")

# Logged actions that move the snake turn or end the draft
TURN_ACTIONS = PICK_ACTIONS + ("skip", "undo", "end")


class DraftRules:
    """Enforces draft preconditions against a snapshot."""

    def __init__(self, snapshot: DraftSnapshot):
        self.snapshot = snapshot
        self.draft = snapshot.draft

    # ── Identity ─────────────────────────────────────────────────────

    def require_participant(self, user_id: str) -> Participant:
        participant = self.snapshot.get_participant(user_id)
        if participant is None:
            raise PreconditionError(
                "You are not part of this draft",
                ErrorCode.USER_NOT_IN_DRAFT,
                {"user_id": user_id, "draft_id": self.draft.draft_id},
            )
        return participant

    def require_host(self, user_id: Optional[str], action: str) -> Participant:
        participant = self.snapshot.get_participant(user_id) if user_id else None
        if participant is None or not participant.is_host:
            raise host_only(user_id, action)
        return participant

    def require_team_for_user(self, user_id: str) -> Team:
        """Resolve the acting participant's team."""
        participant = self.require_participant(user_id)
        team = self.snapshot.get_team(participant.team_id) if participant.team_id else None
        if team is None:
            raise PreconditionError(
                "Spectators cannot act in this draft",
                ErrorCode.NO_TEAM,
                {"user_id": user_id},
            )
        return team

    def require_team(self, team_id: str) -> Team:
        team = self.snapshot.get_team(team_id)
        if team is None:
            raise PreconditionError(
                f"Team {team_id} not found", ErrorCode.TEAM_NOT_FOUND, {"team_id": team_id}
            )
        return team

    # ── Status ───────────────────────────────────────────────────────

    def require_status(self, *statuses: str, action: str = "continue") -> None:
        status = self.draft.status
        if status in statuses:
            return
        codes = {
            "setup": ErrorCode.DRAFT_NOT_ACTIVE,
            "paused": ErrorCode.DRAFT_PAUSED,
            "completed": ErrorCode.DRAFT_COMPLETED,
            "active": ErrorCode.DRAFT_ALREADY_STARTED,
        }
        raise PreconditionError(
            f"Cannot {action}: draft is {status}",
            codes.get(status, ErrorCode.INVALID_DRAFT_STATE),
            {"status": status, "allowed": list(statuses)},
        )

    def require_draft_type(self, draft_type: str) -> None:
        if self.draft.settings.draft_type != draft_type:
            raise PreconditionError(
                f"This is not a {draft_type} draft",
                ErrorCode.WRONG_DRAFT_TYPE,
                {"draft_type": self.draft.settings.draft_type},
            )

    def require_turn(self, expected_turn: int) -> None:
        """Compare the caller's turn token against the stored turn.

        A mismatch is a lost race (or a stale client), reported as a
        concurrency loss rather than a precondition failure.
        """
        if self.draft.status == "setup" or self.draft.current_turn is None:
            self.require_status("active", action="act on a turn")
        if self.draft.current_turn != expected_turn:
            raise turn_changed(self.draft.current_turn, expected_turn)
        self.require_status("active", action="act on a turn")

    # ── Start ────────────────────────────────────────────────────────

    def start_error(self, orders: Optional[Dict[str, int]] = None) -> Optional[PreconditionError]:
        """First reason the draft cannot start, or None.

        Args:
            orders: Draft order per team id to check instead of the stored one
                (used when an automatic shuffle is about to be applied).
        """
        teams = self.snapshot.teams
        if len(teams) < MIN_TEAMS:
            return PreconditionError(
                f"At least {MIN_TEAMS} teams are required to start",
                ErrorCode.NOT_ENOUGH_TEAMS,
                {"team_count": len(teams)},
            )
        for team in teams:
            if not self.snapshot.participants_for_team(team.team_id):
                return PreconditionError(
                    f"Team {team.name} has no participant",
                    ErrorCode.TEAM_WITHOUT_PARTICIPANT,
                    {"team_id": team.team_id},
                )
        team_ids = {t.team_id for t in teams}
        for participant in self.snapshot.participants:
            if participant.team_id is not None and participant.team_id not in team_ids:
                return PreconditionError(
                    f"Participant {participant.display_name} belongs to no team in this draft",
                    ErrorCode.ORPHANED_PARTICIPANT,
                    {"participant_id": participant.participant_id},
                )
        values = [
            (orders or {}).get(t.team_id, t.draft_order) for t in teams
        ]
        if not is_valid_permutation(values):
            return PreconditionError(
                "Draft order must be a permutation of 1..N",
                ErrorCode.INVALID_DRAFT_ORDER,
                {"draft_order": sorted(values)},
            )
        return None

    def can_start(self) -> Tuple[bool, Optional[str]]:
        """
        Check whether the draft could start right now.

        Returns:
            (can_start, reason) - (True, None) if ready
        """
        error = self.start_error()
        if error is not None:
            return False, error.message
        return True, None

    # ── Picks ────────────────────────────────────────────────────────

    def validate_pick(
        self,
        team: Team,
        entity_id: str,
        cost: int,
        require_due_team: bool = True,
    ) -> None:
        """Check everything a pick commit is conditioned on, except the turn token."""
        if require_due_team:
            due = self.snapshot.current_team()
            if due is None or due.team_id != team.team_id:
                raise PreconditionError(
                    f"It's {due.name if due else 'nobody'}'s turn",
                    ErrorCode.NOT_YOUR_TURN,
                    {
                        "team_id": team.team_id,
                        "current_team_id": due.team_id if due else None,
                    },
                )
        self.require_room_for(team, entity_id)
        if team.budget_remaining < cost:
            raise insufficient_budget(cost, team.budget_remaining, team.team_id)

    def require_room_for(self, team: Team, entity_id: str) -> None:
        """Team is under its entity cap and does not already own the entity."""
        owned = self.snapshot.picks_for_team(team.team_id)
        cap = self.draft.settings.entities_per_team
        if len(owned) >= cap:
            raise PreconditionError(
                f"Team has reached maximum picks ({cap})",
                ErrorCode.MAX_PICKS_REACHED,
                {"team_id": team.team_id, "max_picks": cap},
            )
        if any(p.entity_id == entity_id for p in owned):
            raise PreconditionError(
                f"{entity_id} has already been drafted by this team",
                ErrorCode.ENTITY_ALREADY_PICKED,
                {"team_id": team.team_id, "entity_id": entity_id},
            )

    def next_pick_order(self) -> int:
        last = self.snapshot.last_pick()
        return last.pick_order + 1 if last else 1

    # ── Turn progress ────────────────────────────────────────────────

    def advance_changes(self, now: datetime) -> Dict[str, Any]:
        """Draft columns for moving a snake draft to its next turn.

        Applies any queued timer change and restamps the turn start. Past the
        last turn the draft completes instead; the turn still moves one past
        the end so that undo can step back onto the final turn.
        """
        team_count = self.snapshot.team_count
        next_turn = (self.draft.current_turn or 0) + 1
        changes: Dict[str, Any] = {"current_turn": next_turn}

        if next_turn > self.snapshot.total_turns:
            changes["status"] = "completed"
            return changes

        changes["current_round"] = round_for_turn(next_turn, team_count)
        changes["turn_started_at"] = now
        settings = self.draft.settings
        if settings.pending_time_limit_seconds is not None:
            changes["settings"] = replace(
                settings,
                time_limit_seconds=settings.pending_time_limit_seconds,
                pending_time_limit_seconds=None,
            )
        return changes

    def auction_progress_changes(self, total_picks: int, now: datetime) -> Dict[str, Any]:
        """Draft columns recomputed from total picks after an auction resolves."""
        team_count = self.snapshot.team_count
        changes: Dict[str, Any] = {
            "current_turn": total_picks + 1,
            "current_round": total_picks // team_count + 1,
            "turn_started_at": now,
        }
        if total_picks >= self.snapshot.total_turns:
            changes["status"] = "completed"
            changes["current_round"] = self.draft.settings.entities_per_team
        return changes

    def completed_by_pick(self, pick: Pick, last_turn_action: Optional[DraftAction]) -> bool:
        """Whether ``pick`` is what completed the draft.

        A snake draft also completes when its final turn is skipped or when
        the host ends it, so the last turn-moving action must be this pick.
        """
        if self.draft.status != "completed":
            return False
        if self.draft.is_auction:
            return len(self.snapshot.picks) >= self.snapshot.total_turns
        if (self.draft.current_turn or 0) <= self.snapshot.total_turns:
            return False
        return (
            last_turn_action is not None
            and last_turn_action.action_type in PICK_ACTIONS
            and last_turn_action.metadata.get("pick_id") == pick.pick_id
        )
