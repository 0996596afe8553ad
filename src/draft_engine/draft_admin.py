"""Administrative surface - host-only settings changes and budget overrides."""

import logging
from dataclasses import replace
from typing import Any, Dict, Optional

from src.draft_engine.config import DRAFT_TYPES, MAX_TEAMS, MIN_TEAMS
from src.draft_engine.draft_rules import DraftRules
from src.draft_engine.draft_state import DraftAction, DraftSettings, Team
from src.draft_engine.draft_store import DraftStore
from src.draft_engine.errors import ErrorCode, PreconditionError
from src.draft_engine.notifications import ChangeNotifier

logger = logging.getLogger(__name__)


def _invalid(message: str, **context) -> PreconditionError:
    return PreconditionError(message, ErrorCode.INVALID_INPUT, context)


class DraftAdmin:
    """Host-only operations on draft settings and team budgets."""

    def __init__(self, store: DraftStore, notifier: Optional[ChangeNotifier] = None):
        self.store = store
        self.notifier = notifier

    def _publish(self, draft_id: str, event_type: str, payload: Dict[str, Any]) -> None:
        if self.notifier is not None:
            self.notifier.publish(draft_id, event_type, payload)

    def adjust_budget(
        self,
        draft_id: str,
        host_id: str,
        team_id: str,
        new_budget: int,
        reason: Optional[str] = None,
    ) -> Team:
        """
        Override a team's remaining budget.

        This is the only budget write not tied to a pick, so it is logged at
        WARNING and recorded in the draft's action log with the prior value.

        Raises:
            PreconditionError: Not host, unknown team, or negative budget
            ConcurrencyError: The budget changed while the override was applied
        """
        if new_budget < 0:
            raise PreconditionError(
                "Budget cannot be negative",
                ErrorCode.INVALID_BUDGET,
                {"team_id": team_id, "budget": new_budget},
            )

        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            rules = DraftRules(snapshot)
            rules.require_host(host_id, "adjust budgets")
            team = rules.require_team(team_id)

            tx.set_budget(team_id, team.budget_remaining, new_budget)
            tx.record_action(
                DraftAction.create(
                    draft_id,
                    "budget_adjusted",
                    team_id=team_id,
                    actor_id=host_id,
                    cost=new_budget - team.budget_remaining,
                    metadata={
                        "previous_budget": team.budget_remaining,
                        "new_budget": new_budget,
                        "reason": reason,
                    },
                )
            )

        logger.warning(
            "Budget override in draft %s: team %s %d -> %d by %s (%s)",
            draft_id,
            team.name,
            team.budget_remaining,
            new_budget,
            host_id,
            reason or "no reason given",
        )
        self._publish(draft_id, "budget_adjusted", {"team_id": team_id})
        return replace(team, budget_remaining=new_budget)

    # ── Settings ─────────────────────────────────────────────────────

    def set_time_limit(self, draft_id: str, host_id: str, seconds: int) -> DraftSettings:
        """
        Set the per-turn time limit (0 disables the timer).

        While the draft is active the change is queued and takes effect at the
        next snake turn advance, so the running turn keeps its clock.
        """
        if seconds < 0:
            raise _invalid("Time limit cannot be negative", seconds=seconds)

        def apply(settings: DraftSettings, status: str) -> DraftSettings:
            if status == "active":
                return replace(settings, pending_time_limit_seconds=seconds)
            return replace(settings, time_limit_seconds=seconds, pending_time_limit_seconds=None)

        return self._update_settings(draft_id, host_id, "set the time limit", apply,
                                     {"time_limit_seconds": seconds})

    def set_auction_duration(self, draft_id: str, host_id: str, seconds: int) -> DraftSettings:
        """Set the duration of future auctions. A running auction keeps its end time."""
        if seconds <= 0:
            raise _invalid("Auction duration must be positive", seconds=seconds)
        return self._update_settings(
            draft_id,
            host_id,
            "set the auction duration",
            lambda s, _status: replace(s, auction_duration_seconds=seconds),
            {"auction_duration_seconds": seconds},
        )

    def set_proxy_picking(self, draft_id: str, host_id: str, enabled: bool) -> DraftSettings:
        return self._update_settings(
            draft_id,
            host_id,
            "change proxy picking",
            lambda s, _status: replace(s, proxy_picking_enabled=bool(enabled)),
            {"proxy_picking_enabled": bool(enabled)},
        )

    def set_allow_undo(self, draft_id: str, host_id: str, enabled: bool) -> DraftSettings:
        return self._update_settings(
            draft_id,
            host_id,
            "change undo permission",
            lambda s, _status: replace(s, allow_undo=bool(enabled)),
            {"allow_undo": bool(enabled)},
        )

    def set_entities_per_team(self, draft_id: str, host_id: str, count: int) -> DraftSettings:
        if count < 1:
            raise _invalid("Entities per team must be at least 1", count=count)
        return self._update_settings(
            draft_id,
            host_id,
            "change entities per team",
            lambda s, _status: replace(s, entities_per_team=count),
            {"entities_per_team": count},
            setup_only=True,
        )

    def set_draft_type(self, draft_id: str, host_id: str, draft_type: str) -> DraftSettings:
        if draft_type not in DRAFT_TYPES:
            raise _invalid(f"Invalid draft type '{draft_type}'", draft_type=draft_type)
        return self._update_settings(
            draft_id,
            host_id,
            "change the draft type",
            lambda s, _status: replace(s, draft_type=draft_type),
            {"draft_type": draft_type},
            setup_only=True,
        )

    def set_budget_per_team(self, draft_id: str, host_id: str, budget: int) -> None:
        """Change the starting budget (setup only); every team is reset to it."""
        if budget <= 0:
            raise PreconditionError(
                "Budget per team must be positive", ErrorCode.INVALID_BUDGET, {"budget": budget}
            )
        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            rules = DraftRules(snapshot)
            rules.require_host(host_id, "change the budget")
            rules.require_status("setup", action="change the budget")
            tx.update_draft(draft_id, {"status": "setup"}, {"budget_per_team": budget})
            tx.reset_budgets(draft_id, budget)
            tx.record_action(
                DraftAction.create(
                    draft_id,
                    "settings_changed",
                    actor_id=host_id,
                    metadata={"budget_per_team": budget},
                )
            )
        logger.info("Draft %s budget per team set to %d", draft_id, budget)
        self._publish(draft_id, "settings_changed", {"budget_per_team": budget})

    def set_max_undos_per_team(self, draft_id: str, host_id: str, count: int) -> DraftSettings:
        """Change the undo quota (setup only); every team's count is reset to it."""
        if count < 0:
            raise _invalid("Max undos per team cannot be negative", count=count)
        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            rules = DraftRules(snapshot)
            rules.require_host(host_id, "change the undo limit")
            rules.require_status("setup", action="change the undo limit")
            settings = replace(snapshot.draft.settings, max_undos_per_team=count)
            tx.update_draft(draft_id, {"status": "setup"}, {"settings": settings})
            tx.reset_undos(draft_id, count)
            tx.record_action(
                DraftAction.create(
                    draft_id,
                    "settings_changed",
                    actor_id=host_id,
                    metadata={"max_undos_per_team": count},
                )
            )
        logger.info("Draft %s undo limit set to %d per team", draft_id, count)
        self._publish(draft_id, "settings_changed", {"max_undos_per_team": count})
        return settings

    def set_max_teams(self, draft_id: str, host_id: str, max_teams: int) -> None:
        if max_teams < MIN_TEAMS or max_teams > MAX_TEAMS:
            raise _invalid(
                f"Max teams must be between {MIN_TEAMS} and {MAX_TEAMS}", max_teams=max_teams
            )
        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            rules = DraftRules(snapshot)
            rules.require_host(host_id, "change max teams")
            rules.require_status("setup", action="change max teams")
            if max_teams < snapshot.team_count:
                raise _invalid(
                    f"Draft already has {snapshot.team_count} teams",
                    max_teams=max_teams,
                    team_count=snapshot.team_count,
                )
            tx.update_draft(draft_id, {"status": "setup"}, {"max_teams": max_teams})
            tx.record_action(
                DraftAction.create(
                    draft_id, "settings_changed", actor_id=host_id,
                    metadata={"max_teams": max_teams},
                )
            )
        logger.info("Draft %s max teams set to %d", draft_id, max_teams)
        self._publish(draft_id, "settings_changed", {"max_teams": max_teams})

    def _update_settings(
        self,
        draft_id: str,
        host_id: str,
        action: str,
        apply,
        metadata: Dict[str, Any],
        setup_only: bool = False,
    ) -> DraftSettings:
        """Read-modify-write of the settings column, conditional on status."""
        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            rules = DraftRules(snapshot)
            rules.require_host(host_id, action)
            if setup_only:
                rules.require_status("setup", action=action)
            status = snapshot.draft.status
            settings = apply(snapshot.draft.settings, status)
            tx.update_draft(draft_id, {"status": status}, {"settings": settings})
            tx.record_action(
                DraftAction.create(
                    draft_id, "settings_changed", actor_id=host_id, metadata=metadata
                )
            )

        logger.info("Draft %s settings changed: %s", draft_id, metadata)
        self._publish(draft_id, "settings_changed", metadata)
        return settings
