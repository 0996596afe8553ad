"""Draft initialization - creates new drafts with their host team."""

import logging
import random
from typing import Optional

from src.draft_engine.config import (
    DEFAULT_AUCTION_DURATION_SECONDS,
    DEFAULT_BUDGET_PER_TEAM,
    DEFAULT_DRAFT_TYPE,
    DEFAULT_ENTITIES_PER_TEAM,
    DEFAULT_MAX_UNDOS_PER_TEAM,
    DEFAULT_FORMAT_ID,
    DEFAULT_TIME_LIMIT_SECONDS,
    DRAFT_TYPES,
    MAX_TEAMS,
    MIN_TEAMS,
    ROOM_CODE_ALPHABET,
    ROOM_CODE_LENGTH,
)
from src.draft_engine.draft_state import (
    Draft,
    DraftAction,
    DraftSettings,
    DraftSnapshot,
    Participant,
    Team,
    new_id,
    utc_now,
)
from src.draft_engine.draft_store import DraftStore

logger = logging.getLogger(__name__)

_ROOM_CODE_ATTEMPTS = 10


class DraftInitializer:
    """Handles creation of new drafts."""

    def __init__(self, store: DraftStore, rng: Optional[random.Random] = None):
        self.store = store
        self.rng = rng or random.SystemRandom()

    def create_draft(
        self,
        name: str,
        host_id: str,
        host_name: str,
        team_name: str,
        max_teams: int = 8,
        budget_per_team: int = DEFAULT_BUDGET_PER_TEAM,
        entities_per_team: int = DEFAULT_ENTITIES_PER_TEAM,
        draft_type: str = DEFAULT_DRAFT_TYPE,
        time_limit_seconds: int = DEFAULT_TIME_LIMIT_SECONDS,
        format_id: str = DEFAULT_FORMAT_ID,
        allow_undo: bool = False,
        max_undos_per_team: int = DEFAULT_MAX_UNDOS_PER_TEAM,
        proxy_picking_enabled: bool = False,
        auction_duration_seconds: int = DEFAULT_AUCTION_DURATION_SECONDS,
    ) -> DraftSnapshot:
        """
        Create a new draft in setup with the host's team at draft order 1.

        Args:
            name: Display name of the draft
            host_id: User id of the creator, who becomes host
            host_name: Host's display name
            team_name: Name of the host's team
            max_teams: Team cap (2-20)
            budget_per_team: Starting budget for every team (> 0)
            entities_per_team: Entities each team drafts (>= 1)
            draft_type: "snake" or "auction"
            time_limit_seconds: Per-turn limit, 0 disables the timer
            format_id: Format the legality validator checks entities against
            max_undos_per_team: Undos each team may use when undo is allowed

        Returns:
            DraftSnapshot of the new draft

        Raises:
            ValueError: If any input is out of range
        """
        self._validate_inputs(
            name,
            team_name,
            max_teams,
            budget_per_team,
            entities_per_team,
            draft_type,
            time_limit_seconds,
            auction_duration_seconds,
            max_undos_per_team,
        )

        settings = DraftSettings(
            draft_type=draft_type,
            time_limit_seconds=time_limit_seconds,
            entities_per_team=entities_per_team,
            allow_undo=allow_undo,
            max_undos_per_team=max_undos_per_team,
            proxy_picking_enabled=proxy_picking_enabled,
            auction_duration_seconds=auction_duration_seconds,
        )
        now = utc_now()

        with self.store.transaction() as tx:
            room_code = self._unique_room_code(tx)
            draft = Draft(
                draft_id=new_id(),
                room_code=room_code,
                name=name.strip(),
                host_id=host_id,
                status="setup",
                current_turn=None,
                current_round=1,
                max_teams=max_teams,
                budget_per_team=budget_per_team,
                format_id=format_id,
                settings=settings,
                created_at=now,
            )
            tx.insert_draft(draft)

            team = Team(
                team_id=new_id(),
                draft_id=draft.draft_id,
                name=team_name.strip(),
                owner_id=host_id,
                draft_order=1,
                budget_remaining=budget_per_team,
                undos_remaining=settings.max_undos_per_team,
            )
            tx.insert_team(team)
            tx.insert_participant(
                Participant(
                    participant_id=new_id(),
                    draft_id=draft.draft_id,
                    user_id=host_id,
                    display_name=host_name,
                    team_id=team.team_id,
                    is_host=True,
                    last_seen=now,
                )
            )
            tx.record_action(
                DraftAction.create(
                    draft.draft_id,
                    "create",
                    team_id=team.team_id,
                    actor_id=host_id,
                    metadata={"draft_type": draft_type, "max_teams": max_teams},
                )
            )
            snapshot = tx.load_snapshot(draft.draft_id)

        logger.info(
            "Created %s draft %s (room %s): max %d teams, budget %d, %d entities per team",
            draft_type,
            draft.draft_id,
            room_code,
            max_teams,
            budget_per_team,
            entities_per_team,
        )
        return snapshot

    def _validate_inputs(
        self,
        name: str,
        team_name: str,
        max_teams: int,
        budget_per_team: int,
        entities_per_team: int,
        draft_type: str,
        time_limit_seconds: int,
        auction_duration_seconds: int,
        max_undos_per_team: int,
    ):
        """Validate draft configuration inputs."""
        if not name or not name.strip():
            raise ValueError("Draft name is required")

        if not team_name or not team_name.strip():
            raise ValueError("Team name is required")

        if max_teams < MIN_TEAMS or max_teams > MAX_TEAMS:
            raise ValueError(
                f"Max teams must be between {MIN_TEAMS} and {MAX_TEAMS}"
            )

        if budget_per_team <= 0:
            raise ValueError("Budget per team must be positive")

        if entities_per_team < 1:
            raise ValueError("Entities per team must be at least 1")

        if draft_type not in DRAFT_TYPES:
            raise ValueError(
                f"Invalid draft type '{draft_type}'. Must be one of: {DRAFT_TYPES}"
            )

        if time_limit_seconds < 0:
            raise ValueError("Time limit cannot be negative")

        if auction_duration_seconds <= 0:
            raise ValueError("Auction duration must be positive")

        if max_undos_per_team < 0:
            raise ValueError("Max undos per team cannot be negative")

    def generate_room_code(self) -> str:
        return "".join(
            self.rng.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH)
        )

    def _unique_room_code(self, tx) -> str:
        for _ in range(_ROOM_CODE_ATTEMPTS):
            code = self.generate_room_code()
            if not tx.room_code_taken(code):
                return code
        raise RuntimeError(
            f"Could not generate a unique room code in {_ROOM_CODE_ATTEMPTS} attempts"
        )
