"""Draft state data models - the aggregate the engine reads and mutates."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
import uuid

from src.draft_engine.config import (
    DEFAULT_AUCTION_DURATION_SECONDS,
    DEFAULT_DRAFT_TYPE,
    DEFAULT_ENTITIES_PER_TEAM,
    DEFAULT_MAX_UNDOS_PER_TEAM,
    DEFAULT_TIME_LIMIT_SECONDS,
    PRESENCE_WINDOW_SECONDS,
)
from src.draft_engine.draft_order import (
    nominator_index,
    round_for_turn,
    team_order_for_turn,
    total_turns,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp; naive values are treated as UTC."""
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class DraftSettings:
    """Per-draft settings, written only through the administrative surface."""

    draft_type: str = DEFAULT_DRAFT_TYPE  # "snake" or "auction"
    time_limit_seconds: int = DEFAULT_TIME_LIMIT_SECONDS  # 0 disables the turn timer
    entities_per_team: int = DEFAULT_ENTITIES_PER_TEAM
    allow_undo: bool = False
    max_undos_per_team: int = DEFAULT_MAX_UNDOS_PER_TEAM  # per team, restored on reset
    proxy_picking_enabled: bool = False
    auction_duration_seconds: int = DEFAULT_AUCTION_DURATION_SECONDS
    pending_time_limit_seconds: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "draft_type": self.draft_type,
            "time_limit_seconds": self.time_limit_seconds,
            "entities_per_team": self.entities_per_team,
            "allow_undo": self.allow_undo,
            "max_undos_per_team": self.max_undos_per_team,
            "proxy_picking_enabled": self.proxy_picking_enabled,
            "auction_duration_seconds": self.auction_duration_seconds,
            "pending_time_limit_seconds": self.pending_time_limit_seconds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DraftSettings":
        defaults = cls()
        return cls(
            draft_type=data.get("draft_type", defaults.draft_type),
            time_limit_seconds=data.get("time_limit_seconds", defaults.time_limit_seconds),
            entities_per_team=data.get("entities_per_team", defaults.entities_per_team),
            allow_undo=data.get("allow_undo", defaults.allow_undo),
            max_undos_per_team=data.get("max_undos_per_team", defaults.max_undos_per_team),
            proxy_picking_enabled=data.get(
                "proxy_picking_enabled", defaults.proxy_picking_enabled
            ),
            auction_duration_seconds=data.get(
                "auction_duration_seconds", defaults.auction_duration_seconds
            ),
            pending_time_limit_seconds=data.get("pending_time_limit_seconds"),
        )


@dataclass
class Draft:
    """A single draft session."""

    draft_id: str
    room_code: str
    name: str
    host_id: str
    status: str
    current_turn: Optional[int]
    current_round: int
    max_teams: int
    budget_per_team: int
    format_id: str
    settings: DraftSettings = field(default_factory=DraftSettings)
    turn_started_at: Optional[datetime] = None
    order_shuffled: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    retired_at: Optional[datetime] = None

    @property
    def is_auction(self) -> bool:
        return self.settings.draft_type == "auction"

    @property
    def is_snake(self) -> bool:
        return self.settings.draft_type == "snake"


@dataclass
class Team:
    """A team competing in a draft."""

    team_id: str
    draft_id: str
    name: str
    owner_id: str
    draft_order: int
    budget_remaining: int
    undos_remaining: int = DEFAULT_MAX_UNDOS_PER_TEAM


@dataclass
class Participant:
    """A connected user; participants without a team are spectators."""

    participant_id: str
    draft_id: str
    user_id: str
    display_name: str
    team_id: Optional[str] = None
    is_host: bool = False
    last_seen: Optional[datetime] = None

    @property
    def is_spectator(self) -> bool:
        return self.team_id is None

    def is_online(
        self, now: Optional[datetime] = None, window_seconds: int = PRESENCE_WINDOW_SECONDS
    ) -> bool:
        """Whether the participant was seen within the presence window."""
        if self.last_seen is None:
            return False
        now = now or utc_now()
        return now - self.last_seen <= timedelta(seconds=window_seconds)


@dataclass
class Pick:
    """A committed acquisition of one entity by one team."""

    pick_id: str
    draft_id: str
    team_id: str
    entity_id: str
    entity_name: str
    cost: int
    pick_order: int
    round: int
    picked_by: Optional[str] = None  # acting user; None for automatic picks
    created_at: Optional[datetime] = None

    @classmethod
    def create(
        cls,
        draft_id: str,
        team_id: str,
        entity_id: str,
        entity_name: str,
        cost: int,
        pick_order: int,
        team_count: int,
        picked_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "Pick":
        return cls(
            pick_id=new_id(),
            draft_id=draft_id,
            team_id=team_id,
            entity_id=entity_id,
            entity_name=entity_name,
            cost=cost,
            pick_order=pick_order,
            round=round_for_turn(pick_order, team_count),
            picked_by=picked_by,
            created_at=now or utc_now(),
        )


@dataclass
class Auction:
    """A bid-based acquisition of one nominated entity."""

    auction_id: str
    draft_id: str
    entity_id: str
    entity_name: str
    nominated_by: str
    current_bid: int
    auction_end: datetime
    current_bidder: Optional[str] = None
    status: str = "active"
    created_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) > self.auction_end


@dataclass
class BidHistoryEntry:
    """Append-only audit record of an accepted bid."""

    bid_id: str
    auction_id: str
    draft_id: str
    team_id: str
    team_name: str
    amount: int
    created_at: datetime


@dataclass
class WishlistItem:
    """One ranked entry in a participant's wishlist (priority 1 is highest)."""

    item_id: str
    draft_id: str
    participant_id: str
    entity_id: str
    entity_name: str
    cost: int
    priority: int


@dataclass
class DraftAction:
    """Audit log entry for a committed mutation."""

    action_id: str
    draft_id: str
    action_type: str
    team_id: Optional[str] = None
    actor_id: Optional[str] = None
    entity_id: Optional[str] = None
    cost: Optional[int] = None
    round: Optional[int] = None
    pick_number: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    @classmethod
    def create(cls, draft_id: str, action_type: str, **kwargs) -> "DraftAction":
        kwargs.setdefault("created_at", utc_now())
        return cls(action_id=new_id(), draft_id=draft_id, action_type=action_type, **kwargs)


@dataclass
class DraftSnapshot:
    """Everything belonging to one draft, read at a single point in time."""

    draft: Draft
    teams: List[Team]
    participants: List[Participant]
    picks: List[Pick]
    auctions: List[Auction]

    @property
    def team_count(self) -> int:
        return len(self.teams)

    @property
    def total_turns(self) -> int:
        return total_turns(self.team_count, self.draft.settings.entities_per_team)

    def teams_by_order(self) -> List[Team]:
        return sorted(self.teams, key=lambda t: t.draft_order)

    def get_team(self, team_id: str) -> Optional[Team]:
        return next((t for t in self.teams if t.team_id == team_id), None)

    def get_team_by_order(self, draft_order: int) -> Optional[Team]:
        return next((t for t in self.teams if t.draft_order == draft_order), None)

    def get_participant(self, user_id: str) -> Optional[Participant]:
        return next((p for p in self.participants if p.user_id == user_id), None)

    def get_participant_by_id(self, participant_id: str) -> Optional[Participant]:
        return next(
            (p for p in self.participants if p.participant_id == participant_id), None
        )

    def participants_for_team(self, team_id: str) -> List[Participant]:
        return [p for p in self.participants if p.team_id == team_id]

    def picks_for_team(self, team_id: str) -> List[Pick]:
        return [p for p in self.picks if p.team_id == team_id]

    def last_pick(self) -> Optional[Pick]:
        return max(self.picks, key=lambda p: p.pick_order, default=None)

    def is_entity_picked(self, entity_id: str) -> bool:
        """Whether any team has already picked the entity."""
        return any(p.entity_id == entity_id for p in self.picks)

    def active_auction(self) -> Optional[Auction]:
        return next((a for a in self.auctions if a.status == "active"), None)

    def get_auction(self, auction_id: str) -> Optional[Auction]:
        return next((a for a in self.auctions if a.auction_id == auction_id), None)

    def current_team(self) -> Optional[Team]:
        """The team due to act on the current turn.

        Snake drafts follow the boustrophedon order; auction drafts return the
        team holding the nomination right.
        """
        if self.draft.is_auction:
            return self.current_nominator()
        if self.draft.current_turn is None or self.team_count == 0:
            return None
        order = team_order_for_turn(
            self.draft.current_turn,
            self.team_count,
            self.draft.settings.entities_per_team,
        )
        if order is None:
            return None
        return self.get_team_by_order(order)

    def current_nominator(self) -> Optional[Team]:
        """Round-robin nominator, indexed by total picks so far."""
        if self.team_count == 0:
            return None
        ordered = self.teams_by_order()
        return ordered[nominator_index(len(self.picks), self.team_count)]

    def budget_spent(self, team_id: str) -> int:
        return sum(p.cost for p in self.picks_for_team(team_id))


@dataclass
class PickResult:
    """Outcome of a successful pick commit."""

    pick: Pick
    budget_remaining: int
    next_turn: int
    next_round: int
    is_complete: bool


@dataclass
class AuctionResolution:
    """Outcome of resolving an auction."""

    auction: Auction
    pick: Optional[Pick]
    current_turn: int
    current_round: int
    is_complete: bool


@dataclass
class UndoResult:
    """Outcome of undoing the most recent pick."""

    pick: Pick
    budget_remaining: int
    undos_remaining: int
    current_turn: int
    current_round: int
    status: str
