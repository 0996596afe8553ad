"""Transactional draft store backed by SQLite.

Every write goes through ``DraftStore.transaction()``, which opens its own
connection and takes the database write lock up front (``BEGIN IMMEDIATE``).
Reads performed inside the transaction therefore see the state the writes
will be applied to, and two writers racing on the same precondition are
serialized: the second one re-reads and observes the first one's effect.

Conditional updates (``update_draft``, ``set_budget``, ``use_undo``, ``update_auction``)
additionally compare the columns they read, so a lost race always surfaces
as ``ConcurrencyError`` instead of a silent overwrite.
"""

import contextlib
import json
import logging
import sqlite3
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from src.draft_engine.config import DEFAULT_DB_PATH, STORE_BUSY_TIMEOUT_SECONDS
from src.draft_engine.draft_state import (
    Auction,
    BidHistoryEntry,
    Draft,
    DraftAction,
    DraftSettings,
    DraftSnapshot,
    Participant,
    Pick,
    Team,
    WishlistItem,
    from_iso,
    to_iso,
    utc_now,
)
from src.draft_engine.errors import (
    ConcurrencyError,
    ErrorCode,
    PreconditionError,
    UnavailableError,
    draft_not_found,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS drafts (
    id TEXT PRIMARY KEY,
    room_code TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    host_id TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'setup'
        CHECK (status IN ('setup', 'active', 'paused', 'completed')),
    current_turn INTEGER,
    current_round INTEGER NOT NULL DEFAULT 1,
    max_teams INTEGER NOT NULL,
    budget_per_team INTEGER NOT NULL CHECK (budget_per_team >= 0),
    format_id TEXT NOT NULL,
    settings TEXT NOT NULL DEFAULT '{}',
    turn_started_at TEXT,
    order_shuffled INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    retired_at TEXT
);

CREATE TABLE IF NOT EXISTS teams (
    id TEXT PRIMARY KEY,
    draft_id TEXT NOT NULL REFERENCES drafts(id),
    name TEXT NOT NULL,
    owner_id TEXT NOT NULL,
    draft_order INTEGER NOT NULL,
    budget_remaining INTEGER NOT NULL CHECK (budget_remaining >= 0),
    undos_remaining INTEGER NOT NULL DEFAULT 0 CHECK (undos_remaining >= 0),
    UNIQUE (draft_id, name COLLATE NOCASE)
);

CREATE TABLE IF NOT EXISTS participants (
    id TEXT PRIMARY KEY,
    draft_id TEXT NOT NULL REFERENCES drafts(id),
    user_id TEXT NOT NULL,
    display_name TEXT NOT NULL,
    team_id TEXT,
    is_host INTEGER NOT NULL DEFAULT 0,
    last_seen TEXT,
    UNIQUE (draft_id, user_id)
);

CREATE TABLE IF NOT EXISTS picks (
    id TEXT PRIMARY KEY,
    draft_id TEXT NOT NULL REFERENCES drafts(id),
    team_id TEXT NOT NULL REFERENCES teams(id),
    entity_id TEXT NOT NULL,
    entity_name TEXT NOT NULL,
    cost INTEGER NOT NULL CHECK (cost >= 0),
    pick_order INTEGER NOT NULL,
    round INTEGER NOT NULL,
    picked_by TEXT,
    created_at TEXT NOT NULL,
    UNIQUE (draft_id, pick_order),
    UNIQUE (draft_id, team_id, entity_id)
);

CREATE TABLE IF NOT EXISTS auctions (
    id TEXT PRIMARY KEY,
    draft_id TEXT NOT NULL REFERENCES drafts(id),
    entity_id TEXT NOT NULL,
    entity_name TEXT NOT NULL,
    nominated_by TEXT NOT NULL REFERENCES teams(id),
    current_bid INTEGER NOT NULL CHECK (current_bid >= 0),
    current_bidder TEXT REFERENCES teams(id),
    auction_end TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active'
        CHECK (status IN ('active', 'completed', 'cancelled')),
    created_at TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_one_active_auction
    ON auctions(draft_id) WHERE status = 'active';

CREATE TABLE IF NOT EXISTS bid_history (
    id TEXT PRIMARY KEY,
    auction_id TEXT NOT NULL REFERENCES auctions(id),
    draft_id TEXT NOT NULL REFERENCES drafts(id),
    team_id TEXT NOT NULL,
    team_name TEXT NOT NULL,
    amount INTEGER NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS wishlist_items (
    id TEXT PRIMARY KEY,
    draft_id TEXT NOT NULL REFERENCES drafts(id),
    participant_id TEXT NOT NULL REFERENCES participants(id),
    entity_id TEXT NOT NULL,
    entity_name TEXT NOT NULL,
    cost INTEGER NOT NULL,
    priority INTEGER NOT NULL,
    UNIQUE (draft_id, participant_id, entity_id)
);

CREATE TABLE IF NOT EXISTS draft_actions (
    id TEXT PRIMARY KEY,
    draft_id TEXT NOT NULL REFERENCES drafts(id),
    action_type TEXT NOT NULL,
    team_id TEXT,
    actor_id TEXT,
    entity_id TEXT,
    cost INTEGER,
    round INTEGER,
    pick_number INTEGER,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_picks_draft_team ON picks(draft_id, team_id);
CREATE INDEX IF NOT EXISTS idx_teams_draft_order ON teams(draft_id, draft_order);
CREATE INDEX IF NOT EXISTS idx_wishlist_priority
    ON wishlist_items(draft_id, participant_id, priority);
CREATE INDEX IF NOT EXISTS idx_draft_actions_draft ON draft_actions(draft_id, created_at);
"""

# Columns callers may change through update_draft
_DRAFT_COLUMNS = {
    "status",
    "current_turn",
    "current_round",
    "max_teams",
    "budget_per_team",
    "settings",
    "turn_started_at",
    "order_shuffled",
    "retired_at",
}


def _db_value(value: Any) -> Any:
    """Convert a model value to its column representation."""
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, DraftSettings):
        return json.dumps(value.to_dict(), sort_keys=True)
    if isinstance(value, bool):
        return int(value)
    return value


class DraftTransaction:
    """Typed reads and conditional writes bound to one open transaction."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # ── Reads ────────────────────────────────────────────────────────

    def get_draft(self, draft_id: str) -> Draft:
        row = self.conn.execute(
            "SELECT * FROM drafts WHERE id = ? AND retired_at IS NULL", (draft_id,)
        ).fetchone()
        if row is None:
            raise draft_not_found(draft_id)
        return _row_to_draft(row)

    def find_draft_id(self, room_code: str) -> Optional[str]:
        row = self.conn.execute(
            "SELECT id FROM drafts WHERE room_code = ? AND retired_at IS NULL",
            (room_code.strip().upper(),),
        ).fetchone()
        return row["id"] if row else None

    def room_code_taken(self, room_code: str) -> bool:
        """Whether any draft, retired or not, already uses the room code."""
        row = self.conn.execute(
            "SELECT 1 FROM drafts WHERE room_code = ?", (room_code.strip().upper(),)
        ).fetchone()
        return row is not None

    def load_snapshot(self, draft_id: str) -> DraftSnapshot:
        draft = self.get_draft(draft_id)
        teams = [
            _row_to_team(r)
            for r in self.conn.execute(
                "SELECT * FROM teams WHERE draft_id = ? ORDER BY draft_order", (draft_id,)
            )
        ]
        participants = [
            _row_to_participant(r)
            for r in self.conn.execute(
                "SELECT * FROM participants WHERE draft_id = ? ORDER BY rowid", (draft_id,)
            )
        ]
        picks = [
            _row_to_pick(r)
            for r in self.conn.execute(
                "SELECT * FROM picks WHERE draft_id = ? ORDER BY pick_order", (draft_id,)
            )
        ]
        auctions = [
            _row_to_auction(r)
            for r in self.conn.execute(
                "SELECT * FROM auctions WHERE draft_id = ? ORDER BY created_at, rowid",
                (draft_id,),
            )
        ]
        return DraftSnapshot(
            draft=draft,
            teams=teams,
            participants=participants,
            picks=picks,
            auctions=auctions,
        )

    def list_active_draft_ids(self) -> List[str]:
        rows = self.conn.execute(
            "SELECT id FROM drafts WHERE status = 'active' AND retired_at IS NULL "
            "ORDER BY created_at"
        ).fetchall()
        return [r["id"] for r in rows]

    def list_bids(self, auction_id: str) -> List[BidHistoryEntry]:
        rows = self.conn.execute(
            "SELECT * FROM bid_history WHERE auction_id = ? ORDER BY created_at, rowid",
            (auction_id,),
        ).fetchall()
        return [_row_to_bid(r) for r in rows]

    def list_draft_bids(self, draft_id: str) -> List[BidHistoryEntry]:
        rows = self.conn.execute(
            "SELECT * FROM bid_history WHERE draft_id = ? ORDER BY created_at, rowid",
            (draft_id,),
        ).fetchall()
        return [_row_to_bid(r) for r in rows]

    def list_wishlist(self, draft_id: str, participant_id: str) -> List[WishlistItem]:
        rows = self.conn.execute(
            "SELECT * FROM wishlist_items WHERE draft_id = ? AND participant_id = ? "
            "ORDER BY priority",
            (draft_id, participant_id),
        ).fetchall()
        return [_row_to_wishlist_item(r) for r in rows]

    def list_actions(self, draft_id: str, limit: Optional[int] = None) -> List[DraftAction]:
        sql = "SELECT * FROM draft_actions WHERE draft_id = ? ORDER BY created_at, rowid"
        params: List[Any] = [draft_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [_row_to_action(r) for r in self.conn.execute(sql, params)]

    def last_action(self, draft_id: str, action_types: Iterable[str]) -> Optional[DraftAction]:
        """Most recently recorded action of one of ``action_types``."""
        types = list(action_types)
        placeholders = ", ".join("?" for _ in types)
        row = self.conn.execute(
            f"SELECT * FROM draft_actions WHERE draft_id = ? "
            f"AND action_type IN ({placeholders}) ORDER BY rowid DESC LIMIT 1",
            [draft_id, *types],
        ).fetchone()
        return _row_to_action(row) if row else None

    # ── Inserts ──────────────────────────────────────────────────────

    def insert_draft(self, draft: Draft) -> None:
        now = to_iso(utc_now())
        self.conn.execute(
            "INSERT INTO drafts (id, room_code, name, host_id, status, current_turn, "
            "current_round, max_teams, budget_per_team, format_id, settings, "
            "turn_started_at, order_shuffled, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                draft.draft_id,
                draft.room_code.upper(),
                draft.name,
                draft.host_id,
                draft.status,
                draft.current_turn,
                draft.current_round,
                draft.max_teams,
                draft.budget_per_team,
                draft.format_id,
                _db_value(draft.settings),
                to_iso(draft.turn_started_at),
                int(draft.order_shuffled),
                to_iso(draft.created_at) or now,
                now,
            ),
        )

    def insert_team(self, team: Team) -> None:
        try:
            self.conn.execute(
                "INSERT INTO teams (id, draft_id, name, owner_id, draft_order, budget_remaining, "
                "undos_remaining) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    team.team_id,
                    team.draft_id,
                    team.name,
                    team.owner_id,
                    team.draft_order,
                    team.budget_remaining,
                    team.undos_remaining,
                ),
            )
        except sqlite3.IntegrityError as e:
            raise PreconditionError(
                f'Team name "{team.name}" is already taken',
                ErrorCode.DUPLICATE_TEAM_NAME,
                {"team_name": team.name},
            ) from e

    def insert_participant(self, participant: Participant) -> None:
        try:
            self.conn.execute(
                "INSERT INTO participants (id, draft_id, user_id, display_name, team_id, "
                "is_host, last_seen) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    participant.participant_id,
                    participant.draft_id,
                    participant.user_id,
                    participant.display_name,
                    participant.team_id,
                    int(participant.is_host),
                    to_iso(participant.last_seen),
                ),
            )
        except sqlite3.IntegrityError as e:
            raise PreconditionError(
                f"User {participant.user_id} already joined this draft",
                ErrorCode.INVALID_INPUT,
                {"user_id": participant.user_id},
            ) from e

    def insert_pick(self, pick: Pick) -> None:
        try:
            self.conn.execute(
                "INSERT INTO picks (id, draft_id, team_id, entity_id, entity_name, cost, "
                "pick_order, round, picked_by, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    pick.pick_id,
                    pick.draft_id,
                    pick.team_id,
                    pick.entity_id,
                    pick.entity_name,
                    pick.cost,
                    pick.pick_order,
                    pick.round,
                    pick.picked_by,
                    to_iso(pick.created_at or utc_now()),
                ),
            )
        except sqlite3.IntegrityError as e:
            raise ConcurrencyError(
                f"Pick slot {pick.pick_order} or entity {pick.entity_id} already taken",
                ErrorCode.ENTITY_ALREADY_PICKED,
                {"pick_order": pick.pick_order, "entity_id": pick.entity_id},
            ) from e

    def insert_auction(self, auction: Auction) -> None:
        try:
            self.conn.execute(
                "INSERT INTO auctions (id, draft_id, entity_id, entity_name, nominated_by, "
                "current_bid, current_bidder, auction_end, status, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    auction.auction_id,
                    auction.draft_id,
                    auction.entity_id,
                    auction.entity_name,
                    auction.nominated_by,
                    auction.current_bid,
                    auction.current_bidder,
                    to_iso(auction.auction_end),
                    auction.status,
                    to_iso(auction.created_at or utc_now()),
                ),
            )
        except sqlite3.IntegrityError as e:
            raise PreconditionError(
                "There is already an active auction",
                ErrorCode.ACTIVE_AUCTION_EXISTS,
                {"draft_id": auction.draft_id},
            ) from e

    def insert_bid(self, bid: BidHistoryEntry) -> None:
        self.conn.execute(
            "INSERT INTO bid_history (id, auction_id, draft_id, team_id, team_name, amount, "
            "created_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                bid.bid_id,
                bid.auction_id,
                bid.draft_id,
                bid.team_id,
                bid.team_name,
                bid.amount,
                to_iso(bid.created_at),
            ),
        )

    def insert_wishlist_item(self, item: WishlistItem) -> None:
        try:
            self.conn.execute(
                "INSERT INTO wishlist_items (id, draft_id, participant_id, entity_id, "
                "entity_name, cost, priority) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    item.item_id,
                    item.draft_id,
                    item.participant_id,
                    item.entity_id,
                    item.entity_name,
                    item.cost,
                    item.priority,
                ),
            )
        except sqlite3.IntegrityError as e:
            raise PreconditionError(
                f"{item.entity_name} is already on the wishlist",
                ErrorCode.INVALID_INPUT,
                {"entity_id": item.entity_id},
            ) from e

    def record_action(self, action: DraftAction) -> None:
        self.conn.execute(
            "INSERT INTO draft_actions (id, draft_id, action_type, team_id, actor_id, "
            "entity_id, cost, round, pick_number, metadata, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                action.action_id,
                action.draft_id,
                action.action_type,
                action.team_id,
                action.actor_id,
                action.entity_id,
                action.cost,
                action.round,
                action.pick_number,
                json.dumps(action.metadata, sort_keys=True, default=str),
                to_iso(action.created_at or utc_now()),
            ),
        )

    # ── Conditional updates ──────────────────────────────────────────

    def update_draft(
        self,
        draft_id: str,
        expected: Mapping[str, Any],
        changes: Mapping[str, Any],
    ) -> None:
        """Update the draft row only if every ``expected`` column still matches."""
        unknown = (set(changes) | set(expected)) - _DRAFT_COLUMNS
        if unknown:
            raise ValueError(f"Unknown draft columns: {sorted(unknown)}")

        assignments = [f"{col} = ?" for col in changes] + ["updated_at = ?"]
        params: List[Any] = [_db_value(v) for v in changes.values()]
        params.append(to_iso(utc_now()))

        conditions = ["id = ?", "retired_at IS NULL"]
        params.append(draft_id)
        for col, value in expected.items():
            if value is None:
                conditions.append(f"{col} IS NULL")
            else:
                conditions.append(f"{col} = ?")
                params.append(_db_value(value))

        cur = self.conn.execute(
            f"UPDATE drafts SET {', '.join(assignments)} WHERE {' AND '.join(conditions)}",
            params,
        )
        if cur.rowcount != 1:
            raise ConcurrencyError(
                "Draft changed concurrently",
                ErrorCode.TURN_CHANGED,
                {"draft_id": draft_id, "expected": {k: _db_value(v) for k, v in expected.items()}},
            )

    def set_budget(self, team_id: str, expected_budget: int, new_budget: int) -> None:
        """Compare-and-swap a team's remaining budget."""
        if new_budget < 0:
            raise PreconditionError(
                "Budget cannot be negative",
                ErrorCode.INVALID_BUDGET,
                {"team_id": team_id, "budget": new_budget},
            )
        cur = self.conn.execute(
            "UPDATE teams SET budget_remaining = ? WHERE id = ? AND budget_remaining = ?",
            (new_budget, team_id, expected_budget),
        )
        if cur.rowcount != 1:
            raise ConcurrencyError(
                "Team budget changed concurrently",
                ErrorCode.BUDGET_CHANGED,
                {"team_id": team_id, "expected_budget": expected_budget},
            )

    def reset_budgets(self, draft_id: str, budget: int) -> None:
        self.conn.execute(
            "UPDATE teams SET budget_remaining = ? WHERE draft_id = ?", (budget, draft_id)
        )

    def use_undo(self, team_id: str, expected_undos: int) -> None:
        """Spend one of the team's undos, conditional on the count read."""
        cur = self.conn.execute(
            "UPDATE teams SET undos_remaining = undos_remaining - 1 "
            "WHERE id = ? AND undos_remaining = ? AND undos_remaining > 0",
            (team_id, expected_undos),
        )
        if cur.rowcount != 1:
            raise ConcurrencyError(
                "Team undo count changed concurrently",
                ErrorCode.TURN_CHANGED,
                {"team_id": team_id, "expected_undos": expected_undos},
            )

    def reset_undos(self, draft_id: str, undos: int) -> None:
        self.conn.execute(
            "UPDATE teams SET undos_remaining = ? WHERE draft_id = ?", (undos, draft_id)
        )

    def set_team_orders(self, orders: Mapping[str, int]) -> None:
        for team_id, draft_order in orders.items():
            self.conn.execute(
                "UPDATE teams SET draft_order = ? WHERE id = ?", (draft_order, team_id)
            )

    def update_auction(
        self,
        auction_id: str,
        expected: Mapping[str, Any],
        changes: Mapping[str, Any],
    ) -> None:
        """Update an auction only if every ``expected`` column still matches."""
        assignments = [f"{col} = ?" for col in changes]
        params: List[Any] = [_db_value(v) for v in changes.values()]
        conditions = ["id = ?"]
        params.append(auction_id)
        for col, value in expected.items():
            if value is None:
                conditions.append(f"{col} IS NULL")
            else:
                conditions.append(f"{col} = ?")
                params.append(_db_value(value))

        cur = self.conn.execute(
            f"UPDATE auctions SET {', '.join(assignments)} WHERE {' AND '.join(conditions)}",
            params,
        )
        if cur.rowcount != 1:
            raise ConcurrencyError(
                "Auction changed concurrently",
                ErrorCode.BID_CHANGED,
                {"auction_id": auction_id},
            )

    def touch_participant(self, draft_id: str, user_id: str, seen_at: datetime) -> bool:
        cur = self.conn.execute(
            "UPDATE participants SET last_seen = ? WHERE draft_id = ? AND user_id = ?",
            (to_iso(seen_at), draft_id, user_id),
        )
        return cur.rowcount == 1

    def set_wishlist_priority(self, item_id: str, priority: int) -> None:
        self.conn.execute(
            "UPDATE wishlist_items SET priority = ? WHERE id = ?", (priority, item_id)
        )

    # ── Deletes ──────────────────────────────────────────────────────

    def delete_pick(self, pick_id: str) -> None:
        cur = self.conn.execute("DELETE FROM picks WHERE id = ?", (pick_id,))
        if cur.rowcount != 1:
            raise ConcurrencyError(
                "Pick was already removed", ErrorCode.UNDO_NOT_RECENT, {"pick_id": pick_id}
            )

    def delete_team(self, team_id: str) -> None:
        self.conn.execute("DELETE FROM wishlist_items WHERE participant_id IN "
                          "(SELECT id FROM participants WHERE team_id = ?)", (team_id,))
        self.conn.execute("DELETE FROM participants WHERE team_id = ?", (team_id,))
        self.conn.execute("DELETE FROM teams WHERE id = ?", (team_id,))

    def delete_participant(self, participant_id: str) -> None:
        self.conn.execute(
            "DELETE FROM wishlist_items WHERE participant_id = ?", (participant_id,)
        )
        self.conn.execute("DELETE FROM participants WHERE id = ?", (participant_id,))

    def delete_wishlist_item(self, draft_id: str, participant_id: str, entity_id: str) -> bool:
        cur = self.conn.execute(
            "DELETE FROM wishlist_items WHERE draft_id = ? AND participant_id = ? "
            "AND entity_id = ?",
            (draft_id, participant_id, entity_id),
        )
        return cur.rowcount == 1

    def clear_draft_results(self, draft_id: str) -> None:
        """Delete picks, bids and auctions (used by reset)."""
        self.conn.execute("DELETE FROM picks WHERE draft_id = ?", (draft_id,))
        self.conn.execute("DELETE FROM bid_history WHERE draft_id = ?", (draft_id,))
        self.conn.execute("DELETE FROM auctions WHERE draft_id = ?", (draft_id,))


class DraftStore:
    """SQLite-backed transactional store for draft aggregates."""

    def __init__(
        self,
        db_path: Optional[Path] = None,
        busy_timeout: float = STORE_BUSY_TIMEOUT_SECONDS,
    ):
        self.db_path = Path(db_path or DEFAULT_DB_PATH)
        self.busy_timeout = busy_timeout
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def init_db(self) -> None:
        """Create tables and indexes if they do not exist."""
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise UnavailableError(
                f"Cannot open draft store at {self.db_path}: {e}",
                ErrorCode.STORE_UNAVAILABLE,
            ) from e
        try:
            conn.execute("PRAGMA journal_mode = WAL;")
            conn.executescript(SCHEMA)
        finally:
            conn.close()
        logger.info("Draft store ready at %s", self.db_path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    @contextlib.contextmanager
    def transaction(self, write: bool = True) -> Iterator[DraftTransaction]:
        """All-or-nothing unit of work.

        Write transactions take the write lock before the first read, so the
        checks made inside the block hold when its writes commit. Any
        exception rolls everything back. Lock timeouts and I/O failures are
        surfaced as ``UnavailableError``.
        """
        conn = None
        try:
            conn = self._connect()
            conn.execute("BEGIN IMMEDIATE;" if write else "BEGIN;")
        except sqlite3.OperationalError as e:
            if conn is not None:
                conn.close()
            raise UnavailableError(
                f"Draft store unavailable: {e}", ErrorCode.STORE_UNAVAILABLE
            ) from e

        try:
            yield DraftTransaction(conn)
            conn.execute("COMMIT;")
        except sqlite3.OperationalError as e:
            conn.execute("ROLLBACK;")
            raise UnavailableError(
                f"Draft store unavailable: {e}", ErrorCode.STORE_UNAVAILABLE
            ) from e
        except BaseException:
            conn.execute("ROLLBACK;")
            raise
        finally:
            conn.close()

    # ── Point reads ──────────────────────────────────────────────────

    def load_snapshot(self, draft_id: str) -> DraftSnapshot:
        with self.transaction(write=False) as tx:
            return tx.load_snapshot(draft_id)

    def get_draft(self, draft_id: str) -> Draft:
        with self.transaction(write=False) as tx:
            return tx.get_draft(draft_id)

    def find_draft_id(self, room_code: str) -> Optional[str]:
        with self.transaction(write=False) as tx:
            return tx.find_draft_id(room_code)

    def list_active_draft_ids(self) -> List[str]:
        with self.transaction(write=False) as tx:
            return tx.list_active_draft_ids()

    def list_actions(self, draft_id: str, limit: Optional[int] = None) -> List[DraftAction]:
        with self.transaction(write=False) as tx:
            return tx.list_actions(draft_id, limit)


# ── Row conversion ───────────────────────────────────────────────────


def _row_to_draft(row: sqlite3.Row) -> Draft:
    return Draft(
        draft_id=row["id"],
        room_code=row["room_code"],
        name=row["name"],
        host_id=row["host_id"],
        status=row["status"],
        current_turn=row["current_turn"],
        current_round=row["current_round"],
        max_teams=row["max_teams"],
        budget_per_team=row["budget_per_team"],
        format_id=row["format_id"],
        settings=DraftSettings.from_dict(json.loads(row["settings"] or "{}")),
        turn_started_at=from_iso(row["turn_started_at"]),
        order_shuffled=bool(row["order_shuffled"]),
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
        retired_at=from_iso(row["retired_at"]),
    )


def _row_to_team(row: sqlite3.Row) -> Team:
    return Team(
        team_id=row["id"],
        draft_id=row["draft_id"],
        name=row["name"],
        owner_id=row["owner_id"],
        draft_order=row["draft_order"],
        budget_remaining=row["budget_remaining"],
        undos_remaining=row["undos_remaining"],
    )


def _row_to_participant(row: sqlite3.Row) -> Participant:
    return Participant(
        participant_id=row["id"],
        draft_id=row["draft_id"],
        user_id=row["user_id"],
        display_name=row["display_name"],
        team_id=row["team_id"],
        is_host=bool(row["is_host"]),
        last_seen=from_iso(row["last_seen"]),
    )


def _row_to_pick(row: sqlite3.Row) -> Pick:
    return Pick(
        pick_id=row["id"],
        draft_id=row["draft_id"],
        team_id=row["team_id"],
        entity_id=row["entity_id"],
        entity_name=row["entity_name"],
        cost=row["cost"],
        pick_order=row["pick_order"],
        round=row["round"],
        picked_by=row["picked_by"],
        created_at=from_iso(row["created_at"]),
    )


def _row_to_auction(row: sqlite3.Row) -> Auction:
    return Auction(
        auction_id=row["id"],
        draft_id=row["draft_id"],
        entity_id=row["entity_id"],
        entity_name=row["entity_name"],
        nominated_by=row["nominated_by"],
        current_bid=row["current_bid"],
        current_bidder=row["current_bidder"],
        auction_end=from_iso(row["auction_end"]),
        status=row["status"],
        created_at=from_iso(row["created_at"]),
    )


def _row_to_bid(row: sqlite3.Row) -> BidHistoryEntry:
    return BidHistoryEntry(
        bid_id=row["id"],
        auction_id=row["auction_id"],
        draft_id=row["draft_id"],
        team_id=row["team_id"],
        team_name=row["team_name"],
        amount=row["amount"],
        created_at=from_iso(row["created_at"]),
    )


def _row_to_wishlist_item(row: sqlite3.Row) -> WishlistItem:
    return WishlistItem(
        item_id=row["id"],
        draft_id=row["draft_id"],
        participant_id=row["participant_id"],
        entity_id=row["entity_id"],
        entity_name=row["entity_name"],
        cost=row["cost"],
        priority=row["priority"],
    )


def _row_to_action(row: sqlite3.Row) -> DraftAction:
    return DraftAction(
        action_id=row["id"],
        draft_id=row["draft_id"],
        action_type=row["action_type"],
        team_id=row["team_id"],
        actor_id=row["actor_id"],
        entity_id=row["entity_id"],
        cost=row["cost"],
        round=row["round"],
        pick_number=row["pick_number"],
        metadata=json.loads(row["metadata"] or "{}"),
        created_at=from_iso(row["created_at"]),
    )
