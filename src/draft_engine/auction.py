"""Auction subsystem - nomination, bidding and resolution for auction drafts.

Nomination rights rotate over teams in draft order, indexed by the number of
picks made so far. Bids replace the current bid with a conditional update on
the bid they outbid. Resolution turns the winning bid into a pick and
recomputes the draft's turn and round from the total pick count.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from src.draft_engine.config import DEFAULT_STARTING_BID
from src.draft_engine.draft_rules import DraftRules
from src.draft_engine.draft_state import (
    Auction,
    AuctionResolution,
    BidHistoryEntry,
    DraftAction,
    DraftSnapshot,
    Pick,
    Team,
    new_id,
    utc_now,
)
from src.draft_engine.draft_store import DraftStore
from src.draft_engine.errors import (
    ConcurrencyError,
    DraftError,
    ErrorCode,
    PreconditionError,
    insufficient_budget,
)
from src.draft_engine.notifications import ChangeNotifier
from src.draft_engine.validator import LegalityValidator

logger = logging.getLogger(__name__)


def _require_auction(snapshot: DraftSnapshot, auction_id: str) -> Auction:
    auction = snapshot.get_auction(auction_id)
    if auction is None:
        raise PreconditionError(
            f"Auction {auction_id} not found",
            ErrorCode.AUCTION_NOT_FOUND,
            {"auction_id": auction_id},
        )
    if auction.status != "active":
        raise PreconditionError(
            f"Auction is {auction.status}",
            ErrorCode.AUCTION_NOT_ACTIVE,
            {"auction_id": auction_id, "status": auction.status},
        )
    return auction


def _award_error(rules: DraftRules, winner: Team, auction: Auction) -> Optional[ErrorCode]:
    """Why the winning bidder can no longer take the lot, if anything.

    A budget override or a filled roster after the bid leaves the winner
    unable to pay; the auction then closes unsold instead of staying open.
    """
    try:
        rules.require_room_for(winner, auction.entity_id)
    except PreconditionError as e:
        return e.code
    if winner.budget_remaining < auction.current_bid:
        return ErrorCode.INSUFFICIENT_BUDGET
    return None


def _resolution_metadata(
    auction_id: str, pick: Optional[Pick], unsold_reason: Optional[ErrorCode]
) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {"auction_id": auction_id, "sold": pick is not None}
    if unsold_reason is not None:
        metadata["reason"] = unsold_reason.value
    return metadata


class AuctionManager:
    """Runs the nominate / bid / resolve cycle of auction drafts."""

    def __init__(
        self,
        store: DraftStore,
        validator: LegalityValidator,
        notifier: Optional[ChangeNotifier] = None,
    ):
        self.store = store
        self.validator = validator
        self.notifier = notifier

    def _publish(self, draft_id: str, event_type: str, payload: Dict[str, Any]) -> None:
        if self.notifier is not None:
            self.notifier.publish(draft_id, event_type, payload)

    # ── Nomination ───────────────────────────────────────────────────

    def nominate(
        self,
        draft_id: str,
        user_id: str,
        entity_id: str,
        starting_bid: int = DEFAULT_STARTING_BID,
        now: Optional[datetime] = None,
    ) -> Auction:
        """
        Put an entity up for auction.

        Args:
            draft_id: Auction draft to nominate in
            user_id: Acting user; their team must hold the nomination right
            entity_id: Entity to auction
            starting_bid: Opening price; the first bid must exceed it

        Returns:
            The new active Auction

        Raises:
            PreconditionError: Draft not active, another auction running,
                or the team is not the current nominator
            ValidationError: Entity is not legal in the draft's format
        """
        now = now or utc_now()
        if starting_bid < 0:
            raise PreconditionError(
                "Starting bid cannot be negative",
                ErrorCode.INVALID_INPUT,
                {"starting_bid": starting_bid},
            )

        snapshot = self.store.load_snapshot(draft_id)
        DraftRules(snapshot).require_team_for_user(user_id)
        validation = self.validator.require_legal(entity_id, snapshot.draft.format_id)

        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            rules = DraftRules(snapshot)
            rules.require_draft_type("auction")
            rules.require_status("active", action="nominate")
            team = rules.require_team_for_user(user_id)

            running = snapshot.active_auction()
            if running is not None:
                raise PreconditionError(
                    f"{running.entity_name} is already up for auction",
                    ErrorCode.ACTIVE_AUCTION_EXISTS,
                    {"auction_id": running.auction_id},
                )
            nominator = snapshot.current_nominator()
            if nominator is None or nominator.team_id != team.team_id:
                raise PreconditionError(
                    f"It's {nominator.name if nominator else 'nobody'}'s turn to nominate",
                    ErrorCode.CANNOT_NOMINATE,
                    {
                        "team_id": team.team_id,
                        "nominator_id": nominator.team_id if nominator else None,
                    },
                )

            auction = Auction(
                auction_id=new_id(),
                draft_id=draft_id,
                entity_id=entity_id,
                entity_name=validation.entity_name or entity_id,
                nominated_by=team.team_id,
                current_bid=starting_bid,
                auction_end=now
                + timedelta(seconds=snapshot.draft.settings.auction_duration_seconds),
                current_bidder=None,
                status="active",
                created_at=now,
            )
            tx.insert_auction(auction)
            tx.record_action(
                DraftAction.create(
                    draft_id,
                    "nominate",
                    team_id=team.team_id,
                    actor_id=user_id,
                    entity_id=entity_id,
                    cost=starting_bid,
                    round=snapshot.draft.current_round,
                    pick_number=len(snapshot.picks) + 1,
                )
            )

        logger.info(
            "Draft %s: %s nominated %s (opening %d, ends %s)",
            draft_id,
            team.name,
            auction.entity_name,
            starting_bid,
            auction.auction_end.isoformat(),
        )
        self._publish(draft_id, "auction_started", {"auction_id": auction.auction_id})
        return auction

    # ── Bidding ──────────────────────────────────────────────────────

    def place_bid(
        self,
        draft_id: str,
        user_id: str,
        auction_id: str,
        amount: int,
        expected_bid: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Auction:
        """
        Outbid the current bid.

        Args:
            expected_bid: The current bid the caller saw; if given and the bid
                has since moved, the attempt fails as a concurrency loss.

        Raises:
            PreconditionError: Auction missing, closed or expired, bid not
                above the current one, or the team cannot afford or hold it
            ConcurrencyError: The current bid changed underneath the caller
        """
        now = now or utc_now()
        try:
            with self.store.transaction() as tx:
                snapshot = tx.load_snapshot(draft_id)
                rules = DraftRules(snapshot)
                rules.require_draft_type("auction")
                rules.require_status("active", action="bid")
                team = rules.require_team_for_user(user_id)
                auction = _require_auction(snapshot, auction_id)

                if auction.is_expired(now):
                    raise PreconditionError(
                        "Auction has expired",
                        ErrorCode.AUCTION_EXPIRED,
                        {"auction_id": auction_id},
                    )
                if expected_bid is not None and expected_bid != auction.current_bid:
                    raise ConcurrencyError(
                        f"Bid moved to {auction.current_bid}",
                        ErrorCode.BID_CHANGED,
                        {"current_bid": auction.current_bid, "expected_bid": expected_bid},
                    )
                if amount <= auction.current_bid:
                    raise PreconditionError(
                        f"Bid must be higher than current bid of {auction.current_bid}",
                        ErrorCode.BID_TOO_LOW,
                        {"current_bid": auction.current_bid, "bid": amount},
                    )
                if amount > team.budget_remaining:
                    raise insufficient_budget(amount, team.budget_remaining, team.team_id)
                rules.require_room_for(team, auction.entity_id)

                tx.update_auction(
                    auction_id,
                    {
                        "status": "active",
                        "current_bid": auction.current_bid,
                        "current_bidder": auction.current_bidder,
                    },
                    {"current_bid": amount, "current_bidder": team.team_id},
                )
                tx.insert_bid(
                    BidHistoryEntry(
                        bid_id=new_id(),
                        auction_id=auction_id,
                        draft_id=draft_id,
                        team_id=team.team_id,
                        team_name=team.name,
                        amount=amount,
                        created_at=now,
                    )
                )
                tx.record_action(
                    DraftAction.create(
                        draft_id,
                        "bid",
                        team_id=team.team_id,
                        actor_id=user_id,
                        entity_id=auction.entity_id,
                        cost=amount,
                    )
                )
        except DraftError as e:
            logger.warning("Bid rejected in draft %s: %s", draft_id, e.message)
            raise

        logger.info("Draft %s: %s bids %d on %s", draft_id, team.name, amount, auction.entity_name)
        self._publish(draft_id, "bid_placed", {"auction_id": auction_id, "amount": amount})
        auction.current_bid = amount
        auction.current_bidder = team.team_id
        return auction

    # ── Resolution ───────────────────────────────────────────────────

    def resolve_auction(
        self,
        draft_id: str,
        auction_id: str,
        user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AuctionResolution:
        """
        Close an auction, turning a winning bid into a pick.

        Anyone may resolve an expired auction; closing one early is host-only.
        The winner's budget is charged with a conditional update on the value
        read in this transaction, so a concurrent budget change aborts the
        whole resolution. A winner who can no longer pay or has no room
        left gets nothing; the auction closes unsold with the reason logged.

        Raises:
            PreconditionError: Auction missing or closed, or early close by a
                non-host
            ConcurrencyError: The auction or the winner's budget changed
        """
        now = now or utc_now()
        try:
            with self.store.transaction() as tx:
                snapshot = tx.load_snapshot(draft_id)
                rules = DraftRules(snapshot)
                rules.require_draft_type("auction")
                rules.require_status("active", action="resolve the auction")
                auction = _require_auction(snapshot, auction_id)
                if not auction.is_expired(now):
                    rules.require_host(user_id, "close an auction early")

                pick = None
                unsold_reason = None
                if auction.current_bidder is not None:
                    winner = rules.require_team(auction.current_bidder)
                    unsold_reason = _award_error(rules, winner, auction)
                if unsold_reason is not None:
                    logger.warning(
                        "Auction %s closes unsold: winner %s cannot take it (%s)",
                        auction_id,
                        winner.name,
                        unsold_reason.value,
                    )
                elif auction.current_bidder is not None:
                    pick = Pick.create(
                        draft_id=draft_id,
                        team_id=winner.team_id,
                        entity_id=auction.entity_id,
                        entity_name=auction.entity_name,
                        cost=auction.current_bid,
                        pick_order=rules.next_pick_order(),
                        team_count=snapshot.team_count,
                        picked_by=None,
                        now=now,
                    )
                    tx.insert_pick(pick)
                    tx.set_budget(
                        winner.team_id,
                        winner.budget_remaining,
                        winner.budget_remaining - auction.current_bid,
                    )

                tx.update_auction(
                    auction_id,
                    {
                        "status": "active",
                        "current_bid": auction.current_bid,
                        "current_bidder": auction.current_bidder,
                    },
                    {"status": "completed"},
                )

                total_picks = len(snapshot.picks) + (1 if pick else 0)
                changes = rules.auction_progress_changes(total_picks, now)
                tx.update_draft(
                    draft_id,
                    {"status": "active", "current_turn": snapshot.draft.current_turn},
                    changes,
                )
                tx.record_action(
                    DraftAction.create(
                        draft_id,
                        "auction_resolved",
                        team_id=auction.current_bidder,
                        actor_id=user_id,
                        entity_id=auction.entity_id,
                        cost=auction.current_bid if pick else None,
                        round=pick.round if pick else None,
                        pick_number=pick.pick_order if pick else None,
                        metadata=_resolution_metadata(auction_id, pick, unsold_reason),
                    )
                )
        except DraftError as e:
            logger.warning("Auction %s not resolved: %s", auction_id, e.message)
            raise

        auction.status = "completed"
        is_complete = changes.get("status") == "completed"
        if pick is not None:
            logger.info(
                "Draft %s: %s sold for %d (pick %d)%s",
                draft_id,
                auction.entity_name,
                auction.current_bid,
                pick.pick_order,
                " - draft complete" if is_complete else "",
            )
        else:
            logger.info("Draft %s: %s went unsold", draft_id, auction.entity_name)

        self._publish(
            draft_id,
            "auction_resolved",
            {"auction_id": auction_id, "pick_id": pick.pick_id if pick else None},
        )
        if is_complete:
            self._publish(draft_id, "draft_completed", {})
        return AuctionResolution(
            auction=auction,
            pick=pick,
            current_turn=changes["current_turn"],
            current_round=changes["current_round"],
            is_complete=is_complete,
        )

    def resolve_expired_auction(
        self, draft_id: str, now: Optional[datetime] = None
    ) -> Optional[AuctionResolution]:
        """Poller entry point: resolve the draft's active auction if it has expired.

        Returns None when there is nothing to do, including when the draft
        vanished, stopped being active, or someone else resolved it first.
        """
        now = now or utc_now()
        try:
            snapshot = self.store.load_snapshot(draft_id)
            auction = snapshot.active_auction()
            if (
                snapshot.draft.status != "active"
                or auction is None
                or not auction.is_expired(now)
            ):
                return None
            return self.resolve_auction(draft_id, auction.auction_id, now=now)
        except ConcurrencyError as e:
            logger.debug("Expired auction in draft %s already handled: %s", draft_id, e.message)
            return None
        except PreconditionError as e:
            if e.code in (
                ErrorCode.DRAFT_NOT_FOUND,
                ErrorCode.DRAFT_NOT_ACTIVE,
                ErrorCode.DRAFT_PAUSED,
                ErrorCode.DRAFT_COMPLETED,
                ErrorCode.AUCTION_NOT_ACTIVE,
                ErrorCode.AUCTION_NOT_FOUND,
            ):
                logger.debug("Skipping auction expiry for draft %s: %s", draft_id, e.message)
                return None
            raise

    # ── Host controls ────────────────────────────────────────────────

    def extend_auction(
        self,
        draft_id: str,
        host_id: str,
        auction_id: str,
        additional_seconds: int,
    ) -> Auction:
        """Push an active auction's end time forward (host only)."""
        if additional_seconds <= 0:
            raise PreconditionError(
                "Extension must be positive",
                ErrorCode.INVALID_INPUT,
                {"additional_seconds": additional_seconds},
            )
        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            rules = DraftRules(snapshot)
            rules.require_host(host_id, "extend auctions")
            auction = _require_auction(snapshot, auction_id)
            new_end = auction.auction_end + timedelta(seconds=additional_seconds)
            tx.update_auction(
                auction_id,
                {"status": "active", "auction_end": auction.auction_end},
                {"auction_end": new_end},
            )
            tx.record_action(
                DraftAction.create(
                    draft_id,
                    "auction_extended",
                    actor_id=host_id,
                    entity_id=auction.entity_id,
                    metadata={"auction_id": auction_id, "additional_seconds": additional_seconds},
                )
            )

        logger.info("Auction %s extended by %ds", auction_id, additional_seconds)
        self._publish(draft_id, "auction_extended", {"auction_id": auction_id})
        auction.auction_end = new_end
        return auction

    def cancel_auction(self, draft_id: str, host_id: str, auction_id: str) -> Auction:
        """Cancel an active auction without a pick (host only)."""
        with self.store.transaction() as tx:
            snapshot = tx.load_snapshot(draft_id)
            rules = DraftRules(snapshot)
            rules.require_host(host_id, "cancel auctions")
            auction = _require_auction(snapshot, auction_id)
            tx.update_auction(auction_id, {"status": "active"}, {"status": "cancelled"})
            tx.record_action(
                DraftAction.create(
                    draft_id,
                    "auction_cancelled",
                    actor_id=host_id,
                    entity_id=auction.entity_id,
                    metadata={"auction_id": auction_id},
                )
            )

        logger.info("Auction %s for %s cancelled", auction_id, auction.entity_name)
        self._publish(draft_id, "auction_cancelled", {"auction_id": auction_id})
        auction.status = "cancelled"
        return auction

    # ── Queries ──────────────────────────────────────────────────────

    def get_current_auction(self, draft_id: str) -> Optional[Auction]:
        return self.store.load_snapshot(draft_id).active_auction()

    def get_bid_history(
        self, draft_id: str, auction_id: Optional[str] = None
    ) -> List[BidHistoryEntry]:
        """Accepted bids, oldest first, for one auction or the whole draft."""
        with self.store.transaction(write=False) as tx:
            tx.get_draft(draft_id)
            if auction_id is not None:
                return tx.list_bids(auction_id)
            return tx.list_draft_bids(draft_id)

    def get_auction_stats(self, draft_id: str) -> Dict[str, Any]:
        """Aggregate auction and bidding statistics for a draft."""
        snapshot = self.store.load_snapshot(draft_id)
        bids = self.get_bid_history(draft_id)
        statuses = Counter(a.status for a in snapshot.auctions)
        sold = snapshot.picks

        highest = max(bids, key=lambda b: b.amount, default=None)
        bids_per_team = Counter(b.team_name for b in bids)
        most_active = bids_per_team.most_common(1)

        return {
            "total_auctions": len(snapshot.auctions),
            "active_auctions": statuses.get("active", 0),
            "completed_auctions": statuses.get("completed", 0),
            "cancelled_auctions": statuses.get("cancelled", 0),
            "total_bids": len(bids),
            "highest_bid": (
                {"amount": highest.amount, "team_name": highest.team_name,
                 "auction_id": highest.auction_id}
                if highest
                else None
            ),
            "average_winning_bid": (
                sum(p.cost for p in sold) / len(sold) if sold else 0.0
            ),
            "most_active_team": (
                {"team_name": most_active[0][0], "bid_count": most_active[0][1]}
                if most_active
                else None
            ),
        }
