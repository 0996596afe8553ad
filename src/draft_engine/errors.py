"""Error taxonomy for draft operations.

Every failure surfaced by the engine is a ``DraftError`` subclass:

- ``PreconditionError``: wrong turn, wrong status, insufficient budget, entity
  taken, cap reached, not the nominator, host-only actions. Never retried.
- ``ValidationError``: the legality validator rejected the entity.
- ``ConcurrencyError``: an atomic conditional update found its precondition
  already changed. Callers refetch state and decide whether to retry.
- ``UnavailableError``: the store or validator could not be reached.
  Transient, callers may retry with backoff.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    # Draft state
    DRAFT_NOT_FOUND = "DRAFT_NOT_FOUND"
    DRAFT_NOT_ACTIVE = "DRAFT_NOT_ACTIVE"
    DRAFT_ALREADY_STARTED = "DRAFT_ALREADY_STARTED"
    DRAFT_COMPLETED = "DRAFT_COMPLETED"
    DRAFT_PAUSED = "DRAFT_PAUSED"
    INVALID_DRAFT_STATE = "INVALID_DRAFT_STATE"
    NOT_ENOUGH_TEAMS = "NOT_ENOUGH_TEAMS"
    INVALID_DRAFT_ORDER = "INVALID_DRAFT_ORDER"
    WRONG_DRAFT_TYPE = "WRONG_DRAFT_TYPE"

    # Turns and picks
    NOT_YOUR_TURN = "NOT_YOUR_TURN"
    TURN_CHANGED = "TURN_CHANGED"
    MAX_PICKS_REACHED = "MAX_PICKS_REACHED"
    ENTITY_ALREADY_PICKED = "ENTITY_ALREADY_PICKED"
    PROXY_PICKING_DISABLED = "PROXY_PICKING_DISABLED"

    # Teams and participants
    TEAM_NOT_FOUND = "TEAM_NOT_FOUND"
    USER_NOT_IN_DRAFT = "USER_NOT_IN_DRAFT"
    NO_TEAM = "NO_TEAM"
    HOST_ONLY = "HOST_ONLY"
    DUPLICATE_TEAM_NAME = "DUPLICATE_TEAM_NAME"
    TEAM_WITHOUT_PARTICIPANT = "TEAM_WITHOUT_PARTICIPANT"
    ORPHANED_PARTICIPANT = "ORPHANED_PARTICIPANT"

    # Budget
    INSUFFICIENT_BUDGET = "INSUFFICIENT_BUDGET"
    INVALID_BUDGET = "INVALID_BUDGET"
    BUDGET_CHANGED = "BUDGET_CHANGED"

    # Entities
    ENTITY_NOT_LEGAL = "ENTITY_NOT_LEGAL"

    # Auctions
    AUCTION_NOT_FOUND = "AUCTION_NOT_FOUND"
    AUCTION_NOT_ACTIVE = "AUCTION_NOT_ACTIVE"
    AUCTION_EXPIRED = "AUCTION_EXPIRED"
    BID_TOO_LOW = "BID_TOO_LOW"
    BID_CHANGED = "BID_CHANGED"
    CANNOT_NOMINATE = "CANNOT_NOMINATE"
    ACTIVE_AUCTION_EXISTS = "ACTIVE_AUCTION_EXISTS"

    # Undo
    UNDO_NOT_ENABLED = "UNDO_NOT_ENABLED"
    UNDO_NO_PICKS = "UNDO_NO_PICKS"
    UNDO_NOT_RECENT = "UNDO_NOT_RECENT"
    UNDO_LIMIT_REACHED = "UNDO_LIMIT_REACHED"

    # Input
    INVALID_INPUT = "INVALID_INPUT"

    # System
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    VALIDATOR_UNAVAILABLE = "VALIDATOR_UNAVAILABLE"


class DraftError(Exception):
    """Base class for all typed draft failures."""

    retryable = False

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form for API responses and logs."""
        return {
            "error": type(self).__name__,
            "code": self.code.value,
            "message": self.message,
            "context": self.context,
            "retryable": self.retryable,
            "timestamp": self.timestamp,
        }


class PreconditionError(DraftError):
    """Raised when an operation's precondition does not hold."""


class ValidationError(DraftError):
    """Raised when the legality validator rejects an entity."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.ENTITY_NOT_LEGAL, context)


class ConcurrencyError(DraftError):
    """Raised when a conditional update lost a race to another writer."""


class UnavailableError(DraftError):
    """Raised when a collaborator (store or validator) cannot be reached."""

    retryable = True


def draft_not_found(draft_id: str) -> PreconditionError:
    return PreconditionError(
        f"Draft {draft_id} not found", ErrorCode.DRAFT_NOT_FOUND, {"draft_id": draft_id}
    )


def host_only(user_id: Optional[str], action: str) -> PreconditionError:
    return PreconditionError(
        f"Only the host can {action}",
        ErrorCode.HOST_ONLY,
        {"user_id": user_id, "action": action},
    )


def insufficient_budget(required: int, available: int, team_id: str) -> PreconditionError:
    return PreconditionError(
        f"Insufficient budget: need {required}, have {available}",
        ErrorCode.INSUFFICIENT_BUDGET,
        {"budget_required": required, "budget_available": available, "team_id": team_id},
    )


def turn_changed(current_turn: Optional[int], expected_turn: int) -> ConcurrencyError:
    return ConcurrencyError(
        f"Turn has changed (current {current_turn}, expected {expected_turn})",
        ErrorCode.TURN_CHANGED,
        {"current_turn": current_turn, "expected_turn": expected_turn},
    )
