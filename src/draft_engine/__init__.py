from src.draft_engine.auction import AuctionManager
from src.draft_engine.auto_skip import AutoSkipHandler, AutoSkipResult
from src.draft_engine.draft_admin import DraftAdmin
from src.draft_engine.draft_controller import (
    DraftController,
    Joined,
    JoinedAsSpectator,
    Rejected,
)
from src.draft_engine.draft_initializer import DraftInitializer
from src.draft_engine.draft_order import generate_order
from src.draft_engine.draft_rules import DraftRules
from src.draft_engine.draft_state import (
    Auction,
    Draft,
    DraftSettings,
    DraftSnapshot,
    Participant,
    Pick,
    Team,
)
from src.draft_engine.draft_store import DraftStore
from src.draft_engine.errors import (
    ConcurrencyError,
    DraftError,
    ErrorCode,
    PreconditionError,
    UnavailableError,
    ValidationError,
)
from src.draft_engine.notifications import ChangeNotifier
from src.draft_engine.undo import UndoManager
from src.draft_engine.validator import (
    CachingValidator,
    FormatCatalogValidator,
    LegalityValidator,
)
from src.draft_engine.wishlist import WishlistManager

__all__ = [
    "Auction",
    "AuctionManager",
    "AutoSkipHandler",
    "AutoSkipResult",
    "CachingValidator",
    "ChangeNotifier",
    "ConcurrencyError",
    "Draft",
    "DraftAdmin",
    "DraftController",
    "DraftError",
    "DraftInitializer",
    "DraftRules",
    "DraftSettings",
    "DraftSnapshot",
    "DraftStore",
    "ErrorCode",
    "FormatCatalogValidator",
    "Joined",
    "JoinedAsSpectator",
    "LegalityValidator",
    "Participant",
    "Pick",
    "PreconditionError",
    "Rejected",
    "Team",
    "UnavailableError",
    "UndoManager",
    "ValidationError",
    "WishlistManager",
    "generate_order",
]
