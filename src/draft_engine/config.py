from pathlib import Path

# Base project directory
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Data directories
DATA_DIR = PROJECT_ROOT / "data"
DRAFTS_DIR = DATA_DIR / "drafts"
FORMATS_DIR = DATA_DIR / "formats"
DEFAULT_DB_PATH = DRAFTS_DIR / "drafts.db"
DEFAULT_CATALOG_PATH = FORMATS_DIR / "catalog.csv"

# Draft defaults
DEFAULT_DRAFT_TYPE = "snake"
DRAFT_TYPES = ("snake", "auction")
DEFAULT_FORMAT_ID = "default"
DEFAULT_BUDGET_PER_TEAM = 100
DEFAULT_ENTITIES_PER_TEAM = 6
DEFAULT_TIME_LIMIT_SECONDS = 60
DEFAULT_AUCTION_DURATION_SECONDS = 60
DEFAULT_STARTING_BID = 1
DEFAULT_MAX_UNDOS_PER_TEAM = 3
MIN_TEAMS = 2
MAX_TEAMS = 20

# Room codes
ROOM_CODE_LENGTH = 6
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

# Participants seen within this window count as online
PRESENCE_WINDOW_SECONDS = 30

# How long a writer waits for the store's write lock before failing
STORE_BUSY_TIMEOUT_SECONDS = 5.0

# Poller
DEFAULT_POLL_INTERVAL_SECONDS = 2.0
