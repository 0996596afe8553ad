"""Timer poller for active drafts.

Resolves expired auctions and handles expired snake turns. The engine owns
no clock; this loop supplies "now" on each pass.

Usage:
    python -m src.draft_engine.run_poller [catalog_csv] [db_path] [interval_seconds]

Examples:
    python -m src.draft_engine.run_poller
    python -m src.draft_engine.run_poller data/formats/catalog.csv
    python -m src.draft_engine.run_poller data/formats/catalog.csv /tmp/drafts.db 1.0
"""

import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from src.draft_engine.auction import AuctionManager
from src.draft_engine.auto_skip import AUTO_PICKED, SKIPPED, AutoSkipHandler
from src.draft_engine.config import (
    DEFAULT_CATALOG_PATH,
    DEFAULT_DB_PATH,
    DEFAULT_POLL_INTERVAL_SECONDS,
)
from src.draft_engine.draft_controller import DraftController
from src.draft_engine.draft_state import utc_now
from src.draft_engine.draft_store import DraftStore
from src.draft_engine.errors import DraftError
from src.draft_engine.notifications import ChangeNotifier
from src.draft_engine.validator import CachingValidator, FormatCatalogValidator
from src.logging_config import setup_logging

logger = logging.getLogger(__name__)


def poll_once(
    controller: DraftController,
    auctions: AuctionManager,
    auto_skip: AutoSkipHandler,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    Run one pass over every active draft.

    A failure in one draft is logged and does not stop the pass.

    Returns:
        Counts of drafts checked, auctions resolved, auto picks, skips and errors
    """
    now = now or utc_now()
    counts = {"drafts": 0, "auctions_resolved": 0, "auto_picks": 0, "skips": 0, "errors": 0}

    for draft_id in controller.store.list_active_draft_ids():
        counts["drafts"] += 1
        try:
            snapshot = controller.store.load_snapshot(draft_id)
            if snapshot.draft.is_auction:
                if auctions.resolve_expired_auction(draft_id, now=now) is not None:
                    counts["auctions_resolved"] += 1
                continue

            result = auto_skip.handle_time_expired(draft_id, now=now)
            if result.outcome == AUTO_PICKED:
                counts["auto_picks"] += 1
            elif result.outcome == SKIPPED:
                counts["skips"] += 1
        except DraftError as e:
            counts["errors"] += 1
            logger.error("Poll failed for draft %s: [%s] %s", draft_id, e.code.value, e.message)

    if counts["auctions_resolved"] or counts["auto_picks"] or counts["skips"]:
        logger.info("Poll pass: %s", counts)
    return counts


def run(
    catalog_csv: Path,
    db_path: Optional[Path] = None,
    interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    max_passes: Optional[int] = None,
) -> int:
    """Poll until interrupted (or for ``max_passes`` passes). Returns passes run."""
    store = DraftStore(db_path or DEFAULT_DB_PATH)
    store.init_db()
    validator = CachingValidator(FormatCatalogValidator.from_csv(catalog_csv))
    notifier = ChangeNotifier()

    controller = DraftController(store, validator, notifier)
    auctions = AuctionManager(store, validator, notifier)
    auto_skip = AutoSkipHandler(controller)

    logger.info("Poller started on %s (every %.1fs)", store.db_path, interval)
    passes = 0
    try:
        while max_passes is None or passes < max_passes:
            poll_once(controller, auctions, auto_skip)
            passes += 1
            if max_passes is None or passes < max_passes:
                time.sleep(interval)
    finally:
        validator.clear()
        notifier.close()
        logger.info("Poller stopped after %d passes", passes)
    return passes


if __name__ == "__main__":
    setup_logging()

    catalog = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_CATALOG_PATH
    if not catalog.exists():
        logger.error("Catalog not found: %s", catalog)
        print(__doc__)
        sys.exit(2)

    db = Path(sys.argv[2]) if len(sys.argv) > 2 else None
    interval_seconds = float(sys.argv[3]) if len(sys.argv) > 3 else DEFAULT_POLL_INTERVAL_SECONDS

    try:
        run(catalog, db, interval_seconds)
    except KeyboardInterrupt:
        logger.info("Poller interrupted")
    except Exception:
        logger.exception("Poller failed")
        sys.exit(1)
