"""Logging setup for the draft engine.

The poller (``python -m src.draft_engine.run_poller``) calls
``setup_logging()`` once at startup. Engine modules only create module-level
loggers, so embedding applications can configure logging their own way.

Output goes to ``logs/draft_engine.log`` (rotated at 5MB, 3 backups, always
DEBUG) and to the console at the requested level.
"""

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Optional

LOG_FILE_NAME = "draft_engine.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _has_file_handler(logger: logging.Logger, log_file: Path) -> bool:
    target = os.path.abspath(log_file)
    return any(
        isinstance(h, logging.handlers.RotatingFileHandler) and h.baseFilename == target
        for h in logger.handlers
    )


def setup_logging(log_level: str = "INFO", log_dir: Optional[Path] = None) -> Path:
    """Attach the engine's file and console handlers to the root logger.

    Calling it again with the same ``log_dir`` is a no-op.

    Returns:
        Path of the log file
    """
    log_dir = Path(log_dir) if log_dir else Path(__file__).parent.parent / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root_logger = logging.getLogger()
    if _has_file_handler(root_logger, log_file):
        return log_file

    console_level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    file_handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=5 * 1024 * 1024, backupCount=3
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    logging.getLogger(__name__).info(
        "Draft engine logging to %s (console level %s)", log_file, log_level.upper()
    )
    return log_file
