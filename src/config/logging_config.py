# src/config/logging_config.py

"""Logging for CLI runs and the long-lived scheduler daemon.

Every process writes to its own ``logs/run_<timestamp>.log``. The
scheduler can stay up for weeks, so the file rotates by size and only
the newest ``LOG_KEEP_RUNS`` run logs survive a new launch.
"""

import logging
import logging.handlers
import sys
from datetime import datetime
from pathlib import Path

from src.config.settings import Settings

_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | %(threadName)s | "
    "%(module)s:%(funcName)s:%(lineno)d | %(message)s"
)
_STDERR_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# chatty libraries that only matter when something is wrong
_NOISY_LOGGERS = ("asyncio", "urllib3", "charset_normalizer", "playwright")


def _prune_old_runs(logs_dir: Path, keep: int) -> int:
    """Delete all but the newest *keep* run logs (and their rotations)."""
    runs = sorted(logs_dir.glob("run_*.log"), reverse=True)
    removed = 0
    for stale in runs[keep:]:
        for path in (stale, *logs_dir.glob(f"{stale.name}.*")):
            try:
                path.unlink()
                removed += 1
            except OSError:
                continue
    return removed


def setup_logging(console_level: int = logging.WARNING) -> Path:
    """Attach a rotating run-log file and a stderr handler to ``pricepulse``.

    Calling it again only adjusts the stderr level; the handlers from the
    first call stay in place.

    Returns:
        Path of this run's log file.
    """
    project_logger = logging.getLogger("pricepulse")
    project_logger.setLevel(logging.DEBUG)

    existing = [
        h for h in project_logger.handlers
        if isinstance(h, logging.FileHandler)
    ]
    if existing:
        for handler in project_logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(console_level)
        return Path(existing[0].baseFilename)

    logs_dir: Path = Settings.LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)
    pruned = _prune_old_runs(logs_dir, max(Settings.LOG_KEEP_RUNS - 1, 0))
    log_file = logs_dir / f"run_{datetime.now():%Y%m%d_%H%M%S}.log"

    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=Settings.LOG_MAX_BYTES,
        backupCount=Settings.LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, _DATE_FORMAT))

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(console_level)
    stderr_handler.setFormatter(
        logging.Formatter(_STDERR_FORMAT, _DATE_FORMAT)
    )

    project_logger.addHandler(file_handler)
    project_logger.addHandler(stderr_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    project_logger.info(
        "Logging to %s (pruned %d old file(s))", log_file, pruned,
    )
    return log_file
