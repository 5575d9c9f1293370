# rivalwatch/config/logging_config.py

"""Logging for one monitoring run.

Every invocation writes ``logs/run_<YYYYmmdd_HHMMSS>.log`` at DEBUG level
and keeps only the newest ``Settings.MAX_LOG_FILES`` run logs.  The
console gets warnings (or INFO with ``verbose``) on stderr, because
stdout carries the CLI's JSON and tables.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from rivalwatch.config.settings import Settings

_FILE_FORMAT = (
    "%(asctime)s.%(msecs)03d | %(levelname)-8s | %(name)s | "
    "%(funcName)s:%(lineno)d | %(message)s"
)
_CONSOLE_FORMAT = "%(levelname)-8s %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty HTTP client loggers, capped so request dumps stay out of run logs
_NOISY_LOGGERS = ("httpx", "httpcore", "anthropic")


def _prune_old_logs(logs_dir: Path, keep: int) -> None:
    runs = sorted(logs_dir.glob("run_*.log"))
    for stale in runs[:-keep] if keep > 0 else []:
        try:
            stale.unlink()
        except OSError as exc:
            logging.getLogger("rivalwatch").debug(
                "Could not remove old log %s: %s", stale, exc,
            )


def setup_logging(verbose: bool = False) -> Path:
    """Attach the run's file and console handlers to ``rivalwatch``.

    Repeated calls keep the handlers of the first call and return that
    call's log file.
    """
    root_logger = logging.getLogger("rivalwatch")
    root_logger.setLevel(logging.DEBUG)

    for handler in root_logger.handlers:
        if isinstance(handler, logging.FileHandler):
            return Path(handler.baseFilename)

    logs_dir: Path = Settings.LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = logs_dir / f"run_{datetime.now():%Y%m%d_%H%M%S}.log"

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT)
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.INFO if verbose else logging.WARNING)
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _prune_old_logs(logs_dir, Settings.MAX_LOG_FILES)
    root_logger.info("Run log: %s", log_file)
    return log_file
