"""Centralized logging configuration for orgxclaw.

Sets up Python's logging system to write to both stdout and a rotating
log file in the configured log directory. Store mutations are mirrored
to a dedicated JSONL logger so a host operator can reconstruct what
changed on disk and when.

Log directory structure::

    ~/.config/useorgx/openclaw-plugin/logs/
    ├── orgxclaw.log          # All Python logger output (rotating)
    └── store-events.log      # One JSON record per store mutation
"""
from __future__ import annotations

import json
import logging
import logging.handlers
import os
import time
from typing import Any

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

store_event_logger = logging.getLogger("orgxclaw._store_events")


def _rotating_handler(path: str, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
    )
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_dir: str, log_level: str = "info") -> None:
    """Route all loggers to stdout and orgxclaw.log, and store events to store-events.log.

    Replaces any handlers already on the root logger, so calling it again
    does not duplicate output.
    """
    os.makedirs(log_dir, mode=0o700, exist_ok=True)
    level = getattr(logging, log_level.upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    main_file = _rotating_handler(os.path.join(log_dir, "orgxclaw.log"), formatter)
    main_file.setLevel(logging.DEBUG)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers[:] = [console, main_file]

    # store events carry pre-rendered JSON and stay out of orgxclaw.log
    store_event_logger.setLevel(logging.INFO)
    store_event_logger.propagate = False
    store_event_logger.handlers[:] = [
        _rotating_handler(os.path.join(log_dir, "store-events.log"), logging.Formatter("%(message)s"))
    ]

    logging.getLogger("orgxclaw").info("Logging to %s at level %s", log_dir, log_level)


def log_store_event(store: str, action: str, **fields: Any) -> None:
    """Record a store mutation to the dedicated store-events log."""
    record: dict[str, Any] = {
        "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "store": store,
        "action": action,
    }
    for key, value in fields.items():
        if value is not None:
            record[key] = value
    try:
        store_event_logger.info(json.dumps(record, default=str))
    except Exception:  # noqa: BLE001
        pass
