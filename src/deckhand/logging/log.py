# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

#src/deckhand/logging/log.py

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

# wire-level loggers that drown the run log at DEBUG
_NOISY = ("kubernetes", "urllib3")


def _file_handler(path: Path) -> logging.Handler:
    # tracker and classifier pools log from worker threads
    fh = logging.FileHandler(path)
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(threadName)-18s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    return fh


def _console_handler(verbose: bool) -> logging.Handler:
    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(logging.Formatter("%(asctime)s | %(levelname)-7s | %(message)s", datefmt="%H:%M:%S"))
    return ch


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "deckhand",
    verbose: bool = False,
    run_id: str | None = None,
) -> tuple[logging.Logger, str, Path]:
    """
    One log file per run with the full DEBUG trace, console at INFO
    (DEBUG with verbose). Returns the run_id so the deploy context and
    observers can stamp their events with it.
    """
    run_id = run_id or str(uuid.uuid4())

    base_dir = base_dir or Path.home() / ".deckhand" / "logs"
    base_dir.mkdir(parents=True, exist_ok=True)
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{name}-{ts}-{run_id}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()
    logger.propagate = False
    logger.addHandler(_file_handler(log_path))
    logger.addHandler(_console_handler(verbose))

    for noisy in _NOISY:
        logging.getLogger(noisy).setLevel(logging.INFO if verbose else logging.WARNING)

    logger.info("=== deckhand run %s ===", run_id)
    logger.debug("log_file=%s", log_path)
    return logger, run_id, log_path
