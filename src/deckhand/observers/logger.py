# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/observers/logger.py
from __future__ import annotations
import logging
from .events import BaseEvent

# already carried by the run log itself
_SKIP = ("ts", "run_id", "env", "context")


class LoggerObserver:
    """Mirrors events into the run log; failures go out at WARNING."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        etype = event.__class__.__name__
        fields = ", ".join(f"{k}={v}" for k, v in event.dict().items() if k not in _SKIP)
        failed = etype.endswith("Failed") or getattr(event, "ok", True) is False or getattr(event, "status", "") == "failed"
        self.logger.log(logging.WARNING if failed else logging.INFO, "[EVENT] %s: %s", etype, fields)
