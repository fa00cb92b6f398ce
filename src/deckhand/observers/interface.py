# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/observers/interface.py
from __future__ import annotations
from typing import Protocol
from .events import BaseEvent


class Observer(Protocol):
    """
    Anything with notify(). Called synchronously from whichever thread
    emitted the event, so implementations that hold state need a lock.
    """

    def notify(self, event: BaseEvent) -> None: ...
