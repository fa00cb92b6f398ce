# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/utils/context.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..observers.dispatcher import EventBus
from ..observers.events import new_ctx


@dataclass(frozen=True)
class DeployContext:
    """
    Per-invocation state threaded through planning and execution:
    run id, event bus, logger and the dry-run switch.
    """

    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    env: str = "dev"
    kube_context: Optional[str] = None
    dry_run: bool = False
    bus: EventBus = field(default_factory=EventBus)
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("deckhand"))

    @classmethod
    def create(
        cls,
        *,
        env: str = "dev",
        kube_context: Optional[str] = None,
        observers: Optional[List] = None,
        logger: Optional[logging.Logger] = None,
        run_id: Optional[str] = None,
        dry_run: bool = False,
    ) -> "DeployContext":
        return cls(
            run_id=run_id or str(uuid.uuid4()),
            env=env,
            kube_context=kube_context,
            dry_run=dry_run,
            bus=EventBus(observers or []),
            logger=logger or logging.getLogger("deckhand"),
        )

    def event_fields(self) -> Dict[str, Any]:
        return new_ctx(self.env, self.kube_context, run_id=self.run_id)

    def emit(self, event_cls, **kwargs) -> None:
        self.bus.emit(event_cls(**kwargs, **self.event_fields()))
