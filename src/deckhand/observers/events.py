# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single deploy invocation
    env: str          # dev/staging/prod
    context: Optional[str]  # kube-context

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(env: str, context: Optional[str], run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "env": env,
        "context": context,
    }


# ---------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PlanComputed(BaseEvent):
    release: str
    revision: int
    phases: List[str]
    operations: int

@dataclass(frozen=True)
class PlanFailed(BaseEvent):
    release: str
    error: str


# ---------------------------------------------------------------------
# Locking
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class LockWaiting(BaseEvent):
    lock: str

@dataclass(frozen=True)
class LockAcquired(BaseEvent):
    lock: str
    attempts: int

@dataclass(frozen=True)
class LockReleased(BaseEvent):
    lock: str
    ok: bool
    error: Optional[str] = None


# ---------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PhaseStarted(BaseEvent):
    phase: str
    operations: int

@dataclass(frozen=True)
class PhaseCompleted(BaseEvent):
    phase: str
    duration_ms: int

@dataclass(frozen=True)
class OperationCompleted(BaseEvent):
    phase: str
    operation: str
    targets: List[str]
    duration_ms: int

@dataclass(frozen=True)
class OperationFailed(BaseEvent):
    phase: str
    operation: str
    targets: List[str]
    error: str


# ---------------------------------------------------------------------
# Release lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ReleaseRecorded(BaseEvent):
    name: str
    namespace: str
    revision: int
    status: str

@dataclass(frozen=True)
class FailurePlanStarted(BaseEvent):
    release: str
    revision: int
    error: str

@dataclass(frozen=True)
class DeploySummary(BaseEvent):
    release: str
    revision: int
    status: str       # "deployed" | "failed"
    created: int
    recreated: int
    updated: int
    deleted: int
    error: Optional[str] = None
