# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/kube/tracker.py
from __future__ import annotations

import concurrent.futures
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence

from ..errors import TrackingError
from ..resource.common import FailMode, TrackTerminationMode
from ..resource.reference import Reference
from ..resource.resource import (
    Resource,
    fail_mode,
    failures_allowed_per_replica,
    no_activity_timeout,
    track_termination_mode,
)
from .client import KubeClient
from .errors import KubeError
from .readiness import ReadyState, readiness

log = logging.getLogger("deckhand")


@dataclass(frozen=True)
class TrackTarget:
    ref: Reference
    failures_allowed: int = 1
    fail_mode: FailMode = FailMode.FAIL_IMMEDIATELY
    non_blocking: bool = False
    no_activity_timeout: Optional[float] = None

    @classmethod
    def from_resource(cls, res: Resource) -> "TrackTarget":
        return cls(
            ref=res.ref,
            failures_allowed=failures_allowed_per_replica(res),
            fail_mode=fail_mode(res),
            non_blocking=track_termination_mode(res) == TrackTerminationMode.NON_BLOCKING,
            no_activity_timeout=no_activity_timeout(res),
        )


class Tracker(Protocol):
    def track_readiness(self, targets: Sequence[TrackTarget], timeout: float) -> None: ...

    def track_absence(self, refs: Sequence[Reference], timeout: float) -> None: ...


@dataclass(frozen=True)
class _Outcome:
    ref: Reference
    ok: bool
    reason: str
    fail_mode: FailMode = FailMode.FAIL_IMMEDIATELY


class KubeTracker:
    """
    Polls each target in its own task. The calling thread collects the
    outcomes; tasks share no mutable state.
    """

    def __init__(
        self,
        client: KubeClient,
        poll_period: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client = client
        self.poll_period = poll_period
        self._clock = clock
        self._sleep = sleep

    # ------------------------------------------------------------------
    # per-target tasks
    # ------------------------------------------------------------------
    def _wait_ready(self, target: TrackTarget, timeout: float) -> _Outcome:
        start = self._clock()
        deadline = start + timeout
        last_msg = ""
        last_activity = start

        while True:
            try:
                obj = self._client.get(target.ref)
                state, msg = readiness(obj, target.failures_allowed)
            except KubeError as e:
                state, msg = ReadyState.PENDING, f"get failed: {e}"

            now = self._clock()
            if state == ReadyState.READY:
                log.debug("[track] %s ready: %s", target.ref, msg)
                return _Outcome(target.ref, True, msg, target.fail_mode)
            if state == ReadyState.FAILED:
                return _Outcome(target.ref, False, msg, target.fail_mode)

            if msg != last_msg:
                log.debug("[track] %s: %s", target.ref, msg)
                last_msg, last_activity = msg, now
            elif target.no_activity_timeout and now - last_activity >= target.no_activity_timeout:
                return _Outcome(
                    target.ref, False,
                    f"no activity for {target.no_activity_timeout:g}s, last status: {msg}",
                    target.fail_mode,
                )

            if now >= deadline:
                return _Outcome(target.ref, False, f"timed out after {timeout:g}s, last status: {msg}", target.fail_mode)
            self._sleep(self.poll_period)

    def _wait_absent(self, ref: Reference, timeout: float) -> _Outcome:
        deadline = self._clock() + timeout
        while True:
            try:
                if self._client.get(ref) is None:
                    return _Outcome(ref, True, "absent")
                msg = "still present"
            except KubeError as e:
                msg = f"get failed: {e}"
            if self._clock() >= deadline:
                return _Outcome(ref, False, f"timed out after {timeout:g}s, {msg}")
            self._sleep(self.poll_period)

    # ------------------------------------------------------------------
    # collector
    # ------------------------------------------------------------------
    def _collect(self, fn, items: Sequence, timeout: float) -> List[_Outcome]:
        if not items:
            return []
        outcomes: List[_Outcome] = []
        with concurrent.futures.ThreadPoolExecutor(max_workers=len(items)) as pool:
            futures = [pool.submit(fn, item, timeout) for item in items]
            for fut in concurrent.futures.as_completed(futures):
                outcomes.append(fut.result())
        return outcomes

    def track_readiness(self, targets: Sequence[TrackTarget], timeout: float) -> None:
        blocking = []
        for t in targets:
            if t.non_blocking:
                log.info("[track] %s: not waiting (NonBlocking)", t.ref)
            else:
                blocking.append(t)

        outcomes = self._collect(self._wait_ready, blocking, timeout)

        failed = []
        for o in outcomes:
            if o.ok:
                continue
            if o.fail_mode == FailMode.IGNORE_AND_CONTINUE:
                log.warning("[track] %s not ready, ignored: %s", o.ref, o.reason)
                continue
            failed.append((str(o.ref), o.reason))

        if failed:
            raise TrackingError(sorted(failed), what="readiness")

    def track_absence(self, refs: Sequence[Reference], timeout: float) -> None:
        outcomes = self._collect(self._wait_absent, list(refs), timeout)
        failed = sorted((str(o.ref), o.reason) for o in outcomes if not o.ok)
        if failed:
            raise TrackingError(failed, what="absence")
