# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/lock/manager.py
from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional

from ..errors import LockError
from ..observers.events import LockAcquired, LockReleased, LockWaiting
from ..utils.context import DeployContext
from ..utils.retry import RetryError, retry
from .locker import Locker, LockHandle, OnLostLease

log = logging.getLogger("deckhand")

LOST_LEASE_EXIT_CODE = 3
MAX_RETRY_DELAY = 30.0


def release_lock_name(release_name: str) -> str:
    return f"release/{release_name}"


def exit_on_lost_lease(handle: LockHandle) -> None:
    """Stop the process at once; another deployer may already own the release."""
    log.critical(
        'locker has lost the lease for lock "%s" uuid "%s". The process will stop immediately.\n'
        "Possible reasons:\n"
        "  - connection issues with the Kubernetes API\n"
        "  - another process took over the lock after the lease expired",
        handle.lock_name, handle.uuid,
    )
    logging.shutdown()
    os._exit(LOST_LEASE_EXIT_CODE)


class LockManager:
    """
    Per-release mutual exclusion on top of a Locker.

    Acquisition blocks while another holder owns the lock and retries
    transient locker failures. Release retries too but never raises.
    """

    def __init__(
        self,
        namespace: str,
        locker: Locker,
        acquire_attempts: int = 10,
        release_attempts: int = 10,
        retry_delay: float = 2.0,
        retry_backoff: float = 1.5,
        ctx: Optional[DeployContext] = None,
        on_lost_lease: Optional[OnLostLease] = None,
    ):
        self.namespace = namespace
        self._locker = locker
        self.acquire_attempts = max(1, acquire_attempts)
        self.release_attempts = max(1, release_attempts)
        self.retry_delay = retry_delay
        self.retry_backoff = retry_backoff
        self.ctx = ctx or DeployContext()
        self._on_lost_lease = on_lost_lease or exit_on_lost_lease

    @classmethod
    def from_config(cls, namespace: str, locker: Locker, cfg, ctx: Optional[DeployContext] = None) -> "LockManager":
        return cls(
            namespace,
            locker,
            acquire_attempts=cfg.lock.acquire_attempts,
            release_attempts=cfg.lock.release_attempts,
            retry_delay=cfg.lock.retry_delay,
            ctx=ctx,
        )

    def lock_release(self, release_name: str) -> LockHandle:
        lock_name = release_lock_name(release_name)
        attempts = 0

        def on_wait(name: str) -> None:
            log.info('Waiting for locked "%s"', name)
            self.ctx.emit(LockWaiting, lock=name)

        def on_retry(attempt: int, exc: Exception) -> None:
            log.warning("[lock] attempt %d/%d to acquire %s failed: %s", attempt, self.acquire_attempts, lock_name, exc)

        @retry(
            retries=self.acquire_attempts,
            delay=self.retry_delay,
            backoff=self.retry_backoff,
            max_delay=MAX_RETRY_DELAY,
            retry_on=(LockError,),
            on_retry=on_retry,
        )
        def _acquire() -> LockHandle:
            nonlocal attempts
            attempts += 1
            return self._locker.acquire(lock_name, on_wait=on_wait, on_lost_lease=self._on_lost_lease)

        try:
            handle = _acquire()
        except RetryError as e:
            raise LockError(f"unable to acquire lock {lock_name!r} in namespace {self.namespace!r}: {e}") from e

        log.debug("[lock] acquired %s (uuid %s)", lock_name, handle.uuid)
        self.ctx.emit(LockAcquired, lock=lock_name, attempts=attempts)
        return handle

    def unlock(self, handle: LockHandle) -> bool:
        """Release handle. Failures are logged, the lease then expires on its own."""

        @retry(
            retries=self.release_attempts,
            delay=self.retry_delay,
            backoff=self.retry_backoff,
            max_delay=MAX_RETRY_DELAY,
            retry_on=(LockError,),
        )
        def _release() -> None:
            self._locker.release(handle)

        error = ""
        try:
            _release()
        except RetryError as e:
            error = str(e)
            log.error("[lock] unable to release %s (uuid %s): %s", handle.lock_name, handle.uuid, e)
        else:
            log.debug("[lock] released %s", handle.lock_name)

        self.ctx.emit(LockReleased, lock=handle.lock_name, ok=not error, error=error)
        return not error

    @contextmanager
    def locked(self, release_name: str) -> Iterator[LockHandle]:
        handle = self.lock_release(release_name)
        try:
            yield handle
        finally:
            self.unlock(handle)
