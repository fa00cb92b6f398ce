# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/lock/locker.py
from __future__ import annotations

import json
import logging
import os
import socket
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

from kubernetes import client as k8s_client
from kubernetes.client.exceptions import ApiException

from ..errors import LockError

log = logging.getLogger("deckhand")

LOCK_ANNOTATION_PREFIX = "lock.deckhand.io/"


@dataclass(frozen=True)
class LockHandle:
    lock_name: str
    uuid: str


OnWait = Callable[[str], None]
OnLostLease = Callable[[LockHandle], None]


class Locker(Protocol):
    def acquire(self, lock_name: str, on_wait: Optional[OnWait] = None,
                on_lost_lease: Optional[OnLostLease] = None) -> LockHandle: ...

    def release(self, handle: LockHandle) -> None: ...


def _new_handle(lock_name: str) -> LockHandle:
    return LockHandle(lock_name=lock_name, uuid=str(uuid.uuid4()))


# ---------------------------------------------------------------------
# In-process locker
# ---------------------------------------------------------------------
class InMemoryLocker:
    """Blocking in-process locker; pairs with MemoryStorage for local runs and tests."""

    def __init__(self):
        self._cond = threading.Condition()
        self._held: Dict[str, LockHandle] = {}
        self._lost_callbacks: Dict[str, OnLostLease] = {}

    def acquire(self, lock_name: str, on_wait: Optional[OnWait] = None,
                on_lost_lease: Optional[OnLostLease] = None) -> LockHandle:
        with self._cond:
            notified = False
            while lock_name in self._held:
                if not notified and on_wait is not None:
                    on_wait(lock_name)
                    notified = True
                self._cond.wait()
            handle = _new_handle(lock_name)
            self._held[lock_name] = handle
            if on_lost_lease is not None:
                self._lost_callbacks[handle.uuid] = on_lost_lease
            return handle

    def release(self, handle: LockHandle) -> None:
        with self._cond:
            if self._held.get(handle.lock_name) != handle:
                raise LockError(f"lock {handle.lock_name!r} uuid {handle.uuid!r} is not held")
            del self._held[handle.lock_name]
            self._lost_callbacks.pop(handle.uuid, None)
            self._cond.notify_all()

    def is_locked(self, lock_name: str) -> bool:
        with self._cond:
            return lock_name in self._held

    def expire(self, lock_name: str) -> None:
        """Drop a held lease as if it had timed out, notifying its holder."""
        with self._cond:
            handle = self._held.pop(lock_name, None)
            callback = self._lost_callbacks.pop(handle.uuid, None) if handle else None
            self._cond.notify_all()
        if handle is not None and callback is not None:
            callback(handle)


# ---------------------------------------------------------------------
# ConfigMap lease locker
# ---------------------------------------------------------------------
@dataclass
class _Lease:
    uuid: str
    holder: str
    renewed_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.renewed_at > self.ttl

    def dumps(self) -> str:
        return json.dumps({"uuid": self.uuid, "holder": self.holder, "renewedAt": self.renewed_at, "ttl": self.ttl})

    @classmethod
    def loads(cls, raw: Optional[str]) -> Optional["_Lease"]:
        if not raw:
            return None
        try:
            d = json.loads(raw)
            return cls(uuid=d["uuid"], holder=d.get("holder", ""), renewed_at=float(d["renewedAt"]), ttl=float(d["ttl"]))
        except (ValueError, KeyError, TypeError):
            log.warning("[lock] ignoring unparsable lease record %r", raw)
            return None


class ConfigMapLocker:
    """
    Leases stored as annotations on a coordination ConfigMap. Writes carry
    the ConfigMap's resourceVersion so concurrent acquirers cannot both win.
    A background thread renews each held lease every ttl/3.
    """

    def __init__(
        self,
        namespace: str,
        api_client: Optional[k8s_client.ApiClient] = None,
        configmap_name: str = "deckhand-synchronization",
        lease_ttl: float = 30,
        poll_period: float = 2.0,
        create_namespace: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.namespace = namespace
        self.configmap_name = configmap_name
        self.lease_ttl = lease_ttl
        self.poll_period = poll_period
        self.create_namespace = create_namespace
        self._core = k8s_client.CoreV1Api(api_client)
        self._clock = clock
        self._holder = f"{socket.gethostname()}-{os.getpid()}"
        self._renewers: Dict[str, threading.Event] = {}
        self._threads: Dict[str, threading.Thread] = {}

    @staticmethod
    def annotation_key(lock_name: str) -> str:
        return LOCK_ANNOTATION_PREFIX + lock_name.replace("/", ".")

    # ------------------------------------------------------------------
    # coordination object
    # ------------------------------------------------------------------
    def _ensure_configmap(self) -> None:
        try:
            self._core.read_namespaced_config_map(self.configmap_name, self.namespace)
            return
        except ApiException as e:
            if e.status != 404:
                raise LockError(f"reading {self.namespace}/{self.configmap_name}: {e.status} {e.reason}") from e

        if self.create_namespace:
            try:
                self._core.create_namespace(k8s_client.V1Namespace(metadata=k8s_client.V1ObjectMeta(name=self.namespace)))
                log.info("[lock] created namespace %s", self.namespace)
            except ApiException as e:
                if e.status != 409:
                    raise LockError(f"creating namespace {self.namespace}: {e.status} {e.reason}") from e

        body = k8s_client.V1ConfigMap(metadata=k8s_client.V1ObjectMeta(name=self.configmap_name, namespace=self.namespace))
        try:
            self._core.create_namespaced_config_map(self.namespace, body)
            log.debug("[lock] created %s/%s", self.namespace, self.configmap_name)
        except ApiException as e:
            if e.status != 409:
                raise LockError(f"creating {self.namespace}/{self.configmap_name}: {e.status} {e.reason}") from e

    def _read(self):
        cm = self._core.read_namespaced_config_map(self.configmap_name, self.namespace)
        annotations = cm.metadata.annotations or {}
        return cm.metadata.resource_version, annotations

    def _write(self, resource_version: str, key: str, value: Optional[str]) -> bool:
        """Patch one annotation. False on a resourceVersion conflict."""
        body = {"metadata": {"resourceVersion": resource_version, "annotations": {key: value}}}
        try:
            self._core.patch_namespaced_config_map(self.configmap_name, self.namespace, body)
        except ApiException as e:
            if e.status == 409:
                return False
            raise
        return True

    # ------------------------------------------------------------------
    # lease handling
    # ------------------------------------------------------------------
    def _try_acquire(self, handle: LockHandle) -> bool:
        key = self.annotation_key(handle.lock_name)
        try:
            rv, annotations = self._read()
            current = _Lease.loads(annotations.get(key))
            now = self._clock()
            if current is not None and current.uuid != handle.uuid and not current.expired(now):
                return False
            if current is not None and current.uuid != handle.uuid:
                log.warning("[lock] taking over expired lease of %s held by %s", handle.lock_name, current.holder)
            lease = _Lease(uuid=handle.uuid, holder=self._holder, renewed_at=now, ttl=self.lease_ttl)
            return self._write(rv, key, lease.dumps())
        except ApiException as e:
            raise LockError(f"acquiring {handle.lock_name}: {e.status} {e.reason}") from e

    def _renew(self, handle: LockHandle, stop: threading.Event, on_lost_lease: OnLostLease) -> None:
        key = self.annotation_key(handle.lock_name)
        last_ok = self._clock()
        while not stop.wait(self.lease_ttl / 3):
            try:
                rv, annotations = self._read()
                current = _Lease.loads(annotations.get(key))
                if current is None or current.uuid != handle.uuid:
                    on_lost_lease(handle)
                    return
                current.renewed_at = self._clock()
                if self._write(rv, key, current.dumps()):
                    last_ok = current.renewed_at
            except ApiException as e:
                log.warning("[lock] renewing %s failed: %s %s", handle.lock_name, e.status, e.reason)
            if self._clock() - last_ok > self.lease_ttl:
                on_lost_lease(handle)
                return

    def acquire(self, lock_name: str, on_wait: Optional[OnWait] = None,
                on_lost_lease: Optional[OnLostLease] = None) -> LockHandle:
        self._ensure_configmap()
        handle = _new_handle(lock_name)
        notified = False
        while not self._try_acquire(handle):
            if not notified and on_wait is not None:
                on_wait(lock_name)
                notified = True
            time.sleep(self.poll_period)

        stop = threading.Event()
        self._renewers[handle.uuid] = stop
        if on_lost_lease is not None:
            t = threading.Thread(
                target=self._renew,
                args=(handle, stop, on_lost_lease),
                name=f"lease-{lock_name}",
                daemon=True,
            )
            self._threads[handle.uuid] = t
            t.start()
        return handle

    def release(self, handle: LockHandle) -> None:
        stop = self._renewers.pop(handle.uuid, None)
        if stop is not None:
            stop.set()
        t = self._threads.pop(handle.uuid, None)
        if t is not None and t is not threading.current_thread():
            t.join(timeout=self.lease_ttl)

        key = self.annotation_key(handle.lock_name)
        try:
            rv, annotations = self._read()
            current = _Lease.loads(annotations.get(key))
            if current is None or current.uuid != handle.uuid:
                log.debug("[lock] %s no longer held by us, nothing to release", handle.lock_name)
                return
            if not self._write(rv, key, None):
                raise LockError(f"conflict releasing {handle.lock_name}")
        except ApiException as e:
            raise LockError(f"releasing {handle.lock_name}: {e.status} {e.reason}") from e
