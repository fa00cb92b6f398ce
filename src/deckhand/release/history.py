# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/release/history.py
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..errors import ReleaseNotFoundError, StorageError
from .release import DeployType, Release, ReleaseStatus, pending_status
from .storage import OWNER, ReleaseStorage

log = logging.getLogger("deckhand")

_SUCCESS = (ReleaseStatus.DEPLOYED, ReleaseStatus.SUPERSEDED)
_HARD_STOP = (ReleaseStatus.UNINSTALLED, ReleaseStatus.UNINSTALLING)


class History:
    """
    Revisions of one release in one namespace, ordered by revision.

    Writes go through storage first and then the in-memory index, under a
    single writer lock.
    """

    def __init__(
        self,
        release_name: str,
        namespace: str,
        storage: ReleaseStorage,
        history_limit: int = 10,
        releases: Optional[List[Release]] = None,
    ):
        self.release_name = release_name
        self.namespace = namespace
        self.history_limit = history_limit
        self._storage = storage
        self._lock = threading.Lock()
        self._releases: List[Release] = sorted(releases or [], key=lambda r: r.revision)

    @classmethod
    def load(
        cls,
        release_name: str,
        namespace: str,
        storage: ReleaseStorage,
        history_limit: int = 10,
    ) -> "History":
        found = storage.query({"name": release_name, "owner": OWNER})
        releases = [r for r in found if r.name == release_name and r.namespace == namespace]
        log.debug("[history] %s/%s: %d revision(s) found", namespace, release_name, len(releases))
        return cls(release_name, namespace, storage, history_limit, releases)

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------
    @property
    def releases(self) -> List[Release]:
        return list(self._releases)

    def empty(self) -> bool:
        return not self._releases

    def release(self, revision: int) -> Optional[Release]:
        for r in self._releases:
            if r.revision == revision:
                return r
        return None

    def last_release(self) -> Optional[Release]:
        return self._releases[-1] if self._releases else None

    def last_release_is_deployed(self) -> bool:
        last = self.last_release()
        return last is not None and last.status == ReleaseStatus.DEPLOYED

    def _scan_deployed(self, releases: List[Release]) -> Optional[Release]:
        for r in reversed(releases):
            if r.status in _SUCCESS:
                return r
            if r.status in _HARD_STOP:
                return None
        return None

    def last_deployed_release(self) -> Optional[Release]:
        return self._scan_deployed(self._releases)

    def last_deployed_release_except_last(self) -> Optional[Release]:
        return self._scan_deployed(self._releases[:-1])

    def find_all_deployed(self) -> List[Release]:
        """Successful revisions since the last uninstall, oldest first."""
        out: List[Release] = []
        for r in reversed(self._releases):
            if r.status in _HARD_STOP:
                break
            if r.status in _SUCCESS:
                out.append(r)
        return list(reversed(out))

    def next_revision(self) -> int:
        last = self.last_release()
        return last.revision + 1 if last else 1

    def deploy_type_for_next_release(self) -> DeployType:
        if self.empty():
            return DeployType.INITIAL
        if self.last_deployed_release() is not None:
            return DeployType.UPGRADE
        return DeployType.INSTALL

    def build_next_release(
        self,
        *,
        deploy_type: Optional[DeployType] = None,
        hook_resources: Optional[List[Dict[str, Any]]] = None,
        general_resources: Optional[List[Dict[str, Any]]] = None,
        values: Optional[Dict[str, Any]] = None,
        notes: str = "",
        labels: Optional[Dict[str, str]] = None,
        chart_name: str = "",
        chart_version: str = "",
        app_version: str = "",
        now: Optional[datetime] = None,
    ) -> Release:
        deploy_type = deploy_type or self.deploy_type_for_next_release()
        now = now or datetime.now(timezone.utc)
        last = self.last_release()
        first_deployed = last.first_deployed if last and last.first_deployed else now
        status = pending_status(deploy_type)
        return Release(
            name=self.release_name,
            namespace=self.namespace,
            revision=self.next_revision(),
            status=status,
            deploy_type=deploy_type,
            first_deployed=first_deployed,
            last_deployed=now,
            hook_resources=list(hook_resources or []),
            general_resources=list(general_resources or []),
            values=dict(values or {}),
            notes=notes,
            labels=dict(labels or {}),
            chart_name=chart_name,
            chart_version=chart_version,
            app_version=app_version,
            description=f"{deploy_type.value.capitalize()} in progress",
        )

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------
    def create_release(self, rel: Release) -> None:
        with self._lock:
            last = self._releases[-1] if self._releases else None
            if last is not None and rel.revision <= last.revision:
                raise StorageError(
                    f"revision {rel.revision} of release {rel.name!r} is not newer than revision {last.revision}"
                )
            self._storage.create(rel)
            self._releases.append(rel)
            self._trim(current=rel)

    def update_release(self, rel: Release) -> None:
        with self._lock:
            for i, r in enumerate(self._releases):
                if r.revision == rel.revision:
                    break
            else:
                raise ReleaseNotFoundError(rel.name, rel.namespace, rel.revision)
            self._storage.update(rel)
            self._releases[i] = rel

    def delete_release(self, revision: int) -> None:
        with self._lock:
            rel = next((r for r in self._releases if r.revision == revision), None)
            if rel is None:
                raise ReleaseNotFoundError(self.release_name, self.namespace, revision)
            self._storage.delete(rel)
            self._releases.remove(rel)

    def _trim(self, current: Release) -> None:
        if self.history_limit <= 0:
            return
        while len(self._releases) > self.history_limit:
            victim = next(
                (
                    r
                    for r in self._releases
                    if r.revision != current.revision and r.status != ReleaseStatus.DEPLOYED
                ),
                None,
            )
            if victim is None:
                return
            try:
                self._storage.delete(victim)
            except StorageError as e:
                log.warning("[history] could not prune revision %d of %s: %s", victim.revision, victim.name, e)
                return
            self._releases.remove(victim)
            log.debug("[history] pruned revision %d of %s", victim.revision, victim.name)
