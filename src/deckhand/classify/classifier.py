# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/classify/classifier.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..kube.client import KubeClient, live_uid, strip_server_fields
from ..kube.errors import ImmutableFieldError, ResourceNotFoundError, UnsupportedResourceError
from ..resource.common import ResourceKind
from ..resource.reference import diff_references
from ..resource.resource import Resource, as_live, crd_defines
from ..utils.parallel import parallel_map

log = logging.getLogger("deckhand")


class ResourceStatus(str, Enum):
    NON_EXISTING = "non-existing"
    OUTDATED = "outdated"
    OUTDATED_IMMUTABLE = "outdated-immutable"
    UP_TO_DATE = "up-to-date"
    UNSUPPORTED = "unsupported"


EXISTING_STATUSES = frozenset(
    {ResourceStatus.OUTDATED, ResourceStatus.OUTDATED_IMMUTABLE, ResourceStatus.UP_TO_DATE}
)


@dataclass
class ClassifiedResource:
    local: Resource
    status: ResourceStatus
    live: Optional[Dict[str, Any]] = None
    desired: Optional[Dict[str, Any]] = None

    @property
    def existing(self) -> bool:
        return self.status in EXISTING_STATUSES

    @property
    def outdated(self) -> bool:
        return self.status in (ResourceStatus.OUTDATED, ResourceStatus.OUTDATED_IMMUTABLE)

    @property
    def uid(self) -> str:
        return live_uid(self.live)

    def __repr__(self) -> str:
        return f"ClassifiedResource({self.local.id}, {self.status.value})"


@dataclass
class PreviousResource:
    """A general resource of the previous release and its live object, if any."""

    local: Resource
    live: Optional[Dict[str, Any]] = None

    @property
    def uid(self) -> str:
        return live_uid(self.live)


@dataclass
class Classification:
    release_namespace: Optional[ClassifiedResource] = None
    entries: List[ClassifiedResource] = field(default_factory=list)
    previous: List[PreviousResource] = field(default_factory=list)
    orphans: List[Resource] = field(default_factory=list)

    def of_kind(self, kind: ResourceKind) -> List[ClassifiedResource]:
        return [e for e in self.entries if e.local.kind == kind]

    def crds(self) -> List[ClassifiedResource]:
        return self.of_kind(ResourceKind.CRD)

    def hooks(self) -> List[ClassifiedResource]:
        return self.of_kind(ResourceKind.HOOK)

    def general(self) -> List[ClassifiedResource]:
        return self.of_kind(ResourceKind.GENERAL)

    def with_status(self, *statuses: ResourceStatus, kind: Optional[ResourceKind] = None) -> List[ClassifiedResource]:
        entries = self.entries if kind is None else self.of_kind(kind)
        return [e for e in entries if e.status in statuses]

    def find(self, resource_id: str) -> Optional[ClassifiedResource]:
        for e in self.entries:
            if e.local.id == resource_id:
                return e
        return None


def detect_orphans(previous: Sequence[PreviousResource], current: Sequence[ClassifiedResource]) -> List[Resource]:
    """
    Previous-release resources that still exist live, match no current
    resource by reference, and share no UID with a current live object.
    """
    current_uids: Set[str] = {c.uid for c in current if c.uid}
    gone = set(diff_references([p.local.ref for p in previous], [c.local.ref for c in current]))
    orphans: List[Resource] = []
    for p in previous:
        if p.live is None or p.local.ref not in gone:
            continue
        if p.uid and p.uid in current_uids:
            log.debug("[classify] %s shares uid %s with a current resource, not an orphan", p.local.ref, p.uid)
            continue
        orphans.append(as_live(p.local, p.live))
    return orphans


class ResourceClassifier:
    """
    Dry-run applies each desired resource and sorts it into a status bucket.
    Never mutates the cluster.
    """

    def __init__(self, client: KubeClient, parallelism: int = 30):
        self._client = client
        self.parallelism = parallelism

    def _classify_one(
        self,
        res: Resource,
        provided: Set[Tuple[str, str]],
    ) -> ClassifiedResource:
        allow_unsupported = res.kind in (ResourceKind.HOOK, ResourceKind.GENERAL)

        try:
            live = self._client.get(res.ref)
            try:
                desired = self._client.dry_run_apply(res)
            except ResourceNotFoundError:
                if live is not None:
                    raise
                # the target namespace does not exist yet
                desired = None
        except ImmutableFieldError:
            return ClassifiedResource(res, ResourceStatus.OUTDATED_IMMUTABLE, live=live)
        except UnsupportedResourceError:
            if not allow_unsupported:
                raise
            if res.ref.group_kind in provided:
                return ClassifiedResource(res, ResourceStatus.NON_EXISTING)
            return ClassifiedResource(res, ResourceStatus.UNSUPPORTED)

        if live is None:
            return ClassifiedResource(res, ResourceStatus.NON_EXISTING, desired=desired)
        if strip_server_fields(live) == strip_server_fields(desired):
            return ClassifiedResource(res, ResourceStatus.UP_TO_DATE, live=live, desired=desired)
        return ClassifiedResource(res, ResourceStatus.OUTDATED, live=live, desired=desired)

    def _fetch_previous(self, res: Resource) -> PreviousResource:
        try:
            return PreviousResource(res, self._client.get(res.ref))
        except UnsupportedResourceError:
            return PreviousResource(res, None)

    def classify(
        self,
        *,
        release_namespace: Optional[Resource] = None,
        crds: Iterable[Resource] = (),
        hooks: Iterable[Resource] = (),
        general: Iterable[Resource] = (),
        previous_general: Iterable[Resource] = (),
    ) -> Classification:
        crds, hooks, general = list(crds), list(hooks), list(general)
        provided = {gk for gk in (crd_defines(c) for c in crds) if gk}

        ns_entry = None
        if release_namespace is not None:
            ns_entry = self._classify_one(release_namespace, provided)

        desired = crds + hooks + general
        entries = parallel_map(
            lambda r: self._classify_one(r, provided),
            desired,
            self.parallelism,
            header="error classifying resources",
        )
        previous = parallel_map(
            self._fetch_previous,
            list(previous_general),
            self.parallelism,
            header="error fetching previous release resources",
        )

        orphans = detect_orphans(previous, entries)

        counts: Dict[str, int] = {}
        for e in entries:
            counts[e.status.value] = counts.get(e.status.value, 0) + 1
        log.info(
            "[classify] %d resources: %s; %d orphan(s)",
            len(entries),
            ", ".join(f"{k}={v}" for k, v in sorted(counts.items())) or "none",
            len(orphans),
        )

        return Classification(
            release_namespace=ns_entry,
            entries=entries,
            previous=previous,
            orphans=orphans,
        )
