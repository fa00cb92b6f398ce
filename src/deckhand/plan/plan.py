# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/plan/plan.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Union

from ..release.release import Release
from ..resource.resource import ExternalDependency, Resource


class OperationType(str, Enum):
    CREATE = "create"
    RECREATE = "recreate"
    UPDATE = "update"
    DELETE = "delete"
    TRACK_HOOKS_READINESS = "track-hooks-readiness"
    TRACK_RESOURCES_READINESS = "track-resources-readiness"
    TRACK_UNMANAGED_READINESS = "track-unmanaged-readiness"
    TRACK_EXTERNAL_DEPENDENCIES_READINESS = "track-external-dependencies-readiness"
    TRACK_ABSENCE = "track-absence"
    CREATE_RELEASE = "create-release"
    UPDATE_RELEASE = "update-release"


MUTATING_OPERATIONS = frozenset(
    {OperationType.CREATE, OperationType.RECREATE, OperationType.UPDATE, OperationType.DELETE}
)

READINESS_OPERATIONS = frozenset(
    {
        OperationType.TRACK_HOOKS_READINESS,
        OperationType.TRACK_RESOURCES_READINESS,
        OperationType.TRACK_UNMANAGED_READINESS,
        OperationType.TRACK_EXTERNAL_DEPENDENCIES_READINESS,
    }
)

RELEASE_OPERATIONS = frozenset({OperationType.CREATE_RELEASE, OperationType.UPDATE_RELEASE})


class OperationStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PhaseType(str, Enum):
    CREATE_RELEASE_NAMESPACE = "create-release-namespace"
    CREATE_PENDING_RELEASE = "create-pending-release"
    DEPLOY_CRDS = "deploy-crds"
    RUN_PRE_HOOKS = "run-pre-hooks"
    DEPLOY_RESOURCES = "deploy-resources"
    RUN_POST_HOOKS = "run-post-hooks"
    CLEANUP = "cleanup"
    SUCCEED_RELEASE = "succeed-release"
    FAIL_RELEASE = "fail-release"
    CLEANUP_ON_FAILURE = "cleanup-on-failure"


Target = Union[Resource, ExternalDependency]


@dataclass(eq=False)
class Operation:
    type: OperationType
    targets: List[Target] = field(default_factory=list)
    releases: List[Release] = field(default_factory=list)
    status: OperationStatus = OperationStatus.PENDING
    error: Optional[str] = None
    failed_targets: List[str] = field(default_factory=list)

    @property
    def target_ids(self) -> List[str]:
        return [str(t) for t in self.targets]

    @property
    def is_mutating(self) -> bool:
        return self.type in MUTATING_OPERATIONS

    @property
    def is_readiness_tracking(self) -> bool:
        return self.type in READINESS_OPERATIONS

    def describe(self) -> str:
        if self.releases:
            rels = ", ".join(f"{r.name}:{r.revision}({r.status.value})" for r in self.releases)
            return f"{self.type.value} {rels}"
        return f"{self.type.value} [{', '.join(self.target_ids)}]"

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"type": self.type.value, "status": self.status.value}
        if self.targets:
            d["targets"] = self.target_ids
        if self.releases:
            d["releases"] = [
                {"name": r.name, "namespace": r.namespace, "revision": r.revision, "status": r.status.value}
                for r in self.releases
            ]
        if self.error:
            d["error"] = self.error
        if self.failed_targets:
            d["failedTargets"] = list(self.failed_targets)
        return d


@dataclass
class Phase:
    type: PhaseType
    operations: List[Operation] = field(default_factory=list)

    def add(self, op_type: OperationType, targets=None, releases=None) -> Operation:
        op = Operation(type=op_type, targets=list(targets or []), releases=list(releases or []))
        self.operations.append(op)
        return op

    def is_empty(self) -> bool:
        return not self.operations

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "operations": [op.to_dict() for op in self.operations]}


@dataclass
class Plan:
    """Ordered phases of ordered operations. Built per attempt, never replayed."""

    phases: List[Phase] = field(default_factory=list)
    unsupported: List[str] = field(default_factory=list)

    def add_phase(self, phase: Phase) -> None:
        if not phase.is_empty():
            self.phases.append(phase)

    def phase(self, phase_type: PhaseType) -> Optional[Phase]:
        for p in self.phases:
            if p.type == phase_type:
                return p
        return None

    def operations(self) -> Iterator[Operation]:
        for p in self.phases:
            yield from p.operations

    def is_empty(self) -> bool:
        return not self.phases

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"phases": [p.to_dict() for p in self.phases]}
        if self.unsupported:
            d["unsupported"] = list(self.unsupported)
        return d
