# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/plan/executor.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple

from ..errors import (
    PlanExecutionError,
    ReleaseFinalizationError,
    StorageError,
    TrackingError,
)
from ..kube.client import KubeClient
from ..kube.errors import AlreadyExistsError
from ..kube.tracker import Tracker, TrackTarget
from ..observers.events import OperationCompleted, OperationFailed, PhaseCompleted, PhaseStarted, ReleaseRecorded
from ..release.release import Release, ReleaseStatus
from ..resource.resource import ExternalDependency, Resource, for_creation
from ..utils.context import DeployContext
from ..utils.parallel import parallel_map
from .plan import Operation, OperationStatus, OperationType, Phase, Plan
from .report import Report

log = logging.getLogger("deckhand")

_FINAL_STATUSES = (ReleaseStatus.DEPLOYED, ReleaseStatus.FAILED, ReleaseStatus.SUPERSEDED)


class ReleaseWriter(Protocol):
    def create_release(self, rel: Release) -> None: ...

    def update_release(self, rel: Release) -> None: ...


@dataclass
class ExecutorOptions:
    network_parallelism: int = 30
    creation_timeout: float = 300
    readiness_timeout: float = 600
    deletion_timeout: float = 300

    @classmethod
    def from_config(cls, cfg) -> "ExecutorOptions":
        return cls(
            network_parallelism=cfg.network_parallelism,
            creation_timeout=cfg.tracking.creation_timeout,
            readiness_timeout=cfg.tracking.readiness_timeout,
            deletion_timeout=cfg.tracking.deletion_timeout,
        )


class PlanExecutor:
    """
    Runs a plan phase by phase, operation by operation, in the order the
    builder emitted them. Stops at the first failed operation; undoing
    anything is the caller's job.
    """

    def __init__(
        self,
        client: KubeClient,
        tracker: Tracker,
        history: ReleaseWriter,
        options: Optional[ExecutorOptions] = None,
        ctx: Optional[DeployContext] = None,
    ):
        self._client = client
        self._tracker = tracker
        self._history = history
        self.options = options or ExecutorOptions()
        self.ctx = ctx or DeployContext()

    # ------------------------------------------------------------------
    # plan / phase
    # ------------------------------------------------------------------
    def execute(self, plan: Plan, report: Optional[Report] = None) -> Report:
        report = report if report is not None else Report()
        for phase in plan.phases:
            self._execute_phase(phase, report)
        return report

    def _execute_phase(self, phase: Phase, report: Report) -> None:
        log.info("[%s] starting (%d operations)", phase.type.value, len(phase.operations))
        self.ctx.emit(PhaseStarted, phase=phase.type.value, operations=len(phase.operations))
        t0 = time.time()

        for op in phase.operations:
            t_op = time.time()
            try:
                self._execute_operation(op, report)
            except ReleaseFinalizationError as e:
                self._mark_failed(phase, op, e, report)
                e.report = report
                raise
            except Exception as e:
                self._mark_failed(phase, op, e, report)
                raise PlanExecutionError(e, report, phase.type.value, op.describe()) from e

            op.status = OperationStatus.COMPLETED
            report.completed_operations.append(op.describe())
            self.ctx.emit(
                OperationCompleted,
                phase=phase.type.value,
                operation=op.type.value,
                targets=op.target_ids or [f"{r.name}:{r.revision}" for r in op.releases],
                duration_ms=int((time.time() - t_op) * 1000),
            )

        self.ctx.emit(PhaseCompleted, phase=phase.type.value, duration_ms=int((time.time() - t0) * 1000))

    def _mark_failed(self, phase: Phase, op: Operation, err: Exception, report: Report) -> None:
        op.status = OperationStatus.FAILED
        op.error = str(err)
        if isinstance(err, TrackingError):
            op.failed_targets = err.failed_refs
        report.failed_operations.append(op.describe())
        log.error("[%s] %s failed: %s", phase.type.value, op.describe(), err)
        self.ctx.emit(
            OperationFailed,
            phase=phase.type.value,
            operation=op.type.value,
            targets=op.target_ids,
            error=str(err),
        )

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------
    def _execute_operation(self, op: Operation, report: Report) -> None:
        t = op.type
        log.debug("executing %s", op.describe())

        if t == OperationType.CREATE:
            for kind, target, result in self._run(self._create, op, "error creating resources"):
                (report.created if kind == "created" else report.updated).append((target, result))
        elif t == OperationType.RECREATE:
            for _, target, result in self._run(self._recreate, op, "error recreating resources"):
                report.recreated.append((target, result))
        elif t == OperationType.UPDATE:
            for _, target, result in self._run(self._update, op, "error updating resources"):
                report.updated.append((target, result))
        elif t == OperationType.DELETE:
            for _, target, _ in self._run(self._delete, op, "error deleting resources"):
                report.deleted.append(target.ref)
        elif t == OperationType.TRACK_EXTERNAL_DEPENDENCIES_READINESS:
            targets = [self._dependency_target(d) for d in op.targets]
            self._tracker.track_readiness(targets, self.options.creation_timeout)
        elif op.is_readiness_tracking:
            targets = [TrackTarget.from_resource(r) for r in op.targets]
            self._tracker.track_readiness(targets, self.options.readiness_timeout)
        elif t == OperationType.TRACK_ABSENCE:
            self._tracker.track_absence([r.ref for r in op.targets], self.options.deletion_timeout)
        elif t == OperationType.CREATE_RELEASE:
            for rel in op.releases:
                self._history.create_release(rel)
                self._recorded(rel)
        elif t == OperationType.UPDATE_RELEASE:
            for rel in op.releases:
                self._update_release(rel)
        else:
            raise ValueError(f"unknown operation type {t!r}")

    def _run(self, fn, op: Operation, header: str) -> List[Tuple[str, Any, Optional[Dict[str, Any]]]]:
        return parallel_map(fn, op.targets, self.options.network_parallelism, header=header)

    def _create(self, res: Resource):
        try:
            return "created", res, self._client.create(for_creation(res))
        except AlreadyExistsError:
            log.debug("%s already exists, applying instead", res.ref)
            return "updated", res, self._client.apply(res)

    def _recreate(self, res: Resource):
        self._client.delete(res.ref)
        self._tracker.track_absence([res.ref], self.options.deletion_timeout)
        return "recreated", res, self._client.create(for_creation(res))

    def _update(self, res: Resource):
        return "updated", res, self._client.apply(res)

    def _delete(self, res: Resource):
        self._client.delete(res.ref)
        return "deleted", res, None

    def _dependency_target(self, dep: ExternalDependency) -> TrackTarget:
        ref = self._client.resolve_resource_type(dep.resource_type, dep.name, dep.namespace)
        return TrackTarget(ref=ref)

    def _update_release(self, rel: Release) -> None:
        try:
            self._history.update_release(rel)
        except StorageError as e:
            if rel.status not in _FINAL_STATUSES:
                raise
            log.critical(
                "[release] could not record status %s for %s (namespace %s, revision %d): %s",
                rel.status.value, rel.name, rel.namespace, rel.revision, e,
            )
            raise ReleaseFinalizationError(rel.name, rel.namespace, rel.revision, rel.status.value, e) from e
        self._recorded(rel)

    def _recorded(self, rel: Release) -> None:
        log.info("[release] %s revision %d is %s", rel.name, rel.revision, rel.status.value)
        self.ctx.emit(
            ReleaseRecorded,
            name=rel.name,
            namespace=rel.namespace,
            revision=rel.revision,
            status=rel.status.value,
        )
