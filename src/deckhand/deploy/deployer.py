# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/deploy/deployer.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..classify.classifier import Classification, ResourceClassifier
from ..config.models import DeckhandConfig
from ..errors import DeployError, PlanExecutionError, ReleaseFinalizationError
from ..kube.client import KubeClient
from ..kube.tracker import Tracker
from ..lock.locker import Locker
from ..lock.manager import LockManager
from ..observers.events import DeploySummary, FailurePlanStarted, PlanComputed, PlanFailed
from ..plan.builder import DeployPlanBuilder
from ..plan.executor import ExecutorOptions, PlanExecutor
from ..plan.failure import FailurePlanBuilder
from ..plan.plan import OperationStatus, OperationType, PhaseType, Plan
from ..plan.report import Report
from ..release.history import History
from ..release.release import DeployType, Release, ReleaseStatus, validate_release_name
from ..release.storage import ReleaseStorage
from ..resource.loader import ReleaseManifests, ReleaseResources, build_resources
from ..resource.resource import Resource, new_general_resource, new_release_namespace
from ..utils.context import DeployContext

log = logging.getLogger("deckhand")


@dataclass(frozen=True)
class ChartInfo:
    name: str = ""
    version: str = ""
    app_version: str = ""


@dataclass
class DeployResult:
    release: Release
    plan: Plan
    report: Optional[Report] = None


@dataclass
class _Prepared:
    history: History
    deploy_type: DeployType
    plan: Plan
    cleanup_on_failure: List[Resource]
    pending: Release
    classification: Classification


class Deployer:
    """
    Orchestrates one release: build resources, lock, read history,
    classify, plan, execute, and on failure run the failure plan.
    """

    def __init__(
        self,
        client: KubeClient,
        tracker: Tracker,
        storage: ReleaseStorage,
        locker: Locker,
        config: Optional[DeckhandConfig] = None,
        ctx: Optional[DeployContext] = None,
    ):
        self._client = client
        self._tracker = tracker
        self._storage = storage
        self._locker = locker
        self.config = config or DeckhandConfig()
        self.ctx = ctx or DeployContext()

    # ------------------------------------------------------------------
    # public
    # ------------------------------------------------------------------
    def deploy(
        self,
        release_name: str,
        namespace: str,
        manifests: ReleaseManifests,
        values: Optional[Dict[str, Any]] = None,
        notes: str = "",
        labels: Optional[Dict[str, str]] = None,
        chart: Optional[ChartInfo] = None,
    ) -> DeployResult:
        return self._deploy(release_name, namespace, manifests, values, notes, labels, chart)

    def plan(
        self,
        release_name: str,
        namespace: str,
        manifests: ReleaseManifests,
        values: Optional[Dict[str, Any]] = None,
        notes: str = "",
        labels: Optional[Dict[str, str]] = None,
        chart: Optional[ChartInfo] = None,
    ) -> DeployResult:
        """Compute the plan a deploy would run, without locking or touching the cluster."""
        validate_release_name(release_name)
        resources = self._build_resources(manifests, release_name, namespace)
        history = self._load_history(release_name, namespace)
        prepared = self._prepare(history, resources, None, values, notes, labels, chart)
        return DeployResult(release=prepared.pending, plan=prepared.plan)

    def rollback(self, release_name: str, namespace: str, revision: Optional[int] = None) -> DeployResult:
        validate_release_name(release_name)
        history = self._load_history(release_name, namespace)
        if revision is not None:
            target = history.release(revision)
            if target is None:
                raise DeployError(f"release {release_name!r} has no revision {revision} in namespace {namespace!r}")
        else:
            target = history.last_deployed_release_except_last()
            if target is None:
                raise DeployError(f"release {release_name!r} in namespace {namespace!r} has no previous deployed revision to roll back to")

        log.info("[rollback] %s: rolling back to revision %d", release_name, target.revision)
        manifests = ReleaseManifests(hooks=list(target.hook_resources), general=list(target.general_resources))
        chart = ChartInfo(target.chart_name, target.chart_version, target.app_version)
        return self._deploy(
            release_name,
            namespace,
            manifests,
            target.values,
            target.notes,
            target.labels,
            chart,
            deploy_type=DeployType.ROLLBACK,
        )

    def history(self, release_name: str, namespace: str) -> List[Release]:
        validate_release_name(release_name)
        return self._load_history(release_name, namespace).releases

    # ------------------------------------------------------------------
    # pipeline
    # ------------------------------------------------------------------
    def _build_resources(self, manifests: ReleaseManifests, release_name: str, namespace: str) -> ReleaseResources:
        return build_resources(
            manifests,
            namespace,
            release_name=release_name,
            extra_annotations=self.config.extra_annotations,
            extra_labels=self.config.extra_labels,
        )

    def _load_history(self, release_name: str, namespace: str) -> History:
        return History.load(release_name, namespace, self._storage, self.config.history_limit)

    def _deploy(
        self,
        release_name: str,
        namespace: str,
        manifests: ReleaseManifests,
        values: Optional[Dict[str, Any]],
        notes: str,
        labels: Optional[Dict[str, str]],
        chart: Optional[ChartInfo],
        deploy_type: Optional[DeployType] = None,
    ) -> DeployResult:
        validate_release_name(release_name)
        resources = self._build_resources(manifests, release_name, namespace)

        locks = LockManager.from_config(namespace, self._locker, self.config, ctx=self.ctx)
        with locks.locked(release_name):
            history = self._load_history(release_name, namespace)
            prepared = self._prepare(history, resources, deploy_type, values, notes, labels, chart)
            return self._execute(prepared)

    def _prepare(
        self,
        history: History,
        resources: ReleaseResources,
        deploy_type: Optional[DeployType],
        values: Optional[Dict[str, Any]],
        notes: str,
        labels: Optional[Dict[str, str]],
        chart: Optional[ChartInfo],
    ) -> _Prepared:
        chart = chart or ChartInfo()
        deploy_type = deploy_type or history.deploy_type_for_next_release()
        prev_release = history.last_release()
        name, namespace = history.release_name, history.namespace

        pending = history.build_next_release(
            deploy_type=deploy_type,
            hook_resources=[r.manifest for r in resources.hooks],
            general_resources=[r.manifest for r in resources.general],
            values=values,
            notes=notes,
            labels=labels,
            chart_name=chart.name,
            chart_version=chart.version,
            app_version=chart.app_version,
        )
        succeeded = pending.with_status(ReleaseStatus.DEPLOYED, f"{deploy_type.value.capitalize()} complete")

        try:
            previous_general = [
                new_general_resource(doc, namespace) for doc in (prev_release.general_resources if prev_release else [])
            ]
            classification = ResourceClassifier(self._client, self.config.network_parallelism).classify(
                release_namespace=new_release_namespace(namespace) if self.config.create_namespace else None,
                crds=resources.crds,
                hooks=resources.hooks,
                general=resources.general,
                previous_general=previous_general,
            )
            plan, cleanup = DeployPlanBuilder(
                classification,
                deploy_type,
                prev_release,
                pending,
                succeeded,
                superseded_release=history.last_deployed_release(),
            ).build()
        except Exception as e:
            log.error("[plan] unable to build plan for %s: %s", name, e)
            self.ctx.emit(PlanFailed, release=name, error=str(e))
            raise

        self.ctx.emit(
            PlanComputed,
            release=name,
            revision=pending.revision,
            phases=[p.type.value for p in plan.phases],
            operations=sum(len(p.operations) for p in plan.phases),
        )
        if plan.unsupported:
            log.info("[plan] %d unsupported resource(s) skipped: %s", len(plan.unsupported), ", ".join(plan.unsupported))

        return _Prepared(history, deploy_type, plan, cleanup, pending, classification)

    def _execute(self, prepared: _Prepared) -> DeployResult:
        pending = prepared.pending
        executor = PlanExecutor(
            self._client,
            self._tracker,
            prepared.history,
            ExecutorOptions.from_config(self.config),
            self.ctx,
        )
        report = Report(release=pending.name, namespace=pending.namespace, revision=pending.revision)

        try:
            executor.execute(prepared.plan, report)
        except (PlanExecutionError, ReleaseFinalizationError) as e:
            report.status = ReleaseStatus.FAILED.value
            self._summary(pending, report, error=str(e))
            self._fail(prepared, executor, report, e)

        report.status = ReleaseStatus.DEPLOYED.value
        log.info("[deploy] %s revision %d deployed: %s", pending.name, pending.revision, report.summary())
        self._summary(pending, report)
        final = prepared.history.release(pending.revision) or pending.with_status(ReleaseStatus.DEPLOYED)
        return DeployResult(release=final, plan=prepared.plan, report=report)

    def _fail(self, prepared: _Prepared, executor: PlanExecutor, report: Report, err: Exception) -> None:
        phase = getattr(err, "phase", None)
        pending = prepared.pending

        if isinstance(err, ReleaseFinalizationError):
            raise DeployError(str(err), report=report, plan=prepared.plan, phase=phase) from err

        if _release_succeeded(prepared.plan):
            log.error("[deploy] %s revision %d is already deployed, not running failure plan: %s",
                      pending.name, pending.revision, err)
            raise DeployError(str(err), report=report, plan=prepared.plan, phase=phase) from err

        if not _release_created(prepared.plan):
            log.error("[deploy] %s failed before revision %d was recorded: %s", pending.name, pending.revision, err)
            raise DeployError(str(err), report=report, plan=prepared.plan, phase=phase) from err

        log.warning("[deploy] %s revision %d failed, running failure plan", pending.name, pending.revision)
        self.ctx.emit(FailurePlanStarted, release=pending.name, revision=pending.revision, error=str(err))

        failed = pending.with_status(ReleaseStatus.FAILED, f"{prepared.deploy_type.value.capitalize()} failed: {err}")
        failure_plan = FailurePlanBuilder(prepared.plan, prepared.cleanup_on_failure, failed).build()
        try:
            executor.execute(failure_plan, report)
        except (PlanExecutionError, ReleaseFinalizationError) as fe:
            raise DeployError(
                f"{err}\nadditionally, the failure plan did not complete: {fe}",
                report=report,
                plan=prepared.plan,
                phase=phase,
            ) from fe

        raise DeployError(str(err), report=report, plan=prepared.plan, phase=phase) from err

    def _summary(self, rel: Release, report: Report, error: Optional[str] = None) -> None:
        self.ctx.emit(
            DeploySummary,
            release=rel.name,
            revision=rel.revision,
            status=report.status,
            created=len(report.created),
            recreated=len(report.recreated),
            updated=len(report.updated),
            deleted=len(report.deleted),
            error=error,
        )


def _release_created(plan: Plan) -> bool:
    return any(
        op.type == OperationType.CREATE_RELEASE and op.status == OperationStatus.COMPLETED
        for op in plan.operations()
    )


def _release_succeeded(plan: Plan) -> bool:
    return any(
        op.type == OperationType.UPDATE_RELEASE and op.status == OperationStatus.COMPLETED
        for p in plan.phases
        if p.type == PhaseType.SUCCEED_RELEASE
        for op in p.operations
    )

