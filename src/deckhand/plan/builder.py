# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/plan/builder.py
from __future__ import annotations

import logging
from itertools import groupby
from typing import Dict, List, Optional, Sequence, Tuple

from ..classify.classifier import Classification, ClassifiedResource, ResourceStatus
from ..errors import ImmutableConflictError
from ..release.release import DeployType, Release, ReleaseStatus, hook_events
from ..resource.common import HookType
from ..resource.metadata import ownership_mismatches
from ..resource.resource import (
    Resource,
    delete_on_failed,
    delete_on_succeeded,
    external_dependencies,
    has_hook_type,
    keep_on_deletion,
    recreate,
    weight,
)
from .plan import OperationType, Phase, PhaseType, Plan

log = logging.getLogger("deckhand")

_CHANGED = (ResourceStatus.NON_EXISTING, ResourceStatus.OUTDATED, ResourceStatus.OUTDATED_IMMUTABLE)


def group_by_weight(entries: Sequence[ClassifiedResource]) -> List[Tuple[int, List[ClassifiedResource]]]:
    """Ascending weight groups; entries inside a group are ordered by id."""
    ordered = sorted(entries, key=lambda e: (weight(e.local), e.local.id))
    return [(w, list(g)) for w, g in groupby(ordered, key=lambda e: weight(e.local))]


class DeployPlanBuilder:
    """
    Turns a Classification into an ordered Plan.

    Phase order: release namespace, pending release, preloaded CRDs,
    pre-hooks, resources, post-hooks, orphan cleanup, succeed/supersede.
    Resources and hooks are grouped by ascending weight.
    """

    def __init__(
        self,
        classification: Classification,
        deploy_type: DeployType,
        prev_release: Optional[Release],
        pending_release: Release,
        succeeded_release: Release,
        superseded_release: Optional[Release] = None,
    ):
        self.classification = classification
        self.deploy_type = deploy_type
        self.prev_release = prev_release
        self.pending_release = pending_release
        self.succeeded_release = succeeded_release

        if superseded_release is None and prev_release is not None and prev_release.status == ReleaseStatus.DEPLOYED:
            superseded_release = prev_release
        if superseded_release is not None and superseded_release.status != ReleaseStatus.DEPLOYED:
            superseded_release = None
        if superseded_release is not None and superseded_release.revision == succeeded_release.revision:
            superseded_release = None
        self.superseded_release = superseded_release

        self.prev_deployed = prev_release is not None and prev_release.status == ReleaseStatus.DEPLOYED
        self.pre_event, self.post_event = hook_events(deploy_type)

        self._cleanup_on_failure: List[Resource] = []
        self._unsupported: List[str] = []

    # ------------------------------------------------------------------
    # entry point
    # ------------------------------------------------------------------
    def build(self) -> Tuple[Plan, List[Resource]]:
        self._check_immutable()

        ns_phase = self._release_namespace_phase()
        crd_phase = self._crds_phase()
        resources_phase = self._resources_phase()
        cleanup_phase = self._cleanup_phase()

        nothing_changed = (
            ns_phase.is_empty()
            and cleanup_phase.is_empty()
            and not any(op.is_mutating for op in crd_phase.operations)
            and not any(op.is_mutating for op in resources_phase.operations)
            and not any(e.status in _CHANGED for e in self._hooks_for(self.pre_event) + self._hooks_for(self.post_event))
        )

        pre_phase = self._hooks_phase(PhaseType.RUN_PRE_HOOKS, self.pre_event, nothing_changed)
        post_phase = self._hooks_phase(PhaseType.RUN_POST_HOOKS, self.post_event, nothing_changed)

        plan = Plan(unsupported=list(self._unsupported))
        plan.add_phase(ns_phase)
        plan.add_phase(self._pending_release_phase())
        plan.add_phase(crd_phase)
        plan.add_phase(pre_phase)
        plan.add_phase(resources_phase)
        plan.add_phase(post_phase)
        plan.add_phase(cleanup_phase)
        plan.add_phase(self._succeed_release_phase())

        log.info(
            "[plan] %s of %s revision %d: %s",
            self.deploy_type.value,
            self.pending_release.name,
            self.pending_release.revision,
            ", ".join(f"{p.type.value}({len(p.operations)})" for p in plan.phases),
        )
        return plan, list(self._cleanup_on_failure)

    # ------------------------------------------------------------------
    # validation
    # ------------------------------------------------------------------
    def _check_immutable(self) -> None:
        c = self.classification
        if c.release_namespace is not None and c.release_namespace.status == ResourceStatus.OUTDATED_IMMUTABLE:
            raise ImmutableConflictError("release namespace", [c.release_namespace.local.id])

        crds = [e.local.id for e in c.crds() if e.status == ResourceStatus.OUTDATED_IMMUTABLE]
        if crds:
            raise ImmutableConflictError("preloaded CRDs", crds)

        hooks = [
            e.local.id
            for e in self._hooks_for(self.pre_event) + self._hooks_for(self.post_event)
            if e.status == ResourceStatus.OUTDATED_IMMUTABLE and not recreate(e.local)
        ]
        if hooks:
            raise ImmutableConflictError("hooks", sorted(set(hooks)))

        general = [
            e.local.id
            for e in c.general()
            if e.status == ResourceStatus.OUTDATED_IMMUTABLE and not recreate(e.local)
        ]
        if general:
            raise ImmutableConflictError("resources", general)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _hooks_for(self, event: HookType) -> List[ClassifiedResource]:
        return [e for e in self.classification.hooks() if has_hook_type(e.local, event)]

    def _note_unsupported(self, entry: ClassifiedResource) -> None:
        self._unsupported.append(entry.local.id)
        if self.prev_deployed:
            log.debug("[plan] %s: type not served, treated as already applied", entry.local.id)
        else:
            log.warning("[plan] %s: type not served by the cluster, skipping", entry.local.id)

    def _ext_deps_phase_op(self, phase: Phase, resources: Sequence[Resource]) -> None:
        deps = [d for r in resources for d in external_dependencies(r)]
        if deps:
            phase.add(OperationType.TRACK_EXTERNAL_DEPENDENCIES_READINESS, deps)

    # ------------------------------------------------------------------
    # phases
    # ------------------------------------------------------------------
    def _release_namespace_phase(self) -> Phase:
        phase = Phase(PhaseType.CREATE_RELEASE_NAMESPACE)
        ns = self.classification.release_namespace
        if ns is None:
            return phase
        if ns.status == ResourceStatus.NON_EXISTING:
            phase.add(OperationType.CREATE, [ns.local])
            phase.add(OperationType.TRACK_UNMANAGED_READINESS, [ns.local])
        elif ns.status == ResourceStatus.OUTDATED:
            phase.add(OperationType.UPDATE, [ns.local])
            phase.add(OperationType.TRACK_UNMANAGED_READINESS, [ns.local])
        return phase

    def _pending_release_phase(self) -> Phase:
        phase = Phase(PhaseType.CREATE_PENDING_RELEASE)
        phase.add(OperationType.CREATE_RELEASE, releases=[self.pending_release])
        return phase

    def _crds_phase(self) -> Phase:
        phase = Phase(PhaseType.DEPLOY_CRDS)
        crds = self.classification.crds()

        to_create = [e.local for e in crds if e.status == ResourceStatus.NON_EXISTING]
        to_update = [e.local for e in crds if e.status == ResourceStatus.OUTDATED]
        to_track = to_create + to_update
        if not self.prev_deployed:
            to_track += [e.local for e in crds if e.status == ResourceStatus.UP_TO_DATE]

        if to_create:
            phase.add(OperationType.CREATE, to_create)
        if to_update:
            phase.add(OperationType.UPDATE, to_update)
        if to_track:
            phase.add(OperationType.TRACK_RESOURCES_READINESS, to_track)
        return phase

    def _resources_phase(self) -> Phase:
        phase = Phase(PhaseType.DEPLOY_RESOURCES)

        for w, group in group_by_weight(self.classification.general()):
            to_create: List[Resource] = []
            to_recreate: List[Resource] = []
            to_update: List[Resource] = []
            to_track: List[Resource] = []

            for e in group:
                res = e.local
                if e.status == ResourceStatus.UNSUPPORTED:
                    self._note_unsupported(e)
                    continue
                if e.status == ResourceStatus.NON_EXISTING:
                    to_create.append(res)
                elif e.outdated and recreate(res):
                    to_recreate.append(res)
                elif e.status == ResourceStatus.OUTDATED:
                    to_update.append(res)
                elif self.prev_deployed:
                    continue
                to_track.append(res)

            if not to_track:
                continue

            log.debug("[plan] weight %d: create=%d recreate=%d update=%d track=%d",
                      w, len(to_create), len(to_recreate), len(to_update), len(to_track))

            self._ext_deps_phase_op(phase, to_track)
            if to_create:
                phase.add(OperationType.CREATE, to_create)
            if to_recreate:
                phase.add(OperationType.RECREATE, to_recreate)
            if to_update:
                phase.add(OperationType.UPDATE, to_update)
            phase.add(OperationType.TRACK_RESOURCES_READINESS, to_track)

            to_delete = [r for r in to_track if delete_on_succeeded(r)]
            if to_delete:
                phase.add(OperationType.DELETE, to_delete)
                phase.add(OperationType.TRACK_ABSENCE, to_delete)

            self._cleanup_on_failure += [r for r in to_track if delete_on_failed(r)]

        return phase

    def _hooks_phase(self, phase_type: PhaseType, event: HookType, nothing_changed: bool) -> Phase:
        phase = Phase(phase_type)
        hooks = self._hooks_for(event)

        if nothing_changed and self.prev_deployed:
            if hooks:
                log.debug("[plan] nothing changed since last deployed release, skipping %s hooks", event.value)
            return phase

        for _, group in group_by_weight(hooks):
            for e in group:
                hook = e.local
                if e.status == ResourceStatus.UNSUPPORTED:
                    self._note_unsupported(e)
                    continue

                up_to_date = e.status == ResourceStatus.UP_TO_DATE
                if up_to_date and not recreate(hook) and self.prev_deployed:
                    continue

                self._ext_deps_phase_op(phase, [hook])

                if not nothing_changed:
                    if recreate(hook):
                        op = OperationType.RECREATE if e.existing else OperationType.CREATE
                        phase.add(op, [hook])
                    elif e.existing and e.outdated:
                        phase.add(OperationType.UPDATE, [hook])
                    elif not e.existing:
                        phase.add(OperationType.CREATE, [hook])

                phase.add(OperationType.TRACK_HOOKS_READINESS, [hook])

                if delete_on_succeeded(hook):
                    phase.add(OperationType.DELETE, [hook])
                    phase.add(OperationType.TRACK_ABSENCE, [hook])
                if delete_on_failed(hook):
                    self._cleanup_on_failure.append(hook)

        return phase

    def _cleanup_phase(self) -> Phase:
        phase = Phase(PhaseType.CLEANUP)
        name, namespace = self.pending_release.name, self.pending_release.namespace
        for orphan in self.classification.orphans:
            if keep_on_deletion(orphan):
                log.info("[plan] keeping %s (resource-policy: keep)", orphan.id)
                continue
            mismatches = ownership_mismatches(orphan.manifest, name, namespace)
            if mismatches:
                log.warning("[plan] not deleting %s, it is not owned by release %s: %s",
                            orphan.id, name, "; ".join(mismatches))
                continue
            phase.add(OperationType.DELETE, [orphan])
            phase.add(OperationType.TRACK_ABSENCE, [orphan])
        return phase

    def _succeed_release_phase(self) -> Phase:
        phase = Phase(PhaseType.SUCCEED_RELEASE)
        phase.add(OperationType.UPDATE_RELEASE, releases=[self.succeeded_release])
        if self.superseded_release is not None:
            phase.add(
                OperationType.UPDATE_RELEASE,
                releases=[self.superseded_release.with_status(ReleaseStatus.SUPERSEDED, "Superseded")],
            )
        return phase
