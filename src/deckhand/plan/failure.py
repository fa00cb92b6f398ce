# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/plan/failure.py
from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from ..release.release import Release, ReleaseStatus
from ..resource.resource import Resource, delete_on_failed, is_crd, on_post_event, on_pre_event
from .plan import OperationStatus, OperationType, Phase, PhaseType, Plan

log = logging.getLogger("deckhand")


def _dedup_key(res: Resource) -> str:
    return f"{res.id}::{on_pre_event(res)}::{on_post_event(res)}"


def tracking_failed(deploy_plan: Plan, res: Resource) -> bool:
    """True if a readiness-tracking op of deploy_plan targeting res failed because of res."""
    for op in deploy_plan.operations():
        if not op.is_readiness_tracking or op.status != OperationStatus.FAILED:
            continue
        if res.id not in op.target_ids:
            continue
        if not op.failed_targets or res.id in op.failed_targets:
            return True
    return False


class FailurePlanBuilder:
    """
    Builds the plan run after a failed deploy: mark the new release failed,
    then remove resources whose delete policy asks for it on failure.
    """

    def __init__(
        self,
        deploy_plan: Plan,
        cleanup_on_failure: Sequence[Resource],
        failed_release: Release,
    ):
        self.deploy_plan = deploy_plan
        self.cleanup_on_failure = list(cleanup_on_failure)
        if failed_release.status != ReleaseStatus.FAILED:
            failed_release = failed_release.with_status(ReleaseStatus.FAILED)
        self.failed_release = failed_release

    def _candidates(self) -> List[Resource]:
        unique: Dict[str, Resource] = {}
        for res in self.cleanup_on_failure:
            unique.setdefault(_dedup_key(res), res)

        return [
            res
            for res in unique.values()
            if not is_crd(res) and delete_on_failed(res) and tracking_failed(self.deploy_plan, res)
        ]

    def build(self) -> Plan:
        plan = Plan()

        fail = Phase(PhaseType.FAIL_RELEASE)
        fail.add(OperationType.UPDATE_RELEASE, releases=[self.failed_release])
        plan.add_phase(fail)

        cleanup = Phase(PhaseType.CLEANUP_ON_FAILURE)
        for res in self._candidates():
            cleanup.add(OperationType.DELETE, [res])
            cleanup.add(OperationType.TRACK_ABSENCE, [res])
        plan.add_phase(cleanup)

        log.info(
            "[plan] failure plan for %s revision %d: %d resource(s) to clean up",
            self.failed_release.name, self.failed_release.revision, len(cleanup.operations) // 2,
        )
        return plan
