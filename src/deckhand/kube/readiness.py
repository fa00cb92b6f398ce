# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/kube/readiness.py
from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple


class ReadyState(str, Enum):
    READY = "ready"
    PENDING = "pending"
    FAILED = "failed"


Verdict = Tuple[ReadyState, str]


def _conditions(obj: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    conds: List[Dict[str, Any]] = (obj.get("status") or {}).get("conditions") or []
    return {c.get("type"): c for c in conds if isinstance(c, dict)}


def _cond_true(obj: Dict[str, Any], cond_type: str) -> bool:
    c = _conditions(obj).get(cond_type)
    return bool(c) and str(c.get("status")) == "True"


def _observed(obj: Dict[str, Any]) -> bool:
    gen = (obj.get("metadata") or {}).get("generation")
    observed = (obj.get("status") or {}).get("observedGeneration")
    if gen is None or observed is None:
        return True
    return observed >= gen


def _deployment(obj: Dict[str, Any], failures_allowed: int) -> Verdict:
    status = obj.get("status") or {}
    progressing = _conditions(obj).get("Progressing")
    if progressing and progressing.get("reason") == "ProgressDeadlineExceeded":
        return ReadyState.FAILED, progressing.get("message") or "progress deadline exceeded"
    if not _observed(obj):
        return ReadyState.PENDING, "waiting for controller to observe generation"
    want = (obj.get("spec") or {}).get("replicas", 1)
    updated = status.get("updatedReplicas", 0)
    available = status.get("availableReplicas", 0)
    total = status.get("replicas", 0)
    if updated < want:
        return ReadyState.PENDING, f"{updated}/{want} replicas updated"
    if total > updated:
        return ReadyState.PENDING, f"{total - updated} old replicas pending termination"
    if available < want:
        return ReadyState.PENDING, f"{available}/{want} replicas available"
    return ReadyState.READY, "all replicas available"


def _statefulset(obj: Dict[str, Any], failures_allowed: int) -> Verdict:
    status = obj.get("status") or {}
    spec = obj.get("spec") or {}
    if not _observed(obj):
        return ReadyState.PENDING, "waiting for controller to observe generation"
    want = spec.get("replicas", 1)
    ready = status.get("readyReplicas", 0)
    if ready < want:
        return ReadyState.PENDING, f"{ready}/{want} replicas ready"
    strategy = (spec.get("updateStrategy") or {}).get("type", "RollingUpdate")
    if strategy == "RollingUpdate" and status.get("updateRevision") != status.get("currentRevision"):
        return ReadyState.PENDING, "rolling update in progress"
    return ReadyState.READY, "all replicas ready"


def _daemonset(obj: Dict[str, Any], failures_allowed: int) -> Verdict:
    status = obj.get("status") or {}
    if not _observed(obj):
        return ReadyState.PENDING, "waiting for controller to observe generation"
    want = status.get("desiredNumberScheduled", 0)
    updated = status.get("updatedNumberScheduled", 0)
    ready = status.get("numberReady", 0)
    if updated < want or ready < want:
        return ReadyState.PENDING, f"{ready}/{want} pods ready, {updated} updated"
    return ReadyState.READY, "all pods ready"


def _job(obj: Dict[str, Any], failures_allowed: int) -> Verdict:
    if _cond_true(obj, "Complete"):
        return ReadyState.READY, "job complete"
    if _cond_true(obj, "Failed"):
        return ReadyState.FAILED, _conditions(obj)["Failed"].get("message") or "job failed"
    failed = (obj.get("status") or {}).get("failed", 0)
    if failed > failures_allowed:
        return ReadyState.FAILED, f"{failed} pod failures, {failures_allowed} allowed"
    return ReadyState.PENDING, "job running"


def _pod(obj: Dict[str, Any], failures_allowed: int) -> Verdict:
    status = obj.get("status") or {}
    phase = status.get("phase")
    if phase == "Succeeded":
        return ReadyState.READY, "pod succeeded"
    if phase == "Failed":
        return ReadyState.FAILED, status.get("message") or "pod failed"
    restarts = sum(cs.get("restartCount", 0) for cs in status.get("containerStatuses") or [])
    if restarts > failures_allowed:
        return ReadyState.FAILED, f"{restarts} container restarts, {failures_allowed} allowed"
    if phase == "Running" and _cond_true(obj, "Ready"):
        return ReadyState.READY, "pod ready"
    return ReadyState.PENDING, f"pod {phase or 'pending'}"


def _namespace(obj: Dict[str, Any], failures_allowed: int) -> Verdict:
    phase = (obj.get("status") or {}).get("phase", "Active")
    if phase == "Active":
        return ReadyState.READY, "namespace active"
    return ReadyState.PENDING, f"namespace {phase}"


def _crd(obj: Dict[str, Any], failures_allowed: int) -> Verdict:
    if _cond_true(obj, "Established"):
        return ReadyState.READY, "crd established"
    return ReadyState.PENDING, "waiting for crd to be established"


def _pvc(obj: Dict[str, Any], failures_allowed: int) -> Verdict:
    phase = (obj.get("status") or {}).get("phase")
    if phase == "Bound":
        return ReadyState.READY, "claim bound"
    if phase == "Lost":
        return ReadyState.FAILED, "claim lost"
    return ReadyState.PENDING, f"claim {phase or 'pending'}"


def _service(obj: Dict[str, Any], failures_allowed: int) -> Verdict:
    if (obj.get("spec") or {}).get("type") != "LoadBalancer":
        return ReadyState.READY, "service exists"
    ingress = ((obj.get("status") or {}).get("loadBalancer") or {}).get("ingress")
    if ingress:
        return ReadyState.READY, "load balancer provisioned"
    return ReadyState.PENDING, "waiting for load balancer"


RULES: Dict[str, Callable[[Dict[str, Any], int], Verdict]] = {
    "Deployment": _deployment,
    "StatefulSet": _statefulset,
    "DaemonSet": _daemonset,
    "Job": _job,
    "Pod": _pod,
    "Namespace": _namespace,
    "CustomResourceDefinition": _crd,
    "PersistentVolumeClaim": _pvc,
    "Service": _service,
}


def readiness(obj: Optional[Dict[str, Any]], failures_allowed: int = 1) -> Verdict:
    """Judge a live object. Kinds without a rule are ready once they exist."""
    if obj is None:
        return ReadyState.PENDING, "not found"
    rule = RULES.get(obj.get("kind", ""))
    if rule is None:
        return ReadyState.READY, "exists"
    return rule(obj, failures_allowed)
