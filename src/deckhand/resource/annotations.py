# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/resource/annotations.py
"""
Annotation registry.

Every recognised annotation key maps to a parser that yields one tagged
attribute variant. Parsing happens once per resource; accessors read the
resulting ResourceAttributes and never touch raw annotation strings again.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Match, Optional, Pattern, Tuple, Union

from ..errors import AnnotationValidationError
from .common import (
    DELETE_POLICY_VALUES,
    HELM_DELETE_POLICY_VALUES,
    HELM_HOOK_VALUES,
    DeletePolicy,
    FailMode,
    HookType,
    TrackTerminationMode,
)

ANNOTATION_DOMAIN = "deckhand.io"

HOOK_ANNOTATION = "helm.sh/hook"
HOOK_WEIGHT_ANNOTATION = "helm.sh/hook-weight"
HOOK_DELETE_POLICY_ANNOTATION = "helm.sh/hook-delete-policy"
RESOURCE_POLICY_ANNOTATION = "helm.sh/resource-policy"
WEIGHT_ANNOTATION = f"{ANNOTATION_DOMAIN}/weight"
DELETE_POLICY_ANNOTATION = f"{ANNOTATION_DOMAIN}/delete-policy"
FAIL_MODE_ANNOTATION = f"{ANNOTATION_DOMAIN}/fail-mode"
TRACK_TERMINATION_MODE_ANNOTATION = f"{ANNOTATION_DOMAIN}/track-termination-mode"
FAILURES_ALLOWED_ANNOTATION = f"{ANNOTATION_DOMAIN}/failures-allowed-per-replica"
NO_ACTIVITY_TIMEOUT_ANNOTATION = f"{ANNOTATION_DOMAIN}/no-activity-timeout"
REPLICAS_ON_CREATION_ANNOTATION = f"{ANNOTATION_DOMAIN}/replicas-on-creation"
EXTERNAL_DEPENDENCY_SUFFIX = f"external-dependency.{ANNOTATION_DOMAIN}"


# ---------------------------------------------------------------------
# Attribute variants
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class Weight:
    value: int


@dataclass(frozen=True)
class HookWeight:
    value: int


@dataclass(frozen=True)
class HookTypes:
    values: FrozenSet[HookType]


@dataclass(frozen=True)
class DeletePolicies:
    values: FrozenSet[DeletePolicy]


@dataclass(frozen=True)
class HookDeletePolicies:
    values: FrozenSet[DeletePolicy]


@dataclass(frozen=True)
class ResourcePolicy:
    keep: bool


@dataclass(frozen=True)
class ExternalDependencyResource:
    id: str
    resource_type: str
    name: str


@dataclass(frozen=True)
class ExternalDependencyNamespace:
    id: str
    namespace: str


@dataclass(frozen=True)
class FailModeAttribute:
    mode: FailMode


@dataclass(frozen=True)
class TrackTerminationModeAttribute:
    mode: TrackTerminationMode


@dataclass(frozen=True)
class FailuresAllowedPerReplica:
    value: int


@dataclass(frozen=True)
class NoActivityTimeout:
    seconds: float


@dataclass(frozen=True)
class ReplicasOnCreation:
    value: int


Attribute = Union[
    Weight,
    HookWeight,
    HookTypes,
    DeletePolicies,
    HookDeletePolicies,
    ResourcePolicy,
    ExternalDependencyResource,
    ExternalDependencyNamespace,
    FailModeAttribute,
    TrackTerminationModeAttribute,
    FailuresAllowedPerReplica,
    NoActivityTimeout,
    ReplicasOnCreation,
]


# ---------------------------------------------------------------------
# Value parsers (raise ValueError with a short reason)
# ---------------------------------------------------------------------
def _int(value: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        raise ValueError("expected an integer") from None


def _list(value: str) -> List[str]:
    items = [v.strip() for v in value.split(",")]
    items = [v for v in items if v]
    if not items:
        raise ValueError("expected a comma-separated list")
    return items


def _choice(value: str, choices: Dict[str, object]):
    value = value.strip()
    if value not in choices:
        raise ValueError(f"expected one of: {', '.join(sorted(choices))}")
    return choices[value]


_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: str) -> float:
    """Go-style duration ('90s', '4m', '1h30m') in seconds."""
    value = value.strip()
    if not value:
        raise ValueError("expected a duration such as 90s or 4m")
    pos = 0
    total = 0.0
    while pos < len(value):
        m = _DURATION_PART.match(value, pos)
        if not m:
            raise ValueError("expected a duration such as 90s or 4m")
        total += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
        pos = m.end()
    return total


def _parse_weight(key: str, value: str, m: Match) -> Attribute:
    return Weight(_int(value))


def _parse_hook_weight(key: str, value: str, m: Match) -> Attribute:
    return HookWeight(_int(value))


def _parse_hook(key: str, value: str, m: Match) -> Attribute:
    return HookTypes(frozenset(_choice(v, HELM_HOOK_VALUES) for v in _list(value)))


def _parse_hook_delete_policy(key: str, value: str, m: Match) -> Attribute:
    return HookDeletePolicies(frozenset(_choice(v, HELM_DELETE_POLICY_VALUES) for v in _list(value)))


def _parse_delete_policy(key: str, value: str, m: Match) -> Attribute:
    return DeletePolicies(frozenset(_choice(v, DELETE_POLICY_VALUES) for v in _list(value)))


def _parse_resource_policy(key: str, value: str, m: Match) -> Attribute:
    _choice(value, {"keep": True})
    return ResourcePolicy(keep=True)


def _parse_fail_mode(key: str, value: str, m: Match) -> Attribute:
    return FailModeAttribute(_choice(value, {f.value: f for f in FailMode}))


def _parse_track_termination_mode(key: str, value: str, m: Match) -> Attribute:
    return TrackTerminationModeAttribute(_choice(value, {t.value: t for t in TrackTerminationMode}))


def _parse_failures_allowed(key: str, value: str, m: Match) -> Attribute:
    n = _int(value)
    if n < 0:
        raise ValueError("must not be negative")
    return FailuresAllowedPerReplica(n)


def _parse_no_activity_timeout(key: str, value: str, m: Match) -> Attribute:
    return NoActivityTimeout(parse_duration(value))


def _parse_replicas_on_creation(key: str, value: str, m: Match) -> Attribute:
    if not value.strip():
        raise ValueError("must not be empty")
    n = _int(value)
    if n < 0:
        raise ValueError("must be a positive number or zero")
    return ReplicasOnCreation(n)


def _parse_ext_dep_resource(key: str, value: str, m: Match) -> Attribute:
    parts = value.strip().split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ValueError("expected <type>/<name>")
    if parts[0].lower() == "all":
        raise ValueError("'all' is not a valid resource type")
    return ExternalDependencyResource(id=m.group("id"), resource_type=parts[0], name=parts[1])


def _parse_ext_dep_namespace(key: str, value: str, m: Match) -> Attribute:
    ns = value.strip()
    if not ns:
        raise ValueError("namespace must not be empty")
    return ExternalDependencyNamespace(id=m.group("id"), namespace=ns)


# ---------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class AnnotationParser:
    pattern: Pattern
    parse: Callable[[str, str, Match], Attribute]


def _exact(key: str) -> Pattern:
    return re.compile("^" + re.escape(key) + "$")


REGISTRY: Tuple[AnnotationParser, ...] = (
    AnnotationParser(_exact(HOOK_ANNOTATION), _parse_hook),
    AnnotationParser(_exact(HOOK_WEIGHT_ANNOTATION), _parse_hook_weight),
    AnnotationParser(_exact(HOOK_DELETE_POLICY_ANNOTATION), _parse_hook_delete_policy),
    AnnotationParser(_exact(RESOURCE_POLICY_ANNOTATION), _parse_resource_policy),
    AnnotationParser(_exact(WEIGHT_ANNOTATION), _parse_weight),
    AnnotationParser(_exact(DELETE_POLICY_ANNOTATION), _parse_delete_policy),
    AnnotationParser(_exact(FAIL_MODE_ANNOTATION), _parse_fail_mode),
    AnnotationParser(_exact(TRACK_TERMINATION_MODE_ANNOTATION), _parse_track_termination_mode),
    AnnotationParser(_exact(FAILURES_ALLOWED_ANNOTATION), _parse_failures_allowed),
    AnnotationParser(_exact(NO_ACTIVITY_TIMEOUT_ANNOTATION), _parse_no_activity_timeout),
    AnnotationParser(_exact(REPLICAS_ON_CREATION_ANNOTATION), _parse_replicas_on_creation),
    AnnotationParser(
        re.compile(r"^(?P<id>[\w-]+)\." + re.escape(EXTERNAL_DEPENDENCY_SUFFIX) + r"/resource$"),
        _parse_ext_dep_resource,
    ),
    AnnotationParser(
        re.compile(r"^(?P<id>[\w-]+)\." + re.escape(EXTERNAL_DEPENDENCY_SUFFIX) + r"/namespace$"),
        _parse_ext_dep_namespace,
    ),
)


def parse_annotations(annotations: Optional[Dict[str, str]], subject: str) -> List[Attribute]:
    """
    Parse every recognised annotation. Unknown keys are ignored.
    A recognised key with a bad value raises AnnotationValidationError.
    """
    out: List[Attribute] = []
    for key, raw in sorted((annotations or {}).items()):
        for entry in REGISTRY:
            m = entry.pattern.match(key)
            if not m:
                continue
            value = "" if raw is None else str(raw)
            try:
                out.append(entry.parse(key, value, m))
            except ValueError as e:
                raise AnnotationValidationError(subject, key, value, str(e)) from e
            break
    return out


# ---------------------------------------------------------------------
# Resolved attribute set
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ResourceAttributes:
    weight: Optional[int] = None
    hook_weight: Optional[int] = None
    hook_types: FrozenSet[HookType] = frozenset()
    delete_policies: Optional[FrozenSet[DeletePolicy]] = None
    hook_delete_policies: Optional[FrozenSet[DeletePolicy]] = None
    keep: bool = False
    external_dependencies: Tuple[Tuple[ExternalDependencyResource, Optional[str]], ...] = ()
    fail_mode: FailMode = FailMode.FAIL_IMMEDIATELY
    track_termination_mode: TrackTerminationMode = TrackTerminationMode.WAIT_UNTIL_READY
    failures_allowed_per_replica: int = 1
    no_activity_timeout: Optional[float] = None
    replicas_on_creation: Optional[int] = None
    raw: Dict[str, str] = field(default_factory=dict, compare=False)


def resolve_attributes(annotations: Optional[Dict[str, str]], subject: str) -> ResourceAttributes:
    attrs = parse_annotations(annotations, subject)
    values: Dict[str, object] = {}
    ext_resources: Dict[str, ExternalDependencyResource] = {}
    ext_namespaces: Dict[str, ExternalDependencyNamespace] = {}

    for a in attrs:
        if isinstance(a, Weight):
            values["weight"] = a.value
        elif isinstance(a, HookWeight):
            values["hook_weight"] = a.value
        elif isinstance(a, HookTypes):
            values["hook_types"] = a.values
        elif isinstance(a, DeletePolicies):
            values["delete_policies"] = a.values
        elif isinstance(a, HookDeletePolicies):
            values["hook_delete_policies"] = a.values
        elif isinstance(a, ResourcePolicy):
            values["keep"] = a.keep
        elif isinstance(a, FailModeAttribute):
            values["fail_mode"] = a.mode
        elif isinstance(a, TrackTerminationModeAttribute):
            values["track_termination_mode"] = a.mode
        elif isinstance(a, FailuresAllowedPerReplica):
            values["failures_allowed_per_replica"] = a.value
        elif isinstance(a, NoActivityTimeout):
            values["no_activity_timeout"] = a.seconds
        elif isinstance(a, ReplicasOnCreation):
            values["replicas_on_creation"] = a.value
        elif isinstance(a, ExternalDependencyResource):
            ext_resources[a.id] = a
        elif isinstance(a, ExternalDependencyNamespace):
            ext_namespaces[a.id] = a

    for dep_id, ns in ext_namespaces.items():
        if dep_id not in ext_resources:
            key = f"{dep_id}.{EXTERNAL_DEPENDENCY_SUFFIX}/namespace"
            raise AnnotationValidationError(
                subject, key, ns.namespace, f"no matching {dep_id}.{EXTERNAL_DEPENDENCY_SUFFIX}/resource annotation"
            )

    values["external_dependencies"] = tuple(
        (ext_resources[i], ext_namespaces[i].namespace if i in ext_namespaces else None)
        for i in sorted(ext_resources)
    )
    return ResourceAttributes(raw=dict(annotations or {}), **values)
