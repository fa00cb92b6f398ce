# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/resource/resource.py
from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from ..errors import ManifestValidationError
from .annotations import RESOURCE_POLICY_ANNOTATION, ResourceAttributes, resolve_attributes
from .common import (
    DEFAULT_HOOK_DELETE_POLICIES,
    DeletePolicy,
    FailMode,
    HookType,
    ResourceKind,
    ResourceOrigin,
    TrackTerminationMode,
)
from .reference import Reference

CRD_GROUP = "apiextensions.k8s.io"
CRD_KIND = "CustomResourceDefinition"


@dataclass(frozen=True, eq=False)
class Resource:
    """
    A resource document plus its identity and parsed annotation attributes.
    The `kind` tag replaces per-variant classes; use the module functions
    below to read derived attributes.
    """

    ref: Reference
    manifest: Dict[str, Any]
    kind: ResourceKind
    attributes: ResourceAttributes
    origin: ResourceOrigin = ResourceOrigin.LOCAL

    @property
    def id(self) -> str:
        return str(self.ref)

    def __str__(self) -> str:
        return self.id

    def __repr__(self) -> str:
        return f"Resource({self.kind.value}, {self.id})"


@dataclass(frozen=True)
class ExternalDependency:
    """A resource outside the release that must be ready first."""

    id: str
    resource_type: str
    name: str
    namespace: str

    def __str__(self) -> str:
        base = f"{self.resource_type}/{self.name}"
        return f"{self.namespace}/{base}" if self.namespace else base


# ---------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------
def new_resource(
    doc: Dict[str, Any],
    kind: ResourceKind,
    default_namespace: str = "",
) -> Resource:
    ref = Reference.from_manifest(doc, default_namespace)
    manifest = copy.deepcopy(doc)
    annotations = (manifest.get("metadata") or {}).get("annotations") or {}
    attrs = resolve_attributes(annotations, str(ref))

    if kind == ResourceKind.HOOK and not attrs.hook_types:
        raise ManifestValidationError(f"hook {ref} has no helm.sh/hook annotation")
    if kind == ResourceKind.CRD and not (ref.group == CRD_GROUP and ref.kind == CRD_KIND):
        raise ManifestValidationError(f"{ref} is not a CustomResourceDefinition")

    return Resource(ref=ref, manifest=manifest, kind=kind, attributes=attrs)


def new_general_resource(doc: Dict[str, Any], default_namespace: str = "") -> Resource:
    return new_resource(doc, ResourceKind.GENERAL, default_namespace)


def new_hook(doc: Dict[str, Any], default_namespace: str = "") -> Resource:
    return new_resource(doc, ResourceKind.HOOK, default_namespace)


def new_crd(doc: Dict[str, Any]) -> Resource:
    return new_resource(doc, ResourceKind.CRD)


def new_unmanaged(doc: Dict[str, Any], default_namespace: str = "") -> Resource:
    return new_resource(doc, ResourceKind.UNMANAGED, default_namespace)


def new_release_namespace(name: str) -> Resource:
    return new_unmanaged({"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}})


def as_live(res: Resource, live: Dict[str, Any]) -> Resource:
    """Same identity and attributes, with the document as fetched from the cluster."""
    return Resource(
        ref=res.ref,
        manifest=copy.deepcopy(live),
        kind=res.kind,
        attributes=res.attributes,
        origin=ResourceOrigin.LIVE,
    )


# ---------------------------------------------------------------------
# Accessors
# ---------------------------------------------------------------------
def weight(res: Resource) -> int:
    a = res.attributes
    if res.kind == ResourceKind.HOOK:
        if a.hook_weight is not None:
            return a.hook_weight
        return a.weight or 0
    if res.kind == ResourceKind.GENERAL:
        return a.weight or 0
    return 0


def hook_types(res: Resource) -> FrozenSet[HookType]:
    return res.attributes.hook_types


def has_hook_type(res: Resource, hook_type: HookType) -> bool:
    return hook_type in res.attributes.hook_types


def on_pre_event(res: Resource) -> bool:
    return any(h.is_pre for h in res.attributes.hook_types)


def on_post_event(res: Resource) -> bool:
    return any(h.is_post for h in res.attributes.hook_types)


def delete_policies(res: Resource) -> FrozenSet[DeletePolicy]:
    a = res.attributes
    if res.kind == ResourceKind.HOOK:
        if a.hook_delete_policies is not None:
            return a.hook_delete_policies
        if a.delete_policies is not None:
            return a.delete_policies
        return DEFAULT_HOOK_DELETE_POLICIES
    if res.kind == ResourceKind.GENERAL:
        return a.delete_policies or frozenset()
    return frozenset()


def recreate(res: Resource) -> bool:
    return DeletePolicy.BEFORE_CREATION in delete_policies(res)


def delete_on_succeeded(res: Resource) -> bool:
    return DeletePolicy.AFTER_SUCCEEDED in delete_policies(res)


def delete_on_failed(res: Resource) -> bool:
    return DeletePolicy.AFTER_FAILED in delete_policies(res)


def keep_on_deletion(res: Resource) -> bool:
    """
    Local resource-policy: keep, or for a live document its own policy.
    A live policy other than "keep" is unreadable and also keeps the object.
    """
    if res.attributes.keep:
        return True
    if res.origin != ResourceOrigin.LIVE:
        return False
    annotations = (res.manifest.get("metadata") or {}).get("annotations") or {}
    return RESOURCE_POLICY_ANNOTATION in annotations


def fail_mode(res: Resource) -> FailMode:
    return res.attributes.fail_mode


def track_termination_mode(res: Resource) -> TrackTerminationMode:
    return res.attributes.track_termination_mode


def failures_allowed_per_replica(res: Resource) -> int:
    return res.attributes.failures_allowed_per_replica


def no_activity_timeout(res: Resource) -> Optional[float]:
    return res.attributes.no_activity_timeout


def replicas_on_creation(res: Resource) -> Optional[int]:
    if res.kind not in (ResourceKind.GENERAL, ResourceKind.HOOK):
        return None
    return res.attributes.replicas_on_creation


def for_creation(res: Resource) -> Resource:
    """The resource as it is sent on create, with spec.replicas forced when annotated."""
    replicas = replicas_on_creation(res)
    if replicas is None:
        return res
    manifest = copy.deepcopy(res.manifest)
    manifest.setdefault("spec", {})["replicas"] = replicas
    return Resource(ref=res.ref, manifest=manifest, kind=res.kind, attributes=res.attributes, origin=res.origin)


def external_dependencies(res: Resource) -> List[ExternalDependency]:
    return [
        ExternalDependency(
            id=dep.id,
            resource_type=dep.resource_type,
            name=dep.name,
            namespace=ns or res.ref.namespace,
        )
        for dep, ns in res.attributes.external_dependencies
    ]


def is_crd(res: Resource) -> bool:
    return res.ref.group == CRD_GROUP and res.ref.kind == CRD_KIND


def crd_defines(res: Resource) -> Optional[Tuple[str, str]]:
    """(group, kind) served by a CRD manifest, or None."""
    if not is_crd(res):
        return None
    spec = res.manifest.get("spec") or {}
    group = spec.get("group")
    kind = (spec.get("names") or {}).get("kind")
    if not group or not kind:
        return None
    return group, kind
