# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/resource/reference.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Tuple

from ..errors import ManifestValidationError

CLUSTER_SCOPED_KINDS = frozenset(
    {
        "Namespace",
        "CustomResourceDefinition",
        "ClusterRole",
        "ClusterRoleBinding",
        "PriorityClass",
        "StorageClass",
        "PersistentVolume",
        "MutatingWebhookConfiguration",
        "ValidatingWebhookConfiguration",
        "APIService",
        "IngressClass",
        "Node",
        "CSIDriver",
        "RuntimeClass",
    }
)


def split_api_version(api_version: str) -> Tuple[str, str]:
    """'apps/v1' -> ('apps', 'v1'), 'v1' -> ('', 'v1')"""
    if "/" in api_version:
        group, version = api_version.split("/", 1)
        return group, version
    return "", api_version


@dataclass(frozen=True)
class Reference:
    """Identity of a cluster object."""

    name: str
    namespace: str = ""
    group: str = ""
    version: str = ""
    kind: str = ""

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    @property
    def group_kind(self) -> Tuple[str, str]:
        return self.group, self.kind

    def matches(self, other: "Reference") -> bool:
        return (
            self.name == other.name
            and self.namespace == other.namespace
            and self.group == other.group
            and self.version == other.version
            and self.kind == other.kind
        )

    def __str__(self) -> str:
        parts = [self.api_version, self.kind, self.namespace, self.name]
        return "/".join(p for p in parts if p)

    @classmethod
    def from_manifest(cls, doc: Dict[str, Any], default_namespace: str = "") -> "Reference":
        if not isinstance(doc, dict):
            raise ManifestValidationError(f"manifest must be a mapping, got {type(doc).__name__}")

        api_version = doc.get("apiVersion")
        kind = doc.get("kind")
        meta = doc.get("metadata") or {}
        name = meta.get("name")

        missing = [k for k, v in (("apiVersion", api_version), ("kind", kind), ("metadata.name", name)) if not v]
        if missing:
            raise ManifestValidationError(
                f"manifest {meta.get('name') or kind or '<unnamed>'} is missing required field(s): {', '.join(missing)}"
            )

        group, version = split_api_version(str(api_version))
        if kind in CLUSTER_SCOPED_KINDS:
            namespace = ""
        else:
            namespace = meta.get("namespace") or default_namespace

        return cls(name=str(name), namespace=namespace, group=group, version=version, kind=str(kind))


def diff_references(previous: Iterable[Reference], current: Iterable[Reference]) -> List[Reference]:
    """References present in `previous` that match nothing in `current`."""
    current = list(current)
    return [p for p in previous if not any(p.matches(c) for c in current)]
