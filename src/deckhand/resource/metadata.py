# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/resource/metadata.py
"""
Release ownership metadata.

Every object a release deploys is stamped with the release name, the
release namespace and a managed-by label. Orphan cleanup only deletes live
objects that still carry that stamp, so objects adopted or re-labelled by
someone else stay in place.
"""
from __future__ import annotations

import copy
from typing import Any, Dict, List, Mapping, Optional

RELEASE_NAME_ANNOTATION = "meta.helm.sh/release-name"
RELEASE_NAMESPACE_ANNOTATION = "meta.helm.sh/release-namespace"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY = "deckhand"


def with_metadata(
    doc: Dict[str, Any],
    annotations: Optional[Mapping[str, str]] = None,
    labels: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """Copy of `doc` with the given annotations and labels merged over its own."""
    out = copy.deepcopy(doc)
    meta = out.setdefault("metadata", {})
    if annotations:
        meta["annotations"] = {**(meta.get("annotations") or {}), **annotations}
    if labels:
        meta["labels"] = {**(meta.get("labels") or {}), **labels}
    return out


def ownership_annotations(release_name: str, release_namespace: str) -> Dict[str, str]:
    return {
        RELEASE_NAME_ANNOTATION: release_name,
        RELEASE_NAMESPACE_ANNOTATION: release_namespace,
    }


def ownership_labels() -> Dict[str, str]:
    return {MANAGED_BY_LABEL: MANAGED_BY}


def stamp_release(doc: Dict[str, Any], release_name: str, release_namespace: str) -> Dict[str, Any]:
    return with_metadata(
        doc,
        annotations=ownership_annotations(release_name, release_namespace),
        labels=ownership_labels(),
    )


def ownership_mismatches(doc: Dict[str, Any], release_name: str, release_namespace: str) -> List[str]:
    """Reasons `doc` is not owned by the release; empty when it is."""
    meta = doc.get("metadata") or {}
    annotations = meta.get("annotations") or {}
    labels = meta.get("labels") or {}

    want = (
        ("annotation", RELEASE_NAME_ANNOTATION, annotations, release_name),
        ("annotation", RELEASE_NAMESPACE_ANNOTATION, annotations, release_namespace),
        ("label", MANAGED_BY_LABEL, labels, MANAGED_BY),
    )
    out: List[str] = []
    for what, key, have, value in want:
        if key not in have:
            out.append(f"{what} {key!r} not found, must be set to {value!r}")
        elif have[key] != value:
            out.append(f"{what} \"{key}={have[key]}\" must have value {value!r}")
    return out
