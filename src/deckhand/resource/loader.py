# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/resource/loader.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

import yaml

from ..errors import ManifestValidationError
from .annotations import HOOK_ANNOTATION
from .metadata import stamp_release, with_metadata
from .resource import Resource, new_crd, new_general_resource, new_hook

log = logging.getLogger("deckhand")

CRDS_DIR = "crds"
MANIFEST_SUFFIXES = (".yaml", ".yml", ".json")


@dataclass
class ReleaseManifests:
    """Rendered documents of one release, split the way they are deployed."""

    crds: List[Dict[str, Any]] = field(default_factory=list)
    hooks: List[Dict[str, Any]] = field(default_factory=list)
    general: List[Dict[str, Any]] = field(default_factory=list)

    def add(self, doc: Dict[str, Any]) -> None:
        annotations = (doc.get("metadata") or {}).get("annotations") or {}
        if HOOK_ANNOTATION in annotations:
            self.hooks.append(doc)
        else:
            self.general.append(doc)


@dataclass
class ReleaseResources:
    crds: List[Resource] = field(default_factory=list)
    hooks: List[Resource] = field(default_factory=list)
    general: List[Resource] = field(default_factory=list)


def _expand(docs: Iterable[Any], source: str) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for doc in docs:
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise ManifestValidationError(f"{source}: expected a mapping, got {type(doc).__name__}")
        if doc.get("kind") == "List" and isinstance(doc.get("items"), list):
            out.extend(_expand(doc["items"], source))
            continue
        out.append(doc)
    return out


def parse_documents(text: str, source: str = "<string>") -> List[Dict[str, Any]]:
    try:
        return _expand(yaml.safe_load_all(text), source)
    except yaml.YAMLError as e:
        raise ManifestValidationError(f"{source}: invalid YAML: {e}") from e


def _manifest_files(root: Path) -> List[Path]:
    return sorted(p for p in root.rglob("*") if p.is_file() and p.suffix in MANIFEST_SUFFIXES)


def load_manifests(path: str | Path) -> ReleaseManifests:
    """
    Load rendered manifests from a directory (or a single file).

    Files under a top-level `crds/` directory are preloaded CRDs; anything
    annotated with helm.sh/hook is a hook; the rest are general resources.
    """
    root = Path(path)
    manifests = ReleaseManifests()

    if root.is_file():
        for doc in parse_documents(root.read_text(), str(root)):
            manifests.add(doc)
        return manifests

    if not root.is_dir():
        raise ManifestValidationError(f"manifest path {root} does not exist")

    crds_dir = root / CRDS_DIR
    for f in _manifest_files(root):
        docs = parse_documents(f.read_text(), str(f))
        if crds_dir in f.parents:
            manifests.crds.extend(docs)
        else:
            for doc in docs:
                manifests.add(doc)

    log.debug(
        "[manifests] loaded %d crds, %d hooks, %d resources from %s",
        len(manifests.crds), len(manifests.hooks), len(manifests.general), root,
    )
    return manifests


def build_resources(
    manifests: ReleaseManifests,
    namespace: str,
    release_name: Optional[str] = None,
    extra_annotations: Optional[Mapping[str, str]] = None,
    extra_labels: Optional[Mapping[str, str]] = None,
) -> ReleaseResources:
    """
    Construct typed resources; annotation errors surface here, before any
    cluster call.

    Extra annotations and labels go on every document. With a release name,
    hooks and general resources are also stamped as owned by that release;
    preloaded CRDs are shared between releases and stay unstamped.
    """

    def prepare(doc: Dict[str, Any], owned: bool) -> Dict[str, Any]:
        if not isinstance(doc, dict):
            return doc
        doc = with_metadata(doc, extra_annotations, extra_labels)
        if owned and release_name:
            doc = stamp_release(doc, release_name, namespace)
        return doc

    return ReleaseResources(
        crds=[new_crd(prepare(d, owned=False)) for d in manifests.crds],
        hooks=[new_hook(prepare(d, owned=True), namespace) for d in manifests.hooks],
        general=[new_general_resource(prepare(d, owned=True), namespace) for d in manifests.general],
    )
