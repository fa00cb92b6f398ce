# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/resource/__init__.py

from .common import DeletePolicy, FailMode, HookType, ResourceKind, TrackTerminationMode
from .reference import Reference, diff_references
from .resource import (
    ExternalDependency,
    Resource,
    new_crd,
    new_general_resource,
    new_hook,
    new_release_namespace,
    new_unmanaged,
)

__all__ = [
    "DeletePolicy",
    "ExternalDependency",
    "FailMode",
    "HookType",
    "Reference",
    "Resource",
    "ResourceKind",
    "TrackTerminationMode",
    "diff_references",
    "new_crd",
    "new_general_resource",
    "new_hook",
    "new_release_namespace",
    "new_unmanaged",
]
