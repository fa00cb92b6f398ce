# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/release/__init__.py

from .history import History
from .release import DeployType, Release, ReleaseStatus
from .storage import ConfigMapStorage, MemoryStorage, SecretStorage, new_storage

__all__ = [
    "ConfigMapStorage",
    "DeployType",
    "History",
    "MemoryStorage",
    "Release",
    "ReleaseStatus",
    "SecretStorage",
    "new_storage",
]
