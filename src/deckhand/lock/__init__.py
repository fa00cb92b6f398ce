# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/lock/__init__.py

from .locker import ConfigMapLocker, InMemoryLocker, Locker, LockHandle
from .manager import LockManager, release_lock_name

__all__ = ["ConfigMapLocker", "InMemoryLocker", "LockHandle", "LockManager", "Locker", "release_lock_name"]
