# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/resource/common.py
from __future__ import annotations

from enum import Enum


class ResourceKind(str, Enum):
    GENERAL = "general"
    HOOK = "hook"
    UNMANAGED = "unmanaged"
    CRD = "crd"


class ResourceOrigin(str, Enum):
    LOCAL = "local"
    LIVE = "live"


class HookType(str, Enum):
    PRE_INSTALL = "pre-install"
    POST_INSTALL = "post-install"
    PRE_UPGRADE = "pre-upgrade"
    POST_UPGRADE = "post-upgrade"
    PRE_ROLLBACK = "pre-rollback"
    POST_ROLLBACK = "post-rollback"
    PRE_DELETE = "pre-delete"
    POST_DELETE = "post-delete"
    TEST = "test"

    @property
    def is_pre(self) -> bool:
        return self.value.startswith("pre-")

    @property
    def is_post(self) -> bool:
        return self.value.startswith("post-")


class DeletePolicy(str, Enum):
    BEFORE_CREATION = "before-creation"
    AFTER_SUCCEEDED = "succeeded"
    AFTER_FAILED = "failed"


class FailMode(str, Enum):
    IGNORE_AND_CONTINUE = "IgnoreAndContinueDeployProcess"
    FAIL_IMMEDIATELY = "FailWholeDeployProcessImmediately"
    HOPE_UNTIL_END = "HopeUntilEndOfDeployProcess"


class TrackTerminationMode(str, Enum):
    WAIT_UNTIL_READY = "WaitUntilResourceReady"
    NON_BLOCKING = "NonBlocking"


# helm.sh/hook values
HELM_HOOK_VALUES = {h.value: h for h in HookType}
HELM_HOOK_VALUES["test-success"] = HookType.TEST

# helm.sh/hook-delete-policy values
HELM_DELETE_POLICY_VALUES = {
    "before-hook-creation": DeletePolicy.BEFORE_CREATION,
    "hook-succeeded": DeletePolicy.AFTER_SUCCEEDED,
    "hook-failed": DeletePolicy.AFTER_FAILED,
}

# deckhand.io/delete-policy values
DELETE_POLICY_VALUES = {p.value: p for p in DeletePolicy}

DEFAULT_HOOK_DELETE_POLICIES = frozenset({DeletePolicy.BEFORE_CREATION})
