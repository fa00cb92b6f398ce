# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/release/release.py
from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..errors import ReleaseNameValidationError
from ..resource.common import HookType


class ReleaseStatus(str, Enum):
    UNKNOWN = "unknown"
    PENDING_INSTALL = "pending-install"
    PENDING_UPGRADE = "pending-upgrade"
    PENDING_ROLLBACK = "pending-rollback"
    DEPLOYED = "deployed"
    FAILED = "failed"
    SUPERSEDED = "superseded"
    UNINSTALLING = "uninstalling"
    UNINSTALLED = "uninstalled"
    SKIPPED = "skipped"


class DeployType(str, Enum):
    INITIAL = "initial"
    INSTALL = "install"
    UPGRADE = "upgrade"
    ROLLBACK = "rollback"


_PENDING_BY_DEPLOY_TYPE = {
    DeployType.INITIAL: ReleaseStatus.PENDING_INSTALL,
    DeployType.INSTALL: ReleaseStatus.PENDING_INSTALL,
    DeployType.UPGRADE: ReleaseStatus.PENDING_UPGRADE,
    DeployType.ROLLBACK: ReleaseStatus.PENDING_ROLLBACK,
}

_HOOKS_BY_DEPLOY_TYPE = {
    DeployType.INITIAL: (HookType.PRE_INSTALL, HookType.POST_INSTALL),
    DeployType.INSTALL: (HookType.PRE_INSTALL, HookType.POST_INSTALL),
    DeployType.UPGRADE: (HookType.PRE_UPGRADE, HookType.POST_UPGRADE),
    DeployType.ROLLBACK: (HookType.PRE_ROLLBACK, HookType.POST_ROLLBACK),
}


def pending_status(deploy_type: DeployType) -> ReleaseStatus:
    return _PENDING_BY_DEPLOY_TYPE[deploy_type]


def hook_events(deploy_type: DeployType) -> Tuple[HookType, HookType]:
    """(pre, post) hook types run by a deploy of this type."""
    return _HOOKS_BY_DEPLOY_TYPE[deploy_type]


MAX_RELEASE_NAME_LEN = 53
_RELEASE_NAME_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")


def validate_release_name(name: str) -> None:
    if not name:
        raise ReleaseNameValidationError("release name must not be empty")
    if len(name) > MAX_RELEASE_NAME_LEN:
        raise ReleaseNameValidationError(
            f"release name {name!r} exceeds max length of {MAX_RELEASE_NAME_LEN}"
        )
    if not _RELEASE_NAME_RE.match(name):
        raise ReleaseNameValidationError(
            f"release name {name!r} must consist of lower case alphanumeric characters, '-' or '.', "
            f"and must start and end with an alphanumeric character"
        )


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class Release:
    """
    One revision of a release. Treat as immutable once created:
    status transitions go through with_status(), which returns a copy.
    """

    name: str
    namespace: str
    revision: int
    status: ReleaseStatus = ReleaseStatus.UNKNOWN
    deploy_type: DeployType = DeployType.INSTALL
    first_deployed: Optional[datetime] = None
    last_deployed: Optional[datetime] = None
    hook_resources: List[Dict[str, Any]] = field(default_factory=list)
    general_resources: List[Dict[str, Any]] = field(default_factory=list)
    values: Dict[str, Any] = field(default_factory=dict)
    notes: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    chart_name: str = ""
    chart_version: str = ""
    app_version: str = ""
    description: str = ""

    @property
    def key(self) -> Tuple[str, str, int]:
        return self.name, self.namespace, self.revision

    def with_status(self, status: ReleaseStatus, description: Optional[str] = None) -> "Release":
        changes: Dict[str, Any] = {"status": status}
        if description is not None:
            changes["description"] = description
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "namespace": self.namespace,
            "revision": self.revision,
            "status": self.status.value,
            "deployType": self.deploy_type.value,
            "firstDeployed": _ts(self.first_deployed),
            "lastDeployed": _ts(self.last_deployed),
            "hookResources": self.hook_resources,
            "generalResources": self.general_resources,
            "values": self.values,
            "notes": self.notes,
            "labels": self.labels,
            "chart": {"name": self.chart_name, "version": self.chart_version, "appVersion": self.app_version},
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Release":
        chart = d.get("chart") or {}
        return cls(
            name=d["name"],
            namespace=d["namespace"],
            revision=int(d["revision"]),
            status=ReleaseStatus(d.get("status", ReleaseStatus.UNKNOWN.value)),
            deploy_type=DeployType(d.get("deployType", DeployType.INSTALL.value)),
            first_deployed=_parse_ts(d.get("firstDeployed")),
            last_deployed=_parse_ts(d.get("lastDeployed")),
            hook_resources=list(d.get("hookResources") or []),
            general_resources=list(d.get("generalResources") or []),
            values=dict(d.get("values") or {}),
            notes=d.get("notes") or "",
            labels=dict(d.get("labels") or {}),
            chart_name=chart.get("name") or "",
            chart_version=chart.get("version") or "",
            app_version=chart.get("appVersion") or "",
            description=d.get("description") or "",
        )
