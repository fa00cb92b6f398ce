# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/plan/report.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

REPORT_VERSION = 2

Outcome = Tuple[Any, Optional[Dict[str, Any]]]


@dataclass
class Report:
    """What a plan execution actually did, filled in as operations complete."""

    release: str = ""
    namespace: str = ""
    revision: int = 0
    status: str = ""
    created: List[Outcome] = field(default_factory=list)
    recreated: List[Outcome] = field(default_factory=list)
    updated: List[Outcome] = field(default_factory=list)
    deleted: List[Any] = field(default_factory=list)
    completed_operations: List[str] = field(default_factory=list)
    failed_operations: List[str] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"created={len(self.created)} recreated={len(self.recreated)} "
            f"updated={len(self.updated)} deleted={len(self.deleted)}"
        )

    def render(self) -> str:
        """Human readable listing, one section per non-empty outcome kind."""
        lines: List[str] = []
        sections = (
            ("Resources created:", [t for t, _ in self.created]),
            ("Resources recreated:", [t for t, _ in self.recreated]),
            ("Resources updated:", [t for t, _ in self.updated]),
            ("Resources deleted:", list(self.deleted)),
        )
        for title, targets in sections:
            if not targets:
                continue
            if lines:
                lines.append("")
            lines.append(title)
            lines.extend(f"  - {t}" for t in sorted(str(t) for t in targets))
        return "\n".join(lines)

    def merge(self, other: "Report") -> None:
        self.created += other.created
        self.recreated += other.recreated
        self.updated += other.updated
        self.deleted += other.deleted
        self.completed_operations += other.completed_operations
        self.failed_operations += other.failed_operations

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": REPORT_VERSION,
            "release": self.release,
            "namespace": self.namespace,
            "revision": self.revision,
            "status": self.status,
            "resources": {
                "created": sorted(str(t) for t, _ in self.created),
                "recreated": sorted(str(t) for t, _ in self.recreated),
                "updated": sorted(str(t) for t, _ in self.updated),
                "deleted": sorted(str(t) for t in self.deleted),
            },
            "operations": {
                "completed": list(self.completed_operations),
                "failed": list(self.failed_operations),
            },
        }
