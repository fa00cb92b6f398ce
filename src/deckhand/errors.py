# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/errors.py
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple


class DeckhandError(RuntimeError):
    """Base class for deckhand failures."""


# ---------------------------------------------------------------------
# Validation (raised before any cluster mutation)
# ---------------------------------------------------------------------
class ValidationError(DeckhandError, ValueError):
    """Input rejected before planning."""


class AnnotationValidationError(ValidationError):
    def __init__(self, resource: str, key: str, value: str, reason: str):
        self.resource = resource
        self.key = key
        self.value = value
        self.reason = reason
        super().__init__(
            f"invalid value {value!r} for annotation {key!r} of {resource}: {reason}"
        )


class ManifestValidationError(ValidationError):
    pass


class ReleaseNameValidationError(ValidationError):
    pass


class ConfigError(DeckhandError, ValueError):
    pass


# ---------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------
class ImmutableConflictError(DeckhandError):
    """One or more resources need an in-place update of immutable fields."""

    def __init__(self, what: str, refs: Sequence[str]):
        self.refs = list(refs)
        super().__init__(
            f"you are trying to update following {what} with immutable fields "
            f"that can't be updated: {', '.join(self.refs)}"
        )


# ---------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------
class MultiError(DeckhandError):
    """Aggregate of independent failures, none of which masks another."""

    def __init__(self, errors: Iterable[BaseException], header: str = ""):
        self.errors: List[BaseException] = list(errors)
        self.header = header
        lines = [f"  * {e}" for e in self.errors]
        title = header or f"{len(self.errors)} errors occurred"
        super().__init__(title + ":\n" + "\n".join(lines))


class PlanExecutionError(DeckhandError):
    def __init__(self, cause: BaseException, report, phase: str, operation: str):
        self.report = report
        self.phase = phase
        self.operation = operation
        super().__init__(f"error executing {phase!r} phase, operation {operation!r}: {cause}")


class TrackingError(DeckhandError):
    """Some tracked targets did not reach the expected state."""

    def __init__(self, failed: Sequence[Tuple[str, str]], what: str = "readiness"):
        self.failed = list(failed)
        details = "; ".join(f"{ref}: {reason}" for ref, reason in self.failed)
        super().__init__(f"{what} tracking failed for {len(self.failed)} resource(s): {details}")

    @property
    def failed_refs(self) -> List[str]:
        return [ref for ref, _ in self.failed]


# ---------------------------------------------------------------------
# Release storage
# ---------------------------------------------------------------------
class StorageError(DeckhandError):
    pass


class ReleaseExistsError(StorageError):
    pass


class ReleaseNotFoundError(StorageError):
    def __init__(self, name: str, namespace: str, revision: int):
        super().__init__(
            f'release "{name}" (namespace "{namespace}", revision "{revision}") not found in history'
        )


class ReleaseFinalizationError(StorageError):
    """
    A terminal status write (deployed, failed or superseded) did not reach
    storage.

    Resource mutations described by the release already happened, so the
    history may show a pending revision, or two deployed ones, until an
    operator intervenes.
    """

    report = None

    def __init__(self, name: str, namespace: str, revision: int, status: str, cause: BaseException):
        self.name = name
        self.namespace = namespace
        self.revision = revision
        self.status = status
        super().__init__(
            f"cluster resources for release {name!r} (namespace {namespace!r}, revision {revision}) "
            f"were applied, but recording status {status!r} failed: {cause}. "
            f"The release history may be left inconsistent and needs manual attention."
        )


# ---------------------------------------------------------------------
# Locking
# ---------------------------------------------------------------------
class LockError(DeckhandError):
    pass


# ---------------------------------------------------------------------
# Deploy
# ---------------------------------------------------------------------
class DeployError(DeckhandError):
    def __init__(self, message: str, report=None, plan=None, phase: Optional[str] = None):
        self.report = report
        self.plan = plan
        self.phase = phase
        super().__init__(message)
