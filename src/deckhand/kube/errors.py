# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/kube/errors.py
from __future__ import annotations

import json
from typing import Any, Optional

from ..errors import DeckhandError

_IMMUTABLE_MARKERS = (
    "field is immutable",
    "is immutable",
    "forbidden: updates to",
    "may not change once set",
    "cannot be changed",
)


class KubeError(DeckhandError):
    """A cluster API call failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class AlreadyExistsError(KubeError):
    pass


class ResourceNotFoundError(KubeError):
    pass


class ImmutableFieldError(KubeError):
    """Applying the desired state would change an immutable field."""


class UnsupportedResourceError(KubeError):
    """The API server does not serve the resource's type."""


def error_body(ex: Any) -> dict:
    body = getattr(ex, "body", None)
    if isinstance(body, bytes):
        body = body.decode("utf-8", "replace")
    if isinstance(body, str):
        try:
            parsed = json.loads(body)
        except ValueError:
            return {"message": body}
        return parsed if isinstance(parsed, dict) else {}
    if isinstance(body, dict):
        return body
    return {}


def error_reason(ex: Any) -> str:
    return str(error_body(ex).get("reason", "")).lower()


def error_message(ex: Any) -> str:
    body = error_body(ex)
    return str(body.get("message") or getattr(ex, "reason", None) or ex)


def already_exists_error(ex: Any) -> bool:
    return getattr(ex, "status", None) == 409 and error_reason(ex) == "alreadyexists"


def not_found_error(ex: Any) -> bool:
    return getattr(ex, "status", None) == 404


def immutable_field_error(ex: Any) -> bool:
    if getattr(ex, "status", None) != 422:
        return False
    msg = error_message(ex).lower()
    return any(m in msg for m in _IMMUTABLE_MARKERS)
