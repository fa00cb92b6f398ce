# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/config/loader.py

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..errors import ConfigError
from .models import DeckhandConfig

log = logging.getLogger("deckhand")

CONFIG_ENV = "DECKHAND_CONFIG"


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    data = yaml.safe_load(expanded) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def load_config(
    path: str | Path | None = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> DeckhandConfig:
    """
    Load and validate deckhand settings.

    The file is located from *path*, then the DECKHAND_CONFIG environment
    variable. With neither, defaults apply. ``${ENV_VAR}`` placeholders in
    the file are expanded. *overrides* (typically CLI flags) are
    deep-merged on top; empty values never clobber file settings.
    """
    data: Dict[str, Any] = {}

    if path is None and os.environ.get(CONFIG_ENV):
        path = os.environ[CONFIG_ENV]

    if path is not None:
        path = Path(path)
        if not path.is_file():
            raise ConfigError(f"config file {path} does not exist")
        log.debug("Loading config from %s", path)
        data = _load_yaml(path)

    if overrides:
        _deep_merge(data, overrides)

    try:
        return DeckhandConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ConfigError(f"invalid configuration: {e}") from e
