# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/config/models.py

from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field

StorageDriver = Literal["secret", "secrets", "configmap", "configmaps", "memory", ""]


class TrackingConfig(BaseModel):
    """Timeouts are in seconds, per operation kind."""

    creation_timeout: float = Field(default=300, gt=0)
    readiness_timeout: float = Field(default=600, gt=0)
    deletion_timeout: float = Field(default=300, gt=0)
    poll_period: float = Field(default=2.0, gt=0)


class LockConfig(BaseModel):
    acquire_attempts: int = Field(default=10, ge=1)
    release_attempts: int = Field(default=10, ge=1)
    retry_delay: float = Field(default=2.0, ge=0)
    lease_ttl: float = Field(default=30, gt=0)
    configmap_name: str = "deckhand-synchronization"


class DeckhandConfig(BaseModel):
    environment: str = "dev"
    kube_context: Optional[str] = None
    kubeconfig: Optional[str] = None

    storage_driver: StorageDriver = "secret"
    history_limit: int = 10                      # <= 0 keeps everything
    network_parallelism: int = Field(default=30, ge=1)
    create_namespace: bool = True
    field_manager: str = "deckhand"

    # stamped on every deployed object, on top of the ownership metadata
    extra_annotations: Dict[str, str] = {}
    extra_labels: Dict[str, str] = {}

    tracking: TrackingConfig = TrackingConfig()
    lock: LockConfig = LockConfig()
