# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/release/storage.py
from __future__ import annotations

import base64
import gzip
import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Protocol, Tuple

from kubernetes import client as k8s_client
from kubernetes.client.exceptions import ApiException

from ..errors import ConfigError, ReleaseExistsError, ReleaseNotFoundError, StorageError
from .release import Release

log = logging.getLogger("deckhand")

OWNER = "deckhand"
PAYLOAD_KEY = "release"
SECRET_TYPE = "deckhand.sh/release.v1"
RESERVED_LABELS = ("owner", "name", "status", "version")


class ReleaseStorage(Protocol):
    """Records keyed by (name, namespace, revision), queried by labels."""

    def create(self, rel: Release) -> None: ...

    def update(self, rel: Release) -> None: ...

    def delete(self, rel: Release) -> None: ...

    def query(self, labels: Dict[str, str]) -> List[Release]: ...


# ---------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------
def object_name(rel: Release) -> str:
    return f"sh.{OWNER}.release.v1.{rel.name}.v{rel.revision}"


def release_labels(rel: Release) -> Dict[str, str]:
    labels = {k: v for k, v in rel.labels.items() if k not in RESERVED_LABELS}
    labels.update(
        {
            "owner": OWNER,
            "name": rel.name,
            "status": rel.status.value,
            "version": str(rel.revision),
        }
    )
    return labels


def encode_release(rel: Release) -> str:
    raw = json.dumps(rel.to_dict(), sort_keys=True).encode("utf-8")
    return base64.b64encode(gzip.compress(raw)).decode("ascii")


def decode_release(data: str) -> Release:
    try:
        raw = gzip.decompress(base64.b64decode(data))
        return Release.from_dict(json.loads(raw))
    except (ValueError, OSError, KeyError) as e:
        raise StorageError(f"cannot decode release record: {e}") from e


def label_selector(labels: Dict[str, str]) -> str:
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))


def _matches(have: Dict[str, str], want: Dict[str, str]) -> bool:
    return all(have.get(k) == v for k, v in want.items())


# ---------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------
class MemoryStorage:
    def __init__(self, namespace: Optional[str] = None):
        self.namespace = namespace
        self._lock = threading.Lock()
        self._records: Dict[Tuple[str, str, int], Tuple[Dict[str, str], str]] = {}

    def create(self, rel: Release) -> None:
        with self._lock:
            if rel.key in self._records:
                raise ReleaseExistsError(f"release {object_name(rel)} already exists")
            self._records[rel.key] = (release_labels(rel), encode_release(rel))

    def update(self, rel: Release) -> None:
        with self._lock:
            if rel.key not in self._records:
                raise ReleaseNotFoundError(rel.name, rel.namespace, rel.revision)
            self._records[rel.key] = (release_labels(rel), encode_release(rel))

    def delete(self, rel: Release) -> None:
        with self._lock:
            self._records.pop(rel.key, None)

    def query(self, labels: Dict[str, str]) -> List[Release]:
        with self._lock:
            records = list(self._records.items())
        return [
            decode_release(data)
            for (_, ns, _), (have, data) in records
            if (self.namespace is None or ns == self.namespace) and _matches(have, labels)
        ]


# ---------------------------------------------------------------------
# Kubernetes objects (ConfigMap / Secret)
# ---------------------------------------------------------------------
class _KubeObjectStorage(ABC):
    kind = "object"

    def __init__(self, namespace: str, api_client: Optional[k8s_client.ApiClient] = None):
        self.namespace = namespace
        self._core = k8s_client.CoreV1Api(api_client)

    @abstractmethod
    def _build(self, rel: Release):
        ...

    @abstractmethod
    def _payload(self, obj) -> str:
        ...

    @abstractmethod
    def _create(self, body):
        ...

    @abstractmethod
    def _replace(self, name: str, body):
        ...

    @abstractmethod
    def _delete(self, name: str):
        ...

    @abstractmethod
    def _list(self, selector: str):
        ...

    def _error(self, action: str, rel_name: str, e: ApiException) -> StorageError:
        return StorageError(f"{action} {self.kind} for release {rel_name!r} in {self.namespace!r}: {e.status} {e.reason}")

    def create(self, rel: Release) -> None:
        try:
            self._create(self._build(rel))
        except ApiException as e:
            if e.status == 409:
                raise ReleaseExistsError(f"release {object_name(rel)} already exists") from e
            raise self._error("create", rel.name, e) from e
        log.debug("[storage] created %s %s", self.kind, object_name(rel))

    def update(self, rel: Release) -> None:
        try:
            self._replace(object_name(rel), self._build(rel))
        except ApiException as e:
            if e.status == 404:
                raise ReleaseNotFoundError(rel.name, rel.namespace, rel.revision) from e
            raise self._error("update", rel.name, e) from e
        log.debug("[storage] updated %s %s (%s)", self.kind, object_name(rel), rel.status.value)

    def delete(self, rel: Release) -> None:
        try:
            self._delete(object_name(rel))
        except ApiException as e:
            if e.status == 404:
                return
            raise self._error("delete", rel.name, e) from e
        log.debug("[storage] deleted %s %s", self.kind, object_name(rel))

    def query(self, labels: Dict[str, str]) -> List[Release]:
        try:
            items = self._list(label_selector(labels)).items or []
        except ApiException as e:
            raise self._error("list", labels.get("name", "?"), e) from e
        return [decode_release(self._payload(obj)) for obj in items]


class ConfigMapStorage(_KubeObjectStorage):
    kind = "configmap"

    def _build(self, rel: Release):
        return k8s_client.V1ConfigMap(
            metadata=k8s_client.V1ObjectMeta(name=object_name(rel), namespace=self.namespace, labels=release_labels(rel)),
            data={PAYLOAD_KEY: encode_release(rel)},
        )

    def _payload(self, obj) -> str:
        return (obj.data or {}).get(PAYLOAD_KEY, "")

    def _create(self, body):
        return self._core.create_namespaced_config_map(self.namespace, body)

    def _replace(self, name: str, body):
        return self._core.replace_namespaced_config_map(name, self.namespace, body)

    def _delete(self, name: str):
        return self._core.delete_namespaced_config_map(name, self.namespace)

    def _list(self, selector: str):
        return self._core.list_namespaced_config_map(self.namespace, label_selector=selector)


class SecretStorage(_KubeObjectStorage):
    kind = "secret"

    def _build(self, rel: Release):
        payload = base64.b64encode(encode_release(rel).encode("ascii")).decode("ascii")
        return k8s_client.V1Secret(
            metadata=k8s_client.V1ObjectMeta(name=object_name(rel), namespace=self.namespace, labels=release_labels(rel)),
            type=SECRET_TYPE,
            data={PAYLOAD_KEY: payload},
        )

    def _payload(self, obj) -> str:
        data = (obj.data or {}).get(PAYLOAD_KEY, "")
        return base64.b64decode(data).decode("ascii") if data else ""

    def _create(self, body):
        return self._core.create_namespaced_secret(self.namespace, body)

    def _replace(self, name: str, body):
        return self._core.replace_namespaced_secret(name, self.namespace, body)

    def _delete(self, name: str):
        return self._core.delete_namespaced_secret(name, self.namespace)

    def _list(self, selector: str):
        return self._core.list_namespaced_secret(self.namespace, label_selector=selector)


def new_storage(
    driver: str,
    namespace: str,
    api_client: Optional[k8s_client.ApiClient] = None,
) -> ReleaseStorage:
    driver = (driver or "").lower()
    if driver in ("", "secret", "secrets"):
        return SecretStorage(namespace, api_client)
    if driver in ("configmap", "configmaps"):
        return ConfigMapStorage(namespace, api_client)
    if driver == "memory":
        return MemoryStorage(namespace)
    raise ConfigError(f"unknown release storage driver {driver!r}")
