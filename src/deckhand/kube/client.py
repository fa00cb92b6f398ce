# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/kube/client.py
from __future__ import annotations

import copy
import logging
import re
from typing import Any, Dict, Optional, Protocol

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import DynamicApiError
from kubernetes.dynamic.exceptions import ResourceNotFoundError as DiscoveryNotFoundError

from ..resource.reference import Reference
from ..resource.resource import Resource
from .errors import (
    AlreadyExistsError,
    ImmutableFieldError,
    KubeError,
    ResourceNotFoundError,
    UnsupportedResourceError,
    already_exists_error,
    error_message,
    immutable_field_error,
    not_found_error,
)

log = logging.getLogger("deckhand")

SERVER_MANAGED_METADATA_FIELDS = (
    "managedFields",
    "resourceVersion",
    "generation",
)

_VERSION_RE = re.compile(r"^v\d+((alpha|beta)\d+)?$")


class KubeClient(Protocol):
    """What the engine needs from the cluster."""

    def get(self, ref: Reference) -> Optional[Dict[str, Any]]: ...

    def dry_run_apply(self, res: Resource) -> Dict[str, Any]: ...

    def create(self, res: Resource) -> Dict[str, Any]: ...

    def apply(self, res: Resource) -> Dict[str, Any]: ...

    def delete(self, ref: Reference) -> bool: ...

    def resolve_resource_type(self, resource_type: str, name: str, namespace: str) -> Reference: ...


def strip_server_fields(obj: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Copy of obj without fields the API server bumps on every write."""
    if obj is None:
        return None
    cleaned = copy.deepcopy(obj)
    meta = cleaned.get("metadata")
    if isinstance(meta, dict):
        for f in SERVER_MANAGED_METADATA_FIELDS:
            meta.pop(f, None)
    return cleaned


def live_uid(obj: Optional[Dict[str, Any]]) -> str:
    if not obj:
        return ""
    return str((obj.get("metadata") or {}).get("uid") or "")


def new_api_client(kubeconfig: Optional[str] = None, context: Optional[str] = None) -> k8s_client.ApiClient:
    """Load kubeconfig (or in-cluster config) and return an ApiClient."""
    try:
        return k8s_config.new_client_from_config(config_file=kubeconfig, context=context)
    except k8s_config.ConfigException:
        if kubeconfig or context:
            raise
        log.debug("no kubeconfig found, falling back to in-cluster config")
        k8s_config.load_incluster_config()
        return k8s_client.ApiClient()


class KubernetesClient:
    """
    KubeClient on top of the official dynamic client.

    Writes are server-side applies owned by `field_manager`; dry runs use
    dryRun=All so nothing is persisted.
    """

    def __init__(
        self,
        api_client: k8s_client.ApiClient,
        field_manager: str = "deckhand",
        request_timeout: Optional[float] = None,
    ):
        self._dyn = DynamicClient(api_client)
        self.field_manager = field_manager
        self.request_timeout = request_timeout

    # ------------------------------------------------------------------
    # discovery
    # ------------------------------------------------------------------
    def _api(self, ref: Reference):
        try:
            return self._dyn.resources.get(api_version=ref.api_version, kind=ref.kind)
        except DiscoveryNotFoundError as e:
            raise UnsupportedResourceError(
                f"resource type {ref.api_version}/{ref.kind} is not served by the cluster"
            ) from e

    def _namespace(self, api, ref: Reference) -> Optional[str]:
        if not api.namespaced:
            return None
        return ref.namespace or None

    def _kwargs(self) -> Dict[str, Any]:
        if self.request_timeout:
            return {"_request_timeout": self.request_timeout}
        return {}

    def resolve_resource_type(self, resource_type: str, name: str, namespace: str) -> Reference:
        """
        Resolve "deployment", "deploy", "deployments.apps" or
        "deployments.v1.apps" to a full reference.
        """
        base, _, rest = resource_type.lower().partition(".")
        version = group = ""
        if rest:
            head, _, tail = rest.partition(".")
            if _VERSION_RE.match(head):
                version, group = head, tail
            else:
                group = rest

        for api in self._dyn.resources.search():
            if "/" in (api.name or ""):
                continue
            names = {api.name, api.singular_name, api.kind.lower(), *(api.short_names or [])}
            if base not in {n.lower() for n in names if n}:
                continue
            if group and api.group != group:
                continue
            if version and api.api_version != version:
                continue
            if not version and not getattr(api, "preferred", True):
                continue
            return Reference(
                name=name,
                namespace=namespace if api.namespaced else "",
                group=api.group or "",
                version=api.api_version,
                kind=api.kind,
            )
        raise UnsupportedResourceError(f"cannot resolve resource type {resource_type!r}")

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def get(self, ref: Reference) -> Optional[Dict[str, Any]]:
        api = self._api(ref)
        try:
            obj = api.get(name=ref.name, namespace=self._namespace(api, ref), **self._kwargs())
        except DynamicApiError as e:
            if not_found_error(e):
                return None
            raise KubeError(f"get {ref}: {error_message(e)}", getattr(e, "status", None)) from e
        return obj.to_dict()

    def dry_run_apply(self, res: Resource) -> Dict[str, Any]:
        """Server-computed result of applying res, without persisting it."""
        try:
            return self._server_side_apply(res, dry_run=True)
        except DynamicApiError as e:
            status = getattr(e, "status", None)
            if immutable_field_error(e):
                raise ImmutableFieldError(f"dry-run apply {res.ref}: {error_message(e)}", status) from e
            if not_found_error(e):
                raise ResourceNotFoundError(f"dry-run apply {res.ref}: {error_message(e)}", status) from e
            raise KubeError(f"dry-run apply {res.ref}: {error_message(e)}", status) from e

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------
    def _server_side_apply(self, res: Resource, dry_run: bool) -> Dict[str, Any]:
        api = self._api(res.ref)
        kwargs = dict(self._kwargs())
        if dry_run:
            kwargs["dry_run"] = "All"
        obj = self._dyn.server_side_apply(
            api,
            body=res.manifest,
            name=res.ref.name,
            namespace=self._namespace(api, res.ref),
            field_manager=self.field_manager,
            force_conflicts=True,
            **kwargs,
        )
        return obj.to_dict()

    def create(self, res: Resource) -> Dict[str, Any]:
        api = self._api(res.ref)
        try:
            obj = api.create(body=res.manifest, namespace=self._namespace(api, res.ref),
                             field_manager=self.field_manager, **self._kwargs())
        except DynamicApiError as e:
            if already_exists_error(e):
                raise AlreadyExistsError(f"create {res.ref}: already exists", 409) from e
            raise KubeError(f"create {res.ref}: {error_message(e)}", getattr(e, "status", None)) from e
        log.debug("[kube] created %s", res.ref)
        return obj.to_dict()

    def apply(self, res: Resource) -> Dict[str, Any]:
        try:
            obj = self._server_side_apply(res, dry_run=False)
        except DynamicApiError as e:
            if immutable_field_error(e):
                raise ImmutableFieldError(f"apply {res.ref}: {error_message(e)}", 422) from e
            raise KubeError(f"apply {res.ref}: {error_message(e)}", getattr(e, "status", None)) from e
        log.debug("[kube] applied %s", res.ref)
        return obj

    def delete(self, ref: Reference) -> bool:
        api = self._api(ref)
        try:
            api.delete(
                name=ref.name,
                namespace=self._namespace(api, ref),
                propagation_policy="Foreground",
                **self._kwargs(),
            )
        except DynamicApiError as e:
            if not_found_error(e):
                log.debug("[kube] %s already gone", ref)
                return False
            raise KubeError(f"delete {ref}: {error_message(e)}", getattr(e, "status", None)) from e
        log.debug("[kube] deleted %s", ref)
        return True
