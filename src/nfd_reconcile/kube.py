"""Kubernetes API server access through the official client.

Owned objects go through the dynamic client, so every kind in
COMPONENT_TYPES is handled by one code path. NodeFeatureDiscovery objects
go through CustomObjectsApi, which also reaches the status subresource.
"""

import json
import logging
from typing import Any

from kubernetes import client, config, dynamic
from kubernetes.client.rest import ApiException
from kubernetes.dynamic.exceptions import ResourceNotFoundError
from urllib3.exceptions import HTTPError

from nfd_reconcile.components import COMPONENT_TYPES
from nfd_reconcile.config import ReconcilerConfig
from nfd_reconcile.errors import NotFoundError, ReconcileError, StatusUpdateError, StoreError
from nfd_reconcile.reconciler import SpecificationStore
from nfd_reconcile.resources import ResourceStore
from nfd_reconcile.state import (
    API_GROUP,
    API_VERSION,
    SPEC_KIND,
    SPEC_PLURAL,
    Condition,
    NodeFeatureDiscovery,
    SpecRef,
)

logger = logging.getLogger(__name__)

DELETE_OPTIONS = {"kind": "DeleteOptions", "apiVersion": "v1", "propagationPolicy": "Background"}


def load_api_client(reconciler_config: ReconcilerConfig) -> client.ApiClient:
    """API client for the in-cluster service account, else the local kubeconfig."""
    try:
        config.load_incluster_config()
        logger.info("Using in-cluster Kubernetes configuration")
    except config.ConfigException:
        config.load_kube_config(context=reconciler_config.kube_context or None)
        logger.info("Using kubeconfig context %s", reconciler_config.kube_context or "(current)")
    return client.ApiClient()


def store_error(kind: str, namespace: str, name: str, exc: Exception) -> ReconcileError:
    """Map a client failure to NotFoundError or StoreError."""
    if isinstance(exc, ApiException):
        if exc.status == 404:
            return NotFoundError(kind, namespace, name)
        return StoreError(
            kind, namespace, name, f"HTTP {exc.status}: {_api_message(exc)}", status_code=exc.status
        )
    return StoreError(kind, namespace, name, str(exc) or type(exc).__name__)


def _api_message(exc: ApiException) -> str:
    try:
        body = json.loads(exc.body)
    except (TypeError, ValueError):
        return exc.reason or ""
    if isinstance(body, dict) and body.get("message"):
        return body["message"]
    return exc.reason or ""


class KubeResourceStore(ResourceStore):
    """ResourceStore backed by the Kubernetes API server."""

    def __init__(
        self,
        api_client: client.ApiClient | None = None,
        request_timeout: float = 30.0,
        dynamic_client: Any = None,
    ):
        self.api_client = api_client
        self.request_timeout = request_timeout
        self._dynamic = dynamic_client

    @property
    def dynamic(self) -> Any:
        # Built on first use; construction runs API discovery
        if self._dynamic is None:
            self._dynamic = dynamic.DynamicClient(self.api_client)
        return self._dynamic

    def _resource(self, kind: str, namespace: str, name: str) -> Any:
        component_cls = COMPONENT_TYPES.get(kind)
        if component_cls is None:
            raise StoreError(kind, namespace, name, "unsupported kind")
        try:
            return self.dynamic.resources.get(api_version=component_cls.api_version, kind=kind)
        except ResourceNotFoundError as e:
            raise StoreError(
                kind, namespace, name, f"{component_cls.api_version} {kind} is not served"
            ) from e
        except (ApiException, HTTPError) as e:
            raise StoreError(kind, namespace, name, f"discovery failed: {e}") from e

    def _call(
        self, method: str, kind: str, namespace: str, name: str, body: dict[str, Any] | None = None
    ) -> Any:
        resource = self._resource(kind, namespace, name)
        kwargs: dict[str, Any] = {
            "namespace": namespace or None,
            "_request_timeout": self.request_timeout,
        }
        if method != "create":
            kwargs["name"] = name
        if body is not None:
            kwargs["body"] = body
        try:
            return getattr(self.dynamic, method)(resource, **kwargs)
        except (ApiException, HTTPError) as e:
            raise store_error(kind, namespace, name, e) from e

    def get(self, kind, namespace, name):
        return self._call("get", kind, namespace, name).to_dict()

    def create(self, kind, namespace, body):
        return self._call("create", kind, namespace, body["metadata"]["name"], body).to_dict()

    def update(self, kind, namespace, body):
        return self._call("replace", kind, namespace, body["metadata"]["name"], body).to_dict()

    def delete(self, kind, namespace, name):
        self._call("delete", kind, namespace, name, DELETE_OPTIONS)


class KubeSpecificationStore(SpecificationStore):
    """NodeFeatureDiscovery objects read from and written to the API server."""

    def __init__(self, api: client.CustomObjectsApi, request_timeout: float = 30.0):
        self.api = api
        self.request_timeout = request_timeout

    def _fetch(self, ref: SpecRef) -> dict[str, Any]:
        try:
            return self.api.get_namespaced_custom_object(
                group=API_GROUP,
                version=API_VERSION,
                namespace=ref.namespace,
                plural=SPEC_PLURAL,
                name=ref.name,
                _request_timeout=self.request_timeout,
            )
        except (ApiException, HTTPError) as e:
            raise store_error(SPEC_KIND, ref.namespace, ref.name, e) from e

    def get(self, ref: SpecRef) -> NodeFeatureDiscovery:
        return NodeFeatureDiscovery.from_dict(self._fetch(ref))

    def update_status(self, ref: SpecRef, conditions: list[Condition]) -> None:
        try:
            current = self._fetch(ref)
        except ReconcileError as e:
            raise StatusUpdateError(ref, e) from e

        status = current.get("status") or {}
        status["conditions"] = [c.to_dict() for c in conditions]
        current["status"] = status
        try:
            self.api.replace_namespaced_custom_object_status(
                group=API_GROUP,
                version=API_VERSION,
                namespace=ref.namespace,
                plural=SPEC_PLURAL,
                name=ref.name,
                body=current,
                _request_timeout=self.request_timeout,
            )
        except (ApiException, HTTPError) as e:
            raise StatusUpdateError(ref, store_error(SPEC_KIND, ref.namespace, ref.name, e)) from e


def connect(
    reconciler_config: ReconcilerConfig,
) -> tuple[client.ApiClient, KubeResourceStore, KubeSpecificationStore]:
    """Stores for owned objects and NodeFeatureDiscovery objects on one API client."""
    api_client = load_api_client(reconciler_config)
    timeout = reconciler_config.request_timeout
    return (
        api_client,
        KubeResourceStore(api_client, request_timeout=timeout),
        KubeSpecificationStore(client.CustomObjectsApi(api_client), request_timeout=timeout),
    )
