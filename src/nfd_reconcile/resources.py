"""Access to owned objects in the cluster object store."""

import copy
import hashlib
import json
import logging
from enum import Enum
from typing import Any

from nfd_reconcile.components import Component
from nfd_reconcile.errors import NotFoundError, StoreError

logger = logging.getLogger(__name__)

# Metadata the server fills in; never part of a desired-state comparison
SERVER_METADATA = {
    "uid",
    "resourceVersion",
    "generation",
    "creationTimestamp",
    "managedFields",
    "selfLink",
}

# Hash of the manifest last applied; a template change, removals included,
# always differs from it even when the live object is a superset
APPLIED_HASH_ANNOTATION = "nfd.openshift.io/applied-manifest-hash"


class ResourceStore:
    """Object store keyed by (kind, namespace, name).

    ``get`` and ``delete`` raise NotFoundError for absent objects, every
    other failure is a StoreError.
    """

    def get(self, kind: str, namespace: str, name: str) -> dict[str, Any]:
        raise NotImplementedError

    def create(self, kind: str, namespace: str, body: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def update(self, kind: str, namespace: str, body: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def delete(self, kind: str, namespace: str, name: str) -> None:
        raise NotImplementedError


class InMemoryResourceStore(ResourceStore):
    """Dict-backed store for dry runs and tests.

    Status is held apart from the objects, the way a status subresource is,
    so callers can simulate controllers with ``set_status``.
    """

    def __init__(self):
        self._objects: dict[tuple[str, str, str], dict[str, Any]] = {}
        self._statuses: dict[tuple[str, str, str], dict[str, Any]] = {}
        self._faults: dict[tuple[str, str, str], Exception] = {}
        self._version = 0
        self.mutations: list[tuple[str, str, str, str]] = []
        self.calls: list[tuple[str, str, str, str]] = []

    def _check_fault(self, op: str, kind: str, namespace: str, name: str) -> None:
        self.calls.append((op, kind, namespace, name))
        for key in ((kind, name, op), (kind, name, "*")):
            if key in self._faults:
                raise self._faults[key]

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def get(self, kind, namespace, name):
        self._check_fault("get", kind, namespace, name)
        key = (kind, namespace, name)
        if key not in self._objects:
            raise NotFoundError(kind, namespace, name)
        obj = copy.deepcopy(self._objects[key])
        if key in self._statuses:
            obj["status"] = copy.deepcopy(self._statuses[key])
        return obj

    def create(self, kind, namespace, body):
        name = body["metadata"]["name"]
        self._check_fault("create", kind, namespace, name)
        key = (kind, namespace, name)
        if key in self._objects:
            raise StoreError(kind, namespace, name, "already exists", status_code=409)
        obj = copy.deepcopy(body)
        obj.pop("status", None)
        obj["metadata"]["resourceVersion"] = self._next_version()
        self._objects[key] = obj
        self.mutations.append(("create", kind, namespace, name))
        return copy.deepcopy(obj)

    def update(self, kind, namespace, body):
        name = body["metadata"]["name"]
        self._check_fault("update", kind, namespace, name)
        key = (kind, namespace, name)
        if key not in self._objects:
            raise NotFoundError(kind, namespace, name)
        current = self._objects[key]["metadata"]["resourceVersion"]
        expected = body["metadata"].get("resourceVersion")
        if expected and expected != current:
            raise StoreError(kind, namespace, name, "resourceVersion conflict", status_code=409)
        obj = copy.deepcopy(body)
        obj.pop("status", None)
        obj["metadata"]["resourceVersion"] = self._next_version()
        self._objects[key] = obj
        self.mutations.append(("update", kind, namespace, name))
        return copy.deepcopy(obj)

    def delete(self, kind, namespace, name):
        self._check_fault("delete", kind, namespace, name)
        key = (kind, namespace, name)
        if key not in self._objects:
            raise NotFoundError(kind, namespace, name)
        del self._objects[key]
        self.mutations.append(("delete", kind, namespace, name))

    def set_status(self, kind: str, namespace: str, name: str, status: dict[str, Any]) -> None:
        """Set the status reported for an object, present or not yet created."""
        self._statuses[(kind, namespace, name)] = copy.deepcopy(status)

    def fail_on(self, kind: str, name: str, op: str = "*", error: Exception | None = None) -> None:
        """Make an operation on one object fail until cleared."""
        self._faults[(kind, name, op)] = error or StoreError(kind, "", name, "injected failure", 500)

    def clear_faults(self) -> None:
        self._faults.clear()

    def keys(self) -> list[tuple[str, str, str]]:
        return list(self._objects)


class ApplyAction(str, Enum):
    """What create_or_update did to an object."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


def is_subset(desired: Any, live: Any) -> bool:
    """True when every field set in desired has the same value in live."""
    if isinstance(desired, dict):
        if not isinstance(live, dict):
            return False
        return all(k in live and is_subset(v, live[k]) for k, v in desired.items())
    if isinstance(desired, list):
        if not isinstance(live, list) or len(desired) != len(live):
            return False
        return all(is_subset(d, l) for d, l in zip(desired, live))
    return desired == live


def needs_update(desired: dict[str, Any], live: dict[str, Any]) -> bool:
    """Whether the live object has drifted from the desired one."""
    wanted = {k: v for k, v in desired.items() if k != "status"}
    metadata = {
        k: v for k, v in (wanted.get("metadata") or {}).items() if k not in SERVER_METADATA
    }
    wanted["metadata"] = metadata
    return not is_subset(wanted, live)


def manifest_hash(manifest: dict[str, Any]) -> str:
    """Stable digest of a desired manifest."""
    encoded = json.dumps(manifest, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode()).hexdigest()


def with_applied_hash(manifest: dict[str, Any]) -> dict[str, Any]:
    """Copy of the manifest annotated with its own hash."""
    body = copy.deepcopy(manifest)
    annotations = dict(body["metadata"].get("annotations") or {})
    annotations[APPLIED_HASH_ANNOTATION] = manifest_hash(manifest)
    body["metadata"]["annotations"] = annotations
    return body


class ResourceAccessor:
    """Typed get/exists/create-or-update/delete over a ResourceStore.

    No caching: every call reads or writes the store.
    """

    def __init__(self, store: ResourceStore):
        self.store = store

    def get(self, kind: str, namespace: str, name: str) -> dict[str, Any] | None:
        """Get a live object, or None if it does not exist."""
        try:
            return self.store.get(kind, namespace, name)
        except NotFoundError:
            return None

    def exists(self, kind: str, namespace: str, name: str) -> bool:
        """Check whether an object exists."""
        return self.get(kind, namespace, name) is not None

    def create_or_update(self, component: Component) -> ApplyAction:
        """Push a component into the store, replacing it if it drifted."""
        kind, namespace, name = component.key
        live = self.get(kind, namespace, name)

        body = with_applied_hash(component.manifest)
        if live is None:
            self.store.create(kind, namespace, body)
            logger.info("Created %s", component)
            return ApplyAction.CREATED

        if not needs_update(body, live):
            logger.debug("%s is up to date", component)
            return ApplyAction.UNCHANGED

        version = (live.get("metadata") or {}).get("resourceVersion")
        if version:
            body["metadata"]["resourceVersion"] = version
        self.store.update(kind, namespace, body)
        logger.info("Updated %s", component)
        return ApplyAction.UPDATED

    def delete(self, kind: str, namespace: str, name: str) -> bool:
        """Delete an object. Returns False if it was already gone."""
        try:
            self.store.delete(kind, namespace, name)
        except NotFoundError:
            return False
        logger.info("Deleted %s %s/%s", kind, namespace, name)
        return True
