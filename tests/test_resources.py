"""
Tests for nfd_reconcile.resources
"""

import pytest

from nfd_reconcile.components import ClusterRoleComponent, ServiceAccountComponent
from nfd_reconcile.errors import NotFoundError, StoreError
from nfd_reconcile.resources import (
    APPLIED_HASH_ANNOTATION,
    ApplyAction,
    is_subset,
    manifest_hash,
    needs_update,
)


def _service_account(name="nfd-sa", namespace="nfd", labels=None):
    metadata = {"name": name, "namespace": namespace}
    if labels:
        metadata["labels"] = labels
    return ServiceAccountComponent(
        manifest={"apiVersion": "v1", "kind": "ServiceAccount", "metadata": metadata}
    )


class TestSubset:
    """Tests for desired-vs-live comparison."""

    def test_extra_live_fields_ignored(self):
        """Server defaults in live do not count as drift."""
        assert is_subset({"a": 1}, {"a": 1, "b": 2})

    def test_nested_difference(self):
        """A changed nested value is drift."""
        assert not is_subset({"a": {"b": 1}}, {"a": {"b": 2}})

    def test_list_length_matters(self):
        """Lists are compared element-wise and must have the same length."""
        assert is_subset([{"name": "x"}], [{"name": "x", "extra": True}])
        assert not is_subset([{"name": "x"}], [{"name": "x"}, {"name": "y"}])

    def test_type_mismatch(self):
        """A mapping never matches a scalar."""
        assert not is_subset({"a": 1}, "a")

    def test_needs_update_ignores_server_metadata(self):
        """Status and server-managed metadata never trigger an update."""
        desired = {
            "metadata": {"name": "x", "resourceVersion": "1", "uid": "abc"},
            "status": {"ready": True},
        }
        live = {"metadata": {"name": "x", "resourceVersion": "9"}}
        assert not needs_update(desired, live)

    def test_needs_update_on_label_change(self):
        """Changed labels are drift."""
        desired = {"metadata": {"name": "x", "labels": {"a": "1"}}}
        live = {"metadata": {"name": "x", "labels": {"a": "2"}}}
        assert needs_update(desired, live)


class TestInMemoryResourceStore:
    """Tests for the dict-backed store."""

    def test_get_missing(self, store):
        """Absent objects raise NotFoundError."""
        with pytest.raises(NotFoundError):
            store.get("ServiceAccount", "nfd", "missing")

    def test_create_conflict(self, store):
        """Creating an existing object is a 409."""
        body = _service_account().manifest
        store.create("ServiceAccount", "nfd", body)

        with pytest.raises(StoreError) as exc_info:
            store.create("ServiceAccount", "nfd", body)

        assert exc_info.value.status_code == 409

    def test_stale_update_conflict(self, store):
        """Updates with an outdated resourceVersion are rejected."""
        body = _service_account().manifest
        created = store.create("ServiceAccount", "nfd", body)
        store.update("ServiceAccount", "nfd", created)

        with pytest.raises(StoreError, match="conflict"):
            store.update("ServiceAccount", "nfd", created)

    def test_status_kept_apart(self, store):
        """Status set by a controller is visible on get and survives updates."""
        created = store.create("ServiceAccount", "nfd", _service_account().manifest)
        store.set_status("ServiceAccount", "nfd", "nfd-sa", {"phase": "Ready"})
        store.update("ServiceAccount", "nfd", created)

        assert store.get("ServiceAccount", "nfd", "nfd-sa")["status"] == {"phase": "Ready"}

    def test_fault_injection(self, store):
        """Injected faults fire for the matching operation only."""
        store.fail_on("ServiceAccount", "nfd-sa", "create")

        with pytest.raises(StoreError):
            store.create("ServiceAccount", "nfd", _service_account().manifest)
        with pytest.raises(NotFoundError):
            store.get("ServiceAccount", "nfd", "nfd-sa")

        store.clear_faults()
        store.create("ServiceAccount", "nfd", _service_account().manifest)
        assert store.keys() == [("ServiceAccount", "nfd", "nfd-sa")]


class TestResourceAccessor:
    """Tests for ResourceAccessor."""

    def test_get_absent_is_none(self, accessor):
        """Absence is a value, not an error."""
        assert accessor.get("ServiceAccount", "nfd", "nfd-sa") is None
        assert not accessor.exists("ServiceAccount", "nfd", "nfd-sa")

    def test_get_propagates_store_errors(self, accessor, store):
        """Failures other than absence propagate."""
        store.fail_on("ServiceAccount", "nfd-sa", "get")

        with pytest.raises(StoreError):
            accessor.get("ServiceAccount", "nfd", "nfd-sa")

    def test_create_then_unchanged(self, accessor, store):
        """Applying the same component twice writes once."""
        component = _service_account()

        assert accessor.create_or_update(component) == ApplyAction.CREATED
        assert accessor.create_or_update(component) == ApplyAction.UNCHANGED
        assert store.mutations == [("create", "ServiceAccount", "nfd", "nfd-sa")]
        assert accessor.exists("ServiceAccount", "nfd", "nfd-sa")

    def test_drift_is_updated(self, accessor, store):
        """A changed component replaces the live object."""
        accessor.create_or_update(_service_account())

        action = accessor.create_or_update(_service_account(labels={"tier": "node"}))

        assert action == ApplyAction.UPDATED
        live = store.get("ServiceAccount", "nfd", "nfd-sa")
        assert live["metadata"]["labels"] == {"tier": "node"}

    def test_applied_hash_recorded(self, accessor, store):
        """Created objects carry the hash of the manifest they came from."""
        component = _service_account()

        accessor.create_or_update(component)

        annotations = store.get("ServiceAccount", "nfd", "nfd-sa")["metadata"]["annotations"]
        assert annotations[APPLIED_HASH_ANNOTATION] == manifest_hash(component.manifest)
        assert "annotations" not in component.manifest["metadata"]

    def test_field_removed_from_template_is_updated(self, accessor, store):
        """Dropping a field from the template replaces the live object even though live is a superset."""
        accessor.create_or_update(_service_account(labels={"tier": "node", "legacy": "yes"}))

        action = accessor.create_or_update(_service_account(labels={"tier": "node"}))

        assert action == ApplyAction.UPDATED
        assert store.get("ServiceAccount", "nfd", "nfd-sa")["metadata"]["labels"] == {"tier": "node"}

    def test_hand_added_live_field_is_kept(self, accessor, store):
        """Fields added to the live object outside the templates are not drift."""
        accessor.create_or_update(_service_account())
        live = store.get("ServiceAccount", "nfd", "nfd-sa")
        live["metadata"]["labels"] = {"added-by": "admin"}
        store.update("ServiceAccount", "nfd", live)

        assert accessor.create_or_update(_service_account()) == ApplyAction.UNCHANGED
        assert store.get("ServiceAccount", "nfd", "nfd-sa")["metadata"]["labels"] == {"added-by": "admin"}

    def test_cluster_scoped(self, accessor, store):
        """Cluster-scoped components are keyed without a namespace."""
        component = ClusterRoleComponent(
            manifest={
                "apiVersion": "rbac.authorization.k8s.io/v1",
                "kind": "ClusterRole",
                "metadata": {"name": "nfd-master"},
                "rules": [],
            }
        )

        accessor.create_or_update(component)

        assert store.keys() == [("ClusterRole", "", "nfd-master")]

    def test_delete_idempotent(self, accessor):
        """Deleting twice succeeds, the second time as a no-op."""
        accessor.create_or_update(_service_account())

        assert accessor.delete("ServiceAccount", "nfd", "nfd-sa") is True
        assert accessor.delete("ServiceAccount", "nfd", "nfd-sa") is False
