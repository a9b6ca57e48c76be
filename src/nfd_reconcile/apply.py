"""Ordered, steppable application of components to the cluster."""

import copy
import logging
from typing import Any

from nfd_reconcile import metrics
from nfd_reconcile.components import Component
from nfd_reconcile.errors import ApplyError, ReconcileError
from nfd_reconcile.resources import ApplyAction, ResourceAccessor
from nfd_reconcile.state import API_GROUP, API_VERSION, SPEC_KIND, NodeFeatureDiscovery

logger = logging.getLogger(__name__)


def owner_reference(owner: NodeFeatureDiscovery) -> dict[str, Any]:
    """Controller owner reference pointing at a NodeFeatureDiscovery object."""
    return {
        "apiVersion": f"{API_GROUP}/{API_VERSION}",
        "kind": SPEC_KIND,
        "name": owner.name,
        "uid": owner.uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }


def with_owner(component: Component, owner: NodeFeatureDiscovery) -> Component:
    """Attach the owner reference when the platform can honour it.

    Only namespaced objects in the owner's own namespace can point at it.
    """
    if not owner.uid or not component.namespaced or component.namespace != owner.namespace:
        return component
    manifest = copy.deepcopy(component.manifest)
    refs = [
        ref
        for ref in manifest["metadata"].get("ownerReferences") or []
        if not ref.get("controller")
    ]
    refs.append(owner_reference(owner))
    manifest["metadata"]["ownerReferences"] = refs
    return type(component)(manifest=manifest, source=component.source)


class ApplyStateMachine:
    """Applies components one step at a time.

    The cursor points at the next component to apply. A failed step raises
    ApplyError and leaves the cursor where it was; the machine is complete
    once the cursor reaches the end of the list.
    """

    def __init__(
        self,
        components: list[Component],
        accessor: ResourceAccessor,
        owner: NodeFeatureDiscovery | None = None,
    ):
        self.components = list(components)
        self.accessor = accessor
        self.owner = owner
        self._cursor = 0

    @property
    def cursor(self) -> int:
        return self._cursor

    def __len__(self) -> int:
        return len(self.components)

    def last(self) -> bool:
        """True once every component has been applied."""
        return self._cursor == len(self.components)

    def step(self) -> ApplyAction:
        """Apply the component at the cursor, then advance."""
        if self.last():
            raise RuntimeError("all components already applied")

        component = self.components[self._cursor]
        if self.owner is not None:
            component = with_owner(component, self.owner)

        try:
            action = self.accessor.create_or_update(component)
        except ReconcileError as exc:
            logger.error("Failed to apply %s at step %d: %s", component, self._cursor, exc)
            raise ApplyError(component.kind, component.name, exc) from exc

        metrics.record_apply(component.kind, action.value)
        self._cursor += 1
        return action

    def run(self) -> list[tuple[Component, ApplyAction]]:
        """Step until complete. Stops at the first ApplyError."""
        applied = []
        while not self.last():
            component = self.components[self._cursor]
            applied.append((component, self.step()))
        return applied
