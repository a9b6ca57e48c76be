"""NodeFeatureDiscovery reconciliation controller."""

from nfd_reconcile.apply import ApplyStateMachine
from nfd_reconcile.reconciler import NodeFeatureDiscoveryReconciler
from nfd_reconcile.resources import ResourceAccessor
from nfd_reconcile.state import NodeFeatureDiscovery, ReconcileResult, SpecRef

__all__ = [
    "ApplyStateMachine",
    "NodeFeatureDiscovery",
    "NodeFeatureDiscoveryReconciler",
    "ReconcileResult",
    "ResourceAccessor",
    "SpecRef",
]
