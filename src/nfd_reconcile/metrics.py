"""
Prometheus Metrics for the NFD Reconciler

Tracks:
- Whether the managed instance is degraded
- Which NFD instances are registered
- Reconciliation pass counts and latency
- Create/update activity per owned kind
"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Instance Metrics
# =============================================================================

# Degraded state of the operand (1 = degraded, 0 = healthy)
NFD_DEGRADED = Gauge(
    "nfd_operator_degraded",
    "Whether the NFD operand is degraded (1) or not (0)"
)

# Registered NFD instances (always 1 while registered)
NFD_INSTANCE_INFO = Gauge(
    "nfd_operator_instance_info",
    "NodeFeatureDiscovery instances handled by this controller",
    ["instance", "namespace"]
)


# =============================================================================
# Reconciliation Metrics
# =============================================================================

# Passes by outcome: available, progressing, degraded, error, deleted
RECONCILE_TOTAL = Counter(
    "nfd_operator_reconcile_total",
    "Total reconciliation passes",
    ["result"]
)

RECONCILE_DURATION = Histogram(
    "nfd_operator_reconcile_duration_seconds",
    "Reconciliation pass latency in seconds",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

# Create/update/unchanged per owned kind
APPLY_TOTAL = Counter(
    "nfd_operator_apply_total",
    "Owned object apply operations",
    ["kind", "action"]
)


# =============================================================================
# Metric Recording Functions
# =============================================================================

def register_instance(instance: str, namespace: str):
    """Mark an NFD instance as handled by this controller."""
    NFD_INSTANCE_INFO.labels(instance=instance, namespace=namespace).set(1)


def set_degraded(degraded: bool):
    """Update the degraded gauge."""
    NFD_DEGRADED.set(1 if degraded else 0)


def record_reconcile(result: str, duration_seconds: float):
    """
    Record a finished reconciliation pass.

    Args:
        result: One of 'available', 'progressing', 'degraded', 'error', 'deleted'
        duration_seconds: Wall time of the pass
    """
    RECONCILE_TOTAL.labels(result=result).inc()
    RECONCILE_DURATION.observe(duration_seconds)


def record_apply(kind: str, action: str):
    """Record one create/update/unchanged apply of an owned object."""
    APPLY_TOTAL.labels(kind=kind, action=action).inc()


def render_latest() -> tuple[bytes, str]:
    """Return the exposition payload and its content type."""
    return generate_latest(), CONTENT_TYPE_LATEST
