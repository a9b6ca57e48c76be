"""Event filtering for owned-object updates."""

import logging
from typing import Any

logger = logging.getLogger(__name__)

# Kinds whose update events are passed through the filter
OWNED_KINDS = (
    "ServiceAccount",
    "RoleBinding",
    "Role",
    "Service",
    "DaemonSet",
    "ConfigMap",
)


def validate_update_event(old: Any, new: Any) -> bool:
    """Check that an update event carries both object states."""
    if old is None:
        logger.error("Update event has no old object to update")
        return False
    if new is None:
        logger.error("Update event has no new object for update")
        return False
    return True


def should_reconcile_update(old: Any, new: Any) -> bool:
    """Update predicate for owned objects.

    A well-formed event (both sides present) is suppressed; an event with a
    missing side triggers a pass.
    """
    return not validate_update_event(old, new)


def should_reconcile(kind: str, old: Any, new: Any) -> bool:
    """Decide whether an update event on an owned object triggers a pass.

    Kinds outside OWNED_KINDS (e.g. SecurityContextConstraints) are watched
    without the filter.
    """
    if kind not in OWNED_KINDS:
        return True
    return should_reconcile_update(old, new)
