"""Status derivation: per-resource readiness folded into one condition.

Owned objects are evaluated in dependency order. The first one that is
degraded or still rolling out decides the top-level condition and the rest
are not looked at; if everything is ready the instance is Available.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator

from nfd_reconcile.components import Component
from nfd_reconcile.errors import ReconcileError
from nfd_reconcile.resources import ResourceAccessor
from nfd_reconcile.state import Condition, ConditionType, ResourceStatus, utcnow

logger = logging.getLogger(__name__)

REASON_AVAILABLE = "AllComponentsAvailable"
REASON_APPLY_FAILED = "ApplyFailed"
REASON_MANIFEST_PARSE_FAILED = "ManifestParseFailed"
REASON_INVALID_SPEC = "InvalidSpec"


def _is_master(component: Component) -> bool:
    return "master" in component.name


@dataclass(frozen=True)
class EvaluationSlot:
    """One position in the evaluation order."""

    label: str
    failed_reason: str
    matches: Callable[[Component], bool]


EVALUATION_ORDER: list[EvaluationSlot] = [
    EvaluationSlot(
        "service account", "FailedGettingNFDServiceAccount",
        lambda c: c.kind == "ServiceAccount",
    ),
    EvaluationSlot("role", "NFDRoleDegraded", lambda c: c.kind == "Role"),
    EvaluationSlot("cluster role", "NFDClusterRoleDegraded", lambda c: c.kind == "ClusterRole"),
    EvaluationSlot(
        "cluster role binding", "NFDClusterRoleBindingDegraded",
        lambda c: c.kind == "ClusterRoleBinding",
    ),
    EvaluationSlot(
        "role binding", "FailedGettingNFDRoleBinding",
        lambda c: c.kind == "RoleBinding",
    ),
    EvaluationSlot("service", "FailedGettingNFDService", lambda c: c.kind == "Service"),
    EvaluationSlot(
        "worker config", "FailedGettingNFDWorkerConfig",
        lambda c: c.kind == "ConfigMap",
    ),
    EvaluationSlot(
        "worker daemon set", "FailedGettingNFDWorkerDaemonSet",
        lambda c: c.kind == "DaemonSet" and not _is_master(c),
    ),
    EvaluationSlot(
        "master workload", "FailedGettingNFDMasterDaemonSet",
        lambda c: (c.kind == "DaemonSet" and _is_master(c)) or c.kind == "Deployment",
    ),
]


@dataclass
class Verdict:
    """The single top-level condition derived for one pass."""

    condition: ConditionType
    reason: str
    message: str = ""

    @classmethod
    def degraded(cls, reason: str, message: str) -> "Verdict":
        return cls(ConditionType.DEGRADED, reason, message)


def evaluate_component(
    accessor: ResourceAccessor, component: Component, slot: EvaluationSlot
) -> ResourceStatus:
    """Read one owned object and judge it with its bound predicate."""
    try:
        live = accessor.get(*component.key)
    except ReconcileError as exc:
        return ResourceStatus.failed(slot.failed_reason, str(exc))
    return component.check(live)


def iter_statuses(
    accessor: ResourceAccessor, components: list[Component]
) -> Iterator[ResourceStatus]:
    """Lazily evaluate components in slot order."""
    for slot in EVALUATION_ORDER:
        for component in components:
            if not slot.matches(component):
                continue
            status = evaluate_component(accessor, component, slot)
            logger.debug("Evaluated %s (%s): %s", component, slot.label, status)
            yield status


def aggregate(statuses: Iterable[ResourceStatus]) -> Verdict:
    """Fold ordered snapshots into one verdict, stopping at the first problem."""
    for status in statuses:
        if status.degraded:
            return Verdict(ConditionType.DEGRADED, status.reason, status.message)
        if status.progressing:
            return Verdict(ConditionType.PROGRESSING, status.reason, status.message)
    return Verdict(ConditionType.AVAILABLE, REASON_AVAILABLE, "All components are available")


def evaluate(accessor: ResourceAccessor, components: list[Component]) -> Verdict:
    """Derive the top-level condition from the live state of components."""
    return aggregate(iter_statuses(accessor, components))


def conditions_for(
    verdict: Verdict, previous: list[Condition] | None = None, now: str | None = None
) -> list[Condition]:
    """Render the verdict as the three status conditions.

    Exactly one condition is True. A condition keeps its transition time
    when its status did not change.
    """
    now = now or utcnow()
    before = {c.type: c for c in previous or []}

    conditions = []
    for condition_type in ConditionType:
        status = "True" if condition_type == verdict.condition else "False"
        old = before.get(condition_type.value)
        if old is not None and old.status == status and old.last_transition_time:
            transition = old.last_transition_time
        else:
            transition = now
        conditions.append(
            Condition(
                type=condition_type.value,
                status=status,
                reason=verdict.reason,
                message=verdict.message if status == "True" else "",
                last_transition_time=transition,
            )
        )
    return conditions
