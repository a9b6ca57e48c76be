"""NodeFeatureDiscovery reconciliation engine."""

import copy
import logging
import time

from nfd_reconcile import metrics
from nfd_reconcile.apply import ApplyStateMachine
from nfd_reconcile.conditions import (
    REASON_APPLY_FAILED,
    REASON_INVALID_SPEC,
    REASON_MANIFEST_PARSE_FAILED,
    Verdict,
    conditions_for,
    evaluate,
)
from nfd_reconcile.config import ReconcilerConfig, get_config
from nfd_reconcile.errors import (
    ApplyError,
    InvalidSpecError,
    ManifestParseError,
    NotFoundError,
    ReconcileError,
    StatusUpdateError,
)
from nfd_reconcile.manifests import DirectoryManifestSource, ManifestSource, materialize, seed_components
from nfd_reconcile.resources import ResourceAccessor
from nfd_reconcile.state import (
    SPEC_KIND,
    Condition,
    ConditionType,
    NodeFeatureDiscovery,
    ReconcileResult,
    SpecRef,
)

logger = logging.getLogger(__name__)


class SpecificationStore:
    """Where NodeFeatureDiscovery objects are read and their status written."""

    def get(self, ref: SpecRef) -> NodeFeatureDiscovery:
        """Fetch a NodeFeatureDiscovery object. Raises NotFoundError if it does not exist."""
        raise NotImplementedError

    def update_status(self, ref: SpecRef, conditions: list[Condition]) -> None:
        """Replace the status conditions. Raises StatusUpdateError on failure."""
        raise NotImplementedError


class InMemorySpecificationStore(SpecificationStore):
    """Dict-backed specification store for dry runs and tests."""

    def __init__(self, specs: list[NodeFeatureDiscovery] | None = None):
        self._specs: dict[SpecRef, NodeFeatureDiscovery] = {}
        self.status_updates = 0
        self.status_error: Exception | None = None
        for spec in specs or []:
            self.add(spec)

    def add(self, spec: NodeFeatureDiscovery) -> None:
        self._specs[spec.ref] = copy.deepcopy(spec)

    def remove(self, ref: SpecRef) -> None:
        self._specs.pop(ref, None)

    def get(self, ref):
        if ref not in self._specs:
            raise NotFoundError(SPEC_KIND, ref.namespace, ref.name)
        return copy.deepcopy(self._specs[ref])

    def update_status(self, ref, conditions):
        if self.status_error is not None:
            raise StatusUpdateError(ref, self.status_error)
        if ref not in self._specs:
            raise StatusUpdateError(ref, NotFoundError(SPEC_KIND, ref.namespace, ref.name))
        self._specs[ref].conditions = copy.deepcopy(conditions)
        self.status_updates += 1


class NodeFeatureDiscoveryReconciler:
    """Drives owned objects toward a NodeFeatureDiscovery spec and reports health.

    Each call to ``reconcile`` is a complete, independent pass: templates are
    re-read, every component is re-applied from the first one, and the
    status is derived from live state.
    """

    def __init__(
        self,
        specs: SpecificationStore,
        accessor: ResourceAccessor,
        manifests: ManifestSource | None = None,
        assets_dir: str | None = None,
        config: ReconcilerConfig | None = None,
    ):
        self.config = config or get_config()
        self.specs = specs
        self.accessor = accessor
        self.manifests = manifests or DirectoryManifestSource()
        self.assets_dir = assets_dir or self.config.assets_dir

    def reconcile(self, ref: SpecRef) -> ReconcileResult:
        """Run one reconciliation pass for a NodeFeatureDiscovery object."""
        start = time.perf_counter()
        result = self._reconcile(ref)

        if result.condition is not None:
            label = result.condition.value.lower()
        elif result.error is not None:
            label = "error"
        else:
            label = "deleted"
        metrics.record_reconcile(label, time.perf_counter() - start)
        return result

    def _reconcile(self, ref: SpecRef) -> ReconcileResult:
        logger.info("Fetch the NodeFeatureDiscovery instance %s", ref)
        try:
            spec = self.specs.get(ref)
        except NotFoundError:
            # Owned objects are garbage collected by the platform
            logger.info("NodeFeatureDiscovery %s has been deleted", ref)
            return ReconcileResult(requeue=False)
        except InvalidSpecError as e:
            logger.error("NodeFeatureDiscovery %s cannot be decoded: %s", ref, e)
            return self._fail(ref, [], Verdict.degraded(REASON_INVALID_SPEC, str(e)), e)
        except ReconcileError as e:
            logger.error("Requeueing %s, error reading object: %s", ref, e)
            return ReconcileResult(requeue=True, error=e)

        if spec.instance:
            metrics.register_instance(spec.instance, spec.operand.namespace)

        try:
            components = seed_components(materialize(self.manifests, self.assets_dir), spec)
        except ManifestParseError as e:
            logger.error("Manifest templates for %s are invalid: %s", ref, e)
            verdict = Verdict.degraded(REASON_MANIFEST_PARSE_FAILED, str(e))
            return self._fail(spec.ref, spec.conditions, verdict, e)

        logger.info("Ready to apply %d components for %s", len(components), ref)
        machine = ApplyStateMachine(components, self.accessor, owner=spec)
        try:
            applied = machine.run()
        except ApplyError as e:
            verdict = Verdict.degraded(REASON_APPLY_FAILED, str(e))
            return self._fail(spec.ref, spec.conditions, verdict, e)

        verdict = evaluate(self.accessor, components)
        logger.info("NodeFeatureDiscovery %s is %s: %s", ref, verdict.condition.value, verdict.message)

        result = ReconcileResult(
            condition=verdict.condition,
            applied=[
                {"kind": c.kind, "namespace": c.namespace, "name": c.name, "action": action.value}
                for c, action in applied
            ],
        )
        if verdict.condition == ConditionType.PROGRESSING:
            result.requeue = True
            result.requeue_after = self.config.progressing_requeue
        elif verdict.condition == ConditionType.DEGRADED:
            result.requeue = True

        try:
            self._write_status(spec.ref, spec.conditions, verdict)
        except StatusUpdateError as e:
            result.requeue = True
            result.error = e
        return result

    def _fail(
        self, ref: SpecRef, previous: list[Condition], verdict: Verdict, error: Exception
    ) -> ReconcileResult:
        """Surface a failed pass as Degraded and ask to be retried."""
        try:
            self._write_status(ref, previous, verdict)
        except StatusUpdateError as e:
            error = e
        return ReconcileResult(requeue=True, condition=verdict.condition, error=error)

    def _write_status(self, ref: SpecRef, previous: list[Condition], verdict: Verdict) -> None:
        metrics.set_degraded(verdict.condition == ConditionType.DEGRADED)
        conditions = conditions_for(verdict, previous)
        try:
            self.specs.update_status(ref, conditions)
        except StatusUpdateError as e:
            logger.error("Could not write status of %s: %s", ref, e)
            raise
