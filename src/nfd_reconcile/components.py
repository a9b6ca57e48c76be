"""Typed owned-object components.

Every manifest kind the controller knows how to own is a ``Component``
subclass. A component carries the decoded manifest, knows how to customise
itself from a ``NodeFeatureDiscovery`` object (``seed``) and how to judge the
live object it produced (``check``).
"""

import copy
from dataclasses import dataclass
from typing import Any, ClassVar

from nfd_reconcile.errors import ManifestParseError
from nfd_reconcile.state import INSTANCE_LABEL, NodeFeatureDiscovery, ResourceStatus

WORKER_CONFIG_KEY = "nfd-worker.conf"
SERVICE_ACCOUNT_USER_PREFIX = "system:serviceaccount:"


def _require_mapping(value: Any, what: str, source: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ManifestParseError(source, f"{what} must be a mapping")
    return value


def _require_list(value: Any, what: str, source: str) -> list[Any]:
    if not isinstance(value, list):
        raise ManifestParseError(source, f"{what} must be a list")
    return value


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


@dataclass
class Component:
    """A desired owned object decoded from a manifest template."""

    manifest: dict[str, Any]
    source: str = ""

    kind: ClassVar[str] = ""
    api_version: ClassVar[str] = "v1"
    plural: ClassVar[str] = ""
    namespaced: ClassVar[bool] = True

    @property
    def name(self) -> str:
        return self.manifest["metadata"]["name"]

    @property
    def namespace(self) -> str:
        if not self.namespaced:
            return ""
        return self.manifest["metadata"].get("namespace", "")

    @property
    def labels(self) -> dict[str, str]:
        return self.manifest["metadata"].get("labels") or {}

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.kind, self.namespace, self.name)

    def __str__(self) -> str:
        where = f"{self.namespace}/{self.name}" if self.namespace else self.name
        return f"{self.kind} {where}"

    @classmethod
    def from_manifest(cls, manifest: dict[str, Any], source: str = "") -> "Component":
        """Decode a parsed manifest into this component type."""
        manifest = copy.deepcopy(manifest)
        if not isinstance(manifest.get("apiVersion"), str) or not manifest["apiVersion"]:
            raise ManifestParseError(source, f"{cls.kind} is missing apiVersion")
        metadata = _require_mapping(manifest.get("metadata"), "metadata", source)
        name = metadata.get("name")
        if not isinstance(name, str) or not name:
            raise ManifestParseError(source, f"{cls.kind} is missing metadata.name")
        labels = metadata.get("labels")
        if labels is not None:
            _require_mapping(labels, "metadata.labels", source)
        cls.validate(manifest, source)
        return cls(manifest=manifest, source=source)

    @classmethod
    def validate(cls, manifest: dict[str, Any], source: str) -> None:
        """Kind-specific structural checks. Raise ManifestParseError on failure."""

    def seed(self, spec: NodeFeatureDiscovery) -> "Component":
        """Return a copy customised for the given NodeFeatureDiscovery."""
        manifest = copy.deepcopy(self.manifest)
        metadata = manifest["metadata"]
        if self.namespaced:
            metadata["namespace"] = spec.operand.namespace
        else:
            metadata.pop("namespace", None)
        if spec.instance:
            labels = metadata.setdefault("labels", {})
            labels[INSTANCE_LABEL] = spec.instance
        self.customize(manifest, spec)
        return type(self)(manifest=manifest, source=self.source)

    def customize(self, manifest: dict[str, Any], spec: NodeFeatureDiscovery) -> None:
        """Kind-specific seeding applied in place on a copied manifest."""

    def check(self, live: dict[str, Any] | None) -> ResourceStatus:
        """Readiness of the live object. Existence is enough by default."""
        if live is None:
            return ResourceStatus.failed(f"{self.kind}Missing", f"{self} not found")
        return ResourceStatus.ready()


class NamespaceComponent(Component):
    kind = "Namespace"
    plural = "namespaces"
    namespaced = False

    def customize(self, manifest: dict[str, Any], spec: NodeFeatureDiscovery) -> None:
        manifest["metadata"]["name"] = spec.operand.namespace


class ServiceAccountComponent(Component):
    kind = "ServiceAccount"
    plural = "serviceaccounts"


class _RBACComponent(Component):
    api_version = "rbac.authorization.k8s.io/v1"

    @classmethod
    def validate(cls, manifest: dict[str, Any], source: str) -> None:
        rules = manifest.get("rules")
        if rules is not None:
            for rule in _require_list(rules, "rules", source):
                _require_mapping(rule, "rules[]", source)


class RoleComponent(_RBACComponent):
    kind = "Role"
    plural = "roles"


class ClusterRoleComponent(_RBACComponent):
    kind = "ClusterRole"
    plural = "clusterroles"
    namespaced = False


class _BindingComponent(Component):
    api_version = "rbac.authorization.k8s.io/v1"

    @classmethod
    def validate(cls, manifest: dict[str, Any], source: str) -> None:
        role_ref = _require_mapping(manifest.get("roleRef"), "roleRef", source)
        if not role_ref.get("kind") or not role_ref.get("name"):
            raise ManifestParseError(source, "roleRef needs kind and name")
        subjects = manifest.get("subjects")
        if subjects is not None:
            for subject in _require_list(subjects, "subjects", source):
                _require_mapping(subject, "subjects[]", source)

    def customize(self, manifest: dict[str, Any], spec: NodeFeatureDiscovery) -> None:
        for subject in manifest.get("subjects") or []:
            if subject.get("kind") == "ServiceAccount":
                subject["namespace"] = spec.operand.namespace


class RoleBindingComponent(_BindingComponent):
    kind = "RoleBinding"
    plural = "rolebindings"


class ClusterRoleBindingComponent(_BindingComponent):
    kind = "ClusterRoleBinding"
    plural = "clusterrolebindings"
    namespaced = False


class ConfigMapComponent(Component):
    kind = "ConfigMap"
    plural = "configmaps"

    @classmethod
    def validate(cls, manifest: dict[str, Any], source: str) -> None:
        data = manifest.get("data")
        if data is None:
            return
        for key, value in _require_mapping(data, "data", source).items():
            if not isinstance(value, str):
                raise ManifestParseError(source, f"data[{key!r}] must be a string")

    def customize(self, manifest: dict[str, Any], spec: NodeFeatureDiscovery) -> None:
        data = manifest.get("data")
        if spec.worker_config and data is not None and WORKER_CONFIG_KEY in data:
            data[WORKER_CONFIG_KEY] = spec.worker_config


class _WorkloadComponent(Component):
    api_version = "apps/v1"

    @classmethod
    def validate(cls, manifest: dict[str, Any], source: str) -> None:
        spec = _require_mapping(manifest.get("spec"), "spec", source)
        template = _require_mapping(spec.get("template"), "spec.template", source)
        pod_spec = _require_mapping(template.get("spec"), "spec.template.spec", source)
        containers = _require_list(pod_spec.get("containers"), "spec.template.spec.containers", source)
        if not containers:
            raise ManifestParseError(source, f"{cls.kind} has no containers")
        for container in containers:
            if not isinstance(container, dict) or not container.get("name"):
                raise ManifestParseError(source, "every container needs a name")

    def customize(self, manifest: dict[str, Any], spec: NodeFeatureDiscovery) -> None:
        pod_spec = manifest["spec"]["template"]["spec"]
        for container in pod_spec["containers"]:
            if spec.operand.image:
                container["image"] = spec.operand.image
            if spec.operand.image_pull_policy:
                container["imagePullPolicy"] = spec.operand.image_pull_policy


class DaemonSetComponent(_WorkloadComponent):
    kind = "DaemonSet"
    plural = "daemonsets"

    def check(self, live: dict[str, Any] | None) -> ResourceStatus:
        if live is None:
            return ResourceStatus.failed("DaemonSetMissing", f"{self} not found")

        status = live.get("status") or {}
        desired = _as_int(status.get("desiredNumberScheduled"))
        updated = _as_int(status.get("updatedNumberScheduled"))
        available = _as_int(status.get("numberAvailable"))

        if updated < desired or available < desired:
            return ResourceStatus.rolling_out(
                "DaemonSetProgressing",
                f"{self}: {updated} updated, {available} available of {desired} desired",
            )

        misscheduled = _as_int(status.get("numberMisscheduled"))
        if misscheduled > 0:
            return ResourceStatus.failed(
                "DaemonSetMisscheduled",
                f"{self}: {misscheduled} pods running on nodes they should not",
            )
        for condition in status.get("conditions") or []:
            if "Fail" in condition.get("type", "") and condition.get("status") == "True":
                return ResourceStatus.failed(
                    "DaemonSetFailed",
                    f"{self}: {condition.get('message') or condition['type']}",
                )

        return ResourceStatus.ready()


class DeploymentComponent(_WorkloadComponent):
    kind = "Deployment"
    plural = "deployments"

    def check(self, live: dict[str, Any] | None) -> ResourceStatus:
        if live is None:
            return ResourceStatus.failed("DeploymentMissing", f"{self} not found")

        spec = live.get("spec") or {}
        status = live.get("status") or {}
        replicas = _as_int(spec.get("replicas", 1))
        updated = _as_int(status.get("updatedReplicas"))
        available = _as_int(status.get("availableReplicas"))

        # A rollout still in flight is not judged on its failure conditions
        if updated < replicas or available < replicas:
            return ResourceStatus.rolling_out(
                "DeploymentProgressing",
                f"{self}: {updated} updated, {available} available of {replicas} desired",
            )

        conditions = {c.get("type"): c for c in status.get("conditions") or []}
        progress = conditions.get("Progressing")
        if progress and progress.get("status") == "False" and progress.get("reason") == "ProgressDeadlineExceeded":
            return ResourceStatus.failed(
                "DeploymentFailed", f"{self}: {progress.get('message') or 'progress deadline exceeded'}"
            )
        replica_failure = conditions.get("ReplicaFailure")
        if replica_failure and replica_failure.get("status") == "True":
            return ResourceStatus.failed(
                "DeploymentFailed", f"{self}: {replica_failure.get('message') or 'replica failure'}"
            )
        return ResourceStatus.ready()


class ServiceComponent(Component):
    kind = "Service"
    plural = "services"

    @classmethod
    def validate(cls, manifest: dict[str, Any], source: str) -> None:
        spec = _require_mapping(manifest.get("spec"), "spec", source)
        ports = spec.get("ports")
        if ports is not None:
            for port in _require_list(ports, "spec.ports", source):
                _require_mapping(port, "spec.ports[]", source)

    def customize(self, manifest: dict[str, Any], spec: NodeFeatureDiscovery) -> None:
        ports = manifest["spec"].get("ports") or []
        if spec.operand.service_port and ports:
            ports[0]["port"] = spec.operand.service_port
            ports[0]["targetPort"] = spec.operand.service_port


class SecurityContextConstraintsComponent(Component):
    kind = "SecurityContextConstraints"
    api_version = "security.openshift.io/v1"
    plural = "securitycontextconstraints"
    namespaced = False

    def customize(self, manifest: dict[str, Any], spec: NodeFeatureDiscovery) -> None:
        users = manifest.get("users") or []
        for i, user in enumerate(users):
            if isinstance(user, str) and user.startswith(SERVICE_ACCOUNT_USER_PREFIX):
                account = user[len(SERVICE_ACCOUNT_USER_PREFIX):].split(":")[-1]
                users[i] = f"{SERVICE_ACCOUNT_USER_PREFIX}{spec.operand.namespace}:{account}"


COMPONENT_TYPES: dict[str, type[Component]] = {
    cls.kind: cls
    for cls in (
        NamespaceComponent,
        ServiceAccountComponent,
        ClusterRoleComponent,
        ClusterRoleBindingComponent,
        RoleComponent,
        RoleBindingComponent,
        ConfigMapComponent,
        DaemonSetComponent,
        DeploymentComponent,
        ServiceComponent,
        SecurityContextConstraintsComponent,
    )
}


def component_type(kind: str) -> type[Component]:
    """Look up the component class for a kind. Raises KeyError if unknown."""
    return COMPONENT_TYPES[kind]
