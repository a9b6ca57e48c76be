"""State definitions for NodeFeatureDiscovery reconciliation."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from nfd_reconcile.errors import InvalidSpecError

API_GROUP = "nfd.openshift.io"
API_VERSION = "v1"
SPEC_KIND = "NodeFeatureDiscovery"
SPEC_PLURAL = "nodefeaturediscoveries"

INSTANCE_LABEL = "app.kubernetes.io/instance"


class ConditionType(str, Enum):
    """Top-level condition types written to the NodeFeatureDiscovery status."""

    AVAILABLE = "Available"
    PROGRESSING = "Progressing"
    DEGRADED = "Degraded"


def utcnow() -> str:
    """Current UTC time in RFC 3339 form, second precision."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class SpecRef:
    """Identity of a NodeFeatureDiscovery object."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class Condition:
    """A single status condition."""

    type: str
    status: str
    reason: str = ""
    message: str = ""
    last_transition_time: str = ""

    @property
    def is_true(self) -> bool:
        return self.status == "True"

    def to_dict(self) -> dict[str, Any]:
        """Convert to the Kubernetes condition shape."""
        return {
            "type": self.type,
            "status": self.status,
            "reason": self.reason,
            "message": self.message,
            "lastTransitionTime": self.last_transition_time,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Condition":
        """Build from the Kubernetes condition shape."""
        return cls(
            type=data.get("type", ""),
            status=data.get("status", "Unknown"),
            reason=data.get("reason", ""),
            message=data.get("message", ""),
            last_transition_time=data.get("lastTransitionTime", ""),
        )


@dataclass
class OperandSpec:
    """Operand settings: where and how the NFD workloads run."""

    namespace: str = "node-feature-discovery"
    image: str = ""
    image_pull_policy: str = ""
    service_port: int | None = None


@dataclass
class NodeFeatureDiscovery:
    """Desired state of a node-feature-discovery deployment."""

    name: str
    namespace: str
    operand: OperandSpec = field(default_factory=OperandSpec)
    instance: str = ""
    worker_config: str = ""
    conditions: list[Condition] = field(default_factory=list)
    uid: str = ""
    resource_version: str = ""

    @property
    def ref(self) -> SpecRef:
        return SpecRef(self.namespace, self.name)

    def get_condition(self, condition_type: str) -> Condition | None:
        """Get a status condition by type."""
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NodeFeatureDiscovery":
        """Build from the custom resource JSON shape.

        Raises InvalidSpecError naming the first field with the wrong type.
        """
        if not isinstance(data, dict):
            raise InvalidSpecError("", "object", "is not a mapping")
        metadata = _mapping(data, "metadata", "")
        name = _string(metadata, "name", "metadata.name", "")
        spec = _mapping(data, "spec", name)
        status = _mapping(data, "status", name)
        operand = _mapping(spec, "operand", name, "spec.operand")
        worker_config = _mapping(spec, "workerConfig", name, "spec.workerConfig")

        conditions = status.get("conditions") or []
        if not isinstance(conditions, list) or not all(isinstance(c, dict) for c in conditions):
            raise InvalidSpecError(name, "status.conditions", "is not a list of mappings")

        return cls(
            name=name,
            namespace=_string(metadata, "namespace", "metadata.namespace", name),
            operand=OperandSpec(
                namespace=_string(operand, "namespace", "spec.operand.namespace", name)
                or OperandSpec.namespace,
                image=_string(operand, "image", "spec.operand.image", name),
                image_pull_policy=_string(
                    operand, "imagePullPolicy", "spec.operand.imagePullPolicy", name
                ),
                service_port=_port(operand.get("servicePort"), name),
            ),
            instance=_string(spec, "instance", "spec.instance", name),
            worker_config=_string(worker_config, "configData", "spec.workerConfig.configData", name),
            conditions=[Condition.from_dict(c) for c in conditions],
            uid=_string(metadata, "uid", "metadata.uid", name),
            resource_version=_string(metadata, "resourceVersion", "metadata.resourceVersion", name),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the custom resource JSON shape."""
        operand: dict[str, Any] = {"namespace": self.operand.namespace}
        if self.operand.image:
            operand["image"] = self.operand.image
        if self.operand.image_pull_policy:
            operand["imagePullPolicy"] = self.operand.image_pull_policy
        if self.operand.service_port:
            operand["servicePort"] = self.operand.service_port

        spec: dict[str, Any] = {"operand": operand}
        if self.instance:
            spec["instance"] = self.instance
        if self.worker_config:
            spec["workerConfig"] = {"configData": self.worker_config}

        metadata: dict[str, Any] = {"name": self.name, "namespace": self.namespace}
        if self.uid:
            metadata["uid"] = self.uid
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version

        return {
            "apiVersion": f"{API_GROUP}/{API_VERSION}",
            "kind": SPEC_KIND,
            "metadata": metadata,
            "spec": spec,
            "status": {"conditions": [c.to_dict() for c in self.conditions]},
        }


@dataclass
class ResourceStatus:
    """Readiness snapshot of one owned resource.

    Exactly one of ``available``, ``progressing`` and ``degraded`` is set.
    """

    available: bool = False
    progressing: bool = False
    degraded: bool = False
    reason: str = ""
    message: str = ""

    def __post_init__(self) -> None:
        if sum((self.available, self.progressing, self.degraded)) != 1:
            raise ValueError("exactly one of available/progressing/degraded must be set")

    @classmethod
    def ready(cls, message: str = "") -> "ResourceStatus":
        return cls(available=True, message=message)

    @classmethod
    def rolling_out(cls, reason: str, message: str) -> "ResourceStatus":
        return cls(progressing=True, reason=reason, message=message)

    @classmethod
    def failed(cls, reason: str, message: str) -> "ResourceStatus":
        return cls(degraded=True, reason=reason, message=message)


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass, handed to the host."""

    requeue: bool = False
    requeue_after: float | None = None
    condition: ConditionType | None = None
    error: Exception | None = None
    applied: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "requeue": self.requeue,
            "requeue_after": self.requeue_after,
            "condition": self.condition.value if self.condition else None,
            "error": str(self.error) if self.error else None,
            "applied": self.applied,
        }


def _mapping(data: dict[str, Any], key: str, name: str, path: str | None = None) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidSpecError(name, path or key, "is not a mapping")
    return value


def _string(data: dict[str, Any], key: str, path: str, name: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidSpecError(name, path, f"must be a string, got {type(value).__name__}")
    return value


def _port(value: Any, name: str) -> int | None:
    """Service port as an int; empty means the template default."""
    if value is None or value == "" or value == 0:
        return None
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise InvalidSpecError(name, "spec.operand.servicePort", f"must be an integer, got {value!r}")
    try:
        port = int(value)
    except (TypeError, ValueError) as e:
        raise InvalidSpecError(
            name, "spec.operand.servicePort", f"must be an integer, got {value!r}"
        ) from e
    if not 1 <= port <= 65535:
        raise InvalidSpecError(name, "spec.operand.servicePort", f"{port} is out of range")
    return port
