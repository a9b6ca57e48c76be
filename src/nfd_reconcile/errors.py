"""Errors raised while reconciling a NodeFeatureDiscovery object."""


class ReconcileError(Exception):
    """Base class for reconciliation failures."""


class NotFoundError(ReconcileError):
    """An object or NodeFeatureDiscovery resource does not exist in the store."""

    def __init__(self, kind: str, namespace: str, name: str):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        where = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} {where} not found")


class StoreError(ReconcileError):
    """The object store rejected or failed a request."""

    def __init__(
        self,
        kind: str,
        namespace: str,
        name: str,
        detail: str,
        status_code: int | None = None,
    ):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        self.detail = detail
        self.status_code = status_code
        where = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} {where}: {detail}")


class ManifestParseError(ReconcileError):
    """A manifest template could not be read or decoded."""

    def __init__(self, path: str, detail: str):
        self.path = path
        self.detail = detail
        super().__init__(f"{path}: {detail}")


class ApplyError(ReconcileError):
    """Creating or updating an owned object failed."""

    def __init__(self, kind: str, name: str, cause: Exception):
        self.kind = kind
        self.name = name
        self.cause = cause
        super().__init__(f"failed to apply {kind} {name}: {cause}")


class StatusUpdateError(ReconcileError):
    """Writing conditions back to the NodeFeatureDiscovery status failed."""

    def __init__(self, ref: object, cause: Exception):
        self.ref = ref
        self.cause = cause
        super().__init__(f"failed to update status of {ref}: {cause}")


class InvalidSpecError(ReconcileError):
    """A NodeFeatureDiscovery object does not have the expected shape."""

    def __init__(self, name: str, field: str, detail: str):
        self.name = name
        self.field = field
        self.detail = detail
        super().__init__(f"invalid NodeFeatureDiscovery {name or '<unnamed>'}: {field} {detail}")
