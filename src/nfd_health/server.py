"""
Controller Health API Server

FastAPI server providing probe, status and metrics endpoints for the
NFD reconciliation controller.
"""

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Response
from pydantic import BaseModel

from nfd_reconcile import metrics
from nfd_reconcile.state import ReconcileResult, SpecRef


# API Models
class InstanceStatus(BaseModel):
    """Last reconciliation outcome for one NodeFeatureDiscovery object."""
    namespace: str
    name: str
    condition: Optional[str] = None
    requeue: bool
    requeue_after: Optional[float] = None
    error: Optional[str] = None
    passes: int
    timestamp: datetime


class ControllerStatus(BaseModel):
    """Complete controller status response."""
    ready: bool
    instances: List[InstanceStatus]


class ControllerHealth:
    """Keeps the latest reconciliation result per NodeFeatureDiscovery object.

    Written by the reconcile loop, read by the HTTP handlers.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._instances: Dict[SpecRef, InstanceStatus] = {}

    def record(self, ref: SpecRef, result: ReconcileResult) -> None:
        """Store the outcome of a finished pass."""
        with self._lock:
            previous = self._instances.get(ref)
            self._instances[ref] = InstanceStatus(
                namespace=ref.namespace,
                name=ref.name,
                condition=result.condition.value if result.condition else None,
                requeue=result.requeue,
                requeue_after=result.requeue_after,
                error=str(result.error) if result.error else None,
                passes=previous.passes + 1 if previous else 1,
                timestamp=datetime.now(timezone.utc),
            )

    def clear(self) -> None:
        with self._lock:
            self._instances.clear()

    def instances(self) -> List[InstanceStatus]:
        with self._lock:
            return list(self._instances.values())

    def get(self, namespace: str, name: str) -> Optional[InstanceStatus]:
        with self._lock:
            return self._instances.get(SpecRef(namespace, name))

    @property
    def ready(self) -> bool:
        """Ready once a pass finished and no instance is stuck on an error."""
        instances = self.instances()
        return bool(instances) and all(i.error is None for i in instances)


# Create FastAPI app
app = FastAPI(
    title="NFD Reconciler Health",
    description="Probe, status and metrics endpoints for the NFD reconciliation controller",
    version="1.0.0",
)

# Global health state
health = ControllerHealth()


@app.get("/")
async def root():
    """API root."""
    return {"message": "NFD Reconciler", "status": "/status", "metrics": "/metrics"}


@app.get("/live")
async def liveness():
    """Kubernetes-style liveness probe."""
    return {"status": "alive"}


@app.get("/ready")
async def readiness():
    """Kubernetes-style readiness probe."""
    if not health.ready:
        raise HTTPException(status_code=503, detail="Controller not ready")
    return {"status": "ready"}


@app.get("/status", response_model=ControllerStatus)
async def get_status():
    """Last reconciliation outcome for every NodeFeatureDiscovery object."""
    return ControllerStatus(ready=health.ready, instances=health.instances())


@app.get("/status/{namespace}/{name}", response_model=InstanceStatus)
async def get_instance_status(namespace: str, name: str):
    """Last reconciliation outcome for one NodeFeatureDiscovery object."""
    instance = health.get(namespace, name)
    if instance is None:
        raise HTTPException(status_code=404, detail=f"Instance not found: {namespace}/{name}")
    return instance


@app.get("/metrics")
async def metrics_endpoint():
    """Prometheus metrics in text exposition format."""
    content, content_type = metrics.render_latest()
    return Response(content=content, media_type=content_type)


# Run with: uvicorn nfd_health.server:app --host 0.0.0.0 --port 8081
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8081)
