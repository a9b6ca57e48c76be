"""
NFD Reconciler Health

Probe, status and metrics endpoints for the reconciliation controller.
"""

from .server import app, health, ControllerHealth, InstanceStatus

__all__ = ["app", "health", "ControllerHealth", "InstanceStatus"]
__version__ = "1.0.0"
