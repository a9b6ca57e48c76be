"""
NFD Reconciler Configuration

Central configuration for the controller: manifest location, API server
access and loop timings. Override with environment variables.
"""

import os
from dataclasses import dataclass


@dataclass
class ReconcilerConfig:
    """Configuration for the NFD reconciliation controller."""

    # Manifest templates (one directory tree, walked recursively)
    assets_dir: str = "/opt/nfd"

    # Kubernetes API server (in-cluster service account, else kubeconfig)
    kube_context: str = ""
    request_timeout: float = 30.0

    # Loop timings (seconds)
    resync_interval: float = 60.0
    progressing_requeue: float = 10.0

    # Probes and metrics
    health_port: int = 8081

    log_level: str = "INFO"

    def __post_init__(self):
        # Load from environment variables
        self.assets_dir = os.getenv("NFD_ASSETS_DIR", self.assets_dir)
        self.kube_context = os.getenv("NFD_KUBE_CONTEXT", self.kube_context)
        self.request_timeout = float(os.getenv("KUBE_REQUEST_TIMEOUT", self.request_timeout))
        self.resync_interval = float(os.getenv("NFD_RESYNC_INTERVAL", self.resync_interval))
        self.progressing_requeue = float(
            os.getenv("NFD_PROGRESSING_REQUEUE", self.progressing_requeue)
        )
        self.health_port = int(os.getenv("NFD_HEALTH_PORT", self.health_port))
        self.log_level = os.getenv("NFD_LOG_LEVEL", self.log_level).upper()


# Global configuration instance
config = ReconcilerConfig()


def get_config() -> ReconcilerConfig:
    """Get the global configuration instance."""
    return config


def reload_config() -> ReconcilerConfig:
    """Rebuild the global configuration from the current environment."""
    global config
    config = ReconcilerConfig()
    return config
