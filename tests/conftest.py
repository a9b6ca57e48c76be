"""
Pytest configuration and fixtures for NFD reconciler tests
"""

import os
import sys
from pathlib import Path

import pytest

# Add src to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

REPO_ROOT = Path(__file__).parent.parent


SERVICE_ACCOUNT_YAML = """
apiVersion: v1
kind: ServiceAccount
metadata:
  name: nfd-sa
"""

ROLE_YAML = """
apiVersion: rbac.authorization.k8s.io/v1
kind: Role
metadata:
  name: nfd-role
rules:
  - apiGroups: [""]
    resources: ["pods"]
    verbs: ["get"]
"""

WORKER_DAEMONSET_YAML = """
apiVersion: apps/v1
kind: DaemonSet
metadata:
  name: nfd-worker
spec:
  selector:
    matchLabels:
      app: nfd-worker
  template:
    metadata:
      labels:
        app: nfd-worker
    spec:
      containers:
        - name: nfd-worker
          image: registry.k8s.io/nfd/node-feature-discovery:v0.14.2
"""


@pytest.fixture
def mock_env():
    """Fixture to set up mock environment variables."""
    original_env = os.environ.copy()

    os.environ.update({
        "NFD_ASSETS_DIR": "/tmp/nfd-assets",
        "NFD_KUBE_CONTEXT": "kind-test",
        "NFD_RESYNC_INTERVAL": "15",
    })

    yield os.environ

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def write_manifests(tmp_path):
    """Factory writing {relative path: YAML text} into a manifest directory."""
    def _write(files):
        root = tmp_path / "manifests"
        root.mkdir(exist_ok=True)
        for rel, text in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text)
        return str(root)

    return _write


@pytest.fixture
def scenario_manifests(write_manifests):
    """ServiceAccount, Role and worker DaemonSet templates."""
    return write_manifests({
        "01_sa.yaml": SERVICE_ACCOUNT_YAML,
        "02_role.yaml": ROLE_YAML,
        "03_worker.yaml": WORKER_DAEMONSET_YAML,
    })


@pytest.fixture
def sample_spec():
    """A NodeFeatureDiscovery object."""
    from nfd_reconcile.state import NodeFeatureDiscovery, OperandSpec

    return NodeFeatureDiscovery(
        name="nfd-instance",
        namespace="nfd-operator",
        operand=OperandSpec(namespace="nfd-operator"),
        instance="nfd-a",
        uid="0b7e2a5c-1111-2222-3333-444455556666",
    )


@pytest.fixture
def store():
    """Empty in-memory object store."""
    from nfd_reconcile.resources import InMemoryResourceStore

    return InMemoryResourceStore()


@pytest.fixture
def accessor(store):
    """Accessor over the in-memory store."""
    from nfd_reconcile.resources import ResourceAccessor

    return ResourceAccessor(store)


@pytest.fixture
def spec_store(sample_spec):
    """Specification store holding the sample spec."""
    from nfd_reconcile.reconciler import InMemorySpecificationStore

    return InMemorySpecificationStore([sample_spec])


@pytest.fixture
def reconciler_config():
    """Configuration with short timings."""
    from nfd_reconcile.config import ReconcilerConfig

    config = ReconcilerConfig()
    config.progressing_requeue = 5.0
    config.resync_interval = 30.0
    return config


@pytest.fixture
def bundled_manifests():
    """The manifest set shipped with the repository."""
    return str(REPO_ROOT / "manifests")


# Markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (deselect with '-m \"not integration\"')"
    )
