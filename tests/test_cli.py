"""
Tests for nfd_reconcile.cli module
"""

import json
from unittest.mock import MagicMock, patch

import pytest

from conftest import REPO_ROOT

SAMPLE_SPEC = str(REPO_ROOT / "samples" / "nodefeaturediscovery.yaml")


def _run_main(argv):
    from nfd_reconcile.cli import main

    with patch("sys.argv", ["nfd-reconcile", *argv]):
        return main()


class TestLoadSpec:
    """Tests for reading NodeFeatureDiscovery files."""

    def test_sample(self):
        """The shipped sample loads."""
        from nfd_reconcile.cli import load_spec

        spec = load_spec(SAMPLE_SPEC)

        assert spec.name == "nfd-instance"
        assert spec.operand.service_port == 12000
        assert "sleepInterval" in spec.worker_config

    def test_not_a_mapping(self, tmp_path):
        """A file without an object is rejected."""
        from nfd_reconcile.cli import load_spec
        from nfd_reconcile.errors import InvalidSpecError

        path = tmp_path / "empty.yaml"
        path.write_text("- a\n")

        with pytest.raises(InvalidSpecError):
            load_spec(str(path))


class TestRenderCommand:
    """Tests for the render command."""

    def test_render_json(self, bundled_manifests, capsys):
        """Rendering prints manifests in apply order."""
        code = _run_main(["--format", "json", "render", "-a", bundled_manifests, "-s", SAMPLE_SPEC])

        assert code == 0
        rendered = json.loads(capsys.readouterr().out)
        assert len(rendered) == 12
        assert rendered[0]["kind"] == "Namespace"
        assert rendered[1]["metadata"]["namespace"] == "node-feature-discovery"

    def test_render_bad_manifest(self, write_manifests):
        """Broken templates fail the command."""
        assets = write_manifests({"bad.yaml": "metadata:\n  name: x\n"})

        assert _run_main(["render", "-a", assets]) == 1


class TestReconcileCommand:
    """Tests for the reconcile command."""

    def test_dry_run(self, bundled_manifests, capsys):
        """A dry run against an empty cluster ends Available."""
        code = _run_main(["--format", "json", "reconcile", "-s", SAMPLE_SPEC, "-a", bundled_manifests])

        assert code == 0
        result = json.loads(capsys.readouterr().out)
        assert result["ref"] == "node-feature-discovery/nfd-instance"
        assert result["condition"] == "Available"
        assert {a["action"] for a in result["applied"]} == {"created"}

    def test_text_output(self, bundled_manifests):
        """Text output goes through the rich console."""
        with patch("nfd_reconcile.cli.console") as console:
            code = _run_main(["reconcile", "-s", SAMPLE_SPEC, "-a", bundled_manifests])

        assert code == 0
        printed = " ".join(str(call.args[0]) for call in console.print.call_args_list)
        assert "Available" in printed

    def test_missing_spec_file(self, tmp_path):
        """A missing spec file is an error."""
        assert _run_main(["reconcile", "-s", str(tmp_path / "nope.yaml")]) == 1

    def test_degraded_exit_code(self, write_manifests):
        """Anything but Available exits non-zero."""
        assets = write_manifests({"bad.yaml": "apiVersion: v1\nmetadata:\n  name: x\n"})

        with patch("nfd_reconcile.cli.console"):
            assert _run_main(["reconcile", "-s", SAMPLE_SPEC, "-a", assets]) == 1

    def test_invalid_spec_file(self, tmp_path, bundled_manifests):
        """A spec with a malformed field fails cleanly."""
        path = tmp_path / "nfd.yaml"
        path.write_text(
            "apiVersion: nfd.openshift.io/v1\nkind: NodeFeatureDiscovery\n"
            "metadata:\n  name: nfd\n  namespace: nfd\n"
            "spec:\n  operand:\n    servicePort: http\n"
        )

        with patch("nfd_reconcile.cli.console") as console:
            code = _run_main(["reconcile", "-s", str(path), "-a", bundled_manifests])

        assert code == 1
        assert "servicePort" in str(console.print.call_args.args[0])

    def test_apply_without_cluster_config(self, bundled_manifests):
        """--apply with no in-cluster or kubeconfig credentials exits non-zero."""
        from kubernetes.config import ConfigException

        with patch("nfd_reconcile.cli._kube_reconciler", side_effect=ConfigException("no config")), \
                patch("nfd_reconcile.cli.console"):
            code = _run_main(["reconcile", "-s", SAMPLE_SPEC, "-a", bundled_manifests, "--apply"])

        assert code == 1


class TestRunLoop:
    """Tests for the continuous reconcile loop."""

    def test_requeue_shortens_delay(self):
        """A Progressing pass comes back sooner than the resync interval."""
        from nfd_reconcile.cli import run_loop
        from nfd_reconcile.state import ConditionType, ReconcileResult, SpecRef

        reconciler = MagicMock()
        reconciler.reconcile.side_effect = [
            ReconcileResult(requeue=True, requeue_after=5.0, condition=ConditionType.PROGRESSING),
            ReconcileResult(condition=ConditionType.AVAILABLE),
            ReconcileResult(condition=ConditionType.AVAILABLE),
        ]
        sleeps = []

        result = run_loop(reconciler, SpecRef("nfd", "inst"), 30.0, max_passes=3, sleep=sleeps.append)

        assert sleeps == [5.0, 30.0]
        assert result.condition == ConditionType.AVAILABLE
        assert reconciler.reconcile.call_count == 3

    def test_immediate_requeue_uses_interval(self):
        """A requeue without a delay waits the resync interval."""
        from nfd_reconcile.cli import run_loop
        from nfd_reconcile.state import ConditionType, ReconcileResult, SpecRef

        reconciler = MagicMock()
        reconciler.reconcile.return_value = ReconcileResult(requeue=True, condition=ConditionType.DEGRADED)
        sleeps = []

        run_loop(reconciler, SpecRef("nfd", "inst"), 30.0, max_passes=2, sleep=sleeps.append)

        assert sleeps == [30.0]

    def test_records_each_pass(self):
        """Every pass is reported to the health recorder."""
        from nfd_health.server import ControllerHealth
        from nfd_reconcile.cli import run_loop
        from nfd_reconcile.state import ConditionType, ReconcileResult, SpecRef

        health = ControllerHealth()
        reconciler = MagicMock()
        reconciler.reconcile.return_value = ReconcileResult(condition=ConditionType.AVAILABLE)

        run_loop(reconciler, SpecRef("nfd", "inst"), 1.0, record=health.record, max_passes=2, sleep=lambda _: None)

        assert health.get("nfd", "inst").passes == 2

    def test_run_once(self):
        """The run command does a single pass with --once."""
        from nfd_reconcile.state import ConditionType, ReconcileResult

        client = MagicMock()
        client.__enter__.return_value = client
        reconciler = MagicMock()
        reconciler.reconcile.return_value = ReconcileResult(condition=ConditionType.AVAILABLE)

        with patch("nfd_reconcile.cli._kube_reconciler", return_value=(client, reconciler)):
            code = _run_main(["run", "-n", "nfd", "-N", "inst", "--no-health", "--once"])

        assert code == 0
        reconciler.reconcile.assert_called_once()
