#!/usr/bin/env python3
"""CLI for NodeFeatureDiscovery reconciliation."""

import argparse
import json
import logging
import sys
import threading
import time
from pathlib import Path
from typing import Callable

import yaml
from kubernetes.config import ConfigException
from rich import box
from rich.console import Console
from rich.table import Table

from nfd_reconcile.components import Component
from nfd_reconcile.config import get_config
from nfd_reconcile.errors import InvalidSpecError, ManifestParseError
from nfd_reconcile.manifests import DirectoryManifestSource, materialize, seed_components
from nfd_reconcile.reconciler import InMemorySpecificationStore, NodeFeatureDiscoveryReconciler
from nfd_reconcile.resources import InMemoryResourceStore, ResourceAccessor
from nfd_reconcile.state import NodeFeatureDiscovery, ReconcileResult, SpecRef

console = Console()
logger = logging.getLogger("nfd-reconcile")


def load_spec(path: str) -> NodeFeatureDiscovery:
    """Load a NodeFeatureDiscovery object from a YAML file."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise InvalidSpecError("", path, "does not contain a NodeFeatureDiscovery object")
    return NodeFeatureDiscovery.from_dict(data)


def print_components(components: list[Component], format_type: str = "text") -> None:
    """Print components in apply order."""
    if format_type == "json":
        print(json.dumps([c.manifest for c in components], indent=2))
        return

    table = Table(title="Components (apply order)", box=box.ROUNDED)
    table.add_column("#", style="dim")
    table.add_column("Kind", style="cyan")
    table.add_column("Namespace")
    table.add_column("Name", style="bold")
    table.add_column("Source", style="dim")

    for idx, component in enumerate(components):
        table.add_row(
            str(idx), component.kind, component.namespace or "-", component.name, component.source
        )
    console.print(table)


def print_result(ref: SpecRef, result: ReconcileResult, format_type: str = "text") -> None:
    """Print the outcome of a reconciliation pass."""
    if format_type == "json":
        print(json.dumps({"ref": str(ref), **result.to_dict()}, indent=2))
        return

    if result.applied:
        table = Table(title=f"Applied for {ref}", box=box.ROUNDED)
        table.add_column("Kind", style="cyan")
        table.add_column("Namespace")
        table.add_column("Name")
        table.add_column("Action")
        for item in result.applied:
            style = {"created": "green", "updated": "yellow"}.get(item["action"], "dim")
            table.add_row(
                item["kind"], item["namespace"] or "-", item["name"],
                f"[{style}]{item['action']}[/{style}]",
            )
        console.print(table)

    condition = result.condition.value if result.condition else "none"
    color = {"Available": "green", "Progressing": "yellow", "Degraded": "red"}.get(condition, "dim")
    console.print(f"{ref}: [{color}]● {condition}[/{color}]")
    if result.error:
        console.print(f"[red]Error: {result.error}[/red]")
    if result.requeue:
        after = f" after {result.requeue_after:.0f}s" if result.requeue_after else ""
        console.print(f"[dim]Requeue requested{after}[/dim]")


def cmd_render(args: argparse.Namespace) -> int:
    """Materialize manifests and print the component list."""
    try:
        components = materialize(DirectoryManifestSource(), args.assets)
        if args.spec:
            components = seed_components(components, load_spec(args.spec))
    except ManifestParseError as e:
        console.print(f"[red]Manifest error: {e}[/red]")
        return 1
    except InvalidSpecError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    print_components(components, args.format)
    return 0


def _kube_reconciler(assets_dir: str):
    from nfd_reconcile.kube import connect

    api_client, resources, specs = connect(get_config())
    reconciler = NodeFeatureDiscoveryReconciler(
        specs, ResourceAccessor(resources), assets_dir=assets_dir
    )
    return api_client, reconciler


def cmd_reconcile(args: argparse.Namespace) -> int:
    """Run one reconciliation pass."""
    if not Path(args.spec).exists():
        print(f"Error: spec file not found: {args.spec}", file=sys.stderr)
        return 1

    try:
        spec = load_spec(args.spec)
    except InvalidSpecError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    assets_dir = args.assets or get_config().assets_dir

    if args.apply:
        try:
            client, reconciler = _kube_reconciler(assets_dir)
        except ConfigException as e:
            console.print(f"[red]No Kubernetes configuration: {e}[/red]")
            return 1
        with client:
            result = reconciler.reconcile(spec.ref)
    else:
        reconciler = NodeFeatureDiscoveryReconciler(
            InMemorySpecificationStore([spec]),
            ResourceAccessor(InMemoryResourceStore()),
            assets_dir=assets_dir,
        )
        result = reconciler.reconcile(spec.ref)

    print_result(spec.ref, result, args.format)
    return 0 if result.condition is not None and result.condition.value == "Available" else 1


def run_loop(
    reconciler: NodeFeatureDiscoveryReconciler,
    ref: SpecRef,
    interval: float,
    record: Callable[[SpecRef, ReconcileResult], None] | None = None,
    max_passes: int | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ReconcileResult | None:
    """Reconcile on a timer, sooner when a pass asks for it."""
    result = None
    passes = 0
    while max_passes is None or passes < max_passes:
        result = reconciler.reconcile(ref)
        passes += 1
        if record is not None:
            record(ref, result)

        delay = interval
        if result.requeue and result.requeue_after is not None:
            delay = min(interval, result.requeue_after)
        if max_passes is None or passes < max_passes:
            sleep(delay)
    return result


def _serve_health(port: int) -> None:
    import uvicorn

    from nfd_health.server import app

    server = uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=port, log_level="warning"))
    thread = threading.Thread(target=server.run, name="nfd-health", daemon=True)
    thread.start()
    logger.info("Serving health endpoints on :%d", port)


def cmd_run(args: argparse.Namespace) -> int:
    """Reconcile one NodeFeatureDiscovery object continuously."""
    from nfd_health.server import health

    config = get_config()
    ref = SpecRef(args.namespace, args.name)
    if not args.no_health:
        _serve_health(args.health_port or config.health_port)

    try:
        client, reconciler = _kube_reconciler(args.assets or config.assets_dir)
    except ConfigException as e:
        console.print(f"[red]No Kubernetes configuration: {e}[/red]")
        return 1
    try:
        with client:
            run_loop(
                reconciler,
                ref,
                args.interval or config.resync_interval,
                record=health.record,
                max_passes=1 if args.once else None,
            )
    except KeyboardInterrupt:
        print("\nStopped.")
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="NodeFeatureDiscovery reconciliation controller",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  nfd-reconcile render -a manifests/                     # Show components in apply order
  nfd-reconcile render -a manifests/ -s nfd.yaml         # ... customised for a spec
  nfd-reconcile reconcile -s nfd.yaml -a manifests/      # One pass against an in-memory cluster
  nfd-reconcile reconcile -s nfd.yaml --apply            # One pass against the real cluster
  nfd-reconcile run -n nfd-operator -N nfd-instance      # Reconcile continuously
        """,
    )
    parser.add_argument(
        "--format",
        "-f",
        choices=["text", "json"],
        default="text",
        help="Output format",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: NFD_LOG_LEVEL or INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # render command
    render_parser = subparsers.add_parser("render", help="Show materialized components")
    render_parser.add_argument("-a", "--assets", required=True, help="Manifest directory")
    render_parser.add_argument("-s", "--spec", help="NodeFeatureDiscovery YAML to seed from")
    render_parser.set_defaults(func=cmd_render)

    # reconcile command
    reconcile_parser = subparsers.add_parser("reconcile", help="Run one reconciliation pass")
    reconcile_parser.add_argument(
        "-s", "--spec", required=True, help="NodeFeatureDiscovery YAML file"
    )
    reconcile_parser.add_argument("-a", "--assets", help="Manifest directory")
    reconcile_parser.add_argument(
        "--apply",
        action="store_true",
        help="Reconcile against the cluster (default is an in-memory dry run)",
    )
    reconcile_parser.set_defaults(func=cmd_reconcile)

    # run command
    run_parser = subparsers.add_parser("run", help="Reconcile continuously")
    run_parser.add_argument("-n", "--namespace", required=True, help="Spec namespace")
    run_parser.add_argument("-N", "--name", required=True, help="Spec name")
    run_parser.add_argument("-a", "--assets", help="Manifest directory")
    run_parser.add_argument("-i", "--interval", type=float, help="Resync interval in seconds")
    run_parser.add_argument("--health-port", type=int, help="Port for health endpoints")
    run_parser.add_argument("--no-health", action="store_true", help="Do not serve health endpoints")
    run_parser.add_argument("--once", action="store_true", help="Run a single pass and exit")
    run_parser.set_defaults(func=cmd_run)

    args = parser.parse_args()

    logging.basicConfig(
        level=(args.log_level or get_config().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
