"""Manifest loading and materialization into typed components."""

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from nfd_reconcile.components import COMPONENT_TYPES, Component
from nfd_reconcile.errors import ManifestParseError
from nfd_reconcile.state import NodeFeatureDiscovery

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManifestDocument:
    """Raw contents of one manifest file."""

    path: str
    content: bytes


class ManifestSource:
    """Where manifest templates come from."""

    def load(self, root: str) -> list[ManifestDocument]:
        raise NotImplementedError


class DirectoryManifestSource(ManifestSource):
    """Reads every regular file below a directory, in lexical path order."""

    def load(self, root: str) -> list[ManifestDocument]:
        base = Path(root)
        if not base.is_dir():
            raise ManifestParseError(str(base), "manifest directory not found")

        files = sorted(
            (p for p in base.rglob("*") if p.is_file()),
            key=lambda p: p.relative_to(base).as_posix(),
        )
        documents = []
        for path in files:
            try:
                documents.append(ManifestDocument(str(path), path.read_bytes()))
            except OSError as exc:
                raise ManifestParseError(str(path), f"unreadable: {exc}") from exc
        return documents


def parse_document(document: ManifestDocument) -> list[Component]:
    """Decode every YAML document in one manifest file."""
    try:
        parsed = list(yaml.safe_load_all(document.content))
    except yaml.YAMLError as exc:
        raise ManifestParseError(document.path, f"invalid YAML: {exc}") from exc

    components = []
    for data in parsed:
        if data is None:
            continue
        if not isinstance(data, dict):
            raise ManifestParseError(document.path, "document is not a mapping")

        kind = data.get("kind")
        if kind is None:
            raise ManifestParseError(document.path, "document has no kind")
        if not isinstance(kind, str) or not kind.strip():
            raise ManifestParseError(document.path, f"malformed kind: {kind!r}")

        component_cls = COMPONENT_TYPES.get(kind)
        if component_cls is None:
            logger.warning("Skipping unknown resource kind %s in %s", kind, document.path)
            continue
        components.append(component_cls.from_manifest(data, document.path))
    return components


def materialize(source: ManifestSource, root: str) -> list[Component]:
    """Load all templates under root as an ordered list of components."""
    components = []
    for document in source.load(root):
        components.extend(parse_document(document))
    logger.debug("Materialized %d components from %s", len(components), root)
    return components


def seed_components(
    components: list[Component], spec: NodeFeatureDiscovery
) -> list[Component]:
    """Customise every component for one NodeFeatureDiscovery object."""
    return [component.seed(spec) for component in components]
