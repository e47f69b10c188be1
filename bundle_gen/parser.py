"""Parsing utilities to turn app manifests into validated models."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import IO, Any, Dict, List, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from .errors import MalformedManifestError
from .models import AppManifest

logger = logging.getLogger(__name__)

MANIFEST_FILENAMES = ("app.yml", "app.yaml")
MERGE_TAG = "tag:yaml.org,2002:merge"


def find_duplicate_key(node: yaml.Node, path: Tuple[str, ...] = ()) -> Optional[Tuple[str, str]]:
    """Return `(mapping path, key)` of the first repeated mapping key under `node`."""
    if isinstance(node, yaml.MappingNode):
        seen = set()
        for key_node, value_node in node.value:
            if key_node.tag == MERGE_TAG:
                continue
            key = str(key_node.value) if isinstance(key_node, yaml.ScalarNode) else None
            if key is not None:
                if key in seen:
                    return ".".join(path), key
                seen.add(key)
            found = find_duplicate_key(value_node, path + (key or "?",))
            if found:
                return found
    elif isinstance(node, yaml.SequenceNode):
        for index, item in enumerate(node.value):
            found = find_duplicate_key(item, path + (str(index),))
            if found:
                return found
    return None


def load_manifest_text(stream: Union[str, IO[str]], app_id: str) -> Dict:
    """Safe-load one manifest document; repeated mapping keys are malformed."""
    loader = yaml.SafeLoader(stream)
    try:
        node = loader.get_single_node()
        if node is None:
            return {}
        duplicate = find_duplicate_key(node)
        if duplicate is not None:
            field, key = duplicate
            raise MalformedManifestError(app_id, f"duplicate key {key!r}", field or None)
        data = loader.construct_document(node)
    finally:
        loader.dispose()
    if not isinstance(data, dict):
        raise MalformedManifestError(app_id, "manifest must be a mapping")
    return data


def load_manifest_file(path: Path, app_id: Optional[str] = None) -> Dict:
    """Load an app manifest YAML file; the app id defaults to its directory name."""
    if not path.exists():
        raise FileNotFoundError(f"Manifest file not found: {path}")

    logger.debug("Loading manifest file: %s", path)
    with path.open("r", encoding="utf-8") as handle:
        return load_manifest_text(handle, app_id or path.parent.name)


def find_manifest(app_dir: Path) -> Path | None:
    for filename in MANIFEST_FILENAMES:
        candidate = app_dir / filename
        if candidate.is_file():
            return candidate
    return None


def _error_field(loc: Tuple[Any, ...], service_names: List[str]) -> str:
    parts: List[str] = []
    items = list(loc)
    if len(items) >= 2 and items[0] == "containers" and isinstance(items[1], int):
        index = items[1]
        name = service_names[index] if index < len(service_names) else str(index)
        parts.extend(["services", name])
        items = items[2:]
    parts.extend(str(item) for item in items)
    return ".".join(parts)


def _to_malformed(app_id: str, exc: ValidationError, service_names: List[str]) -> MalformedManifestError:
    first = exc.errors()[0]
    field = _error_field(tuple(first.get("loc", ())), service_names)
    return MalformedManifestError(app_id, first.get("msg", "invalid value"), field)


def parse_manifest(app_id: str, raw: Dict) -> AppManifest:
    """Validate a raw manifest mapping for `app_id`.

    The app id comes from the caller (usually the app's directory name); an
    explicit `metadata.id` must agree with it.
    """
    if not isinstance(raw, dict):
        raise MalformedManifestError(app_id, "manifest must be a mapping")

    metadata = raw.get("metadata")
    if not isinstance(metadata, dict):
        raise MalformedManifestError(app_id, "manifest must include a 'metadata' mapping", "metadata")
    declared_id = metadata.get("id")
    if declared_id is not None and str(declared_id) != app_id:
        raise MalformedManifestError(
            app_id, f"declared id {declared_id!r} does not match {app_id!r}", "metadata.id"
        )

    services = raw.get("services")
    if not isinstance(services, dict) or not services:
        raise MalformedManifestError(app_id, "manifest must define at least one service", "services")

    containers: List[Dict] = []
    for name, svc in services.items():
        if not isinstance(svc, dict):
            raise MalformedManifestError(app_id, "service definition must be a mapping", f"services.{name}")
        _check_host_publishing(app_id, str(name), svc)
        containers.append({**svc, "name": str(name)})
    service_names = [item["name"] for item in containers]

    try:
        manifest = AppManifest.model_validate(
            {"metadata": {**metadata, "id": app_id}, "containers": containers}
        )
    except ValidationError as exc:
        raise _to_malformed(app_id, exc, service_names) from exc

    _check_container_ports(manifest)
    _check_update_containers(manifest)
    return manifest


def _check_container_ports(manifest: AppManifest) -> None:
    for container in manifest.containers:
        if container.port is not None:
            continue
        if container.external_port is not None:
            raise MalformedManifestError(
                manifest.app_id,
                "an external port requires an internal 'port'",
                f"services.{container.name}.externalPort",
            )
        if container.primary:
            raise MalformedManifestError(
                manifest.app_id,
                "a primary container requires an internal 'port'",
                f"services.{container.name}.primary",
            )


def _check_update_containers(manifest: AppManifest) -> None:
    for name in manifest.metadata.update_containers or []:
        if manifest.container(name) is None:
            raise MalformedManifestError(
                manifest.app_id,
                f"unknown container {name!r}",
                "metadata.updateContainers",
            )


def _check_host_publishing(app_id: str, name: str, svc: Dict) -> None:
    """Public ports come only from `externalPort` and `metadata.port`."""
    if "ports" in svc:
        raise MalformedManifestError(
            app_id,
            "compose 'ports' cannot publish host ports; use 'externalPort'",
            f"services.{name}.ports",
        )
    if str(svc.get("network_mode") or "").strip() == "host":
        raise MalformedManifestError(
            app_id,
            "host networking bypasses port allocation",
            f"services.{name}.network_mode",
        )
