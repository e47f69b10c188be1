"""Merge resolver, allocator and synthesizer output into the final bundle."""
from __future__ import annotations

import copy
import logging
from typing import Any, Dict, Optional

from .constants import build_container_host
from .models import AppManifest, OutputMetadata, ResultBundle
from .network import NetworkEntries
from .permissions import Resolution
from .ports import PortAllocation

logger = logging.getLogger(__name__)


def _sorted_mapping(value: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
    if value is None:
        return None
    return dict(sorted(value.items()))


def build_metadata(
    manifest: AppManifest,
    resolution: Resolution,
    allocation: PortAllocation,
    network: NetworkEntries,
) -> OutputMetadata:
    meta = manifest.metadata
    return OutputMetadata(
        id=meta.id,
        name=meta.name,
        version=meta.version,
        category=meta.category,
        tagline=meta.tagline,
        developers=_sorted_mapping(meta.developers),
        description=meta.description,
        permissions=list(meta.permissions),
        repo=_sorted_mapping(meta.repo),
        support=meta.support,
        gallery=meta.gallery,
        path=meta.path,
        default_username=meta.default_username,
        default_password=meta.default_password,
        tor_only=meta.tor_only,
        update_containers=meta.update_containers,
        implements=meta.implements,
        version_control=meta.version_control,
        compatible=resolution.satisfied,
        missing_dependencies=resolution.missing,
        port=allocation.port,
        internal_port=allocation.internal_port,
        release_notes=_sorted_mapping(meta.release_notes),
        supports_https=meta.supports_https,
        hidden_services=list(network.hidden_services),
    )


def build_compose_spec(manifest: AppManifest, default_restart: str) -> Dict[str, Any]:
    services: Dict[str, Dict[str, Any]] = {}
    for container in manifest.containers:
        service: Dict[str, Any] = {"image": container.image}
        service.update(copy.deepcopy(container.passthrough()))
        service["container_name"] = build_container_host(manifest.app_id, container.name)
        if not str(service.get("restart") or "").strip():
            service["restart"] = default_restart
        if container.port is not None:
            service["expose"] = [container.port]
        services[container.name] = service
    return {"services": services}


def assemble_bundle(
    manifest: AppManifest,
    resolution: Resolution,
    allocation: PortAllocation,
    network: NetworkEntries,
    default_restart: str,
) -> ResultBundle:
    bundle = ResultBundle(
        new_tor_entries=network.tor_text,
        new_i2p_entries=network.i2p_text,
        caddy_entries=list(network.caddy),
        spec=build_compose_spec(manifest, default_restart),
        metadata=build_metadata(manifest, resolution, allocation, network),
    )
    logger.debug("Assembled bundle for %s", manifest.app_id)
    return bundle


def with_resolution(bundle: ResultBundle, resolution: Resolution) -> ResultBundle:
    """Copy of `bundle` whose compatibility reflects `resolution`."""
    metadata = bundle.metadata.model_copy(
        update={"compatible": resolution.satisfied, "missing_dependencies": resolution.missing}
    )
    return bundle.model_copy(update={"metadata": metadata})
