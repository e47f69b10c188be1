"""Reverse-proxy and hidden-service synthesis for one app."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .constants import (
    DEFAULT_TOR_DATA_DIR,
    HTTP_VIRTUAL_PORT,
    build_container_host,
    build_hidden_service_name,
)
from .errors import InvariantViolation, MalformedManifestError, NoPrimaryRouteError, TorOnlyRouteError
from .models import AppManifest, CaddyEntry, Container
from .ports import PortAllocation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HiddenServicePolicy:
    tor: bool = True
    i2p: bool = True
    tor_data_dir: str = DEFAULT_TOR_DATA_DIR


@dataclass(frozen=True)
class HiddenService:
    name: str
    container: str
    host: str
    internal_port: int
    virtual_port: int
    http: bool


@dataclass
class NetworkEntries:
    caddy: List[CaddyEntry] = field(default_factory=list)
    tor_text: str = ""
    i2p_text: str = ""
    hidden_services: List[str] = field(default_factory=list)


def check_public_routes(manifest: AppManifest) -> None:
    """Tor-only apps must not request any public route."""
    if not manifest.metadata.tor_only:
        return
    if manifest.metadata.port is not None:
        raise TorOnlyRouteError(
            manifest.app_id, "Tor-only apps cannot request a public port", "metadata.port"
        )
    for container in manifest.containers:
        if container.external_port is not None:
            raise TorOnlyRouteError(
                manifest.app_id,
                "Tor-only apps cannot request a public port",
                f"services.{container.name}.externalPort",
            )


def select_primary(manifest: AppManifest) -> Optional[Container]:
    check_public_routes(manifest)

    marked = [container for container in manifest.containers if container.primary]
    if len(marked) > 1:
        raise MalformedManifestError(
            manifest.app_id,
            f"more than one container is marked primary: {', '.join(c.name for c in marked)}",
            f"services.{marked[1].name}.primary",
        )
    if marked:
        logger.debug("Primary container of %s is explicit: %s", manifest.app_id, marked[0].name)
        return marked[0]

    for container in manifest.containers:
        if container.http_capable:
            logger.debug("Primary container of %s inferred from HTTP port: %s", manifest.app_id, container.name)
            return container

    if manifest.metadata.tor_only and not manifest.metadata.path:
        logger.debug("Tor-only app %s has no primary route", manifest.app_id)
        return None
    raise NoPrimaryRouteError(manifest.app_id, "no container exposes an HTTP port to route to", "services")


def build_caddy_entries(manifest: AppManifest, allocation: PortAllocation) -> List[CaddyEntry]:
    entries: List[CaddyEntry] = []
    for container in manifest.containers:
        public_port = allocation.external.get(container.name)
        if public_port is None:
            continue
        entries.append(
            CaddyEntry(
                public_port=public_port,
                internal_port=container.port or 0,
                container_name=build_container_host(manifest.app_id, container.name),
                is_primary=container.name == allocation.primary,
            )
        )

    primaries = sum(1 for entry in entries if entry.is_primary)
    if entries and primaries != 1:
        raise InvariantViolation(
            manifest.app_id, f"expected exactly one primary route, found {primaries}"
        )
    if manifest.metadata.tor_only and entries:
        raise InvariantViolation(manifest.app_id, "Tor-only app produced public routes")
    return entries


def collect_hidden_services(manifest: AppManifest, primary: Optional[Container]) -> List[HiddenService]:
    services: List[HiddenService] = []
    for container in manifest.containers:
        is_primary = primary is not None and container.name == primary.name
        if container.port is None or not (is_primary or container.hidden_service):
            continue
        services.append(
            HiddenService(
                name=build_hidden_service_name(manifest.app_id, None if is_primary else container.name),
                container=container.name,
                host=build_container_host(manifest.app_id, container.name),
                internal_port=container.port,
                virtual_port=HTTP_VIRTUAL_PORT if container.http_capable else container.port,
                http=container.http_capable,
            )
        )
    return services


def render_tor_block(app_id: str, service: HiddenService, data_dir: str) -> str:
    return (
        f"# {app_id} {service.container} hidden service\n"
        f"HiddenServiceDir {data_dir.rstrip('/')}/{service.name}\n"
        f"HiddenServicePort {service.virtual_port} {service.host}:{service.internal_port}\n"
    )


def render_i2p_block(service: HiddenService) -> str:
    tunnel_type = "http" if service.http else "server"
    return (
        f"[{service.name}]\n"
        f"type = {tunnel_type}\n"
        f"host = {service.host}\n"
        f"port = {service.internal_port}\n"
        f"inport = {service.virtual_port}\n"
        f"keys = {service.name}.dat\n"
    )


def synthesize(
    manifest: AppManifest,
    primary: Optional[Container],
    allocation: PortAllocation,
    policy: HiddenServicePolicy,
) -> NetworkEntries:
    hidden = collect_hidden_services(manifest, primary)
    tor_text = ""
    i2p_text = ""
    if policy.tor:
        tor_text = "\n".join(render_tor_block(manifest.app_id, item, policy.tor_data_dir) for item in hidden)
    if policy.i2p:
        i2p_text = "\n".join(render_i2p_block(item) for item in hidden)

    names: List[str] = []
    if policy.tor or policy.i2p:
        names = [item.name for item in hidden]

    return NetworkEntries(
        caddy=build_caddy_entries(manifest, allocation),
        tor_text=tor_text,
        i2p_text=i2p_text,
        hidden_services=names,
    )
