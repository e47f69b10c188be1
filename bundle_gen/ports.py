"""External port allocation shared by every app of a compile batch."""
from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .constants import DERIVED_PORT_BASE, DERIVED_PORT_SPAN
from .errors import PortConflictError
from .models import AppManifest, Container

logger = logging.getLogger(__name__)


def derive_port(app_id: str) -> int:
    """Stable public port for an app that does not request one explicitly.

    Fixed forever: changing it would move every installed app on recompile.
    """
    digest = hashlib.sha256(app_id.encode("utf-8")).digest()
    return DERIVED_PORT_BASE + int.from_bytes(digest[:4], "big") % DERIVED_PORT_SPAN


class PortRegistry:
    """Claimed public ports of one compile batch, mapped to their owner."""

    def __init__(self) -> None:
        self._owners: Dict[int, str] = {}
        self._lock = threading.Lock()

    def seed(self, port: int, owner: str) -> None:
        self._owners.setdefault(port, owner)

    def owner(self, port: int) -> Optional[str]:
        return self._owners.get(port)

    def claimed(self) -> Dict[int, str]:
        with self._lock:
            return dict(sorted(self._owners.items()))

    def claim_many(self, app_id: str, ports: Sequence[Tuple[int, Optional[str]]]) -> None:
        """Claim all `(port, field)` pairs for `app_id`, or none of them.

        A port already owned by `app_id` itself is not a conflict.
        """
        with self._lock:
            for port, field_name in ports:
                owner = self._owners.get(port)
                if owner is not None and owner != app_id:
                    raise PortConflictError(app_id, port, owner, field_name)
            for port, _ in ports:
                self._owners[port] = app_id


def external_port_for(app_id: str, requested: Optional[int]) -> int:
    if requested is not None:
        return requested
    port = derive_port(app_id)
    logger.debug("Derived port %s for %s", port, app_id)
    return port


def allocate(
    internal: int,
    external: Optional[int],
    registry: PortRegistry,
    app_id: str,
) -> Tuple[int, int]:
    """Single-port form of `allocate_app_ports`: pick the public port and claim it."""
    external = external_port_for(app_id, external)
    registry.claim_many(app_id, [(external, None)])
    return internal, external


@dataclass
class PortAllocation:
    primary: Optional[str] = None
    port: int = 0
    internal_port: int = 0
    external: Dict[str, int] = field(default_factory=dict)


def _requested_ports(
    manifest: AppManifest,
    primary: Optional[Container],
) -> List[Tuple[Container, int, str]]:
    requested: List[Tuple[Container, int, str]] = []
    for container in manifest.containers:
        field_name = f"services.{container.name}.externalPort"
        if primary is not None and container.name == primary.name:
            if container.external_port is None:
                field_name = "metadata.port"
            wanted = container.external_port if container.external_port is not None else manifest.metadata.port
            requested.append((container, external_port_for(manifest.app_id, wanted), field_name))
        elif container.external_port is not None:
            requested.append((container, container.external_port, field_name))
    return requested


def allocate_app_ports(
    manifest: AppManifest,
    primary: Optional[Container],
    registry: PortRegistry,
) -> PortAllocation:
    """Assign public ports to the app's routed containers and claim them atomically."""
    app_id = manifest.app_id
    allocation = PortAllocation()
    if primary is not None:
        allocation.primary = primary.name
        allocation.internal_port = primary.port or 0

    if manifest.metadata.tor_only:
        return allocation

    requested = _requested_ports(manifest, primary)
    seen: Dict[int, str] = {}
    for container, port, field_name in requested:
        if port in seen:
            raise PortConflictError(app_id, port, f"{app_id}/{seen[port]}", field_name)
        seen[port] = container.name

    registry.claim_many(app_id, [(port, field_name) for _, port, field_name in requested])
    for container, port, _ in requested:
        allocation.external[container.name] = port
    if primary is not None:
        allocation.port = allocation.external[primary.name]
    logger.debug("Allocated ports for %s: %s", app_id, allocation.external)
    return allocation
