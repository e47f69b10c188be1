"""Shared constants and small helpers for bundle generation."""

from __future__ import annotations

from typing import List

# Port derivation is part of the compatibility contract: installed apps keep
# their public port across releases only while these values never change.
DERIVED_PORT_BASE = 10000
DERIVED_PORT_SPAN = 20000

HTTP_PROTOCOLS = {"http", "https"}
HTTP_VIRTUAL_PORT = 80

APP_SEED_PASSWORD = "$APP_SEED"
SYSTEM_OWNER = "system"

DEFAULT_TOR_DATA_DIR = "/var/lib/tor"
DEFAULT_RESTART_POLICY = "on-failure"

# Ports held by the platform itself (dashboard, proxy, node services, Tor/I2P).
RESERVED_PORTS: List[int] = [
    22,
    53,
    80,
    443,
    2100,
    4444,
    7656,
    8332,
    8333,
    9050,
    9051,
    9735,
    10009,
    28332,
    28333,
]


def build_container_host(app_id: str, container_name: str) -> str:
    """Return the network host name a container is reachable under.

    Example: 'nextcloud_web_1'
    """
    return f"{app_id}_{container_name}_1"


def build_hidden_service_name(app_id: str, container_name: str | None = None) -> str:
    if container_name is None:
        return f"app-{app_id}"
    return f"app-{app_id}-{container_name}"
