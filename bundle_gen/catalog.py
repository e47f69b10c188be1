"""Catalog-wide state supplied by the caller: capabilities and claimed ports."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import CompilerConfig
from .constants import SYSTEM_OWNER
from .ports import PortRegistry

logger = logging.getLogger(__name__)


class CatalogState(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    provided: List[str] = Field(default_factory=list)
    claimed_ports: Dict[int, str] = Field(default_factory=dict)

    def build_registry(self, config: CompilerConfig) -> PortRegistry:
        """Fresh registry seeded with reserved system ports and catalog claims."""
        registry = PortRegistry()
        for port in config.reserved_ports:
            registry.seed(port, SYSTEM_OWNER)
        for port, owner in sorted(self.claimed_ports.items()):
            registry.seed(port, owner)
        return registry


def load_catalog(path: Optional[Path] = None) -> CatalogState:
    if path is None:
        return CatalogState()
    if not path.exists():
        raise FileNotFoundError(f"Catalog file not found: {path}")

    logger.info("Loading catalog: %s", path)
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError("Catalog file did not produce a mapping")
    return CatalogState.model_validate(data)
