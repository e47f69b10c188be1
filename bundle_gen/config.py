"""Compiler configuration loaded from an optional YAML file."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .constants import DEFAULT_RESTART_POLICY, DEFAULT_TOR_DATA_DIR, RESERVED_PORTS

logger = logging.getLogger(__name__)


class CompilerConfig(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tor_enabled: bool = True
    i2p_enabled: bool = Field(default=True, alias="i2pEnabled")
    tor_data_dir: str = DEFAULT_TOR_DATA_DIR
    reserved_ports: List[int] = Field(default_factory=lambda: list(RESERVED_PORTS))
    workers: int = Field(default=1, ge=1)
    default_restart: str = DEFAULT_RESTART_POLICY


def load_config(path: Optional[Path] = None) -> CompilerConfig:
    if path is None:
        return CompilerConfig()
    if not path.exists():
        logger.warning("Config file missing at %s; using defaults", path)
        return CompilerConfig()
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} did not produce a mapping")
    logger.debug("Loaded config from %s", path)
    return CompilerConfig.model_validate(data)
