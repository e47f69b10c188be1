"""Dependency resolution against the capabilities provided by the catalog."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AbstractSet, Iterable, List, Optional, Sequence, Set

from .models import AlternativeDependency, AppManifest, OneDependency, Permission

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    satisfied: bool
    missing: Optional[List[Permission]] = None


def is_satisfied(requirement: Permission, provided: AbstractSet[str]) -> bool:
    if isinstance(requirement, OneDependency):
        return requirement.capability in provided
    if isinstance(requirement, AlternativeDependency):
        return any(candidate in provided for candidate in requirement.alternatives)
    raise TypeError(f"unknown permission variant: {type(requirement).__name__}")


def resolve(requirements: Sequence[Permission], provided: AbstractSet[str]) -> Resolution:
    """Check every requirement; `missing` keeps declaration order and is None when empty."""
    missing = [item for item in requirements if not is_satisfied(item, provided)]
    if missing:
        return Resolution(satisfied=False, missing=missing)
    return Resolution(satisfied=True)


def manifest_provisions(manifest: AppManifest) -> Set[str]:
    provisions = {manifest.app_id}
    if manifest.metadata.implements:
        provisions.add(manifest.metadata.implements)
    for container in manifest.containers:
        provisions.update(container.provides)
    return provisions


def collect_provided(
    catalog_provided: Iterable[str],
    manifests: Iterable[AppManifest],
) -> Set[str]:
    provided = set(catalog_provided)
    for manifest in manifests:
        provided |= manifest_provisions(manifest)
    logger.debug("Provided capabilities: %s", sorted(provided))
    return provided
