"""Batch compilation of app manifests into result bundles."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import AbstractSet, Callable, Dict, Iterable, List, Mapping, Optional, TypeVar, Union

from .assembler import assemble_bundle, with_resolution
from .catalog import CatalogState
from .config import CompilerConfig
from .errors import BundleError
from .models import AppManifest, Container, ResultBundle
from .network import HiddenServicePolicy, select_primary, synthesize
from .parser import parse_manifest
from .permissions import Resolution, collect_provided, resolve
from .ports import PortAllocation, PortRegistry, allocate_app_ports

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

# A raw mapping, an already parsed manifest, or the error that prevented loading it.
RawManifest = Union[Dict, AppManifest, BundleError]


@dataclass(frozen=True)
class CompileFailure:
    app_id: str
    kind: str
    message: str
    field: Optional[str] = None

    @classmethod
    def from_error(cls, exc: BundleError) -> "CompileFailure":
        return cls(app_id=exc.app_id, kind=exc.kind, message=exc.message, field=exc.field)

    def describe(self) -> str:
        location = f" ({self.field})" if self.field else ""
        return f"{self.app_id}: [{self.kind}] {self.message}{location}"


@dataclass
class BatchResult:
    order: List[str] = field(default_factory=list)
    bundles: Dict[str, ResultBundle] = field(default_factory=dict)
    failures: Dict[str, CompileFailure] = field(default_factory=dict)
    claimed_ports: Dict[int, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    def incompatible(self) -> List[str]:
        return [
            app_id
            for app_id in self.order
            if app_id in self.bundles and not self.bundles[app_id].metadata.compatible
        ]

    def tor_entries(self) -> str:
        return _join_blocks(self.bundles[app_id].new_tor_entries for app_id in self.order if app_id in self.bundles)

    def i2p_entries(self) -> str:
        return _join_blocks(self.bundles[app_id].new_i2p_entries for app_id in self.order if app_id in self.bundles)

    def summary(self) -> str:
        lines = [f"Compiled {len(self.bundles)} of {len(self.order)} app(s)"]
        incompatible = self.incompatible()
        if incompatible:
            lines.append(f"~ Incompatible: {', '.join(incompatible)}")
            for app_id in incompatible:
                missing = self.bundles[app_id].metadata.missing_dependencies or []
                rendered = ", ".join(_describe_permission(item) for item in missing)
                lines.append(f"  ~ {app_id}: missing {rendered}")
        if self.failures:
            lines.append(f"✗ Failed: {len(self.failures)}")
            for app_id in self.order:
                if app_id in self.failures:
                    lines.append(f"  ✗ {self.failures[app_id].describe()}")
        return "\n".join(lines)


def _describe_permission(permission) -> str:
    dumped = permission.model_dump()
    if isinstance(dumped, list):
        return " | ".join(dumped)
    return str(dumped)


def _join_blocks(texts) -> str:
    return "\n".join(text for text in texts if text)


@dataclass
class _AppState:
    manifest: AppManifest
    resolution: Optional[Resolution] = None
    primary: Optional[Container] = None
    allocation: Optional[PortAllocation] = None


def hidden_service_policy(config: CompilerConfig) -> HiddenServicePolicy:
    return HiddenServicePolicy(
        tor=config.tor_enabled,
        i2p=config.i2p_enabled,
        tor_data_dir=config.tor_data_dir,
    )


def _parse(app_id: str, raw: RawManifest) -> AppManifest:
    if isinstance(raw, AppManifest):
        return raw
    if isinstance(raw, BundleError):
        raise raw
    return parse_manifest(app_id, raw)


def _plan(state: _AppState, provided: AbstractSet[str]) -> _AppState:
    manifest = state.manifest
    state.resolution = resolve(manifest.metadata.permissions, provided)
    state.primary = select_primary(manifest)
    return state


def _finish(state: _AppState, config: CompilerConfig) -> ResultBundle:
    network = synthesize(state.manifest, state.primary, state.allocation, hidden_service_policy(config))
    return assemble_bundle(
        state.manifest,
        state.resolution,
        state.allocation,
        network,
        config.default_restart,
    )


def compile_app(
    app_id: str,
    raw: RawManifest,
    provided: AbstractSet[str],
    registry: PortRegistry,
    config: Optional[CompilerConfig] = None,
) -> ResultBundle:
    """Compile one manifest; raises a `BundleError` on any fatal problem."""
    config = config or CompilerConfig()
    state = _plan(_AppState(manifest=_parse(app_id, raw)), provided)
    state.allocation = allocate_app_ports(state.manifest, state.primary, registry)
    return _finish(state, config)


def settle_compatibility(
    result: BatchResult,
    manifests: Mapping[str, AppManifest],
    catalog_provided: Iterable[str],
) -> None:
    """Re-resolve bundles against the capabilities of apps that actually compiled.

    Incompatible apps still produce bundles, so one pass is enough.
    """
    installable = collect_provided(catalog_provided, [manifests[app_id] for app_id in result.bundles])
    for app_id, bundle in list(result.bundles.items()):
        resolution = resolve(manifests[app_id].metadata.permissions, installable)
        if resolution.missing != bundle.metadata.missing_dependencies:
            logger.info("Compatibility of %s changed after failed siblings were dropped", app_id)
            result.bundles[app_id] = with_resolution(bundle, resolution)


def _map_apps(
    func: Callable[[T], R],
    items: List[T],
    workers: int,
) -> List[Union[R, BundleError]]:
    def guarded(item: T) -> Union[R, BundleError]:
        try:
            return func(item)
        except BundleError as exc:
            return exc

    if workers <= 1 or len(items) <= 1:
        return [guarded(item) for item in items]
    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(guarded, items))


def compile_batch(
    manifests: Mapping[str, RawManifest],
    catalog: Optional[CatalogState] = None,
    config: Optional[CompilerConfig] = None,
    registry: Optional[PortRegistry] = None,
) -> BatchResult:
    """Compile every manifest; per-app failures are recorded, never raised.

    Parsing, resolution and synthesis run on `config.workers` threads. Port
    allocation runs alone, in batch order, against a single registry.
    """
    config = config or CompilerConfig()
    catalog = catalog or CatalogState()
    registry = registry if registry is not None else catalog.build_registry(config)
    result = BatchResult(order=list(manifests))

    def record(app_id: str, exc: BundleError) -> None:
        logger.warning("App %s failed: %s", app_id, exc)
        result.failures[app_id] = CompileFailure.from_error(exc)

    parsed = _map_apps(lambda app_id: _parse(app_id, manifests[app_id]), result.order, config.workers)
    states: List[_AppState] = []
    for app_id, outcome in zip(result.order, parsed):
        if isinstance(outcome, BundleError):
            record(app_id, outcome)
        else:
            states.append(_AppState(manifest=outcome))

    provided = collect_provided(catalog.provided, [state.manifest for state in states])

    planned: List[_AppState] = []
    for state, outcome in zip(states, _map_apps(lambda item: _plan(item, provided), states, config.workers)):
        if isinstance(outcome, BundleError):
            record(state.manifest.app_id, outcome)
        else:
            planned.append(outcome)

    allocated: List[_AppState] = []
    for state in planned:
        try:
            state.allocation = allocate_app_ports(state.manifest, state.primary, registry)
        except BundleError as exc:
            record(state.manifest.app_id, exc)
            continue
        allocated.append(state)

    for state, outcome in zip(allocated, _map_apps(lambda item: _finish(item, config), allocated, config.workers)):
        if isinstance(outcome, BundleError):
            record(state.manifest.app_id, outcome)
        else:
            result.bundles[state.manifest.app_id] = outcome

    settle_compatibility(result, {state.manifest.app_id: state.manifest for state in allocated}, catalog.provided)
    for app_id in result.incompatible():
        missing = result.bundles[app_id].metadata.missing_dependencies or []
        logger.warning("App %s is incompatible: %d missing dependencies", app_id, len(missing))

    result.claimed_ports = registry.claimed()
    logger.info("Compiled %d of %d app(s)", len(result.bundles), len(result.order))
    return result
