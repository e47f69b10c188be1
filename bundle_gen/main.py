"""High level orchestration helpers consumed by the CLI."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from .catalog import CatalogState, load_catalog
from .compiler import BatchResult, RawManifest, compile_batch
from .config import CompilerConfig, load_config
from .errors import MalformedManifestError
from .parser import find_manifest, load_manifest_file
from .yaml_out import render_bundle, write_batch, write_stdout_text

logger = logging.getLogger(__name__)


def discover_manifests(apps_dir: Path, only: Optional[List[str]] = None) -> Dict[str, RawManifest]:
    """Load `<apps_dir>/<app_id>/app.yml` for every app, sorted by app id.

    A manifest that cannot be loaded is kept as its error so the batch
    reports it alongside the other apps.
    """
    if not apps_dir.is_dir():
        raise FileNotFoundError(f"Apps directory not found: {apps_dir}")

    manifests: Dict[str, RawManifest] = {}
    for app_dir in sorted(path for path in apps_dir.iterdir() if path.is_dir()):
        if only and app_dir.name not in only:
            continue
        manifest_path = find_manifest(app_dir)
        if manifest_path is None:
            logger.debug("Skipping %s: no manifest", app_dir)
            continue
        try:
            manifests[app_dir.name] = load_manifest_file(manifest_path, app_dir.name)
        except MalformedManifestError as exc:
            logger.warning("Could not load %s: %s", manifest_path, exc)
            manifests[app_dir.name] = exc

    if only:
        unknown = sorted(set(only) - set(manifests))
        if unknown:
            raise FileNotFoundError(f"No manifest found for app(s): {', '.join(unknown)}")
    logger.info("Found %d manifest(s) in %s", len(manifests), apps_dir)
    return manifests


def prepare_inputs(
    catalog_path: Optional[Path],
    config_path: Optional[Path],
    workers: Optional[int] = None,
) -> tuple[CatalogState, CompilerConfig]:
    catalog = load_catalog(catalog_path)
    config = load_config(config_path)
    if workers is not None:
        config = config.model_copy(update={"workers": workers})
    return catalog, config


def run_batch(
    apps_dir: Path,
    catalog: CatalogState,
    config: CompilerConfig,
    only: Optional[List[str]] = None,
) -> BatchResult:
    manifests = discover_manifests(apps_dir, only)
    return compile_batch(manifests, catalog=catalog, config=config)


def emit_results(result: BatchResult, output_dir: Path, fmt: str, dry_run: bool) -> None:
    if dry_run:
        logger.info("Dry run enabled; bundles not written to disk.")
        for app_id in result.order:
            bundle = result.bundles.get(app_id)
            if bundle is not None:
                write_stdout_text(f"# {app_id}\n{render_bundle(bundle, fmt)}")
        return
    write_batch(result, output_dir, fmt)
