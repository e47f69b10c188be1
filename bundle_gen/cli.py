"""Command line interface for result bundle generation."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List

from .main import emit_results, prepare_inputs, run_batch
from .yaml_out import write_stdout_text


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bundle-gen",
        description="Compile app manifests into deployment bundles.",
    )
    parser.add_argument(
        "apps_dir",
        type=Path,
        nargs="?",
        help="Directory holding one <app_id>/app.yml per app",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("build"),
        help="Output directory for result bundles.",
    )
    parser.add_argument(
        "--catalog",
        type=Path,
        help="Catalog YAML with provided capabilities and already claimed ports.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Compiler configuration YAML.",
    )
    parser.add_argument(
        "--app",
        action="append",
        dest="apps",
        metavar="APP_ID",
        help="Only compile this app (repeatable).",
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Worker threads for resolution and synthesis.",
    )
    parser.add_argument(
        "--format",
        choices=["yaml", "json"],
        default="yaml",
        help="Result bundle format.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print bundles without writing to disk.",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Start the preview web service instead of compiling.",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Preview service host.")
    parser.add_argument("--port", type=int, default=8001, help="Preview service port.")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if args.workers is not None and args.workers < 1:
        parser.error("--workers must be at least 1")

    if args.serve:
        from .webui import run

        run(host=args.host, port=args.port, catalog_path=args.catalog, config_path=args.config)
        return 0

    if args.apps_dir is None:
        parser.error("apps_dir is required unless --serve is given")

    try:
        catalog, config = prepare_inputs(args.catalog, args.config, args.workers)
        result = run_batch(args.apps_dir, catalog, config, only=args.apps)
        emit_results(result, args.output, args.format, args.dry_run)
    except (OSError, ValueError) as exc:
        logging.error("bundle-gen failed: %s", exc)
        return 1

    write_stdout_text(result.summary())
    return 0 if result.ok else 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
