"""Helpers for writing result bundles to disk."""
from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import yaml
from yaml.representer import SafeRepresenter

from .compiler import BatchResult
from .models import ResultBundle

logger = logging.getLogger(__name__)

RESULT_FILENAMES = {"yaml": "result.yml", "json": "result.json"}
TOR_FILENAME = "torrc-apps"
I2P_FILENAME = "i2p-tunnels.conf"


class _BundleYamlDumper(yaml.SafeDumper):
    def increase_indent(self, flow: bool = False, indentless: bool = False) -> None:  # type: ignore[override]
        # Indent sequences nested under mappings ("key:\n  - item").
        return super().increase_indent(flow, False)


def _represent_multiline_str(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    """Render Tor/I2P configuration text as literal block scalars."""
    if "\n" in data or "\r" in data:
        normalized = data.replace("\r\n", "\n").replace("\r", "\n")
        return dumper.represent_scalar("tag:yaml.org,2002:str", normalized, style="|")
    return SafeRepresenter.represent_str(dumper, data)


_BundleYamlDumper.add_representer(str, _represent_multiline_str)


def dump_yaml(data: Any) -> str:
    return yaml.dump(
        data,
        Dumper=_BundleYamlDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=4096,
    )


def dump_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def render_bundle(bundle: ResultBundle, fmt: str = "yaml") -> str:
    data = bundle.to_dict()
    if fmt == "json":
        return dump_json(data)
    return dump_yaml(data)


def write_bundle(bundle: ResultBundle, output_dir: Path, fmt: str = "yaml") -> Path:
    app_dir = output_dir / bundle.metadata.id
    app_dir.mkdir(parents=True, exist_ok=True)
    path = app_dir / RESULT_FILENAMES[fmt]
    with path.open("w", encoding="utf-8") as handle:
        handle.write(render_bundle(bundle, fmt))
    logger.info("Result bundle written to %s", path)
    return path


def write_batch(result: BatchResult, output_dir: Path, fmt: str = "yaml") -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    for app_id in result.order:
        bundle = result.bundles.get(app_id)
        if bundle is not None:
            write_bundle(bundle, output_dir, fmt)
    (output_dir / TOR_FILENAME).write_text(result.tor_entries(), encoding="utf-8")
    (output_dir / I2P_FILENAME).write_text(result.i2p_entries(), encoding="utf-8")
    logger.info("Hidden service configuration written to %s", output_dir)


def write_stdout_text(text: str) -> None:
    """Write text to stdout without crashing on UnicodeEncodeError."""
    if not text.endswith("\n"):
        text = f"{text}\n"
    try:
        sys.stdout.write(text)
    except UnicodeEncodeError:
        encoding = getattr(sys.stdout, "encoding", None) or "utf-8"
        sys.stdout.buffer.write(text.encode(encoding, errors="backslashreplace"))
