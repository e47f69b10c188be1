"""FastAPI preview service that compiles a posted manifest."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import uvicorn
import yaml
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .catalog import CatalogState, load_catalog
from .compiler import CompileFailure, compile_app
from .config import CompilerConfig, load_config
from .errors import BundleError
from .permissions import collect_provided
from .parser import load_manifest_text, parse_manifest

logger = logging.getLogger(__name__)


@dataclass
class WebState:
    catalog: CatalogState = field(default_factory=CatalogState)
    config: CompilerConfig = field(default_factory=CompilerConfig)


STATE = WebState()
app = FastAPI(title="Bundle Generator Preview")


class CompileRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    app_id: str
    manifest: str


def configure(catalog: Optional[CatalogState] = None, config: Optional[CompilerConfig] = None) -> None:
    STATE.catalog = catalog or CatalogState()
    STATE.config = config or CompilerConfig()


@app.get("/api/state")
async def get_state() -> dict:
    return {
        "config": STATE.config.model_dump(by_alias=True),
        "catalog": {
            "provided": sorted(STATE.catalog.provided),
            "claimedPorts": len(STATE.catalog.claimed_ports),
        },
    }


@app.post("/api/compile")
async def compile_manifest(payload: CompileRequest):
    # Every preview starts from the catalog, so previews never claim ports.
    registry = STATE.catalog.build_registry(STATE.config)
    try:
        raw = load_manifest_text(payload.manifest, payload.app_id)
        manifest = parse_manifest(payload.app_id, raw)
        provided = collect_provided(STATE.catalog.provided, [manifest])
        bundle = compile_app(payload.app_id, manifest, provided, registry, STATE.config)
    except yaml.YAMLError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except BundleError as exc:
        failure = CompileFailure.from_error(exc)
        logger.info("Preview compile failed: %s", failure.describe())
        return JSONResponse(
            status_code=422,
            content={"kind": failure.kind, "message": failure.message, "field": failure.field},
        )
    return bundle.to_dict()


def run(
    host: str = "127.0.0.1",
    port: int = 8001,
    catalog_path: Optional[Path] = None,
    config_path: Optional[Path] = None,
) -> None:
    """Launch the preview service using uvicorn."""
    configure(load_catalog(catalog_path), load_config(config_path))
    logger.info("Starting bundle preview service on %s:%s", host, port)
    uvicorn.run(app, host=host, port=port, reload=False)


if __name__ == "__main__":  # pragma: no cover
    run()
