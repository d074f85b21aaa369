# src/guidegate/apps/api/server.py
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from guidegate import __version__
from guidegate.config.settings import GuideGateSettings, load_settings
from guidegate.services.admission import (
    AdmissionRuntime,
    InvalidInputError,
    StoreUnavailableError,
    build_runtime,
)

_log = logging.getLogger("guidegate.api")


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(InvalidInputError)
    async def _invalid_input(request: Request, exc: InvalidInputError) -> JSONResponse:
        body: dict[str, object] = {"error": exc.code, "message": str(exc)}
        if exc.fields:
            body["fields"] = exc.fields
        return JSONResponse(status_code=400, content=body)

    @app.exception_handler(StoreUnavailableError)
    async def _store_unavailable(request: Request, exc: StoreUnavailableError) -> JSONResponse:
        _log.error("api: binding store unavailable", exc_info=exc, extra={"path": request.url.path})
        return JSONResponse(status_code=503, content={"error": "store_unavailable"})


def create_app(
    settings: GuideGateSettings | None = None,
    *,
    runtime: AdmissionRuntime | None = None,
) -> FastAPI:
    """Build the HTTP app; ``uvicorn --factory guidegate.apps.api.server:create_app``."""

    if runtime is None:
        runtime = build_runtime(settings or load_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _log.info(
            "api: started",
            extra={"strategy": runtime.codec.strategy_name, "db_path": runtime.settings.db_path},
        )
        try:
            yield
        finally:
            runtime.close()

    app = FastAPI(title="guidegate", lifespan=lifespan, version=__version__)
    app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-GuideGate-Token", "Authorization"],
        allow_credentials=False,
    )
    _install_error_handlers(app)

    from guidegate.apps.api import nfc

    app.include_router(nfc.router)

    @app.get("/api/ping")
    async def ping():
        return {"ok": True, "ts": time.time()}

    return app
