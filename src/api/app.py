from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from core.note_converter import __version__
from core.note_converter.batch import BatchCoordinator, build_coordinator
from core.note_converter.config import AppConfig, apply_settings, load_config
from core.note_converter.errors import NoteConverterError
from core.note_converter.jobs import JobManager
from core.note_converter.logging import configure_logging
from core.settings import Settings, get_settings

from .routers import conversion, health, jobs

logger = logging.getLogger("note_converter.api")


def create_app(
    settings: Settings | None = None,
    *,
    config: AppConfig | None = None,
    coordinator: BatchCoordinator | None = None,
    require_enabled: bool = False,
    start_retention: bool = True,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    config = config or _prepare_config(settings)
    if require_enabled and not config.runtime.enable_local_api:
        raise RuntimeError("Local API is disabled. Enable it via configuration or environment.")

    app = FastAPI(title="Markdown Note Converter", version=__version__)
    coordinator = coordinator or build_coordinator(config)
    app.state.config = config
    app.state.coordinator = coordinator
    app.state.service = coordinator.service
    app.state.job_manager = JobManager(config, coordinator, start_retention=start_retention)

    app.add_exception_handler(NoteConverterError, _handle_converter_error)

    prefix = config.api.prefix.rstrip("/")
    app.include_router(health.router, prefix=prefix)
    app.include_router(conversion.router, prefix=prefix)
    app.include_router(jobs.router, prefix=prefix)

    @app.on_event("shutdown")
    async def _shutdown() -> None:  # pragma: no cover - FastAPI lifecycle
        manager: JobManager = app.state.job_manager
        manager.shutdown()

    return app


def _prepare_config(settings: Settings) -> AppConfig:
    return apply_settings(load_config(settings.config_path), settings)


async def _handle_converter_error(request: Request, exc: NoteConverterError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "status": "fail" if exc.status_code < 500 else "error",
            "error": {"code": exc.code, "message": str(exc)},
        },
    )


__all__ = ["create_app"]
