"""FastAPI dependency providers for application services."""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request

from core.note_converter.batch import BatchCoordinator
from core.note_converter.config import AppConfig
from core.note_converter.core import ConversionService
from core.note_converter.errors import AuthenticationError
from core.note_converter.jobs import JobManager


def get_config(request: Request) -> AppConfig:
    config = getattr(request.app.state, "config", None)
    if config is None:
        raise HTTPException(status_code=503, detail="CONFIG_UNAVAILABLE")
    return config


def get_service(request: Request) -> ConversionService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="SERVICE_UNAVAILABLE")
    return service


def get_coordinator(request: Request) -> BatchCoordinator:
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(status_code=503, detail="COORDINATOR_UNAVAILABLE")
    return coordinator


def get_job_manager(request: Request) -> JobManager:
    manager = getattr(request.app.state, "job_manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="MANAGER_UNAVAILABLE")
    return manager


def optional_api_key(
    x_api_key: str | None = Header(None),
    authorization: str | None = Header(None),
) -> str | None:
    if x_api_key and x_api_key.strip():
        return x_api_key.strip()
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
    return None


def require_api_key(api_key: str | None = Depends(optional_api_key)) -> str:
    if not api_key:
        raise AuthenticationError(
            "API key required: send an x-api-key header or Authorization: Bearer <key>"
        )
    return api_key


__all__ = [
    "get_config",
    "get_coordinator",
    "get_job_manager",
    "get_service",
    "optional_api_key",
    "require_api_key",
]
