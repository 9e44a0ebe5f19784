from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from core.note_converter.core import ConversionService

from ..dependencies import get_service

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health check")
def health(service: ConversionService = Depends(get_service)) -> dict[str, Any]:
    return {
        "status": "ok",
        "converters": sorted(kind.value for kind in service.registry.kinds()),
    }


__all__ = ["router"]
