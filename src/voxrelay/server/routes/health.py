"""Health check endpoint."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

import voxrelay

router = APIRouter()


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Health check do relay (liveness + numero de sessoes ativas)."""
    response: dict[str, Any] = {
        "status": "ok",
        "version": voxrelay.__version__,
    }

    registry = getattr(request.app.state, "registry", None)
    if registry is not None:
        response["active_sessions"] = len(registry)

    return response
