# backend/scanbox/router/health.py
from __future__ import annotations
import os
from fastapi import APIRouter, Request

from scanbox.models.schemas import HealthResponse

router = APIRouter(tags=["health"])

@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Service is running and the upload root is writable."""
    root = request.app.state.container.root
    writable = root.is_dir() and os.access(root, os.W_OK | os.X_OK)
    return HealthResponse(status="ok" if writable else "degraded", root_dir=str(root), writable=writable)
