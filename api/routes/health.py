"""Health check endpoints."""

import sqlite3
from datetime import datetime
from typing import Dict

from fastapi import APIRouter
from pydantic import BaseModel

from core import __version__
from core.config import get_settings
from storage.db import connect


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str
    services: Dict[str, str]


def _storage_status() -> str:
    try:
        conn = connect(get_settings().db_path, timeout=1.0)
        try:
            conn.execute("SELECT 1 FROM delivery_notes LIMIT 1")
        finally:
            conn.close()
        return "up"
    except sqlite3.Error:
        return "down"


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    storage = _storage_status()
    return HealthResponse(
        status="healthy" if storage == "up" else "degraded",
        timestamp=datetime.utcnow().isoformat(),
        version=__version__,
        services={
            "api": "up",
            "storage": storage,
        }
    )


@router.get("/live")
async def liveness_check() -> Dict[str, str]:
    """Liveness probe."""
    return {"status": "alive"}
