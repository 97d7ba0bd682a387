"""
Health check endpoint.

Returns status + realtime connectivity so callers can distinguish between
"API down" and "API up but push channel unavailable" (the dashboard then
keeps working on polling alone).
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from regionwatch.core.config import settings
from regionwatch.core.dashboard import Dashboard, get_dashboard

logger = logging.getLogger(__name__)
router = APIRouter()


class HealthResponse(BaseModel):
    status: str  # Always "ok" if the API process is alive
    version: str
    realtime: str  # "connected" | "disconnected"
    environment: str


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check(dashboard: Dashboard = Depends(get_dashboard)) -> HealthResponse:
    """The API is healthy (HTTP 200) even when the realtime channel is down."""
    return HealthResponse(
        status="ok",
        version="0.1.0",
        realtime="connected" if dashboard.channel.is_connected() else "disconnected",
        environment=settings.environment,
    )
