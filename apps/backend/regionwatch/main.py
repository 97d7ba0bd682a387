"""
RegionWatch API — Application entry point.

Bootstraps FastAPI, wires up middleware, registers route groups,
and manages the dashboard (realtime channel + consumers) lifecycle.

Extension points:
  - Add new route groups with app.include_router() below
  - Add new push consumers in core/dashboard.py (Dashboard.wire)
  - Change startup behaviour in the lifespan context manager
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from regionwatch.core.config import settings
from regionwatch.core.dashboard import create_dashboard
from regionwatch.core.rate_limit import limiter
from regionwatch.routes.activity import router as activity_router
from regionwatch.routes.diagnostics import router as diagnostics_router
from regionwatch.routes.events import router as events_router
from regionwatch.routes.health import router as health_router
from regionwatch.routes.regions import router as regions_router
from regionwatch.routes.session import router as session_router

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build the dashboard on startup, dispose it on shutdown.

    When SUBJECT_ID is configured the realtime
    channel connects straight away; otherwise it waits for POST /api/v1/session.
    """
    logger.info("Starting RegionWatch API (env: %s)", settings.environment)
    dashboard = create_dashboard(settings)
    app.state.dashboard = dashboard
    if settings.subject_id:
        await dashboard.connect(settings.subject_id)
    yield
    logger.info("Shutting down RegionWatch API")
    await dashboard.close()


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="RegionWatch API",
    description=(
        "Region hierarchy navigation, realtime push relay and movement-trail "
        "reconstruction for the surveillance map dashboard."
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)


# ─── Rate limiting ─────────────────────────────────────────────────────────────
# Routes opt-in with @limiter.limit("N/minute") + request: Request parameter.
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ─── Middleware ─────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(session_router)
app.include_router(regions_router)
app.include_router(activity_router)
app.include_router(events_router)
app.include_router(diagnostics_router)


@app.get("/", tags=["root"])
async def root():
    """API root — basic metadata."""
    return {
        "name": "RegionWatch API",
        "version": "0.1.0",
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }
