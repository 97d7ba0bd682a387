"""
regions.py — Drill-down navigation over the region hierarchy.

Routes:
  GET  /api/v1/regions                     — current navigation view
  POST /api/v1/regions/top-level/{type}    — load a top-level collection
  POST /api/v1/regions/{region_id}/drill   — drill into a region
  POST /api/v1/regions/drill-up            — back to the parent / top level
  POST /api/v1/regions/refresh             — refresh aggregates in place
  POST /api/v1/regions/{region_id}/strike  — strike command, then refresh
  GET  /api/v1/regions/under-threat/{type} — regions flagged under threat
  GET  /api/v1/regions/{region_id}/eliminated-users

The navigation routes return the full NavigationView. Upstream failures are
reported in `view.error` with the previous regions still present, so they
do not 5xx on an upstream outage. The two plain lookups (under-threat,
eliminated-users) answer 502 instead.
"""

from fastapi import APIRouter, Depends, HTTPException, Request

from regionwatch.clients.base import ServiceError
from regionwatch.core.dashboard import Dashboard, get_dashboard
from regionwatch.core.rate_limit import limiter
from regionwatch.models.region import Region, RegionType
from regionwatch.models.user import User
from regionwatch.services.region_navigator import NavigationView

router = APIRouter(prefix="/api/v1/regions", tags=["regions"])


@router.get("", response_model=NavigationView)
async def get_view(dashboard: Dashboard = Depends(get_dashboard)):
    return dashboard.navigator.view()


@router.post("/top-level/{region_type}", response_model=NavigationView)
async def select_top_level(region_type: RegionType, dashboard: Dashboard = Depends(get_dashboard)):
    await dashboard.navigator.select_top_level(region_type)
    return dashboard.navigator.view()


# Declared before /{region_id}/... so "drill-up" is never taken for an id.
@router.post("/drill-up", response_model=NavigationView)
async def drill_up(dashboard: Dashboard = Depends(get_dashboard)):
    await dashboard.navigator.drill_to_parent()
    return dashboard.navigator.view()


@router.post("/refresh", response_model=NavigationView)
async def refresh(dashboard: Dashboard = Depends(get_dashboard)):
    await dashboard.navigator.refresh()
    return dashboard.navigator.view()


@router.post("/{region_id}/drill", response_model=NavigationView)
async def drill_into(region_id: str, dashboard: Dashboard = Depends(get_dashboard)):
    await dashboard.navigator.drill_into(region_id)
    return dashboard.navigator.view()


@router.post("/{region_id}/strike", response_model=NavigationView)
@limiter.limit("5/minute")
async def strike(request: Request, region_id: str, dashboard: Dashboard = Depends(get_dashboard)):
    await dashboard.navigator.strike(region_id)
    return dashboard.navigator.view()


@router.get("/{region_id}/eliminated-users", response_model=list[User])
async def eliminated_users(region_id: str, dashboard: Dashboard = Depends(get_dashboard)):
    """Subjects eliminated in a region — the entry point for trail playback."""
    try:
        return await dashboard.regions.fetch_eliminated_users(region_id)
    except ServiceError as exc:
        raise HTTPException(status_code=502, detail="Failed to fetch eliminated users") from exc


@router.get("/under-threat/{region_type}", response_model=list[Region])
async def under_threat(region_type: RegionType, dashboard: Dashboard = Depends(get_dashboard)):
    try:
        return await dashboard.regions.fetch_under_threat(region_type)
    except ServiceError as exc:
        raise HTTPException(status_code=502, detail="Failed to fetch regions under threat") from exc
