"""
activity.py — Movement trail reconstruction for eliminated subjects.

Routes:
  GET    /api/v1/activity/{subject_id}/path?lat=..&lon=..&min=..&max=..[&moved=min|max]
  DELETE /api/v1/activity/{subject_id}/path      trail panel closed

`lat`/`lon` is the anchor (the subject's last known position); `min`/`max`
select a slice of the recorded history as fractions in [0, 1]. The slider
in the UI fires one request per drag step and names the handle it moved in
`moved`; crossed handles are then resolved by pushing the other one along
instead of being rejected. Only the newest request per subject produces a
path. A superseded request comes back with `stale: true` and the path the
newest request has rendered so far (null if it hasn't resolved yet).

Response:
  {
    "subject_id": "...", "sequence": 7, "stale": false,
    "window": {"min": 0.0, "max": 1.0},
    "path": [{latitude, longitude}, ...] | null,
    "error": null | "..."
  }
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, ValidationError

from regionwatch.core.dashboard import Dashboard, get_dashboard
from regionwatch.core.rate_limit import limiter
from regionwatch.models.activity import TimeWindow
from regionwatch.models.region import GeoLocation

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/activity", tags=["activity"])


class ActivityPathResponse(BaseModel):
    subject_id: str
    sequence: int
    stale: bool = False
    window: TimeWindow
    path: Optional[list[GeoLocation]] = None
    error: Optional[str] = None


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def _window(window_min: float, window_max: float, moved: Optional[str]) -> TimeWindow:
    if moved == "min":
        return TimeWindow(max=_clamp(window_max)).drag("min", window_min)
    if moved == "max":
        return TimeWindow(min=_clamp(window_min)).drag("max", window_max)
    return TimeWindow(min=window_min, max=window_max)


@router.get("/{subject_id}/path", response_model=ActivityPathResponse)
@limiter.limit("60/minute")
async def get_path(
    request: Request,
    subject_id: str,
    lat: float = Query(..., ge=-90.0, le=90.0),
    lon: float = Query(..., ge=-180.0, le=180.0),
    window_min: float = Query(0.0, alias="min"),
    window_max: float = Query(1.0, alias="max"),
    moved: Optional[Literal["min", "max"]] = Query(None),
    dashboard: Dashboard = Depends(get_dashboard),
):
    try:
        window = _window(window_min, window_max, moved)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False)) from exc

    anchor = GeoLocation(latitude=lat, longitude=lon)
    outcome = await dashboard.activity.request(subject_id, anchor, window)
    return ActivityPathResponse(
        subject_id=subject_id,
        sequence=outcome.sequence,
        stale=outcome.stale,
        window=window,
        path=outcome.path,
        error=outcome.error,
    )


@router.delete("/{subject_id}/path", status_code=204)
async def clear_path(subject_id: str, dashboard: Dashboard = Depends(get_dashboard)):
    dashboard.activity.clear(subject_id)
