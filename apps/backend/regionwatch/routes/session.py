"""
session.py — Realtime session lifecycle for the logged-in subject.

Routes:
  GET    /api/v1/session  — current subject + channel state
  POST   /api/v1/session  — (re)connect the channel for a subject
  DELETE /api/v1/session  — disconnect (idempotent)
  POST   /api/v1/session/location — publish the subject's position
  POST   /api/v1/session/ratings  — publish a rating change for another user

Connecting never fails from the caller's point of view: transport problems
only show up as `state != "connected"` while the channel retries. The
publishing routes need an open session (409 otherwise); while the channel
is reconnecting their messages are dropped, as the broker has no outbox.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from regionwatch.core.dashboard import Dashboard, get_dashboard
from regionwatch.models.region import GeoLocation
from regionwatch.models.user import User
from regionwatch.services.realtime_channel import ChannelState

router = APIRouter(prefix="/api/v1/session", tags=["session"])


class SessionRequest(BaseModel):
    subject_id: str = Field(..., min_length=1, max_length=100)
    # Optional: enables the nearby-users polling fallback.
    location: Optional[GeoLocation] = None


class LocationUpdate(BaseModel):
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)


class RatingRequest(BaseModel):
    target_user_id: str = Field(..., min_length=1, max_length=100)
    rating_change: float


class SessionStatus(BaseModel):
    subject_id: Optional[str] = None
    state: ChannelState
    profile: Optional[User] = None
    nearby_users: list[User] = Field(default_factory=list)


def _status(dashboard: Dashboard) -> SessionStatus:
    return SessionStatus(
        subject_id=dashboard.channel.subject_id,
        state=dashboard.channel.state,
        profile=dashboard.profile,
        nearby_users=dashboard.nearby.users,
    )


def _require_session(dashboard: Dashboard) -> None:
    if dashboard.channel.subject_id is None:
        raise HTTPException(status_code=409, detail="No open session")


@router.get("", response_model=SessionStatus)
async def get_session(dashboard: Dashboard = Depends(get_dashboard)):
    return _status(dashboard)


@router.post("", response_model=SessionStatus, status_code=status.HTTP_202_ACCEPTED)
async def open_session(payload: SessionRequest, dashboard: Dashboard = Depends(get_dashboard)):
    """Tear down any previous session, then connect for `subject_id`."""
    await dashboard.connect(payload.subject_id, payload.location)
    return _status(dashboard)


@router.delete("", response_model=SessionStatus)
async def close_session(dashboard: Dashboard = Depends(get_dashboard)):
    await dashboard.disconnect()
    return _status(dashboard)


@router.post("/location", response_model=SessionStatus, status_code=status.HTTP_202_ACCEPTED)
async def update_location(payload: LocationUpdate, dashboard: Dashboard = Depends(get_dashboard)):
    """Broadcast the subject's position; nearby-users polling follows it."""
    _require_session(dashboard)
    await dashboard.update_location(
        GeoLocation(latitude=payload.latitude, longitude=payload.longitude)
    )
    return _status(dashboard)


@router.post("/ratings", response_model=SessionStatus, status_code=status.HTTP_202_ACCEPTED)
async def rate_person(payload: RatingRequest, dashboard: Dashboard = Depends(get_dashboard)):
    _require_session(dashboard)
    await dashboard.channel.rate_person(payload.target_user_id, payload.rating_change)
    return _status(dashboard)
