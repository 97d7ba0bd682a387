"""
Dashboard container — owns the realtime channel and every consumer of it.

Architecture decision: one Dashboard per process (one logged-in subject).
It is built in FastAPI's lifespan and stored on `app.state`; routes receive
it through the get_dashboard() dependency rather than importing a module
global, so tests can swap in a dashboard wired to fakes with
`app.dependency_overrides[get_dashboard]`.

Push wiring (several consumers per event kind):
  region-status-update → RegionNavigator.apply_push_update
  nearby-users-update  → NearbyUsersTracker.apply_nearby_update
  location-update      → NearbyUsersTracker.apply_location_update
                         + profile snapshot (when it is the subject)
  rating-update        → profile snapshot
"""

import logging
from typing import Callable, Optional

from fastapi.requests import HTTPConnection

from regionwatch.clients.activity_service import ActivityServiceClient
from regionwatch.clients.region_service import RegionServiceClient
from regionwatch.clients.strike_service import StrikeServiceClient
from regionwatch.clients.user_service import UserServiceClient
from regionwatch.core.config import Settings
from regionwatch.core.diagnostics import DiagnosticSink
from regionwatch.models.events import PushEventKind
from regionwatch.models.region import GeoLocation, RegionType
from regionwatch.models.user import User
from regionwatch.services.activity_path import ActivityPathReconstructor
from regionwatch.services.nearby_users import NearbyUsersTracker
from regionwatch.services.realtime_channel import RealtimeChannel
from regionwatch.services.region_navigator import RegionNavigator

logger = logging.getLogger(__name__)


class Dashboard:
    def __init__(
        self,
        *,
        channel: RealtimeChannel,
        regions: RegionServiceClient,
        navigator: RegionNavigator,
        nearby: NearbyUsersTracker,
        activity: ActivityPathReconstructor,
        diagnostics: DiagnosticSink,
    ) -> None:
        self.channel = channel
        self.regions = regions
        self.navigator = navigator
        self.nearby = nearby
        self.activity = activity
        self.diagnostics = diagnostics
        self.profile: Optional[User] = None
        self._unsubscribers: list[Callable[[], None]] = []

    def wire(self) -> None:
        if self._unsubscribers:
            return
        register = self.channel.register_handler
        self._unsubscribers = [
            register(PushEventKind.REGION_STATUS_UPDATE, self.navigator.apply_push_update),
            register(PushEventKind.NEARBY_USERS_UPDATE, self.nearby.apply_nearby_update),
            register(PushEventKind.LOCATION_UPDATE, self.nearby.apply_location_update),
            register(PushEventKind.LOCATION_UPDATE, self._apply_profile_update),
            register(PushEventKind.RATING_UPDATE, self._apply_profile_update),
        ]

    def unwire(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _apply_profile_update(self, user: User) -> None:
        if user.id is not None and user.id == self.channel.subject_id:
            self.profile = user

    async def connect(self, subject_id: str, location: Optional[GeoLocation] = None) -> None:
        logger.info("Opening dashboard session for %s", subject_id)
        self.profile = None
        self.nearby.stop()
        self.nearby.users = []
        self.nearby.subject_id = subject_id
        await self.channel.connect(subject_id)
        if location is not None:
            self.nearby.start(subject_id, location)

    async def update_location(self, location: GeoLocation) -> None:
        """Publish the subject's new position and re-anchor nearby polling on it."""
        subject_id = self.channel.subject_id
        if subject_id is None:
            return
        await self.channel.update_location(location.latitude, location.longitude)
        self.nearby.start(subject_id, location)

    async def disconnect(self) -> None:
        self.nearby.stop()
        await self.channel.disconnect()

    async def close(self) -> None:
        self.nearby.stop()
        self.unwire()
        await self.channel.dispose()


def create_dashboard(settings: Settings) -> Dashboard:
    """Build a fully wired Dashboard from configuration."""
    diagnostics = DiagnosticSink(max_records=settings.diagnostics_buffer_size)
    timeout = settings.http_timeout

    channel = RealtimeChannel(
        settings.realtime_url,
        reconnect_delay=settings.realtime_reconnect_delay,
        heartbeat=(settings.realtime_heartbeat_outgoing_ms, settings.realtime_heartbeat_incoming_ms),
        diagnostics=diagnostics,
    )
    regions = RegionServiceClient(settings.region_api_url, timeout=timeout, diagnostics=diagnostics)
    navigator = RegionNavigator(
        regions,
        region_type=RegionType(settings.default_region_type.upper()),
        low_rating_threshold=settings.low_rating_threshold,
        strikes=StrikeServiceClient(settings.region_api_url, timeout=timeout),
        strike_settle_seconds=settings.strike_settle_seconds,
        diagnostics=diagnostics,
    )
    nearby = NearbyUsersTracker(
        UserServiceClient(settings.region_api_url, timeout=timeout),
        max_distance_km=settings.nearby_max_distance_km,
        poll_interval=settings.nearby_poll_interval,
    )
    activity = ActivityPathReconstructor(
        ActivityServiceClient(settings.activity_api_url, timeout=timeout),
        diagnostics=diagnostics,
    )
    dashboard = Dashboard(
        channel=channel,
        regions=regions,
        navigator=navigator,
        nearby=nearby,
        activity=activity,
        diagnostics=diagnostics,
    )
    dashboard.wire()
    return dashboard


def get_dashboard(connection: HTTPConnection) -> Dashboard:
    """
    FastAPI dependency — inject the process-wide Dashboard.

    Typed as HTTPConnection so HTTP routes and the websocket relay share it.

    Usage in a route:
        async def my_route(dashboard: Dashboard = Depends(get_dashboard)):
            await dashboard.navigator.drill_into(region_id)
    """
    return connection.app.state.dashboard
