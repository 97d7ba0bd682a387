"""
nearby_users.py — Users around the logged-in subject.

Two feeds keep the list current:
  - push: the subject-scoped nearby-users queue replaces the whole list,
    broadcast location updates patch single entries (last write wins);
  - poll: a fallback refresh every `poll_interval` seconds, covering the
    stretches when the realtime channel is down.

The subject itself is always filtered out.
"""

import asyncio
import logging
from typing import Optional, Protocol

from regionwatch.clients.base import ServiceError
from regionwatch.models.region import GeoLocation
from regionwatch.models.user import User

logger = logging.getLogger(__name__)


class NearbySource(Protocol):
    async def fetch_near(self, location: GeoLocation, max_distance_km: float) -> list[User]: ...


class NearbyUsersTracker:
    def __init__(
        self,
        source: NearbySource,
        *,
        max_distance_km: float = 5.0,
        poll_interval: float = 30.0,
    ) -> None:
        self._source = source
        self.max_distance_km = max_distance_km
        self.poll_interval = poll_interval
        self.subject_id: Optional[str] = None
        self.users: list[User] = []
        self.error: Optional[str] = None
        self._poller: Optional[asyncio.Task] = None

    def _others(self, users: list[User]) -> list[User]:
        return [u for u in users if u.id is None or u.id != self.subject_id]

    async def refresh(self, location: GeoLocation) -> None:
        try:
            users = await self._source.fetch_near(location, self.max_distance_km)
        except ServiceError as exc:
            logger.warning("Nearby users refresh failed: %s", exc)
            self.error = "Failed to fetch nearby users"
            return
        self.error = None
        self.users = self._others(users)

    # ── Push handlers ─────────────────────────────────────────────────────────

    def apply_nearby_update(self, users: list[User]) -> None:
        self.users = self._others(users)

    def apply_location_update(self, user: User) -> None:
        for i, known in enumerate(self.users):
            if known.id is not None and known.id == user.id:
                self.users[i] = user
                return

    # ── Polling fallback ──────────────────────────────────────────────────────

    def start(self, subject_id: str, location: GeoLocation) -> None:
        self.stop()
        self.subject_id = subject_id
        self._poller = asyncio.create_task(self._poll(location), name=f"nearby-{subject_id}")

    def stop(self) -> None:
        if self._poller is not None:
            self._poller.cancel()
            self._poller = None

    async def _poll(self, location: GeoLocation) -> None:
        while True:
            await self.refresh(location)
            await asyncio.sleep(self.poll_interval)
