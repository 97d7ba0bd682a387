"""
user_service.py — Adapter for the user / location query service.
"""

from pydantic import TypeAdapter, ValidationError

from regionwatch.clients.base import ApiClient, ServiceError
from regionwatch.models.region import GeoLocation
from regionwatch.models.user import User

_USERS = TypeAdapter(list[User])


class UserServiceClient(ApiClient):
    async def fetch_near(self, location: GeoLocation, max_distance_km: float) -> list[User]:
        data = await self._json("GET", "/users/near", params={
            "latitude": location.latitude,
            "longitude": location.longitude,
            "maxDistanceKm": max_distance_km,
        })
        try:
            return _USERS.validate_python(data or [])
        except ValidationError as exc:
            raise ServiceError("GET /users/near returned unexpected users payload") from exc
