"""
events.py — Push event kinds, destinations and typed payload decoding.

Inbound kinds map to STOMP subscription destinations; two of them are
scoped to the logged-in subject. Outbound kinds map to the application
destinations the backend listens on.
"""

import json
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, TypeAdapter

from regionwatch.models.region import CamelModel, Region
from regionwatch.models.user import User


class PushEventKind(str, Enum):
    LOCATION_UPDATE = "location-update"
    RATING_UPDATE = "rating-update"
    REGION_STATUS_UPDATE = "region-status-update"
    STRIKE_NOTIFICATION = "strike-notification"
    NEARBY_USERS_UPDATE = "nearby-users-update"

    def destination(self, subject_id: str) -> str:
        template = _DESTINATIONS[self]
        return template.format(subject=subject_id)


_DESTINATIONS = {
    PushEventKind.LOCATION_UPDATE: "/topic/user-location-update",
    PushEventKind.REGION_STATUS_UPDATE: "/topic/region-status-update",
    PushEventKind.STRIKE_NOTIFICATION: "/topic/missile-launch",
    PushEventKind.NEARBY_USERS_UPDATE: "/user/{subject}/queue/users-nearby-update",
    PushEventKind.RATING_UPDATE: "/user/{subject}/queue/social-rating-update",
}


class OutboundKind(str, Enum):
    PRESENCE = "/app/connect"
    LOCATION_UPDATE = "/app/update-location"
    RATE_PERSON = "/app/rate-person"

    @property
    def destination(self) -> str:
        return self.value


class StrikeNotification(CamelModel):
    region_id: str
    missile_type: Optional[str] = None


PushPayload = Union[User, Region, StrikeNotification, list[User]]

_USER_LIST = TypeAdapter(list[User])


class PushEvent(BaseModel):
    """A decoded push event as relayed to browser clients."""

    type: PushEventKind
    payload: Any


def decode_payload(kind: PushEventKind, data: Any) -> PushPayload:
    """
    Validate a parsed JSON body into the domain model for `kind`.

    Region payloads must already carry a normalized boundary ring; the
    channel runs them through the geometry normalizer first since their
    boundaries arrive in GeoJSON form.

    Raises pydantic.ValidationError on a payload that doesn't fit.
    """
    if kind in (PushEventKind.LOCATION_UPDATE, PushEventKind.RATING_UPDATE):
        return User.model_validate(data)
    if kind is PushEventKind.NEARBY_USERS_UPDATE:
        return _USER_LIST.validate_python(data)
    if kind is PushEventKind.STRIKE_NOTIFICATION:
        return StrikeNotification.model_validate(data)
    return Region.model_validate(data)


def encode_payload(payload: Any) -> str:
    """Serialise an outbound payload; plain strings are sent verbatim."""
    if isinstance(payload, str):
        return payload
    if isinstance(payload, BaseModel):
        return payload.model_dump_json(by_alias=True)
    if isinstance(payload, list):
        return json.dumps([
            p.model_dump(mode="json", by_alias=True) if isinstance(p, BaseModel) else p
            for p in payload
        ])
    return json.dumps(payload)
