"""
user.py — Pydantic models for people tracked on the map.

Only the fields the dashboard displays are modelled; credentials are never
accepted from the upstream payload.
"""

from enum import Enum
from typing import Optional

from regionwatch.models.region import CamelModel, GeoLocation


class SocialStatus(str, Enum):
    LOW = "LOW"
    REGULAR = "REGULAR"
    IMPORTANT = "IMPORTANT"
    VIP = "VIP"


class User(CamelModel):
    id: Optional[str] = None
    username: str
    full_name: str = ""
    social_rating: float = 0.0
    status: SocialStatus = SocialStatus.REGULAR
    current_location: Optional[GeoLocation] = None
    region_id: Optional[str] = None
    district_id: Optional[str] = None
    country_id: Optional[str] = None
    active: bool = True
    last_location_update_timestamp: Optional[int] = None
