"""
region.py — Pydantic models for the region hierarchy.

The upstream API speaks camelCase JSON (`parentRegionId`,
`averageSocialRating`, ...). Models accept both the camelCase alias and the
snake_case field name, and serialise by alias so responses round-trip to
the browser unchanged.

Region.boundaries is always the *normalized* ring produced by
services.geometry.normalize_boundaries — never the raw GeoJSON payload.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RegionType(str, Enum):
    """Administrative levels, lowest first."""

    DISTRICT = "DISTRICT"
    CITY = "CITY"
    REGION = "REGION"
    COUNTRY = "COUNTRY"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @property
    def is_lowest(self) -> bool:
        return self.rank == 0


_RANKS = {
    RegionType.DISTRICT: 0,
    RegionType.CITY: 1,
    RegionType.REGION: 2,
    RegionType.COUNTRY: 3,
}


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GeoLocation(CamelModel):
    """A single vertex / position. No range validation: trails may drift."""

    latitude: float
    longitude: float


class Region(CamelModel):
    """A node in the region tree, with aggregates recomputed upstream."""

    id: Optional[str] = None
    name: str
    type: RegionType
    parent_region_id: Optional[str] = None
    boundaries: list[GeoLocation] = Field(default_factory=list)
    average_social_rating: float = 0.0   # 0–100
    population_count: int = 0
    important_persons_count: int = 0
    under_threat: bool = False

    @property
    def is_terminal(self) -> bool:
        """No subregions should be requested for an empty or lowest-level region."""
        return self.population_count == 0 or self.type.is_lowest
