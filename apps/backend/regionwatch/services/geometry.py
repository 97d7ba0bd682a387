"""
geometry.py — Boundary payload normalization.

The region service serialises boundaries in whatever shape the backing
store produced. Four shapes are recognised:

  Polygon       {"type": "Polygon", "coordinates": [ring, ...]}
                Only the exterior ring (first) is kept. A ring may be a
                plain list of [x, y] pairs or a serialised LineString
                ({"coordinates": [...]}) whose points are {"x", "y"} or
                {"coordinates": [x, y]} objects.
  LineString    {"type": "LineString", "coordinates": [point, ...]}
                Every point is read leniently; absent fields default to 0.
  MultiPolygon  {"type": "MultiPolygon", "coordinates": [polygon, ...]}
                Only the first polygon's exterior ring is kept. Holes and
                additional polygons are dropped (known limitation).
  flat list     [{"latitude": .., "longitude": ..}, ...]
                Already normalized; passed through unchanged.

GeoJSON vertices are [x, y] = [longitude, latitude]; the output is always
a list of GeoLocation(latitude, longitude).

normalize_boundaries() is total: anything else yields [] and a
"geometry.*" diagnostic, so one broken region never aborts a batch fetch.
"""

from __future__ import annotations

import logging
from numbers import Real
from typing import Any, Optional

from pydantic import ValidationError

from regionwatch.core.diagnostics import DiagnosticSink
from regionwatch.models.region import GeoLocation, Region

logger = logging.getLogger(__name__)

MIN_DRAWABLE_POINTS = 3


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _pair(value: Any) -> Optional[tuple[float, float]]:
    """Read an [x, y] pair, or None if it isn't one."""
    if isinstance(value, (list, tuple)) and len(value) >= 2:
        x, y = value[0], value[1]
        if _is_number(x) and _is_number(y):
            return float(x), float(y)
    return None


def _vertex(point: Any) -> Optional[GeoLocation]:
    """Strict vertex reader used for polygon rings."""
    if isinstance(point, dict):
        pair = _pair(point.get("coordinates"))
        if pair is None and _is_number(point.get("x")) and _is_number(point.get("y")):
            pair = (float(point["x"]), float(point["y"]))
    else:
        pair = _pair(point)
    if pair is None:
        return None
    return GeoLocation(latitude=pair[1], longitude=pair[0])


def _lenient_vertex(point: Any) -> GeoLocation:
    """LineString reader: nested pair first, then flat x/y, defaulting to 0."""
    if isinstance(point, dict):
        nested = point.get("coordinates")
        if isinstance(nested, (list, tuple)):
            x = nested[0] if len(nested) > 0 else None
            y = nested[1] if len(nested) > 1 else None
        else:
            x, y = point.get("x"), point.get("y")
    else:
        x = y = None
        pair = _pair(point)
        if pair is not None:
            x, y = pair
    return GeoLocation(
        latitude=float(y) if _is_number(y) else 0.0,
        longitude=float(x) if _is_number(x) else 0.0,
    )


def _ring(raw_ring: Any) -> Optional[list[GeoLocation]]:
    if isinstance(raw_ring, dict):
        raw_ring = raw_ring.get("coordinates")
    if not isinstance(raw_ring, list):
        return None
    ring = [_vertex(p) for p in raw_ring]
    if any(v is None for v in ring):
        return None
    return ring


def _exterior_ring(polygon: Any) -> Optional[list[GeoLocation]]:
    if isinstance(polygon, dict):
        polygon = polygon.get("coordinates")
    if not isinstance(polygon, list) or not polygon:
        return None
    return _ring(polygon[0])


def _flat_ring(payload: list) -> Optional[list[GeoLocation]]:
    ring = []
    for point in payload:
        if isinstance(point, GeoLocation):
            ring.append(point)
            continue
        if not isinstance(point, dict):
            return None
        lat, lon = point.get("latitude"), point.get("longitude")
        if not (_is_number(lat) and _is_number(lon)):
            return None
        ring.append(GeoLocation(latitude=lat, longitude=lon))
    return ring


def normalize_boundaries(
    payload: Any,
    *,
    region_name: str = "<unnamed>",
    sink: Optional[DiagnosticSink] = None,
) -> list[GeoLocation]:
    """
    Convert a boundary payload into an ordered ring of GeoLocation.

    Never raises. Unrecognised or malformed shapes return [] and emit a
    diagnostic carrying the region name and the raw payload.
    """

    def reject(code: str, message: str) -> list[GeoLocation]:
        if sink is not None:
            sink.warn(code, message, region=region_name, payload=payload)
        else:
            logger.warning("Region %s: %s (%r)", region_name, message, payload)
        return []

    if isinstance(payload, dict) and "type" in payload:
        shape = payload.get("type")
        coordinates = payload.get("coordinates")

        if shape == "Polygon":
            ring = _exterior_ring(coordinates)
            if ring is None:
                return reject("geometry.malformed_polygon", "invalid Polygon coordinates")
            return ring

        if shape == "LineString" and isinstance(coordinates, list):
            return [_lenient_vertex(p) for p in coordinates]

        if shape == "MultiPolygon" and isinstance(coordinates, list):
            ring = _exterior_ring(coordinates[0]) if coordinates else None
            if ring is None:
                return reject("geometry.malformed_multipolygon", "invalid MultiPolygon coordinates")
            return ring

        return reject(
            "geometry.unsupported_shape",
            "unsupported boundary type or malformed coordinates",
        )

    if isinstance(payload, list):
        ring = _flat_ring(payload)
        if ring is None:
            return reject("geometry.malformed_flat_ring", "invalid flat boundary list")
        return ring

    return reject("geometry.unrecognized_payload", "invalid boundary format")


def is_drawable(ring: list[GeoLocation]) -> bool:
    return len(ring) >= MIN_DRAWABLE_POINTS


def centroid(ring: list[GeoLocation]) -> Optional[GeoLocation]:
    """Vertex average — good enough to place a marker or centre the map."""
    if not ring:
        return None
    return GeoLocation(
        latitude=sum(p.latitude for p in ring) / len(ring),
        longitude=sum(p.longitude for p in ring) / len(ring),
    )


def build_region(raw: dict[str, Any], sink: Optional[DiagnosticSink] = None) -> Region:
    """
    Turn a raw region payload into a Region with a normalized ring.

    Raises pydantic.ValidationError if the non-geometry fields are invalid;
    geometry problems alone never raise.
    """
    data = dict(raw)
    name = str(data.get("name", "<unnamed>"))
    data["boundaries"] = normalize_boundaries(data.get("boundaries"), region_name=name, sink=sink)
    return Region.model_validate(data)


def build_regions(raws: Optional[list[Any]], sink: Optional[DiagnosticSink] = None) -> list[Region]:
    """
    Batch variant of build_region: a region that fails validation is
    reported and skipped rather than failing the whole collection.
    """
    regions: list[Region] = []
    for raw in raws or []:
        try:
            regions.append(build_region(raw, sink))
        except (ValidationError, TypeError, ValueError) as exc:
            if sink is not None:
                sink.warn("region.invalid_payload", str(exc), payload=raw)
            else:
                logger.warning("Skipping invalid region payload: %s", exc)
    return regions
