"""
region_navigator.py — Drill-down state over the region hierarchy.

NavigationState
───────────────
  top_level          regions of the configured type (country view, ...)
  target_region_id   the region currently drilled into, or None
  subregions         direct children of the target (last fetch that matched)
  parent_snapshot    the target region itself, as it was when clicked

  target is None  → displayed = top_level
  target is set   → displayed = [parent_snapshot] + subregions
                    (snapshot painted underneath, subregions on top)

Staleness
─────────
Drill fetches are never cancelled. A subregion response is applied only if
its region is still the active target when it resolves, so a slow first
click can't overwrite a faster second one. Failed fetches keep whatever is
on screen and set a single human-readable `error`.

Push updates (region-status-update) replace matching entries by id in the
collections already held; they never add regions. Updates for a different
region type than the navigator's are discarded.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Literal, Optional, Protocol

from pydantic import BaseModel

from regionwatch.clients.base import ServiceError
from regionwatch.core.diagnostics import DiagnosticSink
from regionwatch.models.region import GeoLocation, Region, RegionType
from regionwatch.services.geometry import centroid, is_drawable

logger = logging.getLogger(__name__)

# ── Visual encoding ───────────────────────────────────────────────────────────

TARGET_COLOR = "#ff0000"
THREAT_COLOR = "#ff3333"
LOW_RATING_COLOR = "#ff9900"
NEUTRAL_COLOR = "#00cc00"

_OPACITY_TARGET_WITH_SUBREGIONS = 0.1
_OPACITY_TARGET = 0.8
_OPACITY_SUBREGION = 0.7
_OPACITY_DEFAULT = 0.3


class RegionSource(Protocol):
    async def fetch_by_type(self, region_type: RegionType) -> list[Region]: ...

    async def fetch_subregions(self, parent_id: str) -> list[Region]: ...

    async def fetch_by_id(self, region_id: str) -> Region: ...

    async def refresh_all_statistics(self) -> None: ...


class StrikeCommand(Protocol):
    async def launch_at_region(self, region_id: str) -> None: ...


@dataclass
class NavigationState:
    top_level: list[Region] = field(default_factory=list)
    target_region_id: Optional[str] = None
    subregions: list[Region] = field(default_factory=list)
    parent_snapshot: Optional[Region] = None


class RenderedRegion(BaseModel):
    """One polygon to draw, in paint order."""

    region: Region
    color: str
    fill_opacity: float
    layer: Literal["base", "overlay"]
    weight: int
    interactive: bool   # False → clicks fall through to the overlay
    live: bool          # False for terminal (unpopulated / lowest-level) regions
    marker: Optional[GeoLocation] = None


class NavigationView(BaseModel):
    region_type: RegionType
    target_region_id: Optional[str] = None
    parent_snapshot: Optional[Region] = None
    regions: list[RenderedRegion]
    error: Optional[str] = None


class RegionNavigator:
    def __init__(
        self,
        regions: RegionSource,
        *,
        region_type: RegionType = RegionType.COUNTRY,
        low_rating_threshold: float = 30.0,
        strikes: Optional[StrikeCommand] = None,
        strike_settle_seconds: float = 2.0,
        diagnostics: Optional[DiagnosticSink] = None,
    ) -> None:
        self._regions = regions
        self._strikes = strikes
        self._diagnostics = diagnostics or DiagnosticSink()
        self.region_type = region_type
        self.low_rating_threshold = low_rating_threshold
        self.strike_settle_seconds = strike_settle_seconds

        self.state = NavigationState()
        self.error: Optional[str] = None

        self._top_level_seq = 0
        self._drill_seq = 0
        self._undrawable_reported: set[str] = set()

    # ── Operations ────────────────────────────────────────────────────────────

    async def select_top_level(self, region_type: Optional[RegionType] = None) -> None:
        """Refresh statistics, load the top-level collection, reset drill-down."""
        requested = region_type or self.region_type
        self._top_level_seq += 1
        seq = self._top_level_seq
        self.error = None
        try:
            # Aggregates (threat flags, ratings) must be current at load time.
            await self._regions.refresh_all_statistics()
            regions = await self._regions.fetch_by_type(requested)
        except ServiceError as exc:
            logger.warning("Fetching %s regions failed: %s", requested.value, exc)
            if seq == self._top_level_seq:
                self.error = "Failed to fetch regions"
            return

        if seq != self._top_level_seq:
            logger.debug("Discarding stale %s top-level response", requested.value)
            return
        self.region_type = requested
        self._drill_seq += 1
        self.state = NavigationState(top_level=regions)

    async def drill_into(self, region_id: str) -> None:
        self._drill_seq += 1
        seq = self._drill_seq
        self.error = None

        region = self._find(region_id)
        if region is None:
            try:
                region = await self._regions.fetch_by_id(region_id)
            except ServiceError as exc:
                logger.warning("Fetching region %s failed: %s", region_id, exc)
                if seq == self._drill_seq:
                    self.error = "Failed to fetch region"
                return
            if seq != self._drill_seq:
                return

        previous_target = self.state.target_region_id
        previous_snapshot = self.state.parent_snapshot
        self.state.target_region_id = region_id
        self.state.parent_snapshot = region

        if region.is_terminal:
            self.state.subregions = []
            return

        # The previous subregion set stays on screen until this resolves.
        try:
            subregions = await self._regions.fetch_subregions(region_id)
        except ServiceError as exc:
            logger.warning("Fetching subregions of %s failed: %s", region_id, exc)
            if seq == self._drill_seq and self.state.target_region_id == region_id:
                self.state.target_region_id = previous_target
                self.state.parent_snapshot = previous_snapshot
                self.error = "Failed to fetch sub-regions"
            return

        if self.state.target_region_id != region_id:
            logger.debug(
                "Discarding subregions of %s: target is now %s",
                region_id, self.state.target_region_id,
            )
            return
        self.state.subregions = subregions

    async def drill_to_parent(self) -> None:
        snapshot = self.state.parent_snapshot
        if snapshot is None or not snapshot.parent_region_id:
            self.reset_to_top_level()
            return
        await self.drill_into(snapshot.parent_region_id)

    def reset_to_top_level(self) -> None:
        self._drill_seq += 1
        self.error = None
        self.state.target_region_id = None
        self.state.parent_snapshot = None
        self.state.subregions = []

    def apply_push_update(self, updated: Region) -> bool:
        """Replace a cached region by id. Returns True if anything changed."""
        if updated.type is not self.region_type:
            logger.debug(
                "Ignoring %s update for %s navigator", updated.type.value, self.region_type.value
            )
            return False
        if updated.id is None:
            return False

        applied = False
        for collection in (self.state.top_level, self.state.subregions):
            for i, region in enumerate(collection):
                if region.id == updated.id:
                    collection[i] = updated
                    applied = True

        snapshot = self.state.parent_snapshot
        if applied and snapshot is not None and snapshot.id == updated.id:
            self.state.parent_snapshot = updated
        return applied

    async def refresh(self) -> None:
        """
        Re-fetch aggregates without losing drill-down context.

        A select_top_level() that lands while the refresh is in flight wins:
        the refresh result (or failure) is then dropped.
        """
        self.error = None
        seq = self._top_level_seq
        region_type = self.region_type
        target = self.state.target_region_id
        snapshot = self.state.parent_snapshot
        try:
            await self._regions.refresh_all_statistics()
            top_level = await self._regions.fetch_by_type(region_type)
            subregions = None
            if target is not None and snapshot is not None and not snapshot.is_terminal:
                subregions = await self._regions.fetch_subregions(target)
        except ServiceError as exc:
            logger.warning("Region statistics refresh failed: %s", exc)
            if seq == self._top_level_seq and region_type is self.region_type:
                self.error = "Failed to update region statistics"
            return

        if seq != self._top_level_seq or region_type is not self.region_type:
            logger.debug("Discarding stale %s refresh", region_type.value)
            return
        self.state.top_level = top_level
        if target is None or self.state.target_region_id != target:
            return
        if subregions is not None:
            self.state.subregions = subregions
        for region in top_level:
            if region.id == target:
                self.state.parent_snapshot = region

    async def strike(self, region_id: str) -> None:
        if self._strikes is None:
            self.error = "Strike service not configured"
            return
        self.error = None
        try:
            await self._strikes.launch_at_region(region_id)
        except ServiceError as exc:
            logger.error("Strike at region %s failed: %s", region_id, exc)
            self.error = "Failed to launch strike. Check server logs for details."
            return

        # Give the backend time to process eliminations and parent updates.
        await asyncio.sleep(self.strike_settle_seconds)
        await self.refresh()
        if self.error is None and self.state.target_region_id != region_id:
            await self.drill_into(region_id)

    # ── Render-set derivation ────────────────────────────────────────────────

    def displayed_regions(self) -> list[Region]:
        if self.state.target_region_id is None:
            return list(self.state.top_level)
        snapshot = self.state.parent_snapshot
        if snapshot is None:
            return list(self.state.subregions)
        return [snapshot] + [r for r in self.state.subregions if r.id != snapshot.id]

    def is_subregion(self, region: Region) -> bool:
        # The cache wins while a drill-in request is still in flight.
        if any(r.id == region.id for r in self.state.subregions):
            return True
        target = self.state.target_region_id
        return target is not None and region.parent_region_id == target

    def color_for(self, region: Region) -> str:
        if region.id is not None and region.id == self.state.target_region_id:
            return TARGET_COLOR
        if region.under_threat:
            return THREAT_COLOR
        if region.average_social_rating < self.low_rating_threshold:
            return LOW_RATING_COLOR
        return NEUTRAL_COLOR

    def fill_opacity_for(self, region: Region) -> float:
        is_target = region.id is not None and region.id == self.state.target_region_id
        if is_target and self.state.subregions:
            return _OPACITY_TARGET_WITH_SUBREGIONS
        if is_target:
            return _OPACITY_TARGET
        if self.is_subregion(region):
            return _OPACITY_SUBREGION
        return _OPACITY_DEFAULT

    def render(self) -> list[RenderedRegion]:
        base: list[RenderedRegion] = []
        overlay: list[RenderedRegion] = []
        target = self.state.target_region_id

        for region in self.displayed_regions():
            if not is_drawable(region.boundaries):
                self._report_undrawable(region)
                continue
            is_target = region.id is not None and region.id == target
            sub = self.is_subregion(region)
            rendered = RenderedRegion(
                region=region,
                color=self.color_for(region),
                fill_opacity=self.fill_opacity_for(region),
                layer="overlay" if sub else "base",
                weight=3 if sub else 2,
                interactive=sub or not (is_target and bool(self.state.subregions)),
                live=not region.is_terminal,
                marker=centroid(region.boundaries) if is_target else None,
            )
            (overlay if sub else base).append(rendered)
        return base + overlay

    def view(self) -> NavigationView:
        return NavigationView(
            region_type=self.region_type,
            target_region_id=self.state.target_region_id,
            parent_snapshot=self.state.parent_snapshot,
            regions=self.render(),
            error=self.error,
        )

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _find(self, region_id: str) -> Optional[Region]:
        for collection in (self.state.top_level, self.state.subregions):
            for region in collection:
                if region.id == region_id:
                    return region
        snapshot = self.state.parent_snapshot
        if snapshot is not None and snapshot.id == region_id:
            return snapshot
        return None

    def _report_undrawable(self, region: Region) -> None:
        key = region.id or region.name
        if key in self._undrawable_reported:
            return
        self._undrawable_reported.add(key)
        self._diagnostics.warn(
            "region.not_drawable",
            "ring has fewer than 3 points; skipped",
            region=region.name,
            region_id=region.id,
            points=len(region.boundaries),
        )
