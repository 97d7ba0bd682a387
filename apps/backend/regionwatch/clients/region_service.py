"""
region_service.py — Adapter for the region query service.

Every region payload is passed through the geometry normalizer on the way
in, so callers only ever see Region objects with a flat boundary ring.
Per-region geometry problems go to the diagnostics sink; they never fail
the batch. A collection endpoint answering with anything but a JSON array
(or an empty body) is a ServiceError.
"""

import logging
from typing import Optional

import httpx

from regionwatch.clients.base import ApiClient, ServiceError
from regionwatch.core.diagnostics import DiagnosticSink
from regionwatch.models.region import Region, RegionType
from regionwatch.models.user import User
from regionwatch.services.geometry import build_region, build_regions

logger = logging.getLogger(__name__)


class RegionServiceClient(ApiClient):
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        diagnostics: Optional[DiagnosticSink] = None,
    ) -> None:
        super().__init__(base_url, timeout=timeout, transport=transport)
        self.diagnostics = diagnostics or DiagnosticSink()

    async def _collection(self, path: str) -> list:
        data = await self._json("GET", path)
        if data is None:
            return []
        if not isinstance(data, list):
            logger.error("GET %s returned %s instead of a list", path, type(data).__name__)
            raise ServiceError(f"GET {path} returned an unexpected payload")
        return data

    async def fetch_by_type(self, region_type: RegionType) -> list[Region]:
        data = await self._collection(f"/regions/type/{region_type.value}")
        return build_regions(data, self.diagnostics)

    async def fetch_subregions(self, parent_id: str) -> list[Region]:
        data = await self._collection(f"/regions/parent/{parent_id}")
        return build_regions(data, self.diagnostics)

    async def fetch_by_id(self, region_id: str) -> Region:
        data = await self._json("GET", f"/regions/{region_id}")
        try:
            return build_region(data, self.diagnostics)
        except (ValueError, TypeError) as exc:
            raise ServiceError(f"Region {region_id} payload is invalid") from exc

    async def fetch_under_threat(self, region_type: RegionType) -> list[Region]:
        data = await self._collection(f"/regions/under-threat/{region_type.value}")
        return build_regions(data, self.diagnostics)

    async def refresh_all_statistics(self) -> None:
        await self._send("PUT", "/regions/statistics/all")

    async def fetch_eliminated_users(self, region_id: str) -> list[User]:
        data = await self._collection(f"/regions/{region_id}/eliminated-users")
        users = []
        for raw in data:
            try:
                users.append(User.model_validate(raw))
            except ValueError as exc:
                self.diagnostics.warn("user.invalid_payload", str(exc), payload=raw)
        return users
