"""
strike_service.py — Adapter for the strike-command service.

Eligibility and effects are decided upstream; the response body is opaque
and ignored. Success only means the command was accepted.
"""

import logging

from regionwatch.clients.base import ApiClient

logger = logging.getLogger(__name__)


class StrikeServiceClient(ApiClient):
    async def launch_at_region(self, region_id: str) -> None:
        logger.info("Launching strike at region %s", region_id)
        await self._send("POST", f"/government/deploy-oreshnik/{region_id}")
