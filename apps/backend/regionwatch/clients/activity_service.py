"""
activity_service.py — Adapter for the per-subject activity log.

GET /user/{subject}?min=<0..1>&max=<0..1>&_cb=<ms>

  200 {"data": [{"dx": .., "dy": ..}, ...]}  → the raw delta records
  404 "No data found for user ..."            → None (no data, not an error)
  anything else                               → ServiceError

Records are returned raw: the reconstructor decides which ones are usable.
The `_cb` cache-buster stops intermediaries from serving a previous
window's response while the user drags the time slider.
"""

import logging
import time
from typing import Any, Optional

import httpx

from regionwatch.clients.base import ApiClient, ServiceError
from regionwatch.models.activity import TimeWindow

logger = logging.getLogger(__name__)

NO_DATA_PREFIX = "No data found for user"


class ActivityServiceClient(ApiClient):
    async def fetch_deltas(self, subject_id: str, window: TimeWindow) -> Optional[list[Any]]:
        params = {
            "min": window.min,
            "max": window.max,
            "_cb": int(time.time() * 1000),
        }
        async with self._client() as client:
            try:
                response = await client.get(f"/user/{subject_id}", params=params)
            except httpx.HTTPError as exc:
                logger.error("Activity request for %s failed: %s", subject_id, exc)
                raise ServiceError(
                    "Failed to fetch user activity due to a network or data parsing issue."
                ) from exc

        if response.status_code == 404 and response.text.startswith(NO_DATA_PREFIX):
            logger.info("No activity recorded for %s in %s", subject_id, window)
            return None
        if response.is_error:
            logger.error(
                "Activity request for %s returned %s: %s",
                subject_id, response.status_code, response.text[:200],
            )
            raise ServiceError(
                f"Failed to fetch user activity (HTTP {response.status_code}).",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise ServiceError(
                "Failed to fetch user activity due to a network or data parsing issue."
            ) from exc
        data = body.get("data") if isinstance(body, dict) else None
        return data if isinstance(data, list) else None
