"""
base.py — Shared plumbing for the upstream REST adapters.

Every adapter opens a short-lived httpx.AsyncClient per call and converts
any transport error or non-2xx status into a ServiceError carrying a short, human
readable message. Callers decide whether that message reaches the user.

Tests pass `transport=httpx.MockTransport(handler)` instead of patching.
"""

import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """An upstream request failed (network error or non-2xx response)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Content-Type": "application/json"},
        )

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        async with self._client() as client:
            try:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "%s %s failed: %s — %s",
                    method, path,
                    exc.response.status_code,
                    exc.response.text[:200],
                )
                raise ServiceError(
                    f"{method} {path} returned HTTP {exc.response.status_code}",
                    status_code=exc.response.status_code,
                ) from exc
            except httpx.HTTPError as exc:
                logger.error("%s %s request failed: %s", method, path, exc)
                raise ServiceError(f"{method} {path} failed: {exc}") from exc

    async def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._send(method, path, **kwargs)
        try:
            return response.json() if response.content else None
        except ValueError as exc:
            raise ServiceError(f"{method} {path} returned invalid JSON") from exc
