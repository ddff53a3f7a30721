# src/sitepulse/analytics/transport.py
"""HTTP delivery for the ingestion endpoint.

Two paths exist:
- IngestionTransport: awaited POST used by ordinary flushes; a non-2xx
  response is a failure. No retry.
- BeaconTransport: fire-and-forget hand-off used when the host is going
  away. The caller learns only whether the hand-off was accepted.
"""

from __future__ import annotations

import threading
from typing import Any, Protocol, runtime_checkable

import httpx
import structlog

logger = structlog.get_logger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}


class IngestionTransport:
    """Async JSON POST client for the ingestion endpoint.

    The underlying httpx.AsyncClient is created lazily on first use, inside
    the running event loop.
    """

    def __init__(self, *, timeout: float = 10.0, client: httpx.AsyncClient | None = None) -> None:
        self._timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, headers=JSON_HEADERS)
        return self._client

    async def post_json(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        """POST ``payload`` as JSON.

        Raises:
            httpx.HTTPError: On transport failure or a non-2xx response.
        """
        response = await self._get_client().post(url, json=payload)
        response.raise_for_status()
        return response

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


@runtime_checkable
class BeaconTransport(Protocol):
    """Non-blocking delivery that survives the caller going away."""

    def send(self, url: str, body: bytes) -> bool:
        """Hand ``body`` off for delivery.

        Returns:
            True if the hand-off was accepted. Delivery itself is never
            confirmed.
        """
        ...


class ThreadedBeacon:
    """Beacon that posts from a background thread.

    The thread is non-daemon, so a normal interpreter exit waits for the
    bounded request to finish. When no new thread can be started (the
    interpreter is finalizing), one bounded inline attempt is made instead.
    """

    def __init__(self, *, timeout: float = 2.0) -> None:
        self._timeout = timeout

    def _post(self, url: str, body: bytes) -> None:
        try:
            response = httpx.post(url, content=body, headers=JSON_HEADERS, timeout=self._timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.debug("Beacon delivery failed", url=url, error=str(e))

    def send(self, url: str, body: bytes) -> bool:
        try:
            if not httpx.URL(url).is_absolute_url:
                return False
        except httpx.InvalidURL:
            return False
        thread = threading.Thread(target=self._post, args=(url, body), name="sitepulse-beacon", daemon=False)
        try:
            thread.start()
        except RuntimeError:
            self._post(url, body)
        return True
