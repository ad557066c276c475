"""HTTP client for a running control panel.

Used by the command-line interface to query status and drive the
managed server remotely.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

import httpx

from serverpanel.domain.models import ServerStatus

logger = logging.getLogger(__name__)


class PanelClient:
    """Talks to the serverpanel HTTP API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        password: str | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._password = password
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        """Create the HTTP client and verify the panel is reachable."""
        auth = httpx.BasicAuth("admin", self._password) if self._password is not None else None
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._timeout, read=None),
            auth=auth,
        )
        try:
            resp = await self._client.get("/health")
            resp.raise_for_status()
            logger.info("Connected to panel at %s", self._base_url)
        except Exception as e:
            await self._client.aclose()
            self._client = None
            raise PanelClientError(f"Failed to connect to panel: {e}") from e

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def status(self) -> ServerStatus:
        client = self._require_client()
        try:
            resp = await client.get("/status")
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise PanelClientError(f"GET /status failed: {e}") from e
        return ServerStatus.model_validate(resp.json())

    def version(self) -> AsyncIterator[bytes]:
        return self._stream("GET", "/version")

    def stop_server(self) -> AsyncIterator[bytes]:
        return self._stream("POST", "/stop-server")

    def start_server(self, **params: object) -> AsyncIterator[bytes]:
        return self._stream("POST", "/start-server", json=params)

    async def _stream(
        self, method: str, path: str, json: dict | None = None
    ) -> AsyncIterator[bytes]:
        client = self._require_client()
        try:
            async with client.stream(method, path, json=json) as resp:
                resp.raise_for_status()
                async for chunk in resp.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as e:
            raise PanelClientError(f"{method} {path} failed: {e}") from e

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise PanelClientError("Not connected to panel")
        return self._client

    async def __aenter__(self) -> PanelClient:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        await self.disconnect()


class PanelClientError(Exception):
    """Raised when a request to the panel fails."""
