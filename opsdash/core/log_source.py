"""HTTP client for the log fetch proxy's folder endpoint."""

from __future__ import annotations

import logging

import httpx

from ..types import LogFetchError

logger = logging.getLogger(__name__)


class HttpLogSource:
    """POSTs ``{"folder": ...}`` to the proxy and returns the nested ``data`` mapping."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0),
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    async def fetch_folder(self, folder: str) -> dict:
        try:
            response = await self._client.post(self.api_url, json={"folder": folder})
        except httpx.HTTPError as e:
            raise LogFetchError(f"Failed to fetch logs: {e}") from e

        if response.status_code != 200:
            raise LogFetchError(f"Failed to fetch logs: HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise LogFetchError("Failed to fetch logs: response is not JSON") from e

        data = body.get("data") if isinstance(body, dict) else None
        return data if isinstance(data, dict) else {}

    async def aclose(self) -> None:
        await self._client.aclose()
