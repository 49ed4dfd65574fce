"""PostgrestClient: executes RowQuery objects against a PostgREST endpoint."""

from __future__ import annotations

import logging

import httpx

from ..types import RowQueryError, RowResult
from .query import RowQuery

logger = logging.getLogger(__name__)


def parse_content_range(value: str | None) -> int | None:
    """Total from a ``Content-Range`` header like ``0-49/1234`` or ``*/0``."""
    if not value or "/" not in value:
        return None
    total = value.rsplit("/", 1)[1].strip()
    return int(total) if total.isdigit() else None


class PostgrestClient:
    """Async row source over ``{base_url}/rest/v1/<table>``."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/rest/v1",
            timeout=httpx.Timeout(timeout, connect=10.0),
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            },
            transport=transport,
        )

    async def execute(self, query: RowQuery) -> RowResult:
        method = "HEAD" if query.head else "GET"
        try:
            response = await self._client.request(
                method,
                f"/{query.table}",
                params=query.to_params(),
                headers=query.to_headers(),
            )
        except httpx.HTTPError as e:
            raise RowQueryError(f"{query.table}: {e}") from e

        if response.status_code not in (200, 206):
            detail = response.text[:200] if not query.head else ""
            logger.warning("Row query on %s failed: HTTP %d", query.table, response.status_code)
            raise RowQueryError(
                f"{query.table}: HTTP {response.status_code} {detail}".rstrip(),
                status_code=response.status_code,
            )

        count = parse_content_range(response.headers.get("content-range")) if query.count else None
        if query.head:
            return RowResult(rows=[], count=count)

        try:
            rows = response.json()
        except ValueError as e:
            raise RowQueryError(f"{query.table}: response is not JSON", status_code=response.status_code) from e
        if not isinstance(rows, list):
            raise RowQueryError(f"{query.table}: expected a JSON array", status_code=response.status_code)
        return RowResult(rows=rows, count=count)

    async def aclose(self) -> None:
        await self._client.aclose()
