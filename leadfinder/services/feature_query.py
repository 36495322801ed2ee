"""
ArcGIS feature-layer query client.

Parcel layers expose ``{layer}/query`` with a SQL-ish ``where`` fragment.
Rows come back as ``features[].attributes``. A bad field name or malformed
clause returns HTTP 200 with an ``error`` object, which is surfaced as
RemoteQueryError (not a transport failure).
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

import httpx
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from leadfinder.config.settings import QUERY_TIMEOUT_SECONDS, USER_AGENT
from leadfinder.errors import FetchTimeoutError, RemoteQueryError, TransportError
from leadfinder.utils.logging_utils import Timer, log_search


class TabularQuery(Protocol):
    async def __call__(
        self,
        endpoint: str,
        where: str,
        out_fields: Sequence[str],
        max_rows: int,
    ) -> list[dict[str, Any]]: ...


class FeatureQueryClient:
    """Async client for ArcGIS REST ``/query`` endpoints."""

    def __init__(
        self,
        *,
        timeout_seconds: float = QUERY_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> FeatureQueryClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_seconds,
                headers={"Accept": "application/json", "User-Agent": USER_AGENT},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __call__(
        self,
        endpoint: str,
        where: str,
        out_fields: Sequence[str],
        max_rows: int,
    ) -> list[dict[str, Any]]:
        return await self.query(endpoint, where, out_fields, max_rows)

    async def query(
        self,
        endpoint: str,
        where: str,
        out_fields: Sequence[str],
        max_rows: int,
    ) -> list[dict[str, Any]]:
        params = {
            "f": "json",
            "where": where,
            "outFields": ",".join(out_fields),
            "returnGeometry": "false",
            "resultRecordCount": str(max_rows),
        }
        url = f"{endpoint.rstrip('/')}/query"
        with Timer() as timer:
            payload = await self._get_json(url, params)

        if isinstance(payload, dict) and payload.get("error"):
            err = payload["error"]
            message = err.get("message") if isinstance(err, dict) else str(err)
            raise RemoteQueryError(f"ArcGIS rejected query on {endpoint}: {message}")

        features = (payload.get("features") or []) if isinstance(payload, dict) else []
        rows = [f.get("attributes") or {} for f in features if isinstance(f, dict)]
        log_search(
            source=endpoint,
            query=where,
            results_raw=len(rows),
            duration_ms=timer.elapsed_ms,
        )
        return rows

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        retry=retry_if_exception_type(httpx.ConnectError),
        reraise=True,
    )
    async def _send(self, url: str, params: dict[str, str]) -> httpx.Response:
        return await self._get_client().get(url, params=params)

    async def _get_json(self, url: str, params: dict[str, str]) -> Any:
        try:
            response = await self._send(url, params)
        except httpx.TimeoutException as exc:
            raise FetchTimeoutError(
                f"Query timed out after {self.timeout_seconds:.0f}s (service may be cold-starting)",
                url=url,
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Query failed: {exc}", url=url) from exc

        if response.status_code >= 400:
            raise TransportError(
                f"Query returned HTTP {response.status_code}",
                url=url,
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            logger.warning(f"Non-JSON response from {url}: {response.text[:200]!r}")
            raise RemoteQueryError(f"Non-JSON response from {url}") from exc
