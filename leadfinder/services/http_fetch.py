"""
HTML document fetcher.

Listing and detail pages are fetched either directly or through the
Scrape.do proxy (``SCRAPE_DO_API_KEY``) for sites that block datacenter IPs
or need JS rendering. Every call carries its own deadline.
"""

from __future__ import annotations

from typing import Protocol
from urllib.parse import quote

import httpx
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from leadfinder.config.settings import (
    FETCH_TIMEOUT_MS,
    SCRAPE_DO_API_KEY,
    SCRAPE_DO_ENDPOINT,
    USER_AGENT,
)
from leadfinder.errors import FetchTimeoutError, TransportError

TAG = "[FETCH]"


class DocumentFetcher(Protocol):
    async def __call__(
        self,
        url: str,
        *,
        method: str = "GET",
        body: str | None = None,
        headers: dict[str, str] | None = None,
        timeout_ms: int = FETCH_TIMEOUT_MS,
        render: bool | None = None,
    ) -> str: ...


def proxied_url(url: str, token: str, *, render: bool = False) -> str:
    """Wrap a target URL in a Scrape.do request."""
    proxied = f"{SCRAPE_DO_ENDPOINT}?token={token}&url={quote(url, safe='')}&super=true&geoCode=us"
    if render:
        proxied += "&render=true"
    return proxied


class HtmlFetcher:
    """Fetch HTML text; raise TransportError / FetchTimeoutError on failure."""

    def __init__(
        self,
        *,
        proxy_token: str | None = None,
        render_js: bool = False,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.proxy_token = SCRAPE_DO_API_KEY if proxy_token is None else proxy_token
        self.render_js = render_js
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> HtmlFetcher:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=True)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __call__(
        self,
        url: str,
        *,
        method: str = "GET",
        body: str | None = None,
        headers: dict[str, str] | None = None,
        timeout_ms: int = FETCH_TIMEOUT_MS,
        render: bool | None = None,
    ) -> str:
        return await self.fetch_document(
            url, method=method, body=body, headers=headers, timeout_ms=timeout_ms, render=render
        )

    async def fetch_document(
        self,
        url: str,
        *,
        method: str = "GET",
        body: str | None = None,
        headers: dict[str, str] | None = None,
        timeout_ms: int = FETCH_TIMEOUT_MS,
        render: bool | None = None,
    ) -> str:
        render_js = self.render_js if render is None else render
        target = proxied_url(url, self.proxy_token, render=render_js) if self.proxy_token else url
        request_headers = {
            "Accept": "text/html,application/xhtml+xml",
            "User-Agent": USER_AGENT,
        }
        if headers:
            request_headers.update(headers)

        logger.debug(f"{TAG} {method} {url} (timeout={timeout_ms}ms, proxied={bool(self.proxy_token)})")
        try:
            response = await self._send(method, target, body, request_headers, timeout_ms / 1000)
        except httpx.TimeoutException as exc:
            raise FetchTimeoutError(f"Timed out after {timeout_ms}ms fetching {url}", url=url) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Fetch failed for {url}: {exc}", url=url) from exc

        if not response.is_success:
            logger.warning(f"{TAG} HTTP {response.status_code} for {url}: {response.text[:200]!r}")
            raise TransportError(
                f"HTTP {response.status_code} fetching {url}",
                url=url,
                status_code=response.status_code,
            )
        return response.text

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        retry=retry_if_exception_type(httpx.ConnectError),
        reraise=True,
    )
    async def _send(
        self,
        method: str,
        url: str,
        body: str | None,
        headers: dict[str, str],
        timeout: float,
    ) -> httpx.Response:
        return await self._get_client().request(
            method, url, content=body, headers=headers, timeout=timeout
        )
