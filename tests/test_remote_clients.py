import asyncio

import httpx
import pytest

from leadfinder.errors import FetchTimeoutError, RemoteQueryError, TransportError
from leadfinder.services.feature_query import FeatureQueryClient
from leadfinder.services.http_fetch import HtmlFetcher, proxied_url

ENDPOINT = "https://gis.example.gov/arcgis/rest/services/Parcels/MapServer/0"


def _query(handler, **kwargs):
    async def run():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        async with FeatureQueryClient(timeout_seconds=5, client=client) as query:
            rows = await query(ENDPOINT, "APN = '1'", ("APN", "OWNER"), 25, **kwargs)
        await client.aclose()
        return rows

    return asyncio.run(run())


def test_feature_query_params_and_rows() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url.copy_with(query=None))
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"features": [{"attributes": {"APN": "1", "OWNER": "DOE"}}]})

    rows = _query(handler)

    assert rows == [{"APN": "1", "OWNER": "DOE"}]
    assert seen["url"] == f"{ENDPOINT}/query"
    assert seen["params"] == {
        "f": "json",
        "where": "APN = '1'",
        "outFields": "APN,OWNER",
        "returnGeometry": "false",
        "resultRecordCount": "25",
    }


def test_feature_query_error_payload() -> None:
    def handler(request):
        return httpx.Response(200, json={"error": {"code": 400, "message": "Invalid field: APNX"}})

    with pytest.raises(RemoteQueryError, match="Invalid field"):
        _query(handler)


def test_feature_query_http_error_is_transport() -> None:
    with pytest.raises(TransportError) as exc_info:
        _query(lambda request: httpx.Response(502, text="bad gateway"))
    assert exc_info.value.status_code == 502


def test_feature_query_timeout() -> None:
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(FetchTimeoutError):
        _query(handler)


def test_feature_query_non_json() -> None:
    with pytest.raises(RemoteQueryError):
        _query(lambda request: httpx.Response(200, text="<html>maintenance</html>"))


def test_fetcher_direct_and_non_2xx() -> None:
    def handler(request):
        if request.url.path == "/missing":
            return httpx.Response(404, text="nope")
        assert request.headers["User-Agent"].startswith("Mozilla")
        return httpx.Response(200, text="<html>ok</html>")

    async def run():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        fetcher = HtmlFetcher(proxy_token="", client=client)
        html = await fetcher("https://www.example.com/list")
        with pytest.raises(TransportError) as exc_info:
            await fetcher("https://www.example.com/missing")
        await client.aclose()
        return html, exc_info.value

    html, error = asyncio.run(run())
    assert html == "<html>ok</html>"
    assert error.status_code == 404


def test_fetcher_posts_form_body_through_proxy() -> None:
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["host"] = request.url.host
        seen["params"] = dict(request.url.params)
        seen["body"] = request.content.decode()
        return httpx.Response(200, text="done")

    async def run():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        fetcher = HtmlFetcher(proxy_token="tok", client=client)
        await fetcher("https://www.tnpublicnotice.com/Search.aspx", method="POST", body="a=1&b=2", render=True)
        await client.aclose()

    asyncio.run(run())
    assert seen["method"] == "POST"
    assert seen["host"] == "api.scrape.do"
    assert seen["params"]["url"] == "https://www.tnpublicnotice.com/Search.aspx"
    assert seen["params"]["render"] == "true"
    assert seen["body"] == "a=1&b=2"


def test_fetcher_timeout() -> None:
    def handler(request):
        raise httpx.ConnectTimeout("slow", request=request)

    async def run():
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        try:
            await HtmlFetcher(proxy_token="", client=client)("https://www.example.com/", timeout_ms=10)
        finally:
            await client.aclose()

    with pytest.raises(FetchTimeoutError):
        asyncio.run(run())


def test_proxied_url_encodes_target() -> None:
    url = proxied_url("https://www.oscn.net/dockets/Results.aspx?db=tulsa&ct=SC", "abc")
    assert url.startswith("https://api.scrape.do?token=abc&url=https%3A%2F%2Fwww.oscn.net")
    assert "render=true" not in url
