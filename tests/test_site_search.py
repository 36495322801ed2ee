import asyncio

import pytest

from leadfinder.config.sources import get_site
from leadfinder.errors import ExhaustedError, InvalidRequestError, TransportError
from leadfinder.models.records import LookupOptions, ProgressStage
from leadfinder.scrapers.public_notices import SEARCH_TEXT_FIELD
from leadfinder.services.site_search import SiteSearchService


class RoutedFetcher:
    """Answers per (method, url); a value may be html text or an exception."""

    def __init__(self, routes, default=""):
        self.routes = routes
        self.default = default
        self.calls = []

    async def __call__(self, url, *, method="GET", body=None, headers=None, timeout_ms=0, render=None):
        self.calls.append({"url": url, "method": method, "body": body, "render": render, "timeout_ms": timeout_ms})
        answer = self.routes.get((method, url), self.routes.get(url, self.default))
        if isinstance(answer, Exception):
            raise answer
        return answer


async def _no_sleep(seconds):
    return None


OBIT_LISTING = """
<ul>
  <li><a href="/us/obituaries/houstonchronicle/name/amy-fox?id=5">Amy Fox</a> Humble, May 2, 2024</li>
  <li><a href="/us/obituaries/houstonchronicle/name/bo-gray?id=6">Bo Gray</a> Katy</li>
</ul>
"""
OBIT_DETAIL = (
    '<div data-component="ObituaryBody"><p>She lived a long and generous life in Harris County and taught '
    "school for thirty years. She is survived by her husband Dan. Services at Brookside Funeral Home.</p></div>"
)


def test_stream_event_order_and_detail_enrichment() -> None:
    site = get_site("harris-tx")
    fetch = RoutedFetcher({site.search_url: OBIT_LISTING}, default=OBIT_DETAIL)
    service = SiteSearchService(fetch, sleep=_no_sleep)

    async def run():
        return [event async for event in service.stream(site, LookupOptions())]

    events = asyncio.run(run())

    assert [e.stage for e in events] == [
        ProgressStage.SEARCHING,
        ProgressStage.FOUND,
        ProgressStage.DETAILS,
        ProgressStage.COMPLETE,
    ]
    assert events[1].found == 2
    assert events[2].fetched == events[2].total == 2
    complete = events[-1]
    assert complete.partial is False
    assert [r.name for r in complete.records] == ["Amy Fox", "Bo Gray"]
    assert complete.records[0].survived_by == "is survived by her husband Dan."
    assert complete.records[0].funeral_home.startswith("Services at Brookside Funeral Home")
    assert all(call["render"] is True for call in fetch.calls)
    assert fetch.calls[0]["timeout_ms"] == 45_000


def test_obituary_keyword_goes_into_query_string() -> None:
    site = get_site("harris-tx")
    fetch = RoutedFetcher({}, default=OBIT_LISTING)

    records = asyncio.run(SiteSearchService(fetch).search(site, LookupOptions(keyword="Fox")))

    assert fetch.calls[0]["url"] == f"{site.search_url}?keyword=Fox"
    assert [r.name for r in records] == ["Amy Fox"]


LANDING_PAGE = """
<form>
  <input type="hidden" name="__VIEWSTATE" value="vs">
  <input type="hidden" name="__EVENTVALIDATION" value="ev">
</form>
"""
NOTICE_RESULTS = """
<table id="ctl00_ContentPlaceHolder1_WSExtendedGridNP1_GridView1">
  <tr><th>Notice</th><th>Date</th><th>Paper</th></tr>
  <tr><td><a href="Details.aspx?ID=1">Notice of Foreclosure - Shelby County</a></td><td>05/01/2024</td><td>Shelby Reporter</td></tr>
  <tr><td><a href="Details.aspx?ID=2">Estate of Mary Poe - Mobile County</a></td><td>05/02/2024</td><td>Press-Register</td></tr>
</table>
"""


def test_notice_search_posts_form_when_landing_page_is_empty() -> None:
    site = get_site("al")
    fetch = RoutedFetcher({("GET", site.search_url): LANDING_PAGE, ("POST", site.search_url): NOTICE_RESULTS})

    records = asyncio.run(
        SiteSearchService(fetch).search(site, LookupOptions(keyword="foreclosure", notice_type="Foreclosure"))
    )

    assert [c["method"] for c in fetch.calls] == ["GET", "POST"]
    assert "__VIEWSTATE=vs" in fetch.calls[1]["body"]
    assert "foreclosure" in fetch.calls[1]["body"]
    assert SEARCH_TEXT_FIELD.replace("$", "%24") in fetch.calls[1]["body"]
    assert [r.title for r in records] == ["Notice of Foreclosure - Shelby County"]


def test_notice_postback_failure_returns_empty() -> None:
    site = get_site("tn")
    fetch = RoutedFetcher({("GET", site.search_url): LANDING_PAGE, ("POST", site.search_url): TransportError("502")})

    records = asyncio.run(SiteSearchService(fetch).search(site, LookupOptions(county="Knox")))

    assert records == []


def test_notice_search_requires_keyword_or_county() -> None:
    with pytest.raises(InvalidRequestError):
        asyncio.run(SiteSearchService(RoutedFetcher({})).search(get_site("ga"), LookupOptions()))


def _docket_page(*rows):
    cells = "".join(
        f'<tr><td><a href="GetCaseInformation.aspx?db=tulsa&amp;number={number}">{number}</a></td>'
        f"<td>03/01/2024</td><td>{style}</td></tr>"
        for number, style in rows
    )
    return f"<table>{cells}</table>"


def test_docket_search_merges_case_types_and_drops_duplicates() -> None:
    site = get_site("oscn-tulsa")
    sc_url = f"{site.search_url}?db=tulsa&ct=SC&fd=3%2F1%2F2024"
    cs_url = f"{site.search_url}?db=tulsa&ct=CS&fd=3%2F1%2F2024"
    fetch = RoutedFetcher({
        sc_url: _docket_page(("SC-2024-1", "A LLC v. B"), ("CJ-2024-9", "BANK v. C")),
        cs_url: _docket_page(("CS-2024-2", "D v. E"), ("SC-2024-1", "A LLC v. B")),
    })

    records = asyncio.run(
        SiteSearchService(fetch).search(site, LookupOptions(case_kind="evictions", from_date="2024-03-01"))
    )

    assert [c["url"] for c in fetch.calls] == [sc_url, cs_url]
    assert [r.case_number for r in records] == ["SC-2024-1", "CS-2024-2"]


def test_docket_search_one_type_down_still_returns() -> None:
    site = get_site("oscn-tulsa")
    fetch = RoutedFetcher({
        f"{site.search_url}?db=tulsa&ct=PB": TransportError("reset"),
        f"{site.search_url}?db=tulsa&ct=PG": _docket_page(("PG-2024-3", "IN RE GUARDIANSHIP OF X v. Y")),
    })

    records = asyncio.run(SiteSearchService(fetch).search(site, LookupOptions(case_kind="probate")))

    assert [r.case_number for r in records] == ["PG-2024-3"]


def test_docket_search_all_types_down_is_exhausted() -> None:
    site = get_site("oscn-tulsa")
    fetch = RoutedFetcher({}, default=TransportError("down"))

    with pytest.raises(ExhaustedError) as exc_info:
        asyncio.run(SiteSearchService(fetch).search(site, LookupOptions()))
    assert exc_info.value.retryable
    assert len(fetch.calls) == 2
