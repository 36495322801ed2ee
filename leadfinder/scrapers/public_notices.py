"""
Public notice parsing for the ASP.NET newspaper-notice platforms (AL, TN, GA).

Result pages render one of three shapes: the WSExtendedGrid GridView, a
loose list of NoticeDetail.aspx links, or plain tables inside the content
placeholder. The search page itself is a WebForms postback, so an empty
first page usually means the form has to be submitted.
"""

from __future__ import annotations

import re
from typing import Any

from bs4 import BeautifulSoup, Tag

from leadfinder.config.settings import DETAIL_BODY_MAX_CHARS, TITLE_MAX_CHARS
from leadfinder.models.records import ScrapedRecord
from leadfinder.scrapers.extraction import ExtractionContext, ExtractionStrategy, RecordExtractor
from leadfinder.scrapers.heuristics import clean_text, clip, detect_notice_type, extract_county

NOTICE_SNIPPET_CHARS = 300

GRID_SELECTOR = (
    "#ctl00_ContentPlaceHolder1_WSExtendedGridNP1_GridView1, "
    '[id*="GridView1"], [id*="gvResults"], [id*="gridResults"]'
)
CONTENT_SELECTORS = ["#ContentPlaceHolder1", "#ctl00_ContentPlaceHolder1", ".main-content", "#mainContent"]
NAV_LABELS = {"Search Results", "Home", "Help", "Back", "Reset", "Archive Search"}
NAV_FRAGMENTS = ("Sign In", "Smart Search", "About Public")

DETAIL_SELECTORS = [
    "#ContentPlaceHolder1_lblContent",
    "#ContentPlaceHolder1_pnlNotice",
    ".notice-content",
    ".notice-detail",
    "#notice-text",
    ".content-area",
]

# WebForms field names of the search box, confirmed against live markup.
SEARCH_TEXT_FIELD = "ctl00$ContentPlaceHolder1$as1$txtSearch"
MATCH_MODE_FIELD = "ctl00$ContentPlaceHolder1$as1$hdnField"
SEARCH_BUTTON_FIELD = "ctl00$ContentPlaceHolder1$as1$btnGo"
MATCH_ALL_WORDS = "0"
FORM_STATE_FIELDS = ("__VIEWSTATE", "__VIEWSTATEGENERATOR", "__EVENTVALIDATION")

_SLASH_DATE_RE = re.compile(r"(\d{1,2}/\d{1,2}/\d{4})")


def _row_date(text: str) -> str:
    match = _SLASH_DATE_RE.search(text)
    return match.group(1) if match else ""


def _notice(ctx: ExtractionContext, *, title: str, row_text: str, href: str, newspaper: str = "") -> ScrapedRecord:
    return ScrapedRecord(
        kind="public_notice",
        source=ctx.site.name,
        state=ctx.site.state_code,
        title=clip(title, TITLE_MAX_CHARS),
        date=_row_date(row_text),
        county=extract_county(row_text, ctx.site.counties),
        newspaper=newspaper,
        notice_type=detect_notice_type(f"{title} {row_text}"),
        snippet=clip(row_text, NOTICE_SNIPPET_CHARS),
        detail_url=ctx.absolute(href),
    )


def grid_strategy(ctx: ExtractionContext) -> list[ScrapedRecord]:
    records = []
    for grid in ctx.soup.select(GRID_SELECTOR):
        for index, row in enumerate(grid.find_all("tr")):
            if index == 0 or row.find("th") is not None:
                continue
            link = row.find("a", href=True)
            if link is None:
                continue
            title = clean_text(link.get_text())
            if len(title) < 5:
                continue
            cells = row.find_all("td")
            newspaper = clean_text(cells[-1].get_text()) if len(cells) > 1 else ""
            records.append(
                _notice(
                    ctx,
                    title=title,
                    row_text=clean_text(row.get_text(" ")),
                    href=link["href"],
                    newspaper=newspaper,
                )
            )
    return records


def detail_link_strategy(ctx: ExtractionContext) -> list[ScrapedRecord]:
    records = []
    for link in ctx.soup.select('a[href*="NoticeDetail.aspx"]'):
        title = clean_text(link.get_text())
        if len(title) < 5:
            continue
        container = link.find_parent("tr") or link.find_parent("li") or link.find_parent("div", class_="result")
        row_text = clean_text(container.get_text(" ")) if container is not None else title
        records.append(_notice(ctx, title=title, row_text=row_text, href=link["href"]))
    return records


def _content_scope(soup: BeautifulSoup) -> Tag | BeautifulSoup:
    for selector in CONTENT_SELECTORS:
        found = soup.select_one(selector)
        if found is not None:
            return found
    return soup.body or soup


def table_row_strategy(ctx: ExtractionContext) -> list[ScrapedRecord]:
    records = []
    for row in _content_scope(ctx.soup).select("table tr"):
        link = row.find("a", href=True)
        if link is None:
            continue
        title = clean_text(link.get_text())
        if len(title) < 10 or title in NAV_LABELS:
            continue
        if any(fragment in title for fragment in NAV_FRAGMENTS):
            continue
        row_text = clean_text(row.get_text(" "))
        href = link["href"]
        if not _row_date(row_text) and "Notice" not in href:
            continue
        records.append(_notice(ctx, title=title, row_text=row_text, href=href))
    return records


def build_notice_extractor() -> RecordExtractor:
    return RecordExtractor(
        strategies=[
            ExtractionStrategy("gridview", grid_strategy),
            ExtractionStrategy("notice_detail_links", detail_link_strategy),
            ExtractionStrategy("table_rows", table_row_strategy),
        ],
    )


# ---------------------------------------------------------------------------
# Search form postback
# ---------------------------------------------------------------------------


def extract_form_state(html: str) -> dict[str, str] | None:
    """Hidden WebForms state inputs, or None when the page has no postback form."""
    soup = BeautifulSoup(html or "", "html.parser")
    state = {}
    for name in FORM_STATE_FIELDS:
        field = soup.find("input", attrs={"name": name})
        if field is not None and field.get("value"):
            state[name] = field["value"]
    if not state.get("__VIEWSTATE"):
        return None
    return state


def build_search_form(state: dict[str, str], keyword: str | None) -> dict[str, str]:
    form = dict(state)
    if keyword:
        form[SEARCH_TEXT_FIELD] = keyword
    form[MATCH_MODE_FIELD] = MATCH_ALL_WORDS
    form[SEARCH_BUTTON_FIELD] = ""
    return form


# ---------------------------------------------------------------------------
# Detail page
# ---------------------------------------------------------------------------


def parse_notice_detail(html: str, base_url: str) -> dict[str, Any]:
    soup = BeautifulSoup(html or "", "html.parser")
    ctx_base = base_url.rstrip("/")

    def absolute(href: str) -> str:
        return href if href.startswith("http") else f"{ctx_base}/{href.lstrip('/')}"

    pdf_url: str | None = None
    for link in soup.select('a[href*=".pdf"], a[href*="PDF"], a[href*="download"]'):
        href = link.get("href") or ""
        if ".pdf" in href.lower() or "download" in href.lower():
            pdf_url = absolute(href)

    for embed in soup.select('iframe[src*=".pdf"], embed[src*=".pdf"], object[data*=".pdf"]'):
        src = embed.get("src") or embed.get("data") or ""
        if src:
            pdf_url = absolute(src)

    content = ""
    for selector in DETAIL_SELECTORS:
        region = soup.select_one(selector)
        if region is None:
            continue
        content = clean_text(region.get_text(" "))
        for link in region.select('a[href*=".pdf"]'):
            if link.get("href"):
                pdf_url = absolute(link["href"])
        break

    if not content:
        for el in soup.find_all(["div", "td", "p"]):
            text = clean_text(el.get_text(" "))
            if len(text) > max(len(content), 100) and "Smart Search" not in text and "About Public Notices" not in text:
                content = text

    return {"body": content[:DETAIL_BODY_MAX_CHARS], "pdf_url": pdf_url}


def filter_notices(
    records: list[ScrapedRecord],
    *,
    county: str | None = None,
    notice_type: str | None = None,
) -> list[ScrapedRecord]:
    if county and records:
        wanted = county.lower()
        kept = [r for r in records if r.county.lower() == wanted or wanted in r.snippet.lower()]
        records = kept or records
    type_wanted = (notice_type or "").strip().lower()
    if type_wanted and type_wanted != "all":
        records = [r for r in records if r.notice_type.lower() == type_wanted]
    return records
