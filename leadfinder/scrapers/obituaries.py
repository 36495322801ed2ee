"""
Obituary listing and detail parsing (Legacy.com style pages).

Listing pages carry the same people several ways: a schema.org ItemList in
ld+json, a JSON state blob with richer per-person profiles, and rendered
cards. Strategies run in that order; the profile blob also enriches the
winning records by full name.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from datetime import datetime, timedelta
from typing import Any

from bs4 import BeautifulSoup
from loguru import logger

from leadfinder.config.settings import DETAIL_BODY_MAX_CHARS, SNIPPET_MAX_CHARS
from leadfinder.models.records import ScrapedRecord
from leadfinder.scrapers.extraction import (
    ExtractionContext,
    ExtractionStrategy,
    RecordExtractor,
    fill_gaps,
)
from leadfinder.scrapers.heuristics import (
    clean_text,
    clip,
    extract_city,
    extract_date,
    extract_funeral_home,
    extract_survived_by,
)

TAG = "[OBITS]"

CARD_SELECTORS = [
    '[data-component="ObituaryCard"]',
    "article",
    ".obituary-listing",
    ".obit-listing",
    '[class*="ObituaryCard"]',
    '[class*="obituary-card"]',
    '[class*="obit-card"]',
]
MIN_CARDS = 3

DETAIL_SELECTORS = [
    '[data-component="ObituaryBody"]',
    '[class*="obituary-body"]',
    '[class*="ObituaryBody"]',
    '[class*="obit-text"]',
    ".obituary-text",
    "#obituary-text",
    "article p",
]

_ITEM_LIST_RE = re.compile(r'"@type"\s*:\s*"ItemList"')
_LIST_ITEM_RE = re.compile(r'"url"\s*:\s*"([^"]+)"\s*,\s*"name"\s*:\s*"([^"]+)"')
_STATE_ASSIGN_RE = re.compile(r"=\s*(\{.*\})\s*;?\s*$", re.DOTALL)
_EXCLUDED_HREF_PARTS = ("/local/", "/browse", "/search")
_EXCLUDED_LINK_WORDS = ("obituar", "browse")
_DATE_FORMATS = ("%m/%d/%Y", "%B %d, %Y", "%B %d %Y", "%b %d, %Y", "%b. %d, %Y", "%b %d %Y")


def normalize_name(name: str) -> str:
    return " ".join((name or "").lower().split())


def _base_record(ctx: ExtractionContext, **fields: Any) -> ScrapedRecord:
    return ScrapedRecord(
        kind="obituary",
        source=ctx.site.name,
        state=ctx.site.state_code,
        county=ctx.site.county,
        **fields,
    )


# ---------------------------------------------------------------------------
# Strategy 1: schema.org ItemList
# ---------------------------------------------------------------------------


def _walk(data: Any) -> Iterator[dict]:
    if isinstance(data, dict):
        yield data
        for value in data.values():
            yield from _walk(value)
    elif isinstance(data, list):
        for value in data:
            yield from _walk(value)


def _image_url(value: Any) -> str | None:
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        return value.get("url") or value.get("contentUrl") or None
    if isinstance(value, list) and value:
        return _image_url(value[0])
    return None


def _item_list_entries(ctx: ExtractionContext) -> list[tuple[str, str, str | None]]:
    entries: list[tuple[str, str, str | None]] = []
    for script in ctx.soup.find_all("script", attrs={"type": "application/ld+json"}):
        text = script.string or script.get_text() or ""
        try:
            data = json.loads(text)
        except ValueError:
            # Broken JSON still often carries the url/name pairs verbatim.
            if _ITEM_LIST_RE.search(text):
                entries.extend((url, name, None) for url, name in _LIST_ITEM_RE.findall(text))
            continue

        for node in _walk(data):
            if node.get("@type") != "ItemList":
                continue
            for element in node.get("itemListElement") or []:
                if not isinstance(element, dict):
                    continue
                item = element.get("item") if isinstance(element.get("item"), dict) else element
                url = item.get("url") or item.get("@id") or element.get("url") or ""
                name = item.get("name") or element.get("name") or ""
                if url and name:
                    entries.append((url, name, _image_url(item.get("image"))))
    return entries


def structured_data_strategy(ctx: ExtractionContext) -> list[ScrapedRecord]:
    return [
        _base_record(ctx, name=clean_text(name), detail_url=ctx.absolute(url), image_url=image)
        for url, name, image in _item_list_entries(ctx)
        if len(clean_text(name)) >= 3
    ]


# ---------------------------------------------------------------------------
# Strategy 2: embedded JSON profiles
# ---------------------------------------------------------------------------


def _script_payloads(soup: BeautifulSoup) -> Iterator[Any]:
    for script in soup.find_all("script"):
        script_type = (script.get("type") or "").lower()
        if script_type == "application/ld+json":
            continue
        text = (script.string or script.get_text() or "").strip()
        if not text:
            continue
        if script_type == "application/json":
            candidate = text
        else:
            match = _STATE_ASSIGN_RE.search(text)
            if not match:
                continue
            candidate = match.group(1)
        try:
            yield json.loads(candidate)
        except ValueError:
            logger.debug(f"{TAG} skipping unparseable script payload ({len(candidate)} chars)")


def _full_name(node: dict) -> str:
    name = node.get("name")
    if isinstance(name, dict):
        return clean_text(name.get("fullName") or "")
    return clean_text(node.get("fullName") or "")


def _locality(location: Any) -> str:
    if isinstance(location, str):
        return clean_text(location)
    if not isinstance(location, dict):
        return ""
    parts = []
    for key in ("city", "state"):
        value = location.get(key)
        if isinstance(value, dict):
            value = value.get("fullName") or value.get("code") or value.get("name")
        if value:
            parts.append(str(value))
    return ", ".join(parts)


def _profile_url(node: dict) -> str:
    links = node.get("links")
    if isinstance(links, dict):
        obit = links.get("obituaryUrl")
        if isinstance(obit, dict) and obit.get("href"):
            return obit["href"]
        if isinstance(obit, str):
            return obit
    return node.get("obituaryUrl") or node.get("url") or ""


def profile_fields(node: dict) -> dict[str, Any]:
    photo = node.get("mainPhoto") or node.get("photo")
    snippet = clean_text(node.get("obitSnippet") or node.get("snippet") or "")
    return {
        "snippet": clip(snippet, SNIPPET_MAX_CHARS),
        "locality": _locality(node.get("location")),
        "date_range": clean_text(str(node.get("fromToYears") or "")),
        "image_url": _image_url(photo) or node.get("photoUrl") or None,
        "detail_url": _profile_url(node),
    }


def embedded_profiles(soup: BeautifulSoup) -> dict[str, dict[str, Any]]:
    """Profiles keyed by normalized full name. First occurrence wins."""
    profiles: dict[str, dict[str, Any]] = {}
    for payload in _script_payloads(soup):
        for node in _walk(payload):
            full_name = _full_name(node)
            if not full_name:
                continue
            if not any(key in node for key in ("obitSnippet", "location", "fromToYears", "mainPhoto", "photo", "links")):
                continue
            key = normalize_name(full_name)
            if key not in profiles:
                profiles[key] = {"name": full_name, **profile_fields(node)}
    return profiles


def embedded_json_strategy(ctx: ExtractionContext) -> list[ScrapedRecord]:
    records = []
    for profile in embedded_profiles(ctx.soup).values():
        if not profile["detail_url"]:
            continue
        fields = dict(profile)
        fields["detail_url"] = ctx.absolute(fields["detail_url"])
        records.append(_base_record(ctx, **fields))
    return records


def embedded_profile_enricher(ctx: ExtractionContext, records: list[ScrapedRecord]) -> None:
    if not records:
        return
    profiles = embedded_profiles(ctx.soup)
    if not profiles:
        return
    enriched = 0
    for record in records:
        profile = profiles.get(normalize_name(record.name))
        if profile is None:
            continue
        fields = {k: v for k, v in profile.items() if k not in ("name", "detail_url")}
        if fill_gaps(record, fields):
            enriched += 1
    logger.debug(f"{TAG} enriched {enriched}/{len(records)} records from embedded profiles")


# ---------------------------------------------------------------------------
# Strategies 3 and 4: DOM cards and bare links
# ---------------------------------------------------------------------------


def card_strategy(ctx: ExtractionContext) -> list[ScrapedRecord]:
    for selector in CARD_SELECTORS:
        cards = ctx.soup.select(selector)
        if len(cards) < MIN_CARDS:
            continue

        records = []
        for card in cards:
            link = card.select_one('a[href*="/obituaries/"]')
            heading = card.select_one('h2, h3, [class*="name"], [class*="Name"]')
            name = clean_text(heading.get_text()) if heading else ""
            if not name and link is not None:
                name = clean_text(link.get_text())
            if len(name) < 3:
                continue

            card_text = clean_text(card.get_text(" "))
            img = card.find("img")
            records.append(
                _base_record(
                    ctx,
                    name=name,
                    date=extract_date(card_text),
                    snippet=clip(card_text, SNIPPET_MAX_CHARS),
                    detail_url=ctx.absolute(link.get("href") if link is not None else ""),
                    image_url=(img.get("src") or None) if img is not None else None,
                )
            )
        if records:
            return records
    return []


def link_scan_strategy(ctx: ExtractionContext) -> list[ScrapedRecord]:
    records = []
    for link in ctx.soup.select('a[href*="/obituaries/"]'):
        href = link.get("href") or ""
        name = clean_text(link.get_text())
        if len(name) < 3:
            continue
        if any(part in href for part in _EXCLUDED_HREF_PARTS):
            continue
        if any(word in name.lower() for word in _EXCLUDED_LINK_WORDS):
            continue

        parent = link.find_parent(["li", "div", "article", "section"])
        parent_text = clean_text(parent.get_text(" ")) if parent is not None else name
        records.append(
            _base_record(
                ctx,
                name=name,
                date=extract_date(parent_text),
                snippet=clip(parent_text, 300),
                detail_url=ctx.absolute(href),
            )
        )
    return records


def free_text_enricher(ctx: ExtractionContext, records: list[ScrapedRecord]) -> None:
    """Derive city, funeral home and survivors from whatever prose a record has."""
    for record in records:
        text = " ".join(part for part in (record.snippet, record.locality) if part)
        if not text:
            continue
        fill_gaps(
            record,
            {
                "city": extract_city(text, ctx.site.cities),
                "funeral_home": extract_funeral_home(record.snippet, limit=100),
                "survived_by": extract_survived_by(record.snippet),
                "date": extract_date(record.snippet),
            },
        )


def build_obituary_extractor() -> RecordExtractor:
    return RecordExtractor(
        strategies=[
            ExtractionStrategy("structured_data", structured_data_strategy),
            ExtractionStrategy("embedded_json", embedded_json_strategy),
            ExtractionStrategy("cards", card_strategy),
            ExtractionStrategy("link_scan", link_scan_strategy),
        ],
        enrichers=[embedded_profile_enricher, free_text_enricher],
    )


# ---------------------------------------------------------------------------
# Detail page
# ---------------------------------------------------------------------------


def parse_obituary_detail(html: str) -> dict[str, Any]:
    soup = BeautifulSoup(html or "", "html.parser")

    body = ""
    for selector in DETAIL_SELECTORS:
        text = clean_text(" ".join(el.get_text(" ") for el in soup.select(selector)))
        if len(text) > 100:
            body = text
            break

    if not body:
        # Largest prose block that is not site chrome.
        for el in soup.find_all(["p", "div"]):
            text = clean_text(el.get_text(" "))
            if len(text) > max(len(body), 200) and "Legacy.com" not in text and "Sign In" not in text:
                body = text

    return {
        "body": body[:DETAIL_BODY_MAX_CHARS],
        "survived_by": extract_survived_by(body, limit=DETAIL_BODY_MAX_CHARS),
        "funeral_home": extract_funeral_home(body),
    }


# ---------------------------------------------------------------------------
# Result filters
# ---------------------------------------------------------------------------


def parse_listing_date(value: str) -> datetime | None:
    value = clean_text(value)
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def filter_obituaries(
    records: list[ScrapedRecord],
    *,
    city: str | None = None,
    keyword: str | None = None,
    days: int | None = None,
    now: datetime | None = None,
) -> list[ScrapedRecord]:
    """Narrow by city, keyword and age. A filter that would empty the list is skipped."""

    def narrow(current: list[ScrapedRecord], keep) -> list[ScrapedRecord]:
        kept = [r for r in current if keep(r)]
        return kept or current

    if city:
        wanted = city.lower()
        records = narrow(records, lambda r: r.city.lower() == wanted or wanted in r.snippet.lower())

    if keyword:
        kw = keyword.lower()
        records = narrow(
            records,
            lambda r: kw in r.name.lower() or kw in r.snippet.lower() or kw in r.survived_by.lower(),
        )

    if days:
        cutoff = (now or datetime.now()) - timedelta(days=days)

        def recent(record: ScrapedRecord) -> bool:
            parsed = parse_listing_date(record.date) if record.date else None
            return parsed is None or parsed >= cutoff

        records = narrow(records, recent)

    return records
