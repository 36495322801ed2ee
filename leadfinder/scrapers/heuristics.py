"""
Keyword and regex heuristics for free-text fields of scraped records.

Snippets and detail bodies are unstructured prose, so notice type, county,
funeral home and "survived by" are pulled out with ordered keyword tables
and patterns. First match wins everywhere.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

# Ordered: a trustee-sale notice that also mentions "public sale" is a foreclosure.
NOTICE_TYPE_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("Foreclosure", ("foreclos", "trustee sale", "deed of trust", "mortgage")),
    ("Probate", ("probate", "estate of", "deceased", "letters testamentary", "guardian")),
    ("Tax Sale", ("tax sale", "tax lien", "delinquent tax")),
    ("Public Sale", ("auction", "public sale", "sheriff sale")),
    ("Ordinance", ("ordinance",)),
    ("Bids", ("bid", "rfp", "request for proposal")),
]
DEFAULT_NOTICE_TYPE = "Other"

_WS_RE = re.compile(r"\s+")
_LONG_DATE_RE = re.compile(r"([A-Z][a-z]+\.? \d{1,2},?\s*\d{4})")
_SLASH_DATE_RE = re.compile(r"(\d{1,2}/\d{1,2}/\d{4})")
_DOCKET_DATE_RE = re.compile(r"(\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4})")
_FUNERAL_HOME_RE = re.compile(r"([A-Z][^.]*(?:Funeral|Memorial|Mortuary|Chapel|Cremation)[^.]*\.?)")
_SURVIVED_BY_RE = re.compile(r"(?:is\s+)?survived by[^.]*\.", re.IGNORECASE)


def clean_text(value: str | None) -> str:
    if not value:
        return ""
    return _WS_RE.sub(" ", value).strip()


def clip(value: str, limit: int) -> str:
    return value[:limit].strip()


def detect_notice_type(text: str) -> str:
    lowered = (text or "").lower()
    for label, keywords in NOTICE_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return label
    return DEFAULT_NOTICE_TYPE


def extract_county(text: str, counties: Sequence[str]) -> str:
    """Configured county named in the text.

    An explicit "<County> County" anywhere in the text beats a bare name
    match, so "Clay" in "Clayton" loses to a later "Jackson County".
    """
    if not text:
        return ""
    lowered = text.lower()
    for county in counties:
        if f"{county.lower()} county" in lowered:
            return county
    for county in counties:
        if county in text:
            return county
    return ""


def extract_city(text: str, cities: Iterable[str]) -> str:
    for city in cities:
        if city in text:
            return city
    return ""


def extract_date(text: str) -> str:
    for pattern in (_SLASH_DATE_RE, _LONG_DATE_RE):
        match = pattern.search(text or "")
        if match:
            return match.group(1)
    return ""


def extract_docket_date(text: str) -> str:
    match = _DOCKET_DATE_RE.search(text or "")
    return match.group(1) if match else ""


def extract_funeral_home(text: str, limit: int = 150) -> str:
    match = _FUNERAL_HOME_RE.search(text or "")
    return clip(match.group(1), limit) if match else ""


def extract_survived_by(text: str, limit: int = 200) -> str:
    match = _SURVIVED_BY_RE.search(text or "")
    return clip(match.group(0), limit) if match else ""
