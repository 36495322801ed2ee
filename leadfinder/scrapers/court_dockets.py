"""
Oklahoma State Courts Network (OSCN) docket results and case pages.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any
from urllib.parse import parse_qs, quote, urlencode, urljoin, urlparse

from bs4 import BeautifulSoup

from leadfinder.models.records import ScrapedRecord, SiteDescriptor
from leadfinder.scrapers.extraction import ExtractionContext, ExtractionStrategy, RecordExtractor
from leadfinder.scrapers.heuristics import clean_text, clip, extract_docket_date

CASE_DETAILS_PLACEHOLDER = "See Case Details"
DEFAULT_STATUS = "Filed"
CASE_LINK_BASE = "https://www.oscn.net/dockets/GetCaseInformation.aspx"

CASE_TYPE_DESCRIPTIONS = {
    "SC": "Small Claims",
    "CS": "Civil Small Claims",
    "CV": "Civil",
    "CJ": "Civil General",
    "FD": "Forcible Entry & Detainer",
    "PB": "Probate",
    "PG": "Guardianship",
    "CF": "Criminal Felony",
    "CM": "Criminal Misdemeanor",
    "TR": "Traffic",
    "JD": "Juvenile Delinquent",
    "JM": "Juvenile Miscellaneous",
}

DEFAULT_CASE_TYPES = {
    "evictions": ("SC", "CS"),
    "foreclosures": ("CV", "CJ"),
    "probate": ("PB", "PG"),
}

_CASE_TYPE_RE = re.compile(r"^([A-Z]{2})", re.IGNORECASE)
_PARTIES_RE = re.compile(r"^(.+?)\s+(?:vs?\.?|versus)\s+(.+)$", re.IGNORECASE)
_ROW_STATUS_RE = re.compile(r"(?:status|disposition)[:\s]+([^\n]+)", re.IGNORECASE)

_STYLE_RE = re.compile(r"(?:Case\s+Style|Style)[:\s]*([^\n]+?)\s+(?:vs?\.?|versus)\s+([^\n]+)", re.IGNORECASE)
_FILED_RE = re.compile(r"(?:Filed|Filing\s+Date)[:\s]*(\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4})", re.IGNORECASE)
_ADDRESS_PATTERNS = [
    re.compile(
        r"(?:(?:Real\s+|Subject\s+)?Property(?:\s+Address)?|Address)[:\s]*([^\n]+"
        r"(?:Street|St|Avenue|Ave|Road|Rd|Drive|Dr|Lane|Ln|Boulevard|Blvd|Way|Court|Ct)\b[^\n]*)",
        re.IGNORECASE,
    ),
    re.compile(
        r"(\d+\s+[A-Za-z0-9 ]+(?:Street|St|Avenue|Ave|Road|Rd|Drive|Dr|Lane|Ln|Boulevard|Blvd|Way|Court|Ct)\b"
        r"[^,\n]*(?:,\s*[A-Za-z ]+,?\s*(?:OK|Oklahoma)\s*\d{5})?)",
        re.IGNORECASE,
    ),
]
_AMOUNT_PATTERNS = [
    re.compile(r"(?:Amount|Judgment|Principal|Claim)[:\s]*\$?([\d,]+(?:\.\d+)?)", re.IGNORECASE),
    re.compile(r"\$([\d,]+(?:\.\d+)?)"),
]
_JUDGE_RE = re.compile(r"(?:Assigned\s+Judge|Judge)[:\s]+([^\n]+)", re.IGNORECASE)
_STATUS_RE = re.compile(r"(?:Case\s+Status|Disposition|Status)[:\s]+([^\n]+)", re.IGNORECASE)
_DISPOSED_RE = re.compile(r"\b(DISPOSED|CLOSED|DISMISSED|JUDGMENT)\b")
_ATTORNEY_RE = re.compile(r"(?:Attorney|Counsel)[:\s]+([^\n]+)", re.IGNORECASE)


def case_link(db: str, case_number: str) -> str:
    return f"{CASE_LINK_BASE}?db={db}&number={quote(case_number)}"


def case_type_of(case_number: str) -> str:
    match = _CASE_TYPE_RE.match(case_number or "")
    return match.group(1).upper() if match else ""


def _docket_date_param(value: str) -> str:
    """OSCN wants M/D/YYYY without zero padding; ISO dates are converted."""
    try:
        parsed = datetime.strptime(value.strip(), "%Y-%m-%d")
    except ValueError:
        return value.strip()
    return f"{parsed.month}/{parsed.day}/{parsed.year}"


def build_search_url(site: SiteDescriptor, case_type: str, from_date: str | None = None, to_date: str | None = None) -> str:
    params = {"db": site.county, "ct": case_type}
    if from_date:
        params["fd"] = _docket_date_param(from_date)
    if to_date:
        params["td"] = _docket_date_param(to_date)
    return f"{site.search_url}?{urlencode(params)}"


def _split_parties(cells: list[str]) -> tuple[str, str]:
    for text in cells:
        match = _PARTIES_RE.match(text)
        if match:
            return clip(match.group(1), 100), clip(match.group(2), 100)
    return "", ""


def case_link_strategy(ctx: ExtractionContext) -> list[ScrapedRecord]:
    records = []
    county = ctx.site.county.title()
    for link in ctx.soup.select('a[href*="GetCaseInformation.aspx"]'):
        query = parse_qs(urlparse(urljoin(ctx.site.search_url, link["href"])).query)
        db = (query.get("db") or [ctx.site.county])[0]
        case_number = (query.get("number") or [""])[0].strip()
        if not case_number:
            continue

        row = link.find_parent("tr")
        if row is not None:
            cells = [clean_text(td.get_text(" ")) for td in row.find_all("td")]
            row_text = row.get_text("\n")
        else:
            cells = []
            row_text = link.parent.get_text("\n") if link.parent is not None else ""

        plaintiff, defendant = _split_parties(cells)
        status_match = _ROW_STATUS_RE.search(row_text)
        case_type = case_type_of(case_number)
        records.append(
            ScrapedRecord(
                kind="court_case",
                source=ctx.site.name,
                state=ctx.site.state_code,
                county=county,
                case_number=case_number,
                title=clean_text(" ".join(cells)) or case_number,
                filing_date=extract_docket_date(row_text),
                case_type=case_type,
                case_type_description=CASE_TYPE_DESCRIPTIONS.get(case_type, case_type),
                plaintiff=plaintiff or CASE_DETAILS_PLACEHOLDER,
                defendant=defendant or CASE_DETAILS_PLACEHOLDER,
                status=clip(clean_text(status_match.group(1)), 50) if status_match else DEFAULT_STATUS,
                detail_url=case_link(db, case_number),
            )
        )
    return records


def build_docket_extractor() -> RecordExtractor:
    return RecordExtractor(strategies=[ExtractionStrategy("case_links", case_link_strategy)])


def filter_case_types(records: list[ScrapedRecord], case_types: tuple[str, ...] | list[str]) -> list[ScrapedRecord]:
    wanted = {t.upper() for t in case_types}
    return [r for r in records if r.case_type in wanted]


# ---------------------------------------------------------------------------
# Case page
# ---------------------------------------------------------------------------


def _party_table_names(soup: BeautifulSoup) -> tuple[str, str]:
    plaintiff = defendant = ""
    for header in soup.find_all(string=re.compile(r"Party\s+Name", re.IGNORECASE)):
        table = header.find_next("table")
        if table is None:
            continue
        for row in table.find_all("tr"):
            text = clean_text(row.get_text(" "))
            name = re.sub(r",?\s*(?:Plaintiff|Defendant)\b.*$", "", text, flags=re.IGNORECASE).strip(" ,")
            if not plaintiff and re.search(r"\bPlaintiff\b", text, re.IGNORECASE):
                plaintiff = name
            elif not defendant and re.search(r"\bDefendant\b", text, re.IGNORECASE):
                defendant = name
        if plaintiff or defendant:
            break
    return plaintiff, defendant


def parse_case_detail(html: str) -> dict[str, Any]:
    """Party names, dates, money and people from an OSCN case page.

    Only the fields actually found are returned, so merging never blanks
    out what the results row already had.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    text = "\n".join(clean_text(line) for line in soup.get_text("\n").splitlines() if line.strip())

    plaintiff, defendant = _party_table_names(soup)
    if not plaintiff or not defendant:
        style = _STYLE_RE.search(text)
        if style:
            plaintiff = plaintiff or clean_text(style.group(1))
            defendant = defendant or clean_text(style.group(2))

    details: dict[str, Any] = {"plaintiff": plaintiff, "defendant": defendant}

    filed = _FILED_RE.search(text)
    details["filing_date"] = filed.group(1) if filed else ""

    details["property_address"] = ""
    for pattern in _ADDRESS_PATTERNS:
        match = pattern.search(text)
        if match:
            details["property_address"] = clean_text(match.group(1))
            break

    details["amount"] = ""
    for pattern in _AMOUNT_PATTERNS:
        match = pattern.search(text)
        if match:
            details["amount"] = f"${match.group(1)}"
            break

    judge = _JUDGE_RE.search(text)
    details["judge"] = clean_text(judge.group(1)) if judge else ""

    status = _STATUS_RE.search(text) or _DISPOSED_RE.search(text)
    details["status"] = clean_text(status.group(1)) if status else ""

    attorneys: list[str] = []
    for match in _ATTORNEY_RE.finditer(text):
        name = clean_text(match.group(1))
        if name and name not in attorneys:
            attorneys.append(name)
    details["attorneys"] = attorneys

    return {key: value for key, value in details.items() if value}
