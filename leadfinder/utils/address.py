"""
Address normalization and fuzzy matching.

Situs addresses come back from parcel layers in whatever shape the county
chose ("100 N 31ST AVE", "100 n. 31st Avenue,"). Everything is compared in
one canonical form: uppercase, no commas/periods, single spaces, final
street suffix abbreviated.
"""

from __future__ import annotations

import re

from rapidfuzz import fuzz

STREET_TYPE_MAP: dict[str, str] = {
    "AV": "AVE",
    "AVENUE": "AVE",
    "STREET": "ST",
    "STR": "ST",
    "ROAD": "RD",
    "DRIVE": "DR",
    "LANE": "LN",
    "COURT": "CT",
    "BOULEVARD": "BLVD",
    "PLACE": "PL",
    "CIRCLE": "CIR",
    "TERRACE": "TER",
    "HIGHWAY": "HWY",
    "FREEWAY": "FWY",
    "PARKWAY": "PKWY",
    "WAY": "WAY",
    "TRAIL": "TRL",
}

DIRECTIONALS = frozenset(
    {"N", "S", "E", "W", "NE", "NW", "SE", "SW", "NORTH", "SOUTH", "EAST", "WEST"}
)

_PUNCT_RE = re.compile(r"[,.]")
_WS_RE = re.compile(r"\s+")
_HOUSE_NUMBER_RE = re.compile(r"^(\d+)\b")


def normalize_address(address: str | None) -> str:
    """Canonical uppercase form used for both querying and scoring."""
    if not address:
        return ""
    normalized = _PUNCT_RE.sub(" ", str(address).upper())
    parts = _WS_RE.sub(" ", normalized).strip().split(" ")
    parts = [p for p in parts if p]
    if parts and parts[-1] in STREET_TYPE_MAP:
        parts[-1] = STREET_TYPE_MAP[parts[-1]]
    return " ".join(parts)


def extract_house_number(address: str | None) -> str:
    """Leading digit run, or "" when the address has no house number."""
    match = _HOUSE_NUMBER_RE.match((address or "").strip())
    return match.group(1) if match else ""


def extract_street_token(address: str | None) -> str:
    """First street-name word after the house number, skipping one directional.

    "100 N 31ST AVE" -> "31ST", "1500 ELM ST" -> "ELM".
    """
    parts = (address or "").split()
    if len(parts) < 2:
        return ""
    index = 1
    if parts[index].upper() in DIRECTIONALS:
        index += 1
    return parts[index] if index < len(parts) else ""


def similarity_score(first: str | None, second: str | None) -> int:
    """0-100 similarity of two addresses after normalization. Empty side scores 0."""
    if not first or not second:
        return 0
    norm1 = normalize_address(first)
    norm2 = normalize_address(second)
    if not norm1 or not norm2:
        return 0
    return int(round(fuzz.ratio(norm1, norm2)))


def zip_prefix(value: object, length: int = 5) -> str:
    return str(value or "").strip()[:length]
