from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal
from urllib.parse import urldefrag

from pydantic import BaseModel, ConfigDict, Field, model_validator

from leadfinder.utils.address import extract_house_number, extract_street_token, normalize_address

PLACEHOLDER_VALUES = {"see case details", "see details", "n/a", "unknown"}


def is_placeholder(value: Any) -> bool:
    """True when a field is empty or holds a sentinel such as 'See Case Details'."""
    if value is None:
        return True
    if isinstance(value, list):
        return len(value) == 0
    text = str(value).strip()
    return not text or text.lower() in PLACEHOLDER_VALUES


@dataclass(frozen=True)
class NormalizedAddress:
    house_number: str
    street_token: str
    full_normalized: str

    @classmethod
    def from_raw(cls, raw: str | None) -> NormalizedAddress:
        full = normalize_address(raw)
        return cls(
            house_number=extract_house_number(full),
            street_token=extract_street_token(full),
            full_normalized=full,
        )

    @property
    def is_structural(self) -> bool:
        return bool(self.house_number)


# ---------------------------------------------------------------------------
# Remote tabular sources
# ---------------------------------------------------------------------------


class AddressComposition(BaseModel):
    """Jurisdiction-specific situs reconstruction when no single address field exists."""

    model_config = ConfigDict(frozen=True)

    house_number_field: str
    street_name_field: str
    parts: tuple[str, ...]


class SourceDescriptor(BaseModel):
    """One remote parcel layer (ArcGIS FeatureServer/MapServer)."""

    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    parcel_field: str
    owner_field: str
    mailing_address_field: str
    mailing_city_field: str
    mailing_zip_field: str
    mailing_state_field: str | None = None
    situs_field: str | None = None
    city_field: str | None = None
    zip_field: str | None = None
    state_field: str | None = None
    default_state: str | None = None
    address_composition: AddressComposition | None = None
    out_fields: tuple[str, ...]

    @model_validator(mode="after")
    def _check_fields(self) -> SourceDescriptor:
        if not self.url.startswith("http"):
            raise ValueError(f"{self.name}: url must be absolute, got {self.url!r}")
        if not self.out_fields:
            raise ValueError(f"{self.name}: out_fields is empty")
        required = [self.parcel_field]
        optional = [self.situs_field, self.city_field, self.zip_field]
        if self.address_composition:
            required.extend(
                [
                    self.address_composition.house_number_field,
                    self.address_composition.street_name_field,
                    *self.address_composition.parts,
                ]
            )
        missing = [f for f in required + [f for f in optional if f] if f not in self.out_fields]
        if missing:
            raise ValueError(f"{self.name}: fields not in out_fields: {', '.join(missing)}")
        return self

    @property
    def supports_address_search(self) -> bool:
        return bool(self.situs_field or self.address_composition)

    def situs_address(self, attrs: dict[str, Any]) -> str:
        """Comparable site address for a returned row."""
        if self.situs_field:
            return str(attrs.get(self.situs_field) or "").strip()
        if self.address_composition:
            parts = [attrs.get(p) for p in self.address_composition.parts]
            kept = [str(p).strip() for p in parts if p is not None and str(p).strip() not in {"", "None"}]
            return " ".join(kept)
        return ""


class StateSources(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    scope: Literal["statewide", "county"]
    sources: tuple[SourceDescriptor, ...]


class CandidateRecord(BaseModel):
    attributes: dict[str, Any]
    match_score: int = Field(ge=0, le=100)
    source_name: str
    matched_on: str = ""


class ParcelMatch(BaseModel):
    """Parcel row mapped onto the fields lead lists care about."""

    source: str
    match_score: int
    input_address: str | None = None
    input_city: str | None = None
    input_zip: str | None = None
    input_parcel_id: str | None = None
    parcel_id: str = ""
    site_address: str = ""
    owner_name: str = ""
    owner_name2: str = ""
    mailing_address: str = ""
    mailing_city: str = ""
    mailing_state: str = ""
    mailing_zip: str = ""
    county: str = ""
    assessed_value: float | None = None
    land_value: float | None = None
    improvement_value: float | None = None
    acres: float | None = None
    property_type: str | None = None
    tax_year: str | None = None


class StreetBlockParcel(BaseModel):
    parcel_id: str = ""
    address: str = ""
    city: str = ""
    zip: str = ""
    owner_name: str = ""
    mailing_address: str = ""
    mailing_city: str = ""
    mailing_state: str = ""
    mailing_zip: str = ""


# ---------------------------------------------------------------------------
# Scraped sites
# ---------------------------------------------------------------------------


class SiteDescriptor(BaseModel):
    """One scraped HTML source (obituary listing, notice portal, court docket)."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    kind: Literal["obituary", "public_notice", "court_case"]
    state_code: str
    base_url: str
    search_url: str
    county: str = ""
    counties: tuple[str, ...] = ()
    cities: tuple[str, ...] = ()
    render_js: bool = False

    @model_validator(mode="after")
    def _check_urls(self) -> SiteDescriptor:
        for value in (self.base_url, self.search_url):
            if not value.startswith("http"):
                raise ValueError(f"{self.id}: url must be absolute, got {value!r}")
        return self


class ScrapedRecord(BaseModel):
    kind: Literal["obituary", "public_notice", "court_case"]
    source: str = ""

    # identity
    name: str = ""
    title: str = ""
    case_number: str = ""

    # free text
    snippet: str = ""
    body: str = ""

    # structured
    date: str = ""
    city: str = ""
    state: str = ""
    county: str = ""
    locality: str = ""
    date_range: str = ""
    funeral_home: str = ""
    survived_by: str = ""
    notice_type: str = ""
    newspaper: str = ""
    plaintiff: str = ""
    defendant: str = ""
    filing_date: str = ""
    status: str = ""
    case_type: str = ""
    case_type_description: str = ""
    property_address: str = ""
    amount: str = ""
    judge: str = ""
    attorneys: list[str] = Field(default_factory=list)

    detail_url: str = ""
    image_url: str | None = None
    pdf_url: str | None = None

    @property
    def identity_key(self) -> str:
        if self.case_number:
            return f"case:{self.case_number.strip().upper()}"
        if self.name:
            return f"name:{' '.join(self.name.lower().split())}|{self.date.strip()}"
        return f"title:{' '.join(self.title.lower().split())}"

    @property
    def dedup_key(self) -> str:
        if self.detail_url:
            return urldefrag(self.detail_url.strip())[0].rstrip("/")
        return self.identity_key


@dataclass
class EnrichmentJob:
    pending: list[ScrapedRecord]
    batch_size: int
    fetched: int = 0
    failed: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.pending)

    def batches(self) -> list[list[ScrapedRecord]]:
        return [self.pending[i : i + self.batch_size] for i in range(0, self.total, self.batch_size)]


# ---------------------------------------------------------------------------
# Caller-facing envelopes
# ---------------------------------------------------------------------------


class ProgressStage(str, Enum):
    SEARCHING = "searching"
    FOUND = "found"
    DETAILS = "details"
    COMPLETE = "complete"
    ERROR = "error"


class ProgressEvent(BaseModel):
    stage: ProgressStage
    message: str
    found: int = 0
    fetched: int = 0
    total: int = 0
    partial: bool = True
    records: list[ScrapedRecord] = Field(default_factory=list)


class LookupStatus(str, Enum):
    OK = "ok"
    ERROR = "error"


class LookupErrorInfo(BaseModel):
    kind: str
    message: str
    retryable: bool = False


class LookupOptions(BaseModel):
    city: str | None = None
    zip: str | None = None
    max_details: int | None = None
    keyword: str | None = None
    county: str | None = None
    notice_type: str | None = None
    days: int | None = None
    case_kind: Literal["evictions", "foreclosures", "probate"] | None = None
    from_date: str | None = None
    to_date: str | None = None


class LookupRequest(BaseModel):
    mode: Literal["identifier", "address", "search"]
    source: str
    target: dict[str, str] = Field(default_factory=dict)
    options: LookupOptions = Field(default_factory=LookupOptions)


class LookupResult(BaseModel):
    status: LookupStatus
    matched: ParcelMatch | None = None
    records: list[ScrapedRecord] | None = None
    error: LookupErrorInfo | None = None

    @classmethod
    def ok_match(cls, matched: ParcelMatch | None) -> LookupResult:
        return cls(status=LookupStatus.OK, matched=matched)

    @classmethod
    def ok_records(cls, records: list[ScrapedRecord]) -> LookupResult:
        return cls(status=LookupStatus.OK, records=records)

    @classmethod
    def failure(cls, kind: str, message: str, retryable: bool = False) -> LookupResult:
        return cls(
            status=LookupStatus.ERROR,
            error=LookupErrorInfo(kind=kind, message=message, retryable=retryable),
        )
