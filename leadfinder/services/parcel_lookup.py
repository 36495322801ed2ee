"""
Parcel lookup across every configured layer for a state.

Sources are tried in configuration order. One source failing (no match,
unreachable, misconfigured) just moves the lookup on to the next source.
"""

from __future__ import annotations

import re
from typing import Any

from loguru import logger

from leadfinder.config.settings import STREET_BLOCK_MAX_ROWS
from leadfinder.errors import ConfigurationError, ExhaustedError
from leadfinder.models.records import (
    CandidateRecord,
    ParcelMatch,
    SourceDescriptor,
    StateSources,
    StreetBlockParcel,
)
from leadfinder.services.feature_query import TabularQuery
from leadfinder.services.query_resolver import QueryStrategyResolver, like_fragment

TAG = "[PARCEL]"

_MASKED_BLOCK_RE = re.compile(r"^(\d+)XX?\s", re.IGNORECASE)
_MASKED_PREFIX_RE = re.compile(r"^\d*XX?\s+", re.IGNORECASE)
_NUMBER_PREFIX_RE = re.compile(r"^\d+\s+")
_LEADING_NUMBER_RE = re.compile(r"^(\d+)")


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _number(value: Any) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(str(value).replace(",", ""))
    except ValueError:
        return None


def _first(attrs: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = attrs.get(key)
        if value not in (None, ""):
            return value
    return None


def map_candidate(
    source: SourceDescriptor,
    candidate: CandidateRecord,
    **inputs: str | None,
) -> ParcelMatch:
    """Map a raw parcel row onto ParcelMatch, using the per-county fallbacks."""
    attrs = candidate.attributes

    if source.mailing_state_field:
        mailing_state = _text(attrs.get(source.mailing_state_field))
    else:
        mailing_state = source.default_state or ""

    mailing_zip = _text(attrs.get(source.mailing_zip_field))
    zip4 = _text(_first(attrs, f"{source.mailing_zip_field}_", "OWNER_ZIP_"))
    if mailing_zip and zip4:
        mailing_zip = f"{mailing_zip}-{zip4}"

    tax_year = _first(attrs, "TAXROLLYEAR", "TAX_YEAR")
    property_type = _first(attrs, "PROPCLASS", "PROPERTY_TYPE", "UseType")

    return ParcelMatch(
        source=source.name,
        match_score=candidate.match_score,
        parcel_id=_text(attrs.get(source.parcel_field)),
        site_address=source.situs_address(attrs),
        owner_name=_text(attrs.get(source.owner_field)),
        owner_name2=_text(_first(attrs, f"{source.owner_field}2", "OWNERNME2", "TAXPANAME2")),
        mailing_address=_text(attrs.get(source.mailing_address_field)),
        mailing_city=_text(attrs.get(source.mailing_city_field)),
        mailing_state=mailing_state,
        mailing_zip=mailing_zip,
        county=_text(_first(attrs, "COUNTY", "CONAME")) or source.name,
        assessed_value=_number(_first(attrs, "CNTASSDVALUE", "ASSESSED_VALUE")),
        land_value=_number(_first(attrs, "LNDVALUE", "LAND_VALUE")),
        improvement_value=_number(_first(attrs, "IMPVALUE", "IMP_VALUE")),
        acres=_number(_first(attrs, "GISACRES", "DEEDACRES", "ACRES", "ACREAGE")),
        property_type=_text(property_type) or None,
        tax_year=_text(tax_year) or None,
        **inputs,
    )


class ParcelLookupService:
    """Resolve parcels by id or address across a state's configured layers."""

    def __init__(self, query: TabularQuery, resolver: QueryStrategyResolver | None = None) -> None:
        self.query = query
        self.resolver = resolver or QueryStrategyResolver(query)

    async def lookup_by_parcel(self, state: StateSources, parcel_id: str) -> ParcelMatch | None:
        async def attempt(source: SourceDescriptor) -> CandidateRecord | None:
            return await self.resolver.resolve_by_identifier(parcel_id, source)

        found = await self._across_sources(state, attempt)
        if found is None:
            return None
        source, candidate = found
        return map_candidate(source, candidate, input_parcel_id=parcel_id)

    async def lookup_by_address(
        self,
        state: StateSources,
        address: str,
        *,
        city: str | None = None,
        zip_code: str | None = None,
    ) -> ParcelMatch | None:
        async def attempt(source: SourceDescriptor) -> CandidateRecord | None:
            return await self.resolver.resolve_by_address(address, source, city=city, zip_code=zip_code)

        found = await self._across_sources(state, attempt)
        if found is None:
            return None
        source, candidate = found
        return map_candidate(
            source,
            candidate,
            input_address=address,
            input_city=city,
            input_zip=zip_code,
        )

    async def _across_sources(self, state: StateSources, attempt) -> tuple[SourceDescriptor, CandidateRecord] | None:
        unreachable: list[ExhaustedError] = []
        for source in state.sources:
            try:
                candidate = await attempt(source)
            except ExhaustedError as exc:
                logger.warning(f"{TAG} {source.name} unreachable, trying next source: {exc}")
                unreachable.append(exc)
                continue
            except ConfigurationError as exc:
                logger.warning(f"{TAG} {source.name} skipped: {exc}")
                continue
            if candidate is not None:
                return source, candidate

        if unreachable and len(unreachable) == len(state.sources):
            raise ExhaustedError(
                f"All {len(state.sources)} {state.name} sources unreachable",
                retryable=True,
                timed_out=all(e.timed_out for e in unreachable),
            )
        return None

    async def search_street_block(self, street_address: str, source: SourceDescriptor) -> list[StreetBlockParcel]:
        """List parcels on a street, narrowed to a masked hundred block ("1XX N 31ST AV")."""
        street_name = _MASKED_PREFIX_RE.sub("", street_address.strip())
        street_name = _NUMBER_PREFIX_RE.sub("", street_name).strip().upper()
        if not street_name:
            raise ValueError("Could not extract street name from address")
        if not source.situs_field:
            raise ConfigurationError(f"{source.name} does not have a situs address field configured")

        block_match = _MASKED_BLOCK_RE.match(street_address.strip())
        block_number = int(block_match.group(1)) if block_match else None

        where = f"UPPER({source.situs_field}) LIKE '%{like_fragment(street_name)}%'"
        logger.info(f"{TAG} street={street_name!r} block={block_number or 'N/A'} source={source.name}")
        rows = await self.query(source.url, where, source.out_fields, STREET_BLOCK_MAX_ROWS)

        if block_number is not None:
            start = block_number * 100
            end = start + 99
            kept = []
            for attrs in rows:
                house = _LEADING_NUMBER_RE.match(_text(attrs.get(source.situs_field)))
                if house is None or start <= int(house.group(1)) <= end:
                    kept.append(attrs)
            rows = kept

        return [
            StreetBlockParcel(
                parcel_id=_text(attrs.get(source.parcel_field)),
                address=_text(attrs.get(source.situs_field)),
                city=_text(attrs.get(source.city_field)) if source.city_field else "",
                zip=_text(attrs.get(source.zip_field)) if source.zip_field else "",
                owner_name=_text(attrs.get(source.owner_field)),
                mailing_address=_text(attrs.get(source.mailing_address_field)),
                mailing_city=_text(attrs.get(source.mailing_city_field)),
                mailing_state=_text(attrs.get(source.mailing_state_field)) if source.mailing_state_field else "",
                mailing_zip=_text(attrs.get(source.mailing_zip_field)),
            )
            for attrs in rows
        ]
