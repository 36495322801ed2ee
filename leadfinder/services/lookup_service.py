"""
Caller-facing lookup entry point.

Every request returns a LookupResult. Errors are reported in the result
envelope with a kind and a retry hint; they never escape as exceptions.
Anything outside the LeadFinderError hierarchy is logged with its traceback
and reported as kind "internal".
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from loguru import logger

from leadfinder.config.sources import get_site, get_state_sources
from leadfinder.errors import InvalidRequestError, LeadFinderError
from leadfinder.models.records import (
    LookupRequest,
    LookupResult,
    ProgressEvent,
    ProgressStage,
)
from leadfinder.services.feature_query import TabularQuery
from leadfinder.services.http_fetch import DocumentFetcher
from leadfinder.services.parcel_lookup import ParcelLookupService
from leadfinder.services.site_search import SiteSearchService

TAG = "[LOOKUP]"


def _target(request: LookupRequest, *keys: str) -> str:
    for key in keys:
        value = (request.target.get(key) or "").strip()
        if value:
            return value
    raise InvalidRequestError(f"{request.mode} lookup needs one of: {', '.join(keys)}")


def failure_from(exc: LeadFinderError) -> LookupResult:
    return LookupResult.failure(exc.kind, str(exc), retryable=exc.retryable)


class LookupService:
    def __init__(
        self,
        query: TabularQuery,
        fetch: DocumentFetcher,
        *,
        parcels: ParcelLookupService | None = None,
        sites: SiteSearchService | None = None,
    ) -> None:
        self.parcels = parcels or ParcelLookupService(query)
        self.sites = sites or SiteSearchService(fetch)

    async def handle(self, request: LookupRequest) -> LookupResult:
        logger.info(f"{TAG} mode={request.mode} source={request.source} target={request.target}")
        try:
            if request.mode == "identifier":
                state = get_state_sources(request.source)
                parcel_id = _target(request, "parcel_id", "identifier")
                return LookupResult.ok_match(await self.parcels.lookup_by_parcel(state, parcel_id))

            if request.mode == "address":
                state = get_state_sources(request.source)
                address = _target(request, "address")
                matched = await self.parcels.lookup_by_address(
                    state,
                    address,
                    city=request.options.city or request.target.get("city"),
                    zip_code=request.options.zip or request.target.get("zip"),
                )
                return LookupResult.ok_match(matched)

            site = get_site(request.source)
            records = await self.sites.search_with_details(site, request.options)
            return LookupResult.ok_records(records)
        except LeadFinderError as exc:
            logger.warning(f"{TAG} {request.mode} lookup on {request.source} failed ({exc.kind}): {exc}")
            return failure_from(exc)
        except Exception:
            logger.exception(f"{TAG} {request.mode} lookup on {request.source} crashed")
            return LookupResult.failure("internal", "Unexpected error while handling the request", retryable=False)

    async def stream(self, request: LookupRequest) -> AsyncIterator[ProgressEvent]:
        """Progress events for a search request; failures end the stream with an error event."""
        try:
            if request.mode != "search":
                raise InvalidRequestError("Streaming is only available for search requests")
            site = get_site(request.source)
            async for event in self.sites.stream(site, request.options):
                yield event
        except LeadFinderError as exc:
            logger.warning(f"{TAG} stream for {request.source} failed ({exc.kind}): {exc}")
            yield ProgressEvent(stage=ProgressStage.ERROR, message=str(exc) or "Search failed", partial=False)
        except Exception:
            logger.exception(f"{TAG} stream for {request.source} crashed")
            yield ProgressEvent(stage=ProgressStage.ERROR, message="Unexpected error during search", partial=False)
