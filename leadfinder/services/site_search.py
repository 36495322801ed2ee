"""
Search a configured listing site and stream progress while details load.

One service covers all three site kinds; each kind differs only in how the
listing URL is built, which extractor parses it and which detail parser
fills the gaps afterwards.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from functools import partial
from typing import Any
from urllib.parse import urlencode

from loguru import logger

from leadfinder.config.settings import FETCH_TIMEOUT_MS, RENDERED_FETCH_TIMEOUT_MS
from leadfinder.errors import ExhaustedError, InvalidRequestError, TransportError
from leadfinder.models.records import (
    LookupOptions,
    ProgressEvent,
    ProgressStage,
    ScrapedRecord,
    SiteDescriptor,
)
from leadfinder.scrapers import court_dockets, obituaries, public_notices
from leadfinder.scrapers.extraction import RecordExtractor
from leadfinder.services.enrichment import DetailEnrichmentScheduler
from leadfinder.services.http_fetch import DocumentFetcher
from leadfinder.utils.logging_utils import Timer, log_search

TAG = "[SEARCH]"


@dataclass(frozen=True)
class SiteProfile:
    extractor_factory: Callable[[], RecordExtractor]
    parse_detail: Callable[..., dict[str, Any]]
    key_fields: tuple[str, ...]


PROFILES: dict[str, SiteProfile] = {
    "obituary": SiteProfile(
        obituaries.build_obituary_extractor,
        obituaries.parse_obituary_detail,
        ("survived_by", "funeral_home"),
    ),
    "public_notice": SiteProfile(
        public_notices.build_notice_extractor,
        public_notices.parse_notice_detail,
        ("body",),
    ),
    "court_case": SiteProfile(
        court_dockets.build_docket_extractor,
        court_dockets.parse_case_detail,
        ("plaintiff", "defendant"),
    ),
}


class SiteSearchService:
    def __init__(
        self,
        fetch: DocumentFetcher,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.fetch = fetch
        self.sleep = sleep

    def _timeout(self, site: SiteDescriptor) -> int:
        return RENDERED_FETCH_TIMEOUT_MS if site.render_js else FETCH_TIMEOUT_MS

    async def _get(self, site: SiteDescriptor, url: str, **kwargs: Any) -> str:
        return await self.fetch(url, timeout_ms=self._timeout(site), render=site.render_js, **kwargs)

    def scheduler_for(self, site: SiteDescriptor) -> DetailEnrichmentScheduler:
        profile = PROFILES[site.kind]
        parse_detail = profile.parse_detail
        if site.kind == "public_notice":
            parse_detail = partial(parse_detail, base_url=site.base_url)
        return DetailEnrichmentScheduler(
            self.fetch,
            parse_detail,
            key_fields=profile.key_fields,
            timeout_ms=self._timeout(site),
            render=site.render_js,
            sleep=self.sleep,
        )

    # ------------------------------------------------------------------
    # Listing searches
    # ------------------------------------------------------------------

    async def search(self, site: SiteDescriptor, options: LookupOptions) -> list[ScrapedRecord]:
        with Timer() as timer:
            if site.kind == "obituary":
                records = await self._search_obituaries(site, options)
            elif site.kind == "public_notice":
                records = await self._search_notices(site, options)
            else:
                records = await self._search_dockets(site, options)
        log_search(
            source=site.id,
            query=options.keyword or options.case_kind or site.search_url,
            results_raw=len(records),
            duration_ms=timer.elapsed_ms,
            kind=site.kind,
        )
        return records

    async def _search_obituaries(self, site: SiteDescriptor, options: LookupOptions) -> list[ScrapedRecord]:
        url = site.search_url
        if options.keyword:
            url = f"{url}?{urlencode({'keyword': options.keyword})}"
        html = await self._get(site, url)
        records = obituaries.build_obituary_extractor().extract(html, site)
        return obituaries.filter_obituaries(
            records,
            city=options.city,
            keyword=options.keyword,
            days=options.days,
        )

    async def _search_notices(self, site: SiteDescriptor, options: LookupOptions) -> list[ScrapedRecord]:
        if not options.keyword and not options.county:
            raise InvalidRequestError("Provide a keyword or county to search public notices")

        extractor = public_notices.build_notice_extractor()
        html = await self._get(site, site.search_url)
        records = extractor.extract(html, site)

        if not records:
            state = public_notices.extract_form_state(html)
            if state is not None:
                logger.info(f"{TAG} [{site.id}] no results on landing page, submitting search form")
                form = public_notices.build_search_form(state, options.keyword)
                try:
                    posted = await self._get(
                        site,
                        site.search_url,
                        method="POST",
                        body=urlencode(form),
                        headers={"Content-Type": "application/x-www-form-urlencoded"},
                    )
                except TransportError as exc:
                    logger.warning(f"{TAG} [{site.id}] search form postback failed: {exc}")
                else:
                    records = extractor.extract(posted, site)

        return public_notices.filter_notices(records, county=options.county, notice_type=options.notice_type)

    async def _search_dockets(self, site: SiteDescriptor, options: LookupOptions) -> list[ScrapedRecord]:
        case_types = court_dockets.DEFAULT_CASE_TYPES[options.case_kind or "evictions"]
        extractor = court_dockets.build_docket_extractor()

        records: list[ScrapedRecord] = []
        seen: set[str] = set()
        failures: list[TransportError] = []
        for case_type in case_types:
            url = court_dockets.build_search_url(site, case_type, options.from_date, options.to_date)
            logger.info(f"{TAG} [{site.id}] searching {url}")
            try:
                html = await self._get(site, url)
            except TransportError as exc:
                logger.error(f"{TAG} [{site.id}] error fetching {case_type}: {exc}")
                failures.append(exc)
                continue

            for record in court_dockets.filter_case_types(extractor.extract(html, site), case_types):
                if record.case_number in seen:
                    continue
                seen.add(record.case_number)
                records.append(record)

        if failures and len(failures) == len(case_types):
            raise ExhaustedError(
                f"{site.name}: all {len(case_types)} case type searches failed",
                retryable=True,
                timed_out=all(e.kind == "timeout" for e in failures),
            )
        return records

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def stream(self, site: SiteDescriptor, options: LookupOptions) -> AsyncIterator[ProgressEvent]:
        """Yield searching -> found -> details (per batch) -> complete."""
        yield ProgressEvent(stage=ProgressStage.SEARCHING, message=f"Searching {site.name}...")

        records = await self.search(site, options)
        yield ProgressEvent(
            stage=ProgressStage.FOUND,
            message=f"Found {len(records)} records. Fetching details...",
            found=len(records),
            partial=True,
            records=list(records),
        )

        scheduler = self.scheduler_for(site)
        async for event in scheduler.run(records, options.max_details):
            yield event

        yield ProgressEvent(
            stage=ProgressStage.COMPLETE,
            message=f"Done: {len(records)} records from {site.name}",
            found=len(records),
            partial=False,
            records=list(records),
        )

    async def search_with_details(self, site: SiteDescriptor, options: LookupOptions) -> list[ScrapedRecord]:
        records = await self.search(site, options)
        return await self.scheduler_for(site).enrich(records, max_details=options.max_details)
