"""
Bounded detail enrichment for scraped records.

Records whose key fields are empty or placeholders get their detail page
fetched and parsed. Fetches run ``batch_size`` at a time; batches are
separated by ``batch_delay`` seconds to keep the outbound request rate low,
and at most ``max_records`` records are touched per request.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from typing import Any

from loguru import logger

from leadfinder.config.settings import (
    ENRICH_BATCH_DELAY_SECONDS,
    ENRICH_BATCH_SIZE,
    FETCH_TIMEOUT_MS,
    MAX_ENRICHED_RECORDS,
)
from leadfinder.errors import LeadFinderError
from leadfinder.models.records import (
    EnrichmentJob,
    ProgressEvent,
    ProgressStage,
    ScrapedRecord,
    is_placeholder,
)
from leadfinder.scrapers.extraction import fill_gaps
from leadfinder.services.http_fetch import DocumentFetcher

TAG = "[ENRICH]"

ProgressCallback = Callable[[ProgressEvent], Awaitable[None] | None]


class DetailEnrichmentScheduler:
    def __init__(
        self,
        fetch: DocumentFetcher,
        parse_detail: Callable[[str], dict[str, Any]],
        *,
        key_fields: Sequence[str],
        batch_size: int = ENRICH_BATCH_SIZE,
        batch_delay: float = ENRICH_BATCH_DELAY_SECONDS,
        max_records: int = MAX_ENRICHED_RECORDS,
        timeout_ms: int = FETCH_TIMEOUT_MS,
        render: bool | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.fetch = fetch
        self.parse_detail = parse_detail
        self.key_fields = tuple(key_fields)
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.max_records = max_records
        self.timeout_ms = timeout_ms
        self.render = render
        self.sleep = sleep

    def needs_enrichment(self, record: ScrapedRecord) -> bool:
        if not record.detail_url:
            return False
        return any(is_placeholder(getattr(record, name)) for name in self.key_fields)

    def plan(self, records: Sequence[ScrapedRecord], max_details: int | None = None) -> EnrichmentJob:
        cap = self.max_records
        if max_details is not None:
            cap = max(0, min(cap, max_details))
        pending = [r for r in records if self.needs_enrichment(r)][:cap]
        return EnrichmentJob(pending=pending, batch_size=self.batch_size)

    async def _enrich_one(self, record: ScrapedRecord) -> bool:
        try:
            html = await self.fetch(record.detail_url, timeout_ms=self.timeout_ms, render=self.render)
            details = self.parse_detail(html)
        except (LeadFinderError, ValueError) as exc:
            logger.warning(f"{TAG} detail fetch failed for {record.detail_url}: {exc}")
            return False
        except Exception:
            logger.exception(f"{TAG} detail parse crashed for {record.detail_url}")
            return False

        filled = fill_gaps(record, details)
        logger.debug(f"{TAG} {record.detail_url}: filled {filled or 'nothing'}")
        return True

    async def run(
        self,
        records: list[ScrapedRecord],
        max_details: int | None = None,
    ) -> AsyncIterator[ProgressEvent]:
        """Enrich in place, yielding one progress event per finished batch."""
        job = self.plan(records, max_details)
        if not job.total:
            logger.info(f"{TAG} no records need details ({len(records)} total)")
            return

        batches = job.batches()
        logger.info(f"{TAG} fetching details for {job.total}/{len(records)} records in {len(batches)} batches")
        for index, batch in enumerate(batches):
            results = await asyncio.gather(*(self._enrich_one(record) for record in batch))
            job.fetched += len(batch)
            job.failed.extend(r.detail_url for r, ok in zip(batch, results) if not ok)

            last = index == len(batches) - 1
            yield ProgressEvent(
                stage=ProgressStage.DETAILS,
                message=f"Fetched details for {job.fetched}/{job.total} records...",
                found=len(records),
                fetched=job.fetched,
                total=job.total,
                partial=not last,
                records=list(records),
            )
            if not last:
                await self.sleep(self.batch_delay)

        if job.failed:
            logger.warning(f"{TAG} {len(job.failed)}/{job.total} detail fetches failed")

    async def enrich(
        self,
        records: list[ScrapedRecord],
        on_progress: ProgressCallback | None = None,
        max_details: int | None = None,
    ) -> list[ScrapedRecord]:
        async for event in self.run(records, max_details):
            if on_progress is not None:
                maybe = on_progress(event)
                if asyncio.iscoroutine(maybe):
                    await maybe
        return records
