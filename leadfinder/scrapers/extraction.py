"""
Strategy-cascade record extraction.

A site is parsed by an ordered list of strategies. The first strategy that
yields any record wins; later strategies only exist for pages that do not
match the earlier structural assumptions. Enrichers then fill gaps on the
winning records, and the list is de-duplicated (first occurrence wins,
discovery order kept).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from loguru import logger

from leadfinder.models.records import ScrapedRecord, SiteDescriptor, is_placeholder

TAG = "[EXTRACT]"


@dataclass
class ExtractionContext:
    html: str
    soup: BeautifulSoup
    site: SiteDescriptor

    def absolute(self, href: str | None) -> str:
        href = (href or "").strip()
        if not href:
            return ""
        if href.startswith("http"):
            return href
        return urljoin(self.site.base_url.rstrip("/") + "/", href.lstrip("/"))


StrategyFn = Callable[[ExtractionContext], list[ScrapedRecord]]
EnricherFn = Callable[[ExtractionContext, list[ScrapedRecord]], None]


@dataclass(frozen=True)
class ExtractionStrategy:
    name: str
    extract: StrategyFn


def fill_gaps(record: ScrapedRecord, fields: Mapping[str, Any]) -> list[str]:
    """Copy values onto empty or placeholder fields only. Returns the fields set."""
    filled = []
    for key, value in fields.items():
        if key not in ScrapedRecord.model_fields or is_placeholder(value):
            continue
        if is_placeholder(getattr(record, key)):
            setattr(record, key, value)
            filled.append(key)
    return filled


def dedupe_records(records: Iterable[ScrapedRecord]) -> list[ScrapedRecord]:
    seen: set[str] = set()
    unique = []
    for record in records:
        key = record.dedup_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


class RecordExtractor:
    """Run strategies in order, enrich the winner, de-duplicate."""

    def __init__(
        self,
        strategies: Sequence[ExtractionStrategy],
        enrichers: Sequence[EnricherFn] = (),
    ) -> None:
        self.strategies = list(strategies)
        self.enrichers = list(enrichers)
        self.last_strategy: str | None = None

    def extract(self, html: str, site: SiteDescriptor) -> list[ScrapedRecord]:
        ctx = ExtractionContext(html=html or "", soup=BeautifulSoup(html or "", "html.parser"), site=site)

        records: list[ScrapedRecord] = []
        self.last_strategy = None
        for strategy in self.strategies:
            try:
                found = strategy.extract(ctx)
            except (ValueError, KeyError, TypeError, AttributeError) as exc:
                logger.warning(f"{TAG} [{site.id}] strategy '{strategy.name}' failed: {exc}")
                continue
            if found:
                logger.info(f"{TAG} [{site.id}] strategy '{strategy.name}' found {len(found)} records")
                records = found
                self.last_strategy = strategy.name
                break
            logger.debug(f"{TAG} [{site.id}] strategy '{strategy.name}' found nothing")

        for enrich in self.enrichers:
            try:
                enrich(ctx, records)
            except (ValueError, KeyError, TypeError, AttributeError) as exc:
                name = getattr(enrich, "__name__", "enricher")
                logger.warning(f"{TAG} [{site.id}] enricher '{name}' failed: {exc}")

        unique = dedupe_records(records)
        if len(unique) != len(records):
            logger.debug(f"{TAG} [{site.id}] dropped {len(records) - len(unique)} duplicates")
        return unique
