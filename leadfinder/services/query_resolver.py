"""
Cascading query resolution against field-configurable parcel layers.

Two entry points:

- ``resolve_by_identifier``: a handful of equivalent rewrites of a parcel id
  (verbatim, separators stripped, case-insensitive), then a substring match
  as the last resort since it can hit the wrong parcel.
- ``resolve_by_address``: house number + street token + city, then
  progressively broader clauses. The first clause that returns any rows is
  the only one scored; broader clauses are not tried after that.

Per-clause failures are recorded and treated as "no rows". Only when every
clause failed at the network layer does the resolver raise ExhaustedError,
so callers can retry or move to the next source.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

from loguru import logger

from leadfinder.config.settings import (
    ACCEPTANCE_THRESHOLD,
    ADDRESS_MAX_ROWS,
    EXACT_MATCH_SCORE,
    IDENTIFIER_MAX_ROWS,
    ZIP_PREFIX_LENGTH,
)
from leadfinder.errors import ConfigurationError, ExhaustedError, StructuralError
from leadfinder.models.records import CandidateRecord, NormalizedAddress, SourceDescriptor
from leadfinder.services.feature_query import TabularQuery
from leadfinder.utils.address import normalize_address, similarity_score, zip_prefix
from leadfinder.utils.attempts import Attempt, CascadeReport, first_success

TAG = "[RESOLVE]"

_SEPARATOR_RE = re.compile(r"[-./\s]")


def sql_literal(value: str) -> str:
    """Quote a value for an ArcGIS where clause."""
    return "'" + value.replace("'", "''") + "'"


def like_fragment(value: str) -> str:
    return value.replace("'", "''")


def _dedupe(clauses: list[tuple[str, str]]) -> list[tuple[str, str]]:
    seen: set[str] = set()
    kept = []
    for label, where in clauses:
        if where in seen:
            continue
        seen.add(where)
        kept.append((label, where))
    return kept


class QueryStrategyResolver:
    """Find at most one CandidateRecord for an address or parcel id on one source."""

    def __init__(
        self,
        query: TabularQuery,
        *,
        scorer: Callable[[str, str], int] = similarity_score,
        threshold: int = ACCEPTANCE_THRESHOLD,
    ) -> None:
        self.query = query
        self.scorer = scorer
        self.threshold = threshold
        self.last_report: CascadeReport[list[dict[str, Any]]] | None = None

    # ------------------------------------------------------------------
    # Identifier resolution
    # ------------------------------------------------------------------

    def build_identifier_variants(self, identifier: str, source: SourceDescriptor) -> list[tuple[str, str]]:
        value = identifier.strip()
        stripped = _SEPARATOR_RE.sub("", value)
        field = source.parcel_field
        variants = [
            ("exact", f"{field} = {sql_literal(value)}"),
            ("exact_stripped", f"{field} = {sql_literal(stripped)}"),
            ("upper", f"UPPER({field}) = {sql_literal(value.upper())}"),
            ("upper_stripped", f"UPPER({field}) = {sql_literal(stripped.upper())}"),
            ("contains_stripped", f"UPPER({field}) LIKE '%{like_fragment(stripped.upper())}%'"),
        ]
        return _dedupe(variants)

    async def resolve_by_identifier(self, identifier: str, source: SourceDescriptor) -> CandidateRecord | None:
        if not identifier or not identifier.strip():
            logger.info(f"{TAG} [{source.name}] empty identifier, nothing to query")
            return None

        variants = self.build_identifier_variants(identifier, source)
        report = await self._run_cascade(variants, source, IDENTIFIER_MAX_ROWS)
        if report.value:
            row = report.value[0]
            logger.info(f"{TAG} [{source.name}] identifier {identifier!r} matched via {report.winner}")
            return CandidateRecord(
                attributes=row,
                match_score=EXACT_MATCH_SCORE,
                source_name=source.name,
                matched_on=report.winner or "",
            )

        self._raise_if_unreachable(report, source)
        logger.info(f"{TAG} [{source.name}] identifier {identifier!r}: no match after {len(variants)} variants")
        return None

    # ------------------------------------------------------------------
    # Address resolution
    # ------------------------------------------------------------------

    def build_address_cascade(
        self,
        target: NormalizedAddress,
        city: str | None,
        source: SourceDescriptor,
    ) -> list[tuple[str, str]]:
        if not target.house_number:
            raise StructuralError(f"No house number in {target.full_normalized!r}")

        hn = target.house_number
        token = like_fragment(target.street_token)
        if source.situs_field:
            situs = source.situs_field
            hn_clause = f"UPPER({situs}) LIKE '{hn} %'"
            street_clause = f"UPPER({situs}) LIKE '% {token} %'" if token else ""
        elif source.address_composition:
            comp = source.address_composition
            hn_clause = f"{comp.house_number_field} = {sql_literal(hn)}"
            street_clause = f"UPPER({comp.street_name_field}) LIKE '%{token}%'" if token else ""
        else:
            raise ConfigurationError(
                f"{source.name} has no situs field and no address composition; address search unsupported"
            )

        city_clause = ""
        clean_city = (city or "").strip().upper()
        if clean_city and source.city_field:
            city_clause = f"UPPER({source.city_field}) LIKE '%{like_fragment(clean_city)}%'"

        def join(*parts: str) -> str:
            return " AND ".join(p for p in parts if p)

        cascade = []
        if street_clause and city_clause:
            cascade.append(("house_street_city", join(hn_clause, street_clause, city_clause)))
        if street_clause:
            cascade.append(("house_street", join(hn_clause, street_clause)))
        if city_clause:
            cascade.append(("house_city", join(hn_clause, city_clause)))
        cascade.append(("house", hn_clause))
        return _dedupe(cascade)

    async def resolve_by_address(
        self,
        address: str,
        source: SourceDescriptor,
        *,
        city: str | None = None,
        zip_code: str | None = None,
    ) -> CandidateRecord | None:
        target = NormalizedAddress.from_raw(address)
        try:
            cascade = self.build_address_cascade(target, city, source)
        except StructuralError as exc:
            logger.info(f"{TAG} [{source.name}] {exc}; cannot build a structural query")
            return None

        report = await self._run_cascade(cascade, source, ADDRESS_MAX_ROWS)
        if not report.value:
            self._raise_if_unreachable(report, source)
            logger.info(f"{TAG} [{source.name}] {target.full_normalized!r}: no rows from any query")
            return None

        best = self.select_best(target, report.value, source, zip_code)
        if best is not None:
            best.matched_on = report.winner or ""
        return best

    def select_best(
        self,
        target: NormalizedAddress,
        rows: list[dict[str, Any]],
        source: SourceDescriptor,
        zip_code: str | None = None,
    ) -> CandidateRecord | None:
        """Score rows from one query; zip mismatch excludes a row outright."""
        wanted_zip = zip_prefix(zip_code, ZIP_PREFIX_LENGTH)
        best_attrs: dict[str, Any] | None = None
        best_score = -1

        for attrs in rows:
            situs = normalize_address(source.situs_address(attrs))
            score = self.scorer(target.full_normalized, situs)
            logger.debug(f"{TAG}   comparing {target.full_normalized!r} vs {situs!r} = {score}")

            if wanted_zip and source.zip_field:
                row_zip = zip_prefix(attrs.get(source.zip_field), ZIP_PREFIX_LENGTH)
                if row_zip and row_zip != wanted_zip:
                    logger.debug(f"{TAG}   skip: zip mismatch ({row_zip} vs {wanted_zip})")
                    continue

            if score > best_score:
                best_score = score
                best_attrs = attrs

        if best_attrs is None:
            logger.info(f"{TAG} [{source.name}] all {len(rows)} rows excluded by zip filter")
            return None
        if best_score < self.threshold:
            logger.info(
                f"{TAG} [{source.name}] best score {best_score} below threshold {self.threshold}"
            )
            return None

        logger.info(f"{TAG} [{source.name}] matched {target.full_normalized!r} score={best_score}")
        return CandidateRecord(attributes=best_attrs, match_score=best_score, source_name=source.name)

    # ------------------------------------------------------------------
    # Cascade plumbing
    # ------------------------------------------------------------------

    async def _run_cascade(
        self,
        clauses: list[tuple[str, str]],
        source: SourceDescriptor,
        max_rows: int,
    ) -> CascadeReport[list[dict[str, Any]]]:
        def make(where: str):
            async def run() -> list[dict[str, Any]]:
                logger.debug(f"{TAG} [{source.name}] where: {where}")
                return await self.query(source.url, where, source.out_fields, max_rows)

            return run

        attempts = [Attempt(label, make(where)) for label, where in clauses]
        report = await first_success(attempts, accept=bool, tag=f"{TAG} [{source.name}]")
        self.last_report = report
        return report

    @staticmethod
    def _raise_if_unreachable(report: CascadeReport, source: SourceDescriptor) -> None:
        if report.all_transport_failures:
            raise ExhaustedError(
                f"{source.name} unreachable: all {len(report.attempts)} queries failed",
                retryable=True,
                timed_out=report.all_timed_out,
            )
