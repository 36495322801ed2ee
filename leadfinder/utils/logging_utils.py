"""
Log sinks and the per-source search line.

Every remote read (an ArcGIS layer query, a listing page search) ends with
one ``log_search`` call so runs can be compared source by source. The fields
ride on ``extra``, which the JSON sink serializes.
"""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Any

from loguru import logger

JSON_LOG_PATTERN = "logs/leadfinder_{time}.jsonl"
_TRUTHY = {"1", "true", "yes", "on"}


def env_log_level(default: str = "INFO") -> str:
    return os.getenv("LOG_LEVEL", default).upper()


def add_optional_sinks() -> list[int]:
    """
    Attach the sinks switched on by environment variables.

    ``LOG_DEBUG_FILE`` names a plain-text DEBUG file; ``LOG_JSON`` turns on
    serialized records under ``logs/``. Returns the ids of the added sinks.
    """
    sink_ids = []
    debug_file = os.getenv("LOG_DEBUG_FILE")
    if debug_file:
        sink_ids.append(logger.add(debug_file, level="DEBUG", backtrace=True, diagnose=True))

    if os.getenv("LOG_JSON", "0").strip().lower() in _TRUTHY:
        Path(JSON_LOG_PATTERN).parent.mkdir(parents=True, exist_ok=True)
        sink_ids.append(logger.add(JSON_LOG_PATTERN, level="DEBUG", serialize=True, backtrace=True))
    return sink_ids


def log_search(
    *,
    source: str,
    query: Any,
    results_raw: int,
    results_kept: int | None = None,
    duration_ms: float | None = None,
    **context: Any,
) -> None:
    """
    One INFO line per remote read.

    ``source`` is a layer endpoint or site id, ``query`` the where clause or
    search term. ``results_kept`` is only passed when the caller filtered.
    """
    fields: dict[str, Any] = {"source": source, "query": query, "results_raw": results_raw, **context}
    summary = f"{results_raw} rows"
    if results_kept is not None:
        fields["results_kept"] = results_kept
        summary += f", kept {results_kept}"
    if duration_ms is not None:
        fields["duration_ms"] = round(duration_ms, 1)
        summary += f" in {fields['duration_ms']} ms"
    logger.bind(**fields).info(f"[SEARCH] {source}: {summary}")


class Timer:
    """Wall-clock timer; ``elapsed_ms`` is set when the block exits."""

    elapsed_ms: float = 0.0

    def __enter__(self) -> Timer:
        self._start = time.perf_counter()
        return self

    def __exit__(self, *exc: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000
