"""
First-success evaluation over an ordered list of candidate operations.

Each attempt's outcome is recorded instead of being swallowed, so callers can
tell "nothing matched" apart from "the service was down the whole time".
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

from loguru import logger

from leadfinder.errors import FetchTimeoutError, LeadFinderError, TransportError

T = TypeVar("T")


class AttemptStatus(Enum):
    HIT = "HIT"              # returned a usable result
    EMPTY = "EMPTY"          # ran fine, nothing found
    TRANSPORT = "TRANSPORT"  # network failure, timeout included
    FAILED = "FAILED"        # remote rejected the attempt


@dataclass
class AttemptOutcome:
    label: str
    status: AttemptStatus
    duration_ms: float
    error: str | None = None
    timed_out: bool = False


@dataclass
class CascadeReport(Generic[T]):
    value: T | None = None
    winner: str | None = None
    attempts: list[AttemptOutcome] = field(default_factory=list)

    @property
    def all_transport_failures(self) -> bool:
        return bool(self.attempts) and all(
            a.status is AttemptStatus.TRANSPORT for a in self.attempts
        )

    @property
    def all_timed_out(self) -> bool:
        return bool(self.attempts) and all(a.timed_out for a in self.attempts)


@dataclass
class Attempt(Generic[T]):
    label: str
    run: Callable[[], Awaitable[T]]


async def first_success(
    attempts: Sequence[Attempt[T]],
    accept: Callable[[T], bool] = bool,
    *,
    tag: str = "",
) -> CascadeReport[T]:
    """Run attempts in order and stop at the first accepted result.

    Errors raised by an attempt are downgraded to a recorded outcome so the
    cascade can move on to the next attempt.
    """
    report: CascadeReport[T] = CascadeReport()
    for attempt in attempts:
        start = time.perf_counter()
        try:
            value = await attempt.run()
        except TransportError as exc:
            elapsed = (time.perf_counter() - start) * 1000
            timed_out = isinstance(exc, FetchTimeoutError)
            logger.warning(f"{tag} attempt '{attempt.label}' transport failure: {exc}")
            report.attempts.append(
                AttemptOutcome(attempt.label, AttemptStatus.TRANSPORT, elapsed, str(exc), timed_out)
            )
            continue
        except LeadFinderError as exc:
            elapsed = (time.perf_counter() - start) * 1000
            logger.warning(f"{tag} attempt '{attempt.label}' failed: {exc}")
            report.attempts.append(
                AttemptOutcome(attempt.label, AttemptStatus.FAILED, elapsed, str(exc))
            )
            continue

        elapsed = (time.perf_counter() - start) * 1000
        if accept(value):
            report.attempts.append(AttemptOutcome(attempt.label, AttemptStatus.HIT, elapsed))
            report.value = value
            report.winner = attempt.label
            return report
        report.attempts.append(AttemptOutcome(attempt.label, AttemptStatus.EMPTY, elapsed))
    return report
