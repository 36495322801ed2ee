import asyncio

from leadfinder.errors import TransportError
from leadfinder.models.records import ProgressStage, ScrapedRecord
from leadfinder.services.enrichment import DetailEnrichmentScheduler


class FakeFetcher:
    """Serves detail pages by URL and records how many fetches overlap."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, url, **kwargs):
        self.calls.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1
        if url in self.failing:
            raise TransportError("connection reset", url=url)
        return url


class FakeSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def parse_detail(html):
    return {"survived_by": f"survived by family of {html}", "funeral_home": "Oak Funeral Home"}


def _records(count, **fields):
    return [
        ScrapedRecord(kind="obituary", name=f"Person {i}", detail_url=f"https://example.com/o/{i}", **fields)
        for i in range(count)
    ]


def _scheduler(fetch, sleep, **kwargs):
    return DetailEnrichmentScheduler(
        fetch,
        parse_detail,
        key_fields=("survived_by", "funeral_home"),
        sleep=sleep,
        **kwargs,
    )


def _collect(scheduler, records, max_details=None):
    async def run():
        return [event async for event in scheduler.run(records, max_details)]

    return asyncio.run(run())


def test_caps_at_25_in_batches_of_three() -> None:
    fetch, sleep = FakeFetcher(), FakeSleep()
    records = _records(40)

    events = _collect(_scheduler(fetch, sleep), records)

    assert len(fetch.calls) == 25
    assert len(events) == 9
    assert sleep.delays == [0.8] * 8
    assert [e.fetched for e in events] == [3, 6, 9, 12, 15, 18, 21, 24, 25]
    assert all(e.total == 25 and e.found == 40 for e in events)
    assert all(e.stage == ProgressStage.DETAILS for e in events)
    assert [e.partial for e in events] == [True] * 8 + [False]
    assert fetch.max_in_flight == 3
    assert records[24].funeral_home == "Oak Funeral Home"
    assert records[25].funeral_home == ""


def test_max_details_lowers_but_never_raises_the_cap() -> None:
    fetch = FakeFetcher()
    _collect(_scheduler(fetch, FakeSleep()), _records(40), max_details=5)
    assert len(fetch.calls) == 5

    fetch = FakeFetcher()
    _collect(_scheduler(fetch, FakeSleep()), _records(40), max_details=100)
    assert len(fetch.calls) == 25

    fetch = FakeFetcher()
    assert _collect(_scheduler(fetch, FakeSleep()), _records(4), max_details=0) == []
    assert fetch.calls == []


def test_only_records_with_missing_fields_and_a_url_are_fetched() -> None:
    complete = ScrapedRecord(kind="obituary", name="Done", survived_by="wife", funeral_home="Elm Chapel",
                             detail_url="https://example.com/o/done")
    no_url = ScrapedRecord(kind="obituary", name="No Link")
    partial = ScrapedRecord(kind="obituary", name="Half", survived_by="his brother",
                            detail_url="https://example.com/o/half")
    fetch = FakeFetcher()

    _collect(_scheduler(fetch, FakeSleep()), [complete, no_url, partial])

    assert fetch.calls == ["https://example.com/o/half"]
    assert partial.survived_by == "his brother"
    assert partial.funeral_home == "Oak Funeral Home"
    assert complete.survived_by == "wife"


def test_placeholder_values_are_replaced() -> None:
    record = ScrapedRecord(kind="court_case", case_number="SC-1", plaintiff="See Case Details",
                           defendant="DOE, JANE", detail_url="https://example.com/c/1")
    scheduler = DetailEnrichmentScheduler(
        FakeFetcher(),
        lambda html: {"plaintiff": "ACME LLC", "defendant": "SOMEONE ELSE", "judge": "SMITH"},
        key_fields=("plaintiff", "defendant"),
        sleep=FakeSleep(),
    )

    _collect(scheduler, [record])

    assert record.plaintiff == "ACME LLC"
    assert record.defendant == "DOE, JANE"
    assert record.judge == "SMITH"


def test_failed_fetch_leaves_record_and_continues() -> None:
    records = _records(4)
    fetch = FakeFetcher(failing={"https://example.com/o/1"})

    events = _collect(_scheduler(fetch, FakeSleep()), records)

    assert len(events) == 2
    assert events[-1].fetched == 4
    assert records[1].funeral_home == ""
    assert records[0].funeral_home == records[2].funeral_home == records[3].funeral_home == "Oak Funeral Home"


def test_enrich_calls_sync_and_async_callbacks() -> None:
    seen = []

    async def on_progress(event):
        seen.append(event.fetched)

    records = _records(5)
    result = asyncio.run(_scheduler(FakeFetcher(), FakeSleep()).enrich(records, on_progress))

    assert result is records
    assert seen == [3, 5]

    sync_seen = []
    asyncio.run(_scheduler(FakeFetcher(), FakeSleep()).enrich(_records(2), lambda e: sync_seen.append(e.stage)))
    assert sync_seen == [ProgressStage.DETAILS]


def test_parser_crash_on_one_record_does_not_stop_later_batches() -> None:
    def fragile_parse(html):
        if html == "https://example.com/o/1":
            raise TypeError("detail page had an unexpected layout")
        return parse_detail(html)

    fetch, sleep = FakeFetcher(), FakeSleep()
    records = _records(6)
    scheduler = DetailEnrichmentScheduler(
        fetch,
        fragile_parse,
        key_fields=("survived_by", "funeral_home"),
        sleep=sleep,
    )

    events = _collect(scheduler, records)

    assert len(fetch.calls) == 6
    assert len(events) == 2
    assert records[1].funeral_home == ""
    assert [r.funeral_home for i, r in enumerate(records) if i != 1] == ["Oak Funeral Home"] * 5
