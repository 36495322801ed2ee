import asyncio

import pytest

from leadfinder.errors import ConfigurationError, ExhaustedError, FetchTimeoutError, RemoteQueryError, TransportError
from leadfinder.models.records import AddressComposition, NormalizedAddress, SourceDescriptor
from leadfinder.services.query_resolver import QueryStrategyResolver
from leadfinder.utils.attempts import AttemptStatus

SITUS_SOURCE = SourceDescriptor(
    name="Maricopa County",
    url="https://gis.example.gov/arcgis/rest/services/Parcels/MapServer/0",
    parcel_field="APN",
    owner_field="OWNER_NAME",
    mailing_address_field="MAIL_ADDR1",
    mailing_city_field="MAIL_CITY",
    mailing_state_field="MAIL_STATE",
    mailing_zip_field="MAIL_ZIP",
    situs_field="PHYSICAL_ADDRESS",
    city_field="PHYSICAL_CITY",
    zip_field="PHYSICAL_ZIP",
    out_fields=(
        "APN", "OWNER_NAME", "MAIL_ADDR1", "MAIL_CITY", "MAIL_STATE", "MAIL_ZIP",
        "PHYSICAL_ADDRESS", "PHYSICAL_CITY", "PHYSICAL_ZIP",
    ),
)

COMPOSED_SOURCE = SourceDescriptor(
    name="Dallas County (DCAD)",
    url="https://gis.example.gov/arcgis/rest/services/DCAD/MapServer/4",
    parcel_field="ACCT",
    owner_field="OWNER",
    mailing_address_field="OWNER_ADDR",
    mailing_city_field="OWNER_CITY",
    mailing_zip_field="OWNER_ZIP",
    city_field="CITY",
    address_composition=AddressComposition(
        house_number_field="ST_NUM",
        street_name_field="ST_NAME",
        parts=("ST_NUM", "ST_DIR", "ST_NAME", "ST_TYPE", "UNITID"),
    ),
    out_fields=("ACCT", "OWNER", "OWNER_ADDR", "OWNER_CITY", "OWNER_ZIP", "CITY",
                "ST_NUM", "ST_DIR", "ST_NAME", "ST_TYPE", "UNITID"),
)

BARE_SOURCE = SourceDescriptor(
    name="Parcel ids only",
    url="https://gis.example.gov/arcgis/rest/services/Ids/MapServer/0",
    parcel_field="PIN",
    owner_field="OWNER",
    mailing_address_field="MAIL",
    mailing_city_field="MCITY",
    mailing_zip_field="MZIP",
    out_fields=("PIN", "OWNER", "MAIL", "MCITY", "MZIP"),
)


class FakeQuery:
    """Records every where clause; answers from a callable."""

    def __init__(self, respond):
        self.respond = respond
        self.calls = []

    async def __call__(self, endpoint, where, out_fields, max_rows):
        self.calls.append(where)
        result = self.respond(where)
        if isinstance(result, Exception):
            raise result
        return result


def _row(address, zip_code="85009", apn="101-01-001"):
    return {"APN": apn, "PHYSICAL_ADDRESS": address, "PHYSICAL_CITY": "PHOENIX", "PHYSICAL_ZIP": zip_code}


# ---------------------------------------------------------------------------
# Identifier resolution
# ---------------------------------------------------------------------------


def test_identifier_variants_in_order() -> None:
    resolver = QueryStrategyResolver(FakeQuery(lambda w: []))
    variants = resolver.build_identifier_variants("101-01-001a", SITUS_SOURCE)
    assert [label for label, _ in variants] == [
        "exact", "exact_stripped", "upper", "upper_stripped", "contains_stripped",
    ]
    assert variants[0][1] == "APN = '101-01-001a'"
    assert variants[1][1] == "APN = '10101001a'"
    assert variants[3][1] == "UPPER(APN) = '10101001A'"
    assert variants[4][1] == "UPPER(APN) LIKE '%10101001A%'"


def test_identifier_variants_skip_duplicates() -> None:
    resolver = QueryStrategyResolver(FakeQuery(lambda w: []))
    variants = resolver.build_identifier_variants("12345", SITUS_SOURCE)
    wheres = [w for _, w in variants]
    assert len(wheres) == len(set(wheres))
    assert wheres == ["APN = '12345'", "UPPER(APN) = '12345'", "UPPER(APN) LIKE '%12345%'"]


def test_identifier_quotes_are_escaped() -> None:
    resolver = QueryStrategyResolver(FakeQuery(lambda w: []))
    _, where = resolver.build_identifier_variants("O'NEIL", SITUS_SOURCE)[0]
    assert where == "APN = 'O''NEIL'"


def test_identifier_stops_at_first_hit_with_score_100() -> None:
    query = FakeQuery(lambda w: [_row("100 N 31ST AVE")] if w.startswith("APN = '10101001'") else [])
    resolver = QueryStrategyResolver(query)

    candidate = asyncio.run(resolver.resolve_by_identifier("101-01-001", SITUS_SOURCE))

    assert candidate is not None
    assert candidate.match_score == 100
    assert candidate.matched_on == "exact_stripped"
    assert query.calls == ["APN = '101-01-001'", "APN = '10101001'"]


def test_identifier_no_match_returns_none() -> None:
    query = FakeQuery(lambda w: [])
    resolver = QueryStrategyResolver(query)
    assert asyncio.run(resolver.resolve_by_identifier("999", SITUS_SOURCE)) is None
    assert len(query.calls) == 3


def test_identifier_remote_error_downgraded_to_empty() -> None:
    def respond(where):
        if where.startswith("APN ="):
            return RemoteQueryError("Invalid field")
        return [_row("100 N 31ST AVE")]

    resolver = QueryStrategyResolver(FakeQuery(respond))
    candidate = asyncio.run(resolver.resolve_by_identifier("777", SITUS_SOURCE))

    assert candidate is not None
    statuses = [a.status for a in resolver.last_report.attempts]
    assert statuses == [AttemptStatus.FAILED, AttemptStatus.HIT]


def test_identifier_all_transport_failures_raise_retryable() -> None:
    resolver = QueryStrategyResolver(FakeQuery(lambda w: TransportError("connection refused")))
    with pytest.raises(ExhaustedError) as exc_info:
        asyncio.run(resolver.resolve_by_identifier("777", SITUS_SOURCE))
    assert exc_info.value.retryable
    assert not exc_info.value.timed_out


def test_identifier_all_timeouts_flagged() -> None:
    resolver = QueryStrategyResolver(FakeQuery(lambda w: FetchTimeoutError("slow")))
    with pytest.raises(ExhaustedError) as exc_info:
        asyncio.run(resolver.resolve_by_identifier("777", SITUS_SOURCE))
    assert exc_info.value.timed_out


def test_mixed_failures_are_no_match_not_error() -> None:
    answers = iter([TransportError("down"), RemoteQueryError("bad sql"), [], TransportError("down"), []])
    resolver = QueryStrategyResolver(FakeQuery(lambda w: next(answers)))
    assert asyncio.run(resolver.resolve_by_identifier("ABC-1", SITUS_SOURCE)) is None


# ---------------------------------------------------------------------------
# Address cascade
# ---------------------------------------------------------------------------


def test_address_cascade_situs_form() -> None:
    resolver = QueryStrategyResolver(FakeQuery(lambda w: []))
    target = NormalizedAddress.from_raw("100 N 31ST AV")
    cascade = resolver.build_address_cascade(target, "Phoenix", SITUS_SOURCE)
    assert cascade == [
        ("house_street_city",
         "UPPER(PHYSICAL_ADDRESS) LIKE '100 %' AND UPPER(PHYSICAL_ADDRESS) LIKE '% 31ST %' "
         "AND UPPER(PHYSICAL_CITY) LIKE '%PHOENIX%'"),
        ("house_street", "UPPER(PHYSICAL_ADDRESS) LIKE '100 %' AND UPPER(PHYSICAL_ADDRESS) LIKE '% 31ST %'"),
        ("house_city", "UPPER(PHYSICAL_ADDRESS) LIKE '100 %' AND UPPER(PHYSICAL_CITY) LIKE '%PHOENIX%'"),
        ("house", "UPPER(PHYSICAL_ADDRESS) LIKE '100 %'"),
    ]


def test_address_cascade_without_city_drops_duplicates() -> None:
    resolver = QueryStrategyResolver(FakeQuery(lambda w: []))
    cascade = resolver.build_address_cascade(NormalizedAddress.from_raw("100 N 31ST AV"), None, SITUS_SOURCE)
    assert [label for label, _ in cascade] == ["house_street", "house"]


def test_address_cascade_composition_form() -> None:
    resolver = QueryStrategyResolver(FakeQuery(lambda w: []))
    cascade = resolver.build_address_cascade(NormalizedAddress.from_raw("4512 Elm Street"), None, COMPOSED_SOURCE)
    assert cascade[0] == ("house_street", "ST_NUM = '4512' AND UPPER(ST_NAME) LIKE '%ELM%'")
    assert cascade[-1] == ("house", "ST_NUM = '4512'")


def test_address_without_house_number_never_queries() -> None:
    query = FakeQuery(lambda w: [_row("100 N 31ST AVE")])
    resolver = QueryStrategyResolver(query)
    assert asyncio.run(resolver.resolve_by_address("N 31ST AVE", SITUS_SOURCE)) is None
    assert query.calls == []


def test_address_on_source_without_situs_is_configuration_error() -> None:
    resolver = QueryStrategyResolver(FakeQuery(lambda w: []))
    with pytest.raises(ConfigurationError):
        asyncio.run(resolver.resolve_by_address("100 MAIN ST", BARE_SOURCE))


def test_cascade_short_circuits_on_first_rows() -> None:
    query = FakeQuery(lambda w: [_row("100 N 31ST AVE")] if "PHOENIX" not in w else [])
    resolver = QueryStrategyResolver(query)

    candidate = asyncio.run(resolver.resolve_by_address("100 N 31ST AV", SITUS_SOURCE, city="Phoenix"))

    assert candidate is not None
    assert candidate.matched_on == "house_street"
    # house_street_city (empty) then house_street (hit); nothing broader
    assert len(query.calls) == 2


def test_end_to_end_prefers_exact_row() -> None:
    rows = [_row("100 N 31ST AVE", apn="A"), _row("102 N 31ST AVE", apn="B")]
    resolver = QueryStrategyResolver(FakeQuery(lambda w: rows))

    candidate = asyncio.run(
        resolver.resolve_by_address("100 N 31ST AV", SITUS_SOURCE, city="Phoenix", zip_code="85009")
    )

    assert candidate is not None
    assert candidate.attributes["APN"] == "A"
    assert candidate.match_score == 100


def test_threshold_boundary() -> None:
    rows = [_row("100 N 31ST AVE")]
    target = NormalizedAddress.from_raw("100 N 31ST AVE")

    below = QueryStrategyResolver(FakeQuery(lambda w: rows), scorer=lambda a, b: 69)
    at = QueryStrategyResolver(FakeQuery(lambda w: rows), scorer=lambda a, b: 70)

    assert below.select_best(target, rows, SITUS_SOURCE) is None
    accepted = at.select_best(target, rows, SITUS_SOURCE)
    assert accepted is not None and accepted.match_score == 70


def test_zip_mismatch_excludes_perfect_match() -> None:
    rows = [_row("100 N 31ST AVE", zip_code="85001", apn="wrong-zip"), _row("100 N 31ST AV", zip_code="85009-4411", apn="ok")]
    resolver = QueryStrategyResolver(FakeQuery(lambda w: rows))

    candidate = resolver.select_best(NormalizedAddress.from_raw("100 N 31ST AVE"), rows, SITUS_SOURCE, "85009")

    assert candidate is not None
    assert candidate.attributes["APN"] == "ok"


def test_zip_filter_ignored_when_row_has_no_zip() -> None:
    rows = [_row("100 N 31ST AVE", zip_code="")]
    resolver = QueryStrategyResolver(FakeQuery(lambda w: rows))
    candidate = resolver.select_best(NormalizedAddress.from_raw("100 N 31ST AVE"), rows, SITUS_SOURCE, "85009")
    assert candidate is not None


def test_ties_go_to_first_row() -> None:
    rows = [_row("100 N 31ST AVE", apn="first"), _row("100 N 31ST AVE", apn="second")]
    resolver = QueryStrategyResolver(FakeQuery(lambda w: rows), scorer=lambda a, b: 88)
    candidate = resolver.select_best(NormalizedAddress.from_raw("100 N 31ST AVE"), rows, SITUS_SOURCE)
    assert candidate.attributes["APN"] == "first"


def test_composed_situs_is_scored() -> None:
    rows = [{"ST_NUM": "4512", "ST_DIR": None, "ST_NAME": "ELM", "ST_TYPE": "ST", "UNITID": ""}]
    resolver = QueryStrategyResolver(FakeQuery(lambda w: rows))
    candidate = asyncio.run(resolver.resolve_by_address("4512 Elm Street", COMPOSED_SOURCE))
    assert candidate is not None
    assert candidate.match_score == 100


def test_address_transport_exhaustion_raises_after_whole_cascade() -> None:
    query = FakeQuery(lambda w: TransportError("502"))
    resolver = QueryStrategyResolver(query)
    with pytest.raises(ExhaustedError):
        asyncio.run(resolver.resolve_by_address("100 N 31ST AV", SITUS_SOURCE, city="Phoenix"))
    assert len(query.calls) == 4
