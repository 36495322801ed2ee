import pytest
from pydantic import ValidationError

from leadfinder.config.sources import get_site, get_state_sources, load_parcel_states, load_sites
from leadfinder.errors import ConfigurationError
from leadfinder.models.records import SourceDescriptor


def test_every_configured_source_validates() -> None:
    states = load_parcel_states()
    assert {"FL", "WI", "TX", "AZ", "CA", "MI"} <= set(states)
    for state in states.values():
        assert state.sources
        for source in state.sources:
            assert source.parcel_field in source.out_fields


def test_state_lookup_is_case_insensitive() -> None:
    assert get_state_sources("mi").code == "MI"
    assert len(get_state_sources("MI").sources) == 2


def test_unknown_state_and_site() -> None:
    with pytest.raises(ConfigurationError):
        get_state_sources("ZZ")
    with pytest.raises(ConfigurationError):
        get_site("nowhere")


def test_sites_by_kind() -> None:
    sites = load_sites()
    assert sites["harris-tx"].kind == "obituary"
    assert {sites[s].kind for s in ("al", "tn", "ga")} == {"public_notice"}
    assert sites["oscn-tulsa"].county == "tulsa"
    assert all(site.search_url.startswith("https://") for site in sites.values())


def test_descriptor_rejects_fields_missing_from_out_fields() -> None:
    with pytest.raises(ValidationError, match="SITUS"):
        SourceDescriptor(
            name="Broken",
            url="https://gis.example.gov/MapServer/0",
            parcel_field="PIN",
            owner_field="OWNER",
            mailing_address_field="MAIL",
            mailing_city_field="MCITY",
            mailing_zip_field="MZIP",
            situs_field="SITUS",
            out_fields=("PIN", "OWNER"),
        )
