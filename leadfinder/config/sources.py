"""
Source and site tables.

Parcel layers (ArcGIS), obituary listings, public-notice portals and court
docket counties. Raw tables are plain dicts; ``load_*`` validates them once
per process so a bad field mapping fails at startup instead of mid-query.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import ValidationError

from leadfinder.errors import ConfigurationError
from leadfinder.models.records import SiteDescriptor, SourceDescriptor, StateSources

# ---------------------------------------------------------------------------
# Parcel layers
# ---------------------------------------------------------------------------

PARCEL_STATES: list[dict[str, Any]] = [
    {
        "code": "FL",
        "name": "Florida",
        "scope": "statewide",
        "sources": [
            {
                "name": "Florida Statewide Cadastral",
                "url": "https://services9.arcgis.com/Gh9awoU677aKree0/arcgis/rest/services/Florida_Statewide_Cadastral/FeatureServer/0",
                "parcel_field": "PARCEL_ID",
                "owner_field": "OWNER_NAME",
                "mailing_address_field": "MAIL_ADDR",
                "mailing_city_field": "MAIL_CITY",
                "mailing_state_field": "MAIL_STATE",
                "mailing_zip_field": "MAIL_ZIP",
                "situs_field": "SITUS_ADDR",
                "city_field": "SITUS_CITY",
                "zip_field": "SITUS_ZIP",
                "out_fields": [
                    "PARCEL_ID", "OWNER_NAME", "MAIL_ADDR", "MAIL_CITY", "MAIL_STATE",
                    "MAIL_ZIP", "SITUS_ADDR", "SITUS_CITY", "SITUS_ZIP",
                ],
            }
        ],
    },
    {
        "code": "WI",
        "name": "Wisconsin",
        "scope": "statewide",
        "sources": [
            {
                "name": "Wisconsin Statewide Parcels",
                "url": "https://dnrmaps.wi.gov/arcgis/rest/services/DW_Map_Dynamic/EN_County_Tax_Parcels_WTM_Ext_Dynamic_L16/MapServer/0",
                "parcel_field": "PARCELID",
                "owner_field": "OWNERNME1",
                "mailing_address_field": "PSTLADRESS",
                "mailing_city_field": "PLACENAME",
                "mailing_zip_field": "ZIPCODE",
                "situs_field": "SITEADRESS",
                "city_field": "PLACENAME",
                "zip_field": "ZIPCODE",
                "state_field": "STATE",
                "default_state": "WI",
                "out_fields": [
                    "PARCELID", "TAXPARCELID", "OWNERNME1", "OWNERNME2", "PSTLADRESS",
                    "SITEADRESS", "PLACENAME", "ZIPCODE", "STATE", "CNTASSDVALUE",
                    "PROPCLASS", "CONAME",
                ],
            }
        ],
    },
    {
        "code": "TX",
        "name": "Texas",
        "scope": "county",
        "sources": [
            {
                "name": "Tarrant County (TAD)",
                "url": "https://mapit.tarrantcounty.com/arcgis/rest/services/Dynamic/TADParcels/FeatureServer/0",
                "parcel_field": "TAXPIN",
                "owner_field": "OWNER_NAME",
                "mailing_address_field": "OWNER_ADDR",
                "mailing_city_field": "OWNER_CITY",
                "mailing_zip_field": "OWNER_ZIP",
                "situs_field": "SITUS_ADDR",
                "city_field": "CITY",
                "zip_field": "ZIPCODE",
                "default_state": "TX",
                "out_fields": [
                    "TAXPIN", "ACCOUNT", "OWNER_NAME", "OWNER_ADDR", "OWNER_CITY",
                    "OWNER_ZIP", "OWNER_ZIP_", "SITUS_ADDR", "CITY", "ZIPCODE", "STATE",
                ],
            },
            {
                "name": "Collin County (CCAD)",
                "url": "https://services2.arcgis.com/uXyoacYrZTPTKD3R/ArcGIS/rest/services/CCAD_Parcel_Feature_Set/FeatureServer/4",
                "parcel_field": "propID",
                "owner_field": "ownerName",
                "mailing_address_field": "ownerAddrLine1",
                "mailing_city_field": "ownerAddrCity",
                "mailing_state_field": "ownerAddrState",
                "mailing_zip_field": "ownerAddrZip",
                "situs_field": "situsConcat",
                "city_field": "situsCity",
                "zip_field": "situsZip",
                "out_fields": [
                    "propID", "ownerName", "ownerAddrLine1", "ownerAddrCity",
                    "ownerAddrState", "ownerAddrZip", "situsConcat", "situsCity", "situsZip",
                ],
            },
            {
                "name": "Denton County (DCAD)",
                "url": "https://maps.cityofdenton.com/server/rest/services/MapViewer/DCAD_Parcels/MapServer/0",
                "parcel_field": "prop_id",
                "owner_field": "owner_name",
                "mailing_address_field": "addr_line1",
                "mailing_city_field": "addr_city",
                "mailing_state_field": "addr_state",
                "mailing_zip_field": "addr_zip",
                "situs_field": "situs",
                "city_field": "situs_city",
                "zip_field": "situs_zip",
                "out_fields": [
                    "prop_id", "owner_name", "addr_line1", "addr_city", "addr_state",
                    "addr_zip", "situs", "situs_city", "situs_zip", "situs_state",
                ],
            },
            {
                "name": "Dallas Area (Multi-County)",
                "url": "https://gis.dallascityhall.com/arcgis/rest/services/Basemap/DallasTaxParcels/FeatureServer/0",
                "parcel_field": "ACCT",
                "owner_field": "TAXPANAME1",
                "mailing_address_field": "TAXPAADD1",
                "mailing_city_field": "TAXPACITY",
                "mailing_state_field": "TAXPASTA",
                "mailing_zip_field": "TAXPAZIP",
                "city_field": "CITY",
                "address_composition": {
                    "house_number_field": "ST_NUM",
                    "street_name_field": "ST_NAME",
                    "parts": ["ST_NUM", "ST_DIR", "ST_NAME", "ST_TYPE", "UNITID"],
                },
                "out_fields": [
                    "ACCT", "CITY", "COUNTY", "ST_NUM", "ST_DIR", "ST_NAME", "ST_TYPE",
                    "UNITID", "TAXPANAME1", "TAXPANAME2", "TAXPAADD1", "TAXPACITY",
                    "TAXPASTA", "TAXPAZIP",
                ],
            },
        ],
    },
    {
        "code": "AZ",
        "name": "Arizona",
        "scope": "county",
        "sources": [
            {
                "name": "Maricopa County",
                "url": "https://gis.mcassessor.maricopa.gov/arcgis/rest/services/Parcels/MapServer/0",
                "parcel_field": "APN",
                "owner_field": "OWNER_NAME",
                "mailing_address_field": "MAIL_ADDRESS",
                "mailing_city_field": "MAIL_CITY",
                "mailing_state_field": "MAIL_STATE",
                "mailing_zip_field": "MAIL_ZIP",
                "situs_field": "SITUS_ADDRESS",
                "city_field": "SITUS_CITY",
                "zip_field": "SITUS_ZIP",
                "out_fields": [
                    "APN", "OWNER_NAME", "MAIL_ADDRESS", "MAIL_CITY", "MAIL_STATE",
                    "MAIL_ZIP", "SITUS_ADDRESS", "SITUS_CITY", "SITUS_ZIP",
                ],
            }
        ],
    },
    {
        "code": "CA",
        "name": "California",
        "scope": "county",
        "sources": [
            {
                "name": "Los Angeles County",
                "url": "https://services3.arcgis.com/GVgbJbqm8hXASVYi/arcgis/rest/services/LA_County_Parcels/FeatureServer/0",
                "parcel_field": "APN",
                "owner_field": "UseType",
                "mailing_address_field": "MailAddress",
                "mailing_city_field": "MailCity",
                "mailing_zip_field": "MailZip",
                "situs_field": "SitusAddress",
                "city_field": "SitusCity",
                "zip_field": "SitusZIP",
                "default_state": "CA",
                "out_fields": [
                    "APN", "UseType", "MailAddress", "MailCity", "MailZip",
                    "SitusAddress", "SitusCity", "SitusZIP",
                ],
            }
        ],
    },
    {
        "code": "MI",
        "name": "Michigan",
        "scope": "county",
        "sources": [
            {
                "name": "Ingham County (VPN Required)",
                "url": "https://tr.ingham.org/arcgis/rest/services/Equalization/Parcels/MapServer/0",
                "parcel_field": "PARCEL_ID",
                "owner_field": "OWNER_NAME",
                "mailing_address_field": "MAIL_ADDRESS",
                "mailing_city_field": "MAIL_CITY",
                "mailing_state_field": "MAIL_STATE",
                "mailing_zip_field": "MAIL_ZIP",
                "situs_field": "SITUS_ADDRESS",
                "city_field": "SITUS_CITY",
                "zip_field": "SITUS_ZIP",
                "out_fields": [
                    "PARCEL_ID", "OWNER_NAME", "MAIL_ADDRESS", "MAIL_CITY", "MAIL_STATE",
                    "MAIL_ZIP", "SITUS_ADDRESS", "SITUS_CITY", "SITUS_ZIP",
                    "ASSESSED_VALUE", "TAXABLE_VALUE", "LAND_VALUE", "ACREAGE",
                ],
            },
            {
                "name": "Michigan Statewide (Fallback)",
                "url": "https://services3.arcgis.com/Jdnp1TjADvSDxMAX/arcgis/rest/services/Michigan_Parcels_v17a/FeatureServer/0",
                "parcel_field": "PARCELNO",
                "owner_field": "OWNER1",
                "mailing_address_field": "MAIL_ADDR1",
                "mailing_city_field": "MAIL_CITY",
                "mailing_state_field": "MAIL_STATE",
                "mailing_zip_field": "MAIL_ZIP",
                "situs_field": "SITUS_ADDR",
                "city_field": "SITUS_CITY",
                "zip_field": "SITUS_ZIP",
                "out_fields": [
                    "PARCELNO", "OWNER1", "OWNER2", "MAIL_ADDR1", "MAIL_CITY",
                    "MAIL_STATE", "MAIL_ZIP", "SITUS_ADDR", "SITUS_CITY", "SITUS_ZIP",
                    "COUNTY", "ASSESSED_VALUE", "TAXABLE_VALUE", "LANDVALUE", "ACREAGE",
                ],
            },
        ],
    },
]

# ---------------------------------------------------------------------------
# Scraped sites
# ---------------------------------------------------------------------------

HARRIS_CITIES = [
    "Houston", "Pasadena", "Baytown", "Sugar Land", "Pearland",
    "League City", "Friendswood", "Missouri City", "Stafford", "Humble",
    "Katy", "Cypress", "Spring", "Tomball", "Kingwood",
    "The Woodlands", "Conroe", "Deer Park", "La Porte", "Galena Park",
    "Bellaire", "West University Place", "Southside Place", "Hedwig Village",
    "Bunker Hill Village", "Piney Point Village", "Hunters Creek Village",
    "Jersey Village", "Atascocita", "Channelview", "Cloverleaf", "Crosby",
]

ALABAMA_COUNTIES = [
    "Autauga", "Baldwin", "Barbour", "Bibb", "Blount", "Bullock", "Butler", "Calhoun",
    "Chambers", "Cherokee", "Chilton", "Choctaw", "Clarke", "Clay", "Cleburne", "Coffee",
    "Colbert", "Conecuh", "Coosa", "Covington", "Crenshaw", "Cullman", "Dale", "Dallas",
    "DeKalb", "Elmore", "Escambia", "Etowah", "Fayette", "Franklin", "Geneva", "Greene",
    "Hale", "Henry", "Houston", "Jackson", "Jefferson", "Lamar", "Lauderdale", "Lawrence",
    "Lee", "Limestone", "Lowndes", "Macon", "Madison", "Marengo", "Marion", "Marshall",
    "Mobile", "Monroe", "Montgomery", "Morgan", "Perry", "Pickens", "Pike", "Randolph",
    "Russell", "Shelby", "St. Clair", "Sumter", "Talladega", "Tallapoosa", "Tuscaloosa",
    "Walker", "Washington", "Wilcox", "Winston",
]

TENNESSEE_COUNTIES = [
    "Anderson", "Bedford", "Benton", "Bledsoe", "Blount", "Bradley", "Campbell", "Cannon",
    "Carroll", "Carter", "Cheatham", "Chester", "Claiborne", "Clay", "Cocke", "Coffee",
    "Crockett", "Cumberland", "Davidson", "Decatur", "DeKalb", "Dickson", "Dyer", "Fayette",
    "Fentress", "Franklin", "Gibson", "Giles", "Grainger", "Greene", "Grundy", "Hamblen",
    "Hamilton", "Hancock", "Hardeman", "Hardin", "Hawkins", "Haywood", "Henderson", "Henry",
    "Hickman", "Houston", "Humphreys", "Jackson", "Jefferson", "Johnson", "Knox", "Lake",
    "Lauderdale", "Lawrence", "Lewis", "Lincoln", "Loudon", "Macon", "Madison", "Marion",
    "Marshall", "Maury", "McMinn", "McNairy", "Meigs", "Monroe", "Montgomery", "Moore",
    "Morgan", "Obion", "Overton", "Perry", "Pickett", "Polk", "Putnam", "Rhea", "Roane",
    "Robertson", "Rutherford", "Scott", "Sequatchie", "Sevier", "Shelby", "Smith", "Stewart",
    "Sullivan", "Sumner", "Tipton", "Trousdale", "Unicoi", "Union", "Van Buren", "Warren",
    "Washington", "Wayne", "Weakley", "White", "Williamson", "Wilson",
]

GEORGIA_COUNTIES = [
    "Appling", "Atkinson", "Bacon", "Baker", "Baldwin", "Banks", "Barrow", "Bartow",
    "Ben Hill", "Berrien", "Bibb", "Bleckley", "Brantley", "Brooks", "Bryan", "Bulloch",
    "Burke", "Butts", "Calhoun", "Camden", "Candler", "Carroll", "Catoosa", "Charlton",
    "Chatham", "Chattahoochee", "Chattooga", "Cherokee", "Clarke", "Clay", "Clayton",
    "Clinch", "Cobb", "Coffee", "Colquitt", "Columbia", "Cook", "Coweta", "Crawford",
    "Crisp", "Dade", "Dawson", "Decatur", "DeKalb", "Dodge", "Dooly", "Dougherty",
    "Douglas", "Early", "Echols", "Effingham", "Elbert", "Emanuel", "Evans", "Fannin",
    "Fayette", "Floyd", "Forsyth", "Franklin", "Fulton", "Gilmer", "Glascock", "Glynn",
    "Gordon", "Grady", "Greene", "Gwinnett", "Habersham", "Hall", "Hancock", "Haralson",
    "Harris", "Hart", "Heard", "Henry", "Houston", "Irwin", "Jackson", "Jasper", "Jeff Davis",
    "Jefferson", "Jenkins", "Johnson", "Jones", "Lamar", "Lanier", "Laurens", "Lee",
    "Liberty", "Lincoln", "Long", "Lowndes", "Lumpkin", "Macon", "Madison", "Marion",
    "McDuffie", "McIntosh", "Meriwether", "Miller", "Mitchell", "Monroe", "Montgomery",
    "Morgan", "Murray", "Muscogee", "Newton", "Oconee", "Oglethorpe", "Paulding", "Peach",
    "Pickens", "Pierce", "Pike", "Polk", "Pulaski", "Putnam", "Quitman", "Rabun", "Randolph",
    "Richmond", "Rockdale", "Schley", "Screven", "Seminole", "Spalding", "Stephens", "Stewart",
    "Sumter", "Talbot", "Taliaferro", "Tattnall", "Taylor", "Telfair", "Terrell", "Thomas",
    "Tift", "Toombs", "Towns", "Treutlen", "Troup", "Turner", "Twiggs", "Union", "Upson",
    "Walker", "Walton", "Ware", "Warren", "Washington", "Wayne", "Webster", "Wheeler",
    "White", "Whitfield", "Wilcox", "Wilkes", "Wilkinson", "Worth",
]

OKLAHOMA_DOCKET_COUNTIES = [
    "oklahoma", "tulsa", "cleveland", "canadian", "comanche", "rogers", "wagoner",
    "creek", "payne", "pottawatomie", "garfield", "muskogee", "leflore", "stephens",
    "carter", "bryan", "pontotoc", "mcclain", "grady", "logan",
]

SITES: list[dict[str, Any]] = [
    {
        "id": "harris-tx",
        "name": "Houston Chronicle Obituaries",
        "kind": "obituary",
        "state_code": "TX",
        "county": "Harris",
        "base_url": "https://www.legacy.com",
        "search_url": "https://www.legacy.com/us/obituaries/houstonchronicle/browse",
        "cities": HARRIS_CITIES,
        "render_js": True,
    },
    {
        "id": "al",
        "name": "Alabama Public Notices",
        "kind": "public_notice",
        "state_code": "AL",
        "base_url": "https://www.alabamapublicnotices.com",
        "search_url": "https://www.alabamapublicnotices.com/Search.aspx",
        "counties": ALABAMA_COUNTIES,
    },
    {
        "id": "tn",
        "name": "Tennessee Public Notices",
        "kind": "public_notice",
        "state_code": "TN",
        "base_url": "https://www.tnpublicnotice.com",
        "search_url": "https://www.tnpublicnotice.com/Search.aspx",
        "counties": TENNESSEE_COUNTIES,
    },
    {
        "id": "ga",
        "name": "Georgia Public Notices",
        "kind": "public_notice",
        "state_code": "GA",
        "base_url": "https://www.georgiapublicnotice.com",
        "search_url": "https://www.georgiapublicnotice.com/Search.aspx",
        "counties": GEORGIA_COUNTIES,
    },
] + [
    {
        "id": f"oscn-{county}",
        "name": f"OSCN {county.title()} County Dockets",
        "kind": "court_case",
        "state_code": "OK",
        "county": county,
        "base_url": "https://www.oscn.net",
        "search_url": "https://www.oscn.net/dockets/Results.aspx",
    }
    for county in OKLAHOMA_DOCKET_COUNTIES
]


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def load_parcel_states() -> dict[str, StateSources]:
    try:
        states = [StateSources.model_validate(raw) for raw in PARCEL_STATES]
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid parcel source configuration: {exc}") from exc
    return {s.code: s for s in states}


@lru_cache(maxsize=1)
def load_sites() -> dict[str, SiteDescriptor]:
    try:
        sites = [SiteDescriptor.model_validate(raw) for raw in SITES]
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid site configuration: {exc}") from exc
    return {s.id: s for s in sites}


def get_state_sources(code: str) -> StateSources:
    states = load_parcel_states()
    state = states.get(code.upper())
    if state is None or not state.sources:
        raise ConfigurationError(f"No parcel sources configured for state {code!r}")
    return state


def get_site(site_id: str) -> SiteDescriptor:
    site = load_sites().get(site_id)
    if site is None:
        raise ConfigurationError(f"Unknown site: {site_id!r}")
    return site
