"""
LeadFinder runtime configuration.

Matching, fetching and enrichment constants.
None of them were derived from measurements; treat them as tuning knobs.
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Fuzzy address acceptance (0-100 scale)
ACCEPTANCE_THRESHOLD = 70

# Identifier matches bypass scoring
EXACT_MATCH_SCORE = 100

# Zip codes compare on the 5-digit prefix only
ZIP_PREFIX_LENGTH = 5

# Remote tabular query limits
IDENTIFIER_MAX_ROWS = 1
ADDRESS_MAX_ROWS = 25
STREET_BLOCK_MAX_ROWS = 50
QUERY_TIMEOUT_SECONDS = 30.0

# Detail enrichment
ENRICH_BATCH_SIZE = 3
ENRICH_BATCH_DELAY_SECONDS = 0.8
MAX_ENRICHED_RECORDS = 25

# HTML fetching
FETCH_TIMEOUT_MS = 30_000
RENDERED_FETCH_TIMEOUT_MS = 45_000
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

# Text clipping for extracted records
SNIPPET_MAX_CHARS = 400
TITLE_MAX_CHARS = 200
DETAIL_BODY_MAX_CHARS = 5000

# Optional scraping proxy (rotating residential IPs, JS rendering)
SCRAPE_DO_API_KEY = os.getenv("SCRAPE_DO_API_KEY", "")
SCRAPE_DO_ENDPOINT = "https://api.scrape.do"
