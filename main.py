"""
Main entry point for LeadFinder.
Supports modes:
  --parcel ID --state XX: Resolve a parcel by id across a state's layers
  --address "..." --state XX: Resolve a parcel by street address
  --street-block "1XX N 31ST AV" --state XX --source NAME: List parcels on a hundred block
  --search SITE_ID: Search a listing site (obituaries, public notices, dockets)
  --web: Start web server
"""
import argparse
import asyncio
import json
import logging
import os
import sys

from loguru import logger

from leadfinder.config.settings import QUERY_TIMEOUT_SECONDS
from leadfinder.config.sources import get_state_sources
from leadfinder.errors import LeadFinderError
from leadfinder.models.records import LookupOptions, LookupRequest, LookupResult, ProgressEvent
from leadfinder.services.feature_query import FeatureQueryClient
from leadfinder.services.http_fetch import HtmlFetcher
from leadfinder.services.lookup_service import LookupService
from leadfinder.services.parcel_lookup import ParcelLookupService
from leadfinder.utils.logging_config import setup_default_logging


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def configure_logging() -> None:
    setup_default_logging()
    # httpx logs every request at INFO; route it through loguru
    logging.basicConfig(handlers=[InterceptHandler()], level=logging.INFO, force=True)
    for logger_name in ["httpx", "httpcore", "asyncio", "uvicorn"]:
        logging.getLogger(logger_name).handlers = [InterceptHandler()]
        logging.getLogger(logger_name).propagate = False


def print_result(result: LookupResult) -> None:
    print(json.dumps(result.model_dump(mode="json", exclude_none=True), indent=2))


async def run_lookup(request: LookupRequest) -> LookupResult:
    async with FeatureQueryClient(timeout_seconds=QUERY_TIMEOUT_SECONDS) as query, HtmlFetcher() as fetcher:
        service = LookupService(query, fetcher)
        return await service.handle(request)


async def run_stream(request: LookupRequest) -> None:
    async with FeatureQueryClient(timeout_seconds=QUERY_TIMEOUT_SECONDS) as query, HtmlFetcher() as fetcher:
        service = LookupService(query, fetcher)
        last: ProgressEvent | None = None
        async for event in service.stream(request):
            logger.info(f"[{event.stage.value}] {event.message}")
            last = event
        if last is not None:
            print(json.dumps([r.model_dump(mode="json", exclude_none=True) for r in last.records], indent=2))


async def run_street_block(state: str, source_name: str, street: str) -> None:
    sources = {s.name: s for s in get_state_sources(state).sources}
    if source_name not in sources:
        raise LeadFinderError(f"Unknown source {source_name!r}; choose from {', '.join(sources)}")
    async with FeatureQueryClient(timeout_seconds=QUERY_TIMEOUT_SECONDS) as query:
        parcels = await ParcelLookupService(query).search_street_block(street, sources[source_name])
    logger.success(f"{len(parcels)} parcels on {street!r}")
    print(json.dumps([p.model_dump() for p in parcels], indent=2))


def handle_web(port: int):
    """Start the FastAPI web server (app/web)."""
    import uvicorn

    logger.info(f"Starting FastAPI Web Server (app/web) on port {port}...")
    logger.info(f"Local Access: http://localhost:{port}")
    uvicorn.run(
        "app.web.main:app",
        host="0.0.0.0",
        port=port,
        reload=False,
    )


def main():
    parser = argparse.ArgumentParser(description="LeadFinder lookups")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--parcel", type=str, help="Parcel id to resolve (needs --state)")
    group.add_argument("--address", type=str, help="Street address to resolve (needs --state)")
    group.add_argument("--street-block", type=str, help='Masked block like "1XX N 31ST AV" (needs --state, --source)')
    group.add_argument("--search", type=str, metavar="SITE_ID", help="Listing site id, e.g. harris-tx, al, oscn-tulsa")
    group.add_argument("--web", action="store_true", help="Start web server")
    parser.add_argument("--state", type=str, help="Two-letter state code for parcel lookups")
    parser.add_argument("--source", type=str, help="Parcel layer name for --street-block")
    parser.add_argument("--city", type=str, default=None)
    parser.add_argument("--zip", type=str, default=None)
    parser.add_argument("--keyword", type=str, default=None)
    parser.add_argument("--county", type=str, default=None)
    parser.add_argument("--notice-type", type=str, default=None)
    parser.add_argument("--days", type=int, default=None)
    parser.add_argument("--case-kind", choices=["evictions", "foreclosures", "probate"], default=None)
    parser.add_argument("--from-date", type=str, default=None, help="YYYY-MM-DD")
    parser.add_argument("--to-date", type=str, default=None, help="YYYY-MM-DD")
    parser.add_argument("--max-details", type=int, default=None,
                        help="Max detail pages to fetch (never more than 25)")
    parser.add_argument("--stream", action="store_true", help="Log progress events for --search")
    parser.add_argument("--port", type=int, default=int(os.getenv("WEB_PORT", "8080")),
                        help="Port for web server (default 8080 or WEB_PORT env var)")

    args = parser.parse_args()
    configure_logging()

    if args.web:
        handle_web(args.port)
        return

    if (args.parcel or args.address or args.street_block) and not args.state:
        parser.error("--state is required for parcel lookups")

    options = LookupOptions(
        city=args.city,
        zip=args.zip,
        keyword=args.keyword,
        county=args.county,
        notice_type=args.notice_type,
        days=args.days,
        case_kind=args.case_kind,
        from_date=args.from_date,
        to_date=args.to_date,
        max_details=args.max_details,
    )

    try:
        if args.street_block:
            if not args.source:
                parser.error("--source is required for --street-block")
            asyncio.run(run_street_block(args.state, args.source, args.street_block))
            return

        if args.parcel:
            request = LookupRequest(mode="identifier", source=args.state, target={"parcel_id": args.parcel}, options=options)
        elif args.address:
            request = LookupRequest(mode="address", source=args.state, target={"address": args.address}, options=options)
        else:
            request = LookupRequest(mode="search", source=args.search, options=options)

        if args.search and args.stream:
            asyncio.run(run_stream(request))
            return

        result = asyncio.run(run_lookup(request))
    except (LeadFinderError, ValueError) as e:
        logger.error(f"Lookup failed: {e}")
        sys.exit(1)

    print_result(result)
    if result.error is not None:
        sys.exit(2)


if __name__ == "__main__":
    main()
