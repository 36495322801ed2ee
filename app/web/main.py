"""
LeadFinder Web API
FastAPI, JSON + Server-Sent Events
"""
import traceback
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.web.routers import api
from leadfinder.config.settings import QUERY_TIMEOUT_SECONDS
from leadfinder.services.feature_query import FeatureQueryClient
from leadfinder.services.http_fetch import HtmlFetcher
from leadfinder.services.lookup_service import LookupService
from leadfinder.utils.logging_config import setup_default_logging

# Configure loguru
setup_default_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("LeadFinder Web starting up...")
    query = FeatureQueryClient(timeout_seconds=QUERY_TIMEOUT_SECONDS)
    fetcher = HtmlFetcher()
    app.state.lookup_service = LookupService(query, fetcher)
    try:
        yield
    finally:
        await query.aclose()
        await fetcher.aclose()
        logger.info("LeadFinder Web shutting down...")


app = FastAPI(
    title="LeadFinder",
    description="Parcel, court docket, obituary and public notice lookups",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(api.router, prefix="/api")


# =============================================================================
# Error Handlers
# =============================================================================

def _generate_error_id() -> str:
    """Generate a short error ID for tracking."""
    return str(uuid.uuid4())[:8].upper()


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    error_id = _generate_error_id()
    if exc.status_code >= 400:
        log_fn = logger.warning if exc.status_code < 500 else logger.error
        log_fn(f"HTTP {exc.status_code} [ID: {error_id}]: {exc.detail} - {request.method} {request.url}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "http_error",
            "status_code": exc.status_code,
            "message": exc.detail,
            "error_id": error_id,
            "path": str(request.url.path),
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions with detailed logging."""
    error_id = _generate_error_id()
    tb = traceback.format_exc()
    logger.error(
        f"Unhandled exception [ID: {error_id}]\n"
        f"Request: {request.method} {request.url}\n"
        f"Exception: {type(exc).__name__}: {exc}\n"
        f"Traceback:\n{tb}"
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": f"An unexpected error occurred: {type(exc).__name__}",
            "error_id": error_id,
            "path": str(request.url.path),
        },
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.web.main:app",
        host="0.0.0.0",
        port=8080,
        reload=True
    )
