import json

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from loguru import logger

from leadfinder.config.sources import get_state_sources, load_parcel_states, load_sites
from leadfinder.errors import LeadFinderError
from leadfinder.models.records import LookupRequest, LookupStatus
from leadfinder.services.lookup_service import LookupService

router = APIRouter(tags=["api"])

# error kinds that are the caller's fault rather than an outage
CLIENT_ERROR_KINDS = {"structural", "configuration", "invalid_request"}


def get_lookup_service(request: Request) -> LookupService:
    return request.app.state.lookup_service


def _sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


@router.post("/lookup")
async def lookup(payload: LookupRequest, request: Request):
    """Resolve a parcel or run a listing search. Always answers with a result envelope."""
    result = await get_lookup_service(request).handle(payload)
    status_code = 200
    if result.status is LookupStatus.ERROR:
        status_code = 400 if result.error.kind in CLIENT_ERROR_KINDS else 503
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json", exclude_none=True))


@router.post("/search/stream")
async def search_stream(payload: LookupRequest, request: Request):
    """Progress for a search request as Server-Sent Events."""
    service = get_lookup_service(request)

    async def events():
        async for event in service.stream(payload):
            yield _sse(event.stage.value, event.model_dump(mode="json", exclude_none=True))

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.get("/street-block")
async def street_block(
    request: Request,
    state: str = Query(..., min_length=2, max_length=2),
    source: str = Query(...),
    street: str = Query(..., min_length=1),
):
    """Parcels on one street, narrowed to a masked hundred block like "1XX N 31ST AV"."""
    service = get_lookup_service(request)
    try:
        sources = {s.name: s for s in get_state_sources(state).sources}
        if source not in sources:
            raise HTTPException(status_code=404, detail=f"Unknown source {source!r} for {state}")
        parcels = await service.parcels.search_street_block(street, sources[source])
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except LeadFinderError as e:
        logger.warning(f"Street block search failed ({e.kind}): {e}")
        raise HTTPException(status_code=503 if e.retryable else 400, detail=str(e)) from e

    return JSONResponse({"count": len(parcels), "parcels": [p.model_dump() for p in parcels]})


@router.get("/sources")
async def sources():
    """Configured parcel states and listing sites."""
    return JSONResponse({
        "states": {
            code: [s.name for s in state.sources] for code, state in load_parcel_states().items()
        },
        "sites": {site_id: site.kind for site_id, site in load_sites().items()},
    })


@router.get("/health")
async def api_health():
    return JSONResponse({"status": "ok", "service": "LeadFinder"})
