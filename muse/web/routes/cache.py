"""Cache inspection and maintenance routes."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(prefix="/api/cache", tags=["cache"])


@router.get("/stats")
async def cache_stats(request: Request) -> JSONResponse:
    services = request.app.state.services
    return JSONResponse({"context": await services.context_cache.stats()})


@router.delete("")
async def clear_cache(request: Request) -> JSONResponse:
    services = request.app.state.services
    cleared = await services.clear_caches()
    return JSONResponse({"ok": True, "cleared": cleared})
