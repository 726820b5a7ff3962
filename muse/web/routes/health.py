"""Health check route."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from muse import __version__

router = APIRouter(tags=["health"])


@router.get("/api/health")
async def health() -> JSONResponse:
    return JSONResponse({"status": "ok", "version": __version__})
