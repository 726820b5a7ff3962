"""Works routes."""

from typing import Any

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

router = APIRouter(prefix="/api/works", tags=["works"])


class WorkCreate(BaseModel):
    bucket: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str | None = None
    story: str | None = None
    status: str = "available"
    worktype: str = "personal"
    client: str | None = None
    analysis: dict[str, Any] | None = None


class WorkUpdate(BaseModel):
    bucket: str = Field(min_length=1)
    title: str | None = None
    description: str | None = None
    story: str | None = None
    status: str | None = None
    worktype: str | None = None
    client: str | None = None


@router.post("")
async def create_work(request: Request, body: WorkCreate) -> JSONResponse:
    knowledge = request.app.state.knowledge
    try:
        work = await knowledge.add_work(body.bucket, **body.model_dump(exclude={"bucket"}))
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return JSONResponse(work, status_code=201)


@router.put("/{work_id}")
async def update_work(request: Request, work_id: str, body: WorkUpdate) -> JSONResponse:
    knowledge = request.app.state.knowledge
    fields = body.model_dump(exclude={"bucket"}, exclude_none=True)
    try:
        work = await knowledge.update_work(body.bucket, work_id, fields)
    except KeyError:
        return JSONResponse({"error": "not found"}, status_code=404)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return JSONResponse(work)


@router.get("")
async def list_works(request: Request, bucket: str = Query(min_length=1)) -> JSONResponse:
    works = await request.app.state.knowledge.list_works(bucket)
    return JSONResponse({"works": works})


@router.get("/{work_id}")
async def get_work(request: Request, work_id: str, bucket: str = Query(min_length=1)) -> JSONResponse:
    work = await request.app.state.knowledge.get_work(bucket, work_id)
    if work is None:
        return JSONResponse({"error": "not found"}, status_code=404)
    return JSONResponse(work)


@router.delete("/{work_id}")
async def delete_work(request: Request, work_id: str, bucket: str = Query(min_length=1)) -> JSONResponse:
    try:
        await request.app.state.knowledge.delete_work(bucket, work_id)
    except KeyError:
        return JSONResponse({"error": "not found"}, status_code=404)
    return JSONResponse({"ok": True})
