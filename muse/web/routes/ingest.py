"""Ingest routes for already-extracted file text and reference URLs."""

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

router = APIRouter(prefix="/api/ingest", tags=["ingest"])


class FileIngest(BaseModel):
    bucket: str = Field(min_length=1)
    filename: str = Field(min_length=1)
    text: str = Field(min_length=1)
    filetype: str | None = None


class UrlIngest(BaseModel):
    bucket: str = Field(min_length=1)
    url: str = Field(min_length=1)
    title: str = ""
    content: str = Field(min_length=1)


@router.post("/file")
async def ingest_file(request: Request, body: FileIngest) -> JSONResponse:
    knowledge = request.app.state.knowledge
    record = await knowledge.add_file(body.bucket, body.filename, body.text, filetype=body.filetype)
    return JSONResponse(record, status_code=201)


@router.post("/url")
async def ingest_url(request: Request, body: UrlIngest) -> JSONResponse:
    knowledge = request.app.state.knowledge
    try:
        record = await knowledge.add_url(body.bucket, body.url, body.title, body.content)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return JSONResponse(record, status_code=201)


@router.get("/files")
async def list_files(request: Request, bucket: str = Query(min_length=1)) -> JSONResponse:
    files = await request.app.state.knowledge.list_files(bucket)
    return JSONResponse({"files": files})


@router.get("/urls")
async def list_urls(request: Request, bucket: str = Query(min_length=1)) -> JSONResponse:
    urls = await request.app.state.knowledge.list_urls(bucket)
    return JSONResponse({"urls": urls})
