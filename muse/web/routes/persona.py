"""Persona routes."""

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from muse.knowledge.models import Persona, SampleExchange

router = APIRouter(prefix="/api/persona", tags=["persona"])


class PersonaRequest(BaseModel):
    bucket: str = Field(min_length=1)
    motif: str = Field(min_length=1)
    character: str | None = None
    tone: str | None = None
    philosophy: str | None = None
    influences: list[str] = Field(default_factory=list)
    samples: list[SampleExchange] = Field(default_factory=list)
    avoidances: list[str] = Field(default_factory=list)


@router.put("")
async def update_persona(request: Request, body: PersonaRequest) -> JSONResponse:
    """Replace the bucket's persona and evict its cached context."""
    knowledge = request.app.state.knowledge
    persona = Persona.model_validate(body.model_dump(exclude={"bucket"}))
    saved = await knowledge.update_persona(body.bucket, persona)
    return JSONResponse({"persona": saved.model_dump(mode="json")})


@router.get("")
async def get_persona(request: Request, bucket: str = Query(min_length=1)) -> JSONResponse:
    persona = await request.app.state.knowledge.get_persona(bucket)
    return JSONResponse({"persona": persona.model_dump(mode="json") if persona else None})
