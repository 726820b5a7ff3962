"""Chat route streaming agent events as Server-Sent Events."""

from collections.abc import AsyncIterator

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

router = APIRouter(prefix="/api/chat", tags=["chat"])


class ChatRequest(BaseModel):
    bucket: str = Field(min_length=1)
    message: str = Field(min_length=1)
    session_id: str | None = None


@router.post("")
async def chat(request: Request, body: ChatRequest) -> StreamingResponse:
    """Run one customer turn and stream its events."""
    chat_service = request.app.state.chat

    async def frames() -> AsyncIterator[str]:
        async for event in chat_service.stream(body.bucket, body.message, body.session_id):
            yield event.to_sse()

    return StreamingResponse(
        frames(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
