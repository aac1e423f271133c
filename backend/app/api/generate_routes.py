from __future__ import annotations

import time
from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, Request, status
from pydantic import BaseModel, EmailStr, Field
from starlette.responses import StreamingResponse

from app.api.history_routes import FavoriteOut
from app.core.errors import PersistenceError
from app.core.settings import settings
from app.core.sse import stream_generation_as_sse
from app.services.generation_service import generation_service
from app.services.history_store import history_repository
from app.services.prompts import TEMPLATES, list_templates
from app.services.streaming_session import GenerationSession, StreamingGenerationSession


router = APIRouter(prefix="/api/generate", tags=["generate"])


class GenerateRequest(BaseModel):
    fields: Dict[str, str]
    owner_id: str = Field(min_length=1)
    owner_email: Optional[EmailStr] = None
    provider: Optional[str] = None
    model: Optional[str] = None


class ContinueRequest(BaseModel):
    owner_id: Optional[str] = None
    owner_email: Optional[EmailStr] = None
    provider: Optional[str] = None
    model: Optional[str] = None


class TemplateOut(BaseModel):
    name: str
    title: str
    fields: List[str]


class MessageOut(BaseModel):
    role: str
    content: str


class SessionOut(BaseModel):
    id: str
    state: str
    content: str
    cancelled: bool
    error: Optional[str] = None
    record_id: Optional[int] = None


class SurfaceOut(BaseModel):
    session_id: str
    tool: str
    mode: str
    state: str
    owner_id: str = ""
    owner_email: Optional[str] = None
    messages: List[MessageOut]
    current: Optional[SessionOut] = None


def _session_out(session: Optional[GenerationSession]) -> Optional[SessionOut]:
    if session is None:
        return None
    return SessionOut(
        id=session.id,
        state=session.state.value,
        content=session.buffer,
        cancelled=session.cancelled,
        error=str(session.error) if session.error is not None else None,
        record_id=session.record_id,
    )


def _surface_out(session_id: str, tool: str, surface: Optional[StreamingGenerationSession]) -> SurfaceOut:
    if surface is None:
        return SurfaceOut(session_id=session_id, tool=tool, mode="input", state="idle", messages=[])
    return SurfaceOut(
        session_id=session_id,
        tool=tool,
        mode=surface.mode,
        state=surface.state.value,
        owner_id=surface.owner_id,
        owner_email=surface.owner_email,
        messages=[MessageOut(**m) for m in surface.context.messages],
        current=_session_out(surface.current),
    )


def _require_tool(tool: str) -> None:
    if tool not in TEMPLATES:
        raise HTTPException(status_code=404, detail=f"Unknown tool: {tool}")


def _sse_response(surface: StreamingGenerationSession, request: Request) -> StreamingResponse:
    request_identifier = str(int(time.time() * 1000))
    headers = {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        # Helps when behind Nginx / proxies that buffer streaming
        "X-Accel-Buffering": "no",
    }
    return StreamingResponse(
        stream_generation_as_sse(
            surface,
            surface.start,
            request=request,
            request_id=request_identifier,
            heartbeat_interval=settings.sse_heartbeat_interval,
        ),
        media_type="text/event-stream",
        headers=headers,
    )


@router.get("/templates", response_model=list[TemplateOut])
def get_templates() -> list[TemplateOut]:
    return [TemplateOut(name=t.name, title=t.title, fields=list(t.fields)) for t in list_templates()]


@router.post("/{tool}/stream")
async def generate_stream(
    tool: str,
    request_body: GenerateRequest,
    request: Request,
    session_id: str = Query("default"),
) -> StreamingResponse:
    """
    Returns SSE:
      event: start    -> session id
      event: content  -> partial text
      event: done     -> full text and saved record id (or event: error)
    """
    _require_tool(tool)
    try:
        surface = generation_service.prepare(
            session_id,
            tool,
            request_body.fields,
            owner_id=request_body.owner_id,
            owner_email=request_body.owner_email,
            provider=request_body.provider,
            model=request_body.model,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _sse_response(surface, request)


@router.post("/{tool}/continue")
async def continue_generation(
    tool: str,
    request: Request,
    request_body: Optional[ContinueRequest] = None,
    session_id: str = Query("default"),
) -> StreamingResponse:
    """Generate again on top of the existing conversation, keeping the previous answers."""
    _require_tool(tool)
    surface = generation_service.get_surface(session_id, tool)
    if surface is None or not len(surface.context):
        raise HTTPException(status_code=409, detail="Nothing to continue; start a generation first")
    options = request_body or ContinueRequest()
    generation_service.configure(
        surface,
        owner_id=options.owner_id,
        owner_email=options.owner_email,
        provider=options.provider,
        model=options.model,
    )
    return _sse_response(surface, request)


@router.post("/{tool}/cancel", response_model=SurfaceOut)
async def cancel_generation(tool: str, session_id: str = Query("default")) -> SurfaceOut:
    _require_tool(tool)
    surface = generation_service.get_surface(session_id, tool)
    if surface is not None:
        surface.cancel()
    return _surface_out(session_id, tool, surface)


@router.get("/{tool}/context", response_model=SurfaceOut)
async def get_context(tool: str, session_id: str = Query("default")) -> SurfaceOut:
    _require_tool(tool)
    return _surface_out(session_id, tool, generation_service.get_surface(session_id, tool))


@router.post("/{tool}/favorite", response_model=FavoriteOut, status_code=status.HTTP_201_CREATED)
def favorite_current(tool: str, session_id: str = Query("default")) -> FavoriteOut:
    """Favorite the saved result of the surface's latest generation for its owner's email."""
    _require_tool(tool)
    surface = generation_service.get_surface(session_id, tool)
    current = surface.current if surface is not None else None
    if current is None or current.record_id is None:
        raise HTTPException(status_code=409, detail="No saved result to favorite yet")
    try:
        favorite = history_repository.add_favorite(current.record_id, surface.owner_email)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail="History record not found") from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail="Could not save favorite") from exc
    return FavoriteOut.model_validate(favorite)


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
async def clear_session(session_id: str = Query(..., min_length=1)) -> None:
    """Forget every tool surface of a browser session, cancelling running generations."""
    generation_service.clear(session_id)
