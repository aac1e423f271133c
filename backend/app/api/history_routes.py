from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel

from app.core.errors import PersistenceError
from app.services.history_store import history_repository, strip_markup


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/history", tags=["history"])


class HistoryOut(BaseModel):
    id: int
    owner_id: str
    type: str
    result: str
    created_at: datetime

    class Config:
        from_attributes = True


class PlainTextOut(BaseModel):
    id: int
    text: str


class FavoriteRequest(BaseModel):
    email: Optional[str] = None


class FavoriteOut(BaseModel):
    id: int
    record_id: int
    email: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


@router.get("/", response_model=list[HistoryOut])
def list_history(owner_id: str = Query(...), limit: Optional[int] = Query(None, ge=1)) -> list[HistoryOut]:
    return [HistoryOut.model_validate(r) for r in history_repository.list_for_owner(owner_id, limit=limit)]


@router.get("/favorites", response_model=list[FavoriteOut])
def list_favorites(email: str = Query(...)) -> list[FavoriteOut]:
    return [FavoriteOut.model_validate(f) for f in history_repository.list_favorites(email)]


@router.get("/{record_id}", response_model=HistoryOut)
def get_record(record_id: int) -> HistoryOut:
    record = history_repository.get(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="History record not found")
    return HistoryOut.model_validate(record)


@router.get("/{record_id}/plain", response_model=PlainTextOut)
def get_plain_text(record_id: int) -> PlainTextOut:
    """Result with markup removed, as copied to the clipboard."""
    record = history_repository.get(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="History record not found")
    return PlainTextOut(id=record.id, text=strip_markup(record.result))


@router.post("/{record_id}/favorite", response_model=FavoriteOut, status_code=status.HTTP_201_CREATED)
def add_favorite(record_id: int, body: FavoriteRequest) -> FavoriteOut:
    try:
        favorite = history_repository.add_favorite(record_id, body.email)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail="History record not found") from exc
    except PersistenceError as exc:
        logger.error("favorite for record %s failed: %s", record_id, exc)
        raise HTTPException(status_code=500, detail="Could not save favorite") from exc
    return FavoriteOut.model_validate(favorite)
