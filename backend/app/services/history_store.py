from __future__ import annotations

import logging
import re
import secrets
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.db import SessionLocal
from app.core.errors import PersistenceError
from app.models import Favorite, HistoryRecord


logger = logging.getLogger(__name__)

RECORD_ID_SPACE = 1_000_000_000
_MARKUP_PATTERN = re.compile(r"(<([^>]+)>)", re.IGNORECASE)


def strip_markup(text: str) -> str:
    """Remove HTML tags, leaving the text content (plain-text copy/export)."""
    return _MARKUP_PATTERN.sub("", text or "")


class HistoryRepository:
    """History and favorites tables behind the generation workflow."""

    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def _new_record_id(self, db: Session) -> int:
        while True:
            candidate = secrets.randbelow(RECORD_ID_SPACE)
            if db.get(HistoryRecord, candidate) is None:
                return candidate

    def save(self, owner_id: str, input_description: str, result_text: str) -> int:
        try:
            with self._session_factory() as db:
                record = HistoryRecord(
                    id=self._new_record_id(db),
                    owner_id=owner_id,
                    type=input_description,
                    result=result_text,
                )
                db.add(record)
                db.commit()
                return record.id
        except SQLAlchemyError as exc:
            raise PersistenceError(f"could not save history for {owner_id!r}: {exc}") from exc

    def add_favorite(self, record_id: int, owner_email: Optional[str]) -> Favorite:
        try:
            with self._session_factory() as db:
                if db.get(HistoryRecord, record_id) is None:
                    raise LookupError(f"history record {record_id} not found")
                favorite = Favorite(record_id=record_id, email=owner_email)
                db.add(favorite)
                db.commit()
                db.refresh(favorite)
                db.expunge(favorite)
                return favorite
        except SQLAlchemyError as exc:
            raise PersistenceError(f"could not add favorite for record {record_id}: {exc}") from exc

    def get(self, record_id: int) -> Optional[HistoryRecord]:
        with self._session_factory() as db:
            record = db.get(HistoryRecord, record_id)
            if record is not None:
                db.expunge(record)
            return record

    def list_for_owner(self, owner_id: str, limit: Optional[int] = None) -> List[HistoryRecord]:
        with self._session_factory() as db:
            query = (
                db.query(HistoryRecord)
                .filter(HistoryRecord.owner_id == owner_id)
                .order_by(HistoryRecord.created_at.desc(), HistoryRecord.id.desc())
            )
            if limit is not None:
                query = query.limit(limit)
            rows = query.all()
            db.expunge_all()
            return rows

    def list_favorites(self, email: str) -> List[Favorite]:
        with self._session_factory() as db:
            rows = (
                db.query(Favorite)
                .filter(Favorite.email == email)
                .order_by(Favorite.created_at.desc(), Favorite.id.desc())
                .all()
            )
            db.expunge_all()
            return rows


history_repository = HistoryRepository()
