from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, String, Text, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.db import Base


class HistoryRecord(Base):
    __tablename__ = "history"

    # Random id chosen by the writer, not autoincremented
    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    owner_id: Mapped[str] = mapped_column(String(128), index=True)
    type: Mapped[str] = mapped_column(Text(), default="")  # input description
    result: Mapped[str] = mapped_column(Text(), default="")
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, index=True)

    favorites: Mapped[list[Favorite]] = relationship(
        "Favorite", back_populates="record", cascade="all, delete-orphan"
    )


class Favorite(Base):
    __tablename__ = "favorites"
    __table_args__ = (Index("ix_favorites_email_created", "email", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    record_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("history.id", ondelete="CASCADE"))
    email: Mapped[Optional[str]] = mapped_column(String(254), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)

    record: Mapped[HistoryRecord] = relationship("HistoryRecord", back_populates="favorites")
