"""
SQLAlchemy 2.0 ORM models for MatchTrace.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JsonDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


class MatchSnapshotORM(Base):
    __tablename__ = "match_snapshots"
    __table_args__ = (
        Index("ix_match_snapshots_match_id", "match_id"),
        Index("ix_match_snapshots_timestamp", "timestamp"),
        Index("ix_match_snapshots_match_id_timestamp", "match_id", "timestamp"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    match_id: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    score: Mapped[Optional[str]] = mapped_column(String(20))
    period: Mapped[Optional[str]] = mapped_column(String(50))
    match_status: Mapped[Optional[str]] = mapped_column(String(100))
    played_time: Mapped[Optional[str]] = mapped_column(String(20))
    match_situation: Mapped[Optional[dict[str, Any]]] = mapped_column(JsonDocument)
    match_details: Mapped[Optional[dict[str, Any]]] = mapped_column(JsonDocument)
    prediction_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JsonDocument)
