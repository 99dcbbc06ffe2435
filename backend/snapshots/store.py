"""
Durable, append-only store of match snapshots.

Rows are keyed by snapshot id, indexed by match id and timestamp, and expire
a fixed number of days after their timestamp (see purge_expired).
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from sqlalchemy import delete, select

from shared.config import Settings, get_settings
from shared.models.domain import MatchSnapshot
from shared.models.orm import MatchSnapshotORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

logger = get_logger(__name__)

MAX_INSERT_BATCH = 100


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything we write is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_orm(snapshot: MatchSnapshot) -> MatchSnapshotORM:
    return MatchSnapshotORM(
        id=snapshot.id,
        match_id=snapshot.match_id,
        timestamp=_as_utc(snapshot.timestamp),
        score=snapshot.score,
        period=snapshot.period,
        match_status=snapshot.match_status,
        played_time=snapshot.played_time,
        match_situation=(
            snapshot.match_situation.model_dump(mode="json") if snapshot.match_situation else None
        ),
        match_details=(
            snapshot.match_details.model_dump(mode="json") if snapshot.match_details else None
        ),
        prediction_data=(
            snapshot.prediction_data.model_dump(mode="json") if snapshot.prediction_data else None
        ),
    )


def _from_orm(row: MatchSnapshotORM) -> MatchSnapshot:
    return MatchSnapshot.model_validate({
        "id": row.id,
        "match_id": row.match_id,
        "timestamp": _as_utc(row.timestamp),
        "score": row.score,
        "period": row.period,
        "match_status": row.match_status,
        "played_time": row.played_time,
        "match_situation": row.match_situation,
        "match_details": row.match_details,
        "prediction_data": row.prediction_data,
    })


class SnapshotStore:
    """Snapshot persistence over the shared DatabaseManager."""

    def __init__(self, db: DatabaseManager, settings: Settings | None = None) -> None:
        self._db = db
        self._settings = settings or get_settings()

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self._settings.snapshot_retention_days)

    async def ensure_schema(self) -> None:
        """Create the snapshots table and its indexes when missing."""
        await self._db.create_all()
        logger.info(
            "snapshot_store_ready",
            retention_days=self._settings.snapshot_retention_days,
        )

    async def insert_many(self, snapshots: Sequence[MatchSnapshot]) -> None:
        """Insert one batch of snapshots in a single transaction."""
        if not snapshots:
            return
        if len(snapshots) > MAX_INSERT_BATCH:
            raise ValueError(
                f"insert_many accepts at most {MAX_INSERT_BATCH} snapshots, got {len(snapshots)}"
            )
        async with self._db.write_session() as session:
            session.add_all([_to_orm(s) for s in snapshots])

    async def find_by_match_id(self, match_id: int) -> list[MatchSnapshot]:
        """All stored snapshots of a match, oldest first."""
        stmt = (
            select(MatchSnapshotORM)
            .where(MatchSnapshotORM.match_id == match_id)
            .order_by(MatchSnapshotORM.timestamp.asc())
        )
        async with self._db.read_session() as session:
            result = await session.execute(stmt)
            return [_from_orm(row) for row in result.scalars().all()]

    async def find_by_time_range(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[MatchSnapshot]:
        """Snapshots with start <= timestamp <= end. Either bound may be None."""
        stmt = select(MatchSnapshotORM)
        if start is not None:
            stmt = stmt.where(MatchSnapshotORM.timestamp >= _as_utc(start))
        if end is not None:
            stmt = stmt.where(MatchSnapshotORM.timestamp <= _as_utc(end))
        async with self._db.read_session() as session:
            result = await session.execute(stmt)
            return [_from_orm(row) for row in result.scalars().all()]

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete snapshots older than the retention window. Returns rows removed."""
        cutoff = _as_utc(now or datetime.now(timezone.utc)) - self.retention
        async with self._db.write_session() as session:
            result = await session.execute(
                delete(MatchSnapshotORM).where(MatchSnapshotORM.timestamp < cutoff)
            )
            removed = result.rowcount or 0
        if removed:
            logger.info("snapshots_purged", count=removed, cutoff=cutoff.isoformat())
        return removed
