"""
Snapshot collector.

Accumulates per-match snapshots in memory as enrichment cycles run and
flushes new snapshots to the SnapshotStore in the background:
1. record_snapshot / record_cycle append to an append-only per-match log.
2. Each call schedules a fire-and-forget flush of the snapshots it created.
3. Flushes pass through a single-slot gate, so only one flush is writing to
   the store at a time, and insert in batches of at most 100.
4. A failed batch is logged and dropped; callers never see flush errors.
"""
from __future__ import annotations

import asyncio
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Iterable, Optional

from shared.config import Settings, get_settings
from shared.models.domain import MatchSnapshot, ObservedMatchState
from shared.utils.logging import get_logger
from shared.utils.metrics import (
    SNAPSHOT_FLUSH_BATCHES,
    SNAPSHOT_FLUSH_LATENCY,
    SNAPSHOTS_RECORDED,
    TRACKED_MATCHES,
    atrack_latency,
)

from snapshots.store import MAX_INSERT_BATCH, SnapshotStore

logger = get_logger(__name__)


class SnapshotCollector:
    """In-memory snapshot accumulation with background flush to the store."""

    def __init__(self, store: SnapshotStore, settings: Settings | None = None) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self._batch_size = min(self._settings.snapshot_flush_batch_size, MAX_INSERT_BATCH)
        # match_id -> append-only log; the lock only guards log creation
        self._logs: dict[int, deque[MatchSnapshot]] = {}
        self._logs_lock = threading.Lock()
        # One flush in flight at a time, process-wide
        self._flush_gate = asyncio.Lock()
        self._pending: set[asyncio.Task[None]] = set()

    # ── Recording ───────────────────────────────────────────────────────

    def _log_for(self, match_id: int) -> deque[MatchSnapshot]:
        log = self._logs.get(match_id)
        if log is not None:
            return log
        with self._logs_lock:
            log = self._logs.get(match_id)
            if log is None:
                log = deque()
                self._logs[match_id] = log
                TRACKED_MATCHES.set(len(self._logs))
            return log

    def _append(self, match_id: int, state: ObservedMatchState, timestamp: datetime) -> MatchSnapshot:
        snapshot = MatchSnapshot.capture(match_id, state, timestamp)
        self._log_for(match_id).append(snapshot)
        SNAPSHOTS_RECORDED.inc()
        return snapshot

    async def record_snapshot(self, match_id: int, observed_state: ObservedMatchState) -> MatchSnapshot:
        """Append a new snapshot for a match and schedule its flush."""
        snapshot = self._append(match_id, observed_state, datetime.now(timezone.utc))
        self._schedule_flush([snapshot])
        return snapshot

    async def record_cycle(self, observed_states: Iterable[ObservedMatchState]) -> list[MatchSnapshot]:
        """
        Record one enrichment cycle.

        Every state in the cycle shares a timestamp and the new snapshots are
        flushed together as one background job.
        """
        timestamp = datetime.now(timezone.utc)
        created = [self._append(state.match_id, state, timestamp) for state in observed_states]
        if created:
            self._schedule_flush(created)
        return created

    # ── Reads ───────────────────────────────────────────────────────────

    def get_snapshots(self, match_id: int) -> list[MatchSnapshot]:
        """Point-in-time copy of a match's snapshots, ordered by timestamp."""
        log = self._logs.get(match_id)
        if log is None:
            return []
        return sorted(list(log), key=lambda s: s.timestamp)

    def tracked_matches(self) -> list[int]:
        return list(self._logs.keys())

    def forget(self, match_id: int) -> None:
        """Drop the in-memory log of a match whose snapshots are durable."""
        with self._logs_lock:
            self._logs.pop(match_id, None)
            TRACKED_MATCHES.set(len(self._logs))

    # ── Flushing ────────────────────────────────────────────────────────

    def _schedule_flush(self, snapshots: list[MatchSnapshot]) -> None:
        task = asyncio.create_task(self._flush(snapshots))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _flush(self, snapshots: list[MatchSnapshot]) -> None:
        try:
            async with atrack_latency(SNAPSHOT_FLUSH_LATENCY):
                async with self._flush_gate:
                    saved = await self._write_batches(snapshots)
            logger.info("snapshots_flushed", count=saved, requested=len(snapshots))
        except Exception as exc:
            logger.error("snapshot_flush_error", count=len(snapshots), error=str(exc), exc_info=True)

    async def _write_batches(self, snapshots: list[MatchSnapshot]) -> int:
        saved = 0
        for start in range(0, len(snapshots), self._batch_size):
            batch = snapshots[start:start + self._batch_size]
            try:
                await self._store.insert_many(batch)
            except Exception as exc:
                SNAPSHOT_FLUSH_BATCHES.labels(status="error").inc()
                logger.error(
                    "snapshot_batch_insert_error",
                    batch_size=len(batch),
                    error=str(exc),
                    exc_info=True,
                )
                continue
            SNAPSHOT_FLUSH_BATCHES.labels(status="ok").inc()
            saved += len(batch)
        return saved

    @property
    def pending_flushes(self) -> int:
        return len(self._pending)

    async def drain(self, timeout_s: Optional[float] = None) -> None:
        """Wait for in-flight flushes, e.g. before shutdown."""
        if not self._pending:
            return
        pending = list(self._pending)
        _, not_done = await asyncio.wait(pending, timeout=timeout_s)
        if not_done:
            logger.warning("snapshot_flush_drain_timeout", pending=len(not_done))
