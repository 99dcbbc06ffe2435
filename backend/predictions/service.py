"""
Prediction results service for MatchTrace.
Responsibilities:
1. Find matches that completed inside the lookback window.
2. Score each match's pre-match prediction against its final state, a few
   matches at a time.
3. Overwrite the shared result cache and push the results to clients.
4. (worker) Repeat on an interval while holding the results leader lock,
   and sweep expired snapshots from the store.
"""
from __future__ import annotations

import asyncio
import signal
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional, Sequence, TypeVar

from pydantic import TypeAdapter, ValidationError

from shared.config import ServiceRole, Settings, get_settings
from shared.models.domain import MatchSnapshot, PredictionResult, PredictionResultsResponse
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger, match_context, setup_logging
from shared.utils.metrics import (
    PREDICTION_MATCH_FAILURES,
    PREDICTION_RESULTS,
    PREDICTION_RUN_DURATION,
    PREDICTION_RUNS,
    PUSH_FAILURES,
    SNAPSHOTS_PURGED,
    start_metrics_server,
)
from shared.utils.redis_manager import PREDICTION_RESULTS_KEY, RedisManager

from predictions.collaborators import PushPublisher, RedisPushPublisher, RedisResultCache, ResultCache
from predictions.scorer import PredictionScorer
from snapshots.store import SnapshotStore
from timeline.completion import is_completed
from timeline.segments import TIME_SEGMENTS

logger = get_logger(__name__)

RESULTS_EVENT = "ReceivePredictionResults"
LAST_UPDATED_FORMAT = "%Y-%m-%d %H:%M:%S"
MIN_SNAPSHOTS = 2

_RESULTS_ADAPTER = TypeAdapter(list[PredictionResult])

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive slices of at most `size` items."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def completed_match_ids(snapshots: Sequence[MatchSnapshot]) -> list[int]:
    """Distinct ids of matches with at least one completed snapshot, first-seen order."""
    seen: dict[int, None] = {}
    for snapshot in snapshots:
        if snapshot.match_id not in seen and is_completed(snapshot):
            seen[snapshot.match_id] = None
    return list(seen)


def _last_updated(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).strftime(LAST_UPDATED_FORMAT)


class PredictionResultsService:
    """Batch scoring of completed matches with cache overwrite and push."""

    def __init__(
        self,
        store: SnapshotStore,
        cache: ResultCache,
        publisher: PushPublisher,
        scorer: PredictionScorer | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._publisher = publisher
        self._scorer = scorer or PredictionScorer()
        self._settings = settings or get_settings()

    # ── Batch run ───────────────────────────────────────────────────────

    async def run_once(
        self,
        lookback: Optional[timedelta] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> list[PredictionResult]:
        """
        Score every match completed within the lookback window.

        Never raises. Returns the results produced by this run. A cancelled
        run still caches and pushes what its finished chunks scored; an empty
        list means nothing was scored or the run failed.
        """
        started = time.perf_counter()
        try:
            results = await self._run(lookback, cancel)
        except Exception as exc:
            PREDICTION_RUNS.labels(status="error").inc()
            logger.error("prediction_run_error", error=str(exc), exc_info=True)
            return []
        finally:
            PREDICTION_RUN_DURATION.observe(time.perf_counter() - started)
        return results

    async def _run(
        self,
        lookback: Optional[timedelta],
        cancel: Optional[asyncio.Event],
    ) -> list[PredictionResult]:
        window = lookback
        if window is None:
            window = timedelta(hours=self._settings.results_lookback_hours)
        now = datetime.now(timezone.utc)
        recent = await self._store.find_by_time_range(now - window, now)

        match_ids = completed_match_ids(recent)
        logger.info(
            "prediction_run_started",
            snapshots=len(recent),
            completed_matches=len(match_ids),
            lookback_hours=window.total_seconds() / 3600,
        )

        results: list[PredictionResult] = []
        status = "ok"
        for index, chunk in enumerate(chunked(match_ids, self._settings.results_chunk_size)):
            if index and cancel is not None and cancel.is_set():
                status = "cancelled"
                logger.info("prediction_run_cancelled", processed=len(results), chunk=index)
                break
            scored = await asyncio.gather(*(self._process_match(mid) for mid in chunk))
            results.extend(r for r in scored if r is not None)

        PREDICTION_RESULTS.set(len(results))
        if not results:
            PREDICTION_RUNS.labels(status="empty" if status == "ok" else status).inc()
            logger.info("prediction_run_no_results", completed_matches=len(match_ids))
            return results

        await self._cache.set(
            PREDICTION_RESULTS_KEY,
            _RESULTS_ADAPTER.dump_json(results).decode(),
            self._settings.results_cache_ttl_s,
        )
        await self._push(results)

        PREDICTION_RUNS.labels(status=status).inc()
        logger.info(
            "prediction_run_completed",
            results=len(results),
            completed_matches=len(match_ids),
            cancelled=status == "cancelled",
        )
        return results

    async def _process_match(self, match_id: int) -> Optional[PredictionResult]:
        """Score one match from its full stored history. Failures stay here."""
        with match_context(match_id):
            try:
                history = await self._store.find_by_match_id(match_id)
                if len(history) < MIN_SNAPSHOTS:
                    logger.info("prediction_match_skipped", snapshots=len(history))
                    return None
                if len(history) < len(TIME_SEGMENTS):
                    logger.debug("prediction_match_sparse_history", snapshots=len(history))
                return self._scorer.score(history)
            except Exception as exc:
                PREDICTION_MATCH_FAILURES.inc()
                logger.error("prediction_match_error", error=str(exc), exc_info=True)
                return None

    async def _push(self, results: list[PredictionResult]) -> None:
        response = PredictionResultsResponse(results=results, last_updated=_last_updated())
        try:
            await self._publisher.publish(RESULTS_EVENT, response.model_dump(mode="json"))
        except Exception as exc:
            PUSH_FAILURES.labels(event=RESULTS_EVENT).inc()
            logger.error("prediction_push_error", push_event=RESULTS_EVENT, error=str(exc), exc_info=True)

    # ── Reads ───────────────────────────────────────────────────────────

    async def _cached_results(self) -> list[PredictionResult]:
        try:
            raw = await self._cache.try_get(PREDICTION_RESULTS_KEY)
        except Exception as exc:
            logger.warning("prediction_cache_read_error", error=str(exc))
            return []
        if not raw:
            return []
        try:
            return _RESULTS_ADAPTER.validate_json(raw)
        except ValidationError as exc:
            logger.warning("prediction_cache_invalid", error=str(exc))
            return []

    async def get_results(self) -> PredictionResultsResponse:
        """Cached results, computing them once when the cache is empty."""
        results = await self._cached_results()
        if not results:
            await self.run_once()
            results = await self._cached_results()
        return PredictionResultsResponse(results=results, last_updated=_last_updated())


class ResultsWorker:
    """
    Periodic driver for PredictionResultsService.

    Only the instance holding the results leader lock runs batches, so the
    cache slot has a single writer. The lock is renewed while idling.
    """

    def __init__(
        self,
        service: PredictionResultsService,
        store: SnapshotStore,
        redis: RedisManager,
        settings: Settings | None = None,
    ) -> None:
        self._service = service
        self._store = store
        self._redis = redis
        self._settings = settings or get_settings()
        self._instance_id = self._settings.instance_id or str(uuid.uuid4())
        self._role = ServiceRole.RESULTS.value
        self._is_leader = False
        self._last_sweep: Optional[float] = None
        self._shutdown = asyncio.Event()

    @property
    def is_leader(self) -> bool:
        return self._is_leader

    async def _acquire_leadership(self) -> bool:
        """Attempt to acquire or renew results leadership."""
        ttl = self._settings.results_leader_ttl_s
        if self._is_leader:
            renewed = await self._redis.renew_leader(self._role, self._instance_id, ttl)
            if not renewed:
                logger.warning("leadership_lost", instance_id=self._instance_id)
                self._is_leader = False
            return renewed

        acquired = await self._redis.try_acquire_leader(self._role, self._instance_id, ttl)
        if acquired:
            self._is_leader = True
            logger.info("leadership_acquired", instance_id=self._instance_id)
        return acquired

    async def _sweep_if_due(self) -> None:
        now = time.monotonic()
        if self._last_sweep is not None and now - self._last_sweep < self._settings.retention_sweep_interval_s:
            return
        removed = await self._store.purge_expired()
        SNAPSHOTS_PURGED.inc(removed)
        self._last_sweep = now

    async def tick(self) -> bool:
        """One worker iteration. Returns True when a batch ran."""
        if not await self._acquire_leadership():
            return False
        await self._service.run_once(cancel=self._shutdown)
        await self._sweep_if_due()
        return True

    async def _idle(self, seconds: float) -> None:
        """Sleep until the next run or shutdown, renewing the lock meanwhile."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + seconds
        renew_every = max(self._settings.results_leader_ttl_s / 3, 1.0)
        while not self._shutdown.is_set():
            remaining = deadline - loop.time()
            if remaining <= 0:
                return
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=min(remaining, renew_every))
            except asyncio.TimeoutError:
                pass
            if self._is_leader and not self._shutdown.is_set():
                try:
                    await self._acquire_leadership()
                except Exception as exc:
                    logger.warning("leader_renew_error", error=str(exc))
                    self._is_leader = False

    async def run(self) -> None:
        """Main worker loop."""
        while not self._shutdown.is_set():
            try:
                ran = await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("results_worker_loop_error", error=str(exc), exc_info=True)
                ran = False

            if ran:
                await self._idle(self._settings.results_interval_s)
            else:
                await self._idle(self._settings.results_leader_ttl_s / 2)

        if self._is_leader:
            try:
                await self._redis.release_leader(self._role, self._instance_id)
            except Exception as exc:
                logger.warning("leader_release_error", error=str(exc))
            self._is_leader = False

    def request_shutdown(self) -> None:
        """Signal the worker to stop; an in-flight batch stops at its next chunk boundary."""
        self._shutdown.set()


async def main() -> None:
    """Results worker entrypoint."""
    settings = get_settings()
    setup_logging("results")
    start_metrics_server()

    redis = RedisManager(settings)
    db = DatabaseManager(settings)
    await redis.connect()
    await db.connect()

    store = SnapshotStore(db, settings)
    await store.ensure_schema()

    service = PredictionResultsService(
        store,
        RedisResultCache(redis),
        RedisPushPublisher(redis),
        settings=settings,
    )
    worker = ResultsWorker(service, store, redis, settings)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, worker.request_shutdown)

    logger.info("results_worker_started", interval_s=settings.results_interval_s)

    try:
        await worker.run()
    finally:
        await db.disconnect()
        await redis.disconnect()
        logger.info("results_worker_stopped")


if __name__ == "__main__":
    asyncio.run(main())
