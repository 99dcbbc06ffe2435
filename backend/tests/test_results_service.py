"""
Unit tests for the prediction results service, its collaborators and worker.

Run: pytest backend/tests/test_results_service.py -v
"""
from __future__ import annotations

import asyncio
import json
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from predictions.collaborators import RedisPushPublisher, RedisResultCache
from predictions.service import (
    RESULTS_EVENT,
    PredictionResultsService,
    ResultsWorker,
    chunked,
    completed_match_ids,
)
from shared.config import ServiceRole
from shared.utils.redis_manager import PREDICTION_RESULTS_KEY


class InMemoryCache:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def set(self, key: str, value: str, ttl_s: int) -> None:
        self.values[key] = value
        self.ttls[key] = ttl_s

    async def try_get(self, key: str):
        return self.values.get(key)


@pytest.fixture
def cache() -> InMemoryCache:
    return InMemoryCache()


@pytest.fixture
def publisher() -> MagicMock:
    p = MagicMock()
    p.publish = AsyncMock(return_value=None)
    return p


@pytest.fixture
def histories(make_snapshot, prediction):
    """match_id -> two-snapshot history ending 2:1 at full time."""

    def _history(match_id: int):
        return [
            make_snapshot(1, match_id=match_id, prediction=prediction),
            make_snapshot(90, match_id=match_id, score="2:1", status="Ended"),
        ]

    return _history


def _store_for(match_ids, histories) -> MagicMock:
    store = MagicMock()
    store.find_by_time_range = AsyncMock(
        return_value=[snap for mid in match_ids for snap in histories(mid)]
    )
    store.find_by_match_id = AsyncMock(side_effect=lambda mid: histories(mid))
    return store


# ── Helpers ─────────────────────────────────────────────────────────────

def test_chunked_splits_in_order() -> None:
    assert [len(c) for c in chunked(list(range(13)), 5)] == [5, 5, 3]
    assert list(chunked([], 5)) == []
    with pytest.raises(ValueError):
        list(chunked([1], 0))


def test_completed_match_ids_distinct_first_seen(make_snapshot) -> None:
    snapshots = [
        make_snapshot(90, match_id=3, status="Ended"),
        make_snapshot(30, match_id=4),
        make_snapshot(92, match_id=1, played_time="90+2:00"),
        make_snapshot(91, match_id=3, status="Ended"),
    ]
    assert completed_match_ids(snapshots) == [3, 1]


# ── run_once ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_run_once_chunks_matches(histories, cache, publisher, settings) -> None:
    match_ids = list(range(1, 14))
    store = _store_for(match_ids, histories)
    service = PredictionResultsService(store, cache, publisher, settings=settings)

    chunk_peaks: list[int] = []
    in_flight = 0
    fetch_history = store.find_by_match_id.side_effect

    async def tracking(mid):
        nonlocal in_flight
        in_flight += 1
        if in_flight == 1:
            chunk_peaks.append(0)
        chunk_peaks[-1] = max(chunk_peaks[-1], in_flight)
        await asyncio.sleep(0)
        result = fetch_history(mid)
        in_flight -= 1
        return result

    store.find_by_match_id.side_effect = tracking

    results = await service.run_once()

    assert store.find_by_time_range.await_count == 1
    assert store.find_by_match_id.await_count == 13
    assert len(results) == 13
    # each chunk runs fully concurrent and never overlaps the next one
    assert chunk_peaks == [5, 5, 3]
    assert [r.match_id for r in results] == match_ids


@pytest.mark.asyncio
async def test_run_once_uses_lookback_window(histories, cache, publisher, settings) -> None:
    store = _store_for([1], histories)
    service = PredictionResultsService(store, cache, publisher, settings=settings)

    await service.run_once(lookback=timedelta(hours=2))

    start, end = store.find_by_time_range.await_args.args
    assert end - start == timedelta(hours=2)


@pytest.mark.asyncio
async def test_run_once_zero_lookback(histories, cache, publisher, settings) -> None:
    store = _store_for([1], histories)
    service = PredictionResultsService(store, cache, publisher, settings=settings)

    await service.run_once(lookback=timedelta(0))

    start, end = store.find_by_time_range.await_args.args
    assert start == end


@pytest.mark.asyncio
async def test_run_once_writes_cache_then_publishes(histories, cache, publisher, settings) -> None:
    store = _store_for([1, 2], histories)
    service = PredictionResultsService(store, cache, publisher, settings=settings)

    await service.run_once()

    cached = json.loads(cache.values[PREDICTION_RESULTS_KEY])
    assert [r["match_id"] for r in cached] == [1, 2]
    assert cache.ttls[PREDICTION_RESULTS_KEY] == settings.results_cache_ttl_s

    event, payload = publisher.publish.await_args.args
    assert event == RESULTS_EVENT
    assert len(payload["results"]) == 2
    assert len(payload["last_updated"]) == len("2026-05-02 15:00:00")


@pytest.mark.asyncio
async def test_publish_failure_keeps_cache(histories, cache, publisher, settings) -> None:
    publisher.publish.side_effect = ConnectionError("push down")
    store = _store_for([1], histories)
    service = PredictionResultsService(store, cache, publisher, settings=settings)

    results = await service.run_once()

    assert len(results) == 1
    assert PREDICTION_RESULTS_KEY in cache.values


@pytest.mark.asyncio
async def test_failing_match_is_isolated(histories, cache, publisher, settings) -> None:
    store = _store_for([1, 2, 3], histories)

    def flaky(mid):
        if mid == 2:
            raise RuntimeError("read failed")
        return histories(mid)

    store.find_by_match_id.side_effect = flaky
    service = PredictionResultsService(store, cache, publisher, settings=settings)

    results = await service.run_once()

    assert [r.match_id for r in results] == [1, 3]


@pytest.mark.asyncio
async def test_short_history_is_skipped(make_snapshot, cache, publisher, settings) -> None:
    lonely = make_snapshot(90, match_id=5, score="1:0", status="Ended")
    store = MagicMock()
    store.find_by_time_range = AsyncMock(return_value=[lonely])
    store.find_by_match_id = AsyncMock(return_value=[lonely])
    service = PredictionResultsService(store, cache, publisher, settings=settings)

    assert await service.run_once() == []
    assert cache.values == {}
    publisher.publish.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancel_between_chunks_keeps_finished_results(histories, cache, publisher, settings) -> None:
    match_ids = list(range(1, 14))
    store = _store_for(match_ids, histories)
    cancel = asyncio.Event()

    def cancel_during_first_chunk(mid):
        cancel.set()
        return histories(mid)

    store.find_by_match_id.side_effect = cancel_during_first_chunk
    service = PredictionResultsService(store, cache, publisher, settings=settings)

    results = await service.run_once(cancel=cancel)

    # the running chunk completes, the next one never starts
    assert store.find_by_match_id.await_count == 5
    assert [r.match_id for r in results] == [1, 2, 3, 4, 5]

    cached = json.loads(cache.values[PREDICTION_RESULTS_KEY])
    assert [r["match_id"] for r in cached] == [1, 2, 3, 4, 5]
    event, payload = publisher.publish.await_args.args
    assert event == RESULTS_EVENT
    assert len(payload["results"]) == 5


@pytest.mark.asyncio
async def test_run_once_never_raises(cache, publisher, settings) -> None:
    store = MagicMock()
    store.find_by_time_range = AsyncMock(side_effect=RuntimeError("db down"))
    service = PredictionResultsService(store, cache, publisher, settings=settings)

    assert await service.run_once() == []


# ── get_results ─────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_get_results_serves_cache(histories, cache, publisher, settings) -> None:
    store = _store_for([1], histories)
    service = PredictionResultsService(store, cache, publisher, settings=settings)
    await service.run_once()
    store.find_by_time_range.reset_mock()

    response = await service.get_results()

    assert [r.match_id for r in response.results] == [1]
    store.find_by_time_range.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_results_computes_on_empty_cache(histories, cache, publisher, settings) -> None:
    store = _store_for([4], histories)
    service = PredictionResultsService(store, cache, publisher, settings=settings)

    response = await service.get_results()

    assert [r.match_id for r in response.results] == [4]
    assert store.find_by_time_range.await_count == 1


@pytest.mark.asyncio
async def test_get_results_empty_when_nothing_completed(cache, publisher, settings) -> None:
    store = MagicMock()
    store.find_by_time_range = AsyncMock(return_value=[])
    service = PredictionResultsService(store, cache, publisher, settings=settings)

    response = await service.get_results()

    assert response.results == []
    assert response.last_updated


# ── Redis collaborators ─────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_redis_collaborators_delegate_to_manager() -> None:
    redis = MagicMock()
    redis.set_json = AsyncMock()
    redis.get_json = AsyncMock(return_value="[]")
    redis.publish_event = AsyncMock(return_value=2)

    cache = RedisResultCache(redis)
    await cache.set("k", "[]", 60)
    assert await cache.try_get("k") == "[]"
    redis.set_json.assert_awaited_once_with("k", "[]", 60)

    await RedisPushPublisher(redis).publish(RESULTS_EVENT, {"results": []})
    event, body = redis.publish_event.await_args.args
    assert event == RESULTS_EVENT
    assert json.loads(body) == {"results": []}


# ── Worker ──────────────────────────────────────────────────────────────

@pytest.fixture
def redis_lock() -> MagicMock:
    r = MagicMock()
    r.try_acquire_leader = AsyncMock(return_value=True)
    r.renew_leader = AsyncMock(return_value=True)
    r.release_leader = AsyncMock(return_value=True)
    return r


@pytest.mark.asyncio
async def test_worker_tick_runs_batch_and_sweep_as_leader(redis_lock, settings) -> None:
    service = MagicMock()
    service.run_once = AsyncMock(return_value=[])
    store = MagicMock()
    store.purge_expired = AsyncMock(return_value=3)
    worker = ResultsWorker(service, store, redis_lock, settings)

    assert await worker.tick() is True
    assert await worker.tick() is True

    assert worker.is_leader
    assert service.run_once.await_count == 2
    # sweep interval has not elapsed between the two ticks
    assert store.purge_expired.await_count == 1
    redis_lock.renew_leader.assert_awaited_once()
    role, instance_id, _ = redis_lock.try_acquire_leader.await_args.args
    assert role == ServiceRole.RESULTS.value == "results"
    assert instance_id == "test-instance"


@pytest.mark.asyncio
async def test_worker_tick_skips_without_leadership(redis_lock, settings) -> None:
    redis_lock.try_acquire_leader.return_value = False
    service = MagicMock()
    service.run_once = AsyncMock()
    worker = ResultsWorker(service, MagicMock(), redis_lock, settings)

    assert await worker.tick() is False
    service.run_once.assert_not_awaited()


@pytest.mark.asyncio
async def test_worker_run_stops_on_shutdown_and_releases_lock(redis_lock, settings) -> None:
    service = MagicMock()
    store = MagicMock()
    store.purge_expired = AsyncMock(return_value=0)
    worker = ResultsWorker(service, store, redis_lock, settings)

    async def run_and_stop(**kwargs):
        worker.request_shutdown()
        return []

    service.run_once = AsyncMock(side_effect=run_and_stop)

    await asyncio.wait_for(worker.run(), timeout=5)

    service.run_once.assert_awaited_once()
    redis_lock.release_leader.assert_awaited_once()
    assert not worker.is_leader
