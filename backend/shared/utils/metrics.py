"""
Metrics collection for MatchTrace.
Wraps prometheus_client with async-safe patterns.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
SNAPSHOTS_RECORDED = Counter(
    "mt_snapshots_recorded_total",
    "Match snapshots appended to the in-memory collector",
)
SNAPSHOT_FLUSH_BATCHES = Counter(
    "mt_snapshot_flush_batches_total",
    "Snapshot insert batches sent to the store",
    ["status"],
)
PREDICTION_RUNS = Counter(
    "mt_prediction_runs_total",
    "Prediction results processing runs",
    ["status"],
)
PREDICTION_MATCH_FAILURES = Counter(
    "mt_prediction_match_failures_total",
    "Matches whose processing raised during a results run",
)
PUSH_FAILURES = Counter(
    "mt_push_failures_total",
    "Failed publishes to the push channel",
    ["event"],
)
SNAPSHOTS_PURGED = Counter(
    "mt_snapshots_purged_total",
    "Snapshots removed by the retention sweep",
)

# ── Histograms ──────────────────────────────────────────────────────────
SNAPSHOT_FLUSH_LATENCY = Histogram(
    "mt_snapshot_flush_seconds",
    "Time to flush one set of snapshots, including waiting for the flush gate",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
PREDICTION_RUN_DURATION = Histogram(
    "mt_prediction_run_seconds",
    "Duration of a full prediction results run",
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

# ── Gauges ──────────────────────────────────────────────────────────────
TRACKED_MATCHES = Gauge(
    "mt_tracked_matches",
    "Matches with an in-memory snapshot log",
)
PREDICTION_RESULTS = Gauge(
    "mt_prediction_results",
    "Prediction results produced by the last run",
)


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if labels:
            histogram.labels(**labels).observe(elapsed)
        else:
            histogram.observe(elapsed)


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
