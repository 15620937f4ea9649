"""
Metrics collection for scorewatch.
Wraps prometheus_client; counters are grouped in EngineMetrics so each component
receives them at construction instead of reaching for module globals.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator, Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram, start_http_server

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

STEP_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)


class EngineMetrics:
    """All counters and histograms of the poll/detect/publish pipeline and the watcher."""

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else REGISTRY
        reg = self.registry

        # ── Feed ────────────────────────────────────────────────────────
        self.feed_requests = Counter(
            "sw_feed_requests_total",
            "Upstream HTTP requests by status",
            ["status"],
            registry=reg,
        )
        self.feed_polls = Counter(
            "sw_feed_polls_total",
            "Feed polls by result",
            ["result"],
            registry=reg,
        )
        self.feed_decodes = Counter(
            "sw_feed_decodes_total",
            "Feed payload decodes by result",
            ["result"],
            registry=reg,
        )

        # ── Store / bus ─────────────────────────────────────────────────
        self.store_reads_failed = Counter(
            "sw_store_read_failures_total",
            "Store lookups that failed for a reason other than a missing key",
            registry=reg,
        )
        self.store_writes = Counter(
            "sw_store_writes_total",
            "Score store writes by result",
            ["result"],
            registry=reg,
        )
        self.score_changes = Counter(
            "sw_score_changes_total",
            "Score transitions detected and committed",
            registry=reg,
        )
        self.publish_failures = Counter(
            "sw_publish_failures_total",
            "Change events that could not be serialised or published",
            ["reason"],
            registry=reg,
        )

        # ── Loop / watcher ──────────────────────────────────────────────
        self.cycles = Counter(
            "sw_poll_cycles_total",
            "Poll cycles by outcome",
            ["outcome"],
            registry=reg,
        )
        self.ticks_skipped = Counter(
            "sw_poll_ticks_skipped_total",
            "Ticks dropped because the previous cycle was still running",
            registry=reg,
        )
        self.watched_mutations = Counter(
            "sw_store_mutations_observed_total",
            "Store mutations seen by the watcher",
            registry=reg,
        )

        # ── Histograms ──────────────────────────────────────────────────
        self.step_latency = Histogram(
            "sw_step_latency_seconds",
            "Latency of fetch, store_read, store_write and publish steps",
            ["step"],
            buckets=STEP_BUCKETS,
            registry=reg,
        )
        self.cycle_duration = Histogram(
            "sw_poll_cycle_seconds",
            "Wall time of a full poll cycle",
            buckets=STEP_BUCKETS,
            registry=reg,
        )


@lru_cache(maxsize=1)
def get_metrics() -> EngineMetrics:
    """Process-wide metrics bound to the default registry."""
    return EngineMetrics()


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        target = histogram.labels(**labels) if labels else histogram
        target.observe(elapsed)


def start_metrics_server(port: int | None = None, settings: Settings | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = settings or get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
