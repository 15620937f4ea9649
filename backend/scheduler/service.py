"""
Scheduler service for scorewatch.
Runs the fetch -> detect -> publish cycle once at startup and then on a fixed
interval, alongside the store watcher. Cycles never overlap; ticks that fire
during a running cycle are skipped or queued according to OverrunPolicy.
"""
from __future__ import annotations

import asyncio
import signal
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from shared.config import Settings, get_settings
from shared.errors import FetchError, StoreReadError
from shared.models.domain import GameSnapshot
from shared.models.enums import CycleOutcome, FetchErrorKind, OverrunPolicy, PublishOutcome
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import EngineMetrics, get_metrics, start_metrics_server
from shared.utils.redis_manager import RedisManager

from ingest.bus import ScoreBus
from ingest.detector import ChangeDetector
from ingest.providers.base import FeedSource
from ingest.providers.espn import ESPNFeedSource
from ingest.publisher import ScorePublisher
from ingest.store import ScoreStore
from watcher.service import StoreWatcher

logger = get_logger(__name__)


@dataclass
class CycleReport:
    """What one poll cycle did."""
    outcome: CycleOutcome
    observed: int = 0
    read_failures: int = 0
    publish_outcomes: Counter = field(default_factory=Counter)
    error: Optional[str] = None
    duration_s: float = 0.0

    @property
    def published(self) -> int:
        return self.publish_outcomes[PublishOutcome.PUBLISHED]


class SchedulerService:
    """
    Poll loop driving FeedSource -> ChangeDetector -> ScorePublisher.

    Every FetchError (including the fetch timeout) aborts the cycle before any
    store access. Per-fingerprint failures never stop the rest of the cycle.
    """

    def __init__(
        self,
        feed: FeedSource,
        detector: ChangeDetector,
        publisher: ScorePublisher,
        settings: Settings | None = None,
        metrics: EngineMetrics | None = None,
    ) -> None:
        self._feed = feed
        self._detector = detector
        self._publisher = publisher
        self._settings = settings or get_settings()
        self._metrics = metrics or get_metrics()
        self._shutdown = asyncio.Event()
        self._cycle_task: Optional[asyncio.Task[None]] = None
        self._pending = False
        self.last_report: Optional[CycleReport] = None

    # ── One cycle ───────────────────────────────────────────────────────

    async def _fetch(self) -> GameSnapshot:
        start = time.perf_counter()
        try:
            return await asyncio.wait_for(
                self._feed.fetch_snapshot(), timeout=self._settings.fetch_timeout_s
            )
        except asyncio.TimeoutError as exc:
            raise FetchError(
                FetchErrorKind.TIMEOUT,
                f"fetch exceeded {self._settings.fetch_timeout_s}s",
            ) from exc
        finally:
            self._metrics.step_latency.labels(step="fetch").observe(time.perf_counter() - start)

    async def run_cycle(self) -> CycleReport:
        start = time.perf_counter()
        report = await self._run_cycle()
        report.duration_s = time.perf_counter() - start
        self._metrics.cycles.labels(outcome=report.outcome.value).inc()
        self._metrics.cycle_duration.observe(report.duration_s)
        self.last_report = report
        logger.info(
            "poll_cycle_finished",
            outcome=report.outcome.value,
            observed=report.observed,
            published=report.published,
            read_failures=report.read_failures,
            duration_ms=round(report.duration_s * 1000, 2),
        )
        return report

    async def _run_cycle(self) -> CycleReport:
        try:
            snapshot = await self._fetch()
        except FetchError as exc:
            logger.error(
                "failed_to_fetch_data",
                kind=exc.kind.value,
                status_code=exc.status_code,
                error=str(exc),
            )
            return CycleReport(outcome=CycleOutcome.FETCH_FAILED, error=str(exc))

        if not snapshot.events:
            logger.warning("no_games_found")
            return CycleReport(outcome=CycleOutcome.EMPTY)
        if not snapshot.has_competitors:
            logger.warning("no_competitions_found", events=len(snapshot.events))
            return CycleReport(outcome=CycleOutcome.EMPTY)

        report = CycleReport(outcome=CycleOutcome.COMPLETED)
        for event in snapshot.events:
            for competition in event.competitions:
                for competitor in self._detector.matching_competitors(competition):
                    report.observed += 1
                    try:
                        observation = await self._detector.observe(event, competition, competitor)
                    except StoreReadError as exc:
                        report.read_failures += 1
                        logger.error(
                            "failed_to_get_previous_score",
                            game_id=competition.id,
                            error=str(exc),
                        )
                        continue

                    outcome = await self._publisher.publish(observation)
                    report.publish_outcomes[outcome] += 1
                    if outcome == PublishOutcome.WRITE_FAILED:
                        continue

                    logger.info(
                        "game_details",
                        game=event.name,
                        date=event.date,
                        competition_id=competition.id,
                        status=event.status.type.description,
                        team=competitor.team.display_name,
                        score=competitor.score,
                        quarter_scores=observation.quarter_scores,
                        classification=observation.classification.value,
                    )
        return report

    # ── Scheduling ──────────────────────────────────────────────────────

    async def _run_guarded(self) -> None:
        while True:
            try:
                await self.run_cycle()
            except Exception as exc:
                logger.error("poll_cycle_error", error=str(exc), exc_info=True)
            if self._pending and not self._shutdown.is_set():
                self._pending = False
                continue
            return

    def _on_tick(self) -> None:
        if self._cycle_task is not None and not self._cycle_task.done():
            if self._settings.overrun_policy == OverrunPolicy.QUEUE:
                self._pending = True
                logger.warning("poll_tick_queued")
            else:
                self._metrics.ticks_skipped.inc()
                logger.warning("poll_tick_skipped")
            return
        self._cycle_task = asyncio.create_task(self._run_guarded())

    async def run(self) -> None:
        """One immediate cycle, then one per poll interval until shutdown is requested."""
        loop = asyncio.get_running_loop()
        interval = self._settings.poll_interval_s
        self._cycle_task = asyncio.create_task(self._run_guarded())
        next_tick = loop.time() + interval

        try:
            while not self._shutdown.is_set():
                try:
                    await asyncio.wait_for(
                        self._shutdown.wait(), timeout=max(0.0, next_tick - loop.time())
                    )
                    break
                except asyncio.TimeoutError:
                    pass
                now = loop.time()
                while next_tick <= now:
                    next_tick += interval
                self._on_tick()
        finally:
            if self._cycle_task is not None and not self._cycle_task.done():
                await self._cycle_task

    def request_shutdown(self) -> None:
        self._shutdown.set()


# ── Entrypoint ──────────────────────────────────────────────────────────

async def _connect_with_retry(
    connect_fn: Callable[[], Awaitable[None]], name: str, settings: Settings
) -> None:
    """Call async connect_fn(); retry with exponential backoff on failure."""
    attempts = settings.connect_retry_attempts
    for attempt in range(1, attempts + 1):
        try:
            await connect_fn()
            return
        except Exception as exc:
            if attempt == attempts:
                raise
            delay = settings.connect_retry_base_delay_s * (2 ** (attempt - 1))
            logger.warning(
                "connect_retry",
                name=name,
                attempt=attempt,
                max_attempts=attempts,
                delay_s=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)


def build_service(
    redis: RedisManager,
    settings: Settings,
    metrics: EngineMetrics,
    feed: FeedSource | None = None,
) -> tuple[SchedulerService, StoreWatcher]:
    """Wire store, bus, detector, publisher, poll loop and watcher."""
    store = ScoreStore(redis, settings)
    bus = ScoreBus(redis, settings)
    detector = ChangeDetector(store, settings.team_filter, metrics)
    publisher = ScorePublisher(store, bus, metrics)
    service = SchedulerService(
        feed or ESPNFeedSource(settings, metrics),
        detector,
        publisher,
        settings,
        metrics,
    )
    return service, StoreWatcher(store, settings, metrics)


async def main() -> None:
    """Scorewatch entrypoint."""
    settings = get_settings()
    setup_logging("scorewatch")
    start_metrics_server(settings=settings)
    metrics = get_metrics()

    redis = RedisManager(settings)
    await _connect_with_retry(redis.connect, "Redis", settings)

    feed = ESPNFeedSource(settings, metrics)
    service, watcher = build_service(redis, settings, metrics, feed)
    await feed.start()
    watcher.start()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, service.request_shutdown)
        except (ValueError, OSError, RuntimeError, NotImplementedError) as exc:
            logger.warning("signal_handler_unavailable", signal=sig, error=str(exc))

    logger.info(
        "scorewatch_started",
        team_filter=settings.team_filter,
        interval_s=settings.poll_interval_s,
        overrun_policy=settings.overrun_policy.value,
        channel=settings.update_channel,
    )

    try:
        await service.run()
    finally:
        await watcher.stop()
        await feed.close()
        await redis.disconnect()
        logger.info("scorewatch_stopped")


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
