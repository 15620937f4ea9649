"""
Store watcher: logs every mutation of the score bucket, whoever made it.
Runs as its own task and has no effect on the poll loop.
"""
from __future__ import annotations

import asyncio
import contextlib
from typing import Callable, Optional

from shared.config import Settings, get_settings
from shared.models.domain import StoreEntry
from shared.utils.logging import get_logger
from shared.utils.metrics import EngineMetrics, get_metrics

from ingest.store import ScoreStore

logger = get_logger(__name__)


class StoreWatcher:
    """Long-lived subscriber to ``ScoreStore.watch_all``. Cancelled explicitly via ``stop``."""

    def __init__(
        self,
        store: ScoreStore,
        settings: Settings | None = None,
        metrics: EngineMetrics | None = None,
        on_mutation: Optional[Callable[[StoreEntry], None]] = None,
    ) -> None:
        self._store = store
        self._settings = settings or get_settings()
        self._metrics = metrics or get_metrics()
        self._on_mutation = on_mutation
        self._task: Optional[asyncio.Task[None]] = None
        self.last_entry: Optional[StoreEntry] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _handle(self, entry: StoreEntry) -> None:
        self.last_entry = entry
        self._metrics.watched_mutations.inc()
        logger.info("score_changed", key=entry.key, value=entry.value, revision=entry.revision)
        if self._on_mutation is not None:
            self._on_mutation(entry)

    async def run(self) -> None:
        logger.info("store_watcher_started")
        while True:
            try:
                async for entry in self._store.watch_all():
                    self._handle(entry)
                logger.warning("store_watch_ended")
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("store_watch_error", error=str(exc), exc_info=True)
            await asyncio.sleep(self._settings.watch_retry_delay_s)

    def start(self) -> asyncio.Task[None]:
        if not self.running:
            self._task = asyncio.create_task(self.run(), name="store-watcher")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("store_watcher_stopped")
