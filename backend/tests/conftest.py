"""
Shared fakes for the engine tests: an in-memory versioned store, a recording bus,
a scripted feed, and scoreboard payload builders.
"""
from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Optional

import pytest
from prometheus_client import CollectorRegistry

from ingest.providers.base import FeedSource
from shared.config import Settings
from shared.errors import PublishError, StoreReadError, StoreWriteError
from shared.models.domain import GameSnapshot, StoreEntry, StoreLookup
from shared.utils.metrics import EngineMetrics


class InMemoryScoreStore:
    """Drop-in for ScoreStore with failure injection and call recording."""

    def __init__(self) -> None:
        self.values: dict[str, tuple[str, int]] = {}
        self.revision = 0
        self.reads: list[str] = []
        self.writes: list[tuple[str, str]] = []
        self.fail_reads: set[str] = set()
        self.fail_writes: set[str] = set()
        self._watchers: list[asyncio.Queue[StoreEntry]] = []

    def seed(self, key: str, value: str) -> None:
        self.revision += 1
        self.values[key] = (value, self.revision)

    async def get(self, key: str) -> StoreLookup:
        self.reads.append(key)
        if key in self.fail_reads:
            return StoreLookup.failed(StoreReadError(key, ConnectionError("store unreachable")))
        if key not in self.values:
            return StoreLookup.absent()
        value, revision = self.values[key]
        return StoreLookup.found(value, revision)

    async def put(self, key: str, value: str) -> int:
        if key in self.fail_writes:
            raise StoreWriteError(key, ConnectionError("store unreachable"))
        self.revision += 1
        self.values[key] = (value, self.revision)
        self.writes.append((key, value))
        entry = StoreEntry(key=key, value=value, revision=self.revision)
        for queue in self._watchers:
            queue.put_nowait(entry)
        return self.revision

    async def watch_all(self) -> AsyncIterator[StoreEntry]:
        queue: asyncio.Queue[StoreEntry] = asyncio.Queue()
        self._watchers.append(queue)
        try:
            for key, (value, revision) in list(self.values.items()):
                yield StoreEntry(key=key, value=value, revision=revision)
            while True:
                yield await queue.get()
        finally:
            self._watchers.remove(queue)


class RecordingBus:
    """Drop-in for ScoreBus that keeps every payload and can be made to fail."""

    def __init__(self, store: Optional[InMemoryScoreStore] = None) -> None:
        self.channel = "test.updates"
        self.published: list[str] = []
        self.store_at_publish: list[dict[str, tuple[str, int]]] = []
        self.fail = False
        self._store = store

    async def publish(self, payload: str) -> int:
        if self.fail:
            raise PublishError(self.channel, ConnectionError("bus unreachable"))
        if self._store is not None:
            self.store_at_publish.append(dict(self._store.values))
        self.published.append(payload)
        return 1


class ScriptedFeed(FeedSource):
    """Returns queued snapshots or raises queued errors, one per call; repeats the last."""

    def __init__(self, *results: Any, delay_s: float = 0.0) -> None:
        self._results = list(results)
        self.delay_s = delay_s
        self.calls = 0
        self.release: Optional[asyncio.Event] = None
        # Per-call gates: call N waits on gates[N - 1] when present.
        self.gates: list[asyncio.Event] = []

    @property
    def name(self) -> str:
        return "scripted"

    def push(self, result: Any) -> None:
        self._results.append(result)

    async def fetch_snapshot(self) -> GameSnapshot:
        self.calls += 1
        call = self.calls
        if self.release is not None:
            await self.release.wait()
        if call <= len(self.gates):
            await self.gates[call - 1].wait()
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        result = self._results.pop(0) if len(self._results) > 1 else self._results[0]
        if isinstance(result, BaseException):
            raise result
        return result


# ── Payload builders ────────────────────────────────────────────────────

def competitor_payload(
    team_id: str,
    display_name: str,
    score: str,
    linescores: Optional[list[float]] = None,
    home_away: str = "home",
) -> dict[str, Any]:
    return {
        "id": team_id,
        "type": "team",
        "homeAway": home_away,
        "team": {
            "id": team_id,
            "displayName": display_name,
            "abbreviation": display_name[:3].upper(),
        },
        "score": score,
        "linescores": [{"value": v} for v in (linescores or [])],
    }


def event_payload(
    competition_id: str,
    competitors: list[dict[str, Any]],
    name: str = "Washington Commanders at Philadelphia Eagles",
) -> dict[str, Any]:
    return {
        "id": competition_id,
        "date": "2025-01-26T23:30Z",
        "name": name,
        "shortName": "WSH @ PHI",
        "status": {"period": 2, "displayClock": "8:12", "type": {"description": "In Progress", "state": "in"}},
        "competitions": [{"id": competition_id, "competitors": competitors}],
    }


def make_snapshot(*events: dict[str, Any]) -> GameSnapshot:
    return GameSnapshot.model_validate({"events": list(events)})


def eagles_game(
    eagles_score: str,
    opponent_score: str = "3",
    competition_id: str = "401671889",
    linescores: Optional[list[float]] = None,
) -> dict[str, Any]:
    return event_payload(
        competition_id,
        [
            competitor_payload("21", "Philadelphia Eagles", eagles_score, linescores),
            competitor_payload("28", "Washington Commanders", opponent_score, home_away="away"),
        ],
    )


def sample(metrics: EngineMetrics, name: str, **labels: str) -> float:
    value = metrics.registry.get_sample_value(name, labels or None)
    return value or 0.0


# ── Fixtures ────────────────────────────────────────────────────────────

@pytest.fixture
def metrics() -> EngineMetrics:
    return EngineMetrics(registry=CollectorRegistry())


@pytest.fixture
def settings() -> Settings:
    return Settings(
        team_filter="Eagles",
        poll_interval_s=0.05,
        fetch_timeout_s=1.0,
        watch_retry_delay_s=0.01,
        metrics_enabled=False,
    )


@pytest.fixture
def store() -> InMemoryScoreStore:
    return InMemoryScoreStore()


@pytest.fixture
def bus(store: InMemoryScoreStore) -> RecordingBus:
    return RecordingBus(store)
