"""
Commits classified scores to the store and announces transitions on the bus.
The store write always happens first; an event is only built after it succeeds.
"""
from __future__ import annotations

from pydantic import ValidationError

from shared.errors import PublishError, SerializationError, StoreWriteError
from shared.models.domain import ScoreChangeEvent
from shared.models.enums import Classification, PublishOutcome
from shared.utils.logging import get_logger
from shared.utils.metrics import EngineMetrics, atrack_latency, get_metrics

from ingest.bus import ScoreBus
from ingest.detector import Observation
from ingest.store import ScoreStore

logger = get_logger(__name__)


def build_change_event(observation: Observation) -> str:
    """Serialise the bus payload for a transition."""
    try:
        event = ScoreChangeEvent(
            game_id=observation.game_id,
            score=observation.score,
            quarter_scores=observation.quarter_scores,
        )
        return event.model_dump_json()
    except (ValidationError, ValueError, TypeError) as exc:
        raise SerializationError(f"failed to marshal score update for {observation.fingerprint}") from exc


class ScorePublisher:
    """
    Applies one observation:

    - unchanged: nothing
    - first seen: store write only (no startup flood of change events)
    - changed: store write, then one change event

    A failed publish leaves the write committed; the store is the source of truth.
    """

    def __init__(
        self,
        store: ScoreStore,
        bus: ScoreBus,
        metrics: EngineMetrics | None = None,
    ) -> None:
        self._store = store
        self._bus = bus
        self._metrics = metrics or get_metrics()

    async def publish(self, observation: Observation) -> PublishOutcome:
        if not observation.classification.needs_write:
            return PublishOutcome.SKIPPED

        key = observation.fingerprint
        try:
            async with atrack_latency(self._metrics.step_latency, step="store_write"):
                revision = await self._store.put(key, observation.score)
        except StoreWriteError as exc:
            self._metrics.store_writes.labels(result="failure").inc()
            logger.error("failed_to_store_score", game_id=observation.game_id, key=key, error=str(exc))
            return PublishOutcome.WRITE_FAILED
        self._metrics.store_writes.labels(result="success").inc()

        if observation.classification == Classification.FIRST_SEEN:
            logger.info(
                "score_first_seen",
                game_id=observation.game_id,
                key=key,
                score=observation.score,
                revision=revision,
            )
            return PublishOutcome.COMMITTED

        self._metrics.score_changes.inc()
        try:
            payload = build_change_event(observation)
        except SerializationError as exc:
            self._metrics.publish_failures.labels(reason="serialization").inc()
            logger.error("failed_to_marshal_score_update", game_id=observation.game_id, error=str(exc))
            return PublishOutcome.PUBLISH_FAILED

        try:
            async with atrack_latency(self._metrics.step_latency, step="publish"):
                await self._bus.publish(payload)
        except PublishError as exc:
            self._metrics.publish_failures.labels(reason="bus").inc()
            logger.error("failed_to_publish_score_update", game_id=observation.game_id, error=str(exc))
            return PublishOutcome.PUBLISH_FAILED

        logger.info(
            "score_update_published",
            game_id=observation.game_id,
            old_score=observation.previous,
            new_score=observation.score,
            revision=revision,
        )
        return PublishOutcome.PUBLISHED
