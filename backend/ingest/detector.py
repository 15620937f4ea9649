"""
Change detection for tracked team scores.
Classifies each observed competitor against the score store as first-seen, unchanged or changed.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

from shared.errors import StoreReadError
from shared.models.domain import Competition, Competitor, Event
from shared.models.enums import Classification, LookupStatus
from shared.utils.logging import get_logger
from shared.utils.metrics import EngineMetrics, atrack_latency, get_metrics

from ingest.store import ScoreStore

logger = get_logger(__name__)


def score_fingerprint(competition_id: str, team_id: str) -> str:
    """Store key for one team's participation in one competition."""
    return f"{competition_id}-{team_id}"


def matches_team(competitor: Competitor, team_filter: str) -> bool:
    """Case-insensitive substring match of the filter against the team display name."""
    return team_filter.lower() in competitor.team.display_name.lower()


def period_scores(competitor: Competitor) -> list[int]:
    """
    Per-period line scores as integers, index-aligned with the upstream periods.
    Non-finite values (NaN, or an overflowed literal such as 1e400) count as 0.
    """
    return [int(line.value) if math.isfinite(line.value) else 0 for line in competitor.linescores]


@dataclass(frozen=True)
class Observation:
    """One competitor's fetched score, classified against the stored value."""
    fingerprint: str
    game_id: str
    event: Event
    competitor: Competitor
    classification: Classification
    previous: Optional[str] = None
    quarter_scores: list[int] = field(default_factory=list)

    @property
    def score(self) -> str:
        return self.competitor.score


class ChangeDetector:
    """
    Compares fetched scores with the last committed ones.

    Scores are opaque strings: "7" and "07" differ, and non-numeric states
    compare by text. Only competitors matching the team filter ever touch the store.
    """

    def __init__(
        self,
        store: ScoreStore,
        team_filter: str,
        metrics: EngineMetrics | None = None,
    ) -> None:
        self._store = store
        self._team_filter = team_filter.lower()
        self._metrics = metrics or get_metrics()

    def matching_competitors(self, competition: Competition) -> list[Competitor]:
        return [c for c in competition.competitors if matches_team(c, self._team_filter)]

    async def observe(
        self, event: Event, competition: Competition, competitor: Competitor
    ) -> Observation:
        """
        Classify a matching competitor.

        Raises:
            StoreReadError: The store failed for a reason other than a missing key.
        """
        key = score_fingerprint(competition.id, competitor.team.id)

        async with atrack_latency(self._metrics.step_latency, step="store_read"):
            lookup = await self._store.get(key)

        if lookup.status == LookupStatus.ERROR:
            self._metrics.store_reads_failed.inc()
            if isinstance(lookup.error, StoreReadError):
                raise lookup.error
            raise StoreReadError(key, lookup.error)

        if lookup.status == LookupStatus.ABSENT:
            classification = Classification.FIRST_SEEN
        elif lookup.value == competitor.score:
            classification = Classification.UNCHANGED
        else:
            classification = Classification.CHANGED

        logger.debug(
            "score_classified",
            key=key,
            classification=classification.value,
            previous=lookup.value,
            current=competitor.score,
        )
        return Observation(
            fingerprint=key,
            game_id=competition.id,
            event=event,
            competitor=competitor,
            classification=classification,
            previous=lookup.value,
            quarter_scores=period_scores(competitor),
        )
