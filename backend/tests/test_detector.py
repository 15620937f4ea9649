"""
Unit tests for change detection: team filtering, fingerprints, period scores
and first-seen / unchanged / changed classification.

Run: pytest backend/tests/test_detector.py -v
"""
from __future__ import annotations

import pytest

from conftest import InMemoryScoreStore, competitor_payload, eagles_game, make_snapshot, sample
from ingest.detector import ChangeDetector, matches_team, period_scores, score_fingerprint
from shared.errors import StoreReadError
from shared.models.domain import Competitor
from shared.models.enums import Classification
from shared.utils.metrics import EngineMetrics


def _competitor(display_name: str = "Philadelphia Eagles", score: str = "7", **kwargs) -> Competitor:
    return Competitor.model_validate(competitor_payload("21", display_name, score, **kwargs))


# ── Pure helpers ────────────────────────────────────────────────────────

def test_fingerprint_joins_competition_and_team() -> None:
    assert score_fingerprint("401671889", "21") == "401671889-21"


@pytest.mark.parametrize(
    "display_name,team_filter,expected",
    [
        ("Philadelphia Eagles", "eagles", True),
        ("Philadelphia Eagles", "EAGLES", True),
        ("PHILADELPHIA EAGLES", "Eagles", True),
        ("Washington Commanders", "eagles", False),
        ("Eagles", "philadelphia eagles", False),
    ],
)
def test_matches_team_is_case_insensitive_substring(
    display_name: str, team_filter: str, expected: bool
) -> None:
    assert matches_team(_competitor(display_name), team_filter) is expected


def test_period_scores_truncate_to_int_and_keep_order() -> None:
    competitor = _competitor(linescores=[7.0, 0.0, 10.0, 3.0])
    assert period_scores(competitor) == [7, 0, 10, 3]


def test_period_scores_empty_before_kickoff() -> None:
    assert period_scores(_competitor(linescores=[])) == []


def test_period_scores_zero_non_finite_values() -> None:
    competitor = _competitor(linescores=[7.0, float("inf"), float("nan"), 3.0])
    assert period_scores(competitor) == [7, 0, 0, 3]


# ── Classification ──────────────────────────────────────────────────────

@pytest.fixture
def detector(store: InMemoryScoreStore, metrics: EngineMetrics) -> ChangeDetector:
    return ChangeDetector(store, "Eagles", metrics)


def _first_pair(snapshot):
    event = snapshot.events[0]
    competition = event.competitions[0]
    return event, competition


@pytest.mark.asyncio
async def test_absent_key_is_first_seen(detector: ChangeDetector, store: InMemoryScoreStore) -> None:
    event, competition = _first_pair(make_snapshot(eagles_game("7", linescores=[7])))
    competitor = detector.matching_competitors(competition)[0]

    observation = await detector.observe(event, competition, competitor)

    assert observation.classification == Classification.FIRST_SEEN
    assert observation.previous is None
    assert observation.fingerprint == "401671889-21"
    assert observation.game_id == "401671889"
    assert observation.quarter_scores == [7]
    assert store.writes == []


@pytest.mark.asyncio
async def test_same_string_is_unchanged(detector: ChangeDetector, store: InMemoryScoreStore) -> None:
    store.seed("401671889-21", "14")
    event, competition = _first_pair(make_snapshot(eagles_game("14")))
    competitor = detector.matching_competitors(competition)[0]

    observation = await detector.observe(event, competition, competitor)

    assert observation.classification == Classification.UNCHANGED
    assert observation.previous == "14"


@pytest.mark.asyncio
async def test_different_string_is_changed(detector: ChangeDetector, store: InMemoryScoreStore) -> None:
    store.seed("401671889-21", "7")
    event, competition = _first_pair(make_snapshot(eagles_game("14")))
    competitor = detector.matching_competitors(competition)[0]

    observation = await detector.observe(event, competition, competitor)

    assert observation.classification == Classification.CHANGED
    assert observation.previous == "7"
    assert observation.score == "14"


@pytest.mark.asyncio
async def test_scores_compare_as_strings_not_numbers(
    detector: ChangeDetector, store: InMemoryScoreStore
) -> None:
    store.seed("401671889-21", "7")
    event, competition = _first_pair(make_snapshot(eagles_game("07")))
    competitor = detector.matching_competitors(competition)[0]

    observation = await detector.observe(event, competition, competitor)

    assert observation.classification == Classification.CHANGED


@pytest.mark.asyncio
async def test_store_error_raises_read_error_not_first_seen(
    detector: ChangeDetector, store: InMemoryScoreStore, metrics: EngineMetrics
) -> None:
    store.fail_reads.add("401671889-21")
    event, competition = _first_pair(make_snapshot(eagles_game("7")))
    competitor = detector.matching_competitors(competition)[0]

    with pytest.raises(StoreReadError):
        await detector.observe(event, competition, competitor)
    assert sample(metrics, "sw_store_read_failures_total") == 1.0


def test_matching_competitors_skips_other_teams(detector: ChangeDetector) -> None:
    _, competition = _first_pair(make_snapshot(eagles_game("7")))
    matched = detector.matching_competitors(competition)
    assert [c.team.display_name for c in matched] == ["Philadelphia Eagles"]


def test_matching_competitors_empty_when_team_not_playing(detector: ChangeDetector) -> None:
    snapshot = make_snapshot({
        "id": "1",
        "competitions": [{
            "id": "1",
            "competitors": [
                competitor_payload("12", "Kansas City Chiefs", "10"),
                competitor_payload("33", "Baltimore Ravens", "3"),
            ],
        }],
    })
    assert detector.matching_competitors(snapshot.events[0].competitions[0]) == []
