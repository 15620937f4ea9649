"""
Pydantic v2 domain models for scorewatch.
Feed models mirror the upstream scoreboard payload (camelCase on the wire);
store and bus models are the engine's own representations.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shared.models.enums import LookupStatus


# ── Base ────────────────────────────────────────────────────────────────
class FeedModel(BaseModel):
    """Immutable view of one fetch; unknown upstream fields are ignored."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        frozen=True,
        extra="ignore",
    )


# ── Feed payload ────────────────────────────────────────────────────────
class Team(FeedModel):
    id: str
    location: str = ""
    name: str = ""
    abbreviation: str = ""
    display_name: str = ""


class Linescore(FeedModel):
    value: float = 0.0


class Competitor(FeedModel):
    id: str = ""
    type: str = ""
    order: int = 0
    home_away: str = ""
    winner: bool = False
    team: Team
    score: str = ""
    linescores: list[Linescore] = Field(default_factory=list)


class StatusType(FeedModel):
    id: str = ""
    name: str = ""
    state: str = ""
    completed: bool = False
    description: str = ""


class Status(FeedModel):
    clock: float = 0.0
    display_clock: str = ""
    period: int = 0
    type: StatusType = Field(default_factory=StatusType)


class Address(FeedModel):
    city: str = ""
    state: str = ""


class Venue(FeedModel):
    full_name: str = ""
    address: Address = Field(default_factory=Address)


class Competition(FeedModel):
    id: str
    date: str = ""
    attendance: int = 0
    competitors: list[Competitor] = Field(default_factory=list)
    venue: Venue = Field(default_factory=Venue)
    status: Status = Field(default_factory=Status)


class Event(FeedModel):
    id: str
    date: str = ""
    name: str = ""
    short_name: str = ""
    competitions: list[Competition] = Field(default_factory=list)
    status: Status = Field(default_factory=Status)


class GameSnapshot(FeedModel):
    """One fetch cycle's view of the scoreboard."""
    events: list[Event] = Field(default_factory=list)

    @property
    def has_competitors(self) -> bool:
        return any(
            competition.competitors
            for event in self.events
            for competition in event.competitions
        )


# ── Bus payload ─────────────────────────────────────────────────────────
class ScoreChangeEvent(BaseModel):
    """Published on a detected transition. Keys stay snake_case on the wire."""
    game_id: str
    score: str
    quarter_scores: list[int] = Field(default_factory=list)


# ── Store ───────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class StoreEntry:
    """A single key mutation as reported by the store."""
    key: str
    value: str
    revision: int


@dataclass(frozen=True)
class StoreLookup:
    """Result of a store read: found, absent, or failed. Never conflates the last two."""
    status: LookupStatus
    value: Optional[str] = None
    revision: int = 0
    error: Optional[BaseException] = None

    @classmethod
    def found(cls, value: str, revision: int = 0) -> StoreLookup:
        return cls(LookupStatus.FOUND, value=value, revision=revision)

    @classmethod
    def absent(cls) -> StoreLookup:
        return cls(LookupStatus.ABSENT)

    @classmethod
    def failed(cls, error: BaseException) -> StoreLookup:
        return cls(LookupStatus.ERROR, error=error)
