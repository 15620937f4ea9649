"""
Abstract base class for score feed sources.
Defines the contract every feed connector must implement.
"""
from __future__ import annotations

import abc

from shared.models.domain import GameSnapshot


class FeedSource(abc.ABC):
    """
    Produces one GameSnapshot per call.

    Implementations raise ``shared.errors.FetchError`` for network failures,
    non-success statuses and undecodable payloads; nothing else escapes.
    The caller bounds execution time by cancelling the call.
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        ...

    async def start(self) -> None:
        """Acquire network resources. No-op by default."""

    async def close(self) -> None:
        """Release network resources. No-op by default."""

    @abc.abstractmethod
    async def fetch_snapshot(self) -> GameSnapshot:
        ...
