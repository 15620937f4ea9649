"""
Exception hierarchy for scorewatch.
Adapters translate library errors (httpx, pydantic, redis) into these at the boundary.
"""
from __future__ import annotations

from typing import Optional

from shared.models.enums import FetchErrorKind


class ScoreWatchError(Exception):
    """Base class for all recoverable engine errors."""


class FetchError(ScoreWatchError):
    """The feed could not produce a snapshot. Aborts the whole cycle."""

    def __init__(
        self,
        kind: FetchErrorKind,
        message: str = "",
        status_code: Optional[int] = None,
    ) -> None:
        self.kind = kind
        self.status_code = status_code
        detail = message or kind.value
        if status_code is not None:
            detail = f"{detail} (status {status_code})"
        super().__init__(detail)


class StoreReadError(ScoreWatchError):
    """A store lookup failed for a reason other than a missing key."""

    def __init__(self, key: str, cause: Optional[BaseException] = None) -> None:
        self.key = key
        self.cause = cause
        super().__init__(f"failed to read {key!r}: {cause}")


class StoreWriteError(ScoreWatchError):
    def __init__(self, key: str, cause: Optional[BaseException] = None) -> None:
        self.key = key
        self.cause = cause
        super().__init__(f"failed to write {key!r}: {cause}")


class PublishError(ScoreWatchError):
    def __init__(self, channel: str, cause: Optional[BaseException] = None) -> None:
        self.channel = channel
        self.cause = cause
        super().__init__(f"failed to publish on {channel!r}: {cause}")


class SerializationError(ScoreWatchError):
    """A change event could not be encoded for the bus."""
