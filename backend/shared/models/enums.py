"""Domain enumerations for scorewatch."""
from __future__ import annotations

from enum import Enum


class Classification(str, Enum):
    """How a freshly fetched score relates to the stored one."""
    FIRST_SEEN = "first_seen"
    UNCHANGED = "unchanged"
    CHANGED = "changed"

    @property
    def needs_write(self) -> bool:
        return self != Classification.UNCHANGED


class LookupStatus(str, Enum):
    FOUND = "found"
    ABSENT = "absent"
    ERROR = "error"


class PublishOutcome(str, Enum):
    SKIPPED = "skipped"
    COMMITTED = "committed"
    PUBLISHED = "published"
    WRITE_FAILED = "write_failed"
    PUBLISH_FAILED = "publish_failed"


class CycleOutcome(str, Enum):
    COMPLETED = "completed"
    EMPTY = "empty"
    FETCH_FAILED = "fetch_failed"


class FetchErrorKind(str, Enum):
    NETWORK = "network"
    BAD_STATUS = "bad_status"
    DECODE = "decode"
    TIMEOUT = "timeout"


class OverrunPolicy(str, Enum):
    """What the poll loop does with a tick that fires while a cycle is still running."""
    SKIP = "skip"
    QUEUE = "queue"
