"""
Score store: durable fingerprint -> last committed score, backed by a Redis bucket.
"""
from __future__ import annotations

import asyncio
from typing import AsyncIterator

from redis.exceptions import RedisError

from shared.config import Settings, get_settings
from shared.errors import StoreReadError, StoreWriteError
from shared.models.domain import StoreEntry, StoreLookup
from shared.utils.logging import get_logger
from shared.utils.redis_manager import RedisManager

logger = get_logger(__name__)


class ScoreStore:
    """
    Versioned key/value bucket of last-seen scores.

    ``get`` never raises: a missing key is ``StoreLookup.absent()`` and any
    other failure is ``StoreLookup.failed(exc)``. ``put`` raises
    ``StoreWriteError``. ``watch_all`` first yields the current value of every
    key, then every subsequent mutation, including ones made by other processes.
    """

    def __init__(self, redis: RedisManager, settings: Settings | None = None) -> None:
        self._redis = redis
        self._settings = settings or get_settings()
        self._bucket = self._settings.score_bucket

    async def get(self, key: str) -> StoreLookup:
        try:
            found = await self._redis.bucket_get(self._bucket, key)
        except Exception as exc:
            # Includes undecodable entries written by other processes.
            return StoreLookup.failed(StoreReadError(key, exc))
        if found is None:
            return StoreLookup.absent()
        value, revision = found
        return StoreLookup.found(value, revision)

    async def put(self, key: str, value: str) -> int:
        try:
            return await self._redis.bucket_put(
                self._bucket, key, value, max_len=self._settings.updates_max_len
            )
        except (RedisError, OSError) as exc:
            raise StoreWriteError(key, exc) from exc

    async def watch_all(self) -> AsyncIterator[StoreEntry]:
        """Unbounded stream of mutations. Ends only when the consuming task is cancelled."""
        last_id = await self._redis.bucket_last_update_id(self._bucket)

        async for key in self._redis.bucket_keys(self._bucket):
            current = await self._redis.bucket_get(self._bucket, key)
            if current is not None:
                yield StoreEntry(key=key, value=current[0], revision=current[1])

        while True:
            updates = await self._redis.bucket_read_updates(
                self._bucket,
                last_id,
                block_ms=self._settings.watch_block_ms,
                count=self._settings.watch_batch_size,
            )
            for entry_id, fields in updates:
                last_id = entry_id
                try:
                    entry = StoreEntry(
                        key=fields["key"],
                        value=fields.get("value", ""),
                        revision=int(fields.get("revision", 0)),
                    )
                except (KeyError, ValueError) as exc:
                    logger.warning("store_update_malformed", entry_id=entry_id, error=str(exc))
                    continue
                yield entry
            if not updates:
                # Blocking read timed out; give cancellation a chance before re-arming.
                await asyncio.sleep(0)
