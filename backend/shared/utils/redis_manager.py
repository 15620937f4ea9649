"""
Redis connection manager for scorewatch.
Provides the async connection pool, the versioned key/value bucket used as the
score store, and the pub/sub channel used as the message bus.
"""
from __future__ import annotations

from typing import Any, AsyncIterator, Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Key namespaces ──────────────────────────────────────────────────────
BUCKET_KEY = "kv:{bucket}:key:{key}"
BUCKET_REVISION_KEY = "kv:{bucket}:revision"
BUCKET_UPDATES_KEY = "kv:{bucket}:updates"


def _fmt(template: str, **kwargs: Any) -> str:
    return template.format(**kwargs)


def bucket_key_prefix(bucket: str) -> str:
    return _fmt(BUCKET_KEY, bucket=bucket, key="")


class RedisManager:
    """Manages the async Redis connection pool and provides typed helpers."""

    # Lua script: bump the bucket revision, store value+revision, append to the update stream.
    # KEYS: key hash, revision counter, update stream. ARGV: logical key, value, stream cap.
    _PUT_SCRIPT = """
local rev = redis.call("incr", KEYS[2])
redis.call("hset", KEYS[1], "value", ARGV[2], "revision", rev)
redis.call("xadd", KEYS[3], "MAXLEN", "~", ARGV[3], "*", "key", ARGV[1], "value", ARGV[2], "revision", rev)
return rev
"""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._pool: Optional[Redis] = None

    async def connect(self) -> None:
        """Initialize the connection pool."""
        self._pool = aioredis.from_url(
            self._settings.redis_url_str,
            max_connections=self._settings.redis_max_connections,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
            retry_on_timeout=True,
        )
        await self._pool.ping()
        logger.info("redis_connected", url=self._settings.redis_url_str)

    async def disconnect(self) -> None:
        """Graceful shutdown."""
        if self._pool:
            await self._pool.aclose()
            self._pool = None
            logger.info("redis_disconnected")

    @property
    def client(self) -> Redis:
        if self._pool is None:
            raise RuntimeError("RedisManager not connected. Call connect() first.")
        return self._pool

    # ── Versioned bucket ────────────────────────────────────────────────
    async def bucket_get(self, bucket: str, key: str) -> Optional[tuple[str, int]]:
        """Return (value, revision) for a key, or None if it was never written."""
        value, revision = await self.client.hmget(
            _fmt(BUCKET_KEY, bucket=bucket, key=key), "value", "revision"
        )
        if value is None:
            return None
        return value, int(revision or 0)

    async def bucket_put(self, bucket: str, key: str, value: str, max_len: int = 1000) -> int:
        """Atomically write a value and record the mutation. Returns the new revision."""
        revision = await self.client.eval(
            self._PUT_SCRIPT,
            3,
            _fmt(BUCKET_KEY, bucket=bucket, key=key),
            _fmt(BUCKET_REVISION_KEY, bucket=bucket),
            _fmt(BUCKET_UPDATES_KEY, bucket=bucket),
            key,
            value,
            str(max_len),
        )
        return int(revision)

    async def bucket_keys(self, bucket: str) -> AsyncIterator[str]:
        """Iterate the logical keys currently held in a bucket."""
        prefix = bucket_key_prefix(bucket)
        async for full_key in self.client.scan_iter(match=f"{prefix}*", count=200):
            yield full_key[len(prefix):]

    async def bucket_last_update_id(self, bucket: str) -> str:
        """Stream ID of the newest recorded mutation, or "0-0" for an empty bucket."""
        entries = await self.client.xrevrange(
            _fmt(BUCKET_UPDATES_KEY, bucket=bucket), count=1
        )
        if not entries:
            return "0-0"
        return entries[0][0]

    async def bucket_read_updates(
        self, bucket: str, last_id: str, block_ms: int = 5000, count: int = 100
    ) -> list[tuple[str, dict[str, str]]]:
        """Block until mutations newer than last_id arrive (or block_ms elapses)."""
        stream = _fmt(BUCKET_UPDATES_KEY, bucket=bucket)
        response = await self.client.xread({stream: last_id}, count=count, block=block_ms)
        if not response:
            return []
        # [[stream_name, [(entry_id, fields), ...]]]
        return list(response[0][1])

    # ── Pub/Sub ─────────────────────────────────────────────────────────
    async def publish(self, channel: str, payload: str) -> int:
        """Publish a message. Returns the number of subscribers that received it."""
        return await self.client.publish(channel, payload)
