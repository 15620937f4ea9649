"""
Message bus for score change events (Redis pub/sub, fire-and-forget).
"""
from __future__ import annotations

from redis.exceptions import RedisError

from shared.config import Settings, get_settings
from shared.errors import PublishError
from shared.utils.redis_manager import RedisManager


class ScoreBus:
    """Publishes serialised change events on the deployment's fixed channel."""

    def __init__(self, redis: RedisManager, settings: Settings | None = None) -> None:
        self._redis = redis
        self._channel = (settings or get_settings()).update_channel

    @property
    def channel(self) -> str:
        return self._channel

    async def publish(self, payload: str) -> int:
        """Returns the number of subscribers reached; zero is not an error."""
        try:
            return await self._redis.publish(self._channel, payload)
        except (RedisError, OSError) as exc:
            raise PublishError(self._channel, exc) from exc
