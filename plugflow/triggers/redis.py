"""Redis trigger queue for cross-process trigger delivery."""

from __future__ import annotations

from typing import Any, Optional

try:
    import redis.asyncio as redis
except ImportError:
    redis = None

from .base import DEFAULT_TRIGGER_TOPIC, TriggerQueue


class RedisTriggerQueue(TriggerQueue):
    """Trigger queue backed by a Redis list (LPUSH in, BRPOP out)."""

    def __init__(
        self,
        topic: str = DEFAULT_TRIGGER_TOPIC,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        prefix: str = "plugflow",
    ) -> None:
        if redis is None:
            raise ImportError("redis package is required for RedisTriggerQueue")
        super().__init__(topic)
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.key = f"{prefix}:{topic}"
        self._redis: Optional[Any] = None

    async def connect(self) -> None:
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def _push(self, payload: str) -> None:
        if not self._redis:
            await self.connect()
        await self._redis.lpush(self.key, payload)

    async def _pop(self, timeout: float) -> Optional[str]:
        if not self._redis:
            await self.connect()
        # BRPOP takes whole seconds; 0 would block forever
        result = await self._redis.brpop(self.key, timeout=max(1, int(timeout)))
        if not result:
            return None
        _, payload = result
        return payload
