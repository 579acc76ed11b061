"""In-memory trigger queue for tests and single-process deployments."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Deque, Optional

from .base import DEFAULT_TRIGGER_TOPIC, TriggerDelivery, TriggerQueue


class InMemoryTriggerQueue(TriggerQueue):
    """In-process FIFO of trigger payloads."""

    def __init__(
        self, topic: str = DEFAULT_TRIGGER_TOPIC, poll_interval: float = 0.05
    ) -> None:
        super().__init__(topic)
        self._payloads: Deque[str] = deque()
        self._poll_interval = poll_interval
        self.acked: list[str] = []

    async def _push(self, payload: str) -> None:
        self._payloads.append(payload)

    async def _pop(self, timeout: float) -> Optional[str]:
        if not self._payloads:
            await asyncio.sleep(min(self._poll_interval, timeout))
        return self._payloads.popleft() if self._payloads else None

    async def ack(self, delivery: TriggerDelivery) -> None:
        self.acked.append(delivery.message.message_id)

    def pending(self) -> int:
        return len(self._payloads)
