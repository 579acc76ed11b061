"""Trigger queue interface: durable hand-off of run requests to workers."""

from __future__ import annotations

import abc
import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from pydantic import ValidationError

from ..contracts import TriggerMessage, TriggerRequest

logger = logging.getLogger(__name__)

DEFAULT_TRIGGER_TOPIC = "workflow-triggers"


@dataclass
class TriggerDelivery:
    """A trigger taken off the queue, with the payload it arrived as."""

    message: TriggerMessage
    payload: str

    @property
    def trigger(self) -> TriggerRequest:
        return self.message.trigger


class TriggerQueue(metaclass=abc.ABCMeta):
    """Queue of workflow triggers bound to one topic.

    Subclasses move opaque JSON payloads; envelope encoding, decoding and
    rejection of malformed payloads happen here.
    """

    def __init__(self, topic: str = DEFAULT_TRIGGER_TOPIC) -> None:
        self.topic = topic

    async def connect(self) -> None:
        """Open connection to broker (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to broker (no-op by default)."""
        pass

    async def enqueue(self, trigger: TriggerRequest) -> TriggerMessage:
        """Wrap ``trigger`` in an envelope and queue it."""
        message = TriggerMessage(trigger=trigger)
        await self._push(message.to_json())
        logger.info(
            f"Queued trigger {message.message_id} for workflow {trigger.workflow_id} "
            f"on {self.topic}"
        )
        return message

    async def receive(
        self, lifespan: Optional[float] = None, poll_timeout: float = 1.0
    ) -> AsyncIterator[TriggerDelivery]:
        """Yield deliveries until ``lifespan`` seconds elapse (forever if None)."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + lifespan if lifespan is not None else None

        while deadline is None or loop.time() < deadline:
            timeout = poll_timeout
            if deadline is not None:
                timeout = max(0.0, min(timeout, deadline - loop.time()))
            payload = await self._pop(timeout)
            if payload is None:
                continue
            try:
                message = TriggerMessage.from_json(payload)
            except ValidationError as e:
                logger.warning(f"Dropping malformed trigger on {self.topic}: {e}")
                continue
            yield TriggerDelivery(message=message, payload=payload)

    async def ack(self, delivery: TriggerDelivery) -> None:
        """Acknowledge a handled delivery (no-op by default)."""
        pass

    async def requeue(self, delivery: TriggerDelivery) -> None:
        """Put an unhandled delivery back on the queue."""
        await self._push(delivery.payload)
        logger.info(f"Requeued trigger {delivery.message.message_id} on {self.topic}")

    @abc.abstractmethod
    async def _push(self, payload: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def _pop(self, timeout: float) -> Optional[str]:
        """Return the next payload, or ``None`` if none arrived within ``timeout``."""
        raise NotImplementedError
