"""Trigger queue factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import PlugflowConfig, load_config
from .base import DEFAULT_TRIGGER_TOPIC, TriggerDelivery, TriggerQueue
from .inmemory import InMemoryTriggerQueue


def get_trigger_queue(
    backend: Optional[str] = None, config: Optional[PlugflowConfig] = None
) -> TriggerQueue:
    """Build the configured trigger queue, bound to the configured topic."""

    config = config or load_config()
    backend = (
        backend
        or os.getenv("PLUGFLOW_TRIGGER_QUEUE")
        or config.triggers.backend
    ).lower()
    topic = config.triggers.topic

    if backend == "inmemory":
        return InMemoryTriggerQueue(topic)
    elif backend == "redis":
        from .redis import RedisTriggerQueue

        redis_conf = config.triggers.redis
        return RedisTriggerQueue(
            topic,
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
        )
    else:
        raise ValueError(f"Unsupported trigger queue backend: {backend}")


__all__ = [
    "DEFAULT_TRIGGER_TOPIC",
    "InMemoryTriggerQueue",
    "TriggerDelivery",
    "TriggerQueue",
    "get_trigger_queue",
]
