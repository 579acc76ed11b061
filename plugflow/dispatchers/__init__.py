"""Action dispatcher factory and implementations."""

from __future__ import annotations

import os
from typing import Optional

from ..config import PlugflowConfig, load_config
from .base import ActionDispatcher
from .inmemory import InMemoryActionDispatcher


def get_dispatcher(
    backend: Optional[str] = None, config: Optional[PlugflowConfig] = None
) -> ActionDispatcher:
    """Factory function to get the configured action dispatcher."""

    config = config or load_config()
    backend = (
        backend
        or os.getenv("PLUGFLOW_DISPATCHER")
        or config.dispatcher.backend
    ).lower()

    if backend == "inmemory":
        return InMemoryActionDispatcher()
    elif backend == "http":
        from .http import HttpActionDispatcher

        http_conf = config.dispatcher.http
        return HttpActionDispatcher(
            base_url=http_conf.base_url,
            path=http_conf.path,
            timeout=http_conf.timeout,
            max_retries=http_conf.max_retries,
            headers=http_conf.headers,
        )
    else:
        raise ValueError(f"Unsupported dispatcher backend: {backend}")


__all__ = ["ActionDispatcher", "InMemoryActionDispatcher", "get_dispatcher"]
