"""Base interface for plugin action dispatchers."""

from __future__ import annotations

import abc
from typing import Any, Dict


class ActionDispatcher(metaclass=abc.ABCMeta):
    """Abstract client for invoking plugin actions.

    Implementations either return the action's result payload or raise
    ``DispatchError``. Timeouts and retries belong to the implementation;
    the engine never retries a dispatch.
    """

    async def connect(self) -> None:
        """Open underlying resources (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Release underlying resources (no-op by default)."""
        pass

    @abc.abstractmethod
    async def dispatch(
        self, plugin_id: str, action: str, config: Dict[str, Any]
    ) -> Any:
        """Invoke ``action`` on ``plugin_id`` with the resolved ``config``."""
        raise NotImplementedError

    async def __aenter__(self) -> "ActionDispatcher":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()
