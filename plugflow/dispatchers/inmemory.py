"""In-process action dispatcher for tests and embedded plugins."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Tuple, Union

from ..errors import DispatchError
from .base import ActionDispatcher

logger = logging.getLogger(__name__)

ActionHandler = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]


class InMemoryActionDispatcher(ActionDispatcher):
    """Route actions to Python callables registered per plugin and action."""

    def __init__(self) -> None:
        self._handlers: Dict[Tuple[str, str], ActionHandler] = {}
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    def register(self, plugin_id: str, action: str, handler: ActionHandler) -> None:
        """Register ``handler`` for ``plugin_id``/``action``.

        The handler receives the resolved config and may be sync or async.
        """
        self._handlers[(plugin_id, action)] = handler

    def action(self, plugin_id: str, action: str) -> Callable[[ActionHandler], ActionHandler]:
        """Decorator form of :meth:`register`."""

        def decorator(handler: ActionHandler) -> ActionHandler:
            self.register(plugin_id, action, handler)
            return handler

        return decorator

    async def dispatch(
        self, plugin_id: str, action: str, config: Dict[str, Any]
    ) -> Any:
        self.calls.append((plugin_id, action, config))
        handler = self._handlers.get((plugin_id, action))
        if handler is None:
            raise DispatchError(
                f"No handler for action '{action}' on plugin '{plugin_id}'",
                code="ACTION_NOT_FOUND",
            )

        try:
            result = handler(config)
            if inspect.isawaitable(result):
                result = await result
        except DispatchError:
            raise
        except Exception as e:
            logger.debug(f"Handler {plugin_id}.{action} raised {e!r}")
            raise DispatchError(str(e), code="PLUGIN_ERROR") from e
        return result
