"""HTTP client for a remote plugin action endpoint."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from ..contracts import DispatchRequest, DispatchResponse
from ..errors import DispatchError
from ..utils import retry
from .base import ActionDispatcher

logger = logging.getLogger(__name__)


class HttpActionDispatcher(ActionDispatcher):
    """POST ``{pluginId, action, config}`` and read back ``{result}`` or ``{error}``.

    The whole response body is returned as the step's result payload, so
    output paths address it as ``$.result.<field>``.

    Connection failures and timeouts are retried with exponential backoff up
    to ``max_retries`` times. Responses carrying an ``error`` body are never
    retried.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        path: str = "/actions/dispatch",
        timeout: float = 300.0,
        max_retries: int = 2,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url
        self.path = path
        self.timeout = timeout
        self.max_retries = max_retries
        self.headers = dict(headers or {})
        self._client = client
        self._owns_client = client is None

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, headers=self.headers
            )
            self._owns_client = True

    async def disconnect(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def dispatch(
        self, plugin_id: str, action: str, config: Dict[str, Any]
    ) -> Any:
        if self._client is None:
            await self.connect()

        request = DispatchRequest(plugin_id=plugin_id, action=action, config=config)
        attempt = 0
        while True:
            try:
                response = await self._client.post(self.path, json=request.to_dict())
                break
            except httpx.TransportError as e:
                if attempt >= self.max_retries:
                    raise DispatchError(
                        f"Dispatch to {plugin_id}.{action} failed: {e}",
                        code="TRANSPORT_ERROR",
                    ) from e
                attempt += 1
                logger.warning(
                    f"Dispatch to {plugin_id}.{action} failed ({e}); retry {attempt}/{self.max_retries}"
                )
                await retry.schedule_retry(attempt)

        return self._parse_response(response, plugin_id, action)

    def _parse_response(self, response: httpx.Response, plugin_id: str, action: str) -> Any:
        try:
            payload = response.json()
            body = DispatchResponse.model_validate(payload)
        except (ValueError, ValidationError) as e:
            raise DispatchError(
                f"Invalid response from {plugin_id}.{action} (HTTP {response.status_code})",
                code="INVALID_RESPONSE",
            ) from e

        if body.error is not None:
            raise DispatchError(body.error.message, code=body.error.code)
        if response.is_error:
            raise DispatchError(
                f"Dispatch to {plugin_id}.{action} returned HTTP {response.status_code}",
                code=f"HTTP_{response.status_code}",
            )
        return payload
