import json

import httpx
import pytest

from plugflow.config import PlugflowConfig
from plugflow.dispatchers import InMemoryActionDispatcher, get_dispatcher
from plugflow.dispatchers.http import HttpActionDispatcher
from plugflow.errors import DispatchError


@pytest.mark.asyncio
async def test_inmemory_dispatch_records_calls(series_dispatcher):
    result = await series_dispatcher.dispatch(
        "bq-studio", "new-series", {"name": "My Series"}
    )
    assert result == {"result": {"seriesId": "S1", "name": "My Series"}}

    result = await series_dispatcher.dispatch("bq-studio", "draft-chapter", {})
    assert result == {"result": {"draftId": "D1"}}
    assert [call[1] for call in series_dispatcher.calls] == ["new-series", "draft-chapter"]


@pytest.mark.asyncio
async def test_inmemory_unknown_action():
    dispatcher = InMemoryActionDispatcher()
    with pytest.raises(DispatchError) as exc_info:
        await dispatcher.dispatch("bq-studio", "publish", {})
    assert exc_info.value.code == "ACTION_NOT_FOUND"
    assert str(exc_info.value) == "No handler for action 'publish' on plugin 'bq-studio'"


@pytest.mark.asyncio
async def test_inmemory_handler_errors():
    dispatcher = InMemoryActionDispatcher()

    def broken(config):
        raise RuntimeError("quota exceeded")

    def rejecting(config):
        raise DispatchError("seriesId required", code="BAD_CONFIG")

    dispatcher.register("bq-studio", "broken", broken)
    dispatcher.register("bq-studio", "rejecting", rejecting)

    with pytest.raises(DispatchError) as exc_info:
        await dispatcher.dispatch("bq-studio", "broken", {})
    assert exc_info.value.code == "PLUGIN_ERROR"
    assert str(exc_info.value) == "quota exceeded"

    with pytest.raises(DispatchError) as exc_info:
        await dispatcher.dispatch("bq-studio", "rejecting", {})
    assert exc_info.value.code == "BAD_CONFIG"


def _http_dispatcher(handler, **kwargs) -> HttpActionDispatcher:
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://plugins.test"
    )
    return HttpActionDispatcher(client=client, **kwargs)


@pytest.mark.asyncio
async def test_http_dispatch_posts_request_and_returns_body():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"result": {"seriesId": "S1"}})

    dispatcher = _http_dispatcher(handler)
    result = await dispatcher.dispatch("bq-studio", "new-series", {"name": "X"})

    assert result == {"result": {"seriesId": "S1"}}
    assert seen["path"] == "/actions/dispatch"
    assert seen["body"] == {
        "pluginId": "bq-studio",
        "action": "new-series",
        "config": {"name": "X"},
    }


@pytest.mark.asyncio
async def test_http_error_body_is_surfaced_verbatim():
    def handler(request):
        return httpx.Response(
            422, json={"error": {"code": "BAD_CONFIG", "message": "seriesId required"}}
        )

    dispatcher = _http_dispatcher(handler)
    with pytest.raises(DispatchError) as exc_info:
        await dispatcher.dispatch("bq-studio", "generate-outline", {})
    assert exc_info.value.code == "BAD_CONFIG"
    assert str(exc_info.value) == "seriesId required"


@pytest.mark.asyncio
async def test_http_status_without_error_body():
    dispatcher = _http_dispatcher(lambda request: httpx.Response(500, json={}))
    with pytest.raises(DispatchError) as exc_info:
        await dispatcher.dispatch("bq-studio", "new-series", {})
    assert exc_info.value.code == "HTTP_500"


@pytest.mark.asyncio
async def test_http_invalid_json():
    dispatcher = _http_dispatcher(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(DispatchError) as exc_info:
        await dispatcher.dispatch("bq-studio", "new-series", {})
    assert exc_info.value.code == "INVALID_RESPONSE"


@pytest.mark.asyncio
async def test_http_retries_transport_errors(monkeypatch):
    delays = []

    async def fake_retry(attempt):
        delays.append(attempt)

    monkeypatch.setattr("plugflow.utils.retry.schedule_retry", fake_retry)
    attempts = {"count": 0}

    def handler(request):
        attempts["count"] += 1
        if attempts["count"] == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"result": {"ok": True}})

    dispatcher = _http_dispatcher(handler)
    assert await dispatcher.dispatch("bq-studio", "new-series", {}) == {
        "result": {"ok": True}
    }
    assert attempts["count"] == 2
    assert delays == [1]


@pytest.mark.asyncio
async def test_http_gives_up_after_max_retries(monkeypatch):
    async def fake_retry(attempt):
        return None

    monkeypatch.setattr("plugflow.utils.retry.schedule_retry", fake_retry)
    attempts = {"count": 0}

    def handler(request):
        attempts["count"] += 1
        raise httpx.ConnectError("connection refused", request=request)

    dispatcher = _http_dispatcher(handler, max_retries=2)
    with pytest.raises(DispatchError) as exc_info:
        await dispatcher.dispatch("bq-studio", "new-series", {})
    assert exc_info.value.code == "TRANSPORT_ERROR"
    assert attempts["count"] == 3


def test_get_dispatcher_uses_config(monkeypatch):
    monkeypatch.delenv("PLUGFLOW_DISPATCHER", raising=False)
    config = PlugflowConfig.model_validate(
        {"dispatcher": {"backend": "http", "http": {"base_url": "http://studio:8080"}}}
    )
    dispatcher = get_dispatcher(config=config)
    assert isinstance(dispatcher, HttpActionDispatcher)
    assert dispatcher.base_url == "http://studio:8080"

    assert isinstance(get_dispatcher("inmemory", config=config), InMemoryActionDispatcher)
    with pytest.raises(ValueError):
        get_dispatcher("grpc", config=config)
