from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from coderag_client.services.api_client import ApiClient, ApiError, unwrap_envelope


def _client(handler: Any, **kwargs: Any) -> ApiClient:
    return ApiClient("http://backend.test/", transport=httpx.MockTransport(handler), **kwargs)


def test_get_unwraps_envelope_and_sends_bearer_token() -> None:
    captured: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["authorization"] = request.headers.get("authorization")
        return httpx.Response(200, json={"code": 200, "message": "success", "data": {"taskId": "diff-1"}})

    client = _client(handler, token="secret-token")
    payload = asyncio.run(client.get("/api/v1/diff/tasks/diff-1", params={"verbose": "1"}))

    assert payload == {"taskId": "diff-1"}
    assert captured["url"] == "http://backend.test/api/v1/diff/tasks/diff-1?verbose=1"
    assert captured["authorization"] == "Bearer secret-token"


def test_post_without_token_sends_json_and_no_authorization() -> None:
    captured: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        captured["authorization"] = request.headers.get("authorization")
        captured["body"] = request.content
        return httpx.Response(202, json={"taskId": "diff-2", "status": "pending"})

    payload = asyncio.run(_client(handler).post("/jobs", json={"requirement": "x" * 12}))

    assert payload == {"taskId": "diff-2", "status": "pending"}
    assert captured["authorization"] is None
    assert b'"requirement"' in captured["body"]


def test_http_error_uses_backend_message() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"code": 404, "message": "task diff-9 not found", "path": request.url.path})

    with pytest.raises(ApiError) as exc_info:
        asyncio.run(_client(handler).get("/api/v1/diff/tasks/diff-9"))

    assert exc_info.value.status_code == 404
    assert exc_info.value.message == "task diff-9 not found"
    assert not exc_info.value.is_network_error


def test_http_error_without_json_falls_back_to_reason_phrase() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="<html>oops</html>")

    with pytest.raises(ApiError) as exc_info:
        asyncio.run(_client(handler).post("/jobs", json={}))

    assert exc_info.value.status_code == 500
    assert exc_info.value.message == "Internal Server Error"


def test_connection_failure_maps_to_status_zero() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ApiError) as exc_info:
        asyncio.run(_client(handler).get("/jobs/abc"))

    assert exc_info.value.status_code == 0
    assert exc_info.value.is_network_error
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


def test_invalid_json_body_raises_api_error() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="not json")

    with pytest.raises(ApiError) as exc_info:
        asyncio.run(_client(handler).get("/jobs/abc"))

    assert exc_info.value.status_code == 200
    assert exc_info.value.message == "invalid JSON response"


def test_unwrap_envelope_leaves_plain_bodies_alone() -> None:
    assert unwrap_envelope({"code": 200, "data": [1, 2]}) == [1, 2]
    assert unwrap_envelope({"status": "ok"}) == {"status": "ok"}
    assert unwrap_envelope([{"data": 1}]) == [{"data": 1}]
