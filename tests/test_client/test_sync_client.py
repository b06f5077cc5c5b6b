"""Tests for the synchronous HTTP client."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from entcache.client.sync_client import SyncClient
from entcache.exceptions import (
    AuthError,
    ConnectionError_,
    NotFoundError,
    RequestError,
    ServerError,
)
from entcache.models import Profile, RequestConfig
from entcache.output import OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_profile(base_url: str = "http://api.test/api", max_retries: int = 3) -> Profile:
    return Profile(
        name="test",
        base_url=base_url,
        request=RequestConfig(timeout=5, max_retries=max_retries),
    )


def _client(handler, max_retries: int = 3, delays: list[float] | None = None) -> SyncClient:
    sleep = delays.append if delays is not None else (lambda _: None)
    return SyncClient(
        _make_profile(max_retries=max_retries),
        transport=httpx.MockTransport(handler),
        sleep=sleep,
    )


@pytest.fixture(autouse=True)
def _clean_output():
    """Reset the global output manager between tests."""
    set_output(OutputManager(no_color=True, quiet=True))
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Context manager
# ---------------------------------------------------------------------------


class TestContextManager:
    def test_enter_creates_and_exit_closes(self) -> None:
        client = SyncClient(_make_profile())
        assert client._client is None
        with client:
            assert client._client is not None
        assert client._client is None

    def test_request_outside_context_fails(self) -> None:
        with pytest.raises(AssertionError, match="context manager"):
            SyncClient(_make_profile()).get("messages")


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class TestRequests:
    def test_path_is_joined_below_base_url(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json=[])

        with _client(handler) as client:
            client.get("/messages", params={"conversation_id": 3})

        assert seen == ["http://api.test/api/messages?conversation_id=3"]

    def test_accept_header_and_custom_headers(self) -> None:
        seen: list[httpx.Headers] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers)
            return httpx.Response(200, json={})

        with _client(handler) as client:
            client.get("messages", headers={"X-Trace": "1"})

        assert seen[0]["accept"] == "application/json"
        assert seen[0]["x-trace"] == "1"

    def test_json_body_is_sent(self) -> None:
        bodies: list[bytes] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(request.content)
            return httpx.Response(201, json={"id": 1})

        with _client(handler) as client:
            response = client.post("messages", json_body={"content": "hi"})

        assert response.status_code == 201
        assert b'"content"' in bodies[0]

    @pytest.mark.parametrize("method", ["get", "post", "put", "delete"])
    def test_method_helpers(self, method: str) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.method)
            return httpx.Response(204)

        with _client(handler) as client:
            getattr(client, method)("messages/1")

        assert seen == [method.upper()]


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestErrorMapping:
    @pytest.mark.parametrize(
        ("status", "exc_type"),
        [
            (401, AuthError),
            (403, AuthError),
            (404, NotFoundError),
            (400, RequestError),
            (422, RequestError),
        ],
    )
    def test_client_errors(self, status: int, exc_type: type) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json={"message": "nope"})

        with _client(handler) as client:
            with pytest.raises(exc_type, match=f"HTTP {status}: nope"):
                client.get("messages")

    def test_error_text_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, text="Cannot GET /api/nothing")

        with _client(handler) as client:
            with pytest.raises(NotFoundError, match="Cannot GET"):
                client.get("nothing")

    def test_exit_codes(self) -> None:
        assert NotFoundError("x").exit_code == 4
        assert ConnectionError_("x").exit_code == 6


# ---------------------------------------------------------------------------
# Retries
# ---------------------------------------------------------------------------


class TestRetry:
    def test_retries_5xx_then_succeeds(self) -> None:
        calls: list[int] = []
        delays: list[float] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json=[{"id": 1}])

        with _client(handler, delays=delays) as client:
            response = client.get("messages")

        assert response.json() == [{"id": 1}]
        assert len(calls) == 3
        assert delays == [1, 2]

    def test_5xx_after_last_retry_raises(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(500, json={"error": "boom"})

        with _client(handler, max_retries=1) as client:
            with pytest.raises(ServerError, match="boom"):
                client.get("messages")

        assert len(calls) == 2

    def test_connection_errors_exhaust_retries(self) -> None:
        def handler(request: httpx.Request) -> Any:
            raise httpx.ConnectError("refused", request=request)

        delays: list[float] = []
        with _client(handler, max_retries=2, delays=delays) as client:
            with pytest.raises(ConnectionError_, match="after 3 attempts"):
                client.get("messages")

        assert delays == [1, 2]

    def test_4xx_is_not_retried(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(404)

        with _client(handler) as client:
            with pytest.raises(NotFoundError):
                client.get("messages/9")

        assert len(calls) == 1
