"""Tests for response body extraction."""

from __future__ import annotations

import httpx

from entcache.client.response import extract_response_data


def _response(**kwargs) -> httpx.Response:
    return httpx.Response(
        status_code=kwargs.pop("status_code", 200),
        request=httpx.Request("GET", "http://api.test/api/messages"),
        **kwargs,
    )


class TestExtractResponseData:
    def test_json_list(self) -> None:
        assert extract_response_data(_response(json=[{"id": 1}])) == [{"id": 1}]

    def test_json_object(self) -> None:
        assert extract_response_data(_response(json={"id": 1})) == {"id": 1}

    def test_empty_body_is_none(self) -> None:
        assert extract_response_data(_response(status_code=204, content=b"")) is None

    def test_non_json_falls_back_to_text(self) -> None:
        assert extract_response_data(_response(text="<html>oops</html>")) == "<html>oops</html>"
