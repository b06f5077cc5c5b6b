"""Synchronous HTTP client with retry and error mapping.

This module provides :class:`SyncClient`, the blocking HTTP client that
entity services use to reach the remote API. It wraps :class:`httpx.Client`
and layers on:

- **Profile settings** -- base URL, timeout, SSL verification, and retry
  count come from a :class:`~entcache.models.Profile`.
- **Retry with backoff** -- retries on 5xx and network errors with
  exponential delay (1 s, 2 s, 4 s, ...).
- **Error mapping** -- HTTP error statuses become typed
  :class:`~entcache.exceptions.EntcacheError` subclasses.

Caching is deliberately absent here: it happens one level up, on entities
rather than raw responses, in :class:`~entcache.cache.EntityCache`.
"""

from __future__ import annotations

import time
from typing import Any, Optional

import httpx

from entcache.exceptions import (
    AuthError,
    ConnectionError_,
    NotFoundError,
    RequestError,
    ServerError,
)
from entcache.models import Profile
from entcache.output import get_output


class SyncClient:
    """Synchronous HTTP client for entity API calls.

    Must be used as a context manager so that the underlying transport is
    properly opened and closed.

    Args:
        profile: Connection profile with ``base_url`` and request settings.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`
            in tests.
        sleep: Delay function used between retries.

    Example::

        with SyncClient(profile) as client:
            response = client.get("messages")
    """

    def __init__(
        self,
        profile: Profile,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Any = time.sleep,
    ) -> None:
        self._profile = profile
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.Client] = None

    @property
    def profile(self) -> Profile:
        return self._profile

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> SyncClient:
        config = self._profile.request
        self._client = httpx.Client(
            base_url=_with_trailing_slash(self._profile.base_url),
            timeout=config.timeout,
            verify=config.verify_ssl,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    def request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        json_body: Optional[Any] = None,
    ) -> httpx.Response:
        """Make an HTTP request with retry and error mapping.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE).
            path: Path relative to the profile's ``base_url``.
            params: Query parameters.
            headers: Extra request headers.
            json_body: JSON-serialisable body.

        Returns:
            The :class:`httpx.Response` from the server.

        Raises:
            AuthError: On 401 / 403.
            NotFoundError: On 404.
            RequestError: On any other 4xx.
            ServerError: On 5xx after all retries are exhausted.
            ConnectionError_: On network / timeout errors after all retries.
        """
        merged_headers: dict[str, str] = {"Accept": "application/json"}
        merged_headers.update(headers or {})

        response = self._execute_with_retry(
            method.upper(), path.lstrip("/"), merged_headers, dict(params or {}), json_body
        )
        self._map_response_error(response)
        return response

    def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("POST", path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("PUT", path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        return self.request("DELETE", path, **kwargs)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _execute_with_retry(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        params: dict[str, Any],
        json_body: Any,
    ) -> httpx.Response:
        """Execute the request, retrying 5xx and network errors.

        The delay doubles each attempt: 1 s, 2 s, 4 s, ...
        """
        assert self._client is not None, "Client not initialised -- use as context manager"

        max_retries = self._profile.request.max_retries
        output = get_output()

        for attempt in range(max_retries + 1):
            kwargs: dict[str, Any] = {
                "method": method,
                "url": path,
                "headers": headers,
                "params": params,
            }
            if json_body is not None:
                kwargs["json"] = json_body

            try:
                response = self._client.request(**kwargs)
            except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
                if attempt < max_retries:
                    delay = 2 ** attempt
                    output.debug(
                        f"Connection error: {exc}, retrying in {delay}s "
                        f"(attempt {attempt + 1}/{max_retries})"
                    )
                    self._sleep(delay)
                    continue
                raise ConnectionError_(
                    f"Connection failed after {max_retries + 1} attempts: {exc}"
                ) from exc

            if response.status_code >= 500 and attempt < max_retries:
                delay = 2 ** attempt
                output.debug(
                    f"Server error {response.status_code}, retrying in {delay}s "
                    f"(attempt {attempt + 1}/{max_retries})"
                )
                self._sleep(delay)
                continue

            output.debug(f"{method} {path} -> {response.status_code}")
            return response

        raise ServerError("Request failed after all retries")  # pragma: no cover

    def _map_response_error(self, response: httpx.Response) -> None:
        """Raise a typed exception for error HTTP status codes."""
        status = response.status_code
        if status < 400:
            return

        try:
            detail = response.json()
            if isinstance(detail, dict):
                msg = detail.get("message") or detail.get("error") or detail.get("detail") or ""
            else:
                msg = str(detail)
        except ValueError:
            msg = response.text[:200] if response.text else ""

        full_msg = f"HTTP {status}: {msg}" if msg else f"HTTP {status}"

        if status in (401, 403):
            raise AuthError(full_msg)
        if status == 404:
            raise NotFoundError(full_msg)
        if status >= 500:
            raise ServerError(full_msg)
        raise RequestError(full_msg)


def _with_trailing_slash(url: str) -> str:
    """httpx joins relative paths onto the base URL only below a trailing slash."""
    return url if url.endswith("/") else url + "/"
