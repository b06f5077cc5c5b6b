"""Response body extraction for entity services.

Entity services only care about decoded JSON. :func:`extract_response_data`
turns an :class:`httpx.Response` into the raw structure that an entity's
conversion routine consumes.
"""

from __future__ import annotations

from typing import Any

import httpx


def extract_response_data(response: httpx.Response) -> Any:
    """Extract the body from an HTTP response.

    Attempts to parse the body as JSON first. If that fails (e.g. the
    response is HTML or plain text), returns the raw text. Returns
    ``None`` for responses with no content.
    """
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
