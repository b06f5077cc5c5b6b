"""HTTP client module for entcache.

Provides :class:`SyncClient`, a blocking client that wraps :mod:`httpx`
with profile-driven settings, retry with exponential backoff, and typed
error mapping. Entity services issue all of their requests through it.

Example::

    from entcache.client import SyncClient

    with SyncClient(profile) as client:
        resp = client.get("messages")
"""

from entcache.client.response import extract_response_data
from entcache.client.sync_client import SyncClient

__all__ = ["SyncClient", "extract_response_data"]
