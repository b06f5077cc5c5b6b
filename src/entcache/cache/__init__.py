"""In-memory entity caching for entcache.

This package provides :class:`EntityCache`, a typed store that merges query
results into one instance per entity key, replays queries within their
time-to-live, and announces every logical change once on a replay-latest
:class:`ChangeStream`.

The cache is fed by :class:`~entcache.service.EntityService` and configured
by :class:`~entcache.models.CacheConfig`.
"""

from entcache.cache.cache import CacheBatch, EntityBuilder, EntityCache
from entcache.cache.query import QueryRecord
from entcache.cache.stream import ChangeStream, Subscription

__all__ = [
    "CacheBatch",
    "ChangeStream",
    "EntityBuilder",
    "EntityCache",
    "QueryRecord",
    "Subscription",
]
