"""Query records -- what the cache remembers about a past request."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from entcache.models import QueryCacheReturn

T = TypeVar("T")


@dataclass(frozen=True)
class QueryRecord(Generic[T]):
    """One remembered query and the response it produced.

    Records are immutable. Re-registering a query replaces the whole
    record.

    Attributes:
        query_key: Deterministic key of the request (path plus params).
        expire_at: Epoch time in seconds after which the record is stale.
        response: The single entity or ordered entity list returned.
        scope: Replay scope resolved when the query was registered.
    """

    query_key: str
    expire_at: float
    response: Union[T, list[T], None]
    scope: QueryCacheReturn = QueryCacheReturn.PREVIOUS_QUERY

    @classmethod
    def create(
        cls,
        query_key: str,
        ttl_seconds: float,
        response: Union[T, list[T], None],
        now: float,
        scope: QueryCacheReturn = QueryCacheReturn.PREVIOUS_QUERY,
    ) -> QueryRecord[T]:
        return cls(query_key, now + ttl_seconds, response, scope)

    def has_expired(self, now: float) -> bool:
        """True once *now* has reached ``expire_at``."""
        return now >= self.expire_at

    def is_valid(self, now: float) -> bool:
        return not self.has_expired(now)
