"""Per-call options shared by entity services and the entity cache.

:class:`RequestOptions` travels with a single service call. The HTTP layer
reads the request fields (``params``, ``headers``, ``body``,
``endpoint_format``); the cache reads the cache fields
(``on_query_cache_return``, ``update_on_cache_read``, ``cache``,
``source_cache``, ``mapping_complete_callback``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Generic, Optional, TypeVar

from entcache.models import CacheBehaviourOnGet, QueryCacheReturn

if TYPE_CHECKING:
    from entcache.cache import EntityCache
    from entcache.entity import Entity, EntityMapping

T = TypeVar("T", bound="Entity")


@dataclass
class RequestOptions(Generic[T]):
    """Options for one service call.

    Attributes:
        params: Query-string parameters sent with the request.
        headers: Extra request headers.
        endpoint_format: Overrides the service's endpoint format for this
            call (e.g. ``"conversations/:conversation_id:/messages"``).
        body: Body for create/update calls; takes precedence over the
            entity's own JSON.
        cache: Cache to read from and store results in instead of the
            service's default cache.
        source_cache: Cache consulted when a new entity must be built, so
            responses can resolve to entities that already exist elsewhere.
        entity: Entity the call acts on, when it differs from ``path_ids``.
        mapping: Overrides the service's :class:`EntityMapping`.
        ignore_keys: Fields left out when an entity is serialised.
        on_query_cache_return: What a query returns on replay. ``None``
            resolves to ``ALL`` for queries without filtering params and to
            ``PREVIOUS_QUERY`` otherwise; see :meth:`resolve_cache_return`.
        cache_behaviour_on_get: Whether ``get`` is answered from any cached
            entity or only from a replayed identical get.
        constructor_params: Overrides ``mapping.constructor_params``.
        mapping_complete_callback: Called once per entity when it is
            returned, whether freshly mapped or replayed.
        update_on_cache_read: Refresh an already cached entity from the
            response JSON in ``get_or_create``.
        non_filtering_params: Param names that never narrow a result set
            (paging, ordering). A query carrying only these still counts as
            unfiltered for the ``on_query_cache_return`` default.
    """

    params: Optional[dict[str, Any]] = None
    headers: Optional[dict[str, str]] = None
    endpoint_format: Optional[str] = None
    body: Any = None
    cache: Optional[EntityCache[T]] = None
    source_cache: Optional[EntityCache[T]] = None
    entity: Optional[T] = None
    mapping: Optional[EntityMapping] = None
    ignore_keys: list[str] = field(default_factory=list)
    on_query_cache_return: Optional[QueryCacheReturn] = None
    cache_behaviour_on_get: CacheBehaviourOnGet = CacheBehaviourOnGet.CACHE_ENTITY
    constructor_params: Any = None
    mapping_complete_callback: Optional[Callable[[T], None]] = None
    update_on_cache_read: bool = True
    non_filtering_params: frozenset[str] = frozenset()

    def has_filtering_params(self) -> bool:
        """True when any param other than ``non_filtering_params`` is set."""
        if not self.params:
            return False
        return any(name not in self.non_filtering_params for name in self.params)

    def resolve_cache_return(self) -> QueryCacheReturn:
        """Return the explicit replay scope, or the default for these params."""
        if self.on_query_cache_return is not None:
            return QueryCacheReturn(self.on_query_cache_return)
        if self.has_filtering_params():
            return QueryCacheReturn.PREVIOUS_QUERY
        return QueryCacheReturn.ALL


def resolve_cache_return(options: Optional[RequestOptions[Any]]) -> QueryCacheReturn:
    """Replay scope for *options*, treating ``None`` as an unfiltered query."""
    if options is None:
        return QueryCacheReturn.ALL
    return options.resolve_cache_return()
