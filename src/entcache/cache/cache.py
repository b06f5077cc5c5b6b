"""In-memory entity cache with query replay and batched change notification.

:class:`EntityCache` keeps three pieces of state:

- the **store**, one entity per identity key;
- the **query registry**, one :class:`~entcache.cache.query.QueryRecord`
  per query key, each with its own expiry time;
- the **change stream**, a :class:`~entcache.cache.stream.ChangeStream` of
  projection snapshots (tuples of all stored entities, in insertion order).

The cache never performs I/O. A collaborator (normally an
:class:`~entcache.service.EntityService`) asks :meth:`EntityCache.ran_query`
whether a request can be skipped, performs the request when it cannot, and
hands the finished result to :meth:`EntityCache.register_query`.

Every mutation announces itself once. Multi-entity merges go through a
:class:`CacheBatch`, which defers the announcement until the whole merge
is applied, so subscribers never observe a half-merged store.

Example::

    cache = EntityCache[Message](ttl_seconds=60)
    with cache.subscribe(render):
        cache.register_query("messages", [m1, m2])   # render() called once
    cache.ran_query("messages")                      # True for 60 seconds
"""

from __future__ import annotations

import time
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Generic,
    Iterable,
    Iterator,
    Optional,
    Protocol,
    TypeVar,
    Union,
)

from entcache.cache.query import QueryRecord
from entcache.cache.stream import ChangeStream, Subscription
from entcache.entity import Entity, EntityKey, EntityMapping, JSONData
from entcache.models import DEFAULT_TTL_SECONDS, QueryCacheReturn
from entcache.output import debug
from entcache.request_options import RequestOptions, resolve_cache_return

if TYPE_CHECKING:
    from entcache.models import CacheConfig

T = TypeVar("T", bound=Entity)
T_co = TypeVar("T_co", bound=Entity, covariant=True)

Snapshot = tuple  # tuple[T, ...] -- what the change stream carries


class EntityBuilder(Protocol[T_co]):
    """What :meth:`EntityCache.get_or_create` needs to build or refresh an entity.

    :class:`~entcache.service.EntityService` satisfies this protocol.
    """

    @property
    def mapping(self) -> EntityMapping: ...

    def build_instance(self, data: JSONData, options: Optional[RequestOptions[Any]] = None) -> T_co: ...


class CacheBatch(Generic[T]):
    """Groups cache mutations into a single change notification.

    Obtained from :meth:`EntityCache.batch` and used as a context manager.
    Mutations made through the batch update the store immediately but are
    announced once, when the outermost ``with`` block exits cleanly. A block
    that raises announces nothing. The batch is a local object, so
    concurrent batches on one cache cannot clobber each other's state.

    Example::

        with cache.batch() as batch:
            batch.set(1, first)
            batch.delete(2)
        # one notification here
    """

    def __init__(self, cache: EntityCache[T]) -> None:
        self._cache = cache
        self._depth = 0
        self._changed = False

    def __enter__(self) -> CacheBatch[T]:
        self._depth += 1
        return self

    def __exit__(self, exc_type: object, *args: object) -> None:
        self._depth -= 1
        if self._depth == 0 and self._changed:
            self._changed = False
            # a failed block is not announced; its writes ride along with the next change
            if exc_type is None:
                self._cache._publish()

    def batch(self) -> CacheBatch[T]:
        """Nested batches share the outer batch."""
        return self

    def set(self, key: EntityKey, entity: T) -> None:
        self._check_active()
        self._cache._store(key, entity)
        self._changed = True

    def add(self, entity: T) -> None:
        self.set(entity.key, entity)

    def delete(self, entity: Union[EntityKey, T]) -> bool:
        self._check_active()
        removed = self._cache._discard(entity)
        self._changed = self._changed or removed
        return removed

    def touch(self) -> None:
        """Announce on exit even if nothing changed."""
        self._check_active()
        self._changed = True

    def _check_active(self) -> None:
        if self._depth <= 0:
            raise RuntimeError("CacheBatch used outside of its 'with' block")


class EntityCache(Generic[T]):
    """Key-addressed entity store with TTL-aware query replay.

    Args:
        ttl_seconds: Time-to-live of every query registered from now on.
            Defaults to 24 hours.
        clock: Returns the current time in seconds. Injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._entities: dict[EntityKey, T] = {}
        self._values: Snapshot = ()
        self._queries: dict[str, QueryRecord[T]] = {}
        self._clock = clock
        self._changes: ChangeStream[Snapshot] = ChangeStream(())
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_config(
        cls, config: CacheConfig, clock: Callable[[], float] = time.time
    ) -> EntityCache[T]:
        """Create a cache from a :class:`~entcache.models.CacheConfig`."""
        return cls(ttl_seconds=config.ttl_seconds, clock=clock)

    # ------------------------------------------------------------------ #
    # Configuration
    # ------------------------------------------------------------------ #

    @property
    def ttl_seconds(self) -> float:
        """Time-to-live applied to queries registered from now on."""
        return self._ttl_seconds

    @ttl_seconds.setter
    def ttl_seconds(self, value: float) -> None:
        if value < 0:
            raise ValueError(f"ttl_seconds must not be negative, got {value}")
        self._ttl_seconds = float(value)

    # ------------------------------------------------------------------ #
    # Entity store
    # ------------------------------------------------------------------ #

    def get(self, key: EntityKey) -> Optional[T]:
        """Return the entity stored under *key*, or ``None``."""
        return self._entities.get(key)

    def has(self, key: EntityKey) -> bool:
        return key in self._entities

    def __contains__(self, key: object) -> bool:
        return key in self._entities

    def __len__(self) -> int:
        return len(self._entities)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._entities.values()))

    @property
    def size(self) -> int:
        """Number of stored entities."""
        return len(self._entities)

    def for_each(self, fn: Callable[[T, EntityKey], None]) -> None:
        """Call ``fn(entity, key)`` for every stored entity."""
        for key, entity in list(self._entities.items()):
            fn(entity, key)

    def add(self, entity: T) -> None:
        """Store *entity* under its own key."""
        self.set(entity.key, entity)

    def set(self, key: EntityKey, entity: T) -> None:
        """Store or replace the entity for *key* and announce the change.

        Replacing keeps the entity's position in :attr:`current_values`.
        """
        self._store(key, entity)
        self._publish()

    def delete(self, entity: Union[EntityKey, T]) -> bool:
        """Remove an entity, given either its key or the entity itself.

        Returns:
            ``True`` if something was removed. Only then is a change
            announced.
        """
        removed = self._discard(entity)
        if removed:
            self._publish()
        return removed

    def clear(self) -> None:
        """Remove every entity and every query record."""
        self._entities.clear()
        self._queries.clear()
        self._publish()

    def batch(self) -> CacheBatch[T]:
        """Start a group of mutations announced as one change."""
        return CacheBatch(self)

    def get_or_create(
        self,
        key: EntityKey,
        builder: EntityBuilder[T],
        data: JSONData,
        options: Optional[RequestOptions[T]] = None,
    ) -> T:
        """Return the entity for *key*, building it from *data* if needed.

        A cached entity is overwritten in place from *data* using the
        builder's mapping, unless ``options.update_on_cache_read`` is
        ``False``. Otherwise ``builder.build_instance`` creates the entity,
        which is stored and returned. Errors from the builder propagate.
        """
        if key in self._entities:
            return self.resolve(key, builder, data, options)

        entity = self.resolve(key, builder, data, options)
        self.set(key, entity)
        return entity

    def resolve(
        self,
        key: EntityKey,
        builder: EntityBuilder[T],
        data: JSONData,
        options: Optional[RequestOptions[T]] = None,
    ) -> T:
        """Like :meth:`get_or_create`, but a newly built entity is not stored.

        Used to map a whole response before merging it in one
        :meth:`register_query` call.
        """
        entity = self._entities.get(key)
        if entity is None:
            return builder.build_instance(data, options)
        if options is None or options.update_on_cache_read:
            mapping = (options.mapping if options else None) or builder.mapping
            entity.update_from_json(data, mapping.keys)
        return entity

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def register_query(
        self,
        query_key: str,
        results: Iterable[T],
        options: Optional[RequestOptions[T]] = None,
    ) -> list[T]:
        """Record a completed list query and merge its entities.

        Every entity is stored under its key, replacing any entity already
        cached for that key (possibly by another query). Exactly one change
        is announced, after the whole list is merged.

        Args:
            query_key: Deterministic key of the request.
            results: Entities returned by the request, in response order.
            options: ``on_query_cache_return`` set to ``ALL`` makes this
                return every cached entity; the resolved scope is kept on
                the record for later replays.

        Returns:
            The merged entities, or all cached entities when requested.
        """
        entities = list(results)
        keyed = [(entity.key, entity) for entity in entities]
        with self.batch() as batch:
            for key, entity in keyed:
                batch.set(key, entity)
            self._queries[query_key] = QueryRecord.create(
                query_key,
                self._ttl_seconds,
                entities,
                now=self._clock(),
                scope=resolve_cache_return(options),
            )
            batch.touch()

        debug(f"Registered query {query_key!r} with {len(entities)} entities")

        if options is not None and options.on_query_cache_return == QueryCacheReturn.ALL:
            return self.current_values_clone()
        return list(entities)

    def register_get_query(self, query_key: str, entity: T) -> T:
        """Record a completed single-entity query and store its entity."""
        key = entity.key
        self._queries[query_key] = QueryRecord.create(
            query_key, self._ttl_seconds, entity, now=self._clock()
        )
        self.set(key, entity)
        debug(f"Registered get {query_key!r} for key {key!r}")
        return entity

    def ran_query(self, query_key: str) -> bool:
        """Has this query run recently enough to be replayed?

        An expired record is evicted here; the entities it returned stay
        cached.
        """
        record = self._queries.get(query_key)
        if record is None:
            return False
        if record.has_expired(self._clock()):
            del self._queries[query_key]
            debug(f"Query {query_key!r} expired")
            return False
        return True

    def query_record(self, query_key: str) -> Optional[QueryRecord[T]]:
        """Return the stored record for *query_key* without checking expiry."""
        return self._queries.get(query_key)

    def query_keys(self) -> list[str]:
        return list(self._queries)

    def observer_for(
        self,
        query_key: str,
        options: Optional[RequestOptions[T]] = None,
        on_complete: Optional[Callable[[T], None]] = None,
    ) -> list[T]:
        """Entities to answer a replayed list query with.

        The replay scope is ``options.on_query_cache_return`` when given,
        otherwise the scope resolved when the query was registered, otherwise
        the default for *options* (``ALL`` unless filtering params are set).
        ``ALL`` answers with every cached entity; ``PREVIOUS_QUERY`` with the
        recorded list, or an empty list when nothing was recorded.

        Args:
            query_key: Key of the query being replayed.
            options: Options of the replaying call.
            on_complete: Called once per returned entity. Defaults to
                ``options.mapping_complete_callback``.
        """
        record = self._queries.get(query_key)
        if options is not None and options.on_query_cache_return is not None:
            scope = QueryCacheReturn(options.on_query_cache_return)
        elif record is not None:
            scope = record.scope
        else:
            scope = resolve_cache_return(options)

        if scope == QueryCacheReturn.ALL:
            response = list(self._entities.values())
        elif record is None or record.response is None:
            response = []
        elif isinstance(record.response, list):
            response = list(record.response)
        else:
            response = [record.response]

        callback = on_complete or (options.mapping_complete_callback if options else None)
        if callback is not None:
            for entity in response:
                callback(entity)
        return response

    def observer_for_get(
        self,
        query_key: str,
        on_complete: Optional[Callable[[T], None]] = None,
    ) -> Optional[T]:
        """Entity to answer a replayed single-entity query with, or ``None``."""
        record = self._queries.get(query_key)
        if record is None or record.response is None:
            return None
        entity = record.response
        if isinstance(entity, list):
            entity = entity[0] if entity else None
        if entity is not None and on_complete is not None:
            on_complete(entity)
        return entity

    # ------------------------------------------------------------------ #
    # Change notification
    # ------------------------------------------------------------------ #

    @property
    def changes(self) -> ChangeStream[Snapshot]:
        """Stream of projection snapshots; replays the latest on subscribe."""
        return self._changes

    values = changes

    def subscribe(
        self,
        on_next: Callable[[Snapshot], None],
        on_complete: Optional[Callable[[], None]] = None,
    ) -> Subscription:
        """Shortcut for ``cache.changes.subscribe(...)``."""
        return self._changes.subscribe(on_next, on_complete)

    @property
    def current_values(self) -> Snapshot:
        """Read-only snapshot of all entities as of the last announcement."""
        return self._values

    def current_values_clone(self) -> list[T]:
        """Mutable copy of :attr:`current_values`."""
        return list(self._values)

    def close(self) -> None:
        """Tear down: complete the change stream and release subscribers."""
        self._changes.close()

    # ------------------------------------------------------------------ #
    # Internals shared with CacheBatch
    # ------------------------------------------------------------------ #

    def _store(self, key: EntityKey, entity: T) -> None:
        self._entities[key] = entity

    def _discard(self, entity: Union[EntityKey, T]) -> bool:
        key = entity if isinstance(entity, (str, int)) else entity.key
        return self._entities.pop(key, None) is not None

    def _publish(self) -> None:
        self._values = tuple(self._entities.values())
        self._changes.emit(self._values)
