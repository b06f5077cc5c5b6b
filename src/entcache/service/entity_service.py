"""HTTP-backed entity services that feed an :class:`~entcache.cache.EntityCache`.

An :class:`EntityService` is the *fetch collaborator* of the cache: it turns
a call such as ``service.query()`` into a query key, asks the cache whether
that query can be replayed, issues the HTTP request through
:class:`~entcache.client.SyncClient` when it cannot, maps the JSON response
to entities, and hands the result back to the cache to merge.

Endpoints are described by a format string whose ``:name:`` tokens are
filled from *path ids*::

    class MessageService(EntityService[Message]):
        entity_type = Message
        endpoint_format = "messages/:id:"

    service.query()          # GET messages
    service.get(7)           # GET messages/7
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import replace
from typing import Any, ClassVar, Generic, Optional, TypeVar, Union
from urllib.parse import quote, urlencode

from entcache.cache import EntityCache
from entcache.client import SyncClient, extract_response_data
from entcache.entity import Entity, EntityKey, EntityMapping, JSONData, Record
from entcache.exceptions import NotFoundError, ResponseShapeError
from entcache.models import CacheBehaviourOnGet, QueryCacheReturn
from entcache.output import debug
from entcache.request_options import RequestOptions

T = TypeVar("T", bound=Entity)

PathIds = Union[None, EntityKey, Mapping[str, Any], Entity]
"""Values substituted into an endpoint format."""

_TOKEN = re.compile(r":(\w+):")


def build_endpoint(endpoint_format: str, path_ids: PathIds = None) -> str:
    """Fill the ``:name:`` tokens of *endpoint_format* from *path_ids*.

    *path_ids* may be a mapping, an entity (its attributes are used), or a
    bare key (used for ``:id:``). Tokens without a value are dropped, so
    ``"messages/:id:"`` becomes ``"messages"`` for a collection query.

    Example::

        >>> build_endpoint("conversations/:conversation_id:/messages/:id:",
        ...                {"conversation_id": 3, "id": 9})
        'conversations/3/messages/9'
    """

    def lookup(name: str) -> Any:
        if path_ids is None:
            return None
        if isinstance(path_ids, Mapping):
            return path_ids.get(name)
        if isinstance(path_ids, Entity):
            return getattr(path_ids, name, None)
        return path_ids if name == "id" else None

    def substitute(match: re.Match[str]) -> str:
        value = lookup(match.group(1))
        return "" if value is None else quote(str(value), safe="")

    path = _TOKEN.sub(substitute, endpoint_format)
    path = re.sub(r"/{2,}", "/", path)
    return path.strip("/")


def build_query_key(path: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Deterministic cache key for a request.

    Params are sorted by name and ``None`` values dropped, so logically
    identical requests produce identical keys regardless of argument order.
    """
    if not params:
        return path
    items = sorted(
        (name, _param_value(value)) for name, value in params.items() if value is not None
    )
    if not items:
        return path
    return f"{path}?{urlencode(items, doseq=True)}"


def _param_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return [_param_value(v) for v in value]
    return value


class EntityService(Generic[T]):
    """Reads and writes one kind of entity through a REST endpoint.

    Subclasses set :attr:`entity_type` and :attr:`endpoint_format`, and may
    override :meth:`create_instance_from` to build entities that need more
    than ``entity_type.from_json``.

    Args:
        client: An entered :class:`~entcache.client.SyncClient`.
        cache: The cache results are merged into. A private cache with the
            default TTL is created when omitted.
        mapping: JSON mapping for refreshing cached entities.
    """

    entity_type: ClassVar[type[Entity]]
    endpoint_format: str = ""
    entity_name: str = "Entity"

    def __init__(
        self,
        client: SyncClient,
        cache: Optional[EntityCache[T]] = None,
        mapping: Optional[EntityMapping] = None,
    ) -> None:
        self._client = client
        self.cache: EntityCache[T] = cache if cache is not None else EntityCache()
        self._mapping = mapping or EntityMapping()

    @property
    def mapping(self) -> EntityMapping:
        return self._mapping

    # ------------------------------------------------------------------ #
    # Entity construction
    # ------------------------------------------------------------------ #

    def key_for_json(self, data: JSONData) -> Optional[EntityKey]:
        return self.entity_type.key_for_json(data)

    def create_instance_from(self, data: JSONData, constructor_params: Any = None) -> T:
        """Build a new entity from JSON. Override for custom construction."""
        return self.entity_type.from_json(data)  # type: ignore[return-value]

    def build_instance(self, data: JSONData, options: Optional[RequestOptions[T]] = None) -> T:
        """Build the entity for *data*, reusing one from ``options.source_cache``.

        When the source cache already holds an entity with this key, that
        entity is refreshed and returned, so the response links to the
        existing object instead of a copy.
        """
        source = options.source_cache if options else None
        key = self.key_for_json(data)
        if source is not None and key is not None and source.has(key):
            return source.get_or_create(key, self, data, options)

        params = self._mapping.constructor_params
        if options is not None and options.constructor_params is not None:
            params = options.constructor_params
        return self.create_instance_from(data, params)

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def query(
        self,
        path_ids: PathIds = None,
        options: Optional[RequestOptions[T]] = None,
    ) -> list[T]:
        """Fetch a list of entities, replaying a recent identical query.

        Raises:
            ResponseShapeError: If the endpoint does not answer with a list
                of JSON objects carrying keys.
        """
        options = options or RequestOptions()
        cache = self._cache_for(options)
        path = build_endpoint(options.endpoint_format or self.endpoint_format, path_ids)
        query_key = build_query_key(path, options.params)

        if cache.ran_query(query_key):
            debug(f"Cache hit: {query_key}")
            return cache.observer_for(query_key, options, options.mapping_complete_callback)

        response = self._client.get(path, params=options.params, headers=options.headers)
        data = extract_response_data(response)
        if not isinstance(data, list):
            raise ResponseShapeError(
                f"Expected a JSON list of {self.entity_name} objects from {path!r}, "
                f"got {type(data).__name__}"
            )

        entities = [self._resolve(cache, item, options) for item in data]
        result = cache.register_query(query_key, entities, options)
        self._complete(entities, options)
        return result

    def fetch_all(self, options: Optional[RequestOptions[T]] = None) -> list[T]:
        """Query the collection and return every cached entity of this cache."""
        options = replace(options or RequestOptions(), on_query_cache_return=QueryCacheReturn.ALL)
        return self.query(None, options)

    def get(self, path_ids: PathIds, options: Optional[RequestOptions[T]] = None) -> T:
        """Fetch one entity.

        With ``CACHE_ENTITY`` (the default) an entity already in the cache is
        returned without a request. Otherwise a recent identical get is
        replayed, and only then is the server asked.

        Raises:
            NotFoundError: If the server answers 404 or an empty list.
            ResponseShapeError: If the body is not a JSON object.
        """
        options = options or RequestOptions()
        cache = self._cache_for(options)
        path = build_endpoint(options.endpoint_format or self.endpoint_format, path_ids)
        query_key = build_query_key(path, options.params)
        callback = options.mapping_complete_callback

        entity_key = _key_of(path_ids)
        cached = None
        if (
            options.cache_behaviour_on_get == CacheBehaviourOnGet.CACHE_ENTITY
            and entity_key is not None
        ):
            cached = cache.get(entity_key)
        if cached is not None:
            debug(f"Cache hit: {self.entity_name} {entity_key!r}")
            if callback is not None:
                callback(cached)
            return cached

        if cache.ran_query(query_key):
            replayed = cache.observer_for_get(query_key, callback)
            if replayed is not None:
                debug(f"Cache hit: {query_key}")
                return replayed

        response = self._client.get(path, params=options.params, headers=options.headers)
        data = extract_response_data(response)
        if isinstance(data, list):
            # Some APIs answer a single-row SELECT with a one-element list.
            if not data:
                raise NotFoundError(f"{self.entity_name} not found at {path!r}")
            data = data[0]

        entity = self._resolve(cache, data, options)
        cache.register_get_query(query_key, entity)
        self._complete([entity], options)
        return entity

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def create(
        self,
        data: Union[JSONData, T],
        path_ids: PathIds = None,
        options: Optional[RequestOptions[T]] = None,
    ) -> T:
        """POST a new entity and add the server's version to the cache."""
        options = options or RequestOptions()
        cache = self._cache_for(options)
        path = build_endpoint(options.endpoint_format or self.endpoint_format, path_ids)
        body = options.body
        if body is None:
            body = data.to_json(options.ignore_keys) if isinstance(data, Entity) else data

        response = self._client.post(
            path, json_body=body, params=options.params, headers=options.headers
        )
        created = extract_response_data(response)
        if isinstance(created, list) and len(created) == 1:
            created = created[0]

        if isinstance(created, dict):
            entity = self._resolve(cache, created, options)
        elif isinstance(data, Entity):
            entity = data  # type: ignore[assignment]
        else:
            raise ResponseShapeError(
                f"Create of {self.entity_name} at {path!r} returned no entity"
            )
        cache.add(entity)
        self._complete([entity], options)
        return entity

    def update(self, entity: T, options: Optional[RequestOptions[T]] = None) -> T:
        """PUT *entity* and refresh it from the server's answer."""
        options = options or RequestOptions()
        cache = self._cache_for(options)
        path = build_endpoint(
            options.endpoint_format or self.endpoint_format, options.entity or entity
        )
        body = options.body if options.body is not None else entity.to_json(options.ignore_keys)

        response = self._client.put(
            path, json_body=body, params=options.params, headers=options.headers
        )
        updated = extract_response_data(response)
        if isinstance(updated, dict):
            entity.update_from_json(updated, self._mapping_for(options).keys)
        cache.set(entity.key, entity)
        return entity

    def delete(
        self,
        entity: Union[EntityKey, T],
        options: Optional[RequestOptions[T]] = None,
    ) -> bool:
        """DELETE the entity on the server and drop it from the cache.

        Returns:
            Whether the entity was cached before the delete.
        """
        options = options or RequestOptions()
        cache = self._cache_for(options)
        path = build_endpoint(options.endpoint_format or self.endpoint_format, entity)
        self._client.delete(path, params=options.params, headers=options.headers)
        return cache.delete(entity)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _cache_for(self, options: RequestOptions[T]) -> EntityCache[T]:
        return options.cache if options.cache is not None else self.cache

    def _mapping_for(self, options: RequestOptions[T]) -> EntityMapping:
        return options.mapping or self._mapping

    def _resolve(self, cache: EntityCache[T], data: Any, options: RequestOptions[T]) -> T:
        if not isinstance(data, dict):
            raise ResponseShapeError(
                f"Expected a JSON object for {self.entity_name}, got {type(data).__name__}"
            )
        key = self.key_for_json(data)
        if key is None:
            raise ResponseShapeError(f"{self.entity_name} JSON has no identity key: {data!r}")
        return cache.resolve(key, self, data, options)

    def _complete(self, entities: list[T], options: RequestOptions[T]) -> None:
        callback = options.mapping_complete_callback
        if callback is None:
            return
        for entity in entities:
            callback(entity)


def _key_of(path_ids: PathIds) -> Optional[EntityKey]:
    if path_ids is None:
        return None
    if isinstance(path_ids, Entity):
        return path_ids.key
    if isinstance(path_ids, Mapping):
        return path_ids.get("id")
    return path_ids


class RecordService(EntityService[Record]):
    """Service for schemaless :class:`~entcache.entity.Record` entities.

    Args:
        client: An entered :class:`~entcache.client.SyncClient`.
        endpoint: Collection path, e.g. ``"messages"``.
        cache: Cache to merge into.
    """

    entity_type = Record
    entity_name = "Record"

    def __init__(
        self,
        client: SyncClient,
        endpoint: str,
        cache: Optional[EntityCache[Record]] = None,
    ) -> None:
        super().__init__(client, cache)
        self.endpoint_format = f"{endpoint.strip('/')}/:id:"
