"""entcache -- Typed in-memory entity cache for remote entity APIs.

This package sits between a UI (or CLI) layer and a remote REST API that
serves *entities* -- records with a stable identity key. Query results are
merged into a shared, key-addressed object graph, repeated queries are
replayed from memory while their time-to-live lasts, and every logical
update is announced once on a change stream.

Typical workflow::

    cache = EntityCache[Message]()
    service = MessageService(client, cache=cache)
    messages = service.query()        # network round-trip
    messages = service.query()        # replayed from the cache

Modules:
    entity: Entity base class and mapping metadata.
    request_options: Options bag shared by the cache and services.
    cache: The entity cache, query records, and change stream.
    service: HTTP-backed entity services that feed the cache.
    client: httpx-based HTTP client with retry and error mapping.
    models: Pydantic configuration models.
    config: XDG-aware configuration and profile management.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
