"""Entity services -- the fetch collaborators of the entity cache.

:class:`EntityService` decides, per call, whether the cache can answer a
request, performs the HTTP request when it cannot, and merges the mapped
entities back into the cache. :class:`RecordService` is a ready-made
service for schemaless records, used by the CLI.
"""

from entcache.service.entity_service import (
    EntityService,
    RecordService,
    build_endpoint,
    build_query_key,
)

__all__ = ["EntityService", "RecordService", "build_endpoint", "build_query_key"]
