"""Read commands -- ``entcache query`` and ``entcache get``.

Both commands resolve the active profile, open a
:class:`~entcache.client.SyncClient`, and read
:class:`~entcache.entity.Record` entities through a
:class:`~entcache.service.RecordService` whose cache uses the profile's TTL.
Each collection gets its own cache; repeating an endpoint within one
invocation is answered from that cache.
"""

from __future__ import annotations

from typing import Optional, Union

import typer

from entcache.cache import EntityCache
from entcache.client import SyncClient
from entcache.entity import Record
from entcache.exceptions import ConfigError, InvalidUsageError
from entcache.models import CacheBehaviourOnGet, CacheConfig, Profile, QueryCacheReturn
from entcache.output import info, print_records
from entcache.request_options import RequestOptions
from entcache.service import RecordService


def _parse_params(raw: Optional[list[str]]) -> dict[str, str]:
    """Turn ``["k=v", ...]`` into a dict."""
    params: dict[str, str] = {}
    for item in raw or []:
        name, sep, value = item.partition("=")
        if not sep or not name:
            raise InvalidUsageError(f"Expected NAME=VALUE for --param, got {item!r}")
        params[name] = value
    return params


def _coerce_id(value: str) -> Union[int, str]:
    return int(value) if value.isdigit() else value


def _resolve_profile(ctx: typer.Context) -> tuple[Profile, CacheConfig]:
    from entcache.config import effective_cache_config, resolve_config

    cli_profile = ctx.obj.get("profile") if ctx.obj else None
    global_cfg, profile = resolve_config(cli_profile=cli_profile)
    if profile is None:
        raise ConfigError("No profile selected. Create one with 'entcache profile add'.")
    return profile, effective_cache_config(global_cfg, profile)


def query_command(
    ctx: typer.Context,
    endpoints: list[str] = typer.Argument(help="Collection path(s), e.g. 'messages'."),
    param: Optional[list[str]] = typer.Option(
        None, "--param", "-P", help="Query parameter NAME=VALUE (repeatable)."
    ),
    all_: bool = typer.Option(
        False, "--all", help="Show every cached entity, not just this query's result."
    ),
) -> None:
    """Query one or more collections and print the entities.

    Example::

        entcache query messages --param conversation_id=3
    """
    profile, cache_config = _resolve_profile(ctx)
    params = _parse_params(param)
    options: RequestOptions[Record] = RequestOptions(
        params=params or None,
        on_query_cache_return=QueryCacheReturn.ALL if all_ else None,
    )

    # ids are only unique within one collection
    caches: dict[str, EntityCache[Record]] = {}

    with SyncClient(profile) as client:
        for endpoint in endpoints:
            name = endpoint.strip("/")
            if name not in caches:
                caches[name] = EntityCache.from_config(cache_config)
            cache = caches[name]
            service = RecordService(client, endpoint, cache=cache)
            records = service.query(options=options)
            print_records([r.to_json() for r in records], title=endpoint)
            info(f"{len(records)} entities from {endpoint} ({cache.size} cached)")


def get_command(
    ctx: typer.Context,
    endpoint: str = typer.Argument(help="Collection path, e.g. 'messages'."),
    ids: list[str] = typer.Argument(help="Entity id(s)."),
    refresh: bool = typer.Option(
        False, "--refresh", help="Ask the server even if the entity is cached."
    ),
) -> None:
    """Fetch entities by id and print them.

    Example::

        entcache get messages 1 2 1    # the second '1' is served from the cache
    """
    profile, cache_config = _resolve_profile(ctx)
    cache: EntityCache[Record] = EntityCache.from_config(cache_config)
    options: RequestOptions[Record] = RequestOptions(
        cache_behaviour_on_get=(
            CacheBehaviourOnGet.CACHE_QUERY if refresh else CacheBehaviourOnGet.CACHE_ENTITY
        ),
    )

    with SyncClient(profile) as client:
        service = RecordService(client, endpoint, cache=cache)
        records = [service.get(_coerce_id(i), options) for i in ids]
    print_records([r.to_json() for r in records], title=endpoint)
