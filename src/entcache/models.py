"""Canonical Pydantic models and enums shared across entcache modules.

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`RequestConfig`, :class:`OutputConfig`, :class:`CacheConfig`,
    :class:`GlobalConfig`, and :class:`Profile`.

**Cache enums** -- used by :class:`~entcache.request_options.RequestOptions`
and the cache:
    :class:`QueryCacheReturn` and :class:`CacheBehaviourOnGet`.

Entities themselves live in :mod:`entcache.entity`; they are pydantic models
too, but carry identity behaviour that configuration models do not need.
"""

from __future__ import annotations

import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_TTL_SECONDS = 86400.0
"""Default query time-to-live: 24 hours."""


# --- Cache enums ---


class QueryCacheReturn(str, enum.Enum):
    """What a replayed query returns.

    ``ALL`` returns every entity currently in the cache, so a replay reflects
    entities that other queries added since. ``PREVIOUS_QUERY`` returns
    exactly the entities the original query produced.
    """

    ALL = "all"
    PREVIOUS_QUERY = "previousQuery"


class CacheBehaviourOnGet(str, enum.Enum):
    """How a single-entity ``get`` consults the cache.

    ``CACHE_ENTITY`` skips the request whenever the entity is already cached,
    whichever query put it there. ``CACHE_QUERY`` only skips the request when
    this exact get was run before and has not expired.
    """

    CACHE_QUERY = "cacheQuery"
    CACHE_ENTITY = "cacheEntity"


# --- Config models ---


class RequestConfig(BaseModel):
    """Default HTTP request settings applied to every API call in a profile."""

    timeout: int = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(default=3, description="Max retry attempts")


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class CacheConfig(BaseModel):
    """Entity cache settings.

    Stored in :class:`GlobalConfig` and optionally overridden per
    :class:`Profile`. Consumed by
    :meth:`~entcache.cache.EntityCache.from_config`.
    """

    ttl_seconds: float = Field(
        default=DEFAULT_TTL_SECONDS,
        ge=0,
        description="How long a query result may be replayed without a new request",
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/entcache/config.json``.

    Loaded and saved by :func:`~entcache.config.load_global_config` and
    :func:`~entcache.config.save_global_config`. Fields here have the
    lowest precedence; see :func:`~entcache.config.resolve_config`.
    """

    default_profile: Optional[str] = None
    auto_select_single_profile: bool = True
    output: OutputConfig = Field(default_factory=OutputConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)


class Profile(BaseModel):
    """Per-API profile stored as JSON under the ``profiles/`` config directory.

    A profile names one remote entity API and the request and cache settings
    used to talk to it. Extra fields are preserved in ``model_extra``.
    """

    model_config = ConfigDict(extra="allow")

    name: str
    base_url: str = Field(description="Root URL of the entity API, e.g. http://localhost:3000/api/")
    request: RequestConfig = Field(default_factory=RequestConfig)
    cache: Optional[CacheConfig] = Field(
        default=None, description="Overrides the global cache settings"
    )
