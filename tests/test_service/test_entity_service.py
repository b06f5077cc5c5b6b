"""Tests for EntityService: cache-first reads and cache-synchronised writes."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from entcache.cache import EntityCache
from entcache.client import SyncClient
from entcache.entity import Entity, EntityMapping, Record
from entcache.exceptions import NotFoundError, ResponseShapeError
from entcache.models import CacheBehaviourOnGet, Profile, QueryCacheReturn, RequestConfig
from entcache.request_options import RequestOptions
from entcache.service import EntityService, RecordService, build_endpoint, build_query_key


class Message(Entity):
    id: int = -1
    content: str = ""
    conversation_id: int = 0

    @property
    def key(self) -> int:
        return self.id


class MessageService(EntityService[Message]):
    entity_type = Message
    entity_name = "Message"
    endpoint_format = "messages/:id:"


class FakeApi:
    """In-memory stand-in for the messages REST API."""

    def __init__(self) -> None:
        self.rows: dict[int, dict[str, Any]] = {
            1: {"id": 1, "content": "hello", "conversation_id": 1},
            2: {"id": 2, "content": "world", "conversation_id": 1},
            3: {"id": 3, "content": "other", "conversation_id": 2},
        }
        self.requests: list[str] = []
        self.list_body: Any = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api/")
        self.requests.append(f"{request.method} {path}")
        parts = path.split("/")

        if request.method == "GET" and parts == ["messages"]:
            if self.list_body is not None:
                return httpx.Response(200, json=self.list_body)
            rows = list(self.rows.values())
            conv = request.url.params.get("conversation_id")
            if conv is not None:
                rows = [r for r in rows if str(r["conversation_id"]) == conv]
            return httpx.Response(200, json=rows)
        if request.method == "GET" and len(parts) == 2:
            row = self.rows.get(int(parts[1]))
            # Node-style API: single-row SELECT answered as a list
            return httpx.Response(200, json=[row] if row else [])
        if request.method == "POST":
            data = json.loads(request.content)
            new_id = max(self.rows) + 1
            self.rows[new_id] = {"id": new_id, "conversation_id": 0, **data}
            return httpx.Response(201, json=self.rows[new_id])
        if request.method == "PUT":
            data = json.loads(request.content)
            row = self.rows[int(parts[1])]
            row.update(data)
            row["content"] = row["content"] + " (edited)"
            return httpx.Response(200, json=row)
        if request.method == "DELETE":
            self.rows.pop(int(parts[1]), None)
            return httpx.Response(204)
        return httpx.Response(404)


@pytest.fixture()
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture()
def client(api: FakeApi):
    profile = Profile(
        name="chat",
        base_url="http://api.test/api",
        request=RequestConfig(max_retries=0),
    )
    with SyncClient(profile, transport=httpx.MockTransport(api)) as c:
        yield c


@pytest.fixture()
def cache(clock) -> EntityCache[Message]:
    return EntityCache(ttl_seconds=60, clock=clock)


@pytest.fixture()
def service(client: SyncClient, cache: EntityCache[Message]) -> MessageService:
    return MessageService(client, cache)


# ------------------------------------------------------------------ #
# Endpoint and key building
# ------------------------------------------------------------------ #


class TestBuildEndpoint:
    def test_bare_key_fills_id(self) -> None:
        assert build_endpoint("messages/:id:", 7) == "messages/7"

    def test_missing_tokens_are_dropped(self) -> None:
        assert build_endpoint("messages/:id:") == "messages"

    def test_mapping_values(self) -> None:
        fmt = "conversations/:conversation_id:/messages/:id:"
        assert build_endpoint(fmt, {"conversation_id": 3}) == "conversations/3/messages"

    def test_entity_attributes(self) -> None:
        m = Message(id=4, conversation_id=2)
        fmt = "conversations/:conversation_id:/messages/:id:"
        assert build_endpoint(fmt, m) == "conversations/2/messages/4"

    def test_values_are_escaped(self) -> None:
        assert build_endpoint("tags/:id:", "a/b c") == "tags/a%2Fb%20c"


class TestBuildQueryKey:
    def test_no_params(self) -> None:
        assert build_query_key("messages") == "messages"
        assert build_query_key("messages", {}) == "messages"

    def test_param_order_does_not_matter(self) -> None:
        a = build_query_key("messages", {"b": 2, "a": 1})
        b = build_query_key("messages", {"a": 1, "b": 2})
        assert a == b == "messages?a=1&b=2"

    def test_none_values_dropped_and_bools_lowercased(self) -> None:
        key = build_query_key("messages", {"unread": True, "page": None})
        assert key == "messages?unread=true"

    def test_list_values(self) -> None:
        assert build_query_key("messages", {"id": [1, 2]}) == "messages?id=1&id=2"


# ------------------------------------------------------------------ #
# Queries
# ------------------------------------------------------------------ #


class TestQuery:
    def test_first_query_hits_the_server(self, service: MessageService, api: FakeApi) -> None:
        result = service.query()
        assert [m.id for m in result] == [1, 2, 3]
        assert api.requests == ["GET messages"]
        assert service.cache.size == 3

    def test_repeat_within_ttl_is_served_from_cache(
        self, service: MessageService, api: FakeApi
    ) -> None:
        first = service.query()
        second = service.query()
        assert api.requests == ["GET messages"]
        assert [m.id for m in second] == [1, 2, 3]
        assert second[0] is first[0]

    def test_repeat_after_ttl_refetches(self, service: MessageService, api: FakeApi, clock) -> None:
        service.query()
        clock.advance(60)
        service.query()
        assert api.requests == ["GET messages", "GET messages"]

    def test_refetch_keeps_entity_identity(
        self, service: MessageService, api: FakeApi, clock
    ) -> None:
        first = service.query()
        api.rows[1]["content"] = "changed"
        clock.advance(61)
        second = service.query()
        assert second[0] is first[0]
        assert first[0].content == "changed"

    def test_filtered_query_replays_its_own_result(self, service: MessageService) -> None:
        options: RequestOptions[Message] = RequestOptions(params={"conversation_id": 2})
        assert [m.id for m in service.query(options=options)] == [3]
        service.query()
        assert [m.id for m in service.query(options=options)] == [3]

    def test_fetch_all_returns_whole_cache(self, service: MessageService, api: FakeApi) -> None:
        service.cache.add(Message(id=99))
        result = service.fetch_all()
        assert sorted(m.id for m in result) == [1, 2, 3, 99]

    def test_cache_activity_is_logged_in_verbose_mode(
        self, service: MessageService, verbose_output, capfd, clock
    ) -> None:
        service.query()
        service.query()
        clock.advance(60)
        service.query()
        err = capfd.readouterr().err
        assert "[debug] Registered query 'messages' with 3 entities" in err
        assert "[debug] Cache hit: messages" in err
        assert "[debug] Query 'messages' expired" in err

    def test_query_notifies_subscribers_once(self, service: MessageService) -> None:
        snapshots: list[tuple] = []
        service.cache.subscribe(snapshots.append)
        service.query()
        assert len(snapshots) == 2

    def test_completion_callback_runs_for_fresh_and_replayed(
        self, service: MessageService
    ) -> None:
        seen: list[int] = []
        options: RequestOptions[Message] = RequestOptions(
            mapping_complete_callback=lambda m: seen.append(m.id)
        )
        service.query(options=options)
        service.query(options=options)
        assert seen == [1, 2, 3, 1, 2, 3]

    def test_non_list_response_raises(self, service: MessageService, api: FakeApi) -> None:
        api.list_body = {"error": "not a list"}
        with pytest.raises(ResponseShapeError, match="Expected a JSON list"):
            service.query()
        assert service.cache.size == 0

    def test_item_without_key_raises(self, service: MessageService, api: FakeApi) -> None:
        api.list_body = [{"content": "no id"}]
        with pytest.raises(ResponseShapeError, match="no identity key"):
            service.query()

    def test_options_cache_overrides_service_cache(self, service: MessageService) -> None:
        other: EntityCache[Message] = EntityCache()
        service.query(options=RequestOptions(cache=other))
        assert other.size == 3
        assert service.cache.size == 0

    def test_source_cache_links_existing_entities(self, service: MessageService) -> None:
        shared = Message(id=1, content="stale")
        source: EntityCache[Message] = EntityCache()
        source.add(shared)
        result = service.query(options=RequestOptions(source_cache=source))
        assert result[0] is shared
        assert shared.content == "hello"
        assert service.cache.get(1) is shared

    def test_mapping_keys_limit_refresh(self, client: SyncClient, cache, api: FakeApi, clock) -> None:
        service = MessageService(client, cache, mapping=EntityMapping(keys=("id",)))
        first = service.query()
        api.rows[1]["content"] = "changed"
        clock.advance(61)
        service.query()
        assert first[0].content == "hello"


# ------------------------------------------------------------------ #
# Single-entity reads
# ------------------------------------------------------------------ #


class TestGet:
    def test_get_unwraps_single_row_list(self, service: MessageService, api: FakeApi) -> None:
        m = service.get(2)
        assert m.content == "world"
        assert api.requests == ["GET messages/2"]

    def test_cached_entity_skips_request(self, service: MessageService, api: FakeApi) -> None:
        service.query()
        m = service.get(2)
        assert m is service.cache.get(2)
        assert api.requests == ["GET messages"]

    def test_cached_entity_runs_completion_callback(
        self, service: MessageService, api: FakeApi
    ) -> None:
        cached = Message(id=7, content="local")
        service.cache.add(cached)
        seen: list[Message] = []
        result = service.get(7, RequestOptions(mapping_complete_callback=seen.append))
        assert result is cached
        assert seen == [cached]
        assert api.requests == []

    def test_cache_query_behaviour_requires_prior_get(
        self, service: MessageService, api: FakeApi
    ) -> None:
        service.query()
        options: RequestOptions[Message] = RequestOptions(
            cache_behaviour_on_get=CacheBehaviourOnGet.CACHE_QUERY
        )
        service.get(2, options)
        service.get(2, options)
        assert api.requests == ["GET messages", "GET messages/2"]

    def test_empty_list_is_not_found(self, service: MessageService) -> None:
        with pytest.raises(NotFoundError):
            service.get(42)


# ------------------------------------------------------------------ #
# Writes
# ------------------------------------------------------------------ #


class TestWrites:
    def test_create_adds_server_version(self, service: MessageService, api: FakeApi) -> None:
        created = service.create({"content": "new"})
        assert created.id == 4
        assert service.cache.get(4) is created
        assert api.requests == ["POST messages"]

    def test_create_from_entity_ignores_keys(self, service: MessageService, api: FakeApi) -> None:
        draft = Message(content="draft", conversation_id=2)
        created = service.create(draft, options=RequestOptions(ignore_keys=["id"]))
        assert created.id == 4
        assert api.rows[4]["conversation_id"] == 2

    def test_update_refreshes_entity_in_place(self, service: MessageService) -> None:
        m = service.get(1)
        m.content = "hi"
        updated = service.update(m)
        assert updated is m
        assert m.content == "hi (edited)"
        assert service.cache.get(1) is m

    def test_delete_removes_from_cache(self, service: MessageService, api: FakeApi) -> None:
        service.query()
        assert service.delete(1) is True
        assert not service.cache.has(1)
        assert api.requests[-1] == "DELETE messages/1"

    def test_delete_uncached_returns_false(self, service: MessageService) -> None:
        assert service.delete(3) is False

    def test_write_after_query_visible_in_all_replay(self, service: MessageService) -> None:
        service.query()
        service.create({"content": "late"})
        replayed = service.query()
        assert [m.id for m in replayed] == [1, 2, 3, 4]


# ------------------------------------------------------------------ #
# RecordService
# ------------------------------------------------------------------ #


class TestRecordService:
    def test_schemaless_records(self, client: SyncClient) -> None:
        service = RecordService(client, "messages")
        records = service.query()
        assert isinstance(records[0], Record)
        assert records[0].to_json()["content"] == "hello"

    def test_all_option(self, client: SyncClient) -> None:
        cache: EntityCache[Record] = EntityCache()
        cache.add(Record(id="x"))
        service = RecordService(client, "/messages/", cache=cache)
        options: RequestOptions[Record] = RequestOptions(
            params={"conversation_id": 2}, on_query_cache_return=QueryCacheReturn.ALL
        )
        assert sorted(str(r.id) for r in service.query(options=options)) == ["3", "x"]
