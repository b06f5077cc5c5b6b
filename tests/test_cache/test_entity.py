"""Tests for the Entity base class and schemaless Record."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from entcache.entity import Entity, Record


class Message(Entity):
    id: int = -1
    content: str = ""
    conversation_id: int = 0

    @property
    def key(self) -> int:
        return self.id


class TestEntity:
    def test_key_is_abstract(self) -> None:
        class Keyless(Entity):
            id: int = 0

        with pytest.raises(TypeError):
            Keyless()

    def test_from_json_ignores_unknown_members(self) -> None:
        m = Message.from_json({"id": 1, "content": "hi", "unknown": True})
        assert m.key == 1
        assert not hasattr(m, "unknown")

    def test_key_for_json_reads_id(self) -> None:
        assert Message.key_for_json({"id": 4}) == 4
        assert Message.key_for_json({"content": "x"}) is None

    def test_update_from_json_only_touches_present_keys(self) -> None:
        m = Message(id=1, content="old", conversation_id=3)
        m.update_from_json({"content": "new"})
        assert m.content == "new"
        assert m.conversation_id == 3

    def test_update_from_json_with_keys(self) -> None:
        m = Message(id=1, content="old")
        m.update_from_json({"content": "new", "conversation_id": 9}, keys=["conversation_id"])
        assert m.content == "old"
        assert m.conversation_id == 9

    def test_assignment_is_validated(self) -> None:
        m = Message(id=1)
        with pytest.raises(ValidationError):
            m.update_from_json({"conversation_id": "not-a-number"})

    def test_to_json_with_ignore_keys(self) -> None:
        m = Message(id=1, content="hi", conversation_id=2)
        assert m.to_json() == {"id": 1, "content": "hi", "conversation_id": 2}
        assert m.to_json(ignore_keys=["id"]) == {"content": "hi", "conversation_id": 2}
        assert m.to_json_with_keys(["content"]) == {"content": "hi"}


class TestRecord:
    def test_keeps_all_members(self) -> None:
        r = Record.from_json({"id": 5, "content": "hi", "tags": ["a"]})
        assert r.key == 5
        assert r.to_json() == {"id": 5, "content": "hi", "tags": ["a"]}

    def test_update_adds_new_members(self) -> None:
        r = Record.from_json({"id": "abc"})
        r.update_from_json({"edited": True})
        assert r.to_json() == {"id": "abc", "edited": True}

    def test_requires_id(self) -> None:
        with pytest.raises(ValidationError):
            Record.from_json({"content": "no id"})
