"""Entity base class and mapping metadata.

An *entity* is a record with a stable identity :attr:`~Entity.key` that can
be converted to and from the plain JSON structures a remote API speaks.
Entities are pydantic models, so field types are validated when an entity
is built from JSON and whenever a field is overwritten in place.

Raw server payloads stay ``dict[str, Any]`` until they reach an entity's own
conversion routine; the cache is generic over the entity type only.

Example::

    class Message(Entity):
        id: int = -1
        content: str = ""

        @property
        def key(self) -> int:
            return self.id

    msg = Message.from_json({"id": 1, "content": "hi"})
    msg.update_from_json({"content": "edited"})
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict

EntityKey = Union[str, int]
"""Identity value of an entity within one cache."""

JSONData = dict[str, Any]
"""A raw JSON object as returned by the remote API."""


class Entity(BaseModel):
    """Abstract base for every cacheable record.

    Subclasses declare their fields as pydantic fields and implement
    :attr:`key`. Two instances with the same key denote the same logical
    record; the cache keeps only one of them.
    """

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    @property
    @abstractmethod
    def key(self) -> EntityKey:
        """Identity of this entity, stable for the object's lifetime."""

    @classmethod
    def key_for_json(cls, data: JSONData) -> Optional[EntityKey]:
        """Return the key the entity built from *data* would have.

        Defaults to the ``id`` member. Returns ``None`` when the payload
        carries no identity.
        """
        return data.get("id")

    @classmethod
    def from_json(cls, data: JSONData) -> Entity:
        """Build a new instance from a raw JSON object."""
        return cls.model_validate(data)

    def json_keys(self) -> list[str]:
        """Names of the fields exchanged with the API by default."""
        return list(type(self).model_fields)

    def update_from_json(self, data: JSONData, keys: Optional[Iterable[str]] = None) -> None:
        """Overwrite fields in place from *data*.

        Only the named fields that are present in *data* are touched; each
        one is replaced wholesale, not merged.

        Args:
            data: Raw JSON object from the API.
            keys: Field names to copy. Defaults to :meth:`json_keys`.
        """
        self.set_from_json(data, self.json_keys() if keys is None else keys)

    def set_from_json(self, data: JSONData, keys: Iterable[str]) -> None:
        for name in keys:
            if name in data:
                setattr(self, name, data[name])

    def to_json_with_keys(
        self, keys: Iterable[str], ignore_keys: Sequence[str] = ()
    ) -> JSONData:
        """Serialise the named fields to a JSON-compatible dict.

        Args:
            keys: Field names to include.
            ignore_keys: Field names to leave out even if listed in *keys*.
        """
        wanted = [k for k in keys if k not in ignore_keys]
        dumped = self.model_dump(mode="json")
        return {k: dumped[k] for k in wanted if k in dumped}

    def to_json(self, ignore_keys: Sequence[str] = ()) -> JSONData:
        """Serialise all exchanged fields, used for create and update bodies."""
        return self.to_json_with_keys(self.json_keys(), ignore_keys)


class Record(Entity):
    """Schemaless entity keyed by ``id``.

    Every member of the source JSON is kept, so arbitrary API resources can
    be cached without declaring a model. Used by the CLI.
    """

    model_config = ConfigDict(extra="allow", validate_assignment=False)

    id: Union[int, str]

    @property
    def key(self) -> EntityKey:
        return self.id

    def json_keys(self) -> list[str]:
        return list(type(self).model_fields) + list(self.model_extra or {})

    def update_from_json(self, data: JSONData, keys: Optional[Iterable[str]] = None) -> None:
        self.set_from_json(data, data.keys() if keys is None else keys)


@dataclass
class EntityMapping:
    """How a service maps between JSON and its entities.

    Attributes:
        keys: Field names copied when an existing entity is refreshed from
            JSON. ``None`` means every field the entity exchanges.
        constructor_params: Extra context handed to
            :meth:`~entcache.service.EntityService.create_instance_from`
            when a new entity is built.
    """

    keys: Optional[tuple[str, ...]] = None
    constructor_params: Any = None
