"""
Entity descriptors.

A descriptor is the explicit, per-type description of an entity that the
repository works with: which fields exist, what name each one is stored
under, whether it can be read or written, and how to turn an entity into a
document and back. Two kinds of entity types are supported:

- pydantic models: stored names come from ``serialization_alias`` or
  ``alias`` (``Field(alias="id")``)
- dataclasses: stored names come from ``field(metadata={"alias": "id"})``

Usage:
    descriptor = describe(Person)
    doc = descriptor.to_document(person)
    person = descriptor.from_document(doc)
"""

import copy
import dataclasses
import functools
import types
import typing
from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from ..constants import ALIAS_METADATA_KEY
from ..exceptions import ConfigurationError

T = TypeVar("T")


@dataclasses.dataclass(frozen=True)
class EntityField:
    """One field of an entity type."""

    name: str
    serialized_name: str
    readable: bool = True
    writable: bool = True
    annotation: Any = dataclasses.field(default=Any, compare=False, repr=False)


class EntityDescriptor(ABC, Generic[T]):
    """
    Field metadata and document conversion for one entity type.
    """

    def __init__(self, entity_type: type[T], fields: list[EntityField]):
        self.entity_type = entity_type
        self.fields: tuple[EntityField, ...] = tuple(fields)
        self._by_name = {f.name: f for f in self.fields}

    @property
    def type_name(self) -> str:
        return self.entity_type.__name__

    def field(self, name: str) -> EntityField | None:
        """Return the field called ``name``, or None."""
        return self._by_name.get(name)

    def serialized_names(self) -> set[str]:
        """Names the fields are stored under."""
        return {f.serialized_name for f in self.fields}

    def get(self, entity: T, name: str) -> Any:
        return getattr(entity, name)

    def set(self, entity: T, name: str, value: Any) -> None:
        setattr(entity, name, value)

    @abstractmethod
    def to_document(self, entity: T) -> dict[str, Any]:
        """Serialize ``entity`` to a document keyed by stored field names."""

    @abstractmethod
    def from_document(self, document: dict[str, Any]) -> T:
        """Build an entity from a stored document. Unknown keys are ignored."""

    @abstractmethod
    def with_value(self, entity: T, name: str, value: Any) -> T:
        """Return a copy of ``entity`` with field ``name`` set to ``value``."""


class PydanticDescriptor(EntityDescriptor[T]):
    """Descriptor for pydantic ``BaseModel`` subclasses."""

    def __init__(self, entity_type: type[T]):
        self._input_keys: dict[str, str] = {}
        fields = []
        frozen_model = bool(entity_type.model_config.get("frozen", False))

        for name, info in entity_type.model_fields.items():
            serialized = info.serialization_alias or info.alias or name
            fields.append(
                EntityField(
                    name=name,
                    serialized_name=serialized,
                    writable=not (frozen_model or info.frozen),
                    annotation=info.annotation,
                )
            )
            if isinstance(info.validation_alias, str):
                self._input_keys[serialized] = info.validation_alias
            else:
                self._input_keys[serialized] = info.alias or name

        # Computed fields are serialized but cannot be assigned.
        for name, info in entity_type.model_computed_fields.items():
            fields.append(
                EntityField(
                    name=name,
                    serialized_name=info.alias or name,
                    writable=False,
                    annotation=info.return_type,
                )
            )

        super().__init__(entity_type, fields)

    def to_document(self, entity: T) -> dict[str, Any]:
        return entity.model_dump(by_alias=True)

    def from_document(self, document: dict[str, Any]) -> T:
        data = {
            self._input_keys[key]: value
            for key, value in document.items()
            if key in self._input_keys
        }
        return self.entity_type.model_validate(data)

    def with_value(self, entity: T, name: str, value: Any) -> T:
        return entity.model_copy(update={name: value})


class DataclassDescriptor(EntityDescriptor[T]):
    """Descriptor for ``@dataclass`` types."""

    def __init__(self, entity_type: type[T]):
        params = getattr(entity_type, "__dataclass_params__", None)
        frozen = bool(params and params.frozen)
        self._dc_fields = dataclasses.fields(entity_type)
        self._hints = typing.get_type_hints(entity_type)

        fields = [
            EntityField(
                name=f.name,
                serialized_name=f.metadata.get(ALIAS_METADATA_KEY, f.name),
                writable=not frozen and f.init,
                annotation=self._hints.get(f.name, Any),
            )
            for f in self._dc_fields
        ]
        super().__init__(entity_type, fields)

    def to_document(self, entity: T) -> dict[str, Any]:
        return {
            f.serialized_name: _to_plain(getattr(entity, f.name)) for f in self.fields
        }

    def from_document(self, document: dict[str, Any]) -> T:
        init_kwargs = {}
        late = {}
        for dc_field, entity_field in zip(self._dc_fields, self.fields):
            if entity_field.serialized_name not in document:
                continue
            value = _from_plain(
                self._hints.get(dc_field.name, Any), document[entity_field.serialized_name]
            )
            if dc_field.init:
                init_kwargs[dc_field.name] = value
            else:
                late[dc_field.name] = value

        entity = self.entity_type(**init_kwargs)
        for name, value in late.items():
            object.__setattr__(entity, name, value)
        return entity

    def with_value(self, entity: T, name: str, value: Any) -> T:
        clone = copy.copy(entity)
        object.__setattr__(clone, name, value)
        return clone


def _to_plain(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return describe(type(value)).to_document(value)
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if isinstance(value, (list, tuple, set)):
        return [_to_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items()}
    return value


def _from_plain(hint: Any, value: Any) -> Any:
    if value is None:
        return None

    origin = typing.get_origin(hint)
    args = typing.get_args(hint)

    if origin in (typing.Union, types.UnionType):
        members = [a for a in args if a is not type(None)]
        if len(members) == 1:
            return _from_plain(members[0], value)
        return value
    if origin in (list, set, tuple, frozenset):
        if not isinstance(value, list):
            return value
        item_hint = args[0] if args else Any
        items = [_from_plain(item_hint, v) for v in value]
        return items if origin is list else origin(items)
    if isinstance(hint, type) and isinstance(value, dict):
        if dataclasses.is_dataclass(hint) or issubclass(hint, BaseModel):
            return describe(hint).from_document(value)
    return value


@functools.lru_cache(maxsize=None)
def describe(entity_type: type) -> EntityDescriptor:
    """
    Build (once per type) the descriptor for an entity type.

    Raises:
        ConfigurationError: If the type is neither a pydantic model nor a dataclass
    """
    if isinstance(entity_type, type) and issubclass(entity_type, BaseModel):
        return PydanticDescriptor(entity_type)
    if isinstance(entity_type, type) and dataclasses.is_dataclass(entity_type):
        return DataclassDescriptor(entity_type)
    raise ConfigurationError(
        f"Entity type must be a pydantic model or a dataclass, got {entity_type!r}",
        config_key="entity_type",
    )
