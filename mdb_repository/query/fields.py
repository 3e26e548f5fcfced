"""
Translation of entity field paths to stored paths.

Queries may name a field by its Python attribute name or by the name it is
stored under. Dotted paths and the inner predicates of ``F(...).any(...)``
descend into nested models and dataclasses, so every segment is mapped and
checked against the type that declares it. Fields typed as mappings or
``Any`` hold free-form documents; paths below them are used as written.

Usage:
    fields = FieldResolver.for_type(Person)
    fields.stored_path("phones.number")    # "phones.num"
    fields.element("phones")               # resolver for Phone
"""

import collections.abc
import dataclasses
import types
import typing
from typing import Any, Optional

from pydantic import BaseModel

from ..entities import EntityDescriptor, EntityField, describe
from ..exceptions import QueryTranslationError

_SEQUENCE_ORIGINS = (
    list,
    tuple,
    set,
    frozenset,
    collections.abc.Sequence,
    collections.abc.Set,
    collections.abc.Iterable,
)


def _is_entity_type(annotation: Any) -> bool:
    if not isinstance(annotation, type):
        return False
    return issubclass(annotation, BaseModel) or dataclasses.is_dataclass(annotation)


def _is_free_form(annotation: Any) -> bool:
    if annotation is Any or annotation is object:
        return True
    origin = typing.get_origin(annotation) or annotation
    return isinstance(origin, type) and issubclass(origin, collections.abc.Mapping)


def _unwrap(annotation: Any) -> tuple[Any, bool]:
    """Strip Optional, Annotated and sequence wrappers; report if a sequence was seen."""
    origin = typing.get_origin(annotation)
    args = typing.get_args(annotation)

    if origin is typing.Annotated:
        return _unwrap(args[0])
    if origin in (typing.Union, types.UnionType):
        members = [a for a in args if a is not type(None)]
        if len(members) == 1:
            return _unwrap(members[0])
        return Any, False
    if origin in _SEQUENCE_ORIGINS:
        inner, _ = _unwrap(args[0]) if args else (Any, False)
        return inner, True
    if annotation in (list, tuple, set, frozenset):
        return Any, True
    return annotation, False


class FieldResolver:
    """
    Maps field paths of one entity type to their stored paths.

    A resolver built without a descriptor is free-form and returns every path
    unchanged.
    """

    def __init__(self, descriptor: Optional[EntityDescriptor] = None):
        self._descriptor = descriptor
        self._fields: dict[str, EntityField] = {}
        if descriptor is not None:
            for field in descriptor.fields:
                self._fields.setdefault(field.name, field)
            for field in descriptor.fields:
                self._fields.setdefault(field.serialized_name, field)

    @classmethod
    def for_type(cls, entity_type: type) -> "FieldResolver":
        return cls(describe(entity_type))

    def __repr__(self) -> str:
        if self._descriptor is None:
            return "FieldResolver(free-form)"
        return f"FieldResolver({self._descriptor.type_name})"

    @property
    def names(self) -> list[str]:
        """Accepted field names, attribute and stored names alike."""
        return sorted(self._fields)

    def stored_path(self, path: str) -> str:
        """
        Translate ``path`` segment by segment.

        Raises:
            QueryTranslationError: If a segment names no field of the type it
                addresses, or descends into a field that has no nested fields
        """
        return self._stored_path(path, path)

    def element(self, path: str) -> "FieldResolver":
        """
        Resolver for the elements of the sequence at ``path``.

        Raises:
            QueryTranslationError: If ``path`` does not address a sequence of
                sub-documents
        """
        return self._element(path, path)

    def _stored_path(self, path: str, full_path: str) -> str:
        if self._descriptor is None:
            return path
        head, _, rest = path.partition(".")
        field = self._field(head, full_path)
        if not rest:
            return field.serialized_name
        nested, _ = self._nested(field, full_path)
        return f"{field.serialized_name}.{nested._stored_path(rest, full_path)}"

    def _element(self, path: str, full_path: str) -> "FieldResolver":
        if self._descriptor is None:
            return self
        head, _, rest = path.partition(".")
        field = self._field(head, full_path)
        nested, is_sequence = self._nested(field, full_path)
        if rest:
            return nested._element(rest, full_path)
        if not is_sequence and nested._descriptor is not None:
            raise QueryTranslationError(
                f"Field '{field.name}' of {self._descriptor.type_name} is not a sequence; "
                f"any() needs a list of sub-documents",
                fields=[full_path],
            )
        return nested

    def _field(self, name: str, path: str) -> EntityField:
        try:
            return self._fields[name]
        except KeyError:
            raise QueryTranslationError(
                f"Unknown field '{name}' on {self._descriptor.type_name}; "
                f"known fields: {', '.join(self.names)}",
                fields=[path],
            ) from None

    def _nested(self, field: EntityField, path: str) -> tuple["FieldResolver", bool]:
        target, is_sequence = _unwrap(field.annotation)
        if _is_entity_type(target):
            return FieldResolver.for_type(target), is_sequence
        if _is_free_form(target):
            return FieldResolver(), is_sequence
        raise QueryTranslationError(
            f"Field '{field.name}' of {self._descriptor.type_name} has no nested fields "
            f"(path '{path}')",
            fields=[path],
        )
