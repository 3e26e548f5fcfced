"""
Typed filter predicates.

Predicates form a small closed set of expressions that can both be
translated to a MongoDB filter document and evaluated in-process. They are
built from field references:

    from mdb_repository.query import F

    smiths = F("last_name") == "Smith"
    adults = (F("age") >= 18) & F("active").is_true()
    has_mobile = F("phones").any(F("type") == "Mobile")

Combine predicates with ``&``, ``|`` and ``~``. Python's ``and``/``or``/``not``
and ``if predicate:`` cannot be intercepted, so predicates refuse to be used
as booleans and raise QueryTranslationError instead of silently producing a
wrong query.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..exceptions import QueryTranslationError
from .matching import matches

if TYPE_CHECKING:
    from .fields import FieldResolver

_SCALAR_TYPES = (str, int, float, bool, datetime, date, Enum, type(None))


def _check_value(value: Any, path: str) -> Any:
    if isinstance(value, (Predicate, F)):
        raise QueryTranslationError(
            f"Comparing field '{path}' with another field or predicate is not supported",
            fields=[path],
        )
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, _SCALAR_TYPES):
        return value
    if isinstance(value, (list, tuple)):
        return [_check_value(v, path) for v in value]
    if isinstance(value, dict):
        return {k: _check_value(v, path) for k, v in value.items()}
    raise QueryTranslationError(
        f"Cannot compare field '{path}' with value of type {type(value).__name__}",
        fields=[path],
    )


def _check_path(path: Any) -> str:
    if not isinstance(path, str) or not path:
        raise QueryTranslationError(f"Field path must be a non-empty string, got {path!r}")
    if path.startswith("$") or any(not segment for segment in path.split(".")):
        raise QueryTranslationError(f"Invalid field path '{path}'", fields=[path])
    return path


class Predicate(ABC):
    """Base class for filter expressions."""

    @abstractmethod
    def to_filter(self) -> dict[str, Any]:
        """Translate to a MongoDB filter document."""

    @abstractmethod
    def paths(self) -> set[str]:
        """Field paths this predicate reads, relative to the document root."""

    def fields(self) -> set[str]:
        """Top-level field names this predicate references."""
        return {path.partition(".")[0] for path in self.paths()}

    @abstractmethod
    def resolve_fields(self, fields: "FieldResolver") -> "Predicate":
        """
        Return a copy addressing stored paths.

        Raises:
            QueryTranslationError: If a path names no field of the entity type
        """

    def evaluate(self, document: dict[str, Any]) -> bool:
        """Evaluate against a stored document."""
        return matches(document, self.to_filter())

    def __and__(self, other: "Predicate") -> "Predicate":
        return And((self, _require_predicate(other)))

    def __or__(self, other: "Predicate") -> "Predicate":
        return Or((self, _require_predicate(other)))

    def __invert__(self) -> "Predicate":
        return Not(self)

    def __bool__(self) -> bool:
        raise QueryTranslationError(
            "Predicates cannot be used as booleans; combine them with &, | and ~ "
            "instead of and, or and not"
        )


def _require_predicate(value: Any) -> Predicate:
    if not isinstance(value, Predicate):
        raise QueryTranslationError(
            f"Expected a predicate, got {type(value).__name__}. Build predicates "
            f"with F('field') comparisons; callables are not translated"
        )
    return value


@dataclass(frozen=True)
class Comparison(Predicate):
    """``field <op> value``."""

    path: str
    op: str
    value: Any

    def to_filter(self) -> dict[str, Any]:
        return {self.path: {f"${self.op}": self.value}}

    def paths(self) -> set[str]:
        return {self.path}

    def resolve_fields(self, fields: "FieldResolver") -> "Comparison":
        return Comparison(fields.stored_path(self.path), self.op, self.value)


@dataclass(frozen=True)
class Exists(Predicate):
    """Field presence test."""

    path: str
    present: bool = True

    def to_filter(self) -> dict[str, Any]:
        return {self.path: {"$exists": self.present}}

    def paths(self) -> set[str]:
        return {self.path}

    def resolve_fields(self, fields: "FieldResolver") -> "Exists":
        return Exists(fields.stored_path(self.path), self.present)


@dataclass(frozen=True)
class AnyElement(Predicate):
    """
    At least one element of a nested sequence satisfies ``predicate``.

    The inner predicate's paths are relative to the element.
    """

    path: str
    predicate: Predicate

    def to_filter(self) -> dict[str, Any]:
        return {self.path: {"$elemMatch": self.predicate.to_filter()}}

    def paths(self) -> set[str]:
        return {self.path}

    def resolve_fields(self, fields: "FieldResolver") -> "AnyElement":
        return AnyElement(
            fields.stored_path(self.path),
            self.predicate.resolve_fields(fields.element(self.path)),
        )


@dataclass(frozen=True)
class And(Predicate):
    operands: tuple[Predicate, ...]

    def __post_init__(self):
        flat: list[Predicate] = []
        for operand in self.operands:
            flat.extend(operand.operands if isinstance(operand, And) else (operand,))
        object.__setattr__(self, "operands", tuple(flat))

    def to_filter(self) -> dict[str, Any]:
        return {"$and": [p.to_filter() for p in self.operands]}

    def paths(self) -> set[str]:
        return set().union(*(p.paths() for p in self.operands))

    def resolve_fields(self, fields: "FieldResolver") -> "And":
        return And(tuple(p.resolve_fields(fields) for p in self.operands))


@dataclass(frozen=True)
class Or(Predicate):
    operands: tuple[Predicate, ...]

    def __post_init__(self):
        flat: list[Predicate] = []
        for operand in self.operands:
            flat.extend(operand.operands if isinstance(operand, Or) else (operand,))
        object.__setattr__(self, "operands", tuple(flat))

    def to_filter(self) -> dict[str, Any]:
        return {"$or": [p.to_filter() for p in self.operands]}

    def paths(self) -> set[str]:
        return set().union(*(p.paths() for p in self.operands))

    def resolve_fields(self, fields: "FieldResolver") -> "Or":
        return Or(tuple(p.resolve_fields(fields) for p in self.operands))


@dataclass(frozen=True)
class Not(Predicate):
    operand: Predicate

    def to_filter(self) -> dict[str, Any]:
        # MongoDB has no top-level $not; a one-element $nor is the negation.
        return {"$nor": [self.operand.to_filter()]}

    def paths(self) -> set[str]:
        return self.operand.paths()

    def resolve_fields(self, fields: "FieldResolver") -> "Not":
        return Not(self.operand.resolve_fields(fields))


class F:
    """
    Reference to an entity field, used to build predicates.

    Dotted paths address nested fields: ``F("address.city")``.
    """

    __slots__ = ("path",)

    def __init__(self, path: str):
        self.path = _check_path(path)

    def __repr__(self) -> str:
        return f"F({self.path!r})"

    def _compare(self, op: str, value: Any) -> Comparison:
        return Comparison(self.path, op, _check_value(value, self.path))

    def __eq__(self, value: Any) -> Comparison:  # type: ignore[override]
        return self._compare("eq", value)

    def __ne__(self, value: Any) -> Comparison:  # type: ignore[override]
        return self._compare("ne", value)

    def __gt__(self, value: Any) -> Comparison:
        return self._compare("gt", value)

    def __ge__(self, value: Any) -> Comparison:
        return self._compare("gte", value)

    def __lt__(self, value: Any) -> Comparison:
        return self._compare("lt", value)

    def __le__(self, value: Any) -> Comparison:
        return self._compare("lte", value)

    __hash__ = None  # type: ignore[assignment]

    def is_in(self, values: Iterable[Any]) -> Comparison:
        return self._compare("in", self._as_list(values))

    def not_in(self, values: Iterable[Any]) -> Comparison:
        return self._compare("nin", self._as_list(values))

    def exists(self, present: bool = True) -> Exists:
        return Exists(self.path, present)

    def is_true(self) -> Comparison:
        return self._compare("eq", True)

    def is_false(self) -> Comparison:
        return self._compare("eq", False)

    def any(self, predicate: Predicate) -> AnyElement:
        return AnyElement(self.path, _require_predicate(predicate))

    def __bool__(self) -> bool:
        raise QueryTranslationError(
            f"Field reference {self!r} cannot be used as a boolean; "
            f"use F({self.path!r}).is_true() for boolean fields"
        )

    def _as_list(self, values: Iterable[Any]) -> list[Any]:
        if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
            raise QueryTranslationError(
                f"Membership test on '{self.path}' needs a list of values",
                fields=[self.path],
            )
        return list(values)


def ensure_predicate(value: Any) -> Predicate:
    """Validate that ``value`` is a translatable predicate."""
    return _require_predicate(value)
