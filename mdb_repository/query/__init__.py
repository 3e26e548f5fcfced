"""
Query building: typed predicates, pipeline validation and lazy queryables.
"""

from .fields import FieldResolver
from .matching import matches, resolve_path
from .predicates import (
    And,
    AnyElement,
    Comparison,
    Exists,
    F,
    Not,
    Or,
    Predicate,
    ensure_predicate,
)
from .queryable import Queryable
from .validator import QueryValidator

__all__ = [
    "F",
    "Predicate",
    "Comparison",
    "Exists",
    "AnyElement",
    "And",
    "Or",
    "Not",
    "ensure_predicate",
    "FieldResolver",
    "Queryable",
    "QueryValidator",
    "matches",
    "resolve_path",
]
