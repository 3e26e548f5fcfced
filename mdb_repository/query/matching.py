"""
In-process evaluation of MongoDB filter documents.

Covers exactly the operators the predicate builder emits ($eq, $ne, $gt,
$gte, $lt, $lte, $in, $nin, $exists, $elemMatch, $and, $or, $nor), with
MongoDB's array semantics: a path that runs through a list matches when any
element matches.
"""

from typing import Any

from ..exceptions import QueryTranslationError

_MISSING = object()


def resolve_path(document: Any, path: str) -> list[Any]:
    """
    Return every value found at a dotted ``path``.

    Lists met on the way are expanded, so ``phones.number`` yields the number
    of each phone. Missing keys contribute nothing.
    """
    candidates = [document]
    for segment in path.split("."):
        found = []
        for candidate in candidates:
            if isinstance(candidate, dict):
                value = candidate.get(segment, _MISSING)
                if value is not _MISSING:
                    found.append(value)
            elif isinstance(candidate, list):
                for item in candidate:
                    if isinstance(item, dict) and segment in item:
                        found.append(item[segment])
        candidates = found
    return candidates


def matches(document: dict[str, Any], filter: dict[str, Any] | None) -> bool:
    """Return True when ``document`` satisfies ``filter``."""
    if not filter:
        return True

    for key, condition in filter.items():
        if key == "$and":
            if not all(matches(document, sub) for sub in condition):
                return False
        elif key == "$or":
            if not any(matches(document, sub) for sub in condition):
                return False
        elif key == "$nor":
            if any(matches(document, sub) for sub in condition):
                return False
        elif key.startswith("$"):
            raise QueryTranslationError(f"Unsupported top-level operator '{key}'")
        elif not _match_field(resolve_path(document, key), condition):
            return False
    return True


def _match_field(values: list[Any], condition: Any) -> bool:
    if not _is_operator_document(condition):
        return _equals_any(values, condition)

    for op, operand in condition.items():
        if not _apply(op, values, operand):
            return False
    return True


def _is_operator_document(condition: Any) -> bool:
    return (
        isinstance(condition, dict)
        and bool(condition)
        and all(isinstance(k, str) and k.startswith("$") for k in condition)
    )


def _apply(op: str, values: list[Any], operand: Any) -> bool:
    if op == "$eq":
        return _equals_any(values, operand)
    if op == "$ne":
        return not _equals_any(values, operand)
    if op == "$in":
        return any(_equals_any(values, option) for option in operand)
    if op == "$nin":
        return not any(_equals_any(values, option) for option in operand)
    if op == "$exists":
        return bool(values) == bool(operand)
    if op == "$elemMatch":
        return any(
            isinstance(item, dict) and matches(item, operand)
            for value in values
            if isinstance(value, list)
            for item in value
        )
    if op in _ORDERING:
        compare = _ORDERING[op]
        return any(_safe_compare(compare, v, operand) for v in _expand(values))
    raise QueryTranslationError(f"Unsupported query operator '{op}'")


def _expand(values: list[Any]) -> list[Any]:
    expanded = []
    for value in values:
        if isinstance(value, list):
            expanded.extend(value)
        else:
            expanded.append(value)
    return expanded


def _equals_any(values: list[Any], operand: Any) -> bool:
    if not values:
        # A missing field equals null, as in MongoDB.
        return operand is None
    for value in values:
        if value == operand:
            return True
        if isinstance(value, list) and operand in value:
            return True
    return False


def _safe_compare(compare, value: Any, operand: Any) -> bool:
    if value is None or operand is None:
        return False
    try:
        return bool(compare(value, operand))
    except TypeError:
        return False


_ORDERING = {
    "$gt": lambda a, b: a > b,
    "$gte": lambda a, b: a >= b,
    "$lt": lambda a, b: a < b,
    "$lte": lambda a, b: a <= b,
}
