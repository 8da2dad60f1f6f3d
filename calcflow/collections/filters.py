"""
Record filters and sorting, evaluated in Python against ``record.as_data()``.

Filter shape::

    {"title": "t1"}                                  # equality
    {"read": {"$gte": 1, "$lt": 10}}                 # operator dict
    {"$and": [{"id": 3}, {"tags": {"$includes": "x"}}]}
    {"$or": [{"read": 0}, {"read": {"$empty": true}}]}

Field names may be dotted paths into nested values.  All conditions at one
level must match.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable, Iterable, Optional, Union

from calcflow.exceptions import CollectionError
from calcflow.expressions.namespace import lookup_path


def _as_number(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return value
    return value


def _equals(left: Any, right: Any) -> bool:
    if left == right:
        return True
    # "3" matches 3 the way a numeric column would
    if isinstance(left, (int, float)) != isinstance(right, (int, float)):
        return _as_number(left) == _as_number(right)
    return False


def _ordered(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def compare(left: Any, right: Any) -> bool:
        if left is None or right is None:
            return False
        try:
            return op(_as_number(left), _as_number(right))
        except TypeError:
            return False
    return compare


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, tuple, Mapping)) and not value)


def _includes(left: Any, right: Any) -> bool:
    if isinstance(left, str):
        return str(right) in left
    if isinstance(left, (list, tuple)):
        return any(_equals(item, right) for item in left)
    return False


def _member(left: Any, right: Any) -> bool:
    return any(_equals(left, item) for item in (right or []))


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "$eq": _equals,
    "$ne": lambda left, right: not _equals(left, right),
    "$gt": _ordered(lambda a, b: a > b),
    "$gte": _ordered(lambda a, b: a >= b),
    "$lt": _ordered(lambda a, b: a < b),
    "$lte": _ordered(lambda a, b: a <= b),
    "$in": _member,
    "$notIn": lambda left, right: not _member(left, right),
    "$includes": _includes,
    "$empty": lambda left, flag: _is_empty(left) == bool(flag),
    "$notEmpty": lambda left, flag: (not _is_empty(left)) == bool(flag),
}


def _match_condition(value: Any, condition: Any) -> bool:
    if isinstance(condition, Mapping) and condition and all(str(k).startswith("$") for k in condition):
        for op, operand in condition.items():
            fn = OPERATORS.get(op)
            if fn is None:
                raise CollectionError(f"Unknown filter operator '{op}'")
            if not fn(value, operand):
                return False
        return True
    return _equals(value, condition)


def match_filter(data: Mapping[str, Any], filter: Optional[Mapping[str, Any]]) -> bool:
    """True when *data* satisfies every condition in *filter*.

    Raises:
        CollectionError: on an unknown ``$`` operator or a malformed group.
    """
    for key, condition in (filter or {}).items():
        if key in ("$and", "$or"):
            if not isinstance(condition, (list, tuple)):
                raise CollectionError(f"'{key}' expects a list of filters")
            results = (match_filter(data, sub) for sub in condition)
            if not (all(results) if key == "$and" else any(results)):
                return False
        elif str(key).startswith("$"):
            raise CollectionError(f"Unknown filter group '{key}'")
        elif not _match_condition(lookup_path(data, key), condition):
            return False
    return True


def sort_records(items: Iterable[Mapping[str, Any]], sort: Union[str, list[str], None]) -> list:
    """Sort by ``field`` (ascending) or ``-field`` (descending); missing values first."""
    items = list(items)
    keys = [sort] if isinstance(sort, str) else list(sort or [])
    for spec in reversed(keys):
        descending = spec.startswith("-")
        field = spec.lstrip("-")
        items.sort(
            key=lambda item: (lookup_path(item, field) is not None, lookup_path(item, field)),
            reverse=descending,
        )
    return items
