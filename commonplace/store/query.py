"""
commonplace.store.query — Single-field where filters
=====================================================

Operators follow the document backend's filter vocabulary.  Values of
incomparable types never match (no exception escapes a filter).
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any


_MISSING = object()


def _contains(field_value: Any, value: Any) -> bool:
    return isinstance(field_value, list) and value in field_value


def _contains_any(field_value: Any, value: Any) -> bool:
    return isinstance(field_value, list) and any(v in field_value for v in value)


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
    "in": lambda a, b: a in b,
    "not-in": lambda a, b: a not in b,
    "array-contains": _contains,
    "array-contains-any": _contains_any,
}

# Operators whose right-hand side must be a list
_LIST_OPERATORS = frozenset({"in", "not-in", "array-contains-any"})


def build_filter(field: str, op: str, value: Any) -> Callable[[dict[str, Any]], bool]:
    """Return a predicate over records for ``field <op> value``.

    Raises
    ------
    ValueError
        If *op* is unknown, or a list operator gets a non-list value.
    """
    compare = OPERATORS.get(op)
    if compare is None:
        raise ValueError(
            f"Invalid query operator: '{op}'. Allowed: {sorted(OPERATORS)}"
        )
    if op in _LIST_OPERATORS and not isinstance(value, (list, tuple)):
        raise ValueError(f"Operator '{op}' requires a list value")

    def _predicate(record: dict[str, Any]) -> bool:
        field_value = record.get(field, _MISSING)
        if field_value is _MISSING:
            return False
        try:
            return bool(compare(field_value, value))
        except TypeError:
            return False

    return _predicate
