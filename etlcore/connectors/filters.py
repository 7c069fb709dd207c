"""Filter tree evaluation for adapters.

Connectors carry filters as a list of leaf predicates and boolean groups.
Translating them into a vendor query is up to each adapter; this module
provides the in-process evaluation used by adapters that filter records
themselves, plus a walker for adapters that translate the tree.
"""

from __future__ import annotations

import fnmatch
import logging
import operator
from typing import Any, Callable, Iterable, Iterator

from .models import Filter, FilterGroup

logger = logging.getLogger(__name__)


def _contains(actual: Any, expected: Any) -> bool:
    if actual is None:
        return False
    if isinstance(actual, (list, tuple, set)):
        return expected in actual
    return str(expected) in str(actual)


def _in(actual: Any, expected: Any) -> bool:
    if isinstance(expected, str):
        expected = [item.strip() for item in expected.split(",")]
    return actual in expected or str(actual) in [str(e) for e in expected]


def _like(actual: Any, expected: Any) -> bool:
    if actual is None:
        return False
    pattern = str(expected).replace("%", "*").replace("_", "?")
    return fnmatch.fnmatchcase(str(actual), pattern)


def _ordered(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(actual: Any, expected: Any) -> bool:
        if actual is None or expected is None:
            return False
        try:
            return compare(actual, expected)
        except TypeError:
            # Mixed types, e.g. "10" vs 5: compare numerically when possible
            try:
                return compare(float(actual), float(expected))
            except (TypeError, ValueError):
                return compare(str(actual), str(expected))

    return check


def _equals(actual: Any, expected: Any) -> bool:
    return actual == expected or (actual is not None and str(actual) == str(expected))


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "=": _equals,
    "==": _equals,
    "eq": _equals,
    "!=": lambda a, e: not _equals(a, e),
    "ne": lambda a, e: not _equals(a, e),
    ">": _ordered(operator.gt),
    "gt": _ordered(operator.gt),
    ">=": _ordered(operator.ge),
    "gte": _ordered(operator.ge),
    "<": _ordered(operator.lt),
    "lt": _ordered(operator.lt),
    "<=": _ordered(operator.le),
    "lte": _ordered(operator.le),
    "contains": _contains,
    "in": _in,
    "like": _like,
}


def get_field(record: dict[str, Any], path: str) -> Any:
    """Read a possibly dotted field path from a record."""
    current: Any = record
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        else:
            return None
    return current


def matches(record: dict[str, Any], filters: Iterable[Filter | FilterGroup]) -> bool:
    """Check a record against a list of filters (implicitly AND-ed).

    Args:
        record: Record to test
        filters: Leaf filters and groups

    Returns:
        True if the record satisfies every filter
    """
    return all(_matches_one(record, item) for item in filters)


def _matches_one(record: dict[str, Any], item: Filter | FilterGroup) -> bool:
    if isinstance(item, FilterGroup):
        results = (_matches_one(record, child) for child in item.filters)
        return all(results) if item.op == "AND" else any(results)

    check = OPERATORS.get(item.operator.lower())
    if check is None:
        logger.warning(f"Unknown filter operator: {item.operator}")
        return False
    return check(get_field(record, item.field), item.value)


def walk_filters(
    filters: Iterable[Filter | FilterGroup], depth: int = 0
) -> Iterator[tuple[int, Filter | FilterGroup]]:
    """Yield every node of a filter tree depth-first with its nesting depth."""
    for item in filters:
        yield depth, item
        if isinstance(item, FilterGroup):
            yield from walk_filters(item.filters, depth + 1)
