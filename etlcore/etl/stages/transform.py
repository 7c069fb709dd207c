"""Transform stage for ETL pipeline.

Applies a connector's declarative field operations to the extracted
records:
- Field concatenation, renaming and object merging
- Case folding, trimming, prefixes and suffixes
- Splitting, regex replacement and regex/slice extraction
- Numeric parsing

Operations run in list order over the whole dataset. Each one returns new
records with the computed key merged over the previous record, so input
records are never mutated. An operation missing a required option is
skipped; an unknown operation kind is logged and skipped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from ...connectors.filters import get_field
from ...connectors.models import Transformation

logger = logging.getLogger(__name__)

Record = dict[str, Any]

# Leading decimal number, as accepted by a lenient float parse ("12.5kg" -> 12.5)
_NUMBER_PREFIX = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def _text(value: Any) -> str:
    """Render a field value as text; missing values become ''."""
    return "" if value is None else str(value)


def to_number(value: Any) -> int | float:
    """Parse the leading number of a value; anything non-numeric is 0.

    Integral results come back as ``int`` so that "36" renders as 36, not 36.0.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        number = value
    else:
        match = _NUMBER_PREFIX.match(_text(value))
        if not match:
            return 0
        number = float(match.group(1))
    if number != number:  # NaN
        return 0
    return int(number) if number.is_integer() else number


# $$, $&, or a group number of one or two digits
_REPLACEMENT_TOKEN = re.compile(r"\$(\$|&|\d{1,2})")


def _expand_replacement(template: str) -> Callable[[re.Match[str]], str]:
    """Build a substitution function using $1-style references.

    ``$n`` and ``$nn`` insert a group when it exists, ``$&`` the whole match
    and ``$$`` a dollar sign. Everything else, backslashes included, is literal.
    """

    def substitute(match: re.Match[str]) -> str:
        def token(ref: re.Match[str]) -> str:
            name = ref.group(1)
            if name == "$":
                return "$"
            if name == "&":
                return match.group(0)
            if len(name) == 2 and 0 < int(name) <= match.re.groups:
                return match.group(int(name)) or ""
            if 0 < int(name[0]) <= match.re.groups:
                return (match.group(int(name[0])) or "") + name[1:]
            return ref.group(0)

        return _REPLACEMENT_TOKEN.sub(token, template)

    return substitute


def _concat(records: list[Record], options: dict[str, Any]) -> list[Record] | None:
    properties, to = options.get("properties"), options.get("to")
    if not properties or not to:
        return None
    glue = options.get("glue", " ")
    return [
        {**item, to: glue.join(str(item[p]) for p in properties if item.get(p))}
        for item in records
    ]


def _rename_key(records: list[Record], options: dict[str, Any]) -> list[Record] | None:
    source, to = options.get("from"), options.get("to")
    if not source or not to:
        return None
    return [{**item, to: get_field(item, source)} for item in records]


def _string_op(fn: Callable[[str], str]) -> Callable[[list[Record], dict[str, Any]], list[Record] | None]:
    def apply(records: list[Record], options: dict[str, Any]) -> list[Record] | None:
        field = options.get("field")
        if not field:
            return None
        to = options.get("to") or field
        return [
            {**item, to: fn(_text(item.get(field))) if item.get(field) is not None else ""}
            for item in records
        ]

    return apply


def _split(records: list[Record], options: dict[str, Any]) -> list[Record] | None:
    field, delimiter, to = options.get("field"), options.get("delimiter"), options.get("to")
    if not field or not delimiter or not to:
        return None
    return [
        {**item, to: _text(item[field]).split(delimiter) if item.get(field) is not None else []}
        for item in records
    ]


def _replace(records: list[Record], options: dict[str, Any]) -> list[Record] | None:
    field, search = options.get("field"), options.get("search")
    replacement = options.get("replace")
    if not field or not search or replacement is None:
        return None
    pattern = re.compile(search)
    substitute = _expand_replacement(str(replacement))
    to = options.get("to") or field
    return [{**item, to: pattern.sub(substitute, _text(item.get(field)))} for item in records]


def _add_prefix(records: list[Record], options: dict[str, Any]) -> list[Record] | None:
    field, prefix = options.get("field"), options.get("prefix")
    if not field or not prefix:
        return None
    to = options.get("to") or field
    return [{**item, to: f"{prefix}{item.get(field) or ''}"} for item in records]


def _add_suffix(records: list[Record], options: dict[str, Any]) -> list[Record] | None:
    field, suffix = options.get("field"), options.get("suffix")
    if not field or not suffix:
        return None
    to = options.get("to") or field
    return [{**item, to: f"{item.get(field) or ''}{suffix}"} for item in records]


def _to_number(records: list[Record], options: dict[str, Any]) -> list[Record] | None:
    field = options.get("field")
    if not field:
        return None
    to = options.get("to") or field
    return [{**item, to: to_number(item.get(field))} for item in records]


def _extract(records: list[Record], options: dict[str, Any]) -> list[Record] | None:
    field, to = options.get("field"), options.get("to")
    if not field or not to:
        return None
    pattern = options.get("pattern")
    start, end = options.get("start"), options.get("end")
    regex = re.compile(pattern) if pattern else None

    def extract_one(item: Record) -> Record:
        value = _text(item.get(field))
        if regex is not None:
            match = regex.search(value)
            if not match:
                return {**item, to: ""}
            captured = match.group(1) if regex.groups else None
            return {**item, to: captured or match.group(0)}
        if start is not None and end is not None:
            return {**item, to: value[start:end]}
        return item

    return [extract_one(item) for item in records]


def _merge_objects(records: list[Record], options: dict[str, Any]) -> list[Record] | None:
    fields, to = options.get("fields"), options.get("to")
    if not fields or not to:
        return None
    return [
        {**item, to: {name: item[name] for name in fields if name in item}}
        for item in records
    ]


OPERATIONS: dict[str, Callable[[list[Record], dict[str, Any]], list[Record] | None]] = {
    "concat": _concat,
    "renameKey": _rename_key,
    "uppercase": _string_op(str.upper),
    "lowercase": _string_op(str.lower),
    "trim": _string_op(str.strip),
    "split": _split,
    "replace": _replace,
    "addPrefix": _add_prefix,
    "addSuffix": _add_suffix,
    "toNumber": _to_number,
    "extract": _extract,
    "mergeObjects": _merge_objects,
}


def apply_transformations(
    operations: Iterable[Transformation | dict[str, Any]],
    records: list[Record],
) -> list[Record]:
    """Apply operations to records in declared order.

    Args:
        operations: Transformations (models or raw mappings)
        records: Input records, left untouched

    Returns:
        A new list of transformed records
    """
    transformed = list(records)

    for operation in operations:
        if not isinstance(operation, Transformation):
            operation = Transformation.model_validate(operation)

        handler = OPERATIONS.get(operation.type)
        if handler is None:
            logger.warning(f"Unknown transformation type: {operation.type}")
            continue

        result = handler(transformed, operation.options)
        if result is None:
            logger.debug(f"Skipping {operation.type}: required options missing")
            continue
        transformed = result

    return transformed


@dataclass
class TransformationResult:
    """Result from a transformation pass."""

    records: list[Record]
    input_count: int
    operations_applied: int


class TransformStage:
    """Transform stage applying a connector's declared operations."""

    def __init__(self, operations: Iterable[Transformation] | None = None) -> None:
        self.operations = list(operations or [])

    def transform(self, records: list[Record]) -> TransformationResult:
        """Transform the full extracted dataset.

        Args:
            records: Accumulated records from extraction

        Returns:
            TransformationResult with the new records
        """
        transformed = apply_transformations(self.operations, records)
        logger.debug(
            f"Applied {len(self.operations)} transformation(s) to {len(records)} records"
        )
        return TransformationResult(
            records=transformed,
            input_count=len(records),
            operations_applied=len(self.operations),
        )
