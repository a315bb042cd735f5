"""List-view filter rules compiled to SQL.

Clients send filters as JSON, either a bare list of rules or a group::

    {"logic": "AND" | "OR", "rules": [{"field_key": ..., "operator": ..., "value": ...}]}

``name`` and ``description`` match columns of the record itself; any other
key is looked up in the record's field-value table. Unknown fields and
unknown operators are skipped rather than rejected so saved filters survive
field deletions.

``contains`` is a literal, case-insensitive substring match (``%`` and ``_``
are not wildcards). ``not_equals`` on a dynamic field only matches records
that store a different value; records without a value do not match.
"""

from __future__ import annotations

import json
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from campaign_server.services.errors import bad_request

OPERATORS = frozenset({"equals", "not_equals", "contains", "contains_any", "is_set", "is_not_set"})
_BASE_COLUMNS = frozenset({"name", "description"})
_BOOLEAN_TRUE = frozenset({"true", "1"})


@dataclass
class FilterGroup:
    """Normalized filter group."""

    logic: str = "AND"
    rules: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class ValueTable:
    """Where a record kind keeps its dynamic field values.

    Attributes:
        table: Field-value table name.
        record_column: Column in ``table`` referencing the record.
        field_table: Field definition table name.
        field_column: Column in ``table`` referencing the field definition.
    """

    table: str
    record_column: str
    field_table: str
    field_column: str = "field_id"


def normalize_filters(value: Any) -> FilterGroup:
    """Coerce a stored or submitted filter payload into a :class:`FilterGroup`."""
    if isinstance(value, list):
        return FilterGroup("AND", list(value))
    if isinstance(value, dict):
        logic = "OR" if value.get("logic") == "OR" else "AND"
        rules = value.get("rules")
        return FilterGroup(logic, list(rules) if isinstance(rules, list) else [])
    return FilterGroup()


def parse_filters_param(raw: str | None) -> FilterGroup | None:
    """Parse the ``filters`` query parameter (JSON text)."""
    if raw is None or raw == "":
        return None
    try:
        return normalize_filters(json.loads(raw))
    except ValueError as exc:
        raise bad_request("Invalid filters payload.") from exc


def parse_field_keys(raw: str | None) -> list[str]:
    """Split the comma-separated ``field_keys`` query parameter."""
    if not raw:
        return []
    return [key.strip() for key in raw.split(",") if key.strip()]


def finite_number(value: Any) -> float | None:
    """Return ``value`` as a finite float, else ``None``."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _value_column(field_type: str) -> str:
    if field_type == "BOOLEAN":
        return "value_boolean"
    if field_type == "NUMBER":
        return "value_number"
    return "value_string"


def _coerce(field_type: str, raw: Any, number_validator: Callable[[Any], float | None]) -> Any:
    if field_type == "BOOLEAN":
        return 1 if str(raw).lower() in _BOOLEAN_TRUE else 0
    if field_type == "NUMBER":
        return number_validator(raw)
    return None if raw is None else str(raw)


def _base_clause(alias: str, column: str, operator: str, value: Any) -> tuple[str, list[Any]] | None:
    target = f"{alias}.{column}"
    if operator == "equals":
        return f"{target} = ?", [str(value)]
    if operator == "not_equals":
        return f"({target} IS NULL OR {target} <> ?)", [str(value)]
    if operator == "contains":
        return f"INSTR(LOWER({target}), LOWER(?)) > 0", [str(value)]
    if operator == "contains_any":
        values = [str(item) for item in value] if isinstance(value, list) else [str(value)]
        if not values:
            return None
        return f"{target} IN ({', '.join('?' for _ in values)})", values
    if operator == "is_set":
        return f"({target} IS NOT NULL AND {target} <> '')", []
    if operator == "is_not_set":
        return f"({target} IS NULL OR {target} = '')", []
    return None


def _field_clause(
    alias: str,
    values: ValueTable,
    field_def: dict[str, Any],
    operator: str,
    raw: Any,
    number_validator: Callable[[Any], float | None],
) -> tuple[str, list[Any]] | None:
    field_type = field_def["field_type"]
    column = _value_column(field_type)
    base = (
        f"SELECT 1 FROM {values.table} fv "
        f"WHERE fv.{values.record_column} = {alias}.id AND fv.{values.field_column} = ?"
    )
    params: list[Any] = [field_def["id"]]

    if operator == "is_set":
        return f"EXISTS ({base} AND fv.{column} IS NOT NULL)", params
    if operator == "is_not_set":
        return f"NOT EXISTS ({base} AND fv.{column} IS NOT NULL)", params

    if operator == "contains_any":
        items = raw if isinstance(raw, list) else [raw]
        coerced = [_coerce(field_type, item, number_validator) for item in items]
        coerced = [item for item in coerced if item is not None]
        if not coerced:
            return None
        marks = ", ".join("?" for _ in coerced)
        return f"EXISTS ({base} AND fv.{column} IN ({marks}))", params + coerced

    if operator == "contains":
        if field_type in ("BOOLEAN", "NUMBER"):
            return None
        return (
            f"EXISTS ({base} AND INSTR(LOWER(fv.{column}), LOWER(?)) > 0)",
            params + [str(raw)],
        )

    value = _coerce(field_type, raw, number_validator)
    if value is None:
        return None
    if operator == "equals":
        return f"EXISTS ({base} AND fv.{column} = ?)", params + [value]
    if operator == "not_equals":
        return f"EXISTS ({base} AND fv.{column} <> ?)", params + [value]
    return None


def build_where_clause(
    group: FilterGroup,
    field_defs: dict[str, dict[str, Any]],
    values: ValueTable,
    *,
    alias: str,
    number_validator: Callable[[Any], float | None] = finite_number,
) -> tuple[str, list[Any]] | None:
    """Compile ``group`` into ``(sql, params)``.

    Args:
        group: Normalized filter group.
        field_defs: Field definitions keyed by ``field_key``; each needs ``id``
            and ``field_type``.
        values: Value table layout for the record kind.
        alias: SQL alias of the record table in the outer query.
        number_validator: Parser for NUMBER rule values; ``None`` drops the rule.

    Returns:
        ``None`` when no rule produced a clause.
    """
    clauses: list[str] = []
    params: list[Any] = []
    for rule in group.rules:
        if not isinstance(rule, dict):
            continue
        field_key = rule.get("field_key")
        operator = rule.get("operator")
        if operator not in OPERATORS or not isinstance(field_key, str):
            continue
        if field_key in _BASE_COLUMNS:
            compiled = _base_clause(alias, field_key, operator, rule.get("value"))
        elif field_key in field_defs:
            compiled = _field_clause(
                alias, values, field_defs[field_key], operator, rule.get("value"), number_validator
            )
        else:
            compiled = None
        if compiled is None:
            continue
        clauses.append(compiled[0])
        params.extend(compiled[1])

    if not clauses:
        return None
    joiner = " OR " if group.logic == "OR" else " AND "
    return f"({joiner.join(clauses)})", params
