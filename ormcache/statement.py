"""Query statements and the WHERE-clause analysis the cache relies on."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ormcache.util import _format_value

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


@dataclass
class Eq:
    """A ``column = value`` condition."""

    column: Any
    value: Any


@dataclass
class In:
    """A ``column IN (values)`` condition."""

    column: Any
    values: list = field(default_factory=list)


@dataclass
class Expr:
    """A raw SQL condition with its bound variables."""

    sql: str
    vars: list = field(default_factory=list)


@dataclass
class Field:
    """A model field; ``name`` is the attribute, ``db_name`` the column."""

    name: str
    db_name: str = ""
    primary_key: bool = False

    def __post_init__(self) -> None:
        if not self.db_name:
            self.db_name = self.name


@dataclass
class Schema:
    """The table a model maps to and its fields."""

    table: str
    fields: list[Field] = field(default_factory=list)


@dataclass
class Statement:
    """One ORM operation: its table, WHERE conditions, destination and result.

    ``where`` is None when the statement has no WHERE clause at all.
    """

    schema: Schema | None = None
    table: str = ""
    where: list | None = None
    dest: Any = None
    sql: str = ""
    vars: list = field(default_factory=list)
    rows_affected: int = 0
    error: BaseException | None = None
    settings: dict[str, Any] = field(default_factory=dict)

    def table_name(self) -> str:
        """Return the schema's table if there is a schema, else the raw table."""
        if self.schema is not None:
            return self.schema.table
        return self.table


def _normalize(sql: str) -> str:
    return sql.lower().replace(" ", "")


def _parse_int(text: str) -> int | None:
    if not _INT_PATTERN.fullmatch(text):
        return None
    number = int(text)
    if not _INT64_MIN <= number <= _INT64_MAX:
        return None
    return number


def _column_name(column: Any) -> str:
    if isinstance(column, str):
        return column
    name = getattr(column, "name", None)
    return name if isinstance(name, str) else ""


def _primary_field(schema: Schema | None, *, last: bool = False) -> Field | None:
    if schema is None:
        return None
    primaries = [f for f in schema.fields if f.primary_key]
    if not primaries:
        return None
    return primaries[-1] if last else primaries[0]


def _is_basic(value: Any) -> bool:
    return isinstance(value, (bool, int, float, complex, str))


def _is_zero(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, (bool, int, float, complex, str, bytes)) and not value


def _field_value(model_field: Field, obj: Any) -> Any:
    if isinstance(obj, Mapping):
        if model_field.name in obj:
            return obj[model_field.name]
        return obj.get(model_field.db_name)
    return getattr(obj, model_field.name, None)


def _strings_from_var(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [_format_value(item) for item in value]
    if isinstance(value, str):
        return [value]
    if isinstance(value, int) and not isinstance(value, bool):
        return [str(value)]
    return []


def unique_strings(items: Iterable[str]) -> list[str]:
    """Return the items without duplicates, keeping first-seen order."""
    return list(dict.fromkeys(items))


def expr_type(expr: Expr) -> str:
    """Classify a raw condition as ``"eq"``, ``"in"`` or ``"other"``."""
    sql = _normalize(expr.sql)
    has_connector = "and" in sql or "or" in sql
    if "=" in sql and not has_connector:
        fields = sql.split("=")
        if len(fields) == 2 and (fields[1] == "?" or _parse_int(fields[1]) is not None):
            return "eq"
    elif "in" in sql and not has_connector:
        fields = sql.split("in")
        if len(fields) == 2:
            body = fields[1]
            if len(body) > 1 and body.startswith("(") and body.endswith(")"):
                return "in"
    return "other"


def col_name_from_expr(expr: Expr, ttype: str) -> str:
    """Return the column a classified raw condition refers to."""
    sql = _normalize(expr.sql)
    if ttype == "in":
        return sql.split("in")[0]
    if ttype == "eq":
        return sql.split("=")[0]
    return ""


def primary_keys_from_expr(expr: Expr, ttype: str) -> list[str]:
    """Return the key values named by a classified raw condition."""
    sql = _normalize(expr.sql)
    keys: list[str] = []
    if ttype == "in":
        fields = sql.split("in")
        if len(fields) == 2:
            body = fields[1]
            if len(body) > 1 and body.startswith("(") and body.endswith(")"):
                for item in body[1:-1].split(","):
                    if item == "?":
                        for var in expr.vars:
                            keys.extend(_strings_from_var(var))
                        break
                    number = _parse_int(item)
                    if number is not None:
                        keys.append(str(number))
    elif ttype == "eq":
        fields = sql.split("=")
        if len(fields) == 2:
            if _parse_int(fields[1]) is not None:
                keys.append(fields[1])
            elif fields[1] == "?":
                keys.extend(_format_value(var) for var in expr.vars)
    return keys


def primary_keys_from_where(statement: Statement) -> list[str]:
    """Collect primary key values from Eq, In and simple raw WHERE conditions."""
    if statement.where is None:
        return []
    primary = _primary_field(statement.schema)
    if primary is None:
        return []
    db_name = primary.db_name
    keys: list[str] = []
    for condition in statement.where:
        if isinstance(condition, Eq):
            if _column_name(condition.column) == db_name:
                keys.append(_format_value(condition.value))
        elif isinstance(condition, In):
            if _column_name(condition.column) == db_name:
                keys.extend(_format_value(value) for value in condition.values)
        elif isinstance(condition, Expr):
            ttype = expr_type(condition)
            if ttype in ("in", "eq") and col_name_from_expr(condition, ttype) == db_name:
                keys.extend(primary_keys_from_expr(condition, ttype))
    return unique_strings(keys)


def has_other_clause_except_primary(statement: Statement) -> bool:
    """Tell whether the WHERE clause holds anything besides primary key matches."""
    if statement.where is None:
        return False
    primary = _primary_field(statement.schema, last=True)
    if primary is None:
        return True
    db_name = primary.db_name
    for condition in statement.where:
        if isinstance(condition, Eq):
            if _column_name(condition.column) != db_name:
                return True
        elif isinstance(condition, In):
            if _column_name(condition.column) != db_name:
                return True
        elif isinstance(condition, Expr):
            ttype = expr_type(condition)
            if ttype not in ("in", "eq"):
                return True
            if col_name_from_expr(condition, ttype) != db_name:
                return True
        else:
            return True
    return False


def objects_after_load(statement: Statement) -> tuple[list[str], list[Any]]:
    """Return the primary keys and the objects loaded into the destination.

    Objects whose primary key is unset are left out. Plucked lists of plain
    values give objects but no keys.
    """
    dest = statement.dest
    is_pluck = False
    if isinstance(dest, (list, tuple)):
        values = list(dest)
        is_pluck = bool(values) and all(_is_basic(value) for value in values)
    elif dest is None or _is_basic(dest):
        values = []
    else:
        values = [dest]

    primary = _primary_field(statement.schema)
    keys: list[str] = []
    objects: list[Any] = []
    for value in values:
        if primary is not None and not is_pluck:
            key = _field_value(primary, value)
            if _is_zero(key):
                continue
            keys.append(_format_value(key))
        objects.append(value)
    return keys, objects