"""
Client-side multi-column sort.

A SortSpec is an ordered list of (column, direction) levels; the first level
is the primary key and later levels only break ties left by all earlier ones.
Provider ordering is not trusted, so this is applied after every fetch.

Python's sort is stable: rows that tie on every level keep their input order.
"""
from __future__ import annotations

from enum import Enum
from functools import cmp_to_key
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from src.core.errors import QueryValidationError
from src.query.descriptor import OrderBy

# Entries the interactive picker emits that carry no sort meaning
NO_SORT_TOKEN = "none"
_PLACEHOLDERS = {NO_SORT_TOKEN, "separator1", "separator2", ""}


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SortLevel(BaseModel):
    model_config = ConfigDict(frozen=True)

    column: str
    direction: SortDirection = SortDirection.ASC


class SortSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    levels: tuple[SortLevel, ...] = ()

    @model_validator(mode="after")
    def _columns_unique(self) -> "SortSpec":
        seen: set[str] = set()
        for level in self.levels:
            if level.column in seen:
                raise ValueError(f"Column '{level.column}' appears more than once in the sort spec")
            seen.add(level.column)
        return self

    @property
    def is_empty(self) -> bool:
        return not self.levels

    def describe(self) -> str:
        if self.is_empty:
            return NO_SORT_TOKEN
        return ", ".join(f"{lvl.column} {lvl.direction.value}" for lvl in self.levels)

    @classmethod
    def from_order_bys(cls, order_bys: tuple[OrderBy, ...] | list[OrderBy]) -> "SortSpec":
        return cls(levels=tuple(
            SortLevel(
                column=o.field,
                direction=SortDirection.DESC if o.descending else SortDirection.ASC,
            )
            for o in order_bys
        ))


NO_SORT = SortSpec()


# ── Parsing ──────────────────────────────────────────────

def _parse_text_level(text: str) -> SortLevel:
    """`clicks:desc`, `clicks desc`, `-clicks` or `clicks`."""
    text = text.strip()
    if text.startswith("-"):
        return SortLevel(column=text[1:].strip(), direction=SortDirection.DESC)
    for sep in (":", " "):
        if sep in text:
            column, direction = text.rsplit(sep, 1)
            return SortLevel(column=column.strip(), direction=_parse_direction(direction))
    return SortLevel(column=text)


def _parse_direction(value: Any) -> SortDirection:
    try:
        return SortDirection(str(value).strip().lower())
    except ValueError:
        raise QueryValidationError([f"Unknown sort direction '{value}'. Allowed: asc, desc"]) from None


def _dict_level(item: dict[str, Any]) -> SortLevel:
    direction = _parse_direction(item.get("direction", "asc"))
    try:
        return SortLevel(column=item["column"], direction=direction)
    except ValidationError as exc:
        raise QueryValidationError(
            [f"Invalid sort entry {item!r}: {err['msg']}" for err in exc.errors()]
        ) from None


def parse_sort_spec(raw: Any) -> SortSpec:
    """Build a SortSpec from loose caller input.

    Accepts None, the ``"none"`` sentinel, a comma-separated string, a list
    mixing ``{"column", "direction"}`` dicts, SortLevel objects, text items
    and picker placeholders, or a ``{"columns": [...]}`` wrapper. Any
    ``"none"`` entry turns the whole spec into NO_SORT.
    """
    if raw is None or isinstance(raw, SortSpec):
        return raw or NO_SORT
    if isinstance(raw, dict):
        raw = raw["columns"] if "columns" in raw else [raw]
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, (list, tuple)):
        raise QueryValidationError([f"Unsupported sort spec {raw!r}"])

    items = list(raw)
    if any(isinstance(i, str) and i.strip().lower() == NO_SORT_TOKEN for i in items):
        return NO_SORT

    levels: list[SortLevel] = []
    for item in items:
        if isinstance(item, SortLevel):
            if item.column:
                levels.append(item)
        elif isinstance(item, dict):
            if not item.get("column"):
                continue
            levels.append(_dict_level(item))
        elif isinstance(item, str):
            if item.strip().lower() in _PLACEHOLDERS:
                continue
            levels.append(_parse_text_level(item))
        else:
            raise QueryValidationError([f"Unsupported sort entry {item!r}"])

    columns = [lvl.column for lvl in levels]
    duplicates = sorted({c for c in columns if columns.count(c) > 1})
    if duplicates:
        raise QueryValidationError(
            [f"Column '{c}' appears more than once in the sort spec" for c in duplicates]
        )
    return SortSpec(levels=tuple(levels))


# ── Comparison ───────────────────────────────────────────

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def compare_values(a: Any, b: Any) -> int:
    """Three-way compare: numeric when both are numbers, lexicographic otherwise.

    Missing values (None) sort before any defined value.
    """
    if a is None or b is None:
        if a is None and b is None:
            return 0
        return -1 if a is None else 1
    if not (_is_number(a) and _is_number(b)):
        a, b = str(a), str(b)
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def compare_rows(a: dict[str, Any], b: dict[str, Any], spec: SortSpec) -> int:
    for level in spec.levels:
        result = compare_values(a.get(level.column), b.get(level.column))
        if level.direction is SortDirection.DESC:
            result = -result
        if result != 0:
            return result
    return 0


def sort_rows(rows: list[dict[str, Any]], spec: SortSpec | None) -> list[dict[str, Any]]:
    """Return a new list of *rows* ordered by *spec*; NO_SORT keeps input order."""
    if spec is None or spec.is_empty:
        return list(rows)
    return sorted(rows, key=cmp_to_key(lambda a, b: compare_rows(a, b, spec)))
