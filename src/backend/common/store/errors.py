from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional


class StoreError(Exception):
    """Base class for every violation raised by the relational store."""

    def __init__(self, message: str, *, table: str = "", field: str = "", record_id: str = ""):
        super().__init__(message)
        self.message = message
        self.table = table
        self.field = field
        self.record_id = record_id


class ValidationError(StoreError):
    """A required field is missing or a field value is invalid."""


class InvalidReferenceError(StoreError):
    """A foreign key is set but does not resolve to a record in its target table."""

    def __init__(self, *, table: str, field: str, value: Any, target_table: str, target_field: str = "id"):
        super().__init__(
            f"{table}.{field} references {target_table}.{target_field} = {value!r}, which does not exist",
            table=table,
            field=field,
        )
        self.value = value
        self.target_table = target_table
        self.target_field = target_field


class DuplicateKeyError(StoreError):
    """A unique key would be shared by two records of the same table."""

    def __init__(self, *, table: str, fields: Iterable[str], values: Iterable[Any], existing_id: str):
        fields = tuple(fields)
        values = tuple(values)
        shown = ", ".join(f"{f}={v!r}" for f, v in zip(fields, values))
        super().__init__(
            f"{table} already contains {shown} (record {existing_id})",
            table=table,
            field=fields[0] if fields else "",
        )
        self.fields = fields
        self.values = values
        self.existing_id = existing_id


@dataclass(frozen=True)
class Dependent:
    table: str
    field: str
    record_id: str


class ReferentialIntegrityError(StoreError):
    """A delete is blocked because other records still reference the target."""

    def __init__(self, *, table: str, record_id: str, dependents: Iterable[Dependent]):
        dependents = tuple(dependents)
        counts: dict[str, int] = {}
        for dep in dependents:
            key = f"{dep.table}.{dep.field}"
            counts[key] = counts.get(key, 0) + 1
        shown = ", ".join(f"{key} ({n})" for key, n in sorted(counts.items()))
        super().__init__(
            f"Cannot delete {table} {record_id}: still referenced by {shown}",
            table=table,
            record_id=record_id,
        )
        self.dependents = dependents


class RecordNotFoundError(StoreError):
    def __init__(self, *, table: str, record_id: Optional[str]):
        super().__init__(f"{table} record {record_id!r} not found", table=table, record_id=record_id or "")
