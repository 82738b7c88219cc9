"""One-shot field backfills applied to rows loaded from older table snapshots."""

from __future__ import annotations

import datetime as dt
import re
from typing import Any, Callable, Dict, Iterable, List, Mapping

from .schema import ACCOUNTS, TRANSACTIONS

Row = Dict[str, Any]
Backfill = Callable[[Row], None]

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _default(field: str, value: Any) -> Backfill:
    def _apply(row: Row) -> None:
        if row.get(field) is None:
            row[field] = value

    return _apply


def _initial_balance_from_balance(row: Row) -> None:
    if row.get("initial_balance") is None:
        row["initial_balance"] = row.get("balance") or 0


_COMMON: List[Backfill] = [_default("is_active", True)]
_BY_TABLE: Dict[str, List[Backfill]] = {
    ACCOUNTS: [_initial_balance_from_balance],
    TRANSACTIONS: [_default("reconciled", False)],
}


def backfill_rows(table: str, rows: Iterable[Mapping[str, Any]], *, now: dt.datetime) -> List[Row]:
    """Return copies of `rows` with snake_case keys and missing fields defaulted."""
    steps = [*_COMMON, _default("created_at", now), *_BY_TABLE.get(table, [])]
    out: List[Row] = []
    for raw in rows:
        row = {snake_case(str(key)): value for key, value in raw.items()}
        for step in steps:
            step(row)
        out.append(row)
    return out
