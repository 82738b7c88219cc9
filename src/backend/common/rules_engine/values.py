from __future__ import annotations

import datetime as dt
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def coerce_decimal(value: Any) -> Optional[Decimal]:
    """Best-effort numeric coercion; returns None for blanks, booleans and non-finite values."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, float):
        number = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            number = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    if not number.is_finite():
        return None
    return number


def coerce_date(value: Any) -> Optional[dt.date]:
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if len(text) < 10:
            return None
        try:
            return dt.date.fromisoformat(text[:10])
        except ValueError:
            return None
    return None


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dt.date):
        return value.isoformat()
    return str(value)


class RecordView:
    """Typed read access over a candidate's field bag."""

    def __init__(self, fields: Mapping[str, Any]):
        self._fields = fields

    def has(self, field: str) -> bool:
        return field in self._fields

    def raw(self, field: str) -> Any:
        return self._fields.get(field)

    def is_blank(self, field: str) -> bool:
        return is_blank(self._fields.get(field))

    def text(self, field: str) -> Optional[str]:
        if field not in self._fields:
            return None
        return as_text(self._fields[field])

    def number(self, field: str) -> Optional[Decimal]:
        return coerce_decimal(self._fields.get(field))

    def date(self, field: str) -> Optional[dt.date]:
        return coerce_date(self._fields.get(field))
