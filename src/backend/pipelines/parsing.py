from __future__ import annotations

import csv
import datetime as dt
import io
import re
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple

from common.store.models import AmountHandling, BankSettings, DateFormat


class ParseError(ValueError):
    def __init__(self, field: str, raw: str, message: str):
        super().__init__(message)
        self.field = field
        self.raw = raw


# Positions of (day, month, year) in the split date text, per format.
_DATE_LAYOUTS: Dict[DateFormat, Tuple[str, Tuple[int, int, int]]] = {
    DateFormat.MM_DD_YYYY: ("/", (1, 0, 2)),
    DateFormat.DD_MM_YYYY: ("/", (0, 1, 2)),
    DateFormat.YYYY_MM_DD: ("-", (2, 1, 0)),
    DateFormat.MM_DD_YYYY_DASH: ("-", (1, 0, 2)),
    DateFormat.DD_MM_YYYY_DASH: ("-", (0, 1, 2)),
}

_QUOTES = "\"'"
_AMOUNT_NOISE = re.compile(r"[^0-9.\-]")


def _clean(text: Optional[str]) -> str:
    if text is None:
        return ""
    return str(text).strip().strip(_QUOTES).strip()


def parse_date_strict(text: Optional[str], date_format: DateFormat) -> dt.date:
    cleaned = _clean(text)
    if not cleaned:
        raise ParseError("date", cleaned, "date is empty")

    separator, (day_at, month_at, year_at) = _DATE_LAYOUTS[DateFormat(date_format)]
    parts = cleaned.split(separator)
    if len(parts) != 3 or not all(p.strip().isdigit() for p in parts):
        raise ParseError("date", cleaned, f"{cleaned!r} does not match {DateFormat(date_format).value}")
    if len(parts[year_at].strip()) != 4:
        raise ParseError("date", cleaned, f"{cleaned!r} needs a four-digit year")

    try:
        return dt.date(int(parts[year_at]), int(parts[month_at]), int(parts[day_at]))
    except ValueError as exc:
        raise ParseError("date", cleaned, f"{cleaned!r} is not a valid date: {exc}") from exc


def parse_date(text: Optional[str], date_format: DateFormat) -> Optional[dt.date]:
    """Parse `text` per `date_format`; unparsable or out-of-range input yields None."""
    try:
        return parse_date_strict(text, date_format)
    except ParseError:
        return None


def parse_amount_strict(text: Optional[str], *, field: str = "amount") -> Decimal:
    """
    Parse a bank-formatted amount.

    Currency symbols, thousands separators and spaces are dropped; `(12.50)` reads as -12.50.
    Blank input is zero.
    """
    cleaned = _clean(text)
    if not cleaned:
        return Decimal("0")

    negative = cleaned.startswith("(") and cleaned.endswith(")")
    digits = _AMOUNT_NOISE.sub("", cleaned)
    if not digits or digits in ("-", ".", "-."):
        raise ParseError(field, cleaned, f"{cleaned!r} is not a number")
    try:
        value = Decimal(digits)
    except InvalidOperation:
        raise ParseError(field, cleaned, f"{cleaned!r} is not a number") from None
    if not value.is_finite():
        raise ParseError(field, cleaned, f"{cleaned!r} is not a finite number")
    return -abs(value) if negative else value


def parse_amount(text: Optional[str]) -> Decimal:
    try:
        return parse_amount_strict(text)
    except ParseError:
        return Decimal("0")


def resolve_amount(
    handling: AmountHandling,
    *,
    amount: Optional[str] = None,
    debit: Optional[str] = None,
    credit: Optional[str] = None,
) -> Tuple[Decimal, List[ParseError]]:
    """Signed amount for one row plus any parse failures (each failed column counts as zero)."""
    errors: List[ParseError] = []

    def _read(text: Optional[str], field: str) -> Decimal:
        try:
            return parse_amount_strict(text, field=field)
        except ParseError as exc:
            errors.append(exc)
            return Decimal("0")

    if AmountHandling(handling) == AmountHandling.SEPARATE:
        credit_value = _read(credit, "credit")
        debit_value = _read(debit, "debit")
        if credit_value > 0:
            return abs(credit_value), errors
        return -abs(debit_value), errors

    return _read(amount, "amount"), errors


def read_rows(text: str, settings: BankSettings) -> List[Dict[str, str]]:
    """Split delimited statement text into rows.

    With a header row each row is keyed by column name; without one, by the column index as a
    string ("0", "1", ...). Blank lines are skipped.
    """
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")), delimiter=settings.delimiter or ",")
    lines = [line for line in reader if any(cell.strip() for cell in line)]
    if not lines:
        return []

    if settings.has_headers:
        header = [name.strip() for name in lines[0]]
        return [
            {name: (line[i] if i < len(line) else "") for i, name in enumerate(header)}
            for line in lines[1:]
        ]
    return [{str(i): cell for i, cell in enumerate(line)} for line in lines]
