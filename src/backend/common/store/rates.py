from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from .errors import ValidationError
from .schema import CURRENCY_SETTINGS, EXCHANGE_RATES

if TYPE_CHECKING:
    from .store import RelationalStore

ONE = Decimal("1")


def _latest_direct(store: "RelationalStore", from_id: str, to_id: str) -> Optional[Decimal]:
    candidates = [
        rate
        for rate in store.active(EXCHANGE_RATES)
        if rate.from_currency_id == from_id and rate.to_currency_id == to_id
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda r: (r.date, r.id)).rate


def _pair_rate(store: "RelationalStore", from_id: str, to_id: str) -> Optional[Decimal]:
    direct = _latest_direct(store, from_id, to_id)
    if direct is not None:
        return direct
    reverse = _latest_direct(store, to_id, from_id)
    if reverse is not None:
        return ONE / reverse
    return None


def base_currency_id(store: "RelationalStore", user_id: str = "default") -> Optional[str]:
    for settings in store.records(CURRENCY_SETTINGS):
        if settings.user_id == user_id:
            return settings.base_currency_id
    return None


def find_rate(store: "RelationalStore", from_id: str, to_id: str) -> Optional[Decimal]:
    """Units of `to_id` per one unit of `from_id`, or None when no path exists.

    Lookup order: identity, most recent direct rate, inverse of the most recent reverse rate,
    then a cross rate through the base currency.
    """
    if from_id == to_id:
        return ONE
    rate = _pair_rate(store, from_id, to_id)
    if rate is not None:
        return rate

    base_id = base_currency_id(store)
    if base_id is None or base_id in (from_id, to_id):
        return None
    to_base = _pair_rate(store, from_id, base_id)
    from_base = _pair_rate(store, base_id, to_id)
    if to_base is None or from_base is None:
        return None
    return to_base * from_base


def convert_amount(store: "RelationalStore", amount: Decimal, from_id: str, to_id: str) -> Decimal:
    rate = find_rate(store, from_id, to_id)
    if rate is None:
        raise ValidationError(
            f"No exchange rate from {from_id} to {to_id}",
            table=EXCHANGE_RATES,
            field="rate",
        )
    return amount * rate
