import datetime as dt
from decimal import Decimal

import pytest

from common.store.errors import ValidationError
from common.store.rates import convert_amount, find_rate


@pytest.fixture
def add_rate(store, currency_id):
    def _add(from_code: str, to_code: str, rate: str, day: int = 1):
        return store.add_exchange_rate(
            {
                "from_currency_id": currency_id(from_code),
                "to_currency_id": currency_id(to_code),
                "rate": Decimal(rate),
                "date": dt.date(2024, 1, day),
            }
        )

    return _add


def test_same_currency_rate_is_one(store, currency_id):
    assert find_rate(store, currency_id("USD"), currency_id("USD")) == Decimal("1")


def test_most_recent_direct_rate_wins(store, currency_id, add_rate):
    add_rate("EUR", "USD", "1.05", day=1)
    add_rate("EUR", "USD", "1.10", day=15)
    add_rate("EUR", "USD", "1.07", day=7)
    assert find_rate(store, currency_id("EUR"), currency_id("USD")) == Decimal("1.10")


def test_inverse_rate_is_used_when_only_reverse_exists(store, currency_id, add_rate):
    add_rate("EUR", "USD", "1.25")
    assert find_rate(store, currency_id("USD"), currency_id("EUR")) == Decimal("0.8")


def test_cross_rate_goes_through_base_currency(store, currency_id, add_rate):
    add_rate("EUR", "USD", "1.10")
    add_rate("EUR", "GBP", "0.88")
    rate = find_rate(store, currency_id("USD"), currency_id("GBP"))
    assert rate == (Decimal("1") / Decimal("1.10")) * Decimal("0.88")


def test_missing_rate_returns_none_and_convert_raises(store, currency_id):
    assert find_rate(store, currency_id("USD"), currency_id("GBP")) is None
    with pytest.raises(ValidationError):
        convert_amount(store, Decimal("10"), currency_id("USD"), currency_id("GBP"))


def test_convert_amount_applies_rate(store, currency_id, add_rate):
    add_rate("EUR", "USD", "1.10")
    assert convert_amount(store, Decimal("100"), currency_id("EUR"), currency_id("USD")) == Decimal("110.00")
