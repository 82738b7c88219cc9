import datetime as dt
import json
from decimal import Decimal
from unittest.mock import Mock, patch

from common.store.rates import find_rate
from common.store.schema import EXCHANGE_RATES
from connectors.rates.client import RateFetchStatus
from connectors.rates.config import RatesConfig
from connectors.rates.refresh import refresh_rates


def _response(payload) -> Mock:
    response = Mock()
    response.read.return_value = json.dumps(payload).encode("utf-8")
    response.__enter__ = Mock(return_value=response)
    response.__exit__ = Mock(return_value=False)
    return response


CONFIG = RatesConfig(api_url="https://rates.example", max_attempts=1)


def test_refresh_stores_rates_for_known_currencies(store, currency_id):
    payload = {"date": "2024-01-30", "eur": {"usd": 1.08, "gbp": 0.85, "jpy": 160.1, "eur": 1}}
    with patch("connectors.rates.client.urlopen", return_value=_response(payload)):
        result, stored = refresh_rates(store, CONFIG, "EUR")

    assert result.ok
    assert sorted(r.to_currency_id for r in stored) == sorted([currency_id("GBP"), currency_id("USD")])
    assert all(r.source == "live" and r.date == dt.date(2024, 1, 30) for r in stored)
    rate = find_rate(store, currency_id("USD"), currency_id("EUR"))
    assert rate is not None and abs(rate - Decimal(1) / Decimal("1.08")) < Decimal("0.000001")


def test_refresh_replaces_previous_live_rates(store):
    first = {"date": "2024-01-29", "eur": {"usd": 1.07}}
    second = {"date": "2024-01-30", "eur": {"usd": 1.09}}
    with patch("connectors.rates.client.urlopen", return_value=_response(first)):
        refresh_rates(store, CONFIG, "EUR")
    with patch("connectors.rates.client.urlopen", return_value=_response(second)):
        refresh_rates(store, CONFIG, "EUR")

    rates = store.records(EXCHANGE_RATES)
    assert [r.rate for r in rates] == [Decimal("1.09")]


def test_failed_fetch_leaves_store_untouched(store):
    with patch("connectors.rates.client.urlopen", return_value=_response({"nope": 1})):
        result, stored = refresh_rates(store, CONFIG, "EUR")

    assert result.status == RateFetchStatus.FAILED
    assert stored == []
    assert store.count(EXCHANGE_RATES) == 0


def test_unknown_base_currency_stores_nothing(store):
    with patch("connectors.rates.client.urlopen", return_value=_response({"chf": {"eur": 1.05}})):
        result, stored = refresh_rates(store, CONFIG, "CHF")

    assert result.ok
    assert stored == []


def test_missing_payload_date_uses_today(store):
    with patch("connectors.rates.client.urlopen", return_value=_response({"eur": {"gbp": 0.86}})):
        _, stored = refresh_rates(store, CONFIG, "EUR", today=dt.date(2024, 2, 1))

    assert [r.date for r in stored] == [dt.date(2024, 2, 1)]
