import os
import sys


# Ensure `src/backend` is on sys.path so imports like `import common...` work,
# even when pytest's rootdir is the repository root.
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

import datetime as dt
from decimal import Decimal

import pytest

from common.store.schema import (
    ACCOUNT_TYPES,
    CURRENCIES,
    SUBCATEGORIES,
    TRANSACTION_TYPES,
)
from common.store.store import RelationalStore


FIXED_NOW = dt.datetime(2024, 1, 31, 12, 0, tzinfo=dt.timezone.utc)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def store(clock) -> RelationalStore:
    return RelationalStore.with_defaults(clock=clock)


@pytest.fixture
def empty_store(clock) -> RelationalStore:
    return RelationalStore(clock=clock)


@pytest.fixture
def currency_id(store):
    def _lookup(code: str = "EUR") -> str:
        return store.find_by(CURRENCIES, code=code)[0].id

    return _lookup


@pytest.fixture
def subcategory_id(store):
    def _lookup(name: str = "Groceries") -> str:
        return store.find_by(SUBCATEGORIES, name=name)[0].id

    return _lookup


@pytest.fixture
def category_id(store):
    def _lookup(name: str = "Expenses") -> str:
        return store.find_by(TRANSACTION_TYPES, name=name)[0].id

    return _lookup


@pytest.fixture
def make_account(store, currency_id):
    def _make(*, name: str = "Checking", initial_balance="0", currency: str = "EUR", **extra):
        account_type_id = store.records(ACCOUNT_TYPES)[0].id
        return store.add_account(
            {
                "name": name,
                "account_type_id": account_type_id,
                "currency_id": currency_id(currency),
                "initial_balance": Decimal(str(initial_balance)),
                **extra,
            }
        )

    return _make


@pytest.fixture
def make_transaction(store):
    def _make(*, account_id: str, amount="-10.00", date=dt.date(2024, 1, 15), description="Coffee Shop", **extra):
        return store.add_transaction(
            {
                "date": date,
                "description": description,
                "amount": Decimal(str(amount)),
                "account_id": account_id,
                **extra,
            }
        )

    return _make


@pytest.fixture
def make_bank(store):
    def _make(*, name: str = "Test Bank", field_mapping=None, **settings):
        mapping = field_mapping or {
            "date": "Date",
            "description": "Description",
            "amount": "Amount",
        }
        return store.add_bank_configuration({"name": name, "field_mapping": mapping, "settings": settings})

    return _make
