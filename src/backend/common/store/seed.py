"""Reference data a fresh store starts with."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List, Tuple

import structlog

from .schema import (
    ACCOUNT_TYPES,
    CURRENCIES,
    CURRENCY_SETTINGS,
    SUBCATEGORIES,
    TRANSACTION_GROUPS,
    TRANSACTION_TYPES,
)

if TYPE_CHECKING:
    from .store import RelationalStore

logger = structlog.get_logger(__name__)

BASE_CURRENCY = "EUR"

CURRENCIES_SEED: Tuple[Tuple[str, str, str], ...] = (
    ("EUR", "Euro", "€"),
    ("USD", "US Dollar", "$"),
    ("GBP", "British Pound", "£"),
)

ACCOUNT_TYPES_SEED: Tuple[Tuple[str, str, str, str], ...] = (
    ("Asset", "Current Asset", "Cash and bank accounts", "Debit"),
    ("Asset", "Investment", "Long-term investments and securities", "Debit"),
    ("Asset", "Fixed Asset", "Long-term physical assets", "Debit"),
    ("Liability", "Current Liability", "Credit cards and bills due within a year", "Credit"),
    ("Liability", "Long-term Liability", "Mortgages and loans", "Credit"),
    ("Equity", "Owner's Equity", "Net worth", "Credit"),
)

# transaction type -> group -> subcategories
CLASSIFICATION_SEED: Dict[str, Dict[str, List[str]]] = {
    "Income": {
        "Earned Income": ["Salary/Wages", "Freelance/Consulting"],
        "Passive Income": ["Investment Returns", "Rental Income"],
    },
    "Expenses": {
        "Essential Expenses": ["Groceries", "Rent/Mortgage", "Utilities", "Transportation"],
        "Lifestyle Expenses": ["Dining Out", "Entertainment", "Shopping"],
    },
    "Transfer": {
        "Internal Transfers": ["Account Transfer", "Credit Card Payment"],
    },
    "Investment": {
        "Investments": ["Fund Investment", "Stock Purchase", "Investment Fees"],
    },
}


def seed_reference_data(store: "RelationalStore", *, base_currency: str = BASE_CURRENCY) -> None:
    """Insert currencies, account types and the transaction classification tree."""
    currency_ids = {}
    for code, name, symbol in CURRENCIES_SEED:
        currency_ids[code] = store.insert(CURRENCIES, {"code": code, "name": name, "symbol": symbol}).id
    store.insert(
        CURRENCY_SETTINGS,
        {"user_id": "default", "base_currency_id": currency_ids[base_currency]},
    )

    for type_, subtype, description, normal_balance in ACCOUNT_TYPES_SEED:
        store.insert(
            ACCOUNT_TYPES,
            {"type": type_, "subtype": subtype, "description": description, "normal_balance": normal_balance},
        )

    for type_name, groups in CLASSIFICATION_SEED.items():
        type_id = store.insert(TRANSACTION_TYPES, {"name": type_name}).id
        for group_name, subcategories in groups.items():
            group_id = store.insert(TRANSACTION_GROUPS, {"name": group_name, "transaction_type_id": type_id}).id
            for sub_name in subcategories:
                store.insert(SUBCATEGORIES, {"name": sub_name, "group_id": group_id})

    logger.info("reference_data_seeded", base_currency=base_currency)
