"""
In-memory relational store: typed tables, foreign-key integrity and derived account balances.

Construct a `RelationalStore` explicitly (or `RelationalStore.with_defaults()` for seeded
reference data) and pass it to every consumer.
"""

from .errors import (
    Dependent,
    DuplicateKeyError,
    InvalidReferenceError,
    RecordNotFoundError,
    ReferentialIntegrityError,
    StoreError,
    ValidationError,
)
from .models import (
    Account,
    AccountType,
    AmountHandling,
    BankConfiguration,
    BankSettings,
    Category,
    Currency,
    CurrencySettings,
    DateFormat,
    ExchangeRate,
    Payee,
    Payer,
    ProcessingRule,
    Record,
    Subcategory,
    Tag,
    Transaction,
    TransactionGroup,
    TransactionType,
)
from .rates import convert_amount, find_rate
from .schema import DEFAULT_SCHEMA, ForeignKey, SchemaRegistry, TableSpec, build_default_schema
from .store import BalanceDiscrepancy, RelationalStore, RelationshipIssue

__all__ = [
    "Account",
    "AccountType",
    "AmountHandling",
    "BalanceDiscrepancy",
    "BankConfiguration",
    "BankSettings",
    "Category",
    "Currency",
    "CurrencySettings",
    "DEFAULT_SCHEMA",
    "DateFormat",
    "Dependent",
    "DuplicateKeyError",
    "ExchangeRate",
    "ForeignKey",
    "InvalidReferenceError",
    "Payee",
    "Payer",
    "ProcessingRule",
    "Record",
    "RecordNotFoundError",
    "ReferentialIntegrityError",
    "RelationalStore",
    "RelationshipIssue",
    "SchemaRegistry",
    "StoreError",
    "Subcategory",
    "TableSpec",
    "Tag",
    "Transaction",
    "TransactionGroup",
    "TransactionType",
    "ValidationError",
    "build_default_schema",
    "convert_amount",
    "find_rate",
]
