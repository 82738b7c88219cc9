from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple, Type

from .models import (
    Account,
    AccountType,
    BankConfiguration,
    Currency,
    CurrencySettings,
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

CURRENCIES = "currencies"
CURRENCY_SETTINGS = "currency_settings"
EXCHANGE_RATES = "exchange_rates"
ACCOUNT_TYPES = "account_types"
ACCOUNTS = "accounts"
TRANSACTION_TYPES = "transaction_types"
TRANSACTION_GROUPS = "transaction_groups"
SUBCATEGORIES = "subcategories"
PAYEES = "payees"
PAYERS = "payers"
TAGS = "tags"
BANK_CONFIGURATIONS = "bank_configurations"
PROCESSING_RULES = "processing_rules"
TRANSACTIONS = "transactions"


@dataclass(frozen=True)
class ForeignKey:
    table: str
    field: str
    target_table: str
    target_field: str = "id"
    # Optional keys may be left empty on insert. A populated key always blocks deleting its target.
    optional: bool = False


@dataclass(frozen=True)
class TableSpec:
    name: str
    id_prefix: str
    model: Type[Record]
    required: Tuple[str, ...] = ()
    unique: Tuple[Tuple[str, ...], ...] = ()


class SchemaRegistry:
    def __init__(self):
        self._tables: Dict[str, TableSpec] = {}
        self._foreign_keys: List[ForeignKey] = []

    def register_table(self, spec: TableSpec) -> None:
        if spec.name in self._tables:
            raise ValueError(f"Duplicate table registered: {spec.name}")
        if any(t.id_prefix == spec.id_prefix for t in self._tables.values()):
            raise ValueError(f"Duplicate id prefix registered: {spec.id_prefix}")
        self._tables[spec.name] = spec

    def register_foreign_key(self, fk: ForeignKey) -> None:
        for name in (fk.table, fk.target_table):
            if name not in self._tables:
                raise ValueError(f"Foreign key {fk.table}.{fk.field} names unknown table '{name}'")
        if fk.field not in self._tables[fk.table].model.model_fields:
            raise ValueError(f"Foreign key field {fk.table}.{fk.field} is not declared on its model")
        self._foreign_keys.append(fk)

    def table(self, name: str) -> TableSpec:
        try:
            return self._tables[name]
        except KeyError:
            raise KeyError(f"Unknown table '{name}'") from None

    def has_table(self, name: str) -> bool:
        return name in self._tables

    def table_names(self) -> List[str]:
        return list(self._tables.keys())

    def foreign_keys_from(self, table: str) -> List[ForeignKey]:
        return [fk for fk in self._foreign_keys if fk.table == table]

    def foreign_keys_into(self, table: str) -> List[ForeignKey]:
        return [fk for fk in self._foreign_keys if fk.target_table == table]

    def foreign_keys(self) -> Iterable[ForeignKey]:
        return tuple(self._foreign_keys)


def build_default_schema() -> SchemaRegistry:
    schema = SchemaRegistry()

    for spec in (
        TableSpec(CURRENCIES, "CUR", Currency, required=("code", "name"), unique=(("code",),)),
        TableSpec(
            CURRENCY_SETTINGS,
            "CS",
            CurrencySettings,
            required=("user_id", "base_currency_id"),
            unique=(("user_id",),),
        ),
        TableSpec(
            EXCHANGE_RATES,
            "ER",
            ExchangeRate,
            required=("from_currency_id", "to_currency_id", "rate", "date"),
        ),
        TableSpec(ACCOUNT_TYPES, "AT", AccountType, required=("type",)),
        TableSpec(ACCOUNTS, "ACC", Account, required=("name", "account_type_id", "currency_id")),
        TableSpec(TRANSACTION_TYPES, "TT", TransactionType, required=("name",), unique=(("name",),)),
        TableSpec(TRANSACTION_GROUPS, "TG", TransactionGroup, required=("name", "transaction_type_id")),
        TableSpec(SUBCATEGORIES, "SUB", Subcategory, required=("name", "group_id")),
        TableSpec(PAYEES, "PAYEE", Payee, required=("name",)),
        TableSpec(PAYERS, "PAYER", Payer, required=("name",)),
        TableSpec(TAGS, "TAG", Tag, required=("name",)),
        TableSpec(BANK_CONFIGURATIONS, "BANK", BankConfiguration, required=("name",), unique=(("name",),)),
        TableSpec(PROCESSING_RULES, "RULE", ProcessingRule, required=("name", "bank_config_id")),
        TableSpec(TRANSACTIONS, "TXN", Transaction, required=("date", "description", "amount", "account_id")),
    ):
        schema.register_table(spec)

    for fk in (
        ForeignKey(CURRENCY_SETTINGS, "base_currency_id", CURRENCIES),
        ForeignKey(EXCHANGE_RATES, "from_currency_id", CURRENCIES),
        ForeignKey(EXCHANGE_RATES, "to_currency_id", CURRENCIES),
        ForeignKey(ACCOUNTS, "account_type_id", ACCOUNT_TYPES),
        ForeignKey(ACCOUNTS, "currency_id", CURRENCIES),
        ForeignKey(TRANSACTION_GROUPS, "transaction_type_id", TRANSACTION_TYPES),
        ForeignKey(SUBCATEGORIES, "group_id", TRANSACTION_GROUPS),
        ForeignKey(PROCESSING_RULES, "bank_config_id", BANK_CONFIGURATIONS),
        ForeignKey(TRANSACTIONS, "account_id", ACCOUNTS),
        ForeignKey(TRANSACTIONS, "destination_account_id", ACCOUNTS, optional=True),
        ForeignKey(TRANSACTIONS, "category_id", TRANSACTION_TYPES, optional=True),
        ForeignKey(TRANSACTIONS, "subcategory_id", SUBCATEGORIES, optional=True),
        ForeignKey(TRANSACTIONS, "group_id", TRANSACTION_GROUPS, optional=True),
        ForeignKey(TRANSACTIONS, "currency_id", CURRENCIES, optional=True),
        ForeignKey(TRANSACTIONS, "payee_id", PAYEES, optional=True),
        ForeignKey(TRANSACTIONS, "payer_id", PAYERS, optional=True),
        ForeignKey(TRANSACTIONS, "tag_id", TAGS, optional=True),
    ):
        schema.register_foreign_key(fk)

    return schema


DEFAULT_SCHEMA = build_default_schema()
