from __future__ import annotations

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from common.rules_engine.models import Action, Condition, ConditionLogic, Rule


class Record(BaseModel):
    """Common shape of every stored row; undeclared fields are kept as-is."""

    model_config = ConfigDict(extra="allow")

    id: str
    created_at: dt.datetime
    is_active: bool = True


class Currency(Record):
    code: str
    name: str
    symbol: str = ""
    decimal_places: int = 2
    type: str = "fiat"

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        return value.strip().upper()


class CurrencySettings(Record):
    user_id: str = "default"
    base_currency_id: str
    auto_update_rates: bool = False


class ExchangeRate(Record):
    from_currency_id: str
    to_currency_id: str
    rate: Decimal
    date: dt.date
    source: str = "manual"

    @field_validator("rate")
    @classmethod
    def _positive_rate(cls, value: Decimal) -> Decimal:
        if not value.is_finite() or value <= 0:
            raise ValueError("rate must be a positive number")
        return value


class AccountType(Record):
    type: str
    subtype: str = ""
    description: str = ""
    normal_balance: str = "Debit"


class Account(Record):
    name: str
    account_type_id: str
    currency_id: str
    initial_balance: Decimal = Decimal("0")
    # Derived: initial_balance plus the signed effect of every committed transaction.
    balance: Decimal = Decimal("0")
    description: str = ""
    account_code: str = ""


class TransactionType(Record):
    """Top-level classification (Income, Expenses, Transfer, ...), a.k.a. category."""

    name: str
    description: str = ""


Category = TransactionType


class TransactionGroup(Record):
    name: str
    transaction_type_id: str
    description: str = ""


class Subcategory(Record):
    name: str
    group_id: str
    description: str = ""


class Payee(Record):
    name: str
    notes: str = ""


class Payer(Record):
    name: str
    notes: str = ""


class Tag(Record):
    name: str
    description: str = ""


class Transaction(Record):
    date: dt.date
    description: str
    amount: Decimal
    account_id: str
    destination_account_id: Optional[str] = None
    destination_amount: Optional[Decimal] = None
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    group_id: Optional[str] = None
    currency_id: Optional[str] = None
    payee_id: Optional[str] = None
    payer_id: Optional[str] = None
    tag_id: Optional[str] = None
    reference: str = ""
    notes: str = ""
    reconciled: bool = False
    reconciliation_reference: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def _finite_amount(cls, value: Decimal) -> Decimal:
        if not value.is_finite():
            raise ValueError("amount must be a finite number")
        return value


class DateFormat(str, Enum):
    MM_DD_YYYY = "MM/DD/YYYY"
    DD_MM_YYYY = "DD/MM/YYYY"
    YYYY_MM_DD = "YYYY-MM-DD"
    MM_DD_YYYY_DASH = "MM-DD-YYYY"
    DD_MM_YYYY_DASH = "DD-MM-YYYY"


class AmountHandling(str, Enum):
    SIGNED = "signed"
    SEPARATE = "separate"


class BankSettings(BaseModel):
    delimiter: str = ","
    has_headers: bool = True
    date_format: DateFormat = DateFormat.MM_DD_YYYY
    amount_handling: AmountHandling = AmountHandling.SIGNED
    # Currency code applied to every imported row, e.g. "EUR".
    currency: Optional[str] = None
    encoding: str = "utf-8"

    @field_validator("delimiter", mode="before")
    @classmethod
    def _single_character_delimiter(cls, value: object) -> str:
        if value is None or value == "":
            return ","
        if not isinstance(value, str) or len(value) != 1:
            raise ValueError(f"delimiter must be a single character, got {value!r}")
        return value


class BankConfiguration(Record):
    name: str
    # System field -> source column name (or column index when the file has no header row).
    field_mapping: Dict[str, Union[str, int]] = Field(default_factory=dict)
    settings: BankSettings = Field(default_factory=BankSettings)


class ProcessingRule(Record):
    bank_config_id: str
    name: str
    rule_order: int = 0
    logic: ConditionLogic = ConditionLogic.ANY
    conditions: List[Condition] = Field(default_factory=list)
    actions: List[Action] = Field(default_factory=list)

    def to_rule(self) -> Rule:
        return Rule(
            id=self.id,
            name=self.name,
            active=self.is_active,
            rule_order=self.rule_order,
            logic=self.logic,
            conditions=self.conditions,
            actions=self.actions,
        )
