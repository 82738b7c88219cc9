from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from common.rules_engine.models import Rule

from .backfill import backfill_rows
from .errors import (
    Dependent,
    DuplicateKeyError,
    InvalidReferenceError,
    RecordNotFoundError,
    ReferentialIntegrityError,
    StoreError,
    ValidationError,
)
from .ids import IdGenerator
from .models import (
    Account,
    BankConfiguration,
    Currency,
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
from .schema import (
    ACCOUNTS,
    BANK_CONFIGURATIONS,
    CURRENCIES,
    DEFAULT_SCHEMA,
    EXCHANGE_RATES,
    PAYEES,
    PAYERS,
    PROCESSING_RULES,
    SUBCATEGORIES,
    TAGS,
    TRANSACTION_GROUPS,
    TRANSACTION_TYPES,
    TRANSACTIONS,
    ForeignKey,
    SchemaRegistry,
    TableSpec,
)

logger = structlog.get_logger(__name__)

_PENDING_ID = "__pending__"


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _field_value(record: Record, field: str) -> Any:
    return getattr(record, field, None)


def _is_unset(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _unique_token(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().casefold()
    return value


@dataclass(frozen=True)
class RelationshipIssue:
    table: str
    record_id: str
    field: str
    value: Any
    target_table: str


@dataclass(frozen=True)
class BalanceDiscrepancy:
    account_id: str
    stored: Decimal
    expected: Decimal


class RelationalStore:
    """In-memory tables with foreign-key integrity and derived account balances.

    Every mutating call validates first and mutates only once all checks pass, so a call
    that raises leaves every table exactly as it was. The store is owned by one session at
    a time and does no locking.
    """

    def __init__(
        self,
        schema: SchemaRegistry = DEFAULT_SCHEMA,
        *,
        clock: Optional[Callable[[], dt.datetime]] = None,
    ):
        self._schema = schema
        self._clock = clock or _utc_now
        self._tables: Dict[str, Dict[str, Record]] = {name: {} for name in schema.table_names()}
        self._ids = IdGenerator()

    @classmethod
    def with_defaults(cls, *, clock: Optional[Callable[[], dt.datetime]] = None) -> "RelationalStore":
        from .seed import seed_reference_data

        store = cls(clock=clock)
        seed_reference_data(store)
        return store

    @property
    def schema(self) -> SchemaRegistry:
        return self._schema

    # ------------------------------------------------------------------ reads

    def records(self, table: str) -> List[Record]:
        return [record.model_copy(deep=True) for record in self._rows(table).values()]

    def active(self, table: str) -> List[Record]:
        return [r.model_copy(deep=True) for r in self._rows(table).values() if r.is_active]

    def count(self, table: str) -> int:
        return len(self._rows(table))

    def exists(self, table: str, record_id: str) -> bool:
        return record_id in self._rows(table)

    def get(self, table: str, record_id: str) -> Optional[Record]:
        record = self._rows(table).get(record_id)
        return record.model_copy(deep=True) if record is not None else None

    def require(self, table: str, record_id: str) -> Record:
        return self._stored(table, record_id).model_copy(deep=True)

    def find_by(self, table: str, **criteria: Any) -> List[Record]:
        out = []
        for record in self._rows(table).values():
            if all(_field_value(record, field) == value for field, value in criteria.items()):
                out.append(record.model_copy(deep=True))
        return out

    def dependents_of(self, table: str, record_id: str) -> List[Dependent]:
        dependents: List[Dependent] = []
        for fk in self._schema.foreign_keys_into(table):
            for record in self._rows(fk.table).values():
                if fk.table == table and record.id == record_id:
                    continue
                if _field_value(record, fk.field) == record_id:
                    dependents.append(Dependent(table=fk.table, field=fk.field, record_id=record.id))
        return dependents

    # ------------------------------------------------------------ generic CRUD

    def insert(self, table: str, data: Mapping[str, Any]) -> Record:
        spec = self._schema.table(table)
        payload = {k: v for k, v in data.items() if k not in ("id", "created_at")}
        if table == ACCOUNTS:
            payload = self._prepare_account_payload(payload)

        record = self._build(spec, {**payload, "id": _PENDING_ID, "created_at": self._clock()})
        try:
            self._check_record(spec, record)
        except StoreError as exc:
            logger.warning("record_rejected", table=table, operation="insert", error=exc.message)
            raise

        record_id = self._ids.next_id(spec.id_prefix, self._rows(table).keys())
        record = record.model_copy(update={"id": record_id})
        self._rows(table)[record_id] = record
        if table == TRANSACTIONS:
            self._apply_effects(self._balance_effects(record))
        logger.info("record_added", table=table, record_id=record_id)
        return record.model_copy(deep=True)

    def update(self, table: str, record_id: str, patch: Mapping[str, Any]) -> Record:
        spec = self._schema.table(table)
        current = self._stored(table, record_id)
        changes = {k: v for k, v in patch.items() if k not in ("id", "created_at")}

        if table == ACCOUNTS and "balance" in changes:
            logger.warning("record_rejected", table=table, operation="update", record_id=record_id)
            raise ValidationError(
                "accounts.balance is derived from transactions; patch initial_balance instead",
                table=table,
                field="balance",
                record_id=record_id,
            )

        merged = {**current.model_dump(), **changes, "id": record_id, "created_at": current.created_at}
        record = self._build(spec, merged)
        changed_keys = {
            fk.field
            for fk in self._schema.foreign_keys_from(table)
            if _field_value(record, fk.field) != _field_value(current, fk.field)
        }
        try:
            self._check_record(spec, record, reference_fields=changed_keys, exclude_id=record_id)
        except StoreError as exc:
            logger.warning("record_rejected", table=table, operation="update", record_id=record_id, error=exc.message)
            raise

        if table == ACCOUNTS:
            shift = record.initial_balance - current.initial_balance
            record = record.model_copy(update={"balance": current.balance + shift})
        if table == TRANSACTIONS:
            # Net of reversing the old effect and applying the new one.
            effects = self._balance_effects(record)
            for account_id, delta in self._balance_effects(current).items():
                effects[account_id] = effects.get(account_id, Decimal("0")) - delta
            self._apply_effects(effects)

        self._rows(table)[record_id] = record
        logger.info("record_updated", table=table, record_id=record_id, fields=sorted(changes))
        return record.model_copy(deep=True)

    def delete(self, table: str, record_id: str) -> Record:
        current = self._stored(table, record_id)
        dependents = self.dependents_of(table, record_id)
        if dependents:
            logger.warning("delete_blocked", table=table, record_id=record_id, dependents=len(dependents))
            raise ReferentialIntegrityError(table=table, record_id=record_id, dependents=dependents)

        if table == TRANSACTIONS:
            self._apply_effects({k: -v for k, v in self._balance_effects(current).items()})
        del self._rows(table)[record_id]
        logger.info("record_deleted", table=table, record_id=record_id)
        return current.model_copy(deep=True)

    # ---------------------------------------------------------------- accounts

    def add_account(self, data: Mapping[str, Any]) -> Account:
        return self.insert(ACCOUNTS, data)

    def update_account(self, account_id: str, patch: Mapping[str, Any]) -> Account:
        return self.update(ACCOUNTS, account_id, patch)

    def delete_account(self, account_id: str) -> Account:
        return self.delete(ACCOUNTS, account_id)

    def account_balance(self, account_id: str) -> Decimal:
        return self._stored(ACCOUNTS, account_id).balance

    # ------------------------------------------------------------ transactions

    def add_transaction(self, data: Mapping[str, Any]) -> Transaction:
        return self.insert(TRANSACTIONS, data)

    def update_transaction(self, transaction_id: str, patch: Mapping[str, Any]) -> Transaction:
        return self.update(TRANSACTIONS, transaction_id, patch)

    def delete_transaction(self, transaction_id: str) -> Transaction:
        return self.delete(TRANSACTIONS, transaction_id)

    def reconcile_transaction(self, transaction_id: str, reference: str) -> Transaction:
        if _is_unset(reference):
            raise ValidationError(
                "transactions.reconciliation_reference is required",
                table=TRANSACTIONS,
                field="reconciliation_reference",
                record_id=transaction_id,
            )
        return self.update(
            TRANSACTIONS,
            transaction_id,
            {"reconciled": True, "reconciliation_reference": reference.strip()},
        )

    def unreconcile_transaction(self, transaction_id: str) -> Transaction:
        return self.update(TRANSACTIONS, transaction_id, {"reconciled": False, "reconciliation_reference": None})

    def unreconciled_transactions(self, account_id: Optional[str] = None) -> List[Transaction]:
        out = []
        for txn in self._rows(TRANSACTIONS).values():
            if txn.reconciled:
                continue
            if account_id and account_id not in (txn.account_id, txn.destination_account_id):
                continue
            out.append(txn.model_copy(deep=True))
        return out

    # ---------------------------------------------------------- reference data

    def add_currency(self, data: Mapping[str, Any]) -> Currency:
        return self.insert(CURRENCIES, data)

    def update_currency(self, currency_id: str, patch: Mapping[str, Any]) -> Currency:
        return self.update(CURRENCIES, currency_id, patch)

    def delete_currency(self, currency_id: str) -> Currency:
        return self.delete(CURRENCIES, currency_id)

    def add_exchange_rate(self, data: Mapping[str, Any]) -> ExchangeRate:
        return self.insert(EXCHANGE_RATES, data)

    def update_exchange_rate(self, rate_id: str, patch: Mapping[str, Any]) -> ExchangeRate:
        return self.update(EXCHANGE_RATES, rate_id, patch)

    def delete_exchange_rate(self, rate_id: str) -> ExchangeRate:
        return self.delete(EXCHANGE_RATES, rate_id)

    def replace_exchange_rates(self, rates: Iterable[Mapping[str, Any]], *, source: str) -> List[ExchangeRate]:
        """Swap every rate from `source` for `rates`, all or nothing."""
        spec = self._schema.table(EXCHANGE_RATES)
        now = self._clock()
        built: List[ExchangeRate] = []
        for data in rates:
            payload = {k: v for k, v in data.items() if k not in ("id", "created_at")}
            record = self._build(spec, {**payload, "source": source, "id": _PENDING_ID, "created_at": now})
            self._check_record(spec, record)
            built.append(record)

        rows = self._rows(EXCHANGE_RATES)
        for rate_id in [rid for rid, rate in rows.items() if rate.source == source]:
            del rows[rate_id]
        stored: List[ExchangeRate] = []
        for record in built:
            record = record.model_copy(update={"id": self._ids.next_id(spec.id_prefix, rows.keys())})
            rows[record.id] = record
            stored.append(record.model_copy(deep=True))
        logger.info("exchange_rates_replaced", source=source, count=len(stored))
        return stored

    def add_category(self, data: Mapping[str, Any]) -> TransactionType:
        return self.insert(TRANSACTION_TYPES, data)

    def update_category(self, category_id: str, patch: Mapping[str, Any]) -> TransactionType:
        return self.update(TRANSACTION_TYPES, category_id, patch)

    def delete_category(self, category_id: str) -> TransactionType:
        return self.delete(TRANSACTION_TYPES, category_id)

    def add_transaction_group(self, data: Mapping[str, Any]) -> TransactionGroup:
        return self.insert(TRANSACTION_GROUPS, data)

    def update_transaction_group(self, group_id: str, patch: Mapping[str, Any]) -> TransactionGroup:
        return self.update(TRANSACTION_GROUPS, group_id, patch)

    def delete_transaction_group(self, group_id: str) -> TransactionGroup:
        return self.delete(TRANSACTION_GROUPS, group_id)

    def add_subcategory(self, data: Mapping[str, Any]) -> Subcategory:
        return self.insert(SUBCATEGORIES, data)

    def update_subcategory(self, subcategory_id: str, patch: Mapping[str, Any]) -> Subcategory:
        return self.update(SUBCATEGORIES, subcategory_id, patch)

    def delete_subcategory(self, subcategory_id: str) -> Subcategory:
        return self.delete(SUBCATEGORIES, subcategory_id)

    def add_payee(self, data: Mapping[str, Any]) -> Payee:
        return self.insert(PAYEES, data)

    def update_payee(self, payee_id: str, patch: Mapping[str, Any]) -> Payee:
        return self.update(PAYEES, payee_id, patch)

    def delete_payee(self, payee_id: str) -> Payee:
        return self.delete(PAYEES, payee_id)

    def add_payer(self, data: Mapping[str, Any]) -> Payer:
        return self.insert(PAYERS, data)

    def update_payer(self, payer_id: str, patch: Mapping[str, Any]) -> Payer:
        return self.update(PAYERS, payer_id, patch)

    def delete_payer(self, payer_id: str) -> Payer:
        return self.delete(PAYERS, payer_id)

    def add_tag(self, data: Mapping[str, Any]) -> Tag:
        return self.insert(TAGS, data)

    def update_tag(self, tag_id: str, patch: Mapping[str, Any]) -> Tag:
        return self.update(TAGS, tag_id, patch)

    def delete_tag(self, tag_id: str) -> Tag:
        return self.delete(TAGS, tag_id)

    # ------------------------------------------------- bank configs and rules

    def add_bank_configuration(self, data: Mapping[str, Any]) -> BankConfiguration:
        return self.insert(BANK_CONFIGURATIONS, data)

    def update_bank_configuration(self, bank_id: str, patch: Mapping[str, Any]) -> BankConfiguration:
        return self.update(BANK_CONFIGURATIONS, bank_id, patch)

    def delete_bank_configuration(self, bank_id: str) -> BankConfiguration:
        return self.delete(BANK_CONFIGURATIONS, bank_id)

    def add_processing_rule(self, data: Mapping[str, Any]) -> ProcessingRule:
        return self.insert(PROCESSING_RULES, data)

    def update_processing_rule(self, rule_id: str, patch: Mapping[str, Any]) -> ProcessingRule:
        return self.update(PROCESSING_RULES, rule_id, patch)

    def delete_processing_rule(self, rule_id: str) -> ProcessingRule:
        return self.delete(PROCESSING_RULES, rule_id)

    def set_processing_rule_active(self, rule_id: str, active: bool) -> ProcessingRule:
        return self.update(PROCESSING_RULES, rule_id, {"is_active": bool(active)})

    def reorder_processing_rule(self, rule_id: str, rule_order: int) -> ProcessingRule:
        return self.update(PROCESSING_RULES, rule_id, {"rule_order": rule_order})

    def active_rules_for_bank(self, bank_config_id: str) -> List[Rule]:
        rules = [
            record.to_rule()
            for record in self._rows(PROCESSING_RULES).values()
            if record.bank_config_id == bank_config_id and record.is_active
        ]
        rules.sort(key=lambda r: (r.rule_order, r.id))
        return rules

    # ---------------------------------------------------------------- balances

    def verify_balances(self) -> List[BalanceDiscrepancy]:
        expected = {acc.id: acc.initial_balance for acc in self._rows(ACCOUNTS).values()}
        for txn in self._rows(TRANSACTIONS).values():
            for account_id, delta in self._balance_effects(txn).items():
                if account_id in expected:
                    expected[account_id] += delta
        return [
            BalanceDiscrepancy(account_id=acc.id, stored=acc.balance, expected=expected[acc.id])
            for acc in self._rows(ACCOUNTS).values()
            if acc.balance != expected[acc.id]
        ]

    # ------------------------------------------------------------- persistence

    def export_table(self, table: str) -> List[Dict[str, Any]]:
        """One JSON-safe dict per record, one key per field."""
        return [record.model_dump(mode="json") for record in self._rows(table).values()]

    def export_all(self) -> Dict[str, List[Dict[str, Any]]]:
        return {name: self.export_table(name) for name in self._schema.table_names()}

    def load_tables(self, buffers: Mapping[str, Iterable[Mapping[str, Any]]]) -> List[RelationshipIssue]:
        """Replace table contents from exported rows.

        Tables absent from `buffers` are created empty. Loading is all or nothing; unresolved
        references in the loaded data are returned rather than raised.
        """
        now = self._clock()
        loaded: Dict[str, Dict[str, Record]] = {}
        for name in self._schema.table_names():
            spec = self._schema.table(name)
            rows: Dict[str, Record] = {}
            for row in backfill_rows(name, buffers.get(name, ()), now=now):
                record = self._build(spec, row)
                if record.id in rows:
                    raise DuplicateKeyError(table=name, fields=("id",), values=(record.id,), existing_id=record.id)
                rows[record.id] = record
            loaded[name] = rows

        unknown = sorted(set(buffers) - set(loaded))
        if unknown:
            logger.warning("unknown_tables_ignored", tables=unknown)

        self._tables = loaded
        self._ids.reset()
        issues = self.validate_relationships()
        logger.info(
            "tables_loaded",
            tables=len(loaded),
            records=sum(len(rows) for rows in loaded.values()),
            relationship_issues=len(issues),
        )
        return issues

    def validate_relationships(self) -> List[RelationshipIssue]:
        issues: List[RelationshipIssue] = []
        for fk in self._schema.foreign_keys():
            for record in self._rows(fk.table).values():
                value = _field_value(record, fk.field)
                if _is_unset(value):
                    continue
                if not self._resolves(fk, value):
                    issues.append(
                        RelationshipIssue(
                            table=fk.table,
                            record_id=record.id,
                            field=fk.field,
                            value=value,
                            target_table=fk.target_table,
                        )
                    )
        return issues

    # ---------------------------------------------------------------- internals

    def _rows(self, table: str) -> Dict[str, Record]:
        if table not in self._tables:
            self._schema.table(table)
            self._tables[table] = {}
        return self._tables[table]

    def _stored(self, table: str, record_id: str) -> Record:
        record = self._rows(table).get(record_id)
        if record is None:
            raise RecordNotFoundError(table=table, record_id=record_id)
        return record

    def _prepare_account_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        # `balance` on create is read as the opening balance; afterwards it is derived.
        if _is_unset(payload.get("initial_balance")) and not _is_unset(payload.get("balance")):
            payload["initial_balance"] = payload["balance"]
        payload.pop("balance", None)
        payload["balance"] = payload.get("initial_balance") or Decimal("0")
        return payload

    def _build(self, spec: TableSpec, data: Mapping[str, Any]) -> Record:
        for field in spec.required:
            if _is_unset(data.get(field)):
                raise ValidationError(f"{spec.name}.{field} is required", table=spec.name, field=field)
        try:
            return spec.model.model_validate(dict(data))
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or "?"
            raise ValidationError(
                f"{spec.name}.{field}: {first.get('msg', 'invalid value')}",
                table=spec.name,
                field=field.split(".")[0],
            ) from exc

    def _check_record(
        self,
        spec: TableSpec,
        record: Record,
        *,
        reference_fields: Optional[set[str]] = None,
        exclude_id: Optional[str] = None,
    ) -> None:
        for fk in self._schema.foreign_keys_from(spec.name):
            if reference_fields is not None and fk.field not in reference_fields:
                continue
            value = _field_value(record, fk.field)
            if _is_unset(value):
                if not fk.optional:
                    raise ValidationError(f"{spec.name}.{fk.field} is required", table=spec.name, field=fk.field)
                continue
            if not self._resolves(fk, value):
                raise InvalidReferenceError(
                    table=spec.name,
                    field=fk.field,
                    value=value,
                    target_table=fk.target_table,
                    target_field=fk.target_field,
                )

        if spec.name == TRANSACTIONS and record.destination_account_id == record.account_id:
            raise ValidationError(
                "transactions.destination_account_id must differ from account_id",
                table=spec.name,
                field="destination_account_id",
            )

        for fields in spec.unique:
            key = tuple(_unique_token(_field_value(record, f)) for f in fields)
            for other in self._rows(spec.name).values():
                if other.id == exclude_id:
                    continue
                if tuple(_unique_token(_field_value(other, f)) for f in fields) == key:
                    raise DuplicateKeyError(
                        table=spec.name,
                        fields=fields,
                        values=[_field_value(record, f) for f in fields],
                        existing_id=other.id,
                    )

    def _resolves(self, fk: ForeignKey, value: Any) -> bool:
        target = self._rows(fk.target_table)
        if fk.target_field == "id":
            return value in target
        return any(_field_value(r, fk.target_field) == value for r in target.values())

    @staticmethod
    def _balance_effects(txn: Transaction) -> Dict[str, Decimal]:
        # Source account gains `amount`; the destination account loses it.
        effects: Dict[str, Decimal] = {txn.account_id: txn.amount}
        if txn.destination_account_id:
            effects[txn.destination_account_id] = effects.get(txn.destination_account_id, Decimal("0")) - txn.amount
        return effects

    def _apply_effects(self, effects: Mapping[str, Decimal]) -> None:
        accounts = self._rows(ACCOUNTS)
        for account_id, delta in effects.items():
            if delta == 0 or account_id not in accounts:
                continue
            account = accounts[account_id]
            accounts[account_id] = account.model_copy(update={"balance": account.balance + delta})
