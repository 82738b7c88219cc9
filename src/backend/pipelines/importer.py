from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Sequence

import structlog

from common.rules_engine.engine import RuleEngine, Suppressed
from common.rules_engine.models import Rule
from common.rules_engine.values import as_text, coerce_date, coerce_decimal, is_blank
from common.store.models import BankConfiguration
from common.store.rates import base_currency_id
from common.store.schema import CURRENCIES, TRANSACTIONS
from common.store.store import RelationalStore

from .candidates import CandidateStatus, ImportCandidate, ImportConfig, ImportResult, ImportStats, SuppressedRow
from .duplicates import DuplicateDetector
from .parsing import parse_date, resolve_amount
from .validation import status_for, validate_candidate

logger = structlog.get_logger(__name__)

# Candidate field -> accepted field_mapping keys, first match wins.
MAPPABLE_FIELDS: Dict[str, tuple[str, ...]] = {
    "description": ("description",),
    "account_id": ("account_id", "account"),
    "destination_account_id": ("destination_account_id", "destination_account"),
    "destination_amount": ("destination_amount",),
    "transaction_type": ("transaction_type",),
    "transaction_group": ("transaction_group",),
    "category_id": ("category_id", "category"),
    "subcategory_id": ("subcategory_id", "subcategory"),
    "payee": ("payee",),
    "payer": ("payer",),
    "reference": ("reference",),
    "tag": ("tag",),
    "notes": ("notes",),
}

_OPTIONAL_IDS = ("account_id", "destination_account_id", "category_id", "subcategory_id", "currency_id")


def _column(row: Mapping[str, Any], mapping: Mapping[str, Any], keys: Sequence[str]) -> str:
    for key in keys:
        column = mapping.get(key)
        if column is None or column == "":
            continue
        value = row.get(str(column))
        return "" if value is None else str(value).strip()
    return ""


def _batches(items: Sequence[Mapping[str, Any]], size: int) -> Iterator[Sequence[Mapping[str, Any]]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class ImportPipeline:
    """
    Turns raw statement rows into reviewable import candidates.

    Per row: field extraction through the bank's mapping, date and amount parsing, the bank's
    processing rules, then validation and duplicate flagging against stored transactions.
    Nothing is written to the store; see `pipelines.review.ReviewQueue.commit`.
    """

    def __init__(self, store: RelationalStore, *, config: Optional[ImportConfig] = None):
        self._store = store
        self.config = config or ImportConfig()

    def run(
        self,
        rows: Iterable[Mapping[str, Any]],
        bank: BankConfiguration,
        *,
        source_name: str = "",
        rules: Optional[Iterable[Rule]] = None,
    ) -> ImportResult:
        rows = list(rows)
        engine = RuleEngine(rules if rules is not None else self._store.active_rules_for_bank(bank.id))
        detector = DuplicateDetector(self._store.records(TRANSACTIONS), self.config.duplicates)
        currency_id = self._bank_currency_id(bank)

        log = logger.bind(bank_id=bank.id, source_name=source_name)
        log.info("import_started", rows=len(rows), rules=len(engine.rules))

        result = ImportResult(stats=ImportStats(total_rows=len(rows)))
        row_index = 0
        for batch_number, batch in enumerate(_batches(rows, self.config.batch_size)):
            for row in batch:
                try:
                    outcome = self._process_row(
                        row,
                        row_index=row_index,
                        bank=bank,
                        source_name=source_name,
                        currency_id=currency_id,
                        engine=engine,
                        detector=detector,
                    )
                except Exception as exc:
                    log.exception("import_row_failed", row_index=row_index)
                    result.stats.failed_rows += 1
                    outcome = ImportCandidate(
                        row_index=row_index,
                        source_name=source_name,
                        status=CandidateStatus.ERROR,
                        errors=[f"Row could not be processed: {exc}"],
                        raw=dict(row),
                    )
                self._record(result, outcome)
                row_index += 1
            log.debug("import_batch_done", batch=batch_number, rows=len(batch))

        log.info("import_finished", **result.stats.model_dump())
        return result

    def _process_row(
        self,
        row: Mapping[str, Any],
        *,
        row_index: int,
        bank: BankConfiguration,
        source_name: str,
        currency_id: Optional[str],
        engine: RuleEngine,
        detector: DuplicateDetector,
    ) -> ImportCandidate | SuppressedRow:
        mapping = bank.field_mapping
        settings = bank.settings

        amount, amount_errors = resolve_amount(
            settings.amount_handling,
            amount=_column(row, mapping, ("amount",)),
            debit=_column(row, mapping, ("debit",)),
            credit=_column(row, mapping, ("credit",)),
        )
        record: Dict[str, Any] = {
            "date": parse_date(_column(row, mapping, ("date",)), settings.date_format),
            "amount": amount,
            "currency_id": currency_id,
        }
        for field, keys in MAPPABLE_FIELDS.items():
            record[field] = _column(row, mapping, keys)
        record["destination_amount"] = coerce_decimal(record["destination_amount"])

        evaluation = engine.evaluate(record)
        if isinstance(evaluation, Suppressed):
            return SuppressedRow(
                row_index=row_index,
                source_name=source_name,
                rule_id=evaluation.rule_id,
                rule_name=evaluation.rule_name,
                raw=dict(row),
            )

        candidate = self._candidate(evaluation.record, row_index=row_index, source_name=source_name, raw=row)
        candidate.rule_changes = list(evaluation.changes)
        candidate.rule_issues = list(evaluation.issues)
        candidate.rules_applied = list(dict.fromkeys(change.rule_id for change in evaluation.changes))

        errors, warnings = validate_candidate(candidate)
        errors.extend(f"Could not parse {exc.field} {exc.raw!r}" for exc in amount_errors)
        warnings.extend(f"Rule '{issue.rule_name or issue.rule_id}': {issue.message}" for issue in evaluation.issues)
        if currency_id is None and settings.currency:
            warnings.append(f"Unknown bank currency '{settings.currency}'")

        candidate.errors = errors
        candidate.warnings = warnings
        candidate.status = status_for(errors, warnings)
        candidate.duplicate_of = detector.matches(
            date=candidate.date, description=candidate.description, amount=candidate.amount
        )
        candidate.is_duplicate = bool(candidate.duplicate_of)
        return candidate

    @staticmethod
    def _candidate(
        record: Mapping[str, Any],
        *,
        row_index: int,
        source_name: str,
        raw: Mapping[str, Any],
    ) -> ImportCandidate:
        # Rules may have written any value into any field; normalize back to candidate types.
        amount = coerce_decimal(record.get("amount"))
        fields: Dict[str, Any] = {
            key: as_text(record.get(key)).strip()
            for key in ("description", "transaction_type", "transaction_group", "payee", "payer", "reference", "tag", "notes")
        }
        for key in _OPTIONAL_IDS:
            value = record.get(key)
            fields[key] = None if is_blank(value) else as_text(value).strip()
        return ImportCandidate(
            row_index=row_index,
            source_name=source_name,
            date=coerce_date(record.get("date")),
            amount=amount if amount is not None else Decimal("0"),
            destination_amount=coerce_decimal(record.get("destination_amount")),
            raw=dict(raw),
            **fields,
        )

    def _bank_currency_id(self, bank: BankConfiguration) -> Optional[str]:
        code = (bank.settings.currency or "").strip().upper()
        if not code:
            return base_currency_id(self._store)
        matches = self._store.find_by(CURRENCIES, code=code)
        return matches[0].id if matches else None

    @staticmethod
    def _record(result: ImportResult, outcome: ImportCandidate | SuppressedRow) -> None:
        stats = result.stats
        if isinstance(outcome, SuppressedRow):
            result.suppressed.append(outcome)
            stats.suppressed += 1
            return
        result.candidates.append(outcome)
        stats.candidates += 1
        setattr(stats, outcome.status.value, getattr(stats, outcome.status.value) + 1)
        if outcome.is_duplicate:
            stats.duplicates += 1
        if outcome.rules_applied:
            stats.rows_with_rules += 1
            stats.rules_applied += len(outcome.rules_applied)
