import datetime as dt
from decimal import Decimal

import pytest

from common.rules_engine.models import Rule
from pipelines import importer as importer_module
from pipelines.candidates import CandidateStatus, ImportCandidate, ImportConfig
from pipelines.importer import ImportPipeline
from pipelines.parsing import read_rows
from pipelines.validation import status_for, validate_candidate

MAPPING = {
    "date": "Date",
    "description": "Description",
    "amount": "Amount",
    "account": "Account",
    "subcategory_id": "Subcategory",
    "payee": "Payee",
}


@pytest.fixture
def bank(make_bank):
    return make_bank(field_mapping=MAPPING, currency="USD")


@pytest.fixture
def account(make_account):
    return make_account()


@pytest.fixture
def row(account, subcategory_id):
    def _row(**overrides):
        base = {
            "Date": "01/15/2024",
            "Description": "Coffee Shop",
            "Amount": "-5.50",
            "Account": account.id,
            "Subcategory": subcategory_id("Dining Out"),
            "Payee": "Corner Cafe",
        }
        base.update(overrides)
        return base

    return _row


def test_valid_row_becomes_ready_candidate(store, bank, row, account, currency_id):
    result = ImportPipeline(store).run([row()], bank, source_name="jan.csv")

    [candidate] = result.candidates
    assert candidate.status == CandidateStatus.READY
    assert candidate.errors == [] and candidate.warnings == []
    assert candidate.date == dt.date(2024, 1, 15)
    assert candidate.amount == Decimal("-5.50")
    assert candidate.account_id == account.id
    assert candidate.currency_id == currency_id("USD")
    assert candidate.source_name == "jan.csv"
    assert candidate.raw["Description"] == "Coffee Shop"
    assert result.stats.ready == 1


def test_status_precedence_error_over_warning(store, bank, row):
    rows = [
        row(Date="99/99/9999"),
        row(Account=""),
        row(Date="", Account=""),
        row(Description="", Amount="0"),
    ]
    result = ImportPipeline(store).run(rows, bank)

    statuses = [c.status for c in result.candidates]
    assert statuses == [CandidateStatus.ERROR, CandidateStatus.WARNING, CandidateStatus.ERROR, CandidateStatus.ERROR]
    assert "Missing or invalid date" in result.candidates[0].errors[0]
    assert result.candidates[2].warnings  # warnings are kept alongside errors
    assert len(result.candidates[3].errors) == 2
    assert (result.stats.error, result.stats.warning) == (3, 1)


def test_unparsable_amount_is_a_row_error(store, bank, row):
    result = ImportPipeline(store).run([row(Amount="abc")], bank)
    [candidate] = result.candidates
    assert candidate.amount == Decimal("0")
    assert any("Could not parse amount" in e for e in candidate.errors)


def test_ignore_rule_suppresses_row_and_reports_it(store, bank, row):
    store.add_processing_rule(
        {
            "bank_config_id": bank.id,
            "name": "skip internal transfers",
            "conditions": [{"field": "description", "operator": "startsWith", "value": "TRANSFER"}],
            "actions": [{"type": "IGNORE_ROW"}],
        }
    )
    result = ImportPipeline(store).run([row(), row(Description="TRANSFER TO SAVINGS")], bank)

    assert len(result.candidates) == 1
    [suppressed] = result.suppressed
    assert suppressed.row_index == 1
    assert suppressed.rule_name == "skip internal transfers"
    assert result.stats.suppressed == 1


def test_rules_classify_candidates(store, bank, row, subcategory_id):
    rule = store.add_processing_rule(
        {
            "bank_config_id": bank.id,
            "name": "groceries",
            "logic": "ALL",
            "conditions": [
                {"field": "description", "operator": "contains", "value": "market", "case_sensitive": False},
                {"field": "amount", "operator": "lessThan", "value": 0},
            ],
            "actions": [
                {"type": "SET_FIELD", "field": "subcategory_id", "value": subcategory_id("Groceries")},
                {"type": "SET_FIELD", "field": "payee", "value": "Fresh Market"},
            ],
        }
    )
    result = ImportPipeline(store).run([row(Description="FRESH MARKET #12", Subcategory="", Payee="")], bank)

    [candidate] = result.candidates
    assert candidate.status == CandidateStatus.READY
    assert candidate.subcategory_id == subcategory_id("Groceries")
    assert candidate.payee == "Fresh Market"
    assert candidate.rules_applied == [rule.id]
    assert len(candidate.rule_changes) == 2
    assert (result.stats.rows_with_rules, result.stats.rules_applied) == (1, 1)


def test_rule_configuration_problems_surface_as_warnings(store, bank, row):
    store.add_processing_rule(
        {
            "bank_config_id": bank.id,
            "name": "double it",
            "actions": [{"type": "TRANSFORM_FIELD", "field": "amount", "transform": "multiply"}],
        }
    )
    result = ImportPipeline(store).run([row()], bank)

    [candidate] = result.candidates
    assert candidate.amount == Decimal("-5.50")
    assert candidate.status == CandidateStatus.WARNING
    assert "requires a numeric parameter" in candidate.warnings[0]


def test_duplicates_are_flagged_not_dropped(store, bank, row, account, make_transaction):
    stored = make_transaction(
        account_id=account.id, date=dt.date(2024, 1, 15), description="Coffee Shop Purchase", amount="-5.50"
    )
    result = ImportPipeline(store).run([row(), row(Date="01/16/2024")], bank)

    first, second = result.candidates
    assert first.is_duplicate and first.duplicate_of == [stored.id]
    assert first.status == CandidateStatus.READY
    assert not second.is_duplicate
    assert result.stats.duplicates == 1


def test_separate_debit_credit_columns(store, make_bank, account, subcategory_id):
    bank = make_bank(
        name="Split Bank",
        field_mapping={"date": "0", "description": "1", "debit": "2", "credit": "3", "account": "4", "subcategory_id": "5"},
        has_headers=False,
        amount_handling="separate",
        date_format="DD/MM/YYYY",
    )
    text = (
        f"15/01/2024,Groceries,25.00,,{account.id},{subcategory_id()}\n"
        f"16/01/2024,Salary,,1000.00,{account.id},{subcategory_id('Salary/Wages')}\n"
    )
    result = ImportPipeline(store).run(read_rows(text, bank.settings), bank)

    assert [c.amount for c in result.candidates] == [Decimal("-25.00"), Decimal("1000.00")]
    assert [c.date for c in result.candidates] == [dt.date(2024, 1, 15), dt.date(2024, 1, 16)]


def test_unknown_bank_currency_warns(store, make_bank, row):
    bank = make_bank(name="Odd Bank", field_mapping=MAPPING, currency="XYZ")
    [candidate] = ImportPipeline(store).run([row()], bank).candidates
    assert candidate.currency_id is None
    assert "Unknown bank currency 'XYZ'" in candidate.warnings


def test_failing_row_does_not_abort_the_batch(store, bank, row, monkeypatch):
    real_validate = importer_module.validate_candidate

    def _flaky(candidate):
        if candidate.description == "boom":
            raise RuntimeError("exploded")
        return real_validate(candidate)

    monkeypatch.setattr(importer_module, "validate_candidate", _flaky)
    rows = [row(), row(Description="boom"), row(), row(), row()]
    result = ImportPipeline(store, config=ImportConfig(batch_size=2)).run(rows, bank)

    assert [c.row_index for c in result.candidates] == [0, 1, 2, 3, 4]
    assert result.candidates[1].status == CandidateStatus.ERROR
    assert "exploded" in result.candidates[1].errors[0]
    assert result.stats.failed_rows == 1
    assert result.stats.total_rows == 5


def test_explicit_rules_override_stored_rules(store, bank, row):
    rule = Rule(id="ADHOC", actions=[{"type": "IGNORE_ROW"}])
    result = ImportPipeline(store).run([row()], bank, rules=[rule])
    assert result.candidates == []
    assert result.suppressed[0].rule_id == "ADHOC"


def test_pipeline_does_not_write_to_the_store(store, bank, row):
    before = store.export_all()
    ImportPipeline(store).run([row()], bank)
    assert store.export_all() == before


@pytest.mark.parametrize(
    "fields,expected",
    [
        ({"transaction_type": "Income"}, "Income transaction missing payer"),
        ({"transaction_type": "Expenses", "payee": ""}, "Expenses transaction missing payee"),
        ({"transaction_type": "Transfer"}, "Transfer transaction missing destination account"),
        ({"transaction_type": "Investment"}, "Investment transaction missing destination amount"),
        ({"transaction_type": "Investment"}, "Investment transaction missing broker (payee or payer)"),
    ],
)
def test_type_specific_warnings(fields, expected):
    candidate = ImportCandidate(
        row_index=0,
        date=dt.date(2024, 1, 15),
        description="x",
        amount=Decimal("1"),
        account_id="ACC_001",
        subcategory_id="SUB_001",
        **fields,
    )
    errors, warnings = validate_candidate(candidate)
    assert errors == []
    assert expected in warnings
    assert status_for(errors, warnings) == CandidateStatus.WARNING


def test_integer_column_indexes_in_mapping(store, make_bank, account, subcategory_id):
    bank = make_bank(
        name="Index Bank",
        field_mapping={"date": 0, "description": 1, "amount": 2, "account": 3, "subcategory_id": 4},
        has_headers=False,
    )
    assert bank.field_mapping["date"] == 0

    text = f"01/15/2024,Bakery,-3.20,{account.id},{subcategory_id()}\n"
    [candidate] = ImportPipeline(store).run(read_rows(text, bank.settings), bank).candidates

    assert candidate.status == CandidateStatus.READY
    assert candidate.description == "Bakery"
    assert candidate.amount == Decimal("-3.20")
