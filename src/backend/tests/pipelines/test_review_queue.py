import datetime as dt
from decimal import Decimal

import pytest

from common.store.schema import PAYEES, TRANSACTIONS
from pipelines.candidates import CandidateStatus, ImportCandidate
from pipelines.review import ReviewQueue


@pytest.fixture
def make_candidate(subcategory_id):
    def _make(row_index: int, *, status=CandidateStatus.READY, is_duplicate=False, **fields):
        data = {
            "date": dt.date(2024, 1, 15),
            "description": f"row {row_index}",
            "amount": Decimal("-10"),
            "subcategory_id": subcategory_id(),
        }
        data.update(fields)
        return ImportCandidate(row_index=row_index, status=status, is_duplicate=is_duplicate, **data)

    return _make


def test_queue_filters_and_partitions(make_candidate):
    queue = ReviewQueue(
        [
            make_candidate(0),
            make_candidate(1, status=CandidateStatus.WARNING),
            make_candidate(2, status=CandidateStatus.ERROR),
            make_candidate(3, is_duplicate=True),
        ]
    )

    assert [c.row_index for c in queue.by_status("ready")] == [0, 3]
    assert [c.row_index for c in queue.duplicates()] == [3]
    groups = queue.partition()
    assert {k: [c.row_index for c in v] for k, v in groups.items()} == {
        "ready": [0, 3],
        "warning": [1],
        "error": [2],
        "duplicate": [3],
    }
    assert len(queue) == 4


def test_commit_adds_transactions_and_updates_balances(store, make_account, make_candidate):
    account = make_account(initial_balance="100")
    queue = ReviewQueue(
        [
            make_candidate(0, account_id=account.id, payee="Corner Cafe"),
            make_candidate(1, status=CandidateStatus.WARNING),
            make_candidate(2, status=CandidateStatus.ERROR, account_id=account.id),
            make_candidate(3, is_duplicate=True, account_id=account.id),
        ]
    )

    report = queue.commit(store, account_id=account.id)

    assert len(report.committed) == 2
    assert report.failures == []
    assert report.skipped == [2, 3]
    assert store.account_balance(account.id) == Decimal("80")
    payee = store.find_by(PAYEES, name="Corner Cafe")[0]
    assert store.require(TRANSACTIONS, report.committed[0]).payee_id == payee.id


def test_commit_reuses_existing_payee_case_insensitively(store, make_account, make_candidate):
    account = make_account()
    existing = store.add_payee({"name": "Corner Cafe"})
    ReviewQueue([make_candidate(0, account_id=account.id, payee="corner cafe")]).commit(store)
    assert store.count(PAYEES) == 1
    assert store.records(TRANSACTIONS)[0].payee_id == existing.id


def test_one_failure_does_not_stop_the_others(store, make_account, make_candidate):
    account = make_account()
    queue = ReviewQueue(
        [
            make_candidate(0, account_id="ACC_404"),
            make_candidate(1, account_id=account.id),
            make_candidate(2),
        ]
    )

    report = queue.commit(store)

    assert len(report.committed) == 1
    assert [f.row_index for f in report.failures] == [0, 2]
    assert "ACC_404" in report.failures[0].message
    assert store.count(TRANSACTIONS) == 1


def test_commit_options_control_selection(store, make_account, make_candidate):
    account = make_account()
    queue = ReviewQueue(
        [
            make_candidate(0, account_id=account.id),
            make_candidate(1, status=CandidateStatus.WARNING, account_id=account.id),
            make_candidate(2, is_duplicate=True, account_id=account.id),
        ]
    )

    report = queue.commit(store, include_warnings=False, skip_duplicates=False)

    assert report.skipped == [1]
    assert len(report.committed) == 2
