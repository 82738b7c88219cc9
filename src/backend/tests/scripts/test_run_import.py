import json
from decimal import Decimal

import pytest

from common.store.schema import ACCOUNT_TYPES, CURRENCIES, SUBCATEGORIES, TRANSACTIONS
from common.store.store import RelationalStore
from pipelines.snapshots import LocalTableSnapshotStore, load_store, save_store
from scripts.run_import import main


@pytest.fixture
def snapshot_dir(tmp_path, clock):
    store = RelationalStore.with_defaults(clock=clock)
    account = store.add_account(
        {
            "name": "Checking",
            "account_type_id": store.records(ACCOUNT_TYPES)[0].id,
            "currency_id": store.find_by(CURRENCIES, code="EUR")[0].id,
            "initial_balance": "100",
        }
    )
    store.add_bank_configuration(
        {
            "name": "Test Bank",
            "field_mapping": {
                "date": "Date",
                "description": "Description",
                "amount": "Amount",
                "account": "Account",
                "subcategory_id": "Subcategory",
            },
        }
    )
    root = tmp_path / "data"
    save_store(store, LocalTableSnapshotStore(root_dir=root))
    groceries = store.find_by(SUBCATEGORIES, name="Groceries")[0].id
    statement = tmp_path / "jan.csv"
    statement.write_text(
        "Date,Description,Amount,Account,Subcategory\n"
        f"01/15/2024,Fresh Market,-20.00,{account.id},{groceries}\n"
        f"13/45/2024,Broken Row,-1.00,{account.id},{groceries}\n"
    )
    return root, statement


def test_preview_prints_markdown(snapshot_dir, capsys):
    root, statement = snapshot_dir
    code = main(["--bank", "test bank", "--csv", str(statement), "--snapshot-dir", str(root)])

    out = capsys.readouterr().out
    assert code == 0
    assert "# Import Review" in out
    assert "- ready: 1" in out
    assert "- row 1: error" in out


def test_commit_writes_tables_back(snapshot_dir, capsys, clock):
    root, statement = snapshot_dir
    code = main(
        ["--bank", "BANK_001", "--csv", str(statement), "--snapshot-dir", str(root), "--commit", "--format", "json"]
    )

    payload = json.loads(capsys.readouterr().out)
    assert code == 0
    assert payload["import"]["stats"]["ready"] == 1
    assert payload["commit"]["committed"] == ["TXN_001"]
    assert payload["commit"]["skipped"] == [1]

    reloaded = RelationalStore(clock=clock)
    load_store(reloaded, LocalTableSnapshotStore(root_dir=root))
    assert reloaded.count(TRANSACTIONS) == 1
    assert reloaded.account_balance("ACC_001") == Decimal("80.00")


def test_unknown_bank_exits_with_2(snapshot_dir, capsys):
    root, statement = snapshot_dir
    assert main(["--bank", "Nope", "--csv", str(statement), "--snapshot-dir", str(root)]) == 2
    assert "unknown bank configuration" in capsys.readouterr().err
