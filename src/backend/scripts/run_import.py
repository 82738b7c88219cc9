from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path


def _ensure_backend_on_path() -> None:
    backend_dir = Path(__file__).resolve().parents[1]
    if str(backend_dir) not in sys.path:
        sys.path.insert(0, str(backend_dir))


def _find_bank(store, key: str):
    from common.store.schema import BANK_CONFIGURATIONS

    bank = store.get(BANK_CONFIGURATIONS, key)
    if bank is not None:
        return bank
    wanted = key.strip().casefold()
    for record in store.records(BANK_CONFIGURATIONS):
        if record.name.strip().casefold() == wanted:
            return record
    return None


def _render_markdown(result, report=None) -> str:
    stats = result.stats
    lines = [
        "# Import Review",
        "",
        "## Totals",
        f"- rows: {stats.total_rows}",
        f"- ready: {stats.ready}",
        f"- warning: {stats.warning}",
        f"- error: {stats.error}",
        f"- duplicates: {stats.duplicates}",
        f"- suppressed: {stats.suppressed}",
        f"- failed rows: {stats.failed_rows}",
        "",
        "## Candidates",
    ]
    for c in result.candidates:
        flag = " (duplicate)" if c.is_duplicate else ""
        date_text = c.date.isoformat() if c.date else "?"
        lines.append(f"- row {c.row_index}: {c.status.value}{flag} | {date_text} | {c.description} | {c.amount}")
        for error in c.errors:
            lines.append(f"  - error: {error}")
        for warning in c.warnings:
            lines.append(f"  - warning: {warning}")
    if result.suppressed:
        lines.append("")
        lines.append("## Suppressed")
        for row in result.suppressed:
            lines.append(f"- row {row.row_index}: {row.rule_name or row.rule_id}")
    if report is not None:
        lines.append("")
        lines.append("## Commit")
        lines.append(f"- committed: {len(report.committed)}")
        for failure in report.failures:
            lines.append(f"- row {failure.row_index} failed: {failure.message}")
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Import a bank statement CSV into review candidates, optionally committing them."
    )
    parser.add_argument("--bank", required=True, help="Bank configuration id or name.")
    parser.add_argument("--csv", required=True, help="Path to the statement file.")
    parser.add_argument(
        "--snapshot-dir",
        default=None,
        help="Directory of table JSON files (defaults to SNAPSHOT_DIR). Seeded defaults are used when empty.",
    )
    parser.add_argument("--commit", action="store_true", help="Commit ready and warning rows, then save tables.")
    parser.add_argument("--account", default=None, help="Account id for rows without an account mapping.")
    parser.add_argument("--format", choices=("json", "markdown"), default="markdown")
    args = parser.parse_args(argv)

    _ensure_backend_on_path()
    from common.logging import setup_logging_from_settings
    from common.settings import get_settings
    from common.store.store import RelationalStore
    from pipelines.candidates import ImportConfig
    from pipelines.duplicates import DuplicatePolicy
    from pipelines.importer import ImportPipeline
    from pipelines.parsing import read_rows
    from pipelines.review import ReviewQueue
    from pipelines.snapshots import LocalTableSnapshotStore, load_store, save_store

    settings = get_settings()
    setup_logging_from_settings(settings)

    snapshots = LocalTableSnapshotStore(root_dir=Path(args.snapshot_dir) if args.snapshot_dir else settings.snapshot_dir)
    tables = snapshots.load_tables()
    if tables:
        store = RelationalStore()
        issues = load_store(store, snapshots)
        for issue in issues:
            print(
                f"warning: {issue.table}.{issue.field} on {issue.record_id} points at missing "
                f"{issue.target_table} {issue.value!r}",
                file=sys.stderr,
            )
    else:
        store = RelationalStore.with_defaults()

    bank = _find_bank(store, args.bank)
    if bank is None:
        print(f"error: unknown bank configuration {args.bank!r}", file=sys.stderr)
        return 2

    csv_path = Path(args.csv)
    text = csv_path.read_text(encoding=bank.settings.encoding or "utf-8")
    config = ImportConfig(
        batch_size=settings.import_batch_size,
        duplicates=DuplicatePolicy(
            amount_tolerance=settings.duplicate_amount_tolerance,
            prefix_length=settings.duplicate_prefix_length,
        ),
    )
    result = ImportPipeline(store, config=config).run(read_rows(text, bank.settings), bank, source_name=csv_path.name)

    report = None
    if args.commit:
        report = ReviewQueue(result.candidates).commit(store, account_id=args.account)
        save_store(store, snapshots)

    if args.format == "json":
        payload = {"import": result.model_dump(mode="json")}
        if report is not None:
            payload["commit"] = {
                "committed": report.committed,
                "failures": [{"row_index": f.row_index, "message": f.message} for f in report.failures],
                "skipped": report.skipped,
            }
        print(json.dumps(payload, indent=2))
    else:
        print(_render_markdown(result, report))

    return 1 if report is not None and report.failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
