from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import structlog

from common.store.errors import StoreError
from common.store.schema import PAYEES, PAYERS
from common.store.store import RelationalStore

from .candidates import CandidateStatus, ImportCandidate

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CommitFailure:
    row_index: int
    message: str


@dataclass
class CommitReport:
    committed: List[str] = field(default_factory=list)
    failures: List[CommitFailure] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)


class ReviewQueue:
    """Import candidates awaiting a human decision, filterable by status."""

    def __init__(self, candidates: Iterable[ImportCandidate]):
        self._candidates = list(candidates)

    def __len__(self) -> int:
        return len(self._candidates)

    def __iter__(self):
        return iter(self._candidates)

    def by_status(self, status: CandidateStatus | str) -> List[ImportCandidate]:
        status = CandidateStatus(status)
        return [c for c in self._candidates if c.status == status]

    def duplicates(self) -> List[ImportCandidate]:
        return [c for c in self._candidates if c.is_duplicate]

    def partition(self) -> Dict[str, List[ImportCandidate]]:
        groups: Dict[str, List[ImportCandidate]] = {status.value: [] for status in CandidateStatus}
        for candidate in self._candidates:
            groups[candidate.status.value].append(candidate)
        groups["duplicate"] = self.duplicates()
        return groups

    def committable(self, *, include_warnings: bool = True, skip_duplicates: bool = True) -> List[ImportCandidate]:
        allowed = {CandidateStatus.READY}
        if include_warnings:
            allowed.add(CandidateStatus.WARNING)
        return [
            c
            for c in self._candidates
            if c.status in allowed and not (skip_duplicates and c.is_duplicate)
        ]

    def commit(
        self,
        store: RelationalStore,
        *,
        include_warnings: bool = True,
        skip_duplicates: bool = True,
        account_id: Optional[str] = None,
    ) -> CommitReport:
        """Add each committable candidate through `store.add_transaction`.

        Each candidate is its own atomic store call; one failure does not stop the rest.
        `account_id` fills candidates that were imported without an account mapping.
        """
        report = CommitReport()
        selected = self.committable(include_warnings=include_warnings, skip_duplicates=skip_duplicates)
        selected_rows = {c.row_index for c in selected}
        report.skipped = [c.row_index for c in self._candidates if c.row_index not in selected_rows]

        for candidate in selected:
            try:
                txn = store.add_transaction(self._transaction_data(store, candidate, account_id))
            except StoreError as exc:
                report.failures.append(CommitFailure(row_index=candidate.row_index, message=exc.message))
                logger.warning("candidate_commit_failed", row_index=candidate.row_index, error=exc.message)
                continue
            report.committed.append(txn.id)

        logger.info(
            "import_committed",
            committed=len(report.committed),
            failed=len(report.failures),
            skipped=len(report.skipped),
        )
        return report

    @staticmethod
    def _transaction_data(
        store: RelationalStore,
        candidate: ImportCandidate,
        account_id: Optional[str],
    ) -> Dict[str, object]:
        return {
            "date": candidate.date,
            "description": candidate.description,
            "amount": candidate.amount,
            "account_id": candidate.account_id or account_id,
            "destination_account_id": candidate.destination_account_id,
            "destination_amount": candidate.destination_amount,
            "category_id": candidate.category_id,
            "subcategory_id": candidate.subcategory_id,
            "currency_id": candidate.currency_id,
            "payee_id": _party_id(store, PAYEES, candidate.payee),
            "payer_id": _party_id(store, PAYERS, candidate.payer),
            "reference": candidate.reference,
            "notes": candidate.notes,
        }


def _party_id(store: RelationalStore, table: str, name: str) -> Optional[str]:
    """Resolve a payee/payer by id or case-insensitive name, creating it when unknown."""
    name = (name or "").strip()
    if not name:
        return None
    if store.exists(table, name):
        return name
    wanted = name.casefold()
    for record in store.records(table):
        if record.name.strip().casefold() == wanted:
            return record.id
    return store.insert(table, {"name": name}).id
