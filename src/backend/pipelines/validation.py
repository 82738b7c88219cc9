from __future__ import annotations

from typing import List, Tuple

from .candidates import CandidateStatus, ImportCandidate


def validate_candidate(candidate: ImportCandidate) -> Tuple[List[str], List[str]]:
    """Return (errors, warnings) for one candidate; errors block commit, warnings need review."""
    errors: List[str] = []
    warnings: List[str] = []

    if candidate.date is None:
        errors.append("Missing or invalid date - check date field mapping")
    if not candidate.description.strip():
        errors.append("Missing description - check description field mapping")
    if not candidate.amount.is_finite() or candidate.amount == 0:
        errors.append("Invalid amount - check amount/debit/credit field mapping")
    if not candidate.subcategory_id:
        errors.append("Missing subcategory - transaction classification required")

    if not candidate.account_id:
        warnings.append("No account mapping - will need manual assignment during review")

    kind = candidate.transaction_type.strip().lower()
    if kind == "income" and not candidate.payer:
        warnings.append("Income transaction missing payer")
    if kind == "expenses" and not candidate.payee:
        warnings.append("Expenses transaction missing payee")
    if kind == "transfer" and not candidate.destination_account_id:
        warnings.append("Transfer transaction missing destination account")
    if "investment" in kind:
        if not candidate.destination_account_id:
            warnings.append("Investment transaction missing destination account")
        if not candidate.destination_amount:
            warnings.append("Investment transaction missing destination amount")
        if not candidate.payee and not candidate.payer:
            warnings.append("Investment transaction missing broker (payee or payer)")

    return errors, warnings


def status_for(errors: List[str], warnings: List[str]) -> CandidateStatus:
    if errors:
        return CandidateStatus.ERROR
    if warnings:
        return CandidateStatus.WARNING
    return CandidateStatus.READY
