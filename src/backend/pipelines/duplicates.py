from __future__ import annotations

import datetime as dt
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from common.store.models import Transaction


class DuplicatePolicy(BaseModel):
    """
    Thresholds for flagging an import row as a likely duplicate of a stored transaction.

    A match needs the same date, amounts within `amount_tolerance`, and one description
    containing the first `prefix_length` characters of the other.
    """

    amount_tolerance: Decimal = Field(default=Decimal("0.01"), ge=0)
    prefix_length: int = Field(default=10, ge=1)
    case_insensitive: bool = True
    # When False only the stored description is searched for the candidate's prefix.
    match_either_direction: bool = True

    def descriptions_match(self, stored: str, candidate: str) -> bool:
        stored = (stored or "").strip()
        candidate = (candidate or "").strip()
        if not stored or not candidate:
            return False
        if self.case_insensitive:
            stored = stored.casefold()
            candidate = candidate.casefold()
        if candidate[: self.prefix_length] in stored:
            return True
        return self.match_either_direction and stored[: self.prefix_length] in candidate

    def amounts_match(self, stored: Decimal, candidate: Decimal) -> bool:
        # Strictly inside the tolerance: -5.50 and -5.51 are different amounts.
        return abs(stored - candidate) < self.amount_tolerance or stored == candidate


class DuplicateDetector:
    """Stored transactions indexed by date so each lookup only scans one day."""

    def __init__(self, transactions: Iterable[Transaction], policy: Optional[DuplicatePolicy] = None):
        self.policy = policy or DuplicatePolicy()
        self._by_date: Dict[dt.date, List[Transaction]] = defaultdict(list)
        for txn in transactions:
            self._by_date[txn.date].append(txn)

    def matches(self, *, date: Optional[dt.date], description: str, amount: Decimal) -> List[str]:
        if date is None:
            return []
        return [
            txn.id
            for txn in self._by_date.get(date, ())
            if self.policy.amounts_match(txn.amount, amount)
            and self.policy.descriptions_match(txn.description, description)
        ]

    def is_duplicate(self, *, date: Optional[dt.date], description: str, amount: Decimal) -> bool:
        return bool(self.matches(date=date, description=description, amount=amount))
