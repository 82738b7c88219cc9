from __future__ import annotations

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from common.rules_engine.models import RuleChange, RuleIssue

from .duplicates import DuplicatePolicy


class CandidateStatus(str, Enum):
    READY = "ready"
    WARNING = "warning"
    ERROR = "error"


class ImportCandidate(BaseModel):
    """A proposed transaction awaiting review. `is_duplicate` is a flag, not a status."""

    row_index: int
    source_name: str = ""

    date: Optional[dt.date] = None
    description: str = ""
    amount: Decimal = Decimal("0")
    account_id: Optional[str] = None
    destination_account_id: Optional[str] = None
    destination_amount: Optional[Decimal] = None
    transaction_type: str = ""
    transaction_group: str = ""
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    payee: str = ""
    payer: str = ""
    reference: str = ""
    tag: str = ""
    notes: str = ""
    currency_id: Optional[str] = None

    status: CandidateStatus = CandidateStatus.READY
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    is_duplicate: bool = False
    duplicate_of: List[str] = Field(default_factory=list)

    rules_applied: List[str] = Field(default_factory=list)
    rule_changes: List[RuleChange] = Field(default_factory=list)
    rule_issues: List[RuleIssue] = Field(default_factory=list)
    raw: Dict[str, Any] = Field(default_factory=dict)


class SuppressedRow(BaseModel):
    row_index: int
    source_name: str = ""
    rule_id: str
    rule_name: str = ""
    raw: Dict[str, Any] = Field(default_factory=dict)


class ImportStats(BaseModel):
    total_rows: int = 0
    candidates: int = 0
    suppressed: int = 0
    ready: int = 0
    warning: int = 0
    error: int = 0
    duplicates: int = 0
    rules_applied: int = 0
    rows_with_rules: int = 0
    failed_rows: int = 0


class ImportResult(BaseModel):
    candidates: List[ImportCandidate] = Field(default_factory=list)
    suppressed: List[SuppressedRow] = Field(default_factory=list)
    stats: ImportStats = Field(default_factory=ImportStats)


class ImportConfig(BaseModel):
    batch_size: int = Field(default=100, ge=1)
    duplicates: DuplicatePolicy = Field(default_factory=DuplicatePolicy)
