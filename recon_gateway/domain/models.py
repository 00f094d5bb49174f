"""Domain models - pure Python dataclasses representing reconciliation entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple


class MatchBasis(str, Enum):
    """Which matching rule produced a decision"""

    EXACT_REFERENCE = "exact_reference"
    PHONE_AMOUNT = "phone_amount"
    AMOUNT_UNIQUE = "amount_unique"


class RowStatus(str, Enum):
    MATCHED = "matched"
    SKIPPED = "skipped"
    UNMATCHED = "unmatched"
    AMBIGUOUS = "ambiguous"
    ERRORED = "errored"


class RowReason(str, Enum):
    PARSE_ERROR = "parse_error"
    ALREADY_RECONCILED = "already_reconciled"
    NO_CANDIDATE = "no_candidate"
    AMBIGUOUS_MATCH = "ambiguous_match"
    POSTING_FAILED = "posting_failed"


@dataclass(frozen=True)
class TransactionRecord:
    """One parsed statement line"""

    external_txn_id: str
    amount_cents: int
    account_reference: Optional[str] = None
    phone: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class ParseFailure:
    """Statement line that could not be turned into a TransactionRecord"""

    detail: str
    raw_txn_id: Optional[str] = None
    raw_amount: Optional[str] = None
    amount_cents: Optional[int] = None  # Set when the amount itself was valid


@dataclass(frozen=True)
class StatementRow:
    """Row number paired with either a parsed record or a parse failure"""

    row_number: int
    record: Optional[TransactionRecord] = None
    failure: Optional[ParseFailure] = None

    @property
    def failed(self) -> bool:
        return self.failure is not None


@dataclass(frozen=True)
class InvoiceCandidate:
    """Read projection of an open invoice"""

    invoice_id: str
    tenant_id: str
    reference_code: str
    phone: Optional[str]
    outstanding_cents: int
    issue_date: Optional[date] = None


# Match decisions


@dataclass(frozen=True)
class Matched:
    invoice_id: str
    basis: MatchBasis


@dataclass(frozen=True)
class Ambiguous:
    candidate_ids: Tuple[str, ...]
    basis: MatchBasis


@dataclass(frozen=True)
class Unmatched:
    reason: RowReason = RowReason.NO_CANDIDATE


MatchDecision = Matched | Ambiguous | Unmatched


# Allocation results


@dataclass(frozen=True)
class Applied:
    invoice_id: str
    applied_cents: int
    new_balance_cents: int
    overpayment_cents: int
    simulated: bool = False

    @property
    def settled(self) -> bool:
        return self.new_balance_cents == 0


@dataclass(frozen=True)
class Rejected:
    reason: RowReason
    detail: Optional[str] = None


AllocationResult = Applied | Rejected


@dataclass
class RowResult:
    """Outcome for a single statement row"""

    row_number: int
    status: RowStatus
    external_txn_id: Optional[str] = None
    amount_cents: Optional[int] = None
    raw_amount: Optional[str] = None
    reason: Optional[RowReason] = None
    detail: Optional[str] = None
    invoice_id: Optional[str] = None
    applied_cents: Optional[int] = None
    overpayment_cents: Optional[int] = None
    new_balance_cents: Optional[int] = None
    match_basis: Optional[MatchBasis] = None
    candidate_invoice_ids: List[str] = field(default_factory=list)
    simulated: bool = False


@dataclass
class ReconciliationReport:
    """Ordered per-row results plus aggregate counts for one run"""

    tenant_id: str
    dry_run: bool
    rows: List[RowResult]
    counts: Dict[str, int]
    total_applied_cents: int
    total_overpayment_cents: int
