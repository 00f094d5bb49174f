"""Matching engine - staged search of the candidate index for one transaction"""

from typing import List

from recon_gateway.domain.candidate_index import CandidateIndex, CandidateSlot
from recon_gateway.domain.models import (
    Ambiguous,
    MatchBasis,
    MatchDecision,
    Matched,
    RowReason,
    TransactionRecord,
    Unmatched,
)


class MatchingEngine:
    """
    Apply matching stages in order, stopping at the first that finds anything:

    1. Exact reference: normalized account reference equals an invoice reference
    2. Phone + amount: same debtor phone and amount within tolerance of the
       outstanding balance; a phone with several open invoices needs an
       exact amount
    3. Amount only: amount equals exactly one open balance tenant-wide

    A stage with several candidates returns Ambiguous; later stages are not
    consulted, since picking one would risk misapplied funds.
    """

    def __init__(self, index: CandidateIndex, amount_tolerance_cents: int = 0):
        if amount_tolerance_cents < 0:
            raise ValueError("amount_tolerance_cents must be >= 0")
        self.index = index
        self.amount_tolerance_cents = amount_tolerance_cents

    def match(self, record: TransactionRecord) -> MatchDecision:
        invoice_id = self.index.by_reference(record.account_reference)
        if invoice_id is not None:
            return Matched(invoice_id=invoice_id, basis=MatchBasis.EXACT_REFERENCE)

        decision = self._decide(self._phone_amount_candidates(record), MatchBasis.PHONE_AMOUNT)
        if decision is not None:
            return decision

        decision = self._decide(self.index.by_amount(record.amount_cents), MatchBasis.AMOUNT_UNIQUE)
        if decision is not None:
            return decision

        return Unmatched(reason=RowReason.NO_CANDIDATE)

    def _phone_amount_candidates(self, record: TransactionRecord) -> List[CandidateSlot]:
        slots = self.index.by_phone(record.phone)
        # Tolerance only applies when the phone has a single open invoice
        if len(slots) == 1:
            tolerance = self.amount_tolerance_cents
        else:
            tolerance = 0
        return [slot for slot in slots if abs(slot.remaining_cents - record.amount_cents) <= tolerance]

    @staticmethod
    def _decide(slots: List[CandidateSlot], basis: MatchBasis) -> MatchDecision | None:
        if not slots:
            return None
        if len(slots) == 1:
            return Matched(invoice_id=slots[0].invoice_id, basis=basis)
        return Ambiguous(candidate_ids=tuple(slot.invoice_id for slot in slots), basis=basis)
