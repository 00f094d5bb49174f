"""In-memory lookup structure over a tenant's open invoices for one run"""

import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set

from recon_gateway.domain.models import InvoiceCandidate


def normalize_reference(raw: str | None) -> str:
    """Trim, uppercase and drop non-alphanumerics: ' inv-0042 ' -> 'INV0042'"""
    if not raw:
        return ""
    return re.sub(r"[^A-Z0-9]", "", raw.upper())


@dataclass
class CandidateSlot:
    """Mutable local view of one invoice; the snapshot itself stays untouched"""

    candidate: InvoiceCandidate
    remaining_cents: int

    @property
    def invoice_id(self) -> str:
        return self.candidate.invoice_id

    @property
    def is_open(self) -> bool:
        return self.remaining_cents > 0


class CandidateIndex:
    """
    Lookup over open invoices keyed by reference code, debtor phone and
    outstanding amount.

    Slots live in a flat list addressed by invoice id; every lookup structure
    holds ids only, so reducing a balance updates one slot in place and
    re-buckets it by amount. A slot that reaches zero is settled and is
    retired from all lookups.
    """

    def __init__(self, candidates: Iterable[InvoiceCandidate]):
        self._slots: List[CandidateSlot] = []
        self._position: Dict[str, int] = {}
        self._by_reference: Dict[str, str] = {}
        self._by_phone: Dict[str, Set[str]] = defaultdict(set)
        self._by_amount: Dict[int, Set[str]] = defaultdict(set)

        reference_owners: Dict[str, Set[str]] = defaultdict(set)

        for candidate in candidates:
            if candidate.outstanding_cents <= 0 or candidate.invoice_id in self._position:
                continue
            self._position[candidate.invoice_id] = len(self._slots)
            self._slots.append(CandidateSlot(candidate, candidate.outstanding_cents))

            reference = normalize_reference(candidate.reference_code)
            if reference:
                reference_owners[reference].add(candidate.invoice_id)
            if candidate.phone:
                self._by_phone[candidate.phone].add(candidate.invoice_id)
            self._by_amount[candidate.outstanding_cents].add(candidate.invoice_id)

        # Colliding references are left to the fallback stages
        for reference, owners in reference_owners.items():
            if len(owners) == 1:
                self._by_reference[reference] = next(iter(owners))

    def __len__(self) -> int:
        return sum(1 for slot in self._slots if slot.is_open)

    def get(self, invoice_id: str) -> Optional[CandidateSlot]:
        position = self._position.get(invoice_id)
        return None if position is None else self._slots[position]

    def remaining(self, invoice_id: str) -> int:
        slot = self.get(invoice_id)
        if slot is None:
            raise KeyError(invoice_id)
        return slot.remaining_cents

    def by_reference(self, reference: str | None) -> Optional[str]:
        invoice_id = self._by_reference.get(normalize_reference(reference))
        if invoice_id is None or not self._slots[self._position[invoice_id]].is_open:
            return None
        return invoice_id

    def by_phone(self, phone: str | None) -> List[CandidateSlot]:
        if not phone:
            return []
        return self._ordered(self._by_phone.get(phone, ()))

    def by_amount(self, amount_cents: int) -> List[CandidateSlot]:
        return self._ordered(self._by_amount.get(amount_cents, ()))

    def apply_allocation(self, invoice_id: str, applied_cents: int) -> int:
        """Reduce the local balance view after an allocation; returns the new balance"""
        slot = self.get(invoice_id)
        if slot is None:
            raise KeyError(invoice_id)
        if applied_cents < 0 or applied_cents > slot.remaining_cents:
            raise ValueError(
                f"Cannot apply {applied_cents} to invoice {invoice_id} with {slot.remaining_cents} outstanding"
            )

        self._by_amount[slot.remaining_cents].discard(invoice_id)
        slot.remaining_cents -= applied_cents

        if slot.is_open:
            self._by_amount[slot.remaining_cents].add(invoice_id)
        elif slot.candidate.phone:
            self._by_phone[slot.candidate.phone].discard(invoice_id)

        return slot.remaining_cents

    def _ordered(self, invoice_ids: Iterable[str]) -> List[CandidateSlot]:
        # Load order keeps candidate lists deterministic
        positions = sorted(self._position[invoice_id] for invoice_id in invoice_ids)
        return [self._slots[p] for p in positions if self._slots[p].is_open]
