"""Interfaces the reconciliation core requires from its external collaborators"""

from datetime import datetime
from typing import ContextManager, List, Protocol

from recon_gateway.domain.models import InvoiceCandidate


class InvoiceStore(Protocol):
    """Authoritative invoice balances"""

    def load_open_invoices(self, tenant_id: str) -> List[InvoiceCandidate]:
        ...

    def apply_payment(self, tenant_id: str, invoice_id: str, amount_cents: int, external_txn_id: str) -> int:
        """
        Atomically reduce the invoice balance by amount_cents and record the payment.

        Returns the new balance. Raises PostingFailedError if the balance would go
        negative or the store rejects the mutation.
        """
        ...


class DedupStore(Protocol):
    """Persistent ledger of external transaction ids already applied"""

    def has(self, tenant_id: str, external_txn_id: str) -> bool:
        ...

    def record(
        self,
        tenant_id: str,
        external_txn_id: str,
        invoice_id: str,
        amount_cents: int,
        reconciled_at: datetime,
        overpayment_cents: int = 0,
    ) -> None:
        ...


class UnitOfWork(Protocol):
    """Factory for an atomic scope around one posting; rolls back on exception"""

    def __call__(self) -> ContextManager[None]:
        ...
