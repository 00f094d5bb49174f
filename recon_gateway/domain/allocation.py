"""Allocation & posting - applies a matched transaction to an invoice balance"""

import logging
from contextlib import nullcontext
from datetime import datetime
from typing import Callable, Tuple

from recon_gateway.domain.exceptions import PostingFailedError
from recon_gateway.domain.models import (
    AllocationResult,
    Applied,
    Matched,
    Rejected,
    RowReason,
    TransactionRecord,
)
from recon_gateway.domain.ports import DedupStore, InvoiceStore, UnitOfWork
from recon_gateway.utils.date_utils import utc_now


def split_payment(amount_cents: int, outstanding_cents: int) -> Tuple[int, int]:
    """
    Split a payment into the part applied to the invoice and the overpayment.

    Returns: (applied_cents, overpayment_cents)

    Example:
        1200.00 against 1000.00 outstanding -> (100000, 20000)
    """
    applied = min(amount_cents, max(outstanding_cents, 0))
    return applied, amount_cents - applied


class AllocationUnit:
    """
    Posts allocations to the invoice store and dedup ledger.

    The balance mutation and the dedup entry are written inside one unit of
    work, dedup entry last; a PostingFailedError from either side rolls both
    back and the row is rejected with no dedup entry, so it can be retried.
    In dry-run mode nothing is written and results are tagged simulated.
    """

    def __init__(
        self,
        invoice_store: InvoiceStore,
        dedup_store: DedupStore,
        dry_run: bool = False,
        unit_of_work: UnitOfWork | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.invoice_store = invoice_store
        self.dedup_store = dedup_store
        self.dry_run = dry_run
        self.unit_of_work = unit_of_work or nullcontext
        self.clock = clock

    def allocate(
        self,
        tenant_id: str,
        record: TransactionRecord,
        decision: Matched,
        outstanding_cents: int,
    ) -> AllocationResult:
        applied, overpayment = split_payment(record.amount_cents, outstanding_cents)

        if self.dry_run:
            return Applied(
                invoice_id=decision.invoice_id,
                applied_cents=applied,
                new_balance_cents=outstanding_cents - applied,
                overpayment_cents=overpayment,
                simulated=True,
            )

        try:
            with self.unit_of_work():
                new_balance = self.invoice_store.apply_payment(
                    tenant_id, decision.invoice_id, applied, record.external_txn_id
                )
                self.dedup_store.record(
                    tenant_id,
                    record.external_txn_id,
                    decision.invoice_id,
                    applied,
                    self.clock(),
                    overpayment_cents=overpayment,
                )
        except PostingFailedError as e:
            logging.warning(
                f"Posting failed: {e}",
                extra={
                    "tenant_id": tenant_id,
                    "external_txn_id": record.external_txn_id,
                    "invoice_id": decision.invoice_id,
                },
            )
            return Rejected(reason=RowReason.POSTING_FAILED, detail=str(e))

        return Applied(
            invoice_id=decision.invoice_id,
            applied_cents=applied,
            new_balance_cents=new_balance,
            overpayment_cents=overpayment,
        )
