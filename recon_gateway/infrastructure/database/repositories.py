"""Data access layer for invoices, the dedup ledger and the audit log"""

from datetime import datetime
from typing import List
from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from recon_gateway.infrastructure.database.models import Invoice, PaymentTransaction, ReconciledTransaction, SystemLog
from recon_gateway.domain.exceptions import PostingFailedError
from recon_gateway.domain.models import InvoiceCandidate, RowResult, RowStatus
from recon_gateway.utils.phone_utils import DEFAULT_COUNTRY_CODE, normalize_msisdn


class InvoiceRepository:
    """Repository for invoice balances; implements the InvoiceStore port"""

    def __init__(self, db: Session, country_code: str = DEFAULT_COUNTRY_CODE):
        self.db = db
        self.country_code = country_code

    def load_open_invoices(self, tenant_id: str) -> List[InvoiceCandidate]:
        """Snapshot of the tenant's invoices with a positive balance"""
        invoices = (
            self.db.query(Invoice)
            .filter(Invoice.tenant_id == tenant_id, Invoice.balance_cents > 0)
            .order_by(Invoice.issue_date, Invoice.invoice_no, Invoice.id)
            .all()
        )
        return [
            InvoiceCandidate(
                invoice_id=inv.id,
                tenant_id=inv.tenant_id,
                reference_code=inv.invoice_no,
                phone=normalize_msisdn(inv.customer_phone, self.country_code),
                outstanding_cents=inv.balance_cents,
                issue_date=inv.issue_date,
            )
            for inv in invoices
        ]

    def apply_payment(self, tenant_id: str, invoice_id: str, amount_cents: int, external_txn_id: str) -> int:
        """
        Reduce the balance and record the payment in the current transaction.

        The conditional UPDATE only succeeds while the balance still covers the
        amount, so two runs reading the same balance cannot both apply it.

        Raises:
            PostingFailedError: Invoice missing, balance too low, or database error
        """
        if amount_cents <= 0:
            raise PostingFailedError(f"Payment amount must be positive, got {amount_cents}")

        try:
            result = self.db.execute(
                update(Invoice)
                .where(
                    Invoice.id == invoice_id,
                    Invoice.tenant_id == tenant_id,
                    Invoice.balance_cents >= amount_cents,
                )
                .values(
                    balance_cents=Invoice.balance_cents - amount_cents,
                    status=case((Invoice.balance_cents == amount_cents, "Paid"), else_="Partially Paid"),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise PostingFailedError(
                    f"Invoice {invoice_id} not found or balance below {amount_cents} (concurrent modification?)"
                )

            new_balance = self.db.execute(
                select(Invoice.balance_cents).where(Invoice.id == invoice_id)
            ).scalar_one()

            self.db.add(
                PaymentTransaction(
                    tenant_id=tenant_id,
                    invoice_id=invoice_id,
                    reference=external_txn_id,
                    amount_cents=amount_cents,
                )
            )
            self.db.add(
                SystemLog(
                    tenant_id=tenant_id,
                    action="INVOICE_PAYMENT_RECONCILED",
                    entity_type="Invoice",
                    entity_id=invoice_id,
                    details={
                        "external_txn_id": external_txn_id,
                        "amount_cents": amount_cents,
                        "new_balance_cents": new_balance,
                    },
                )
            )
            self.db.flush()
        except SQLAlchemyError as e:
            raise PostingFailedError(f"Database error posting payment to invoice {invoice_id}: {e}") from e

        return new_balance


class DedupRepository:
    """Repository for the reconciled-transaction ledger; implements the DedupStore port"""

    def __init__(self, db: Session):
        self.db = db

    def has(self, tenant_id: str, external_txn_id: str) -> bool:
        return (
            self.db.query(ReconciledTransaction.id)
            .filter(
                ReconciledTransaction.tenant_id == tenant_id,
                ReconciledTransaction.external_txn_id == external_txn_id,
            )
            .first()
            is not None
        )

    def record(
        self,
        tenant_id: str,
        external_txn_id: str,
        invoice_id: str,
        amount_cents: int,
        reconciled_at: datetime,
        overpayment_cents: int = 0,
    ) -> None:
        """Insert a ledger entry; a unique-key clash means another run got there first"""
        self.db.add(
            ReconciledTransaction(
                tenant_id=tenant_id,
                external_txn_id=external_txn_id,
                invoice_id=invoice_id,
                applied_cents=amount_cents,
                overpayment_cents=overpayment_cents,
                reconciled_at=reconciled_at,
            )
        )
        try:
            self.db.flush()
        except IntegrityError as e:
            raise PostingFailedError(f"Transaction {external_txn_id} was reconciled by another run") from e

    def get_entries(self, tenant_id: str, limit: int = 100) -> List[ReconciledTransaction]:
        """Most recent ledger entries for a tenant"""
        return (
            self.db.query(ReconciledTransaction)
            .filter(ReconciledTransaction.tenant_id == tenant_id)
            .order_by(ReconciledTransaction.reconciled_at.desc())
            .limit(limit)
            .all()
        )


class AuditRepository:
    """Repository for system log entries about rows needing manual follow-up"""

    def __init__(self, db: Session):
        self.db = db

    def log_unresolved_rows(self, tenant_id: str, rows: List[RowResult], user_id: str | None = None) -> int:
        """Record unmatched and ambiguous rows; returns the number of entries added"""
        added = 0
        for row in rows:
            if row.status not in (RowStatus.UNMATCHED, RowStatus.AMBIGUOUS):
                continue
            self.db.add(
                SystemLog(
                    tenant_id=tenant_id,
                    user_id=user_id,
                    action="MPESA_UNMATCHED_PAYMENT",
                    entity_type="Invoice",
                    entity_id=row.external_txn_id,
                    details={
                        "row_number": row.row_number,
                        "amount_cents": row.amount_cents,
                        "status": row.status.value,
                        "reason": row.reason.value if row.reason else None,
                        "candidate_invoice_ids": row.candidate_invoice_ids,
                    },
                )
            )
            added += 1
        self.db.flush()
        return added
