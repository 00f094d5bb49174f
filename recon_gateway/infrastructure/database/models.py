"""SQLAlchemy ORM models for invoices, payments and the reconciliation ledger"""

import uuid
from sqlalchemy import Column, String, BigInteger, DateTime, Date, ForeignKey, Text, JSON, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class Invoice(Base):
    """Customer invoice with its outstanding balance"""

    __tablename__ = "invoice"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(Text, nullable=False, index=True)
    invoice_no = Column(Text, nullable=False)
    customer_phone = Column(Text, nullable=True)
    total_cents = Column(BigInteger, nullable=False)
    balance_cents = Column(BigInteger, nullable=False)
    status = Column(Text, nullable=False, default="Unpaid")
    issue_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    payments = relationship("PaymentTransaction", back_populates="invoice")


class PaymentTransaction(Base):
    """Credit recorded against an invoice"""

    __tablename__ = "payment_transaction"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(Text, nullable=False, index=True)
    invoice_id = Column(String(36), ForeignKey("invoice.id"), nullable=False)
    reference = Column(Text, nullable=False)  # External transaction id
    amount_cents = Column(BigInteger, nullable=False)
    type = Column(Text, nullable=False, default="Credit")
    method = Column(Text, nullable=False, default="MPESA")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    invoice = relationship("Invoice", back_populates="payments")


class ReconciledTransaction(Base):
    """Dedup ledger: one row per external transaction applied, never deleted"""

    __tablename__ = "reconciled_transaction"
    __table_args__ = (UniqueConstraint("tenant_id", "external_txn_id", name="uq_reconciled_tenant_txn"),)

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(Text, nullable=False)
    external_txn_id = Column(Text, nullable=False)
    invoice_id = Column(String(36), ForeignKey("invoice.id"), nullable=False)
    applied_cents = Column(BigInteger, nullable=False)
    overpayment_cents = Column(BigInteger, nullable=False, default=0)
    reconciled_at = Column(DateTime(timezone=True), nullable=False)


class SystemLog(Base):
    """Audit trail entry"""

    __tablename__ = "system_log"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(Text, nullable=False, index=True)
    user_id = Column(Text, nullable=True)
    action = Column(Text, nullable=False)
    entity_type = Column(Text, nullable=False)
    entity_id = Column(Text, nullable=False)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
