"""Pytest fixtures for testing"""

import pytest
from datetime import date, datetime
from typing import Dict, Generator, List, Optional, Set, Tuple
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from recon_gateway.api.main import create_app
from recon_gateway.infrastructure.database.models import Base, Invoice
from recon_gateway.infrastructure.database.session import get_db
from recon_gateway.domain.exceptions import PostingFailedError
from recon_gateway.domain.models import InvoiceCandidate


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TENANT = "tenant_a"


class InMemoryInvoiceStore:
    """Invoice store double with the same atomic, non-negative guarantee as the SQL store"""

    def __init__(self):
        self.invoices: Dict[str, InvoiceCandidate] = {}
        self.balances: Dict[str, int] = {}
        self.payments: List[Tuple[str, str, int, str]] = []
        self.fail_for: Set[str] = set()

    def add(
        self,
        invoice_id: str,
        reference: str,
        outstanding_cents: int,
        phone: Optional[str] = None,
        tenant_id: str = TENANT,
    ) -> InvoiceCandidate:
        candidate = InvoiceCandidate(
            invoice_id=invoice_id,
            tenant_id=tenant_id,
            reference_code=reference,
            phone=phone,
            outstanding_cents=outstanding_cents,
            issue_date=date(2024, 1, 1),
        )
        self.invoices[invoice_id] = candidate
        self.balances[invoice_id] = outstanding_cents
        return candidate

    def load_open_invoices(self, tenant_id: str) -> List[InvoiceCandidate]:
        return [
            InvoiceCandidate(
                invoice_id=c.invoice_id,
                tenant_id=c.tenant_id,
                reference_code=c.reference_code,
                phone=c.phone,
                outstanding_cents=self.balances[c.invoice_id],
                issue_date=c.issue_date,
            )
            for c in self.invoices.values()
            if c.tenant_id == tenant_id and self.balances[c.invoice_id] > 0
        ]

    def apply_payment(self, tenant_id: str, invoice_id: str, amount_cents: int, external_txn_id: str) -> int:
        if invoice_id in self.fail_for:
            raise PostingFailedError(f"Invoice {invoice_id} is locked")
        invoice = self.invoices.get(invoice_id)
        if invoice is None or invoice.tenant_id != tenant_id:
            raise PostingFailedError(f"Invoice {invoice_id} not found")
        if self.balances[invoice_id] < amount_cents:
            raise PostingFailedError(f"Invoice {invoice_id} balance too low")
        self.balances[invoice_id] -= amount_cents
        self.payments.append((tenant_id, invoice_id, amount_cents, external_txn_id))
        return self.balances[invoice_id]


class InMemoryDedupStore:
    """Dedup ledger double keyed by (tenant, external transaction id)"""

    def __init__(self):
        self.entries: Dict[Tuple[str, str], dict] = {}

    def has(self, tenant_id: str, external_txn_id: str) -> bool:
        return (tenant_id, external_txn_id) in self.entries

    def record(
        self,
        tenant_id: str,
        external_txn_id: str,
        invoice_id: str,
        amount_cents: int,
        reconciled_at: datetime,
        overpayment_cents: int = 0,
    ) -> None:
        key = (tenant_id, external_txn_id)
        if key in self.entries:
            raise PostingFailedError(f"Transaction {external_txn_id} already recorded")
        self.entries[key] = {
            "invoice_id": invoice_id,
            "applied_cents": amount_cents,
            "overpayment_cents": overpayment_cents,
            "reconciled_at": reconciled_at,
        }


@pytest.fixture
def invoice_store() -> InMemoryInvoiceStore:
    return InMemoryInvoiceStore()


@pytest.fixture
def dedup_store() -> InMemoryDedupStore:
    return InMemoryDedupStore()


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def seeded_invoices(db: Session) -> Dict[str, Invoice]:
    """Open invoices for the test tenant plus one for another tenant"""
    invoices = {
        "INV-001": Invoice(
            tenant_id=TENANT, invoice_no="INV-001", customer_phone="0712345678",
            total_cents=100000, balance_cents=100000, issue_date=date(2024, 1, 5),
        ),
        "INV-002": Invoice(
            tenant_id=TENANT, invoice_no="INV-002", customer_phone="0722000111",
            total_cents=250000, balance_cents=250000, issue_date=date(2024, 1, 8),
        ),
        "INV-003": Invoice(
            tenant_id=TENANT, invoice_no="INV-003", customer_phone="0733000222",
            total_cents=75050, balance_cents=75050, issue_date=date(2024, 1, 9),
        ),
        "OTHER-001": Invoice(
            tenant_id="tenant_b", invoice_no="INV-001", customer_phone="0712345678",
            total_cents=100000, balance_cents=100000, issue_date=date(2024, 1, 5),
        ),
    }
    db.add_all(invoices.values())
    db.commit()
    return invoices


@pytest.fixture
def sample_statement() -> str:
    """M-Pesa style export covering every outcome"""
    return "\n".join(
        [
            "Receipt No., Completion Time, Paid In, Account Reference, MSISDN",
            "QAB1,2024-02-01 10:00:00,\"1,000.00\",inv-001,254712345678",
            "QAB2,2024-02-01 11:00:00,2500.00,,0722000111",
            "QAB3,2024-02-02 09:30:00,750.50,,",
            "QAB4,2024-02-02 09:45:00,42.00,UNKNOWN,",
            "QAB5,2024-02-03 08:00:00,abc,INV-002,",
        ]
    )
