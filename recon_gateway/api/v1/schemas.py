"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import Any, Dict, List, Optional

from recon_gateway.domain.models import ReconciliationReport, RowResult


class StatementRowSchema(BaseModel):
    """Pre-structured statement row; values are validated per row, not per request"""

    transactionId: Optional[str] = None
    amount: Optional[Any] = None
    accountReference: Optional[str] = None
    msisdn: Optional[str] = None
    timestamp: Optional[str] = None


class ReconcileRequest(BaseModel):
    """Request body for POST /v1/reconciliations"""

    csv: Optional[str] = Field(None, description="Raw comma-delimited statement export")
    rows: Optional[List[StatementRowSchema]] = Field(None, description="Already structured rows")
    dry_run: bool = Field(False, description="Evaluate without posting payments")

    @model_validator(mode="after")
    def require_csv_or_rows(self) -> "ReconcileRequest":
        if not self.rows and not (self.csv and self.csv.strip()):
            raise ValueError("Provide either csv (string) or rows (array) in request body")
        return self


class RowResultSchema(BaseModel):
    """Outcome for one statement row"""

    row_number: int
    external_txn_id: Optional[str] = None
    amount_cents: Optional[int] = None
    raw_amount: Optional[str] = None
    status: str
    reason: Optional[str] = None
    detail: Optional[str] = None
    invoice_id: Optional[str] = None
    applied_cents: Optional[int] = None
    overpayment_cents: Optional[int] = None
    new_balance_cents: Optional[int] = None
    match_basis: Optional[str] = None
    candidate_invoice_ids: List[str] = []
    simulated: bool = False

    @classmethod
    def from_result(cls, row: RowResult) -> "RowResultSchema":
        return cls(
            row_number=row.row_number,
            external_txn_id=row.external_txn_id,
            amount_cents=row.amount_cents,
            raw_amount=row.raw_amount,
            status=row.status.value,
            reason=row.reason.value if row.reason else None,
            detail=row.detail,
            invoice_id=row.invoice_id,
            applied_cents=row.applied_cents,
            overpayment_cents=row.overpayment_cents,
            new_balance_cents=row.new_balance_cents,
            match_basis=row.match_basis.value if row.match_basis else None,
            candidate_invoice_ids=row.candidate_invoice_ids,
            simulated=row.simulated,
        )


class ReconcileResponse(BaseModel):
    """Response for POST /v1/reconciliations"""

    tenant_id: str
    dry_run: bool
    counts: Dict[str, int]
    total_applied_cents: int
    total_overpayment_cents: int
    rows: List[RowResultSchema]

    @classmethod
    def from_report(cls, report: ReconciliationReport) -> "ReconcileResponse":
        return cls(
            tenant_id=report.tenant_id,
            dry_run=report.dry_run,
            counts=report.counts,
            total_applied_cents=report.total_applied_cents,
            total_overpayment_cents=report.total_overpayment_cents,
            rows=[RowResultSchema.from_result(row) for row in report.rows],
        )


class LedgerEntry(BaseModel):
    """Single reconciled transaction"""

    external_txn_id: str
    invoice_id: str
    applied_cents: int
    overpayment_cents: int
    reconciled_at: datetime


class LedgerHistoryResponse(BaseModel):
    """Response for GET /v1/reconciliations/history"""

    tenant_id: str
    entries: List[LedgerEntry]
