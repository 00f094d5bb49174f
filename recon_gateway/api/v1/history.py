"""GET /v1/reconciliations/history - Fetch the tenant's reconciled transactions"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from recon_gateway.api.v1.schemas import LedgerHistoryResponse, LedgerEntry
from recon_gateway.api.dependencies import get_tenant_id
from recon_gateway.infrastructure.database.session import get_db
from recon_gateway.infrastructure.database.repositories import DedupRepository

router = APIRouter()


@router.get("/reconciliations/history", response_model=LedgerHistoryResponse)
def get_reconciliation_history(
    limit: int = Query(50, ge=1, le=500, description="Maximum entries to return"),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    """
    Retrieve recent dedup ledger entries for the tenant.

    Returns:
        Reconciled transactions, newest first
    """
    dedup_repo = DedupRepository(db)
    entries = dedup_repo.get_entries(tenant_id, limit=limit)

    return LedgerHistoryResponse(
        tenant_id=tenant_id,
        entries=[
            LedgerEntry(
                external_txn_id=e.external_txn_id,
                invoice_id=e.invoice_id,
                applied_cents=e.applied_cents,
                overpayment_cents=e.overpayment_cents,
                reconciled_at=e.reconciled_at,
            )
            for e in entries
        ],
    )
