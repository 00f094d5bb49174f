"""POST /v1/reconciliations - reconcile a mobile-money statement against open invoices"""

import time
import logging
from fastapi import APIRouter, Depends, HTTPException, BackgroundTasks, Request
from sqlalchemy.orm import Session

from recon_gateway.api.v1.schemas import ReconcileRequest, ReconcileResponse
from recon_gateway.api.dependencies import get_ledger_client, get_request_id, get_tenant_id
from recon_gateway.config import settings
from recon_gateway.infrastructure.database.session import get_db, SessionUnitOfWork
from recon_gateway.infrastructure.database.repositories import AuditRepository, DedupRepository, InvoiceRepository
from recon_gateway.infrastructure.clients.ledger import LedgerClient, build_reconciliation_event
from recon_gateway.domain.exceptions import InvalidBatchError
from recon_gateway.domain.models import RowStatus
from recon_gateway.domain.normalizer import parse_statement, parse_structured_rows
from recon_gateway.domain.reconciliation import reconcile_rows
from recon_gateway.infrastructure.observability.metrics import record_reconciliation, invalid_batch_counter
from recon_gateway.infrastructure.observability.logging import log_reconciliation

router = APIRouter()


@router.post("/reconciliations", response_model=ReconcileResponse)
def create_reconciliation(
    request_body: ReconcileRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    ledger_client: LedgerClient = Depends(get_ledger_client),
):
    """
    Reconcile a statement for the caller's tenant.

    Flow:
    1. Normalize csv text or structured rows
    2. Match each row against open invoices and post allocations (one commit per row)
    3. Audit unmatched and ambiguous rows
    4. Send async webhook to ledger for posted payments
    5. Return the per-row report

    With dry_run the same report is produced but nothing is written.
    """
    start_time = time.time()
    request_id = get_request_id(request)
    country_code = settings.default_country_code

    try:
        # 1. Normalize input
        if request_body.rows:
            rows = parse_structured_rows(
                [row.model_dump() for row in request_body.rows],
                country_code=country_code,
            )
        else:
            rows = parse_statement(request_body.csv, country_code=country_code)

        # 2. Match and post
        report = reconcile_rows(
            rows,
            tenant_id,
            InvoiceRepository(db, country_code=country_code),
            DedupRepository(db),
            dry_run=request_body.dry_run,
            amount_tolerance_cents=settings.amount_tolerance_cents,
            unit_of_work=SessionUnitOfWork(db),
        )

        if request_body.dry_run:
            db.rollback()
        else:
            # 3. Audit rows needing manual follow-up
            AuditRepository(db).log_unresolved_rows(tenant_id, report.rows)
            db.commit()

            # 4. Schedule async webhook to ledger
            if any(row.status == RowStatus.MATCHED for row in report.rows):
                background_tasks.add_task(
                    ledger_client.send_reconciliation_event,
                    build_reconciliation_event(report, request_id),
                )

        # Record metrics and logs
        duration = time.time() - start_time
        record_reconciliation(report, duration)
        log_reconciliation(request_id, report, duration * 1000)

        return ReconcileResponse.from_report(report)

    except InvalidBatchError as e:
        invalid_batch_counter.inc()
        db.rollback()
        logging.warning(f"Invalid statement: {e}", extra={"request_id": request_id, "tenant_id": tenant_id})
        raise HTTPException(status_code=422, detail=str(e))

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id, "tenant_id": tenant_id})
        raise HTTPException(status_code=500, detail="Internal server error")
