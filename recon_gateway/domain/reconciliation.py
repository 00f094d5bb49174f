"""Reconciliation run - core business logic tying the pipeline together"""

import logging
from datetime import datetime
from typing import Callable, Iterable, Set

from recon_gateway.domain.aggregator import ResultAggregator
from recon_gateway.domain.allocation import AllocationUnit
from recon_gateway.domain.candidate_index import CandidateIndex
from recon_gateway.domain.matching import MatchingEngine
from recon_gateway.domain.models import (
    Ambiguous,
    Applied,
    Matched,
    ReconciliationReport,
    Rejected,
    RowReason,
    RowResult,
    RowStatus,
    StatementRow,
    TransactionRecord,
    Unmatched,
)
from recon_gateway.domain.normalizer import parse_statement
from recon_gateway.domain.ports import DedupStore, InvoiceStore, UnitOfWork
from recon_gateway.utils.date_utils import utc_now
from recon_gateway.utils.phone_utils import DEFAULT_COUNTRY_CODE


def _parse_failure_result(row: StatementRow) -> RowResult:
    return RowResult(
        row_number=row.row_number,
        status=RowStatus.ERRORED,
        external_txn_id=row.failure.raw_txn_id,
        amount_cents=row.failure.amount_cents,
        raw_amount=row.failure.raw_amount,
        reason=RowReason.PARSE_ERROR,
        detail=row.failure.detail,
    )


def _row_result(row_number: int, record: TransactionRecord, status: RowStatus, **fields) -> RowResult:
    return RowResult(
        row_number=row_number,
        status=status,
        external_txn_id=record.external_txn_id,
        amount_cents=record.amount_cents,
        **fields,
    )


def reconcile_rows(
    rows: Iterable[StatementRow],
    tenant_id: str,
    invoice_store: InvoiceStore,
    dedup_store: DedupStore,
    dry_run: bool = False,
    amount_tolerance_cents: int = 0,
    unit_of_work: UnitOfWork | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> ReconciliationReport:
    """
    Reconcile already-normalized statement rows for one tenant.

    Flow per row, in statement order:
    1. Parse failures are reported as errored
    2. Transaction ids already in the dedup ledger (or applied earlier in this
       run) are skipped as already_reconciled
    3. The matching engine searches the candidate index
    4. Matched rows are allocated; the local balance view is reduced at once so
       later rows see the updated balance

    Rows are posted one at a time, so a run aborted between rows keeps every
    posting made so far and can be resumed by re-running the statement.
    """
    index = CandidateIndex(invoice_store.load_open_invoices(tenant_id))
    engine = MatchingEngine(index, amount_tolerance_cents)
    allocator = AllocationUnit(invoice_store, dedup_store, dry_run=dry_run, unit_of_work=unit_of_work, clock=clock)
    aggregator = ResultAggregator(tenant_id, dry_run=dry_run)

    # Also consulted in dry run, where nothing reaches the dedup ledger
    applied_in_run: Set[str] = set()

    logging.info(
        "Reconciliation started",
        extra={"tenant_id": tenant_id, "dry_run": dry_run, "open_invoices": len(index)},
    )

    for row in rows:
        if row.failed:
            aggregator.add(_parse_failure_result(row))
            continue

        record = row.record
        if record.external_txn_id in applied_in_run or dedup_store.has(tenant_id, record.external_txn_id):
            aggregator.add(
                _row_result(row.row_number, record, RowStatus.SKIPPED, reason=RowReason.ALREADY_RECONCILED)
            )
            continue

        decision = engine.match(record)

        if isinstance(decision, Ambiguous):
            aggregator.add(
                _row_result(
                    row.row_number,
                    record,
                    RowStatus.AMBIGUOUS,
                    reason=RowReason.AMBIGUOUS_MATCH,
                    match_basis=decision.basis,
                    candidate_invoice_ids=list(decision.candidate_ids),
                )
            )
        elif isinstance(decision, Unmatched):
            aggregator.add(_row_result(row.row_number, record, RowStatus.UNMATCHED, reason=decision.reason))
        elif isinstance(decision, Matched):
            outstanding = index.remaining(decision.invoice_id)
            result = allocator.allocate(tenant_id, record, decision, outstanding)

            if isinstance(result, Applied):
                index.apply_allocation(decision.invoice_id, result.applied_cents)
                applied_in_run.add(record.external_txn_id)
                aggregator.add(
                    _row_result(
                        row.row_number,
                        record,
                        RowStatus.MATCHED,
                        invoice_id=result.invoice_id,
                        applied_cents=result.applied_cents,
                        overpayment_cents=result.overpayment_cents,
                        new_balance_cents=result.new_balance_cents,
                        match_basis=decision.basis,
                        simulated=result.simulated,
                    )
                )
            elif isinstance(result, Rejected):
                aggregator.add(
                    _row_result(
                        row.row_number,
                        record,
                        RowStatus.ERRORED,
                        reason=result.reason,
                        detail=result.detail,
                        invoice_id=decision.invoice_id,
                        match_basis=decision.basis,
                    )
                )
            else:
                raise TypeError(f"Unexpected allocation result: {result!r}")
        else:
            raise TypeError(f"Unexpected match decision: {decision!r}")

    return aggregator.report()


def reconcile_statement(
    statement_text: str,
    tenant_id: str,
    invoice_store: InvoiceStore,
    dedup_store: DedupStore,
    dry_run: bool = False,
    amount_tolerance_cents: int = 0,
    country_code: str = DEFAULT_COUNTRY_CODE,
    unit_of_work: UnitOfWork | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> ReconciliationReport:
    """
    Main entry point: parse a raw statement export and reconcile it.

    Raises:
        InvalidBatchError: Statement is not tabular data; no row is processed
    """
    statement = parse_statement(statement_text, country_code=country_code)
    return reconcile_rows(
        statement,
        tenant_id,
        invoice_store,
        dedup_store,
        dry_run=dry_run,
        amount_tolerance_cents=amount_tolerance_cents,
        unit_of_work=unit_of_work,
        clock=clock,
    )
