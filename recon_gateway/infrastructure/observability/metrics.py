"""Prometheus metrics for monitoring match rates, posted amounts, and webhook performance"""

from prometheus_client import Counter, Histogram

from recon_gateway.domain.models import ReconciliationReport, RowReason, RowStatus

# Reconciliation metrics
reconciliation_run_counter = Counter(
    "recon_runs_total",
    "Total reconciliation runs",
    ["mode"],  # live | dry_run
)

reconciliation_row_counter = Counter(
    "recon_rows_total",
    "Statement rows processed by outcome",
    ["status"],  # matched | skipped | unmatched | ambiguous | errored
)

applied_cents_counter = Counter(
    "recon_applied_cents_total",
    "Amount posted to invoices (live runs only)",
)

overpayment_cents_counter = Counter(
    "recon_overpayment_cents_total",
    "Overpaid amount reported for manual handling (live runs only)",
)

posting_failures_counter = Counter(
    "recon_posting_failures_total",
    "Allocations rejected by the invoice store",
)

invalid_batch_counter = Counter(
    "recon_invalid_batches_total",
    "Statements rejected as unparseable",
)

reconciliation_duration_histogram = Histogram(
    "recon_run_duration_seconds",
    "Time to reconcile one statement",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

# Webhook metrics
webhook_latency_histogram = Histogram(
    "webhook_latency_seconds",
    "Ledger webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "webhook_failures_total",
    "Failed webhook deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_reconciliation(report: ReconciliationReport, duration_seconds: float) -> None:
    """Record run metrics for monitoring match quality and posted amounts"""
    reconciliation_run_counter.labels(mode="dry_run" if report.dry_run else "live").inc()
    reconciliation_duration_histogram.observe(duration_seconds)

    for row in report.rows:
        reconciliation_row_counter.labels(status=row.status.value).inc()
        if row.status == RowStatus.ERRORED and row.reason == RowReason.POSTING_FAILED:
            posting_failures_counter.inc()

    if not report.dry_run:
        applied_cents_counter.inc(report.total_applied_cents)
        overpayment_cents_counter.inc(report.total_overpayment_cents)
