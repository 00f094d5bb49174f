"""Ledger webhook client with exponential backoff retry logic"""

import httpx
import asyncio
from typing import Dict, Any, List
from recon_gateway.config import settings
from recon_gateway.domain.models import ReconciliationReport, RowStatus
from recon_gateway.infrastructure.observability.metrics import webhook_latency_histogram, webhook_failure_counter


def build_reconciliation_event(report: ReconciliationReport, request_id: str) -> Dict[str, Any]:
    """Ledger payload listing the payments posted by a live run"""
    payments: List[Dict[str, Any]] = [
        {
            "external_txn_id": row.external_txn_id,
            "invoice_id": row.invoice_id,
            "applied_cents": row.applied_cents,
            "overpayment_cents": row.overpayment_cents,
            "invoice_settled": row.new_balance_cents == 0,
        }
        for row in report.rows
        if row.status == RowStatus.MATCHED and not row.simulated
    ]
    return {
        "event": "PAYMENTS_RECONCILED",
        "request_id": request_id,
        "tenant_id": report.tenant_id,
        "total_applied_cents": report.total_applied_cents,
        "total_overpayment_cents": report.total_overpayment_cents,
        "payments": payments,
    }


class LedgerClient:
    """Client for sending webhook events to ledger service"""

    def __init__(self, webhook_url: str | None = None):
        self.webhook_url = webhook_url or settings.ledger_webhook_url
        self.timeout = settings.http_timeout_seconds
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base

    async def send_reconciliation_event(self, payload: Dict[str, Any]) -> None:
        """
        Send posted-payments event to ledger with retry logic.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s, 16s (base^attempt)
        - Retries on 5xx errors and network failures
        - Tracks latency histogram and failure counter

        Args:
            payload: Event data to send to ledger
        """
        attempt = 0
        async with httpx.AsyncClient() as client:
            while attempt < self.max_retries:
                try:
                    with webhook_latency_histogram.time():
                        response = await client.post(
                            self.webhook_url,
                            json=payload,
                            timeout=self.timeout,
                        )
                        response.raise_for_status()
                        return

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    if isinstance(e, httpx.HTTPStatusError) and e.response.status_code < 500:
                        raise

                    attempt += 1
                    webhook_failure_counter.inc()

                    if attempt >= self.max_retries:
                        # Final failure after all retries
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
