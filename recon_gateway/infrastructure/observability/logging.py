"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from recon_gateway.domain.models import ReconciliationReport


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = "recon-gateway"


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_reconciliation(request_id: str, report: ReconciliationReport, duration_ms: float) -> None:
    """Log structured run outcome for analysis"""
    logging.info(
        "Reconciliation completed",
        extra={
            "request_id": request_id,
            "tenant_id": report.tenant_id,
            "step": "reconciliation_complete",
            "dry_run": report.dry_run,
            "row_counts": report.counts,
            "total_applied_cents": report.total_applied_cents,
            "total_overpayment_cents": report.total_overpayment_cents,
            "duration_ms": duration_ms,
        },
    )
