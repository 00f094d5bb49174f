"""Result aggregator - collects per-row outcomes into a ReconciliationReport"""

from typing import Dict, List

from recon_gateway.domain.models import ReconciliationReport, RowResult, RowStatus


class ResultAggregator:
    """Keeps one result per input row, in the order rows were added"""

    def __init__(self, tenant_id: str, dry_run: bool = False):
        self.tenant_id = tenant_id
        self.dry_run = dry_run
        self._rows: List[RowResult] = []
        self._seen_rows: set[int] = set()

    def add(self, result: RowResult) -> None:
        if result.row_number in self._seen_rows:
            raise ValueError(f"Row {result.row_number} already has a result")
        self._seen_rows.add(result.row_number)
        self._rows.append(result)

    def counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in RowStatus}
        for row in self._rows:
            counts[row.status.value] += 1
        counts["total"] = len(self._rows)
        return counts

    def report(self) -> ReconciliationReport:
        matched = [row for row in self._rows if row.status == RowStatus.MATCHED]
        return ReconciliationReport(
            tenant_id=self.tenant_id,
            dry_run=self.dry_run,
            rows=list(self._rows),
            counts=self.counts(),
            total_applied_cents=sum(row.applied_cents or 0 for row in matched),
            total_overpayment_cents=sum(row.overpayment_cents or 0 for row in matched),
        )
