"""
revshare/metrics.py

Prometheus metrics for the reward distribution engine.

Every value is read from the ledger at collection time; the collector keeps
no counters of its own apart from scheduler ticks handed to it.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from .ledger.base import DistributionLedger
from .models import DistributionStatus, TransferStatus

logger = logging.getLogger("revshare.metrics")


class RewardMetricsCollector:
    """
    Prometheus metrics collector for revshare.

    Usage:
        from revshare.metrics import RewardMetricsCollector

        metrics = RewardMetricsCollector(ledger)
        prometheus_output = metrics.collect()
    """

    # Metric definitions
    METRICS = {
        "revshare_distributions": {
            "type": "gauge",
            "help": "Number of distributions by status",
        },
        "revshare_allocated_total": {
            "type": "counter",
            "help": "Total amount allocated to holders",
        },
        "revshare_collected_total": {
            "type": "counter",
            "help": "Total amount collected by holders",
        },
        "revshare_burnt_total": {
            "type": "counter",
            "help": "Total amount burnt at window close",
        },
        "revshare_open_window_transfers": {
            "type": "gauge",
            "help": "Transfers in open windows by status",
        },
        "revshare_burns_needing_reconciliation": {
            "type": "gauge",
            "help": "Burn records in PENDING or FAILED state",
        },
        "revshare_scheduler_ticks_total": {
            "type": "counter",
            "help": "Scheduler ticks run",
        },
        "revshare_uptime_seconds": {
            "type": "counter",
            "help": "Collector uptime in seconds",
        },
    }

    def __init__(self, ledger: DistributionLedger, scheduler: Optional[Any] = None):
        """
        Initialize metrics collector.

        Args:
            ledger: Ledger to read from
            scheduler: Optional WindowScheduler whose tick count is exported
        """
        self.ledger = ledger
        self.scheduler = scheduler
        self._start_time = time.time()

    def get_stats(self) -> Dict[str, Any]:
        """
        Get metrics as a dictionary (for JSON API).

        Returns:
            Dictionary of metric values
        """
        distributions = self.ledger.list_distributions()

        by_status = {status.value: 0 for status in DistributionStatus}
        open_transfers = {status.value: 0 for status in TransferStatus}
        collected = 0
        needs_reconciliation = 0

        for distribution in distributions:
            by_status[distribution.status.value] += 1
            transfers = self.ledger.list_transfers(distribution.id)
            collected += sum(t.amount for t in transfers if t.status is TransferStatus.COMPLETED)
            if distribution.status is DistributionStatus.OPEN:
                for transfer in transfers:
                    open_transfers[transfer.status.value] += 1
            burn = self.ledger.get_burn_record(distribution.id)
            if burn is not None and burn.needs_reconciliation:
                needs_reconciliation += 1

        return {
            "distributions": by_status,
            "allocated_total": sum(d.holder_allocation_amount for d in distributions),
            "collected_total": collected,
            "burnt_total": sum(d.total_burnt for d in distributions),
            "open_window_transfers": open_transfers,
            "burns_needing_reconciliation": needs_reconciliation,
            "scheduler_ticks": self.scheduler.ticks if self.scheduler is not None else 0,
            "uptime_seconds": time.time() - self._start_time,
        }

    def collect(self) -> str:
        """
        Collect all metrics and return in Prometheus format.

        Returns:
            Prometheus-formatted metrics string
        """
        lines: List[str] = []

        def add_header(name: str):
            metric_def = self.METRICS.get(name, {})
            lines.append(f"# HELP {name} {metric_def.get('help', '')}")
            lines.append(f"# TYPE {name} {metric_def.get('type', 'gauge')}")

        def add_metric(name: str, value: float, labels: Dict[str, str] = None):
            if labels:
                label_str = ",".join(f'{k}="{v}"' for k, v in labels.items())
                lines.append(f"{name}{{{label_str}}} {value}")
            else:
                lines.append(f"{name} {value}")

        try:
            stats = self.get_stats()

            add_header("revshare_distributions")
            for status, count in stats["distributions"].items():
                add_metric("revshare_distributions", count, {"status": status})

            for name in ("allocated_total", "collected_total", "burnt_total"):
                add_header(f"revshare_{name}")
                add_metric(f"revshare_{name}", stats[name])

            add_header("revshare_open_window_transfers")
            for status, count in stats["open_window_transfers"].items():
                add_metric("revshare_open_window_transfers", count, {"status": status})

            add_header("revshare_burns_needing_reconciliation")
            add_metric("revshare_burns_needing_reconciliation", stats["burns_needing_reconciliation"])

            add_header("revshare_scheduler_ticks_total")
            add_metric("revshare_scheduler_ticks_total", stats["scheduler_ticks"])

            add_header("revshare_uptime_seconds")
            add_metric("revshare_uptime_seconds", stats["uptime_seconds"])

        except Exception as e:
            logger.error(f"Error collecting metrics: {e}")
            lines.append(f"# Error collecting metrics: {e}")

        return "\n".join(lines) + "\n"
