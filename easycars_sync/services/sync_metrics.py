"""Sync observability: one structured log line per sync run plus Prometheus counters."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Prometheus metrics (low-cardinality labels only; no dealership ids)
# ---------------------------------------------------------------------------
SYNC_RUNS_TOTAL = Counter(
    "easycars_sync_runs_total",
    "EasyCars sync runs by type and outcome",
    ["sync_type", "status"],
)
SYNC_RUN_DURATION_SECONDS = Histogram(
    "easycars_sync_run_duration_seconds",
    "EasyCars sync run duration in seconds",
    ["sync_type"],
    buckets=(0.1, 0.5, 1, 2.5, 5, 10, 30, 60, 120, 300),
)
API_REQUESTS_TOTAL = Counter(
    "easycars_api_requests_total",
    "EasyCars API calls by outcome (success or error kind)",
    ["outcome"],
)


@dataclass
class SyncMetrics:
    """Structured metrics for a single sync run."""

    dealership_id: int
    sync_type: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    duration_ms: int = 0
    status: Optional[str] = None
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    images_downloaded: int = 0
    images_failed: int = 0
    errors: List[str] = field(default_factory=list)
    cancelled: bool = False

    def finish(self, status: str) -> None:
        """Mark the run as finished and record its outcome."""
        self.finished_at = datetime.now(timezone.utc)
        self.duration_ms = int((self.finished_at - self.started_at).total_seconds() * 1000)
        self.status = status

    def as_log_dict(self) -> Dict[str, Any]:
        return {
            "event": "easycars_sync_run",
            "dealership_id": self.dealership_id,
            "sync_type": self.sync_type,
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_ms": self.duration_ms,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "images_downloaded": self.images_downloaded,
            "images_failed": self.images_failed,
            "first_error": self.errors[0][:200] if self.errors else None,
            "cancelled": self.cancelled,
        }

    def log(self) -> None:
        """Emit the structured log entry and update the Prometheus counters."""
        msg = json.dumps(self.as_log_dict(), ensure_ascii=False, default=str)
        if self.cancelled or self.status == "PartialSuccess":
            logger.warning("sync_metrics: %s", msg)
        elif self.status == "Failed":
            logger.error("sync_metrics: %s", msg)
        else:
            logger.info("sync_metrics: %s", msg)

        label = "Cancelled" if self.cancelled else (self.status or "Unknown")
        SYNC_RUNS_TOTAL.labels(sync_type=self.sync_type, status=label).inc()
        SYNC_RUN_DURATION_SECONDS.labels(sync_type=self.sync_type).observe(self.duration_ms / 1000.0)


def record_api_outcome(outcome: str) -> None:
    API_REQUESTS_TOTAL.labels(outcome=outcome).inc()
