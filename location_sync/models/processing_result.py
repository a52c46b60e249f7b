from __future__ import annotations

import statistics
from dataclasses import dataclass
from datetime import datetime

from .connection_health import ConnectionHealth
from .sync_outcome import SyncOutcome
from .validated_record import ValidatedRecord

"""Pipeline result models.

PipelineResult aggregates one import run (parse -> validate -> probe -> sync)
and carries everything the SUMMARY line and the operator report need.
RequestStatsAccumulator collects per-submission latency for the summary.
"""


@dataclass(frozen=True)
class PipelineResult:
    """Aggregated results of one import run."""
    file_name: str
    parsed_rows: int  # パース成功行数
    skipped_rows: int  # 列数不一致でスキップした行数
    valid: int
    warning: int
    invalid: int
    attempted: int
    succeeded: int
    failed: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    throughput_rows_per_sec: float
    records: tuple[ValidatedRecord, ...] = ()
    outcomes: tuple[SyncOutcome, ...] = ()
    health: ConnectionHealth | None = None
    dry_run: bool = False
    cancelled: bool = False
    avg_request_seconds: float = 0.0
    p95_request_seconds: float = 0.0
    error_log_path: str | None = None
    ledger_path: str | None = None


class RequestStatsAccumulator:
    """Accumulates per-request timings and derives avg / p95."""

    def __init__(self) -> None:
        self.request_times: list[float] = []

    def add_request_time(self, elapsed_seconds: float) -> None:
        self.request_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Calculate request statistics.

        Returns:
            tuple: (total_requests, avg_request_seconds, p95_request_seconds)
        """
        if not self.request_times:
            return (0, 0.0, 0.0)

        total = len(self.request_times)
        avg = statistics.mean(self.request_times)

        if total == 1:
            p95 = self.request_times[0]
        else:
            p95 = statistics.quantiles(self.request_times, n=20, method="inclusive")[18]

        return (total, avg, p95)

