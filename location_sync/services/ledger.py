from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from datetime import UTC, datetime
from pathlib import Path

import pandas as pd

from ..models.sync_outcome import SyncOutcome, SyncStatus

"""Result ledger: the per-record outcome audit trail of one batch run.

- ResultLedger: in-memory, append-only, order preserving. Callers only see
  tuple snapshots. ``latest_by_id()`` is the keyed view where a later outcome
  for the same id replaces the earlier one.
- LedgerWriter: durable JSON Lines copy at ``<logs_dir>/ledger-YYYYMMDD-HHMMSS.jsonl``.
- write_report: operator-facing CSV report (pandas).
"""

__all__ = [
    "ResultLedger",
    "LedgerWriter",
    "REPORT_COLUMNS",
    "outcomes_to_frame",
    "write_report",
]

TIMESTAMP_FMT = "%Y%m%d-%H%M%S"

REPORT_COLUMNS = [
    "record_id",
    "status",
    "message",
    "error_kind",
    "display_name",
    "grouping",
    "latitude",
    "longitude",
    "classification",
    "validation_errors",
    "line",
    "elapsed_seconds",
]


class ResultLedger:
    def __init__(self) -> None:
        self._entries: list[SyncOutcome] = []

    def append(self, outcome: SyncOutcome) -> None:
        if not outcome.status.is_terminal:
            raise ValueError(f"ledger accepts terminal outcomes only (got {outcome.status.value})")
        self._entries.append(outcome)

    @property
    def entries(self) -> tuple[SyncOutcome, ...]:
        return tuple(self._entries)

    def latest_by_id(self) -> dict[str, SyncOutcome]:
        """Keyed view: the last outcome per record id, in order of last update."""
        view: dict[str, SyncOutcome] = {}
        for outcome in self._entries:
            view.pop(outcome.record_id, None)
            view[outcome.record_id] = outcome
        return view

    def counts(self) -> tuple[int, int]:
        """(success, error) totals over all entries."""
        success = sum(1 for o in self._entries if o.status is SyncStatus.SUCCESS)
        return success, len(self._entries) - success

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[SyncOutcome]:
        return iter(tuple(self._entries))


class LedgerWriter:
    """Writes outcomes as JSON Lines; the file is created on first write."""

    def __init__(self, logs_dir: Path) -> None:
        self._logs_dir = logs_dir
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"ledger-{stamp}.jsonl"
        return self._file_path

    def write(self, outcomes: Iterable[SyncOutcome]) -> Path | None:
        items = list(outcomes)
        if not items:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for o in items:
                f.write(json.dumps(o.to_dict(), ensure_ascii=False) + "\n")
        return fp


def outcomes_to_frame(outcomes: Iterable[SyncOutcome]) -> pd.DataFrame:
    rows = [o.to_dict() for o in outcomes]
    df = pd.DataFrame(rows, columns=REPORT_COLUMNS)
    # リストは "; " 区切り文字列にして CSV 上で読めるようにする
    df["validation_errors"] = df["validation_errors"].map(
        lambda v: "; ".join(v) if isinstance(v, list) else ""
    )
    return df


def write_report(outcomes: Iterable[SyncOutcome], path: Path) -> Path:
    """Write the operator CSV report (one row per outcome, ledger order)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    outcomes_to_frame(outcomes).to_csv(path, index=False, encoding="utf-8")
    return path
