from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..models.sync_outcome import SyncOutcome, SyncStatus

"""Progress display with tqdm (TTY only).

A single tqdm bar over the eligible records, advanced from the sync engine's
progress callback. In non-TTY environments (CI, redirected output) the bar is
disabled to avoid ANSI control sequence spam; the callback still counts.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """Progress bar fed by ``BatchSyncEngine.run(on_progress=tracker)``."""

    def __init__(self, total_records: int | None = None, *, description: str = "Syncing records") -> None:
        self.total_records = total_records
        self.description = description
        self.completed = 0
        self.success = 0
        self.failed = 0
        self.last_fraction = 0.0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_records,
                desc=description,
                unit="record",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def __call__(self, fraction: float, outcome: SyncOutcome) -> None:
        self.completed += 1
        self.last_fraction = fraction
        if outcome.status is SyncStatus.SUCCESS:
            self.success += 1
        else:
            self.failed += 1

        if self.total_records is None and fraction > 0:
            # 総件数は初回通知の fraction (= 1/total) から逆算
            self.total_records = round(self.completed / fraction)
            if self.pbar is not None:
                self.pbar.total = self.total_records
                self.pbar.refresh()

        if self.enabled and self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_postfix(ok=self.success, err=self.failed, id=outcome.record_id)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
