from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from .validated_record import ValidatedRecord

"""SyncOutcome model, SyncStatus and SubmissionErrorKind enums.

State transitions per eligible record: pending -> processing -> (success | error).
An outcome is terminal once its status is SUCCESS or ERROR.
"""

__all__ = [
    "SyncStatus",
    "SubmissionErrorKind",
    "SyncOutcome",
]


class SyncStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncStatus.SUCCESS, SyncStatus.ERROR)


class SubmissionErrorKind(Enum):
    """Sub-kinds of a per-record submission failure."""
    TRANSPORT = "transport"
    REMOTE_REJECTED = "remote_rejected"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class SyncOutcome:
    """Result of attempting one eligible record against the remote catalog."""
    record_id: str
    status: SyncStatus
    message: str
    record: ValidatedRecord
    error_kind: SubmissionErrorKind | None = None
    elapsed_seconds: float = 0.0

    @staticmethod
    def pending(record: ValidatedRecord) -> SyncOutcome:
        return SyncOutcome(record_id=record.id, status=SyncStatus.PENDING, message="", record=record)

    def advance(
        self,
        status: SyncStatus,
        message: str = "",
        error_kind: SubmissionErrorKind | None = None,
        elapsed_seconds: float = 0.0,
    ) -> SyncOutcome:
        """Return a copy moved to ``status``.

        Raises:
            ValueError: if the transition is not allowed (terminal outcomes never change).
        """
        allowed = {
            SyncStatus.PENDING: {SyncStatus.PROCESSING},
            SyncStatus.PROCESSING: {SyncStatus.SUCCESS, SyncStatus.ERROR},
        }
        if status not in allowed.get(self.status, set()):
            raise ValueError(f"invalid transition {self.status.value} -> {status.value}")
        return replace(
            self,
            status=status,
            message=message,
            error_kind=error_kind,
            elapsed_seconds=elapsed_seconds,
        )

    def to_dict(self) -> dict[str, object]:
        """Flat JSON-friendly view used by the ledger writer and report."""
        return {
            "record_id": self.record_id,
            "status": self.status.value,
            "message": self.message,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "display_name": self.record.display_name,
            "grouping": self.record.grouping_raw,
            "latitude": self.record.latitude,
            "longitude": self.record.longitude,
            "classification": self.record.classification.value,
            "validation_errors": list(self.record.validation_errors),
            "line": self.record.line_number,
            "elapsed_seconds": round(self.elapsed_seconds, 6),
        }
