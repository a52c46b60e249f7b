from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

"""ValidatedRecord model and ValidationStatus enum.

A ValidatedRecord is derived from exactly one parsed CSV row. Validation
problems are carried as data (validation_errors), never raised, so the
ledger can show the fate of every row even when it is unusable.
"""

__all__ = [
    "ValidationStatus",
    "ValidatedRecord",
]


class ValidationStatus(Enum):
    """Tri-state classification of a converted row.

    - VALID: no errors, eligible for submission
    - WARNING: non-blocking errors, still eligible for submission
    - INVALID: never submitted to the remote catalog
    """
    VALID = "valid"
    WARNING = "warning"
    INVALID = "invalid"


@dataclass(frozen=True)
class ValidatedRecord:
    """Typed record built from one CSV row."""
    id: str
    display_name: str
    grouping_raw: str  # 表示のみ (同期対象外)
    latitude: float = 0.0
    longitude: float = 0.0
    classification: ValidationStatus = ValidationStatus.VALID
    validation_errors: tuple[str, ...] = field(default_factory=tuple)
    address: str | None = None
    geometry_type: str = "Point"
    coordinates_raw: str = ""
    line_number: int = -1  # 元ファイル行番号。不明な場合 -1

    @property
    def is_eligible(self) -> bool:
        return self.classification is not ValidationStatus.INVALID

    @property
    def has_coordinates(self) -> bool:
        """True when both coordinates are non-zero (geometry is only sent then)."""
        return self.latitude != 0 and self.longitude != 0
