from __future__ import annotations

import json
import math
from collections.abc import Iterable, Sequence
from typing import Any

from ..models.config_models import ColumnMapping
from ..models.validated_record import ValidatedRecord, ValidationStatus
from ..tabular.parser import RawRow

"""Record validator / converter.

Pure mapping RawRow -> ValidatedRecord. Independent per row, order preserving,
never raises: every problem is appended to ``validation_errors`` and drives the
tri-state classification.

Classification:
- any error containing "required", "missing" or "invalid coordinate"
  (case-insensitive) -> INVALID
- other errors -> WARNING
- no errors -> VALID
"""

__all__ = [
    "ERR_COORDS_FORMAT",
    "ERR_COORDS_SHAPE",
    "ERR_COORDS_VALUES",
    "ERR_COORDS_RANGE",
    "ERR_COORDS_MISSING",
    "ERR_ID_REQUIRED",
    "ERR_NAME_REQUIRED",
    "classify",
    "convert_row",
    "convert_rows",
    "eligible",
]

ERR_COORDS_FORMAT = "Invalid coordinates format"
ERR_COORDS_SHAPE = "Coordinates must be an array of [longitude, latitude]"
ERR_COORDS_VALUES = "Invalid coordinate values"
ERR_COORDS_RANGE = "Invalid coordinates: out of valid range"
ERR_COORDS_MISSING = "Missing coordinates"
ERR_ID_REQUIRED = "ID is required"
ERR_NAME_REQUIRED = "Display name is required"

BLOCKING_PATTERNS = ("required", "missing", "invalid coordinate")

MAX_LATITUDE = 90.0
MAX_LONGITUDE = 180.0


def classify(errors: Sequence[str]) -> ValidationStatus:
    if any(p in err.lower() for err in errors for p in BLOCKING_PATTERNS):
        return ValidationStatus.INVALID
    if errors:
        return ValidationStatus.WARNING
    return ValidationStatus.VALID


def _to_number(value: Any) -> float | None:
    # bool は int のサブクラスなので明示的に除外
    if isinstance(value, bool) or value is None:
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        # 巨大な整数は float 変換で OverflowError
        number = float(value.strip() if isinstance(value, str) else value)
    except (OverflowError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _parse_coordinates(raw: str) -> tuple[float, float, str | None]:
    """Return (latitude, longitude, error). Coordinates stay 0 on any error."""
    try:
        coords = json.loads(raw)
    except (ValueError, RecursionError):
        return 0.0, 0.0, ERR_COORDS_FORMAT

    if not isinstance(coords, list) or len(coords) != 2:
        return 0.0, 0.0, ERR_COORDS_SHAPE

    longitude = _to_number(coords[0])
    latitude = _to_number(coords[1])
    if longitude is None or latitude is None:
        return 0.0, 0.0, ERR_COORDS_VALUES
    if abs(latitude) > MAX_LATITUDE or abs(longitude) > MAX_LONGITUDE:
        return 0.0, 0.0, ERR_COORDS_RANGE
    return latitude, longitude, None


def convert_row(row: RawRow, columns: ColumnMapping | None = None, line_number: int = -1) -> ValidatedRecord:
    columns = columns or ColumnMapping()
    errors: list[str] = []
    latitude = longitude = 0.0

    coords_raw = (row.get(columns.coordinates) or "").strip()
    if coords_raw:
        latitude, longitude, coord_error = _parse_coordinates(coords_raw)
        if coord_error:
            errors.append(coord_error)
    else:
        errors.append(ERR_COORDS_MISSING)

    record_id = (row.get(columns.id) or "").strip()
    display_name = (row.get(columns.display_name) or "").strip()
    if not display_name:
        errors.append(ERR_NAME_REQUIRED)
    if not record_id:
        errors.append(ERR_ID_REQUIRED)

    address = (row.get(columns.address) or "").strip() or None

    return ValidatedRecord(
        id=record_id,
        display_name=display_name,
        grouping_raw=row.get(columns.grouping) or "[]",
        latitude=latitude,
        longitude=longitude,
        classification=classify(errors),
        validation_errors=tuple(errors),
        address=address,
        geometry_type=row.get(columns.geometry_type) or "Point",
        coordinates_raw=coords_raw,
        line_number=line_number,
    )


def convert_rows(
    rows: Iterable[RawRow],
    columns: ColumnMapping | None = None,
    line_numbers: Sequence[int] | None = None,
) -> list[ValidatedRecord]:
    """Convert rows in order. ``line_numbers`` (parallel to rows) is optional."""
    records: list[ValidatedRecord] = []
    for idx, row in enumerate(rows):
        line = line_numbers[idx] if line_numbers is not None and idx < len(line_numbers) else -1
        records.append(convert_row(row, columns, line_number=line))
    return records


def eligible(records: Iterable[ValidatedRecord]) -> list[ValidatedRecord]:
    """VALID and WARNING records, input order preserved."""
    return [r for r in records if r.is_eligible]
