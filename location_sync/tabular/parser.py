from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

"""Tabular (CSV) parser.

Turns raw file text into an ordered list of header-keyed string rows. No
knowledge of domain semantics.

Rules:
- Lines are split on line breaks; blank lines are ignored.
- The first non-empty line is the header, parsed with the same quoting rules
  as data lines.
- ``"`` toggles quote mode; inside quote mode ``""`` is one literal quote and
  a comma is part of the field. Fields are trimmed after unquoting.
- A data line whose field count differs from the header is skipped and a
  ParseSkip diagnostic is recorded; parsing continues.
- Fewer than two non-empty lines -> EmptyInputError.
"""

__all__ = [
    "RawRow",
    "EmptyInputError",
    "ParseSkip",
    "ParseResult",
    "parse_csv",
    "parse_line",
    "serialize_row",
    "serialize_csv",
]

logger = logging.getLogger(__name__)

RawRow = dict[str, str]

_LINE_BREAK = re.compile(r"\r\n|\n|\r")


class EmptyInputError(Exception):
    """Raised when the text has no header + data line pair."""


@dataclass(frozen=True)
class ParseSkip:
    """Diagnostic for a data line dropped because of its field count."""
    line_number: int  # 1-based file line
    expected_fields: int
    actual_fields: int

    @property
    def message(self) -> str:
        return (
            f"Row {self.line_number} has {self.actual_fields} columns "
            f"but expected {self.expected_fields}. Skipping."
        )


@dataclass
class ParseResult:
    headers: list[str]
    rows: list[RawRow] = field(default_factory=list)
    line_numbers: list[int] = field(default_factory=list)  # rows と同じ並び
    skipped: list[ParseSkip] = field(default_factory=list)


def parse_line(line: str) -> list[str]:
    """Split one CSV line into trimmed, unquoted fields."""
    result: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    n = len(line)
    while i < n:
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < n and line[i + 1] == '"':
                current.append('"')
                i += 1  # escaped quote
            else:
                in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            result.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1
    result.append("".join(current).strip())
    return result


def parse_csv(text: str) -> ParseResult:
    """Parse CSV text into header-keyed rows, preserving file order.

    Raises:
        EmptyInputError: fewer than two non-empty lines
    """
    if text.startswith("\ufeff"):
        text = text[1:]

    numbered = [
        (idx, line) for idx, line in enumerate(_LINE_BREAK.split(text), start=1) if line.strip()
    ]
    if len(numbered) < 2:
        raise EmptyInputError("CSV file must contain at least a header row and one data row")

    _, header_line = numbered[0]
    headers = parse_line(header_line)
    result = ParseResult(headers=headers)

    for line_no, line in numbered[1:]:
        values = parse_line(line)
        if len(values) != len(headers):
            skip = ParseSkip(
                line_number=line_no,
                expected_fields=len(headers),
                actual_fields=len(values),
            )
            logger.warning(skip.message)
            result.skipped.append(skip)
            continue
        result.rows.append(dict(zip(headers, values)))
        result.line_numbers.append(line_no)

    logger.debug(
        "parsed headers=%s rows=%d skipped=%d", headers, len(result.rows), len(result.skipped)
    )
    return result


def _quote(value: str) -> str:
    if "," in value or '"' in value:
        return '"' + value.replace('"', '""') + '"'
    return value


def serialize_row(values: Sequence[str]) -> str:
    """Serialize one row so that parse_line() reconstructs it."""
    return ",".join(_quote(str(v)) for v in values)


def serialize_csv(headers: Sequence[str], rows: Iterable[RawRow]) -> str:
    """Serialize header + rows (missing keys become empty cells)."""
    lines = [serialize_row(headers)]
    for row in rows:
        lines.append(serialize_row([row.get(h, "") for h in headers]))
    return "\n".join(lines)
