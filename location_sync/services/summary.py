from __future__ import annotations

from ..models.processing_result import PipelineResult

"""SUMMARY line rendering.

Format:
SUMMARY rows={parsed} skipped={skipped} valid={v} warning={w} invalid={i}
attempted={n} success={s} error={e} elapsed_sec={sec} throughput_rps={rps}
"""


def _format_number(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # Format very small numbers to avoid scientific notation
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: PipelineResult) -> str:
    """Render a SUMMARY line from a PipelineResult.

    Examples:
        >>> from datetime import datetime, timezone
        >>> t = datetime(2024, 1, 1, tzinfo=timezone.utc)
        >>> r = PipelineResult(
        ...     file_name="shops.csv", parsed_rows=3, skipped_rows=1, valid=2, warning=0,
        ...     invalid=1, attempted=2, succeeded=2, failed=0, start_time=t, end_time=t,
        ...     elapsed_seconds=2.0, throughput_rows_per_sec=1.0,
        ... )
        >>> render_summary_line(r)
        'SUMMARY rows=3 skipped=1 valid=2 warning=0 invalid=1 attempted=2 success=2 error=0 elapsed_sec=2 throughput_rps=1'
    """
    return (
        f"SUMMARY rows={result.parsed_rows} "
        f"skipped={result.skipped_rows} "
        f"valid={result.valid} "
        f"warning={result.warning} "
        f"invalid={result.invalid} "
        f"attempted={result.attempted} "
        f"success={result.succeeded} "
        f"error={result.failed} "
        f"elapsed_sec={_format_number(result.elapsed_seconds)} "
        f"throughput_rps={_format_number(result.throughput_rows_per_sec)}"
    )
