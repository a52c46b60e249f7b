from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from pathlib import Path

from ..logging.error_log import ErrorLogBuffer
from ..models.config_models import SyncConfig
from ..models.connection_health import ConnectionHealth
from ..models.error_record import ErrorRecord
from ..models.processing_result import PipelineResult
from ..models.sync_outcome import SyncOutcome, SyncStatus
from ..models.validated_record import ValidatedRecord, ValidationStatus
from ..remote.client import CatalogClient
from ..tabular.parser import EmptyInputError, ParseResult, parse_csv
from .connectivity import ConnectivityChecker
from .ledger import LedgerWriter
from .sync_engine import BatchSyncEngine, CancelToken, ProgressCallback
from .validator import convert_rows

"""Pipeline orchestration: file -> parse -> (validate || probe) -> sync -> ledger.

Only EmptyInputError, an unreadable file and ConnectivityFailure abort a run;
every other problem degrades to a per-row or per-record entry so the operator
always gets a complete ledger for whatever was processable.
"""

__all__ = [
    "PipelineError",
    "read_csv_text",
    "run_pipeline",
]

logger = logging.getLogger(__name__)

FILE_LEVEL_ROW = -1


class PipelineError(Exception):
    """Fatal error that prevents a run from starting (missing / unreadable file)."""


def read_csv_text(path: Path) -> str:
    """Read a UTF-8 CSV file (BOM tolerated)."""
    if not path.exists():
        raise PipelineError(f"file not found: {path}")
    if not path.is_file():
        raise PipelineError(f"path is not a file: {path}")
    if path.suffix.lower() != ".csv":
        raise PipelineError(f'invalid file: "{path.name}". Please select a CSV file with .csv extension.')
    try:
        return path.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as e:
        raise PipelineError(f"file is not valid UTF-8: {path}: {e}") from e
    except OSError as e:
        raise PipelineError(f"error reading file {path}: {e}") from e


def _flush(error_log: ErrorLogBuffer) -> Path | None:
    try:
        return error_log.flush()
    except OSError as e:
        # ログ書き込み失敗で実行全体は失敗させない
        logger.warning("failed to write error log: %s", e)
        return None


def _parse_errors(file_name: str, parsed: ParseResult) -> list[ErrorRecord]:
    return [
        ErrorRecord.create(file_name, skip.line_number, "PARSE_SKIP", skip.message)
        for skip in parsed.skipped
    ]


def _validation_errors(file_name: str, records: list[ValidatedRecord]) -> list[ErrorRecord]:
    entries: list[ErrorRecord] = []
    for r in records:
        if r.classification is ValidationStatus.VALID:
            continue
        error_type = (
            "VALIDATION_INVALID" if r.classification is ValidationStatus.INVALID else "VALIDATION_WARNING"
        )
        entries.append(
            ErrorRecord.create(
                file_name, r.line_number, error_type, "; ".join(r.validation_errors), record_id=r.id or None
            )
        )
    return entries


def _submission_errors(file_name: str, outcomes: list[SyncOutcome]) -> list[ErrorRecord]:
    return [
        ErrorRecord.create(
            file_name,
            o.record.line_number,
            f"SUBMISSION_{o.error_kind.value.upper()}" if o.error_kind else "SUBMISSION_ERROR",
            o.message,
            record_id=o.record_id,
        )
        for o in outcomes
        if o.status is SyncStatus.ERROR
    ]


def _validate_and_probe(
    config: SyncConfig, parsed: ParseResult, checker: ConnectivityChecker
) -> tuple[list[ValidatedRecord], ConnectionHealth]:
    # 検証と疎通確認は独立しているので並行実行し、両方の完了を待つ
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="location-sync") as pool:
        records_future = pool.submit(convert_rows, parsed.rows, config.columns, parsed.line_numbers)
        health_future = pool.submit(checker.check)
        records = records_future.result()
        _, health = health_future.result()
    return records, health


def run_pipeline(
    config: SyncConfig,
    path: Path,
    *,
    client: CatalogClient | None = None,
    dry_run: bool = False,
    on_progress: ProgressCallback | None = None,
    cancel_token: CancelToken | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PipelineResult:
    """Run one import of ``path``.

    Args:
        config: explicit configuration (remote, throttle, column / payload names)
        path: CSV file to import
        client: remote client; created from config.remote (and closed) when None
        dry_run: parse and validate only, no remote calls
        on_progress: called with (fraction, outcome) after every record
        cancel_token: stops the batch before the next submission when cancelled
        sleep: throttle sleep function (injected by tests)

    Raises:
        PipelineError: file missing or unreadable
        EmptyInputError: no header + data rows
        ConnectivityFailure: remote catalog not reachable / authorized / accessible
    """
    start_time = datetime.now(UTC)
    started = time.perf_counter()
    file_name = path.name
    error_log = ErrorLogBuffer(config.logs_dir)

    text = read_csv_text(path)
    try:
        parsed = parse_csv(text)
    except EmptyInputError as e:
        error_log.append(ErrorRecord.create(file_name, FILE_LEVEL_ROW, "EMPTY_INPUT", str(e)))
        _flush(error_log)
        raise

    error_log.extend(_parse_errors(file_name, parsed))
    missing = config.columns.required_headers - set(parsed.headers)
    if missing:
        # 列欠落は行単位の検証エラーとして表面化する (致命ではない)
        logger.warning("header is missing expected columns: %s", sorted(missing))
    logger.info("parsed file=%s rows=%d skipped=%d", file_name, len(parsed.rows), len(parsed.skipped))

    own_client = client is None and not dry_run
    if own_client:
        client = CatalogClient(config.remote)

    health: ConnectionHealth | None = None
    outcomes: list[SyncOutcome] = []
    engine: BatchSyncEngine | None = None
    ledger_path: Path | None = None
    try:
        if dry_run:
            records = convert_rows(parsed.rows, config.columns, parsed.line_numbers)
        else:
            checker = ConnectivityChecker(config.remote, client)
            records, health = _validate_and_probe(config, parsed, checker)

        error_log.extend(_validation_errors(file_name, records))

        if health is not None and not health.ready:
            kind = health.failure_kind.value.upper() if health.failure_kind else "UNKNOWN"
            error_log.append(
                ErrorRecord.create(file_name, FILE_LEVEL_ROW, f"CONNECTIVITY_{kind}", health.diagnostic or "")
            )
            _flush(error_log)
            checker.require_ready(health)

        if not dry_run:
            engine = BatchSyncEngine(config, client, sleep=sleep)
            outcomes = engine.run(records, on_progress=on_progress, cancel_token=cancel_token)
            error_log.extend(_submission_errors(file_name, outcomes))
            try:
                ledger_path = LedgerWriter(config.logs_dir).write(outcomes)
            except OSError as e:
                logger.warning("failed to write ledger: %s", e)
    finally:
        if own_client and client is not None:
            client.close()

    error_log_path = _flush(error_log)

    end_time = datetime.now(UTC)
    elapsed = time.perf_counter() - started
    succeeded = sum(1 for o in outcomes if o.status is SyncStatus.SUCCESS)
    _, avg_req, p95_req = engine.stats.get_stats() if engine else (0, 0.0, 0.0)

    return PipelineResult(
        file_name=file_name,
        parsed_rows=len(parsed.rows),
        skipped_rows=len(parsed.skipped),
        valid=sum(1 for r in records if r.classification is ValidationStatus.VALID),
        warning=sum(1 for r in records if r.classification is ValidationStatus.WARNING),
        invalid=sum(1 for r in records if r.classification is ValidationStatus.INVALID),
        attempted=len(outcomes),
        succeeded=succeeded,
        failed=len(outcomes) - succeeded,
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=elapsed,
        throughput_rows_per_sec=(len(outcomes) / elapsed) if elapsed > 0 else 0.0,
        records=tuple(records),
        outcomes=tuple(outcomes),
        health=health,
        dry_run=dry_run,
        cancelled=engine.cancelled if engine else False,
        avg_request_seconds=avg_req,
        p95_request_seconds=p95_req,
        error_log_path=str(error_log_path) if error_log_path else None,
        ledger_path=str(ledger_path) if ledger_path else None,
    )
