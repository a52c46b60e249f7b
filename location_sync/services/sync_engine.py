from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from typing import Any

import httpx

from ..models.config_models import PayloadFields, SyncConfig
from ..models.processing_result import RequestStatsAccumulator
from ..models.sync_outcome import SubmissionErrorKind, SyncOutcome, SyncStatus
from ..models.validated_record import ValidatedRecord
from ..remote.client import CatalogClient, response_error_message, response_json
from .ledger import ResultLedger

"""Batch sync engine.

Replays eligible records (VALID / WARNING) one at a time against the remote
catalog as partial updates:

- strict input order, a single request in flight
- fixed throttle delay before every submission except the first
- per record: pending -> processing -> (success | error), one ledger entry,
  one progress notification (fraction, outcome) before the next record starts
- 2xx with an empty ``data`` payload means the id does not exist remotely
- no automatic retry; no exception escapes run()
- optional CancelToken, checked before each throttle wait and each submission
"""

__all__ = [
    "ProgressCallback",
    "CancelToken",
    "SubmissionError",
    "BatchSyncEngine",
    "build_update_payload",
    "interpret_response",
]

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, SyncOutcome], None]

SUCCESS_MESSAGE = "Record updated successfully"


class CancelToken:
    """Cooperative cancellation flag shared between the caller and the engine."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class SubmissionError(Exception):
    """Per-record submission failure. Always captured as an ERROR outcome."""

    def __init__(self, kind: SubmissionErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


def build_update_payload(record: ValidatedRecord, fields: PayloadFields | None = None) -> dict[str, Any]:
    fields = fields or PayloadFields()
    payload: dict[str, Any] = {fields.refreshed_flag: True}

    if record.display_name.strip():
        payload[fields.display_name] = record.display_name.strip()

    # 緯度経度どちらかが 0 の場合は geometry を送らない
    if record.has_coordinates:
        payload[fields.geometry] = {
            "type": "Point",
            "coordinates": [record.longitude, record.latitude],
        }

    if record.address and record.address.strip():
        payload[fields.address] = record.address.strip()

    return payload


def interpret_response(record: ValidatedRecord, response: httpx.Response) -> None:
    """Raise SubmissionError unless the response is a real success."""
    if not 200 <= response.status_code < 300:
        raise SubmissionError(SubmissionErrorKind.REMOTE_REJECTED, response_error_message(response))

    body = response_json(response)
    if not isinstance(body, dict) or not body.get("data"):
        raise SubmissionError(
            SubmissionErrorKind.NOT_FOUND,
            f'ID "{record.id}" not found in the remote catalog. Please verify the ID exists.',
        )


class BatchSyncEngine:
    def __init__(
        self,
        config: SyncConfig,
        client: CatalogClient | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.config = config
        self._client = client or CatalogClient(config.remote)
        self._sleep = sleep
        self._clock = clock
        self.ledger = ResultLedger()
        self.stats = RequestStatsAccumulator()
        self.cancelled = False

    def submit(self, record: ValidatedRecord) -> None:
        """PATCH one record. Raises SubmissionError on any failure."""
        payload = build_update_payload(record, self.config.payload)
        try:
            response = self._client.patch_item(record.id, payload)
        except httpx.HTTPError as e:
            raise SubmissionError(SubmissionErrorKind.TRANSPORT, str(e) or type(e).__name__) from e
        interpret_response(record, response)

    def _process(self, record: ValidatedRecord) -> SyncOutcome:
        outcome = SyncOutcome.pending(record).advance(SyncStatus.PROCESSING)
        started = self._clock()
        error: SubmissionError | None = None
        try:
            self.submit(record)
        except SubmissionError as e:
            error = e
        except Exception as e:
            logger.exception("record id=%s unexpected submission failure", record.id)
            error = SubmissionError(SubmissionErrorKind.TRANSPORT, str(e) or "Unknown error occurred")
        elapsed = self._clock() - started
        self.stats.add_request_time(elapsed)

        if error is not None:
            logger.warning("record id=%s failed (%s): %s", record.id, error.kind.value, error.message)
            return outcome.advance(SyncStatus.ERROR, error.message, error.kind, elapsed)
        logger.debug("record id=%s updated elapsed=%.3fs", record.id, elapsed)
        return outcome.advance(SyncStatus.SUCCESS, SUCCESS_MESSAGE, None, elapsed)

    def run(
        self,
        records: Iterable[ValidatedRecord],
        on_progress: ProgressCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> list[SyncOutcome]:
        """Submit every eligible record in order and return the outcome ledger.

        Invalid records are filtered out here and never reported as outcomes.
        On cancellation the outcomes accumulated so far are returned.
        """
        self.ledger = ResultLedger()
        self.stats = RequestStatsAccumulator()
        self.cancelled = False

        queue = [r for r in records if r.is_eligible]
        total = len(queue)
        throttle = self.config.sync.throttle_seconds
        logger.info("sync start eligible=%d collection=%s", total, self.config.remote.collection)

        for index, record in enumerate(queue):
            if index > 0:
                if self._is_cancelled(cancel_token):
                    break
                if throttle > 0:
                    self._sleep(throttle)
            if self._is_cancelled(cancel_token):
                break

            outcome = self._process(record)
            self.ledger.append(outcome)

            if on_progress is not None:
                try:
                    on_progress((index + 1) / total, outcome)
                except Exception:
                    logger.exception("progress callback failed for id=%s", record.id)

        success, failed = self.ledger.counts()
        logger.info(
            "sync done attempted=%d success=%d error=%d cancelled=%s",
            len(self.ledger),
            success,
            failed,
            self.cancelled,
        )
        return list(self.ledger.entries)

    def _is_cancelled(self, token: CancelToken | None) -> bool:
        if token is not None and token.cancelled:
            if not self.cancelled:
                logger.warning("sync cancelled after %d record(s)", len(self.ledger))
            self.cancelled = True
        return self.cancelled
