from __future__ import annotations

import json
from unittest.mock import MagicMock

import httpx
import pytest

from location_sync.models.config_models import PayloadFields, SyncConfig
from location_sync.models.sync_outcome import SubmissionErrorKind, SyncStatus
from location_sync.models.validated_record import ValidatedRecord, ValidationStatus
from location_sync.services.sync_engine import (
    SUCCESS_MESSAGE,
    BatchSyncEngine,
    CancelToken,
    SubmissionError,
    build_update_payload,
    interpret_response,
)


def _rec(
    rid: str,
    status: ValidationStatus = ValidationStatus.VALID,
    *,
    lat: float = -20.1,
    lon: float = 57.5,
    name: str = "Store",
    address: str | None = None,
) -> ValidatedRecord:
    errors: tuple[str, ...] = ()
    if status is ValidationStatus.INVALID:
        errors = ("ID is required",)
    elif status is ValidationStatus.WARNING:
        errors = ("Coordinates must be an array of [longitude, latitude]",)
    return ValidatedRecord(
        id=rid,
        display_name=name,
        grouping_raw="[]",
        latitude=lat,
        longitude=lon,
        classification=status,
        validation_errors=errors,
        address=address,
    )


def _engine(sync_config: SyncConfig, make_client, handler, **kwargs) -> BatchSyncEngine:
    kwargs.setdefault("sleep", lambda _s: None)
    return BatchSyncEngine(sync_config, make_client(handler), **kwargs)


# --- payload -----------------------------------------------------------------


def test_payload_has_flag_name_and_point_geometry():
    payload = build_update_payload(_rec("A1", name="  Store One "))
    assert payload == {
        "location_updated": True,
        "shop_name": "Store One",
        "shop_location": {"type": "Point", "coordinates": [57.5, -20.1]},
    }


def test_payload_omits_geometry_when_any_coordinate_is_zero():
    assert "shop_location" not in build_update_payload(_rec("A1", lat=0.0))
    assert "shop_location" not in build_update_payload(_rec("A1", lon=0.0))


def test_payload_omits_blank_name_and_includes_address():
    payload = build_update_payload(_rec("A1", name="  ", address=" Port Louis "))
    assert "shop_name" not in payload
    assert payload["shop_address"] == "Port Louis"
    assert payload["location_updated"] is True


def test_payload_field_names_are_configurable():
    fields = PayloadFields(refreshed_flag="geo_ok", display_name="label", geometry="geom", address="addr")
    payload = build_update_payload(_rec("A1"), fields)
    assert set(payload) == {"geo_ok", "label", "geom"}


# --- response interpretation -----------------------------------------------


def test_interpret_response_accepts_populated_data():
    interpret_response(_rec("A1"), httpx.Response(200, json={"data": {"id": "A1"}}))


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"data": None}),
        httpx.Response(200, json={"data": {}}),
        httpx.Response(200, json={}),
        httpx.Response(204),
        httpx.Response(200, json=[1, 2]),
    ],
)
def test_interpret_response_empty_data_is_not_found(response):
    with pytest.raises(SubmissionError) as ei:
        interpret_response(_rec("B9"), response)
    assert ei.value.kind is SubmissionErrorKind.NOT_FOUND
    assert '"B9"' in ei.value.message


def test_interpret_response_remote_message_is_used():
    with pytest.raises(SubmissionError) as ei:
        interpret_response(_rec("A1"), httpx.Response(400, json={"errors": [{"message": "bad field"}]}))
    assert ei.value.kind is SubmissionErrorKind.REMOTE_REJECTED
    assert ei.value.message == "bad field"


def test_interpret_response_falls_back_to_status_text():
    with pytest.raises(SubmissionError) as ei:
        interpret_response(_rec("A1"), httpx.Response(502, text="<html>bad gateway</html>"))
    assert ei.value.message == "HTTP error! status: 502"


# --- run ---------------------------------------------------------------------


def test_run_submits_only_eligible_records_in_order(sync_config, make_client, fake_catalog):
    records = [
        _rec("A1"),
        _rec("X", ValidationStatus.INVALID),
        _rec("A2", ValidationStatus.WARNING),
        _rec("A3"),
    ]
    outcomes = _engine(sync_config, make_client, fake_catalog).run(records)

    assert fake_catalog.patched_ids() == ["A1", "A2", "A3"]
    assert [o.record_id for o in outcomes] == ["A1", "A2", "A3"]
    assert all(o.status is SyncStatus.SUCCESS for o in outcomes)
    assert all(o.message == SUCCESS_MESSAGE for o in outcomes)


def test_patch_targets_collection_with_bearer_token(sync_config, make_client, fake_catalog):
    _engine(sync_config, make_client, fake_catalog).run([_rec("A 1/x")])
    req = fake_catalog.patches[0]
    assert req.url.raw_path == b"/items/Shops/A%201%2Fx"
    assert req.headers["Authorization"] == "Bearer secret-token"
    assert json.loads(req.content)["location_updated"] is True


def test_not_found_on_empty_data_is_error_outcome(sync_config, make_client, fake_catalog):
    fake_catalog.patch_responses["B9"] = (200, {"data": None})
    outcomes = _engine(sync_config, make_client, fake_catalog).run([_rec("A1"), _rec("B9"), _rec("A3")])

    assert [o.status for o in outcomes] == [SyncStatus.SUCCESS, SyncStatus.ERROR, SyncStatus.SUCCESS]
    assert outcomes[1].error_kind is SubmissionErrorKind.NOT_FOUND
    assert "not found" in outcomes[1].message


def test_transport_error_does_not_stop_the_batch(sync_config, make_client, fake_catalog):
    fake_catalog.patch_errors["A2"] = httpx.ConnectTimeout("timed out")
    outcomes = _engine(sync_config, make_client, fake_catalog).run([_rec("A1"), _rec("A2"), _rec("A3")])

    assert [o.record_id for o in outcomes] == ["A1", "A2", "A3"]
    assert outcomes[1].status is SyncStatus.ERROR
    assert outcomes[1].error_kind is SubmissionErrorKind.TRANSPORT
    assert "timed out" in outcomes[1].message


def test_unexpected_client_exception_becomes_error_outcome(sync_config):
    client = MagicMock()
    client.patch_item.side_effect = RuntimeError("boom")
    engine = BatchSyncEngine(sync_config, client, sleep=lambda _s: None)
    outcomes = engine.run([_rec("A1")])
    assert outcomes[0].status is SyncStatus.ERROR
    assert outcomes[0].error_kind is SubmissionErrorKind.TRANSPORT
    assert outcomes[0].message == "boom"


def test_remote_rejection_message_recorded(sync_config, make_client, fake_catalog):
    fake_catalog.patch_responses["A1"] = (403, {"errors": [{"message": "You don't have permission"}]})
    outcomes = _engine(sync_config, make_client, fake_catalog).run([_rec("A1")])
    assert outcomes[0].error_kind is SubmissionErrorKind.REMOTE_REJECTED
    assert outcomes[0].message == "You don't have permission"


def test_throttle_sleeps_between_submissions_only(sync_config, make_client, fake_catalog):
    sleeps: list[float] = []
    engine = _engine(sync_config, make_client, fake_catalog, sleep=sleeps.append)
    engine.run([_rec("A1"), _rec("A2"), _rec("A3")])
    assert sleeps == [0.1, 0.1]


def test_single_record_never_sleeps(sync_config, make_client, fake_catalog):
    sleeps: list[float] = []
    _engine(sync_config, make_client, fake_catalog, sleep=sleeps.append).run([_rec("A1")])
    assert sleeps == []


def test_progress_is_monotonic_and_ends_at_one(sync_config, make_client, fake_catalog):
    fake_catalog.patch_responses["A2"] = (500, None)
    calls: list[tuple[float, str]] = []
    _engine(sync_config, make_client, fake_catalog).run(
        [_rec("A1"), _rec("A2"), _rec("X", ValidationStatus.INVALID), _rec("A3"), _rec("A4")],
        on_progress=lambda f, o: calls.append((f, o.record_id)),
    )
    fractions = [f for f, _ in calls]
    assert [rid for _, rid in calls] == ["A1", "A2", "A3", "A4"]
    assert fractions == sorted(fractions)
    assert all(0 < f <= 1 for f in fractions)
    assert fractions[-1] == 1.0


def test_progress_reported_before_next_submission(sync_config, make_client, fake_catalog):
    seen: list[int] = []
    _engine(sync_config, make_client, fake_catalog).run(
        [_rec("A1"), _rec("A2")],
        on_progress=lambda _f, _o: seen.append(len(fake_catalog.patches)),
    )
    assert seen == [1, 2]


def test_failing_progress_callback_does_not_abort(sync_config, make_client, fake_catalog):
    def _boom(_f, _o):
        raise RuntimeError("ui gone")

    outcomes = _engine(sync_config, make_client, fake_catalog).run([_rec("A1"), _rec("A2")], on_progress=_boom)
    assert len(outcomes) == 2


def test_no_eligible_records_means_no_requests(sync_config, make_client, fake_catalog):
    engine = _engine(sync_config, make_client, fake_catalog)
    outcomes = engine.run([_rec("X", ValidationStatus.INVALID)])
    assert outcomes == []
    assert fake_catalog.patches == []
    assert len(engine.ledger) == 0


def test_ledger_has_one_terminal_entry_per_eligible_record(sync_config, make_client, fake_catalog):
    fake_catalog.patch_responses["A2"] = (200, {"data": []})
    engine = _engine(sync_config, make_client, fake_catalog)
    engine.run([_rec("A1"), _rec("A2")])
    assert len(engine.ledger) == 2
    assert all(o.status.is_terminal for o in engine.ledger)
    assert engine.ledger.counts() == (1, 1)


def test_cancel_stops_before_next_submission(sync_config, make_client, fake_catalog):
    token = CancelToken()

    def _cancel_after_first(_f, outcome):
        if outcome.record_id == "A1":
            token.cancel()

    engine = _engine(sync_config, make_client, fake_catalog)
    outcomes = engine.run([_rec("A1"), _rec("A2"), _rec("A3")], on_progress=_cancel_after_first, cancel_token=token)

    assert [o.record_id for o in outcomes] == ["A1"]
    assert fake_catalog.patched_ids() == ["A1"]
    assert engine.cancelled is True


def test_cancel_during_throttle_wait(sync_config, make_client, fake_catalog):
    token = CancelToken()
    engine = _engine(sync_config, make_client, fake_catalog, sleep=lambda _s: token.cancel())
    outcomes = engine.run([_rec("A1"), _rec("A2")], cancel_token=token)
    assert [o.record_id for o in outcomes] == ["A1"]
    assert engine.cancelled


def test_cancelled_before_start_submits_nothing(sync_config, make_client, fake_catalog):
    token = CancelToken()
    token.cancel()
    engine = _engine(sync_config, make_client, fake_catalog)
    assert engine.run([_rec("A1")], cancel_token=token) == []
    assert fake_catalog.patches == []


def test_request_stats_use_injected_clock(sync_config, make_client, fake_catalog):
    ticks = iter([0.0, 0.5, 1.0, 1.25])
    engine = _engine(sync_config, make_client, fake_catalog, clock=lambda: next(ticks))
    outcomes = engine.run([_rec("A1"), _rec("A2")])
    assert [o.elapsed_seconds for o in outcomes] == [0.5, 0.25]
    total, avg, _ = engine.stats.get_stats()
    assert total == 2
    assert avg == pytest.approx(0.375)
