from __future__ import annotations

import json
import pathlib

import jsonschema
import pytest

from location_sync.models.connection_health import ConnectivityFailureKind
from location_sync.models.error_record import ErrorRecord
from location_sync.models.sync_outcome import SubmissionErrorKind

"""Error log JSON Lines contract."""

SCHEMA_PATH = pathlib.Path(__file__).with_name("error_log_schema.json")


@pytest.fixture(scope="module")
def schema():
    return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


def test_error_log_schema_valid_example(schema):
    record = {
        "timestamp": "2025-09-26T10:12:33Z",
        "file": "shops.csv",
        "row": 3,
        "error_type": "SUBMISSION_NOT_FOUND",
        "message": 'ID "B9" not found in the remote catalog. Please verify the ID exists.',
        "record_id": "B9",
    }
    jsonschema.validate(record, schema)


def test_error_log_schema_rejects_extra_key(schema):
    record = {
        "timestamp": "2025-09-26T10:12:33Z",
        "file": "shops.csv",
        "row": 3,
        "error_type": "PARSE_SKIP",
        "message": "x",
        "record_id": None,
        "extra": "not allowed",
    }
    with pytest.raises(jsonschema.exceptions.ValidationError):
        jsonschema.validate(record, schema)


@pytest.mark.parametrize(
    "error_type",
    ["PARSE_SKIP", "EMPTY_INPUT", "VALIDATION_INVALID", "VALIDATION_WARNING"]
    + [f"SUBMISSION_{k.value.upper()}" for k in SubmissionErrorKind]
    + [f"CONNECTIVITY_{k.value.upper()}" for k in ConnectivityFailureKind],
)
def test_emitted_records_match_schema(schema, error_type):
    rec = ErrorRecord.create("shops.csv", -1, error_type, "detail")
    jsonschema.validate(json.loads(rec.to_json_line()), schema)
