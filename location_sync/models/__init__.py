"""Domain models for the CSV -> remote catalog location sync tool."""

from .config_models import ColumnMapping, PayloadFields, RemoteConfig, SyncConfig, SyncSettings
from .connection_health import ConnectionHealth, ConnectivityFailureKind
from .error_record import ErrorRecord
from .processing_result import PipelineResult, RequestStatsAccumulator
from .sync_outcome import SubmissionErrorKind, SyncOutcome, SyncStatus
from .validated_record import ValidatedRecord, ValidationStatus

__all__ = [
    # Configuration models
    "ColumnMapping",
    "PayloadFields",
    "RemoteConfig",
    "SyncConfig",
    "SyncSettings",
    # Processing models
    "ConnectionHealth",
    "ConnectivityFailureKind",
    "ErrorRecord",
    "PipelineResult",
    "RequestStatsAccumulator",
    "SubmissionErrorKind",
    "SyncOutcome",
    "SyncStatus",
    "ValidatedRecord",
    "ValidationStatus",
]
