"""Collection engine: orchestrator, progress reporting and run control."""

from .cancellation import CancellationToken
from .checkpoint import CheckpointResolver, Ledger
from .controller import SyncController
from .orchestrator import (
    TERMINAL_STATES,
    SyncCursor,
    SyncOrchestrator,
    SyncResult,
    SyncSession,
    SyncState,
)
from .progress import (
    ProgressEmitter,
    ProgressEvent,
    ProgressLog,
    ProgressSnapshot,
    Severity,
    SyncCounters,
)

__all__ = [
    "CancellationToken",
    "CheckpointResolver",
    "Ledger",
    "ProgressEmitter",
    "ProgressEvent",
    "ProgressLog",
    "ProgressSnapshot",
    "Severity",
    "SyncController",
    "SyncCounters",
    "SyncCursor",
    "SyncOrchestrator",
    "SyncResult",
    "SyncSession",
    "SyncState",
    "TERMINAL_STATES",
]
