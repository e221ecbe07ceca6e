"""Progress counters and the capped event log published to observers.

The orchestrator is the only writer. Observers read immutable snapshots taken
under a lock, never the live buffers.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_LOG_CAPACITY = 100


class Severity(str, Enum):
    """Severity of a progress event."""

    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.ERROR: logging.WARNING,
}


@dataclass(frozen=True)
class ProgressEvent:
    """One entry of the run log."""

    page: int
    message: str
    severity: Severity = Severity.INFO
    external_id: str | None = None
    amount: int | None = None
    paid_at: datetime | None = None
    image_url: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class SyncCounters:
    """Running tallies for a run.

    These are a presentation aid. A record persisted just before the process
    dies may be missing from them; the ledger is the source of truth.
    """

    total: int = 0
    current: int = 0
    success: int = 0
    failed: int = 0


@dataclass(frozen=True)
class ProgressSnapshot:
    """Point-in-time view of a run for observers."""

    counters: SyncCounters
    events: tuple[ProgressEvent, ...]
    collecting: bool


class ProgressLog:
    """Fixed-capacity event buffer, newest first."""

    def __init__(self, capacity: int = DEFAULT_LOG_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._events: deque[ProgressEvent] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._events.maxlen or 0

    def push(self, event: ProgressEvent) -> None:
        # appendleft on a full deque evicts the oldest entry from the right
        self._events.appendleft(event)

    def snapshot(self) -> tuple[ProgressEvent, ...]:
        return tuple(self._events)

    def __len__(self) -> int:
        return len(self._events)


class ProgressEmitter:
    """Thread-safe publisher of counters and events for one run."""

    def __init__(self, capacity: int = DEFAULT_LOG_CAPACITY, label: str = "") -> None:
        self._lock = threading.Lock()
        self._log = ProgressLog(capacity)
        self._counters = SyncCounters()
        self._collecting = False
        self._label = label

    def emit(
        self,
        page: int,
        message: str,
        severity: Severity = Severity.INFO,
        **details,
    ) -> ProgressEvent:
        """Record an event and mirror it to the module logger."""
        event = ProgressEvent(page=page, message=message, severity=severity, **details)
        with self._lock:
            self._log.push(event)
        prefix = f"[{self._label}] " if self._label else ""
        logger.log(_LOG_LEVELS[severity], f"{prefix}{message}")
        return event

    def update(
        self,
        *,
        total: int = 0,
        current: int = 0,
        success: int = 0,
        failed: int = 0,
    ) -> SyncCounters:
        """Increment counters by the given amounts."""
        with self._lock:
            c = self._counters
            self._counters = SyncCounters(
                total=c.total + total,
                current=c.current + current,
                success=c.success + success,
                failed=c.failed + failed,
            )
            return self._counters

    def set_collecting(self, collecting: bool) -> None:
        with self._lock:
            self._collecting = collecting

    @property
    def counters(self) -> SyncCounters:
        with self._lock:
            return self._counters

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(
                counters=self._counters,
                events=self._log.snapshot(),
                collecting=self._collecting,
            )
