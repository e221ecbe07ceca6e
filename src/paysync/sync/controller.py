"""Background execution of collection runs."""

import logging
import threading
from collections.abc import Callable

from ..config import SyncConfig
from ..providers.base import Provider
from ..schemas import SyncMode
from .cancellation import CancellationToken
from .checkpoint import Ledger
from .orchestrator import SyncOrchestrator, SyncResult, SyncState
from .progress import ProgressEmitter, ProgressSnapshot, Severity

logger = logging.getLogger(__name__)


class SyncController:
    """Runs at most one collection at a time for one account.

    Each run gets a fresh provider (and so a fresh build token cache), a fresh
    cancellation token and a fresh progress emitter. Observers poll
    ``is_collecting`` and ``snapshot()`` from any thread.
    """

    def __init__(
        self,
        account_id: str,
        provider_factory: Callable[[], Provider],
        ledger: Ledger,
        config: SyncConfig | None = None,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        self.account_id = account_id
        self._provider_factory = provider_factory
        self._ledger = ledger
        self._config = config
        self._sleep = sleep
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._cancellation = CancellationToken()
        self._emitter = ProgressEmitter(config.log_capacity if config else 100)
        self._result: SyncResult | None = None

    @property
    def is_collecting(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    @property
    def result(self) -> SyncResult | None:
        """Result of the most recent finished run."""
        return self._result

    def start(self, mode: SyncMode = SyncMode.INCREMENTAL) -> None:
        """Start a run on a background thread.

        Raises:
            RuntimeError: If a run is already in progress for this account
        """
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                raise RuntimeError(f"Sync already running for {self.account_id}")

            provider = self._provider_factory()
            config = self._config or provider.config
            self._cancellation = CancellationToken()
            self._emitter = ProgressEmitter(
                config.log_capacity,
                label=f"{provider.provider_id.value}/{self.account_id}",
            )
            self._result = None
            orchestrator = SyncOrchestrator(
                provider,
                self._ledger,
                self.account_id,
                mode=mode,
                cancellation=self._cancellation,
                emitter=self._emitter,
                config=config,
                sleep=self._sleep,
            )
            # Flag is raised before the thread starts so observers never miss it
            self._emitter.set_collecting(True)
            self._thread = threading.Thread(
                target=self._run,
                args=(orchestrator,),
                name=f"paysync-{provider.provider_id.value}-{self.account_id}",
                daemon=True,
            )
            self._thread.start()

    def _run(self, orchestrator: SyncOrchestrator) -> None:
        try:
            self._result = orchestrator.run()
        except Exception as e:
            logger.exception(f"Sync thread for {self.account_id} failed")
            error = f"Unexpected error: {type(e).__name__}: {e}"
            self._emitter.emit(0, error, Severity.ERROR)
            self._emitter.set_collecting(False)
            snapshot = self._emitter.snapshot()
            self._result = SyncResult(
                account_id=self.account_id,
                provider_id=orchestrator.provider.provider_id.value,
                mode=orchestrator.session.mode,
                state=SyncState.STOPPED_BY_ERROR,
                counters=snapshot.counters,
                events=snapshot.events,
                error=error,
            )

    def request_stop(self) -> None:
        """Ask the current run to stop at its next poll point."""
        if self.is_collecting:
            logger.info(f"Stop requested for {self.account_id}")
        self._cancellation.cancel()

    def snapshot(self) -> ProgressSnapshot:
        return self._emitter.snapshot()

    def join(self, timeout: float | None = None) -> SyncResult | None:
        """Wait for the current run.

        Returns:
            The run's result, or None while it is still going. A finished
            run always has a result.
        """
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                return None
        return self._result
