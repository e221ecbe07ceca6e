"""Cooperative cancellation for collection runs."""

import threading


class CancellationToken:
    """Stop flag owned by the caller and polled by the orchestrator.

    The orchestrator checks the flag only before page and item fetches, so an
    in-flight request always completes before the stop is honored.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request that the run stop at its next poll point."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds, waking early on cancellation.

        Returns:
            True if cancellation was requested
        """
        return self._event.wait(timeout)
