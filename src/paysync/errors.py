"""Exception hierarchy for the collection engine.

SetupError aborts a run, as does a PersistError from a full-resync
truncate. The other errors are raised by leaf operations and folded into
counters and progress events by the orchestrator.
"""


class PaySyncError(Exception):
    """Base class for paysync errors."""


class SetupError(PaySyncError):
    """Token or checkpoint resolution failed; nothing further is reachable."""


class GatewayError(PaySyncError):
    """A request could not be completed at the transport level."""


class PageError(PaySyncError):
    """One listing page could not be fetched or parsed."""

    def __init__(self, page: int, reason: str) -> None:
        super().__init__(f"page {page}: {reason}")
        self.page = page
        self.reason = reason


class ItemUnavailable(PaySyncError):
    """A stub could not be normalized into a record."""


class PersistError(PaySyncError):
    """A normalized record could not be saved to the ledger."""
