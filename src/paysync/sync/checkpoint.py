"""Checkpoint lookup for incremental collection."""

import logging
from typing import Protocol

from ..errors import SetupError
from ..schemas import Checkpoint, ProviderId, TransactionRecord

logger = logging.getLogger(__name__)


class Ledger(Protocol):
    """Persistence operations the collection engine relies on."""

    def get_checkpoint(
        self, account_id: str, provider_id: ProviderId | str
    ) -> Checkpoint | None: ...

    def save(self, account_id: str, record: TransactionRecord) -> None: ...

    def truncate(self, table_name: str, account_id: str | None = None) -> None: ...


class CheckpointResolver:
    """Reads the newest persisted record key for an account."""

    def __init__(self, ledger: Ledger, provider_id: ProviderId) -> None:
        self._ledger = ledger
        self._provider_id = provider_id

    def current_checkpoint(self, account_id: str) -> Checkpoint | None:
        """Return the account's checkpoint, or None when the ledger is empty.

        Raises:
            SetupError: If the ledger cannot be read
        """
        try:
            checkpoint = self._ledger.get_checkpoint(account_id, self._provider_id)
        except Exception as e:
            raise SetupError(f"Could not read checkpoint for {account_id}: {e}") from e

        if checkpoint is None:
            logger.info(f"No checkpoint for {self._provider_id.value}/{account_id}")
        else:
            logger.info(
                f"Checkpoint for {self._provider_id.value}/{account_id}: "
                f"{checkpoint.last_external_id} ({checkpoint.last_paid_at})"
            )
        return checkpoint
