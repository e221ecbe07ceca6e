"""Generic incremental collection loop shared by all providers.

One orchestrator instance drives one run for one account:

1. Resolve the checkpoint (incremental mode only)
2. Resolve the session build token
3. Walk partitions newest first, page by page, item by item
4. Persist each normalized record, stopping at the checkpoint

Setup failures end a run with an error, as do a failed full-resync truncate
and any unexpected fault; nothing escapes `run()`. Page, item and save failures are
counted and logged, then the loop moves on. A partition whose listing keeps
failing is abandoned without counting as an empty year.
"""

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from ..config import SyncConfig
from ..errors import PageError, PersistError, SetupError
from ..providers.base import Partition, Provider
from ..schemas import ListItem, SyncMode, merge_list_fields
from .cancellation import CancellationToken
from .checkpoint import CheckpointResolver, Ledger
from .progress import ProgressEmitter, ProgressEvent, Severity, SyncCounters

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """States of a collection run."""

    IDLE = "idle"
    RESOLVING_CHECKPOINT = "resolving_checkpoint"
    RESOLVING_TOKEN = "resolving_token"
    LISTING_PAGE = "listing_page"
    PROCESSING_ITEM = "processing_item"
    ADVANCING_PAGE = "advancing_page"
    STOPPED_AT_CHECKPOINT = "stopped_at_checkpoint"
    STOPPED_NO_MORE_DATA = "stopped_no_more_data"
    STOPPED_BY_CANCELLATION = "stopped_by_cancellation"
    STOPPED_BY_ERROR = "stopped_by_error"


TERMINAL_STATES = frozenset(
    {
        SyncState.STOPPED_AT_CHECKPOINT,
        SyncState.STOPPED_NO_MORE_DATA,
        SyncState.STOPPED_BY_CANCELLATION,
        SyncState.STOPPED_BY_ERROR,
    }
)


class _Listing(Enum):
    """What one partition's listing showed."""

    EMPTY = "empty"
    HAD_ITEMS = "had_items"
    ABANDONED = "abandoned"


@dataclass
class SyncCursor:
    """Position of a run within the provider's history.

    ``page_index`` restarts in every partition; ``page_count`` numbers every
    listing request of the run.
    """

    partition: str | None = None
    page_index: int = 0
    page_count: int = 0
    pages_fetched: int = 0


@dataclass
class SyncSession:
    """Ephemeral state of one run. Never persisted."""

    account_id: str
    mode: SyncMode
    build_token: str | None = None
    stop_at_external_id: str | None = None
    needs_truncate: bool = False
    cursor: SyncCursor = field(default_factory=SyncCursor)
    state: SyncState = SyncState.IDLE


@dataclass(frozen=True)
class SyncResult:
    """Outcome of a finished run."""

    account_id: str
    provider_id: str
    mode: SyncMode
    state: SyncState
    counters: SyncCounters
    events: tuple[ProgressEvent, ...]
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.state != SyncState.STOPPED_BY_ERROR


class SyncOrchestrator:
    """Runs one provider collection for one account.

    Args:
        provider: Fresh provider instance for this run
        ledger: Ledger receiving records; also the checkpoint source
        account_id: Account being collected
        mode: Incremental (stop at checkpoint) or full (truncate and refetch)
        cancellation: Token polled before every page and item fetch
        emitter: Publisher of counters and events
        config: Delay and partition settings; defaults to the provider's
        sleep: Delay function; defaults to a cancellable wait
        rng: Source of delay jitter
    """

    def __init__(
        self,
        provider: Provider,
        ledger: Ledger,
        account_id: str,
        mode: SyncMode = SyncMode.INCREMENTAL,
        cancellation: CancellationToken | None = None,
        emitter: ProgressEmitter | None = None,
        config: SyncConfig | None = None,
        sleep: Callable[[float], object] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.provider = provider
        self.ledger = ledger
        self.config = config or provider.config
        self.cancellation = cancellation or CancellationToken()
        self.emitter = emitter or ProgressEmitter(
            self.config.log_capacity,
            label=f"{provider.provider_id.value}/{account_id}",
        )
        self.session = SyncSession(account_id=account_id, mode=SyncMode(mode))
        self._sleep = sleep or self.cancellation.wait
        self._rng = rng or random.Random()
        self._checkpoints = CheckpointResolver(ledger, provider.provider_id)
        self._started = False

    @property
    def state(self) -> SyncState:
        return self.session.state

    def run(self) -> SyncResult:
        """Execute the run to a terminal state.

        Never raises once started; every failure is reported in the
        returned result.
        """
        session = self.session
        if self._started:
            raise RuntimeError("An orchestrator instance can only run once")
        self._started = True

        label = f"{self.provider.provider_id.value}/{session.account_id}"
        logger.info(f"Starting {session.mode.value} sync for {label}")
        self.emitter.set_collecting(True)
        error: str | None = None
        try:
            state = self._execute()
        except (SetupError, PersistError) as e:
            error = str(e)
            self.emitter.emit(self._page(), error, Severity.ERROR)
            state = SyncState.STOPPED_BY_ERROR
        except Exception as e:
            logger.exception(f"Unexpected error during sync for {label}")
            error = f"Unexpected error: {type(e).__name__}: {e}"
            self.emitter.emit(self._page(), error, Severity.ERROR)
            state = SyncState.STOPPED_BY_ERROR
        finally:
            self.emitter.set_collecting(False)

        session.state = state
        snapshot = self.emitter.snapshot()
        counters = snapshot.counters
        logger.info(
            f"Finished sync for {label}: {state.value} "
            f"(success={counters.success}, failed={counters.failed}, "
            f"pages={session.cursor.pages_fetched})"
        )
        result = SyncResult(
            account_id=session.account_id,
            provider_id=self.provider.provider_id.value,
            mode=session.mode,
            state=state,
            counters=counters,
            events=snapshot.events,
            error=error,
        )
        session.state = SyncState.IDLE
        return result

    def _execute(self) -> SyncState:
        session = self.session

        if session.mode == SyncMode.INCREMENTAL:
            session.state = SyncState.RESOLVING_CHECKPOINT
            checkpoint = self._checkpoints.current_checkpoint(session.account_id)
            if checkpoint is not None:
                session.stop_at_external_id = checkpoint.last_external_id
        else:
            # Destruction is deferred until a detail fetch proves the session works
            session.needs_truncate = True

        session.state = SyncState.RESOLVING_TOKEN
        session.build_token = self.provider.resolve_token()

        consecutive_empty = 0
        for partition in self.provider.partitions():
            terminal, listing = self._collect_partition(partition)
            if terminal is not None:
                return terminal

            # An abandoned partition proves nothing about the end of history
            if not self.provider.year_partitioned or listing == _Listing.ABANDONED:
                continue
            if listing == _Listing.HAD_ITEMS:
                consecutive_empty = 0
                continue
            consecutive_empty += 1
            if consecutive_empty >= self.config.max_empty_years:
                self.emitter.emit(
                    self._page(),
                    f"{consecutive_empty} consecutive empty years, "
                    f"stopping after {partition.label}",
                )
                break

        return SyncState.STOPPED_NO_MORE_DATA

    def _collect_partition(
        self, partition: Partition
    ) -> tuple[SyncState | None, _Listing]:
        """Walk one partition's pages.

        Returns:
            A terminal state if the whole run must stop (else None), and
            what the partition's listing showed
        """
        session = self.session
        cursor = session.cursor
        cursor.partition = partition.label
        page_index = self.provider.first_page_index
        listing = _Listing.EMPTY
        consecutive_errors = 0

        while True:
            if self.cancellation.cancelled:
                return self._cancelled(), listing

            session.state = SyncState.LISTING_PAGE
            cursor.page_index = page_index
            cursor.page_count += 1
            try:
                page = self.provider.list_page(
                    partition, page_index, session.build_token or ""
                )
            except PageError as e:
                consecutive_errors += 1
                self.emitter.emit(
                    self._page(),
                    f"Listing failed ({partition.label}) {e}",
                    Severity.ERROR,
                )
                if consecutive_errors >= self.config.max_consecutive_page_errors:
                    self.emitter.emit(
                        self._page(),
                        f"Giving up on {partition.label} after "
                        f"{consecutive_errors} failed listings",
                        Severity.ERROR,
                    )
                    if listing == _Listing.EMPTY:
                        listing = _Listing.ABANDONED
                    return None, listing
                page_index += 1
                self._page_delay()
                continue

            consecutive_errors = 0
            cursor.pages_fetched += 1

            if not page.items:
                self.emitter.emit(self._page(), f"No more data in {partition.label}")
                return None, listing

            listing = _Listing.HAD_ITEMS
            self.emitter.update(total=len(page.items))
            pages = f"/{page.total_pages}" if page.total_pages else ""
            self.emitter.emit(
                self._page(),
                f"Page {page_index}{pages} ({partition.label}): "
                f"{len(page.items)} items",
            )

            for stub in page.items:
                outcome = self._process_item(stub)
                if outcome is not None:
                    return outcome, listing

            session.state = SyncState.ADVANCING_PAGE
            page_index += 1
            self._page_delay()

    def _process_item(self, stub: ListItem) -> SyncState | None:
        """Fetch, merge and persist one stub; a terminal state stops the run."""
        session = self.session
        if self.cancellation.cancelled:
            return self._cancelled()

        session.state = SyncState.PROCESSING_ITEM
        if (
            session.mode == SyncMode.INCREMENTAL
            and session.stop_at_external_id is not None
            and self.provider.build_stop_key(stub) == session.stop_at_external_id
        ):
            self.emitter.emit(
                self._page(),
                f"Reached checkpoint {stub.external_id}",
                external_id=stub.external_id,
            )
            return SyncState.STOPPED_AT_CHECKPOINT

        self.emitter.update(current=1)
        try:
            record = self.provider.fetch_detail(stub, session.build_token or "")
        except Exception as e:
            logger.exception(f"Unexpected error fetching {stub.external_id}")
            record = None
            reason = f"{type(e).__name__}: {e}"
        else:
            reason = "detail unavailable"

        if record is None:
            self.emitter.update(failed=1)
            self.emitter.emit(
                self._page(),
                f"Skipped {stub.external_id}: {reason}",
                Severity.ERROR,
                external_id=stub.external_id,
            )
            self._item_delay()
            return None

        record = merge_list_fields(record, stub)

        if session.needs_truncate:
            self._truncate()

        try:
            self.ledger.save(session.account_id, record)
        except Exception as e:
            self.emitter.update(failed=1)
            self.emitter.emit(
                self._page(),
                f"Failed to save {record.external_id}: {e}",
                Severity.ERROR,
                external_id=record.external_id,
            )
        else:
            self.emitter.update(success=1)
            self.emitter.emit(
                self._page(),
                f"{record.product_name or record.merchant.name}",
                Severity.SUCCESS,
                external_id=record.external_id,
                amount=record.total_amount,
                paid_at=record.paid_at,
                image_url=record.line_items[0].image_url if record.line_items else None,
            )

        self._item_delay()
        return None

    def _truncate(self) -> None:
        """Clear the provider's ledger tables for this account, once.

        Raises:
            PersistError: If any table could not be cleared
        """
        session = self.session
        session.needs_truncate = False
        for table in self.provider.ledger_tables:
            try:
                self.ledger.truncate(table, session.account_id)
            except Exception as e:
                raise PersistError(f"Full resync could not clear {table}: {e}") from e
        self.emitter.emit(
            self._page(),
            f"Cleared {', '.join(self.provider.ledger_tables)} for full resync",
        )

    def _cancelled(self) -> SyncState:
        self.emitter.emit(self._page(), "Stop requested, ending run")
        return SyncState.STOPPED_BY_CANCELLATION

    def _page(self) -> int:
        return self.session.cursor.page_count

    def _item_delay(self) -> None:
        self._delay(self.config.item_delay_min, self.config.item_delay_max)

    def _page_delay(self) -> None:
        self._delay(self.config.page_delay_min, self.config.page_delay_max)

    def _delay(self, low: float, high: float) -> None:
        if high <= 0:
            return
        self._sleep(self._rng.uniform(low, high))
