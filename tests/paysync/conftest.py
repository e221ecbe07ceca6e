"""Shared pytest fixtures for paysync tests.

This module provides common fixtures and test doubles used across the test
suite: settings cleanup, a scripted request gateway, an in-memory ledger and
a scripted provider for driving the orchestrator without HTTP.
"""

import json
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from paysync.config import SyncConfig, clear_settings_cache, set_current_profile
from paysync.connectors.gateway import GatewayResponse
from paysync.errors import PersistError
from paysync.providers.base import Partition, Provider
from paysync.schemas import (
    LineItem,
    ListItem,
    ListPage,
    Merchant,
    ProviderId,
    TransactionRecord,
)

NO_DELAY = SyncConfig(
    item_delay_min=0.0,
    item_delay_max=0.0,
    page_delay_min=0.0,
    page_delay_max=0.0,
)

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clean_profile_state() -> Generator[None, None, None]:
    """Clear the settings cache and reset the profile around every test."""
    clear_settings_cache()
    set_current_profile("test")

    yield

    clear_settings_cache()
    set_current_profile("test")


class FakeGateway:
    """Request gateway answering from a URL -> response table.

    Values may be a GatewayResponse, a dict/list (served as JSON), a str
    (served as-is), an exception instance (raised), or a callable taking the
    URL. Unknown URLs answer 404.
    """

    def __init__(self, routes: dict[str, Any] | None = None) -> None:
        self.routes: dict[str, Any] = dict(routes or {})
        self.calls: list[str] = []

    def request(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: str | None = None,
    ) -> GatewayResponse:
        self.calls.append(url)
        value = self.routes.get(url)
        if callable(value) and not isinstance(value, GatewayResponse):
            value = value(url)
        if value is None:
            return GatewayResponse(status=404, body="not found")
        if isinstance(value, Exception):
            raise value
        if isinstance(value, GatewayResponse):
            return value
        if isinstance(value, str):
            return GatewayResponse(status=200, body=value)
        return GatewayResponse(status=200, body=json.dumps(value))


class FakeLedger:
    """In-memory ledger recording every operation in order."""

    def __init__(self) -> None:
        self.records: list[tuple[str, TransactionRecord]] = []
        self.operations: list[tuple[str, str]] = []
        self.fail_on: set[str] = set()
        self.checkpoint_error: Exception | None = None
        self.truncate_error: Exception | None = None

    def get_checkpoint(self, account_id: str, provider_id: Any) -> Any:
        from paysync.schemas import Checkpoint

        if self.checkpoint_error is not None:
            raise self.checkpoint_error
        mine = [r for a, r in self.records if a == account_id]
        if not mine:
            return None
        newest = max(mine, key=lambda r: r.paid_at)
        return Checkpoint(last_external_id=newest.external_id, last_paid_at=newest.paid_at)

    def save(self, account_id: str, record: TransactionRecord) -> None:
        self.operations.append(("save", record.external_id))
        if record.external_id in self.fail_on:
            raise PersistError(f"cannot save {record.external_id}")
        if any(a == account_id and r.external_id == record.external_id for a, r in self.records):
            raise PersistError(f"duplicate {record.external_id}")
        self.records.append((account_id, record))

    def truncate(self, table_name: str, account_id: str | None = None) -> None:
        self.operations.append(("truncate", table_name))
        if self.truncate_error is not None:
            raise self.truncate_error
        self.records = [(a, r) for a, r in self.records if a != account_id]

    @property
    def saved_ids(self) -> list[str]:
        return [r.external_id for _, r in self.records]


def make_record(
    external_id: str,
    paid_at: datetime | None = None,
    provider_id: ProviderId = ProviderId.NAVER,
    items: int = 1,
) -> TransactionRecord:
    """Build a valid record with ``items`` numbered line items."""
    return TransactionRecord(
        external_id=external_id,
        provider_id=provider_id,
        paid_at=paid_at or BASE_TIME,
        merchant=Merchant(name="Test Shop"),
        total_amount=1000 * items,
        line_items=[
            LineItem(line_no=n, product_name=f"Item {n}", quantity=1, line_amount=1000)
            for n in range(1, items + 1)
        ],
        product_name="Item 1",
        product_count=items,
    )


class ScriptedProvider(Provider):
    """Provider whose pages and details come from tables instead of HTTP.

    ``pages`` maps (partition label, page index) to a list of external ids or
    an exception to raise. Missing pages are empty. ``records`` maps an
    external id to a record, None (unavailable) or an exception; missing ids
    get a record whose paid_at decreases with every fetch.
    """

    provider_id = ProviderId.NAVER
    ledger_tables = ("naver_payment_item", "naver_payment")

    def __init__(
        self,
        pages: dict[tuple[str, int], Any],
        records: dict[str, Any] | None = None,
        partition_labels: list[str] | None = None,
        year_partitioned: bool = False,
        token_error: Exception | None = None,
        config: SyncConfig | None = None,
        on_detail: Callable[[str], None] | None = None,
        on_list: Callable[[str, int], None] | None = None,
    ) -> None:
        super().__init__(FakeGateway(), {}, config or NO_DELAY)
        self.pages = pages
        self.records = records or {}
        self.partition_labels = partition_labels or ["all"]
        self.year_partitioned = year_partitioned
        self.token_error = token_error
        self.on_detail = on_detail
        self.on_list = on_list
        self.list_calls: list[tuple[str, int]] = []
        self.detail_calls: list[str] = []

    def partitions(self) -> list[Partition]:
        return [
            Partition(label=label, year=int(label) if label.isdigit() else None)
            for label in self.partition_labels
        ]

    def resolve_token(self) -> str:
        if self.token_error is not None:
            raise self.token_error
        return "TOKEN"

    def list_page(self, partition: Partition, page_index: int, token: str) -> ListPage:
        self.list_calls.append((partition.label, page_index))
        if self.on_list is not None:
            self.on_list(partition.label, page_index)
        value = self.pages.get((partition.label, page_index), [])
        if isinstance(value, Exception):
            raise value
        return ListPage(
            items=[ListItem(external_id=i, detail_key=i) for i in value]
        )

    def fetch_detail(self, stub: ListItem, token: str) -> TransactionRecord | None:
        self.detail_calls.append(stub.external_id)
        if self.on_detail is not None:
            self.on_detail(stub.external_id)
        if stub.external_id in self.records:
            value = self.records[stub.external_id]
            if isinstance(value, Exception):
                raise value
            return value
        paid_at = BASE_TIME - timedelta(minutes=len(self.detail_calls))
        return make_record(stub.external_id, paid_at=paid_at)

    def list_url(self, partition: Partition, page_index: int, token: str) -> str:
        raise NotImplementedError

    def parse_list(self, data: Any) -> ListPage:
        raise NotImplementedError

    def detail_url(self, stub: ListItem, token: str) -> str:
        raise NotImplementedError

    def classify(self, data: Any, stub: ListItem) -> Any:
        raise NotImplementedError

    def line_fields(self, entry: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def build_record(self, root: Any, items: Any, stub: Any, payload: Any) -> Any:
        raise NotImplementedError


@pytest.fixture
def fake_gateway() -> FakeGateway:
    """Empty scripted gateway; tests add routes."""
    return FakeGateway()


@pytest.fixture
def fake_ledger() -> FakeLedger:
    """Empty in-memory ledger."""
    return FakeLedger()


@pytest.fixture
def record_factory() -> Callable[..., TransactionRecord]:
    """Factory for valid TransactionRecord instances."""
    return make_record


@pytest.fixture
def scripted_provider() -> type[ScriptedProvider]:
    """The ScriptedProvider class, for building providers per test."""
    return ScriptedProvider


@pytest.fixture
def gateway_class() -> type[FakeGateway]:
    """The FakeGateway class, for tests that need several gateways."""
    return FakeGateway
