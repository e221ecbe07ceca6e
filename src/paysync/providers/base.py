"""Provider capability set consumed by the sync orchestrator.

A provider supplies only the leaf operations of a collection run: token
resolution, listing one page, fetching one detail record and deriving the
checkpoint key of a stub. The control flow lives in the orchestrator.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar

from pydantic import ValidationError

from ..config import SyncConfig
from ..connectors.gateway import RequestGateway
from ..errors import GatewayError, ItemUnavailable, PageError
from ..schemas import LineItem, ListItem, ListPage, ProviderId, TransactionRecord
from .build_token import BuildTokenResolver
from .normalize import (
    DetailPayload,
    JsonDict,
    MultiSuborderShape,
    SimpleShape,
    Unrecognized,
    number_line_items,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Partition:
    """A slice of a provider's history listed independently (e.g. one year)."""

    label: str
    year: int | None = None


class Provider(ABC):
    """Base class for purchase history providers.

    Instances are created per run: the build token cache they hold must not
    outlive the session it was derived from.
    """

    provider_id: ClassVar[ProviderId]
    # Ledger tables cleared by a full resync, children first
    ledger_tables: ClassVar[tuple[str, ...]]
    first_page_index: ClassVar[int] = 1
    year_partitioned: ClassVar[bool] = False

    def __init__(
        self,
        gateway: RequestGateway,
        headers: dict[str, str],
        config: SyncConfig | None = None,
    ) -> None:
        self._gateway = gateway
        self._headers = headers
        self.config = config or SyncConfig()
        self._tokens = BuildTokenResolver(gateway, headers)

    def partitions(self) -> list[Partition]:
        """Partitions to walk, newest first."""
        return [Partition(label="all")]

    def resolve_token(self) -> str:
        """Return the session build token (SetupError on failure)."""
        return self._tokens.resolve(self.provider_id.value)

    def build_stop_key(self, stub: ListItem) -> str:
        """Key compared against the checkpoint's last external id."""
        return stub.external_id

    @abstractmethod
    def list_url(self, partition: Partition, page_index: int, token: str) -> str:
        """URL of one listing page."""

    @abstractmethod
    def parse_list(self, data: Any) -> ListPage:
        """Extract stubs from a listing response body."""

    @abstractmethod
    def detail_url(self, stub: ListItem, token: str) -> str:
        """URL of one stub's detail document."""

    @abstractmethod
    def classify(self, data: Any, stub: ListItem) -> DetailPayload:
        """Decide which known shape a detail payload has."""

    @abstractmethod
    def line_fields(self, entry: JsonDict) -> JsonDict:
        """Map one raw product entry onto LineItem fields (except line_no)."""

    @abstractmethod
    def build_record(
        self,
        root: JsonDict,
        items: list[LineItem],
        stub: ListItem,
        payload: DetailPayload,
    ) -> TransactionRecord:
        """Assemble the canonical record from a recognized payload."""

    def list_page(self, partition: Partition, page_index: int, token: str) -> ListPage:
        """Fetch one listing page.

        Raises:
            PageError: If the request fails, returns non-2xx, is not JSON or has
                an unexpected shape
        """
        url = self.list_url(partition, page_index, token)
        try:
            response = self._gateway.request(url, "GET", self._headers, None)
        except GatewayError as e:
            raise PageError(page_index, str(e)) from e
        if not response.ok:
            raise PageError(page_index, f"HTTP {response.status}")
        try:
            data = json.loads(response.body)
        except json.JSONDecodeError as e:
            raise PageError(page_index, f"invalid JSON: {e}") from e
        try:
            return self.parse_list(data)
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            # pydantic ValidationError is a ValueError
            raise PageError(page_index, f"unexpected listing: {e}") from e

    def fetch_detail(self, stub: ListItem, token: str) -> TransactionRecord | None:
        """Fetch and normalize one record; None when it is unavailable."""
        try:
            url = self.detail_url(stub, token)
            response = self._gateway.request(url, "GET", self._headers, None)
            if not response.ok:
                raise ItemUnavailable(f"HTTP {response.status}")
            data = json.loads(response.body)
            return self.normalize(self.classify(data, stub), stub)
        except (GatewayError, ItemUnavailable, ValidationError, ValueError) as e:
            # json.JSONDecodeError is a ValueError
            logger.warning(
                f"{self.provider_id.value} detail {stub.external_id} unavailable: {e}"
            )
            return None

    def normalize(self, payload: DetailPayload, stub: ListItem) -> TransactionRecord:
        """Map a classified payload onto the canonical record.

        Raises:
            ItemUnavailable: If the payload is unrecognized
        """
        if isinstance(payload, Unrecognized):
            raise ItemUnavailable(payload.reason)
        if isinstance(payload, SimpleShape):
            entries = list(payload.items)
        elif isinstance(payload, MultiSuborderShape):
            entries = payload.flattened()
        else:
            raise TypeError(f"Unhandled detail payload: {type(payload).__name__}")
        items = number_line_items(entries, self.line_fields)
        return self.build_record(payload.root, items, stub, payload)
