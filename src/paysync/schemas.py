"""Pydantic schemas for collected purchase records.

This module provides the canonical data model shared by every provider:
listing stubs, normalized transaction records with their line items, and
the ledger checkpoint used to bound incremental collection.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProviderId(str, Enum):
    """Supported purchase history providers."""

    NAVER = "naver"
    COUPANG = "coupang"


class SyncMode(str, Enum):
    """Collection mode for a run."""

    INCREMENTAL = "incremental"
    FULL = "full"


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        validate_assignment=True,
        extra="forbid",
        use_enum_values=True,
        str_strip_whitespace=True,
        populate_by_name=True,
    )


class Merchant(BaseSchema):
    """Seller or payee of a transaction."""

    name: str = Field(..., description="Merchant display name")
    tel: str | None = None
    url: str | None = None
    image_url: str | None = None


class LineItem(BaseSchema):
    """A single product line within a transaction."""

    line_no: int = Field(..., ge=1, description="1-based position in the record")
    product_name: str
    quantity: int = Field(default=1, ge=1)
    unit_price: int | None = None
    line_amount: int | None = None
    image_url: str | None = None
    info_url: str | None = None
    memo: str | None = None
    product_id: str | None = None
    brand_name: str | None = None

    @field_validator("quantity", mode="before")
    @classmethod
    def coerce_quantity(cls, v: object) -> object:
        """Providers occasionally omit or zero the quantity; treat that as one."""
        if v is None or v == 0:
            return 1
        return v


class TransactionRecord(BaseSchema):
    """Canonical purchase record persisted to the ledger."""

    external_id: str = Field(..., min_length=1, description="Provider natural id")
    provider_id: ProviderId
    paid_at: datetime
    merchant: Merchant
    status_code: str | None = None
    status_text: str | None = None
    status_color: str | None = None
    total_amount: int = Field(..., ge=0, description="Total in minor currency unit")
    discount_amount: int | None = None
    line_items: list[LineItem] = Field(default_factory=list)

    source_id: str | None = Field(None, description="Listing entry id, if distinct")
    service_type: str | None = None
    ordered_at: datetime | None = None
    product_name: str | None = Field(None, description="Synthetic display name")
    product_count: int | None = None
    product_detail_url: str | None = None
    order_detail_url: str | None = None
    payment_breakdown: dict[str, int] = Field(
        default_factory=dict, description="Paid amount per payment method"
    )

    @field_validator("line_items")
    @classmethod
    def validate_line_numbers(cls, v: list[LineItem]) -> list[LineItem]:
        """Line numbers must run 1..N in order with no gaps."""
        expected = list(range(1, len(v) + 1))
        actual = [item.line_no for item in v]
        if actual != expected:
            raise ValueError(f"line_no must be contiguous from 1, got {actual}")
        return v


class ListItem(BaseSchema):
    """Lightweight listing entry (stub) identifying a record.

    Fields prefixed with ``status_`` and the deep-link URLs are list-sourced:
    they are merged onto the normalized record after the detail fetch.
    """

    external_id: str = Field(..., min_length=1)
    detail_key: str = Field(..., min_length=1, description="Id used for detail URL")
    source_id: str | None = None
    sub_type: str | None = None
    order_no: str | None = None
    status_code: str | None = None
    status_text: str | None = None
    status_color: str | None = None
    product_detail_url: str | None = None
    order_detail_url: str | None = None


class ListPage(BaseSchema):
    """One page of a provider listing in native newest-first order."""

    items: list[ListItem] = Field(default_factory=list)
    total_pages: int | None = Field(None, description="Informational only")


class Checkpoint(BaseSchema):
    """Key of the most recently persisted record for an account."""

    last_external_id: str
    last_paid_at: datetime | None = None


def merge_list_fields(record: TransactionRecord, stub: ListItem) -> TransactionRecord:
    """Overlay list-sourced fields onto a freshly normalized record.

    The listing is authoritative for status and deep links; values absent
    from the stub leave the record untouched.
    """
    updates: dict[str, str] = {}
    for field in (
        "status_code",
        "status_text",
        "status_color",
        "product_detail_url",
        "order_detail_url",
    ):
        value = getattr(stub, field)
        if value is not None:
            updates[field] = value
    if stub.source_id is not None and record.source_id is None:
        updates["source_id"] = stub.source_id
    if not updates:
        return record
    return record.model_copy(update=updates)
