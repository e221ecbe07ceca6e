"""Payment portal (Naver Pay) history collector.

The payment history listing is a Next.js data route paged by a 1-based
``page`` parameter. Details come from two order APIs: local payments and
order sheets are addressed by order number, everything else by payment id.
"""

import logging
from datetime import datetime, timezone
from typing import Any, ClassVar

from ..schemas import (
    LineItem,
    ListItem,
    ListPage,
    Merchant,
    ProviderId,
    TransactionRecord,
)
from .base import Partition, Provider
from .normalize import (
    DetailPayload,
    JsonDict,
    MultiSuborderShape,
    SimpleShape,
    Unrecognized,
    as_int,
    as_str,
    compact_breakdown,
    dig,
    display_name,
    first_truthy,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

LIST_URL = "https://pay.naver.com/_next/data/{token}/pc/history.json?page={page}"
PAYMENT_DETAIL_URL = (
    "https://orders.pay.naver.com/orderApi/payment/detail/naverFinancial"
    "?paymentId={payment_id}"
)
ORDER_SHEET_DETAIL_URL = (
    "https://orders.pay.naver.com/orderApi/orderSheet/detail/?orderNo={order_no}"
)
ORDER_NO_SERVICE_TYPES = frozenset({"LOCALPAY", "ORDER"})

_HISTORY_PAGE_PATH = (
    "pageProps",
    "dehydratedState",
    "queries",
    0,
    "state",
    "data",
    "pages",
    0,
)


class NaverProvider(Provider):
    """Collects payments from the Naver Pay history."""

    provider_id: ClassVar[ProviderId] = ProviderId.NAVER
    ledger_tables: ClassVar[tuple[str, ...]] = ("naver_payment_item", "naver_payment")
    first_page_index: ClassVar[int] = 1

    def list_url(self, partition: Partition, page_index: int, token: str) -> str:
        return LIST_URL.format(token=token, page=page_index)

    def parse_list(self, data: Any) -> ListPage:
        page = dig(data, *_HISTORY_PAGE_PATH)
        if not isinstance(page, dict):
            page = {}
        items = page.get("items") or []
        if not isinstance(items, list):
            raise ValueError(f"items is {type(items).__name__}, not a list")
        stubs: list[ListItem] = []
        for item in items:
            pay_id = as_str(
                first_truthy(dig(item, "additionalData", "payId"), dig(item, "_id"))
            )
            if not pay_id:
                logger.warning(f"Skipping naver history entry without id: {item!r:.200}")
                continue
            stubs.append(
                ListItem(
                    external_id=pay_id,
                    detail_key=pay_id,
                    source_id=as_str(dig(item, "_id")),
                    sub_type=as_str(dig(item, "serviceType")),
                    order_no=as_str(dig(item, "additionalData", "orderNo")),
                    status_code=as_str(dig(item, "status", "name")),
                    status_text=as_str(dig(item, "status", "text")),
                    status_color=as_str(dig(item, "status", "color")),
                    product_detail_url=as_str(dig(item, "productDetailUrl")),
                    order_detail_url=as_str(dig(item, "orderDetailUrl")),
                )
            )
        return ListPage(items=stubs, total_pages=as_int(page.get("totalPage")))

    def detail_url(self, stub: ListItem, token: str) -> str:
        if stub.sub_type in ORDER_NO_SERVICE_TYPES and stub.order_no:
            return ORDER_SHEET_DETAIL_URL.format(order_no=stub.order_no)
        return PAYMENT_DETAIL_URL.format(payment_id=stub.detail_key)

    def classify(self, data: Any, stub: ListItem) -> DetailPayload:
        result = dig(data, "result")
        if not isinstance(result, dict):
            return Unrecognized("response has no result entity")

        product = result.get("product")
        if isinstance(product, dict) and product.get("name"):
            total = _total_amount(result)
            entry = {
                "productName": product.get("name"),
                "orderQuantity": product.get("count"),
                "orderAmount": total,
            }
            return SimpleShape(root=result, items=(entry,))

        product_orders = result.get("productOrders")
        if isinstance(product_orders, list) and product_orders:
            orders = tuple(po for po in product_orders if isinstance(po, dict))
            return MultiSuborderShape(root=result, groups=(orders,))

        return Unrecognized("neither product nor productOrders present")

    def line_fields(self, entry: JsonDict) -> JsonDict:
        return {
            "product_name": as_str(entry.get("productName")) or "Unknown",
            "quantity": as_int(entry.get("orderQuantity")) or 1,
            "unit_price": as_int(entry.get("unitPrice")),
            "line_amount": as_int(entry.get("orderAmount")),
            "image_url": as_str(entry.get("productImageUrl")),
            "memo": as_str(entry.get("optionContents")),
        }

    def build_record(
        self,
        root: JsonDict,
        items: list[LineItem],
        stub: ListItem,
        payload: DetailPayload,
    ) -> TransactionRecord:
        paid_at = (
            parse_timestamp(dig(root, "payment", "date"))
            or parse_timestamp(dig(root, "order", "orderDateTime"))
            or datetime.now(timezone.utc)
        )

        merchant_name = first_truthy(
            dig(root, "merchant", "name"),
            _first_bundle_merchant(root),
            default="Unknown",
        )
        merchant = Merchant(
            name=str(merchant_name),
            tel=as_str(dig(root, "merchant", "tel")),
            url=as_str(dig(root, "merchant", "url")),
            image_url=as_str(dig(root, "merchant", "imageUrl")),
        )

        discount = as_int(dig(root, "amount", "discountAmount"))
        if isinstance(root.get("pay"), dict):
            discount = as_int(dig(root, "pay", "totalDiscountAmount"))

        breakdown = {
            "easy_card": dig(root, "amount", "paymentMethod", "easyCard"),
            "easy_bank": dig(root, "amount", "paymentMethod", "easyBank"),
            "reward_point": first_truthy(
                dig(root, "pay", "rewardPointPayAmount"),
                dig(root, "amount", "paymentMethod", "rewardPoint"),
            ),
            "charge_point": first_truthy(
                dig(root, "pay", "chargePointPayAmount"),
                dig(root, "amount", "paymentMethod", "chargePoint"),
            ),
            "gift_card": dig(root, "amount", "paymentMethod", "giftCard"),
            "cup_deposit": dig(root, "amount", "cupDepositAmount"),
        }

        return TransactionRecord(
            external_id=stub.external_id,
            provider_id=self.provider_id,
            source_id=stub.source_id,
            service_type=stub.sub_type,
            paid_at=paid_at,
            merchant=merchant,
            total_amount=_total_amount(root),
            discount_amount=discount,
            line_items=items,
            product_name=display_name(items),
            product_count=len(items),
            payment_breakdown=compact_breakdown(breakdown),
        )


def _total_amount(result: JsonDict) -> int:
    """Payment aggregate, then order aggregate, then zero."""
    total = first_truthy(
        as_int(dig(result, "amount", "totalAmount")),
        as_int(dig(result, "pay", "totalInitPayAmount")),
        default=0,
    )
    return max(int(total), 0)


def _first_bundle_merchant(result: JsonDict) -> str | None:
    groups = result.get("productBundleGroups")
    if isinstance(groups, dict):
        for group in groups.values():
            name = dig(group, "merchantName")
            if name:
                return str(name)
    return None
