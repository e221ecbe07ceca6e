"""Online marketplace (Coupang) order history collector.

Orders are listed per calendar year with a 0-based ``pageIndex``. Each order
detail is read from the order page's Next.js data route, which nests products
inside delivery groups (one per shipment/vendor).
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, ClassVar

from ..config import SyncConfig
from ..connectors.gateway import RequestGateway
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

LIST_URL = (
    "https://mc.coupang.com/ssr/api/myorders/model/page"
    "?pageIndex={page}&requestYear={year}&size={size}"
)
DETAIL_URL = (
    "https://mc.coupang.com/ssr/_next/data/{token}/desktop/order/{order_id}.json"
    "?orderId={order_id}"
)
ORDER_PAGE_URL = "https://mc.coupang.com/ssr/desktop/order/{order_id}"

# Payment method name -> key under payedPayment
_PAYMENT_METHODS = {
    "rocket_balance": "rocketBalancePayment",
    "card": "cardPayment",
    "coupon": "couponPayment",
    "coupang_cash": "coupangCashPayment",
    "rocket_bank": "rocketBankPayment",
}


class CoupangProvider(Provider):
    """Collects orders from the Coupang order history, newest year first."""

    provider_id: ClassVar[ProviderId] = ProviderId.COUPANG
    ledger_tables: ClassVar[tuple[str, ...]] = (
        "coupang_payment_item",
        "coupang_payment",
    )
    first_page_index: ClassVar[int] = 0
    year_partitioned: ClassVar[bool] = True

    def __init__(
        self,
        gateway: RequestGateway,
        headers: dict[str, str],
        config: SyncConfig | None = None,
        current_year: int | None = None,
    ) -> None:
        super().__init__(gateway, headers, config)
        self.current_year = current_year or date.today().year

    def partitions(self) -> list[Partition]:
        return [
            Partition(label=str(year), year=year)
            for year in range(self.current_year, self.config.year_floor - 1, -1)
        ]

    def list_url(self, partition: Partition, page_index: int, token: str) -> str:
        return LIST_URL.format(
            page=page_index, year=partition.year or 0, size=self.config.page_size
        )

    def parse_list(self, data: Any) -> ListPage:
        orders = dig(data, "orderList") or []
        if not isinstance(orders, list):
            raise ValueError(f"orderList is {type(orders).__name__}, not a list")
        stubs: list[ListItem] = []
        for order in orders:
            order_id = as_str(dig(order, "orderId"))
            if not order_id:
                logger.warning(f"Skipping coupang order without id: {order!r:.200}")
                continue
            stubs.append(
                ListItem(
                    external_id=order_id,
                    detail_key=order_id,
                    order_detail_url=ORDER_PAGE_URL.format(order_id=order_id),
                )
            )
        return ListPage(items=stubs)

    def detail_url(self, stub: ListItem, token: str) -> str:
        return DETAIL_URL.format(token=token, order_id=stub.detail_key)

    def classify(self, data: Any, stub: ListItem) -> DetailPayload:
        domains = dig(data, "pageProps", "domains")
        entity = dig(domains, "order", "entity", "entities", stub.detail_key)
        if not isinstance(entity, dict):
            return Unrecognized("order entity absent")

        payment = dig(domains, "payment", "entities", stub.detail_key)
        root = {"order": entity, "payment": payment if isinstance(payment, dict) else {}}

        groups = entity.get("deliveryGroupList")
        if not isinstance(groups, list) or not groups:
            return Unrecognized("order has no delivery groups")

        products = tuple(
            tuple(p for p in (dig(group, "productList") or []) if isinstance(p, dict))
            for group in groups
        )
        if len(products) == 1:
            return SimpleShape(root=root, items=products[0])
        return MultiSuborderShape(root=root, groups=products)

    def line_fields(self, entry: JsonDict) -> JsonDict:
        quantity = as_int(entry.get("quantity")) or 1
        unit_price = as_int(entry.get("unitPrice"))
        discounted = as_int(entry.get("discountedUnitPrice"))
        combined = as_int(entry.get("combinedUnitPrice"))

        if combined:
            line_amount: int | None = combined * quantity
        elif unit_price is not None:
            line_amount = unit_price * quantity
        else:
            line_amount = None

        return {
            "product_name": as_str(entry.get("productName")) or "Unknown",
            "quantity": quantity,
            # Final per-unit price after discounts wins
            "unit_price": first_truthy(combined, discounted, unit_price),
            "line_amount": line_amount,
            "image_url": as_str(entry.get("imagePath")),
            "memo": as_str(entry.get("vendorItemName")),
            "product_id": as_str(entry.get("productId")),
            "brand_name": as_str(dig(entry, "brandInfo", "brandName")),
        }

    def build_record(
        self,
        root: JsonDict,
        items: list[LineItem],
        stub: ListItem,
        payload: DetailPayload,
    ) -> TransactionRecord:
        order = root["order"]
        payment = root["payment"]

        if order.get("allCanceled"):
            status_code, status_text = "CANCELED", "Canceled"
        elif order.get("allReceipted"):
            status_code, status_text = "RECEIPTED", "Received"
        else:
            status_code, status_text = "ORDERED", "Ordered"

        ordered_at = parse_timestamp(order.get("orderedAt"))
        paid_at = (
            parse_timestamp(payment.get("paidAt"))
            or ordered_at
            or datetime.now(timezone.utc)
        )

        total = first_truthy(
            as_int(payment.get("totalPayedAmount")),
            as_int(order.get("totalProductPrice")),
            default=0,
        )

        breakdown = {
            method: dig(payment, "payedPayment", key, "payedPrice")
            for method, key in _PAYMENT_METHODS.items()
        }

        merchant = Merchant(
            name=as_str(order.get("title")) or "Coupang",
            tel=as_str(
                dig(order, "deliveryGroupList", 0, "vendor", "repPhoneNum")
            ),
        )

        return TransactionRecord(
            external_id=stub.external_id,
            provider_id=self.provider_id,
            status_code=status_code,
            status_text=status_text,
            paid_at=paid_at,
            ordered_at=ordered_at,
            merchant=merchant,
            total_amount=max(int(total), 0),
            discount_amount=as_int(dig(payment, "wowBenefit", "instantDiscountPrice")),
            line_items=items,
            product_name=display_name(items),
            product_count=len(items),
            payment_breakdown=compact_breakdown(breakdown),
        )
