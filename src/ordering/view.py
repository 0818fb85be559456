"""OrderView: the derived lifecycle of one order.

Every field is an immutable value and every history is kept in a fixed
order, so two views reduced from the same message set compare equal.
"""

from dataclasses import dataclass

from messaging.payloads import DEFAULT_CURRENCY, OrderItem, OrderStatus, PaymentMedium, ShippingStatus
from ordering.status import StatusAnomaly


@dataclass(frozen=True)
class StatusEntry:
    message_id: str
    author: str
    status: OrderStatus
    created_at: int
    authorized: bool
    reason: str | None = None
    tracking: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class ShippingEntry:
    message_id: str
    author: str
    status: ShippingStatus
    created_at: int
    authorized: bool
    tracking: str | None = None
    carrier: str | None = None
    eta: int | None = None


@dataclass(frozen=True)
class ReceiptEntry:
    message_id: str
    author: str
    recipient: str
    amount: int
    currency: str
    medium: PaymentMedium
    reference: str
    created_at: int
    proof: str | None = None


@dataclass(frozen=True)
class OrderView:
    order_id: str
    buyer: str | None = None
    seller: str | None = None
    items: tuple[OrderItem, ...] = ()
    total_amount: int = 0
    currency: str = DEFAULT_CURRENCY
    shipping_ref: str | None = None
    address: str | None = None
    note: str | None = None
    status: OrderStatus = OrderStatus.PENDING
    latest_status: StatusEntry | None = None
    latest_shipping: ShippingEntry | None = None
    status_history: tuple[StatusEntry, ...] = ()
    shipping_history: tuple[ShippingEntry, ...] = ()
    payment_receipts: tuple[ReceiptEntry, ...] = ()
    # Every receipt for the order, whoever it pays, newest first
    receipt_history: tuple[ReceiptEntry, ...] = ()
    status_anomalies: tuple[StatusAnomaly, ...] = ()
    creation_id: str | None = None
    is_partial: bool = True

    @property
    def is_paid(self) -> bool:
        return bool(self.payment_receipts)

    @property
    def unauthorized_updates(self) -> tuple[StatusEntry, ...]:
        return tuple(entry for entry in self.status_history if not entry.authorized)

    def is_party(self, pubkey: str) -> bool:
        return not self.is_partial and pubkey in (self.buyer, self.seller)
