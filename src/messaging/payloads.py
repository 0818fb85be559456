"""Typed payloads for order and payment messages.

Raw tags are parsed exactly once, when a message crosses the store boundary.
Each supported kind becomes a frozen payload; anything that does not fit its
schema raises ``MalformedMessage`` and is quarantined by the caller instead of
leaking half-filled values downstream.
"""

import re
from dataclasses import dataclass
from enum import Enum

from messaging.exceptions import MalformedMessage
from messaging.message import Message, MessageKind

_INTEGER = re.compile(r"^\d+$")

DEFAULT_CURRENCY = "sats"


class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ShippingStatus(Enum):
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    EXCEPTION = "exception"


class PaymentMedium(Enum):
    LIGHTNING = "lightning"
    BITCOIN = "bitcoin"
    FIAT = "fiat"
    OTHER = "other"


@dataclass(frozen=True)
class OrderItem:
    product_ref: str
    quantity: int


@dataclass(frozen=True)
class OrderCreation:
    order_id: str
    seller: str
    items: tuple[OrderItem, ...]
    amount: int
    currency: str = DEFAULT_CURRENCY
    shipping_ref: str | None = None
    address: str | None = None
    subject: str | None = None
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class StatusUpdate:
    order_id: str
    status: OrderStatus
    creation_ref: str | None = None
    reason: str | None = None
    tracking: str | None = None


@dataclass(frozen=True)
class ShippingUpdate:
    order_id: str
    status: ShippingStatus
    tracking: str | None = None
    carrier: str | None = None
    eta: int | None = None


@dataclass(frozen=True)
class PaymentReceipt:
    order_id: str
    recipient: str
    amount: int
    medium: PaymentMedium
    reference: str
    currency: str = DEFAULT_CURRENCY
    proof: str | None = None
    status: str = "paid"
    tx_ref: str | None = None


@dataclass(frozen=True)
class UnsupportedMessage:
    """Classified, but not consumed by the core (payment requests, chat)."""

    kind: MessageKind


Payload = OrderCreation | StatusUpdate | ShippingUpdate | PaymentReceipt | UnsupportedMessage


@dataclass(frozen=True)
class ParsedMessage:
    message: Message
    kind: MessageKind
    payload: Payload

    @property
    def id(self) -> str:
        return self.message.id

    @property
    def author(self) -> str:
        return self.message.author

    @property
    def created_at(self) -> int:
        return self.message.created_at

    @property
    def order_id(self) -> str | None:
        return getattr(self.payload, "order_id", None)


def _require(message: Message, name: str, errors: dict) -> str | None:
    value = message.value(name)
    if not value:
        errors.setdefault(name, []).append(f"Missing required tag: {name}")
    return value


def _parse_amount(message: Message, errors: dict) -> tuple[int, str]:
    tag = message.first("amount")
    if tag is None or len(tag) < 2:
        errors.setdefault("amount", []).append("Missing required tag: amount")
        return 0, DEFAULT_CURRENCY
    if not _INTEGER.match(tag[1]):
        errors.setdefault("amount", []).append("Amount must be an integer")
        return 0, DEFAULT_CURRENCY
    currency = tag[2] if len(tag) > 2 and tag[2] else DEFAULT_CURRENCY
    return int(tag[1]), currency.lower() if currency.upper() in ("SATS", "SAT") else currency


def _parse_enum(enum_cls, raw: str | None, field_name: str, errors: dict):
    try:
        return enum_cls(raw)
    except ValueError:
        errors.setdefault(field_name, []).append(f"Unknown {field_name} value: {raw!r}")
        return None


def _parse_order_creation(message: Message) -> OrderCreation:
    errors: dict[str, list[str]] = {}
    order_id = _require(message, "order", errors)
    seller = _require(message, "p", errors)
    amount, currency = _parse_amount(message, errors)

    items = []
    for tag in message.all("item"):
        if len(tag) < 2 or not tag[1]:
            errors.setdefault("item", []).append("Item tag needs a product reference")
            continue
        quantity = tag[2] if len(tag) > 2 else "1"
        if not _INTEGER.match(quantity) or int(quantity) <= 0:
            errors.setdefault("item", []).append(f"Invalid quantity for {tag[1]}: {quantity!r}")
            continue
        items.append(OrderItem(product_ref=tag[1], quantity=int(quantity)))
    if not message.all("item"):
        errors.setdefault("item", []).append("Missing required tag: item")

    if errors:
        raise MalformedMessage(errors)

    return OrderCreation(
        order_id=order_id,
        seller=seller,
        items=tuple(items),
        amount=amount,
        currency=currency,
        shipping_ref=message.value("shipping"),
        address=message.value("address"),
        subject=message.value("subject"),
        email=message.value("email"),
        phone=message.value("phone"),
    )


def _parse_status_update(message: Message) -> StatusUpdate:
    errors: dict[str, list[str]] = {}
    order_id = _require(message, "order", errors)
    raw_status = _require(message, "status", errors)
    status = _parse_enum(OrderStatus, raw_status, "status", errors) if raw_status else None

    if errors:
        raise MalformedMessage(errors)

    return StatusUpdate(
        order_id=order_id,
        status=status,
        creation_ref=message.value("e"),
        reason=message.value("reason"),
        tracking=message.value("tracking"),
    )


def _parse_shipping_update(message: Message) -> ShippingUpdate:
    errors: dict[str, list[str]] = {}
    order_id = _require(message, "order", errors)
    raw_status = _require(message, "status", errors)
    status = _parse_enum(ShippingStatus, raw_status, "status", errors) if raw_status else None

    eta = message.value("eta")
    if eta is not None and not _INTEGER.match(eta):
        errors.setdefault("eta", []).append("ETA must be a unix timestamp")

    if errors:
        raise MalformedMessage(errors)

    return ShippingUpdate(
        order_id=order_id,
        status=status,
        tracking=message.value("tracking"),
        carrier=message.value("carrier"),
        eta=int(eta) if eta is not None else None,
    )


def _parse_payment_receipt(message: Message) -> PaymentReceipt:
    errors: dict[str, list[str]] = {}
    order_id = _require(message, "order", errors)
    recipient = _require(message, "p", errors)
    amount, currency = _parse_amount(message, errors)

    payment = message.first("payment")
    medium = None
    if payment is None or len(payment) < 3:
        errors.setdefault("payment", []).append("Payment tag needs a medium and a reference")
    else:
        medium = _parse_enum(PaymentMedium, payment[1], "payment", errors)

    if errors:
        raise MalformedMessage(errors)

    return PaymentReceipt(
        order_id=order_id,
        recipient=recipient,
        amount=amount,
        currency=currency,
        medium=medium,
        reference=payment[2],
        proof=payment[3] if len(payment) > 3 and payment[3] else None,
        status=message.value("status") or "paid",
        tx_ref=message.value("tx"),
    )


_PARSERS = {
    MessageKind.ORDER_CREATION: _parse_order_creation,
    MessageKind.STATUS_UPDATE: _parse_status_update,
    MessageKind.SHIPPING_UPDATE: _parse_shipping_update,
    MessageKind.PAYMENT_RECEIPT: _parse_payment_receipt,
}


def parse_message(message: Message) -> ParsedMessage:
    """Classify a message and parse its tags into the matching payload."""
    kind = message.classify()
    if kind is None:
        raise MalformedMessage({"kind": [f"Unrecognised message kind {message.kind} / type {message.value('type')!r}"]})

    parser = _PARSERS.get(kind)
    payload = parser(message) if parser else UnsupportedMessage(kind=kind)
    return ParsedMessage(message=message, kind=kind, payload=payload)
