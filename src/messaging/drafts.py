"""Builders for the order and payment message drafts the core publishes."""

from messaging.message import (
    ORDER_MESSAGE_TYPE_CODES,
    ORDER_PROCESS_KIND,
    PAYMENT_RECEIPT_KIND,
    MessageDraft,
    MessageKind,
)
from messaging.payloads import DEFAULT_CURRENCY, OrderItem, OrderStatus, PaymentMedium, ShippingStatus


def _type_tag(kind: MessageKind) -> tuple[str, str]:
    return ("type", ORDER_MESSAGE_TYPE_CODES[kind])


def order_creation_draft(
    order_id: str,
    seller: str,
    items: list[OrderItem],
    amount: int,
    currency: str = DEFAULT_CURRENCY,
    shipping_ref: str | None = None,
    address: str | None = None,
    subject: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    created_at: int | None = None,
) -> MessageDraft:
    tags = [
        ("order", order_id),
        ("p", seller),
        _type_tag(MessageKind.ORDER_CREATION),
        ("amount", str(amount), currency),
    ]
    tags.extend(("item", item.product_ref, str(item.quantity)) for item in items)

    optional = {"shipping": shipping_ref, "address": address, "subject": subject, "email": email, "phone": phone}
    tags.extend((name, value) for name, value in optional.items() if value)

    return MessageDraft(kind=ORDER_PROCESS_KIND, tags=tuple(tags), created_at=created_at)


def status_update_draft(
    order_id: str,
    status: OrderStatus,
    creation_ref: str | None = None,
    reason: str | None = None,
    tracking: str | None = None,
    created_at: int | None = None,
) -> MessageDraft:
    tags = [("order", order_id), _type_tag(MessageKind.STATUS_UPDATE), ("status", status.value)]
    if creation_ref:
        tags.append(("e", creation_ref))
    if reason:
        tags.append(("reason", reason))
    if tracking:
        tags.append(("tracking", tracking))
    return MessageDraft(kind=ORDER_PROCESS_KIND, tags=tuple(tags), content=reason or "", created_at=created_at)


def shipping_update_draft(
    order_id: str,
    status: ShippingStatus,
    tracking: str | None = None,
    carrier: str | None = None,
    eta: int | None = None,
    created_at: int | None = None,
) -> MessageDraft:
    tags = [("order", order_id), _type_tag(MessageKind.SHIPPING_UPDATE), ("status", status.value)]
    if tracking:
        tags.append(("tracking", tracking))
    if carrier:
        tags.append(("carrier", carrier))
    if eta is not None:
        tags.append(("eta", str(eta)))
    return MessageDraft(kind=ORDER_PROCESS_KIND, tags=tuple(tags), created_at=created_at)


def payment_receipt_draft(
    order_id: str,
    recipient: str,
    amount: int,
    reference: str,
    proof: str | None = None,
    medium: PaymentMedium = PaymentMedium.LIGHTNING,
    currency: str = DEFAULT_CURRENCY,
    created_at: int | None = None,
) -> MessageDraft:
    payment = ("payment", medium.value, reference, proof) if proof else ("payment", medium.value, reference)
    tags = (
        ("order", order_id),
        ("p", recipient),
        ("amount", str(amount), currency),
        payment,
        ("status", "paid"),
    )
    return MessageDraft(kind=PAYMENT_RECEIPT_KIND, tags=tags, created_at=created_at)
