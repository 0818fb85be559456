"""Order Reducer.

Folds an unordered, possibly duplicated set of messages into an ``OrderView``.
The fold is a pure function of the *set* of messages: permutations and
duplicates of the same input produce equal views.

Rules:
    - the earliest creation message (``created_at``, then ``id``) defines the
      buyer (its author), the seller (its ``p`` tag) and the order total;
    - status updates count only when authored by the buyer or the seller,
      shipping updates only when authored by the seller. Everything else stays
      in the history, flagged as unauthorised;
    - the latest update is the one with the greatest ``created_at``, ties
      broken by the lexicographically greatest id;
    - every receipt for the order lands in ``receipt_history``; a receipt counts
      as payment of the order when addressed to the seller for the order
      total, give or take ``tolerance`` units;
    - message content, decrypted through ``decryption`` when encrypted, becomes
      the note of the creation and of each status update. A message that
      cannot be decrypted is left out entirely.
"""

import structlog

from messaging.decryption import DecryptionCache
from messaging.exceptions import MalformedMessage
from messaging.message import MessageKind
from messaging.payloads import OrderCreation, OrderStatus, ParsedMessage, parse_message
from ordering.status import detect_anomalies
from ordering.view import OrderView, ReceiptEntry, ShippingEntry, StatusEntry

logger = structlog.get_logger(__name__)

DEFAULT_RECEIPT_TOLERANCE = 2


def _order_key(parsed: ParsedMessage) -> tuple[int, str]:
    return (parsed.created_at, parsed.id)


def _collect(
    order_id: str, messages, decryption: DecryptionCache | None
) -> tuple[dict[str, ParsedMessage], dict[str, str]]:
    collected: dict[str, ParsedMessage] = {}
    notes: dict[str, str] = {}
    for item in messages:
        if isinstance(item, ParsedMessage):
            parsed = item
        else:
            try:
                parsed = parse_message(item)
            except MalformedMessage as exc:
                logger.debug("Dropping malformed message", message_id=item.id, errors=exc.messages)
                continue

        if parsed.order_id != order_id or parsed.id in collected:
            continue
        if decryption is not None:
            content = decryption.plaintext(parsed.message)
            if content is None:
                continue
        else:
            content = None if parsed.message.encrypted else parsed.message.content

        collected[parsed.id] = parsed
        if content:
            notes[parsed.id] = content
    return collected, notes


def reduce_order(
    order_id: str,
    messages,
    *,
    decryption: DecryptionCache | None = None,
    tolerance: int = DEFAULT_RECEIPT_TOLERANCE,
) -> OrderView:
    """Derive the view of ``order_id`` from raw or parsed messages."""
    by_id, notes = _collect(order_id, messages, decryption)
    collected = sorted(by_id.values(), key=_order_key)
    by_kind: dict[MessageKind, list[ParsedMessage]] = {}
    for parsed in collected:
        by_kind.setdefault(parsed.kind, []).append(parsed)

    creations = by_kind.get(MessageKind.ORDER_CREATION, [])
    creation = creations[0] if creations else None
    details: OrderCreation | None = creation.payload if creation else None
    buyer = creation.author if creation else None
    seller = details.seller if details else None
    parties = {buyer, seller} if creation else set()

    status_history = tuple(
        StatusEntry(
            message_id=parsed.id,
            author=parsed.author,
            status=parsed.payload.status,
            created_at=parsed.created_at,
            authorized=parsed.author in parties,
            reason=parsed.payload.reason,
            tracking=parsed.payload.tracking,
            note=notes.get(parsed.id),
        )
        for parsed in by_kind.get(MessageKind.STATUS_UPDATE, [])
    )
    shipping_history = tuple(
        ShippingEntry(
            message_id=parsed.id,
            author=parsed.author,
            status=parsed.payload.status,
            created_at=parsed.created_at,
            authorized=seller is not None and parsed.author == seller,
            tracking=parsed.payload.tracking,
            carrier=parsed.payload.carrier,
            eta=parsed.payload.eta,
        )
        for parsed in by_kind.get(MessageKind.SHIPPING_UPDATE, [])
    )

    authorized_statuses = [entry for entry in status_history if entry.authorized]
    authorized_shipping = [entry for entry in shipping_history if entry.authorized]
    latest_status = authorized_statuses[-1] if authorized_statuses else None
    latest_shipping = authorized_shipping[-1] if authorized_shipping else None

    receipt_history = tuple(
        sorted(
            (
                ReceiptEntry(
                    message_id=parsed.id,
                    author=parsed.author,
                    recipient=parsed.payload.recipient,
                    amount=parsed.payload.amount,
                    currency=parsed.payload.currency,
                    medium=parsed.payload.medium,
                    reference=parsed.payload.reference,
                    created_at=parsed.created_at,
                    proof=parsed.payload.proof,
                )
                for parsed in by_kind.get(MessageKind.PAYMENT_RECEIPT, [])
            ),
            key=lambda entry: (entry.created_at, entry.message_id),
            reverse=True,
        )
    )
    receipts = ()
    if details is not None:
        receipts = tuple(
            entry
            for entry in receipt_history
            if entry.recipient == seller and abs(entry.amount - details.amount) <= tolerance
        )

    if creation is None:
        return OrderView(
            order_id=order_id,
            status_history=status_history,
            shipping_history=shipping_history,
            receipt_history=receipt_history,
        )

    return OrderView(
        order_id=order_id,
        buyer=buyer,
        seller=seller,
        items=details.items,
        total_amount=details.amount,
        currency=details.currency,
        shipping_ref=details.shipping_ref,
        address=details.address,
        note=notes.get(creation.id),
        status=latest_status.status if latest_status else OrderStatus.PENDING,
        latest_status=latest_status,
        latest_shipping=latest_shipping,
        status_history=status_history,
        shipping_history=shipping_history,
        payment_receipts=receipts,
        receipt_history=receipt_history,
        status_anomalies=detect_anomalies(authorized_statuses),
        creation_id=creation.id,
        is_partial=False,
    )
