"""Publishing order messages on behalf of the local identity.

Only the buyer or the seller of an order may assert its status, and only the
seller may publish shipping updates. The reducer would ignore anything else,
so it is refused here before it reaches a relay.
"""

import structlog
from protean.exceptions import ValidationError

from messaging.drafts import order_creation_draft, shipping_update_draft, status_update_draft
from messaging.message import Message
from messaging.payloads import OrderItem, OrderStatus, ShippingStatus
from messaging.publisher import MessagePublisher
from ordering.status import is_in_sequence
from ordering.view import OrderView

logger = structlog.get_logger(__name__)


def _coerce(enum_cls, value, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError({field_name: [f"Unknown {field_name}: {value!r}"]}) from None


class OrderMessenger:
    def __init__(self, publisher: MessagePublisher) -> None:
        self.publisher = publisher

    async def place_order(
        self,
        order_id: str,
        seller: str,
        items: list[OrderItem],
        amount: int,
        **details,
    ) -> Message:
        if not items:
            raise ValidationError({"items": ["An order needs at least one item"]})
        if amount < 0:
            raise ValidationError({"amount": ["Amount cannot be negative"]})

        message = await self.publisher.publish(order_creation_draft(order_id, seller, items, amount, **details))
        logger.info("Order placed", order_id=order_id, seller=seller, amount=amount)
        return message

    async def update_status(
        self,
        view: OrderView,
        status,
        reason: str | None = None,
        tracking: str | None = None,
    ) -> Message:
        status = _coerce(OrderStatus, status, "status")
        author = self.publisher.pubkey
        if not view.is_party(author):
            raise ValidationError({"author": ["Only the buyer or the seller may update the order status"]})

        if not is_in_sequence(view.status, status):
            logger.warning(
                "Publishing out-of-sequence status",
                order_id=view.order_id,
                current=view.status.value,
                target=status.value,
            )

        message = await self.publisher.publish(
            status_update_draft(view.order_id, status, creation_ref=view.creation_id, reason=reason, tracking=tracking)
        )
        logger.info("Order status published", order_id=view.order_id, status=status.value)
        return message

    async def update_shipping(
        self,
        view: OrderView,
        status,
        tracking: str | None = None,
        carrier: str | None = None,
        eta: int | None = None,
    ) -> Message:
        status = _coerce(ShippingStatus, status, "status")
        if view.is_partial or self.publisher.pubkey != view.seller:
            raise ValidationError({"author": ["Only the seller may publish shipping updates"]})

        message = await self.publisher.publish(
            shipping_update_draft(view.order_id, status, tracking=tracking, carrier=carrier, eta=eta)
        )
        logger.info("Shipping update published", order_id=view.order_id, status=status.value)
        return message
