"""Live order tracking.

Keeps the message set of every tracked order, re-reduces it whenever a new
message arrives and publishes ``OrderViewUpdated`` when the view changes.
"""

from dataclasses import dataclass

import structlog

from messaging.client import MessageStoreClient, Subscription
from messaging.decryption import DecryptionCache
from messaging.filters import MessageFilter
from messaging.payloads import ParsedMessage
from ordering.reducer import reduce_order
from ordering.view import OrderView
from shared.channel import EventChannel

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OrderViewUpdated:
    order_id: str
    view: OrderView
    message_id: str


class OrderTracker:
    def __init__(
        self,
        client: MessageStoreClient,
        channel: EventChannel | None = None,
        decryption: DecryptionCache | None = None,
    ) -> None:
        self.client = client
        self.channel = channel or EventChannel()
        self.decryption = decryption
        self._messages: dict[str, dict[str, ParsedMessage]] = {}
        self._views: dict[str, OrderView] = {}
        self._subscriptions: dict[str, Subscription] = {}

    @property
    def tolerance(self) -> int:
        return self.client.settings.receipt_amount_tolerance

    @property
    def tracked_orders(self) -> list[str]:
        return list(self._subscriptions)

    def view(self, order_id: str) -> OrderView | None:
        return self._views.get(order_id)

    async def track(self, order_id: str) -> Subscription:
        """Start following an order; resolves once its backlog has been loaded."""
        if order_id in self._subscriptions:
            return self._subscriptions[order_id]

        self._messages.setdefault(order_id, {})
        subscription = self.client.subscribe(
            MessageFilter.for_order(order_id),
            on_message=lambda parsed: self._ingest(order_id, parsed),
        )
        self._subscriptions[order_id] = subscription
        await subscription.start()
        await subscription.caught_up()
        logger.info("Tracking order", order_id=order_id, messages=len(self._messages[order_id]))
        return subscription

    def untrack(self, order_id: str) -> None:
        subscription = self._subscriptions.pop(order_id, None)
        if subscription is not None:
            subscription.cancel()
        self._messages.pop(order_id, None)
        self._views.pop(order_id, None)

    async def load(self, order_id: str, timeout: float | None = None) -> OrderView:
        """One-shot fetch and reduce, without keeping a subscription open."""
        messages = await self.client.fetch_once(MessageFilter.for_order(order_id), timeout=timeout)
        return reduce_order(order_id, messages, decryption=self.decryption, tolerance=self.tolerance)

    def close(self) -> None:
        for order_id in list(self._subscriptions):
            self.untrack(order_id)

    def _ingest(self, order_id: str, parsed: ParsedMessage) -> None:
        messages = self._messages.get(order_id)
        if messages is None or parsed.id in messages:
            return
        messages[parsed.id] = parsed

        view = reduce_order(order_id, messages.values(), decryption=self.decryption, tolerance=self.tolerance)
        if view == self._views.get(order_id):
            return

        self._views[order_id] = view
        logger.debug("Order view updated", order_id=order_id, status=view.status.value, message_id=parsed.id)
        self.channel.publish(OrderViewUpdated(order_id=order_id, view=view, message_id=parsed.id))
