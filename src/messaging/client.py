"""Message Store Client.

Streams messages from the relay pool as an async iterable with explicit
lifecycle, deduplication and catch-up detection.

Subscription lifecycle:
    IDLE → OPENING → BACKLOG → LIVE
    any → CANCELLED

A subscription is caught up once every connected relay has sent its
end-of-stored marker, or when the catch-up timeout fires, whichever happens
first. Either way the ``on_caught_up`` callback runs exactly once.
"""

import asyncio
from collections import deque
from dataclasses import dataclass
from enum import Enum
from uuid import uuid4

import structlog

from messaging.dedup import BoundedIdSet
from messaging.exceptions import MalformedMessage
from messaging.filters import MessageFilter
from messaging.message import Message
from messaging.payloads import ParsedMessage, parse_message
from messaging.transport.port import RelayStatus, RelayTransport, TransportSink
from shared.settings import MarketSettings, get_settings

logger = structlog.get_logger(__name__)

_CLOSED = object()


class SubscriptionState(Enum):
    IDLE = "idle"
    OPENING = "opening"
    BACKLOG = "backlog"
    LIVE = "live"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class QuarantinedMessage:
    relay: str
    message: Message
    errors: dict


class Subscription(TransportSink):
    """A lazily opened, deduplicated stream of parsed messages.

    Messages go to ``on_message`` when a callback is given, and are queued for
    async iteration otherwise.
    """

    def __init__(
        self,
        client: "MessageStoreClient",
        message_filter: MessageFilter,
        on_message=None,
        on_caught_up=None,
    ) -> None:
        self.id = f"sub-{uuid4().hex[:12]}"
        self.filter = message_filter
        self.state = SubscriptionState.IDLE
        self._client = client
        self._on_message = on_message
        self._on_caught_up = on_caught_up
        self._seen = BoundedIdSet(client.settings.dedupe_capacity)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._caught_up = asyncio.Event()
        self._pending_relays: set[str] = set()
        self._timer: asyncio.TimerHandle | None = None

    @property
    def is_caught_up(self) -> bool:
        return self._caught_up.is_set()

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    @property
    def queued_count(self) -> int:
        return self._queue.qsize()

    async def start(self) -> "Subscription":
        if self.state != SubscriptionState.IDLE:
            return self

        transport = self._client.transport
        self.state = SubscriptionState.OPENING
        self._pending_relays = {url for url in transport.relays if transport.is_connected(url)}
        self._timer = asyncio.get_running_loop().call_later(
            self._client.settings.catch_up_timeout_seconds, self._mark_caught_up, "timeout"
        )

        self.state = SubscriptionState.BACKLOG
        logger.debug("Opening subscription", subscription_id=self.id, filter=self.filter.to_wire())
        await transport.open(self.id, self.filter, self)

        if self.state == SubscriptionState.CANCELLED:
            transport.close(self.id)
        elif not self._pending_relays:
            self._mark_caught_up("end_of_stored")
        return self

    async def caught_up(self) -> None:
        """Wait until the backlog has been delivered (or the catch-up timeout fired)."""
        await self._caught_up.wait()

    def cancel(self) -> None:
        """Stop receiving. Safe to call repeatedly and from inside callbacks."""
        if self.state == SubscriptionState.CANCELLED:
            return
        was_open = self.state != SubscriptionState.IDLE
        self.state = SubscriptionState.CANCELLED
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        if was_open:
            try:
                self._client.transport.close(self.id)
            except Exception:
                logger.warning("Transport failed to close subscription", subscription_id=self.id, exc_info=True)

        self._client._forget(self)
        self._queue.put_nowait(_CLOSED)

    async def restart(self) -> "Subscription":
        """Cancel this subscription and open a fresh one over the same filter."""
        self.cancel()
        fresh = self._client.subscribe(self.filter, self._on_message, self._on_caught_up)
        return await fresh.start()

    # TransportSink

    def on_message(self, relay: str, message: Message) -> None:
        if self.state == SubscriptionState.CANCELLED:
            return

        if not message.has_valid_id():
            self._client._quarantine(relay, message, {"id": ["Message id does not match its content"]})
            return
        if not self._seen.add(message.id):
            return

        try:
            parsed = parse_message(message)
        except MalformedMessage as exc:
            self._client._quarantine(relay, message, exc.messages)
            return

        if self._on_message is None:
            self._queue.put_nowait(parsed)
            return
        try:
            self._on_message(parsed)
        except Exception:
            logger.exception("Subscription callback failed", subscription_id=self.id, message_id=message.id)

    def on_end_of_stored(self, relay: str) -> None:
        self._pending_relays.discard(relay)
        if not self._pending_relays:
            self._mark_caught_up("end_of_stored")

    def on_relay_status(self, relay: str, status: RelayStatus, error: str | None = None) -> None:
        self._client._record_relay_status(relay, status, error)
        if status == RelayStatus.DISCONNECTED and relay in self._pending_relays:
            self._pending_relays.discard(relay)
            if not self._pending_relays:
                self._mark_caught_up("end_of_stored")

    def _mark_caught_up(self, reason: str) -> None:
        if self._caught_up.is_set() or self.state == SubscriptionState.CANCELLED:
            return
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        self._caught_up.set()
        self.state = SubscriptionState.LIVE
        logger.debug("Subscription caught up", subscription_id=self.id, reason=reason)

        if self._on_caught_up is not None:
            try:
                self._on_caught_up()
            except Exception:
                logger.exception("Caught-up callback failed", subscription_id=self.id)

    # Async iteration

    def __aiter__(self) -> "Subscription":
        if self._on_message is not None:
            raise TypeError("Subscriptions with an on_message callback cannot be iterated")
        return self

    async def __anext__(self) -> ParsedMessage:
        if self.state == SubscriptionState.IDLE:
            await self.start()
        if self.state == SubscriptionState.CANCELLED and self._queue.empty():
            raise StopAsyncIteration

        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "Subscription":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cancel()


class MessageStoreClient:
    """Entry point for reading the shared message log."""

    def __init__(self, transport: RelayTransport, settings: MarketSettings | None = None) -> None:
        self.transport = transport
        self.settings = settings or get_settings()
        self.quarantined: deque[QuarantinedMessage] = deque(maxlen=self.settings.quarantine_capacity)
        self._subscriptions: dict[str, Subscription] = {}
        self._relay_status: dict[str, RelayStatus] = {
            url: RelayStatus.CONNECTED if transport.is_connected(url) else RelayStatus.DISCONNECTED
            for url in transport.relays
        }

    @property
    def relay_statuses(self) -> dict[str, RelayStatus]:
        return dict(self._relay_status)

    @property
    def is_degraded(self) -> bool:
        return any(status == RelayStatus.DISCONNECTED for status in self._relay_status.values())

    @property
    def active_subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions.values())

    def subscribe(self, message_filter: MessageFilter, on_message=None, on_caught_up=None) -> Subscription:
        """Create a subscription. Invalid filters raise ``FilterValidationError`` here."""
        message_filter.validate()
        subscription = Subscription(self, message_filter, on_message=on_message, on_caught_up=on_caught_up)
        self._subscriptions[subscription.id] = subscription
        return subscription

    async def fetch_once(self, message_filter: MessageFilter, timeout: float | None = None) -> list[ParsedMessage]:
        """Collect everything matching the filter until caught up or timed out."""
        collected: list[ParsedMessage] = []
        subscription = self.subscribe(message_filter, on_message=collected.append)
        timeout = self.settings.fetch_timeout_seconds if timeout is None else timeout

        try:
            await subscription.start()
            await asyncio.wait_for(subscription.caught_up(), timeout)
        except TimeoutError:
            logger.info(
                "Fetch timed out before catch-up, returning partial result",
                subscription_id=subscription.id,
                collected=len(collected),
            )
        finally:
            subscription.cancel()
        return collected

    def close(self) -> None:
        for subscription in list(self._subscriptions.values()):
            subscription.cancel()

    def _forget(self, subscription: Subscription) -> None:
        self._subscriptions.pop(subscription.id, None)

    def _quarantine(self, relay: str, message: Message, errors: dict) -> None:
        logger.warning("Quarantined malformed message", relay=relay, message_id=message.id, errors=errors)
        self.quarantined.append(QuarantinedMessage(relay=relay, message=message, errors=errors))

    def _record_relay_status(self, relay: str, status: RelayStatus, error: str | None) -> None:
        if self._relay_status.get(relay) == status:
            return
        self._relay_status[relay] = status
        if status == RelayStatus.DISCONNECTED:
            logger.warning("Relay degraded", relay=relay, error=error)
        else:
            logger.info("Relay recovered", relay=relay)
