"""In-memory relay pool for development and testing.

Each relay keeps its own store, so the same message can be delivered once per
relay that holds it. Relays can be taken offline and brought back; a
reconnect replays the stored backlog to every open subscription, which is how
real relays behave and why readers must deduplicate.
"""

import asyncio

import structlog

from messaging.filters import MessageFilter
from messaging.message import Message
from messaging.transport.port import PublishResult, RelayStatus, RelayTransport, TransportSink

logger = structlog.get_logger(__name__)

DEFAULT_RELAYS = ("wss://relay-a.test", "wss://relay-b.test")


class InMemoryRelayPool(RelayTransport):
    """Configurable relay pool held entirely in process memory."""

    def __init__(self, relays=DEFAULT_RELAYS) -> None:
        self._relays = list(relays)
        self._stores: dict[str, dict[str, Message]] = {url: {} for url in self._relays}
        self._online: dict[str, bool] = {url: True for url in self._relays}
        self._stalled: set[str] = set()
        self._subscriptions: dict[str, tuple[MessageFilter, TransportSink]] = {}
        self.calls: list[dict] = []

    @property
    def relays(self) -> list[str]:
        return list(self._relays)

    @property
    def open_subscriptions(self) -> list[str]:
        return list(self._subscriptions)

    def is_connected(self, relay: str) -> bool:
        return self._online.get(relay, False)

    def stored(self, relay: str) -> list[Message]:
        return sorted(self._stores[relay].values(), key=lambda m: (m.created_at, m.id))

    def seed(self, *messages: Message, relays=None) -> None:
        """Store messages as history without notifying open subscriptions."""
        for url in relays or self._relays:
            for message in messages:
                self._stores[url][message.id] = message

    def inject(self, message: Message, relays=None) -> list[str]:
        """Store and fan out a message to live subscriptions on online relays."""
        accepted = []
        for url in relays or self._relays:
            if not self._online[url]:
                continue
            self._stores[url][message.id] = message
            accepted.append(url)

        for subscription_id, (message_filter, sink) in list(self._subscriptions.items()):
            if not message_filter.matches(message):
                continue
            for url in accepted:
                if subscription_id not in self._subscriptions:
                    break
                sink.on_message(url, message)
        return accepted

    def stall(self, relay: str) -> None:
        """Make a relay withhold its end-of-stored marker."""
        self._stalled.add(relay)

    def disconnect(self, relay: str, error: str = "connection lost") -> None:
        self._online[relay] = False
        logger.info("Relay disconnected", relay=relay)
        for _, sink in list(self._subscriptions.values()):
            sink.on_relay_status(relay, RelayStatus.DISCONNECTED, error)

    def reconnect(self, relay: str) -> None:
        self._online[relay] = True
        logger.info("Relay reconnected", relay=relay)
        for subscription_id, (_, sink) in list(self._subscriptions.items()):
            sink.on_relay_status(relay, RelayStatus.CONNECTED)
            self._replay(subscription_id, relay)

    async def open(self, subscription_id: str, message_filter: MessageFilter, sink: TransportSink) -> None:
        message_filter.validate()
        self.calls.append({"method": "open", "subscription_id": subscription_id, "filter": message_filter.to_wire()})
        self._subscriptions[subscription_id] = (message_filter, sink)

        # Backlog is delivered on a later loop iteration, like a network round trip
        await asyncio.sleep(0)

        for url in self._relays:
            if subscription_id not in self._subscriptions:
                return
            if not self._online[url]:
                sink.on_relay_status(url, RelayStatus.DISCONNECTED, "relay offline")
                continue
            self._replay(subscription_id, url)

    def close(self, subscription_id: str) -> None:
        self.calls.append({"method": "close", "subscription_id": subscription_id})
        self._subscriptions.pop(subscription_id, None)

    async def publish(self, message: Message) -> PublishResult:
        self.calls.append({"method": "publish", "message_id": message.id})
        offline = {url: "relay offline" for url in self._relays if not self._online[url]}
        accepted = self.inject(message)
        return PublishResult(message_id=message.id, accepted=tuple(accepted), rejected=offline)

    def _replay(self, subscription_id: str, relay: str) -> None:
        message_filter, sink = self._subscriptions[subscription_id]
        backlog = [message for message in self.stored(relay) if message_filter.matches(message)]
        if message_filter.limit is not None:
            backlog = backlog[-message_filter.limit :]

        for message in backlog:
            if subscription_id not in self._subscriptions:
                return
            sink.on_message(relay, message)

        if relay not in self._stalled and subscription_id in self._subscriptions:
            sink.on_end_of_stored(relay)
