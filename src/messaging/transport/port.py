"""Relay transport port (abstract interface).

The store client never talks to relays directly. A transport opens named
subscriptions against every relay it manages and reports back through a
``TransportSink``: stored and live messages, the per-relay end-of-stored
marker, and connection health. Connection problems are reported as status
changes, never raised into readers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from messaging.filters import MessageFilter
from messaging.message import Message


class RelayStatus(Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class TransportSink(ABC):
    """Receiver side of an open subscription."""

    @abstractmethod
    def on_message(self, relay: str, message: Message) -> None: ...

    @abstractmethod
    def on_end_of_stored(self, relay: str) -> None: ...

    @abstractmethod
    def on_relay_status(self, relay: str, status: RelayStatus, error: str | None = None) -> None: ...


@dataclass(frozen=True)
class PublishResult:
    """Outcome of publishing one message to every relay."""

    message_id: str
    accepted: tuple[str, ...] = ()
    rejected: dict = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return bool(self.accepted)


class RelayTransport(ABC):
    """Abstract relay pool."""

    @property
    @abstractmethod
    def relays(self) -> list[str]:
        """URLs of the relays this transport manages."""
        ...

    @abstractmethod
    def is_connected(self, relay: str) -> bool: ...

    @abstractmethod
    async def open(self, subscription_id: str, message_filter: MessageFilter, sink: TransportSink) -> None:
        """Start streaming stored then live messages matching the filter into ``sink``."""
        ...

    @abstractmethod
    def close(self, subscription_id: str) -> None:
        """Stop a subscription. Unknown ids are ignored."""
        ...

    @abstractmethod
    async def publish(self, message: Message) -> PublishResult:
        """Send a signed message to every relay."""
        ...
