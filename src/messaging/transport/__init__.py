"""Relay transports.

``RelayTransport`` is the port the store client and publisher depend on;
``InMemoryRelayPool`` is the adapter used for development and tests.
"""

from messaging.transport.memory import InMemoryRelayPool
from messaging.transport.port import PublishResult, RelayStatus, RelayTransport, TransportSink

__all__ = ["InMemoryRelayPool", "PublishResult", "RelayStatus", "RelayTransport", "TransportSink"]
