import pytest
from messaging.client import MessageStoreClient
from messaging.transport import InMemoryRelayPool
from ordering.tracking import OrderTracker
from shared.channel import EventChannel


@pytest.fixture
def relay_pool():
    return InMemoryRelayPool()


@pytest.fixture
def channel():
    return EventChannel()


@pytest.fixture
def tracker(relay_pool, channel, settings):
    tracker = OrderTracker(MessageStoreClient(relay_pool, settings=settings), channel=channel)
    yield tracker
    tracker.close()
