"""Fixtures for cross-context integration tests.

These tests wire the messaging, ordering and payments contexts together over
one in-memory relay pool, the way a client application would.
"""

import pytest
from messaging.client import MessageStoreClient
from messaging.publisher import MessagePublisher
from messaging.signing import FakeSigner
from messaging.transport import InMemoryRelayPool
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def payments_bed():
    from payments.domain import payments

    bed = DomainFixture(payments)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(payments_bed):
    with payments_bed.domain_context():
        yield


@pytest.fixture
def relay_pool():
    return InMemoryRelayPool()


@pytest.fixture
def store_client(relay_pool, settings):
    return MessageStoreClient(relay_pool, settings=settings)


@pytest.fixture
def buyer_publisher(relay_pool, factory):
    return MessagePublisher(FakeSigner(factory.buyer), relay_pool)


@pytest.fixture
def seller_publisher(relay_pool, factory):
    return MessagePublisher(FakeSigner(factory.seller), relay_pool)
