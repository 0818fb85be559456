import time

import pytest
from messaging.client import MessageStoreClient
from messaging.publisher import MessagePublisher
from messaging.signing import FakeSigner
from messaging.transport import InMemoryRelayPool
from ordering.reducer import reduce_order
from payments.invoice.builder import SplitConfig, ValueShare, build_invoice_drafts, open_invoices
from payments.lightning.fake_adapter import FakeInvoiceIssuer
from payments.monitor import PaymentMonitor
from payments.wallet.fake_adapter import FakeWallet
from protean.integrations.pytest import DomainFixture

SHARE_A = "a" * 64
SHARE_C = "c" * 64


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
def issuer():
    return FakeInvoiceIssuer()


@pytest.fixture
def wallet(issuer):
    return FakeWallet(preimage_for=issuer.preimage_for)


@pytest.fixture
def relay_pool():
    return InMemoryRelayPool()


@pytest.fixture
def store_client(relay_pool, settings):
    return MessageStoreClient(relay_pool, settings=settings)


@pytest.fixture
def payment_monitor(store_client, settings):
    return PaymentMonitor(store_client, settings=settings)


@pytest.fixture
def buyer_publisher(relay_pool, factory):
    return MessagePublisher(FakeSigner(factory.buyer), relay_pool)


@pytest.fixture
def split():
    return SplitConfig(
        seller_lightning_address="seller@shop.test",
        shares=(
            ValueShare(SHARE_C, 10, lightning_address="curator@shares.test", name="Curator"),
            ValueShare(SHARE_A, 5, lightning_address="app@shares.test", name="App"),
        ),
    )


@pytest.fixture
def order_view(factory):
    return reduce_order("ord-1", [factory.creation(amount=10_000)])


@pytest.fixture
def make_invoices(order_view, split):
    """Open a fresh invoice set: merchant 8500, app 500, curator 1000."""

    def _make(view=None, config=None):
        invoices = open_invoices(build_invoice_drafts(view or order_view, config or split))
        for invoice in invoices:
            invoice._events.clear()
        return invoices

    return _make


@pytest.fixture
def receipt_for(factory):
    """A receipt message paying ``invoice``, stamped with the current time."""

    def _receipt(invoice, reference=None, author=None, amount=None):
        return factory.receipt(
            amount=invoice.amount if amount is None else amount,
            order_id=str(invoice.order_id),
            recipient=invoice.recipient_pubkey,
            author=author or factory.buyer,
            created_at=int(time.time()),
            reference=reference or invoice.bolt11,
        )

    return _receipt
