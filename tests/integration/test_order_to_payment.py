"""End to end: place an order, confirm it, pay it and watch the view follow."""

import asyncio

from messaging.payloads import OrderItem, OrderStatus
from ordering.messenger import OrderMessenger
from ordering.tracking import OrderTracker, OrderViewUpdated
from payments.checkout.checkout import CheckoutMode
from payments.checkout.orchestrator import PaymentOrchestrator
from payments.invoice.builder import SplitConfig, ValueShare, build_invoice_drafts, open_invoices
from payments.invoice.events import InvoicePaid
from payments.lightning.fake_adapter import FakeInvoiceIssuer
from payments.monitor import PaymentMonitor
from payments.wallet.fake_adapter import FakeWallet
from shared.channel import EventChannel

CURATOR = "c" * 64


class TestOrderToPayment:
    def test_paid_order_shows_receipt(self, store_client, buyer_publisher, seller_publisher, settings, factory):
        channel = EventChannel()
        tracker = OrderTracker(store_client, channel=channel)
        buyer = OrderMessenger(buyer_publisher)
        seller = OrderMessenger(seller_publisher)
        issuer = FakeInvoiceIssuer()
        wallet = FakeWallet(preimage_for=issuer.preimage_for)

        async def run():
            await buyer.place_order("ord-42", factory.seller, [OrderItem("widget", 1)], 10_000)
            await tracker.track("ord-42")
            await seller.update_status(tracker.view("ord-42"), OrderStatus.CONFIRMED)

            split = SplitConfig(seller_lightning_address="seller@shop.test")
            invoices = open_invoices(build_invoice_drafts(tracker.view("ord-42"), split))
            orchestrator = PaymentOrchestrator(
                invoices,
                issuer,
                monitor=PaymentMonitor(store_client, settings=settings),
                channel=channel,
                publisher=buyer_publisher,
            )
            outcomes = await orchestrator.pay_all(wallet)
            await orchestrator.close()
            view = tracker.view("ord-42")
            tracker.close()
            return orchestrator, outcomes, view

        orchestrator, outcomes, view = asyncio.run(run())

        assert [outcome.paid for outcome in outcomes] == [True]
        assert orchestrator.is_complete
        assert view.status == OrderStatus.CONFIRMED
        assert view.is_paid
        assert view.payment_receipts[0].proof == orchestrator.merchant_invoice.preimage
        assert len([event for event in channel.history if isinstance(event, InvoicePaid)]) == 1
        assert any(isinstance(event, OrderViewUpdated) for event in channel.history)

    def test_value_shares_in_order_mode(self, store_client, buyer_publisher, settings, factory):
        issuer = FakeInvoiceIssuer()
        wallet = FakeWallet(preimage_for=issuer.preimage_for)
        tracker = OrderTracker(store_client)

        async def run():
            await OrderMessenger(buyer_publisher).place_order(
                "ord-43", factory.seller, [OrderItem("widget", 1)], 10_000
            )
            view = await tracker.load("ord-43")
            split = SplitConfig(
                seller_lightning_address="seller@shop.test",
                shares=(ValueShare(CURATOR, 10, lightning_address="curator@shares.test"),),
            )
            invoices = open_invoices(build_invoice_drafts(view, split))
            orchestrator = PaymentOrchestrator(
                invoices,
                issuer,
                monitor=PaymentMonitor(store_client, settings=settings),
                mode=CheckoutMode.ORDER,
            )
            await orchestrator.attempt_pay(orchestrator.merchant_invoice, wallet)
            await orchestrator.close()
            return orchestrator

        orchestrator = asyncio.run(run())
        assert orchestrator.merchant_invoice.amount == 9000
        assert orchestrator.is_complete
