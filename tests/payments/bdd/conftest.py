"""Shared BDD fixtures and step definitions for the Payments domain."""

import asyncio

import pytest
from ordering.reducer import reduce_order
from payments.checkout.checkout import CheckoutMode
from payments.checkout.orchestrator import PaymentOrchestrator
from payments.invoice.builder import SplitConfig, ValueShare, build_invoice_drafts, open_invoices
from payments.invoice.events import InvoicePaid
from payments.wallet.fake_adapter import FakeWallet
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then, when
from shared.channel import EventChannel

CURATOR = "c" * 64


@pytest.fixture
def channel():
    return EventChannel()


def _value_share_invoice(orchestrator):
    return next(invoice for invoice in orchestrator.invoices if not invoice.is_merchant)


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("an order of {total:d} sats with a {percentage:d}% value share"), target_fixture="invoices")
def _order_invoices(factory, total, percentage):
    view = reduce_order("ord-1", [factory.creation(amount=total)])
    split = SplitConfig(
        seller_lightning_address="seller@shop.test",
        shares=(ValueShare(CURATOR, percentage, lightning_address="curator@shares.test"),),
    )
    invoices = open_invoices(build_invoice_drafts(view, split))
    for invoice in invoices:
        invoice._events.clear()
    return invoices


@given(parsers.cfparse('a checkout in "{mode}" mode'), target_fixture="orchestrator")
def _checkout(invoices, issuer, channel, mode):
    return PaymentOrchestrator(invoices, issuer, channel=channel, mode=CheckoutMode(mode))


@given("a watched checkout", target_fixture="orchestrator")
def _watched_checkout(invoices, issuer, payment_monitor, channel):
    return PaymentOrchestrator(invoices, issuer, monitor=payment_monitor, channel=channel)


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("the buyer skips the merchant invoice", target_fixture="error")
def _skip_merchant(orchestrator):
    try:
        orchestrator.skip(orchestrator.merchant_invoice)
    except ValidationError as exc:
        return exc
    return None


@when("the buyer skips the value-share invoice")
def _skip_value_share(orchestrator):
    orchestrator.skip(_value_share_invoice(orchestrator))


@when("the merchant invoice is paid with a wallet")
def _pay_merchant(orchestrator, wallet):
    wallet.configure(should_succeed=True)
    asyncio.run(orchestrator.attempt_pay(orchestrator.merchant_invoice, wallet))


@when(parsers.cfparse('the wallet declines the merchant invoice with "{reason}"'))
def _decline_merchant(orchestrator, wallet, reason):
    wallet.configure(should_succeed=False, failure_reason=reason)
    asyncio.run(orchestrator.attempt_pay(orchestrator.merchant_invoice, wallet))


@when(parsers.cfparse("a receipt and a wallet success arrive {gap:d} ms apart for the merchant invoice"))
def _receipt_first(orchestrator, issuer, relay_pool, receipt_for, gap):
    merchant = orchestrator.merchant_invoice
    slow_wallet = FakeWallet(preimage_for=issuer.preimage_for, delay=gap / 1000)

    async def run():
        attempt = asyncio.ensure_future(orchestrator.attempt_pay(merchant, slow_wallet))
        await asyncio.sleep(0.01)
        relay_pool.inject(receipt_for(merchant))
        await attempt
        await orchestrator.close()

    asyncio.run(run())


@when(parsers.cfparse("a wallet success and a receipt arrive {gap:d} ms apart for the merchant invoice"))
def _wallet_first(orchestrator, wallet, relay_pool, receipt_for, gap):
    merchant = orchestrator.merchant_invoice

    async def run():
        await orchestrator.attempt_pay(merchant, wallet)
        await asyncio.sleep(gap / 1000)
        relay_pool.inject(receipt_for(merchant))
        await orchestrator.close()

    asyncio.run(run())


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then("the request is rejected with a validation error")
def _rejected(error):
    assert isinstance(error, ValidationError)


@then(parsers.cfparse('the merchant invoice is "{status}"'))
def _merchant_status(orchestrator, status):
    assert orchestrator.merchant_invoice.status == status


@then(parsers.cfparse('the value-share invoice is "{status}"'))
def _value_share_status(orchestrator, status):
    assert _value_share_invoice(orchestrator).status == status


@then(parsers.cfparse("the merchant invoice is for {amount:d} sats"))
def _merchant_amount(invoices, amount):
    assert next(invoice for invoice in invoices if invoice.is_merchant).amount == amount


@then(parsers.cfparse("the value-share invoice is for {amount:d} sats"))
def _value_share_amount(invoices, amount):
    assert next(invoice for invoice in invoices if not invoice.is_merchant).amount == amount


@then(parsers.cfparse('the merchant invoice shows the reason "{reason}"'))
def _merchant_reason(orchestrator, reason):
    assert orchestrator.merchant_invoice.failure_reason == reason


@then("the checkout is complete")
def _complete(orchestrator):
    assert orchestrator.is_complete
    assert orchestrator.checkout.is_completed


@then("the checkout is not complete")
def _not_complete(orchestrator):
    assert not orchestrator.is_complete


@then("the merchant invoice was paid exactly once")
def _paid_once(orchestrator, channel):
    merchant_id = str(orchestrator.merchant_invoice.id)
    paid = [event for event in channel.history if isinstance(event, InvoicePaid)]
    assert [str(event.invoice_id) for event in paid] == [merchant_id]


@then(parsers.cfparse('the merchant invoice was paid via "{source}"'))
def _paid_via(orchestrator, source):
    assert orchestrator.merchant_invoice.paid_via == source
