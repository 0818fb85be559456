"""Tests for the payment strategies."""

import asyncio

from payments.exceptions import WalletError
from payments.wallet import BrowserWallet, BrowserWalletStrategy, WalletConnection, WalletConnectStrategy
from payments.wallet.manual import ManualPaymentStrategy
from payments.wallet.port import Payable

PAYABLE = Payable(invoice_id="inv-1", bolt11="lnbc1", amount=100, recipient_pubkey="5" * 64)


class StubConnection(WalletConnection):
    def __init__(self, error=None):
        self.error = error
        self.paid = []

    async def pay_invoice(self, bolt11):
        if self.error:
            raise WalletError(self.error)
        self.paid.append(bolt11)
        return {"preimage": "ab" * 32}


class StubExtension(BrowserWallet):
    def __init__(self, allow=True):
        self.allow = allow
        self.enabled = 0

    async def enable(self):
        if not self.allow:
            raise WalletError("User rejected")
        self.enabled += 1

    async def send_payment(self, bolt11):
        return {"preimage": "cd" * 32}


class TestWalletConnectStrategy:
    def test_pays(self):
        connection = StubConnection()
        result = asyncio.run(WalletConnectStrategy(connection).pay(PAYABLE))
        assert result.success
        assert result.preimage == "ab" * 32
        assert connection.paid == ["lnbc1"]

    def test_refusal_is_a_result(self):
        result = asyncio.run(WalletConnectStrategy(StubConnection(error="Budget exceeded")).pay(PAYABLE))
        assert not result.success
        assert result.failure_reason == "Budget exceeded"

    def test_supports_bulk(self):
        assert WalletConnectStrategy.supports_bulk


class TestBrowserWalletStrategy:
    def test_enables_once(self):
        extension = StubExtension()
        strategy = BrowserWalletStrategy(extension)

        async def run():
            await strategy.pay(PAYABLE)
            return await strategy.pay(PAYABLE)

        assert asyncio.run(run()).preimage == "cd" * 32
        assert extension.enabled == 1

    def test_rejected_enable(self):
        result = asyncio.run(BrowserWalletStrategy(StubExtension(allow=False)).pay(PAYABLE))
        assert not result.success
        assert result.failure_reason == "User rejected"


class TestManualPaymentStrategy:
    def test_decline(self):
        manual = ManualPaymentStrategy()

        async def run():
            attempt = asyncio.ensure_future(manual.pay(PAYABLE))
            await asyncio.sleep(0)
            assert manual.decline("inv-1", "Changed my mind")
            return await attempt

        result = asyncio.run(run())
        assert not result.success
        assert result.failure_reason == "Changed my mind"
        assert manual.awaiting == []

    def test_confirm_unknown_invoice(self):
        assert ManualPaymentStrategy().confirm("inv-404") is False

    def test_is_interruptible(self):
        assert ManualPaymentStrategy.interruptible
        assert not ManualPaymentStrategy.supports_bulk
