"""Configurable fake wallet for development and testing."""

import asyncio
from collections.abc import Callable
from uuid import uuid4

from payments.wallet.port import Payable, PaymentStrategy, PayResult


class FakeWallet(PaymentStrategy):
    name = "fake_wallet"
    supports_bulk = True

    def __init__(self, preimage_for: Callable[[Payable], str | None] | None = None, delay: float = 0.0) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Insufficient balance"
        self.fail_for: set[str] = set()
        self.preimage_for = preimage_for
        self.delay = delay
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Insufficient balance") -> None:
        """Configure wallet behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    async def pay(self, payable: Payable) -> PayResult:
        self.calls.append({"method": "pay", "invoice_id": payable.invoice_id, "amount": payable.amount})
        if self.delay:
            await asyncio.sleep(self.delay)

        if not self.should_succeed or payable.invoice_id in self.fail_for:
            return PayResult(success=False, failure_reason=self.failure_reason)

        preimage = self.preimage_for(payable) if self.preimage_for else None
        return PayResult(success=True, preimage=preimage, reference=f"fake_pay_{uuid4().hex[:12]}")
