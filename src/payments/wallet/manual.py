"""Manual payment: show a QR code and wait for the user.

The payment happens in a wallet this process cannot see. ``pay()`` waits
until the user confirms or declines, or until the orchestrator abandons the
attempt because a payment receipt arrived first.
"""

import asyncio

import structlog

from payments.wallet.port import Payable, PaymentStrategy, PayResult

logger = structlog.get_logger(__name__)


class ManualPaymentStrategy(PaymentStrategy):
    name = "manual"
    interruptible = True

    def __init__(self) -> None:
        self._waiting: dict[str, tuple[Payable, asyncio.Future]] = {}

    @property
    def awaiting(self) -> list[Payable]:
        """Requests currently shown to the user."""
        return [payable for payable, _ in self._waiting.values()]

    async def pay(self, payable: Payable) -> PayResult:
        future = asyncio.get_running_loop().create_future()
        self._waiting[payable.invoice_id] = (payable, future)
        logger.info("Awaiting manual payment", invoice_id=payable.invoice_id, amount=payable.amount)
        try:
            return await future
        finally:
            self._waiting.pop(payable.invoice_id, None)

    def confirm(self, invoice_id: str, preimage: str | None = None) -> bool:
        """The user reports the payment as sent."""
        return self._resolve(invoice_id, PayResult(success=True, preimage=preimage, reference=f"manual:{invoice_id}"))

    def decline(self, invoice_id: str, reason: str = "Payment cancelled by user") -> bool:
        return self._resolve(invoice_id, PayResult(success=False, failure_reason=reason))

    def _resolve(self, invoice_id: str, result: PayResult) -> bool:
        entry = self._waiting.get(invoice_id)
        if entry is None or entry[1].done():
            return False
        entry[1].set_result(result)
        return True
