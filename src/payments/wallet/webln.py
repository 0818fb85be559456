"""Browser extension wallet (WebLN style)."""

from abc import ABC, abstractmethod

import structlog

from payments.exceptions import WalletError
from payments.wallet.port import Payable, PaymentStrategy, PayResult

logger = structlog.get_logger(__name__)


class BrowserWallet(ABC):
    @abstractmethod
    async def enable(self) -> None:
        """Ask the user to authorise the site. Raises ``WalletError`` when refused."""
        ...

    @abstractmethod
    async def send_payment(self, bolt11: str) -> dict:
        """Pay and return the extension response (``preimage``)."""
        ...


class BrowserWalletStrategy(PaymentStrategy):
    name = "browser_wallet"

    def __init__(self, wallet: BrowserWallet) -> None:
        self.wallet = wallet
        self._enabled = False

    async def pay(self, payable: Payable) -> PayResult:
        try:
            if not self._enabled:
                await self.wallet.enable()
                self._enabled = True
            response = await self.wallet.send_payment(payable.bolt11)
        except WalletError as exc:
            logger.info("Browser wallet payment failed", invoice_id=payable.invoice_id, reason=str(exc))
            return PayResult(success=False, failure_reason=str(exc))

        return PayResult(success=True, preimage=response.get("preimage"))
