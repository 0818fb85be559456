"""Programmatic wallet connection (Nostr Wallet Connect style).

The connection itself (relay session, encryption, request/response
correlation) is a collaborator behind ``WalletConnection``.
"""

from abc import ABC, abstractmethod

import structlog

from payments.exceptions import WalletError
from payments.wallet.port import Payable, PaymentStrategy, PayResult

logger = structlog.get_logger(__name__)


class WalletConnection(ABC):
    @abstractmethod
    async def pay_invoice(self, bolt11: str) -> dict:
        """Pay and return the wallet response (``preimage`` when available).

        Raises ``WalletError`` when the wallet refuses.
        """
        ...


class WalletConnectStrategy(PaymentStrategy):
    name = "wallet_connect"
    supports_bulk = True

    def __init__(self, connection: WalletConnection) -> None:
        self.connection = connection

    async def pay(self, payable: Payable) -> PayResult:
        try:
            response = await self.connection.pay_invoice(payable.bolt11)
        except WalletError as exc:
            logger.info("Connected wallet refused payment", invoice_id=payable.invoice_id, reason=str(exc))
            return PayResult(success=False, failure_reason=str(exc))

        return PayResult(success=True, preimage=response.get("preimage"), reference=response.get("reference"))
