"""Payment strategy port (abstract interface).

A strategy pays one Lightning request through some wallet. The orchestrator
does not care which: programmatic wallet connection, browser extension or a
QR code scanned by an external wallet all implement the same contract.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class Payable:
    """What a wallet needs to pay an invoice."""

    invoice_id: str
    bolt11: str
    amount: int
    recipient_pubkey: str
    payment_hash: str | None = None
    lightning_address: str | None = None


@dataclass(frozen=True)
class PayResult:
    """Result of a payment attempt."""

    success: bool
    preimage: str | None = None
    reference: str | None = None
    failure_reason: str | None = None


class PaymentStrategy(ABC):
    """Abstract payment channel."""

    name: str = "strategy"
    # Can pay a whole invoice set without user interaction between invoices
    supports_bulk: bool = False
    # Waits on the user; abandoned when a receipt confirms the payment first
    interruptible: bool = False

    @abstractmethod
    async def pay(self, payable: Payable) -> PayResult:
        """Attempt the payment. Wallet failures are results, not exceptions."""
        ...
