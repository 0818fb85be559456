"""Invoice issuer port (abstract interface).

An issuer turns a recipient's Lightning address and an amount into a payable
BOLT11 request.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class PaymentRequest:
    bolt11: str
    amount: int
    expires_at: datetime
    payment_hash: str | None = None
    verify_url: str | None = None


@dataclass(frozen=True)
class Settlement:
    settled: bool
    preimage: str | None = None


class InvoiceIssuer(ABC):
    @abstractmethod
    async def issue(self, lightning_address: str, amount: int, comment: str | None = None) -> PaymentRequest:
        """Request a BOLT11 invoice for ``amount`` sats.

        Raises ``InvoiceUnavailable`` when the recipient cannot be invoiced.
        """
        ...

    @abstractmethod
    async def verify(self, verify_url: str) -> Settlement:
        """Ask the recipient's service whether a request was settled. Never raises."""
        ...
