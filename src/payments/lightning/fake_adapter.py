"""Configurable fake invoice issuer for development and testing.

Issued requests carry a real payment hash: the matching preimage is kept so
a fake wallet can hand it back and proofs validate end to end. ``settle()``
simulates a payment made outside this process, visible through ``verify()``.
"""

import hashlib
import secrets
from datetime import UTC, datetime, timedelta

from payments.exceptions import InvoiceUnavailable
from payments.lightning.port import InvoiceIssuer, PaymentRequest, Settlement
from payments.wallet.port import Payable

VERIFY_URL_PREFIX = "https://issuer.test/verify/"


class FakeInvoiceIssuer(InvoiceIssuer):
    def __init__(self, expiry_seconds: int = 3600) -> None:
        self.expiry_seconds = expiry_seconds
        self.should_succeed: bool = True
        self.failure_reason: str = "Recipient unreachable"
        self.calls: list[dict] = []
        self.preimages: dict[str, str] = {}
        self.settled: set[str] = set()

    def configure(self, should_succeed: bool, failure_reason: str = "Recipient unreachable") -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    async def issue(self, lightning_address: str, amount: int, comment: str | None = None) -> PaymentRequest:
        self.calls.append({"method": "issue", "lightning_address": lightning_address, "amount": amount})
        if not self.should_succeed:
            raise InvoiceUnavailable(self.failure_reason)

        preimage = secrets.token_hex(32)
        payment_hash = hashlib.sha256(bytes.fromhex(preimage)).hexdigest()
        bolt11 = f"lnbc{amount}n1fake{payment_hash[:32]}"
        self.preimages[bolt11] = preimage
        return PaymentRequest(
            bolt11=bolt11,
            amount=amount,
            payment_hash=payment_hash,
            expires_at=datetime.now(UTC) + timedelta(seconds=self.expiry_seconds),
            verify_url=VERIFY_URL_PREFIX + bolt11,
        )

    async def verify(self, verify_url: str) -> Settlement:
        self.calls.append({"method": "verify", "verify_url": verify_url})
        bolt11 = verify_url.removeprefix(VERIFY_URL_PREFIX)
        if bolt11 not in self.settled:
            return Settlement(settled=False)
        return Settlement(settled=True, preimage=self.preimages.get(bolt11))

    def settle(self, bolt11: str) -> None:
        self.settled.add(bolt11)

    def preimage_for(self, payable: Payable) -> str | None:
        return self.preimages.get(payable.bolt11)
