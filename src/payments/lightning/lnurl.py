"""LNURL-pay invoice issuer.

Resolves a Lightning address ``name@domain`` through
``https://domain/.well-known/lnurlp/name``, checks the amount against the
advertised sendable range and requests a BOLT11 invoice from the callback,
with the amount in millisats.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

import httpx
import structlog

from payments.exceptions import InvoiceUnavailable
from payments.lightning.port import InvoiceIssuer, PaymentRequest, Settlement
from shared.settings import MarketSettings, get_settings

logger = structlog.get_logger(__name__)


def split_lightning_address(address: str) -> tuple[str, str]:
    name, _, domain = (address or "").strip().partition("@")
    if not name or not domain or "@" in domain:
        raise InvoiceUnavailable(f"Invalid Lightning address: {address!r}")
    return name.lower(), domain.lower()


class LnurlInvoiceIssuer(InvoiceIssuer):
    def __init__(self, client: httpx.AsyncClient | None = None, settings: MarketSettings | None = None) -> None:
        self.settings = settings or get_settings()
        self._client = client

    @asynccontextmanager
    async def _session(self):
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.settings.lnurl_timeout_seconds, follow_redirects=True) as client:
            yield client

    async def _get_json(self, client: httpx.AsyncClient, url: str, params: dict | None = None) -> dict:
        response = await client.get(url, params=params)
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError as exc:
            raise InvoiceUnavailable(f"Invalid JSON from {url}") from exc

        if not isinstance(data, dict):
            raise InvoiceUnavailable(f"Unexpected response from {url}")
        if data.get("status") == "ERROR":
            raise InvoiceUnavailable(data.get("reason") or f"LNURL error from {url}")
        return data

    async def issue(self, lightning_address: str, amount: int, comment: str | None = None) -> PaymentRequest:
        name, domain = split_lightning_address(lightning_address)
        if amount <= 0:
            raise InvoiceUnavailable(f"Cannot invoice {amount} sats")
        amount_msat = amount * 1000

        async with self._session() as client:
            try:
                pay_info = await self._get_json(client, f"https://{domain}/.well-known/lnurlp/{name}")

                callback = pay_info.get("callback")
                if not callback:
                    raise InvoiceUnavailable(f"{lightning_address} did not return a callback")

                min_sendable = int(pay_info.get("minSendable", 0))
                max_sendable = int(pay_info.get("maxSendable", 0))
                if amount_msat < min_sendable or (max_sendable and amount_msat > max_sendable):
                    raise InvoiceUnavailable(
                        f"Amount {amount} sats is outside allowed range: "
                        f"{min_sendable // 1000}-{max_sendable // 1000} sats"
                    )

                params: dict = {"amount": amount_msat}
                comment_allowed = int(pay_info.get("commentAllowed") or 0)
                if comment and comment_allowed:
                    params["comment"] = comment[:comment_allowed]

                invoice_data = await self._get_json(client, callback, params=params)
            except httpx.HTTPError as exc:
                logger.warning("LNURL request failed", lightning_address=lightning_address, error=str(exc))
                raise InvoiceUnavailable(f"Could not reach {domain}: {exc}") from exc

        bolt11 = invoice_data.get("pr")
        if not bolt11:
            raise InvoiceUnavailable("No payment request in response")

        logger.info("Lightning invoice issued", lightning_address=lightning_address, amount=amount)
        return PaymentRequest(
            bolt11=bolt11,
            amount=amount,
            expires_at=datetime.now(UTC) + timedelta(seconds=self.settings.invoice_expiry_seconds),
            verify_url=invoice_data.get("verify"),
        )

    async def verify(self, verify_url: str) -> Settlement:
        """Ask the recipient's service whether a request has been settled."""
        async with self._session() as client:
            try:
                data = await self._get_json(client, verify_url)
            except (httpx.HTTPError, InvoiceUnavailable) as exc:
                logger.info("Payment verification failed", verify_url=verify_url, error=str(exc))
                return Settlement(settled=False)
        return Settlement(settled=bool(data.get("settled") or data.get("paid")), preimage=data.get("preimage"))
