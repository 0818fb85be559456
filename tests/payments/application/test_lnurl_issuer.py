"""Tests for the LNURL-pay invoice issuer, against a mocked HTTP transport."""

import asyncio

import httpx
import pytest
from payments.exceptions import InvoiceUnavailable
from payments.lightning.lnurl import LnurlInvoiceIssuer, split_lightning_address

PAY_INFO = {
    "tag": "payRequest",
    "callback": "https://shop.test/lnurlp/seller/callback",
    "minSendable": 1000,
    "maxSendable": 100_000_000,
    "commentAllowed": 10,
}


def _issuer(settings, handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LnurlInvoiceIssuer(client=client, settings=settings)


def _service(requests, pay_info=PAY_INFO, invoice=None):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == "/.well-known/lnurlp/seller":
            return httpx.Response(200, json=pay_info)
        if request.url.path == "/lnurlp/seller/callback":
            return httpx.Response(200, json=invoice or {"pr": "lnbc85u1real", "verify": "https://shop.test/verify/1"})
        return httpx.Response(404)

    return handler


class TestSplitLightningAddress:
    def test_valid(self):
        assert split_lightning_address("Seller@Shop.test") == ("seller", "shop.test")

    def test_invalid(self):
        for address in ("", "seller", "@shop.test", "a@b@c"):
            with pytest.raises(InvoiceUnavailable):
                split_lightning_address(address)


class TestLnurlInvoiceIssuer:
    def test_issue(self, settings):
        requests = []
        issuer = _issuer(settings, _service(requests))

        request = asyncio.run(issuer.issue("seller@shop.test", 8500, comment="Order ord-1"))

        assert request.bolt11 == "lnbc85u1real"
        assert request.amount == 8500
        assert request.verify_url == "https://shop.test/verify/1"
        assert request.expires_at is not None
        callback = requests[1]
        assert callback.url.params["amount"] == "8500000"
        assert callback.url.params["comment"] == "Order ord-"

    def test_amount_outside_range(self, settings):
        issuer = _issuer(settings, _service([], pay_info={**PAY_INFO, "maxSendable": 5_000_000}))
        with pytest.raises(InvoiceUnavailable) as exc_info:
            asyncio.run(issuer.issue("seller@shop.test", 8500))
        assert "outside allowed range" in str(exc_info.value)

    def test_missing_callback(self, settings):
        issuer = _issuer(settings, _service([], pay_info={"tag": "payRequest"}))
        with pytest.raises(InvoiceUnavailable):
            asyncio.run(issuer.issue("seller@shop.test", 8500))

    def test_lnurl_error_status(self, settings):
        issuer = _issuer(settings, _service([], invoice={"status": "ERROR", "reason": "Wallet offline"}))
        with pytest.raises(InvoiceUnavailable) as exc_info:
            asyncio.run(issuer.issue("seller@shop.test", 8500))
        assert str(exc_info.value) == "Wallet offline"

    def test_http_error_becomes_unavailable(self, settings):
        issuer = _issuer(settings, lambda request: httpx.Response(500))
        with pytest.raises(InvoiceUnavailable):
            asyncio.run(issuer.issue("seller@shop.test", 8500))

    def test_non_json_response(self, settings):
        issuer = _issuer(settings, lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(InvoiceUnavailable):
            asyncio.run(issuer.issue("seller@shop.test", 8500))

    def test_missing_payment_request(self, settings):
        issuer = _issuer(settings, _service([], invoice={"routes": []}))
        with pytest.raises(InvoiceUnavailable):
            asyncio.run(issuer.issue("seller@shop.test", 8500))

    def test_verify(self, settings):
        issuer = _issuer(settings, lambda request: httpx.Response(200, json={"settled": True, "preimage": "ab" * 32}))
        settlement = asyncio.run(issuer.verify("https://shop.test/verify/1"))
        assert settlement.settled
        assert settlement.preimage == "ab" * 32

    def test_verify_failure_is_unsettled(self, settings):
        issuer = _issuer(settings, lambda request: httpx.Response(503))
        assert not asyncio.run(issuer.verify("https://shop.test/verify/1")).settled
