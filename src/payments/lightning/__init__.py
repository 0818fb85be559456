"""Lightning invoice issuance."""

from payments.lightning.fake_adapter import FakeInvoiceIssuer
from payments.lightning.lnurl import LnurlInvoiceIssuer
from payments.lightning.port import InvoiceIssuer, PaymentRequest, Settlement

__all__ = ["FakeInvoiceIssuer", "InvoiceIssuer", "LnurlInvoiceIssuer", "PaymentRequest", "Settlement"]
