"""Infrastructure errors raised by the payments context.

Domain rule violations (illegal transitions, skipping a merchant invoice,
bad split configuration) are protean ``ValidationError``s instead.
"""


class PaymentError(Exception):
    """Base class for payment infrastructure failures."""


class InvoiceUnavailable(PaymentError):
    """No payable invoice could be obtained for a recipient. Retryable."""

    def __init__(self, message: str, invoice_id: str | None = None) -> None:
        super().__init__(message)
        self.invoice_id = invoice_id


class WalletError(PaymentError):
    """A wallet refused or failed to pay an invoice."""
