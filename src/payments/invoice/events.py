"""Domain events for the Invoice aggregate.

All events are versioned, immutable facts representing invoice state changes.
"""

from protean.fields import DateTime, Identifier, Integer, String, Text

from payments.domain import payments


@payments.event(part_of="Invoice")
class InvoiceDrafted:
    """An invoice was planned for one recipient of an order."""

    __version__ = 1

    invoice_id = Identifier(required=True)
    order_id = Identifier(required=True)
    recipient_pubkey = String(required=True)
    invoice_type = String(required=True)
    amount = Integer(required=True)
    drafted_at = DateTime(required=True)


@payments.event(part_of="Invoice")
class InvoiceRequested:
    """A payable Lightning request was obtained for the invoice."""

    __version__ = 1

    invoice_id = Identifier(required=True)
    order_id = Identifier(required=True)
    bolt11 = Text(required=True)
    payment_hash = String()
    verify_url = String(max_length=500)
    expires_at = DateTime()
    requested_at = DateTime(required=True)


@payments.event(part_of="Invoice")
class InvoiceProcessing:
    """A payment attempt started."""

    __version__ = 1

    invoice_id = Identifier(required=True)
    order_id = Identifier(required=True)
    started_at = DateTime(required=True)


@payments.event(part_of="Invoice")
class InvoicePaymentReverted:
    """A payment attempt failed; the invoice is payable again."""

    __version__ = 1

    invoice_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(required=True)
    reverted_at = DateTime(required=True)


@payments.event(part_of="Invoice")
class InvoicePaid:
    """An invoice was confirmed paid."""

    __version__ = 1

    invoice_id = Identifier(required=True)
    order_id = Identifier(required=True)
    recipient_pubkey = String(required=True)
    amount = Integer(required=True)
    proof_type = String(required=True)
    source = String(required=True)
    paid_at = DateTime(required=True)


@payments.event(part_of="Invoice")
class InvoiceSkipped:
    """A value-share invoice was skipped by the payer."""

    __version__ = 1

    invoice_id = Identifier(required=True)
    order_id = Identifier(required=True)
    skipped_at = DateTime(required=True)


@payments.event(part_of="Invoice")
class InvoiceExpired:
    """An invoice lapsed without payment."""

    __version__ = 1

    invoice_id = Identifier(required=True)
    order_id = Identifier(required=True)
    expired_at = DateTime(required=True)


@payments.event(part_of="Invoice")
class InvoiceFailed:
    """No payable request could be obtained for the invoice."""

    __version__ = 1

    invoice_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)
