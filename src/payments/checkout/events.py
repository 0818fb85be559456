"""Domain events for the Checkout aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from payments.domain import payments


@payments.event(part_of="Checkout")
class CheckoutStarted:
    """A payer started working through an invoice set."""

    __version__ = 1

    checkout_id = Identifier(required=True)
    reference = String(required=True)
    mode = String(required=True)
    invoice_count = Integer(required=True)
    started_at = DateTime(required=True)


@payments.event(part_of="Checkout")
class CheckoutCompleted:
    """Every invoice the checkout requires has been settled."""

    __version__ = 1

    checkout_id = Identifier(required=True)
    reference = String(required=True)
    paid_count = Integer(required=True)
    skipped_count = Integer(required=True)
    expired_count = Integer(required=True)
    completed_at = DateTime(required=True)
