"""Payments bounded context — Lightning invoicing and checkout.

Splits an order into merchant and value-share invoices, drives each invoice
through issuance, payment and confirmation, and watches the message log for
payment receipts.
"""

import structlog
from protean.domain import Domain

payments = Domain(name="payments")

logger = structlog.get_logger(__name__)
