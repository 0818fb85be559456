"""Checkout aggregate — one payment session over an ordered invoice set.

Modes:
    CHECKOUT  the buyer pays the whole set; complete once every invoice is
              paid, skipped or expired
    ORDER     paying an existing order; complete once the merchant invoice
              is paid

State Machine:
    OPEN → COMPLETED
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Integer, String

from payments.checkout.events import CheckoutCompleted, CheckoutStarted
from payments.domain import payments


class CheckoutMode(Enum):
    CHECKOUT = "checkout"
    ORDER = "order"


class CheckoutStatus(Enum):
    OPEN = "open"
    COMPLETED = "completed"


_VALID_TRANSITIONS = {
    CheckoutStatus.OPEN: {CheckoutStatus.COMPLETED},
    CheckoutStatus.COMPLETED: set(),  # Terminal
}


@payments.aggregate
class Checkout:
    reference = String(required=True, max_length=255)
    mode = String(
        choices=CheckoutMode,
        default=CheckoutMode.CHECKOUT.value,
    )
    status = String(
        choices=CheckoutStatus,
        default=CheckoutStatus.OPEN.value,
    )
    invoice_count = Integer(default=0, min_value=0)
    started_at = DateTime()
    completed_at = DateTime()

    def _assert_can_transition(self, target_status: CheckoutStatus) -> None:
        current = CheckoutStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    @classmethod
    def start(cls, reference: str, invoice_count: int, mode: CheckoutMode = CheckoutMode.CHECKOUT):
        if invoice_count <= 0:
            raise ValidationError({"invoice_count": ["A checkout needs at least one invoice"]})

        now = datetime.now(UTC)
        checkout = cls(
            reference=reference,
            mode=mode.value,
            invoice_count=invoice_count,
            started_at=now,
        )
        checkout.raise_(
            CheckoutStarted(
                checkout_id=str(checkout.id),
                reference=reference,
                mode=mode.value,
                invoice_count=invoice_count,
                started_at=now,
            )
        )
        return checkout

    @property
    def is_completed(self) -> bool:
        return self.status == CheckoutStatus.COMPLETED.value

    def complete(self, paid_count: int, skipped_count: int = 0, expired_count: int = 0) -> None:
        self._assert_can_transition(CheckoutStatus.COMPLETED)
        now = datetime.now(UTC)
        self.status = CheckoutStatus.COMPLETED.value
        self.completed_at = now
        self.raise_(
            CheckoutCompleted(
                checkout_id=str(self.id),
                reference=self.reference,
                paid_count=paid_count,
                skipped_count=skipped_count,
                expired_count=expired_count,
                completed_at=now,
            )
        )
