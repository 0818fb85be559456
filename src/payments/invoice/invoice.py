"""Invoice aggregate — one payment owed to one recipient of an order.

Invoices are plain CQRS aggregates. Their ids are deterministic
(``{order_id}-{type}-{recipient}``) so re-planning an order yields the same
invoices instead of duplicates.

State Machine:
    PENDING → PROCESSING → PAID
    PROCESSING → PENDING (attempt failed)
    PENDING → PAID | SKIPPED | EXPIRED | FAILED
    FAILED → PENDING (retry) | PAID | SKIPPED | EXPIRED

PAID, SKIPPED and EXPIRED are terminal.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String, Text

from payments.domain import payments
from payments.invoice.events import (
    InvoiceDrafted,
    InvoiceExpired,
    InvoiceFailed,
    InvoicePaid,
    InvoicePaymentReverted,
    InvoiceProcessing,
    InvoiceRequested,
    InvoiceSkipped,
)
from payments.proof import PaymentProof, ProofType


class InvoiceStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    SKIPPED = "skipped"
    EXPIRED = "expired"
    FAILED = "failed"


class InvoiceType(Enum):
    MERCHANT = "merchant"
    VALUE_SHARE = "value_share"


_VALID_TRANSITIONS = {
    InvoiceStatus.PENDING: {
        InvoiceStatus.PROCESSING,
        InvoiceStatus.PAID,
        InvoiceStatus.SKIPPED,
        InvoiceStatus.EXPIRED,
        InvoiceStatus.FAILED,
    },
    InvoiceStatus.PROCESSING: {InvoiceStatus.PENDING, InvoiceStatus.PAID, InvoiceStatus.FAILED},
    InvoiceStatus.FAILED: {
        InvoiceStatus.PENDING,
        InvoiceStatus.PAID,
        InvoiceStatus.SKIPPED,
        InvoiceStatus.EXPIRED,
    },
    InvoiceStatus.PAID: set(),  # Terminal
    InvoiceStatus.SKIPPED: set(),  # Terminal
    InvoiceStatus.EXPIRED: set(),  # Terminal
}

TERMINAL_STATUSES = frozenset({InvoiceStatus.PAID, InvoiceStatus.SKIPPED, InvoiceStatus.EXPIRED})
PAYABLE_STATUSES = frozenset({InvoiceStatus.PENDING, InvoiceStatus.FAILED})


def invoice_id_for(order_id: str, invoice_type: InvoiceType, recipient_pubkey: str) -> str:
    return f"{order_id}-{invoice_type.value}-{recipient_pubkey}"


@payments.aggregate
class Invoice:
    order_id = Identifier(required=True)
    recipient_pubkey = String(required=True, max_length=128)
    recipient_name = String(max_length=255)
    amount = Integer(required=True, min_value=0)
    currency = String(max_length=10, default="sats")
    invoice_type = String(
        choices=InvoiceType,
        default=InvoiceType.MERCHANT.value,
    )
    lightning_address = String(max_length=255)
    bolt11 = Text()
    payment_hash = String(max_length=64)
    verify_url = String(max_length=500)
    preimage = String(max_length=64)
    proof_type = String(choices=ProofType)
    proof = String(max_length=255)
    paid_via = String(max_length=50)
    status = String(
        choices=InvoiceStatus,
        default=InvoiceStatus.PENDING.value,
    )
    failure_reason = String(max_length=500)
    expires_at = DateTime()
    paid_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    def _assert_can_transition(self, target_status: InvoiceStatus) -> None:
        current = InvoiceStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def _touch(self) -> datetime:
        now = datetime.now(UTC)
        self.updated_at = now
        return now

    @classmethod
    def draft(
        cls,
        order_id: str,
        recipient_pubkey: str,
        amount: int,
        invoice_type: InvoiceType = InvoiceType.MERCHANT,
        lightning_address: str | None = None,
        recipient_name: str | None = None,
        currency: str = "sats",
    ):
        """Plan an invoice for one recipient of an order."""
        now = datetime.now(UTC)
        invoice = cls(
            id=invoice_id_for(order_id, invoice_type, recipient_pubkey),
            order_id=order_id,
            recipient_pubkey=recipient_pubkey,
            recipient_name=recipient_name,
            amount=amount,
            currency=currency,
            invoice_type=invoice_type.value,
            lightning_address=lightning_address,
            created_at=now,
            updated_at=now,
        )
        invoice.raise_(
            InvoiceDrafted(
                invoice_id=str(invoice.id),
                order_id=order_id,
                recipient_pubkey=recipient_pubkey,
                invoice_type=invoice_type.value,
                amount=amount,
                drafted_at=now,
            )
        )
        return invoice

    @property
    def current_status(self) -> InvoiceStatus:
        return InvoiceStatus(self.status)

    @property
    def is_merchant(self) -> bool:
        return self.invoice_type == InvoiceType.MERCHANT.value

    @property
    def is_terminal(self) -> bool:
        return self.current_status in TERMINAL_STATUSES

    @property
    def is_payable(self) -> bool:
        return self.current_status in PAYABLE_STATUSES

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.now(UTC)) >= self.expires_at

    def has_live_request(self, now: datetime | None = None) -> bool:
        return bool(self.bolt11) and not self.is_expired(now)

    def attach_request(
        self,
        bolt11: str,
        payment_hash: str | None,
        expires_at: datetime | None,
        verify_url: str | None = None,
    ) -> None:
        """Record a freshly issued Lightning request. Reopens a failed invoice."""
        if self.current_status == InvoiceStatus.FAILED:
            self._assert_can_transition(InvoiceStatus.PENDING)
            self.status = InvoiceStatus.PENDING.value
            self.failure_reason = None
        elif self.current_status != InvoiceStatus.PENDING:
            raise ValidationError({"status": [f"Cannot attach a payment request to a {self.status} invoice"]})

        now = self._touch()
        self.bolt11 = bolt11
        self.payment_hash = payment_hash
        self.verify_url = verify_url
        self.expires_at = expires_at
        self.raise_(
            InvoiceRequested(
                invoice_id=str(self.id),
                order_id=str(self.order_id),
                bolt11=bolt11,
                payment_hash=payment_hash,
                verify_url=verify_url,
                expires_at=expires_at,
                requested_at=now,
            )
        )

    def start_processing(self) -> None:
        self._assert_can_transition(InvoiceStatus.PROCESSING)
        now = self._touch()
        self.status = InvoiceStatus.PROCESSING.value
        self.raise_(
            InvoiceProcessing(
                invoice_id=str(self.id),
                order_id=str(self.order_id),
                started_at=now,
            )
        )

    def revert_to_pending(self, reason: str) -> None:
        """A payment attempt failed; keep the reason and allow another attempt."""
        if self.current_status != InvoiceStatus.PROCESSING:
            raise ValidationError({"status": [f"Cannot revert a {self.status} invoice"]})
        now = self._touch()
        self.status = InvoiceStatus.PENDING.value
        self.failure_reason = reason
        self.raise_(
            InvoicePaymentReverted(
                invoice_id=str(self.id),
                order_id=str(self.order_id),
                reason=reason,
                reverted_at=now,
            )
        )

    def mark_paid(self, proof: PaymentProof, source: str) -> None:
        self._assert_can_transition(InvoiceStatus.PAID)
        now = self._touch()
        self.status = InvoiceStatus.PAID.value
        self.proof_type = proof.proof_type.value
        self.proof = proof.value[:255]
        if proof.proof_type == ProofType.PREIMAGE:
            self.preimage = proof.value
        self.paid_via = source
        self.paid_at = now
        self.failure_reason = None
        self.raise_(
            InvoicePaid(
                invoice_id=str(self.id),
                order_id=str(self.order_id),
                recipient_pubkey=self.recipient_pubkey,
                amount=self.amount,
                proof_type=proof.proof_type.value,
                source=source,
                paid_at=now,
            )
        )

    def skip(self) -> None:
        """Skip a value-share invoice. Merchant invoices must be paid."""
        if self.is_merchant:
            raise ValidationError({"invoice_type": ["Merchant invoices cannot be skipped"]})
        self._assert_can_transition(InvoiceStatus.SKIPPED)
        now = self._touch()
        self.status = InvoiceStatus.SKIPPED.value
        self.raise_(
            InvoiceSkipped(
                invoice_id=str(self.id),
                order_id=str(self.order_id),
                skipped_at=now,
            )
        )

    def expire(self) -> None:
        self._assert_can_transition(InvoiceStatus.EXPIRED)
        now = self._touch()
        self.status = InvoiceStatus.EXPIRED.value
        self.raise_(
            InvoiceExpired(
                invoice_id=str(self.id),
                order_id=str(self.order_id),
                expired_at=now,
            )
        )

    def fail(self, reason: str) -> None:
        """Issuance failed. The invoice stays retryable."""
        self._assert_can_transition(InvoiceStatus.FAILED)
        now = self._touch()
        self.status = InvoiceStatus.FAILED.value
        self.failure_reason = reason
        self.raise_(
            InvoiceFailed(
                invoice_id=str(self.id),
                order_id=str(self.order_id),
                reason=reason,
                failed_at=now,
            )
        )
