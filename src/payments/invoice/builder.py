"""Invoice Set Builder.

Turns an ``OrderView`` plus a value-share split into the ordered set of
invoices a buyer has to pay: the merchant invoice first, then one invoice per
value-share recipient sorted by pubkey.

Share amounts are ``floor(total * pct / 100)``; the merchant receives the
remainder, so rounding never loses or creates sats.

Completion state comes from the receipts already on the log: a draft whose
recipient holds a receipt for its amount, give or take the tolerance, is
planned as paid and opened as paid.
"""

import math
from dataclasses import dataclass, replace

import structlog
from protean.exceptions import ValidationError

from ordering.reducer import DEFAULT_RECEIPT_TOLERANCE
from ordering.view import OrderView, ReceiptEntry
from payments.invoice.invoice import Invoice, InvoiceStatus, InvoiceType, invoice_id_for
from payments.proof import PaymentProof

logger = structlog.get_logger(__name__)

SATS_PER_BTC = 100_000_000
RECEIPT_SOURCE = "receipt"


@dataclass(frozen=True)
class ValueShare:
    pubkey: str
    percentage: float
    lightning_address: str | None = None
    name: str | None = None


@dataclass(frozen=True)
class SplitConfig:
    seller_lightning_address: str | None = None
    shares: tuple[ValueShare, ...] = ()


@dataclass(frozen=True)
class InvoiceDraft:
    id: str
    order_id: str
    recipient_pubkey: str
    amount: int
    invoice_type: InvoiceType
    currency: str = "sats"
    lightning_address: str | None = None
    recipient_name: str | None = None
    receipt_id: str | None = None

    @property
    def is_paid(self) -> bool:
        return self.receipt_id is not None


def normalize_percentage(value) -> float | None:
    """Whole-number percentage, or ``None`` when the value is unusable.

    Values up to and including one are read as ratios: ``0.05`` becomes ``5``
    and ``1`` becomes ``100``.
    """
    if isinstance(value, bool) or not isinstance(value, int | float) or math.isnan(value):
        return None
    if 0 < value <= 1:
        value = value * 100
    if value <= 0 or value > 100:
        return None
    return float(value)


def to_sats(amount, currency: str, rates: dict[str, float] | None = None) -> int:
    """Convert an order total to sats. ``rates`` maps currency codes to sats per unit."""
    code = (currency or "sats").upper()
    if code in ("SATS", "SAT"):
        return int(amount)
    if code == "BTC":
        return int(round(amount * SATS_PER_BTC))

    rate = (rates or {}).get(code)
    if rate is None:
        raise ValidationError({"currency": [f"No exchange rate for {currency}"]})
    return int(round(amount * rate))


def _merge_shares(view: OrderView, split: SplitConfig) -> dict[str, ValueShare]:
    merged: dict[str, ValueShare] = {}
    for share in split.shares:
        percentage = normalize_percentage(share.percentage)
        if percentage is None:
            logger.warning("Ignoring invalid value share", pubkey=share.pubkey, percentage=share.percentage)
            continue
        if share.pubkey == view.seller:
            logger.info("Folding seller value share into merchant invoice", pubkey=share.pubkey)
            continue

        existing = merged.get(share.pubkey)
        if existing is None:
            merged[share.pubkey] = ValueShare(share.pubkey, percentage, share.lightning_address, share.name)
        else:
            merged[share.pubkey] = ValueShare(
                share.pubkey,
                existing.percentage + percentage,
                existing.lightning_address or share.lightning_address,
                existing.name or share.name,
            )
    return merged


def _settling_receipt(
    draft: InvoiceDraft,
    receipts: tuple[ReceiptEntry, ...],
    tolerance: int,
    rates: dict[str, float] | None,
) -> ReceiptEntry | None:
    """The earliest receipt paying ``draft``'s recipient its amount."""
    for receipt in reversed(receipts):
        if receipt.recipient != draft.recipient_pubkey:
            continue
        try:
            amount = to_sats(receipt.amount, receipt.currency, rates)
        except ValidationError:
            logger.debug("Ignoring receipt in unknown currency", message_id=receipt.message_id)
            continue
        if abs(amount - draft.amount) <= tolerance:
            return receipt
    return None


def build_invoice_drafts(
    view: OrderView,
    split: SplitConfig,
    rates: dict[str, float] | None = None,
    tolerance: int = DEFAULT_RECEIPT_TOLERANCE,
) -> list[InvoiceDraft]:
    """Plan the invoice set for an order, with completion state. Deterministic for equal inputs."""
    if view.is_partial:
        raise ValidationError({"order": [f"Order {view.order_id} has no creation message"]})

    total = to_sats(view.total_amount, view.currency, rates)
    if total < 0:
        raise ValidationError({"amount": ["Order total cannot be negative"]})

    shares = _merge_shares(view, split)
    total_percentage = sum(share.percentage for share in shares.values())
    if total_percentage >= 100:
        message = f"Value shares add up to {total_percentage:g}%, leaving nothing for the seller"
        raise ValidationError({"shares": [message]})

    share_drafts = []
    for pubkey in sorted(shares):
        share = shares[pubkey]
        amount = math.floor(total * share.percentage / 100)
        if amount <= 0:
            logger.info("Dropping zero-amount value share", pubkey=pubkey, percentage=share.percentage)
            continue
        share_drafts.append(
            InvoiceDraft(
                id=invoice_id_for(view.order_id, InvoiceType.VALUE_SHARE, pubkey),
                order_id=view.order_id,
                recipient_pubkey=pubkey,
                amount=amount,
                invoice_type=InvoiceType.VALUE_SHARE,
                lightning_address=share.lightning_address,
                recipient_name=share.name,
            )
        )

    merchant = InvoiceDraft(
        id=invoice_id_for(view.order_id, InvoiceType.MERCHANT, view.seller),
        order_id=view.order_id,
        recipient_pubkey=view.seller,
        amount=total - sum(draft.amount for draft in share_drafts),
        invoice_type=InvoiceType.MERCHANT,
        lightning_address=split.seller_lightning_address,
    )

    drafts = []
    for draft in [merchant, *share_drafts]:
        receipt = _settling_receipt(draft, view.receipt_history, tolerance, rates)
        if receipt is not None:
            logger.info("Invoice already paid", invoice_id=draft.id, message_id=receipt.message_id)
            draft = replace(draft, receipt_id=receipt.message_id)
        drafts.append(draft)
    return drafts


def _open(draft: InvoiceDraft) -> Invoice:
    invoice = Invoice.draft(
        order_id=draft.order_id,
        recipient_pubkey=draft.recipient_pubkey,
        amount=draft.amount,
        invoice_type=draft.invoice_type,
        lightning_address=draft.lightning_address,
        recipient_name=draft.recipient_name,
        currency=draft.currency,
    )
    if draft.is_paid:
        invoice.mark_paid(PaymentProof.from_receipt(draft.receipt_id), source=RECEIPT_SOURCE)
    return invoice


def open_invoices(drafts: list[InvoiceDraft]) -> list[Invoice]:
    """Open invoices for a plan. Drafts already paid on the log open as paid."""
    return [_open(draft) for draft in drafts]


def _matches_draft(invoice: Invoice, draft: InvoiceDraft) -> bool:
    return invoice.amount == draft.amount and invoice.lightning_address == draft.lightning_address


def reconcile_invoices(existing: list[Invoice], drafts: list[InvoiceDraft]) -> list[Invoice]:
    """Bring a previously opened invoice set in line with a fresh plan.

    Paid invoices are never touched, even when the plan no longer contains
    them. Open invoices whose amount or address changed are replaced, and open
    invoices the plan found a receipt for become paid.
    """
    by_id = {str(invoice.id): invoice for invoice in existing}
    reconciled = []

    for draft in drafts:
        current = by_id.pop(draft.id, None)
        if current is not None and (current.status == InvoiceStatus.PAID.value or _matches_draft(current, draft)):
            if draft.is_paid and not current.is_terminal:
                current.mark_paid(PaymentProof.from_receipt(draft.receipt_id), source=RECEIPT_SOURCE)
            reconciled.append(current)
            continue
        if current is not None:
            logger.info(
                "Replacing outdated invoice", invoice_id=draft.id, old_amount=current.amount, amount=draft.amount
            )
        reconciled.append(_open(draft))

    for leftover in by_id.values():
        if leftover.status == InvoiceStatus.PAID.value:
            reconciled.append(leftover)
        else:
            logger.info("Dropping invoice no longer in plan", invoice_id=str(leftover.id))
    return reconciled
