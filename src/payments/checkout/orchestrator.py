"""Payment Orchestrator — drives an invoice set to completion.

The orchestrator is the only owner of invoice status. Wallet strategies and
the payment monitor merely *propose* that an invoice is paid; both proposals
go through ``confirm_payment``, which checks and sets the status without
yielding to the event loop in between, so an invoice is paid exactly once no
matter which proposal arrives first.

Flow per invoice:
    start_invoice   obtain a payable request (or expire / fail) and start
                    watching for a receipt
    attempt_pay     PENDING → PROCESSING → PAID, or back to PENDING with the
                    wallet's reason
    recheck         ask the recipient's service whether an unconfirmed invoice
                    was paid after all
    skip / expire   settle an invoice without payment

Every transition's domain events are published on the event channel.
"""

import asyncio
import time
from dataclasses import dataclass

import structlog
from protean.exceptions import ValidationError

from messaging.drafts import payment_receipt_draft
from messaging.exceptions import MessagingError
from messaging.publisher import MessagePublisher
from payments.checkout.checkout import Checkout, CheckoutMode
from payments.exceptions import InvoiceUnavailable
from payments.invoice.invoice import Invoice, InvoiceStatus
from payments.lightning.port import InvoiceIssuer
from payments.monitor import MonitorHandle, MonitorState, MonitorTarget, PaymentMonitor, ReceiptMatch
from payments.proof import PaymentProof, ProofType, resolve_proof, validate_preimage
from payments.wallet.port import Payable, PaymentStrategy, PayResult
from shared.channel import EventChannel

logger = structlog.get_logger(__name__)

MONITOR_SOURCE = "monitor"
VERIFY_SOURCE = "verify"


@dataclass(frozen=True)
class PaymentOutcome:
    invoice_id: str
    status: InvoiceStatus
    source: str | None = None
    failure_reason: str | None = None

    @property
    def paid(self) -> bool:
        return self.status == InvoiceStatus.PAID


class PaymentOrchestrator:
    def __init__(
        self,
        invoices: list[Invoice],
        issuer: InvoiceIssuer,
        monitor: PaymentMonitor | None = None,
        channel: EventChannel | None = None,
        publisher: MessagePublisher | None = None,
        mode: CheckoutMode = CheckoutMode.CHECKOUT,
        reference: str | None = None,
    ) -> None:
        if not invoices:
            raise ValidationError({"invoices": ["Nothing to pay"]})

        self.invoices = list(invoices)
        self.issuer = issuer
        self.monitor = monitor
        self.channel = channel or EventChannel()
        self.publisher = publisher
        self.mode = mode
        self.cursor = 0

        self._by_id = {str(invoice.id): invoice for invoice in self.invoices}
        self._monitors: dict[str, MonitorHandle] = {}
        self._attempts: dict[str, tuple[asyncio.Task, PaymentStrategy]] = {}
        self._interrupted: set[str] = set()
        self._background: set[asyncio.Task] = set()

        self.checkout = Checkout.start(reference or str(self.invoices[0].order_id), len(self.invoices), mode)
        self._drain(self.checkout)
        for invoice in self.invoices:
            self._drain(invoice)
        self.advance()
        self._maybe_complete()

    # Queries

    def invoice(self, invoice_id: str) -> Invoice:
        return self._by_id[invoice_id]

    @property
    def current(self) -> Invoice | None:
        if self.cursor >= len(self.invoices):
            return None
        return self.invoices[self.cursor]

    @property
    def merchant_invoice(self) -> Invoice | None:
        return next((invoice for invoice in self.invoices if invoice.is_merchant), None)

    @property
    def is_complete(self) -> bool:
        if self.mode == CheckoutMode.ORDER:
            merchant = self.merchant_invoice
            return merchant is not None and merchant.status == InvoiceStatus.PAID.value
        return all(invoice.is_terminal for invoice in self.invoices)

    def monitor_for(self, invoice: Invoice) -> MonitorHandle | None:
        return self._monitors.get(str(invoice.id))

    # Commands

    async def start_invoice(self, invoice: Invoice) -> Invoice:
        """Make sure the invoice has a live payable request and is being watched."""
        if invoice.is_terminal or invoice.current_status == InvoiceStatus.PROCESSING:
            return invoice

        if not invoice.has_live_request():
            if invoice.bolt11 and not invoice.lightning_address:
                logger.info("Invoice request expired and cannot be regenerated", invoice_id=str(invoice.id))
                invoice.expire()
                self._after_transition(invoice)
                return invoice
            await self._issue(invoice)
            if invoice.is_terminal:
                return invoice

        await self._ensure_monitor(invoice)
        return invoice

    async def attempt_pay(self, invoice: Invoice, strategy: PaymentStrategy) -> PaymentOutcome:
        """Pay one invoice through ``strategy``. Never retries on its own."""
        invoice_id = str(invoice.id)
        if invoice.current_status == InvoiceStatus.PROCESSING:
            raise ValidationError({"status": ["A payment attempt is already in progress"]})

        await self.start_invoice(invoice)
        if invoice.is_terminal:
            return self._outcome(invoice)

        payable = Payable(
            invoice_id=invoice_id,
            bolt11=invoice.bolt11,
            amount=invoice.amount,
            recipient_pubkey=invoice.recipient_pubkey,
            payment_hash=invoice.payment_hash,
            lightning_address=invoice.lightning_address,
        )
        invoice.start_processing()
        self._drain(invoice)
        logger.info("Payment attempt started", invoice_id=invoice_id, strategy=strategy.name, amount=invoice.amount)

        task = asyncio.ensure_future(strategy.pay(payable))
        self._attempts[invoice_id] = (task, strategy)
        try:
            result: PayResult = await task
        except asyncio.CancelledError:
            if invoice_id in self._interrupted:
                self._interrupted.discard(invoice_id)
                logger.info("Payment attempt abandoned after receipt", invoice_id=invoice_id, strategy=strategy.name)
                return self._outcome(invoice)
            if invoice.current_status == InvoiceStatus.PROCESSING:
                invoice.revert_to_pending("Payment attempt cancelled")
                self._drain(invoice)
                logger.info("Payment attempt cancelled", invoice_id=invoice_id, strategy=strategy.name)
            raise
        except Exception as exc:
            if invoice.current_status == InvoiceStatus.PROCESSING:
                invoice.revert_to_pending(str(exc))
                self._drain(invoice)
            raise
        finally:
            self._attempts.pop(invoice_id, None)

        if invoice.is_terminal:
            # Confirmed by the monitor while the wallet was still working
            return self._outcome(invoice)

        if result.success:
            proof = resolve_proof(result.preimage, result.reference, fallback=strategy.name)
            if (
                proof.proof_type == ProofType.PREIMAGE
                and invoice.payment_hash
                and not validate_preimage(proof.value, invoice.payment_hash)
            ):
                return self._revert(invoice, "Wallet returned a preimage that does not match the invoice")
            self.confirm_payment(invoice, proof, source=strategy.name)
            return self._outcome(invoice)

        return self._revert(invoice, result.failure_reason or "Payment failed")

    def confirm_payment(self, invoice: Invoice, proof: PaymentProof, source: str) -> bool:
        """Single entry point for ``paid`` proposals. Returns whether this call paid the invoice."""
        if invoice.is_terminal:
            logger.debug("Ignoring payment confirmation for settled invoice", invoice_id=str(invoice.id), source=source)
            return False
        if (
            proof.proof_type == ProofType.PREIMAGE
            and invoice.payment_hash
            and not validate_preimage(proof.value, invoice.payment_hash)
        ):
            raise ValidationError({"preimage": ["Preimage does not match the payment hash"]})

        invoice.mark_paid(proof, source)
        logger.info(
            "Invoice paid",
            invoice_id=str(invoice.id),
            amount=invoice.amount,
            source=source,
            proof_type=proof.proof_type.value,
        )

        self._interrupt_attempt(invoice)
        self._after_transition(invoice)
        if source != MONITOR_SOURCE:
            self._publish_receipt(invoice)
        return True

    async def recheck(self, invoice: Invoice) -> bool:
        """Manual re-check through the issuer's verify endpoint. Returns whether the invoice got paid."""
        invoice_id = str(invoice.id)
        if invoice.is_terminal:
            return False
        if not invoice.verify_url:
            logger.info("Invoice has no verify endpoint", invoice_id=invoice_id)
            return False

        settlement = await self.issuer.verify(invoice.verify_url)
        if not settlement.settled or invoice.is_terminal:
            logger.info("Invoice not settled yet", invoice_id=invoice_id)
            return False

        if settlement.preimage:
            if invoice.payment_hash and not validate_preimage(settlement.preimage, invoice.payment_hash):
                logger.warning("Verify endpoint returned a preimage that does not match", invoice_id=invoice_id)
                return False
            proof = PaymentProof.from_preimage(settlement.preimage)
        else:
            proof = PaymentProof.from_wallet_ack(invoice.verify_url)
        return self.confirm_payment(invoice, proof, source=VERIFY_SOURCE)

    def skip(self, invoice: Invoice) -> None:
        invoice.skip()
        logger.info("Invoice skipped", invoice_id=str(invoice.id))
        self._after_transition(invoice)

    def expire(self, invoice: Invoice) -> None:
        invoice.expire()
        logger.info("Invoice expired", invoice_id=str(invoice.id))
        self._interrupt_attempt(invoice)
        self._after_transition(invoice)

    def advance(self) -> Invoice | None:
        """Move the cursor to the first invoice that still needs settling."""
        self.cursor = next(
            (index for index, invoice in enumerate(self.invoices) if not invoice.is_terminal),
            len(self.invoices),
        )
        return self.current

    async def pay_all(self, strategy: PaymentStrategy) -> list[PaymentOutcome]:
        """Pay every open invoice in order, stopping at the first failure."""
        if not strategy.supports_bulk:
            raise ValidationError({"strategy": [f"{strategy.name} cannot pay invoices in bulk"]})

        outcomes = []
        for invoice in self.invoices:
            if invoice.is_terminal:
                continue
            try:
                outcome = await self.attempt_pay(invoice, strategy)
            except InvoiceUnavailable as exc:
                outcomes.append(
                    PaymentOutcome(invoice_id=str(invoice.id), status=invoice.current_status, failure_reason=str(exc))
                )
                break
            outcomes.append(outcome)
            if outcome.status not in (InvoiceStatus.PAID, InvoiceStatus.SKIPPED, InvoiceStatus.EXPIRED):
                logger.info("Bulk payment stopped", invoice_id=outcome.invoice_id, reason=outcome.failure_reason)
                break
        return outcomes

    async def close(self) -> None:
        """Stop monitors and attempts, and wait for pending receipt publication."""
        for handle in self._monitors.values():
            handle.cancel()
        for invoice_id, (task, _) in list(self._attempts.items()):
            task.cancel()
            invoice = self._by_id[invoice_id]
            if invoice.current_status == InvoiceStatus.PROCESSING:
                invoice.revert_to_pending("Checkout closed during payment attempt")
                self._drain(invoice)
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # Internals

    async def _issue(self, invoice: Invoice) -> None:
        invoice_id = str(invoice.id)
        if not invoice.lightning_address:
            self._fail(invoice, "Recipient has no Lightning address")
            raise InvoiceUnavailable("Recipient has no Lightning address", invoice_id=invoice_id)

        try:
            request = await self.issuer.issue(
                invoice.lightning_address,
                invoice.amount,
                comment=f"Order {invoice.order_id}",
            )
        except InvoiceUnavailable as exc:
            if not invoice.is_terminal:
                self._fail(invoice, str(exc))
            raise InvoiceUnavailable(str(exc), invoice_id=invoice_id) from exc

        if invoice.is_terminal:
            return
        invoice.attach_request(request.bolt11, request.payment_hash, request.expires_at, verify_url=request.verify_url)
        self._drain(invoice)
        logger.info("Payment request issued", invoice_id=invoice_id, amount=request.amount)

    def _fail(self, invoice: Invoice, reason: str) -> None:
        logger.warning("Invoice could not be issued", invoice_id=str(invoice.id), reason=reason)
        if invoice.current_status == InvoiceStatus.FAILED:
            invoice.failure_reason = reason
            return
        invoice.fail(reason)
        self._drain(invoice)

    def _revert(self, invoice: Invoice, reason: str) -> PaymentOutcome:
        invoice.revert_to_pending(reason)
        self._drain(invoice)
        logger.info("Payment attempt failed", invoice_id=str(invoice.id), reason=reason)
        return self._outcome(invoice)

    async def _ensure_monitor(self, invoice: Invoice) -> None:
        if self.monitor is None:
            return
        invoice_id = str(invoice.id)
        existing = self._monitors.get(invoice_id)
        if existing is not None and existing.state in (MonitorState.WATCHING, MonitorState.CONFIRMED):
            return

        target = MonitorTarget(
            invoice_id=invoice_id,
            recipient_pubkey=invoice.recipient_pubkey,
            amount=invoice.amount,
            order_id=str(invoice.order_id),
            bolt11=invoice.bolt11,
            started_at=int(time.time()),
        )
        handle = await self.monitor.watch(target, on_confirmed=self._on_receipt)
        self._monitors[invoice_id] = handle
        if invoice.is_terminal:
            handle.cancel()

    def _on_receipt(self, match: ReceiptMatch) -> None:
        invoice = self._by_id.get(match.invoice_id)
        if invoice is not None:
            self.confirm_payment(invoice, PaymentProof.from_receipt(match.message_id), source=MONITOR_SOURCE)

    def _interrupt_attempt(self, invoice: Invoice) -> None:
        invoice_id = str(invoice.id)
        attempt = self._attempts.get(invoice_id)
        if attempt is None:
            return
        task, strategy = attempt
        if strategy.interruptible and not task.done():
            self._interrupted.add(invoice_id)
            task.cancel()

    def _after_transition(self, invoice: Invoice) -> None:
        self._drain(invoice)
        if invoice.is_terminal:
            handle = self._monitors.get(str(invoice.id))
            if handle is not None:
                handle.cancel()
        self.advance()
        self._maybe_complete()

    def _maybe_complete(self) -> None:
        if self.checkout.is_completed or not self.is_complete:
            return

        statuses = [invoice.current_status for invoice in self.invoices]
        self.checkout.complete(
            paid_count=statuses.count(InvoiceStatus.PAID),
            skipped_count=statuses.count(InvoiceStatus.SKIPPED),
            expired_count=statuses.count(InvoiceStatus.EXPIRED),
        )
        self._drain(self.checkout)
        logger.info("Checkout completed", reference=self.checkout.reference, mode=self.mode.value)

    def _drain(self, aggregate) -> None:
        events = list(aggregate._events)
        aggregate._events.clear()
        self.channel.publish_all(events)

    def _outcome(self, invoice: Invoice) -> PaymentOutcome:
        return PaymentOutcome(
            invoice_id=str(invoice.id),
            status=invoice.current_status,
            source=invoice.paid_via,
            failure_reason=invoice.failure_reason,
        )

    def _publish_receipt(self, invoice: Invoice) -> None:
        if self.publisher is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No event loop running, payment receipt not published", invoice_id=str(invoice.id))
            return

        draft = payment_receipt_draft(
            order_id=str(invoice.order_id),
            recipient=invoice.recipient_pubkey,
            amount=invoice.amount,
            reference=invoice.bolt11 or str(invoice.id),
            proof=invoice.preimage,
        )
        task = loop.create_task(self._send_receipt(str(invoice.id), draft))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _send_receipt(self, invoice_id: str, draft) -> None:
        try:
            message = await self.publisher.publish(draft)
        except MessagingError as exc:
            logger.warning("Payment receipt not published", invoice_id=invoice_id, error=str(exc))
            return
        logger.info("Payment receipt published", invoice_id=invoice_id, message_id=message.id)
