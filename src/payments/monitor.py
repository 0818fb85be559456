"""Payment Monitor — watches the message log for a payment receipt.

One monitor watches one invoice. It subscribes to receipts addressed to the
recipient, starting ``lookback`` seconds before the watch began so receipts
published just before the monitor started still count.

Lifecycle:
    IDLE → WATCHING → CONFIRMED | UNCONFIRMED | CANCELLED

The first matching receipt flips the state to CONFIRMED before anything else
happens; every later match is ignored. Timing out is not an error: the state
simply becomes UNCONFIRMED and the payer can still confirm by other means.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog

from messaging.client import MessageStoreClient, Subscription
from messaging.filters import MessageFilter
from messaging.message import PAYMENT_RECEIPT_KIND, MessageKind
from messaging.payloads import ParsedMessage
from shared.settings import MarketSettings

logger = structlog.get_logger(__name__)


class MonitorState(Enum):
    IDLE = "idle"
    WATCHING = "watching"
    CONFIRMED = "confirmed"
    UNCONFIRMED = "unconfirmed"
    CANCELLED = "cancelled"


FINAL_STATES = frozenset({MonitorState.CONFIRMED, MonitorState.UNCONFIRMED, MonitorState.CANCELLED})


@dataclass(frozen=True)
class MonitorTarget:
    invoice_id: str
    recipient_pubkey: str
    amount: int
    order_id: str | None = None
    bolt11: str | None = None
    started_at: int | None = None


@dataclass(frozen=True)
class ReceiptMatch:
    invoice_id: str
    message_id: str
    reference: str
    proof: str | None = None


def _looks_like_bolt11(reference: str) -> bool:
    return reference.lower().startswith("ln")


class MonitorHandle:
    def __init__(
        self,
        target: MonitorTarget,
        on_confirmed: Callable[[ReceiptMatch], None],
        client: MessageStoreClient,
        settings: MarketSettings,
    ) -> None:
        self.target = target
        self.state = MonitorState.IDLE
        self.match: ReceiptMatch | None = None
        self.since = (target.started_at or int(time.time())) - settings.receipt_lookback_seconds
        self._on_confirmed = on_confirmed
        self._client = client
        self._settings = settings
        self._subscription: Subscription | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._done = asyncio.Event()

    @property
    def is_active(self) -> bool:
        return self.state == MonitorState.WATCHING

    async def start(self) -> "MonitorHandle":
        if self.state != MonitorState.IDLE:
            return self

        self.state = MonitorState.WATCHING
        self._timer = asyncio.get_running_loop().call_later(self._settings.monitor_timeout_seconds, self._time_out)
        self._subscription = self._client.subscribe(
            MessageFilter.of(
                kinds=[PAYMENT_RECEIPT_KIND],
                tags={"p": [self.target.recipient_pubkey]},
                since=self.since,
            ),
            on_message=self._on_receipt,
        )
        logger.debug("Watching for payment receipt", invoice_id=self.target.invoice_id, since=self.since)
        await self._subscription.start()
        return self

    def matches(self, parsed: ParsedMessage) -> bool:
        if parsed.kind != MessageKind.PAYMENT_RECEIPT or parsed.created_at < self.since:
            return False

        receipt = parsed.payload
        if receipt.recipient != self.target.recipient_pubkey:
            return False
        if abs(receipt.amount - self.target.amount) > self._settings.receipt_amount_tolerance:
            return False
        if self.target.order_id and receipt.order_id != self.target.order_id:
            return False
        if self.target.bolt11 and _looks_like_bolt11(receipt.reference) and receipt.reference != self.target.bolt11:
            return False
        return True

    def _on_receipt(self, parsed: ParsedMessage) -> None:
        if self.state != MonitorState.WATCHING or not self.matches(parsed):
            return

        self.state = MonitorState.CONFIRMED
        self.match = ReceiptMatch(
            invoice_id=self.target.invoice_id,
            message_id=parsed.id,
            reference=parsed.payload.reference,
            proof=parsed.payload.proof,
        )
        self._finish()
        logger.info("Payment receipt matched", invoice_id=self.target.invoice_id, message_id=parsed.id)

        try:
            self._on_confirmed(self.match)
        except Exception:
            logger.exception("Monitor confirmation callback failed", invoice_id=self.target.invoice_id)

    def _time_out(self) -> None:
        if self.state != MonitorState.WATCHING:
            return
        self.state = MonitorState.UNCONFIRMED
        self._finish()
        logger.info("No payment receipt before timeout", invoice_id=self.target.invoice_id)

    def cancel(self) -> None:
        """Stop watching. A no-op once the monitor has finished."""
        if self.state in FINAL_STATES:
            return
        self.state = MonitorState.CANCELLED
        self._finish()

    async def wait(self) -> MonitorState:
        await self._done.wait()
        return self.state

    def _finish(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._subscription is not None:
            self._subscription.cancel()
        self._done.set()


class PaymentMonitor:
    def __init__(self, client: MessageStoreClient, settings: MarketSettings | None = None) -> None:
        self.client = client
        self.settings = settings or client.settings

    async def watch(self, target: MonitorTarget, on_confirmed: Callable[[ReceiptMatch], None]) -> MonitorHandle:
        handle = MonitorHandle(target, on_confirmed, self.client, self.settings)
        return await handle.start()
