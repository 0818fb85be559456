"""Order status vocabulary and sequence checks.

State Machine:
    PENDING → CONFIRMED → PROCESSING → COMPLETED
    PENDING | CONFIRMED | PROCESSING → CANCELLED

Forward skips (e.g. PENDING → PROCESSING) are in sequence. Moving backwards,
or leaving COMPLETED or CANCELLED, is an anomaly. Anomalies are reported for
operators, never rejected: the most recent authorised assertion still wins.
"""

from dataclasses import dataclass

from messaging.payloads import OrderStatus

_RANK = {
    OrderStatus.PENDING: 0,
    OrderStatus.CONFIRMED: 1,
    OrderStatus.PROCESSING: 2,
    OrderStatus.COMPLETED: 3,
}

TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})


@dataclass(frozen=True)
class StatusAnomaly:
    message_id: str
    from_status: OrderStatus
    to_status: OrderStatus
    created_at: int


def is_in_sequence(current: OrderStatus, target: OrderStatus) -> bool:
    if current == target:
        return True
    if current in TERMINAL_STATUSES:
        return False
    if target == OrderStatus.CANCELLED:
        return True
    return _RANK[target] > _RANK[current]


def detect_anomalies(entries) -> tuple[StatusAnomaly, ...]:
    """Out-of-sequence steps between consecutive assertions.

    ``entries`` must be authorised status entries in ``(created_at, id)`` order.
    The order implicitly starts out PENDING.
    """
    anomalies = []
    current = OrderStatus.PENDING
    for entry in entries:
        if not is_in_sequence(current, entry.status):
            anomalies.append(
                StatusAnomaly(
                    message_id=entry.message_id,
                    from_status=current,
                    to_status=entry.status,
                    created_at=entry.created_at,
                )
            )
        current = entry.status
    return tuple(anomalies)
