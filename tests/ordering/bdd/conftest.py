"""Shared BDD fixtures and step definitions for the Ordering domain."""

import pytest
from ordering.reducer import reduce_order
from pytest_bdd import given, parsers, then, when

T = 1_700_000_000


@pytest.fixture
def messages():
    return []


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('an order "{order_id}" of {amount:d} sats placed by the buyer'), target_fixture="order_id")
def _order_placed(messages, factory, order_id, amount):
    messages.append(factory.creation(order_id=order_id, amount=amount, created_at=T))
    return order_id


@given(parsers.cfparse('the {party} marked the order "{status}" at t={offset:d}'))
def _status_update(messages, factory, order_id, party, status, offset):
    author = {"buyer": factory.buyer, "seller": factory.seller}[party]
    messages.append(factory.status(status, order_id=order_id, author=author, created_at=T + offset))


@given(parsers.cfparse('a stranger marked the order "{status}" at t={offset:d}'))
def _stranger_update(messages, factory, order_id, status, offset):
    messages.append(factory.status(status, order_id=order_id, author=factory.stranger, created_at=T + offset))


@given(parsers.cfparse("the buyer sent a receipt for {amount:d} sats to the seller"))
def _receipt(messages, factory, order_id, amount):
    messages.append(factory.receipt(amount=amount, order_id=order_id))


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("the order view is derived", target_fixture="view")
def _derive(messages, order_id):
    return reduce_order(order_id, messages)


@when("the order view is derived from the messages in reverse with duplicates", target_fixture="view")
def _derive_shuffled(messages, order_id):
    return reduce_order(order_id, list(reversed(messages)) + messages[:2])


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def _order_status(view, status):
    assert view.status.value == status


@then(parsers.cfparse("the order total is {amount:d} sats"))
def _order_total(view, amount):
    assert view.total_amount == amount


@then(parsers.cfparse("{count:d} unauthorised update is recorded"))
def _unauthorised(view, count):
    assert len(view.unauthorized_updates) == count


@then(parsers.cfparse("{count:d} status anomaly is recorded"))
def _anomalies(view, count):
    assert len(view.status_anomalies) == count


@then("the order is paid")
def _paid(view):
    assert view.is_paid
