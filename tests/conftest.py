import os
from pathlib import Path

import pytest
from messaging.message import (
    ORDER_GENERAL_KIND,
    ORDER_PROCESS_KIND,
    PAYMENT_RECEIPT_KIND,
    Message,
    compute_message_id,
)
from shared.settings import MarketSettings

BUYER = "b" * 64
SELLER = "5" * 64
STRANGER = "e" * 64
BASE_TIME = 1_700_000_000


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests."""
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = Path(item.fspath)

        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


class MessageFactory:
    """Builds correctly addressed messages for tests."""

    buyer = BUYER
    seller = SELLER
    stranger = STRANGER

    def message(self, author, kind, tags, created_at=BASE_TIME, content="", encrypted=False) -> Message:
        return Message(
            id=compute_message_id(author, created_at, kind, tags, content),
            author=author,
            kind=kind,
            created_at=created_at,
            tags=tags,
            content=content,
            sig="test-sig",
            encrypted=encrypted,
        )

    def creation(
        self,
        order_id="ord-1",
        amount=10_000,
        created_at=BASE_TIME,
        buyer=BUYER,
        seller=SELLER,
        content="",
        encrypted=False,
        **extra,
    ):
        tags = [
            ["order", order_id],
            ["p", seller],
            ["type", "1"],
            ["amount", str(amount), "sats"],
            ["item", "30402:" + seller + ":widget", "2"],
        ]
        tags.extend([name, value] for name, value in extra.items())
        return self.message(buyer, ORDER_PROCESS_KIND, tags, created_at, content=content, encrypted=encrypted)

    def status(self, status, order_id="ord-1", author=SELLER, created_at=BASE_TIME + 10, **kwargs):
        tags = [["order", order_id], ["type", "3"], ["status", status]]
        if kwargs.get("reason"):
            tags.append(["reason", kwargs["reason"]])
        return self.message(
            author,
            ORDER_PROCESS_KIND,
            tags,
            created_at,
            content=kwargs.get("content", ""),
            encrypted=kwargs.get("encrypted", False),
        )

    def shipping(self, status, order_id="ord-1", author=SELLER, created_at=BASE_TIME + 20, tracking=None):
        tags = [["order", order_id], ["type", "4"], ["status", status]]
        if tracking:
            tags.append(["tracking", tracking])
        return self.message(author, ORDER_PROCESS_KIND, tags, created_at)

    def receipt(
        self,
        amount=10_000,
        order_id="ord-1",
        recipient=SELLER,
        author=BUYER,
        created_at=BASE_TIME + 30,
        reference="lnbc-ref",
        proof=None,
    ):
        payment = ["payment", "lightning", reference] + ([proof] if proof else [])
        tags = [["order", order_id], ["p", recipient], ["amount", str(amount), "sats"], payment]
        return self.message(author, PAYMENT_RECEIPT_KIND, tags, created_at)

    def chat(self, text="hello", order_id="ord-1", author=BUYER, created_at=BASE_TIME + 5):
        return self.message(author, ORDER_GENERAL_KIND, [["order", order_id]], created_at, content=text)


@pytest.fixture
def factory():
    return MessageFactory()


@pytest.fixture
def settings():
    return MarketSettings(
        relays="wss://relay-a.test,wss://relay-b.test",
        dedupe_capacity=100,
        catch_up_timeout_seconds=0.2,
        fetch_timeout_seconds=0.5,
        monitor_timeout_seconds=0.3,
        receipt_lookback_seconds=60,
    )
