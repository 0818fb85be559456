"""Tests for the Message model and content-addressed ids."""

import pytest
from messaging.exceptions import MalformedMessage
from messaging.message import (
    ORDER_PROCESS_KIND,
    PAYMENT_RECEIPT_KIND,
    Message,
    MessageDraft,
    MessageKind,
    compute_message_id,
)


def _wire(**overrides):
    tags = [["order", "ord-1"], ["type", "3"], ["status", "confirmed"]]
    data = {
        "pubkey": "a" * 64,
        "kind": ORDER_PROCESS_KIND,
        "created_at": 1_700_000_000,
        "tags": tags,
        "content": "",
        "sig": "sig",
    }
    data["id"] = compute_message_id(data["pubkey"], data["created_at"], data["kind"], tags, data["content"])
    data.update(overrides)
    return data


class TestMessageId:
    def test_id_is_sha256_hex(self):
        message_id = compute_message_id("a" * 64, 1, 14, [], "")
        assert len(message_id) == 64
        int(message_id, 16)

    def test_id_is_deterministic(self):
        first = compute_message_id("a" * 64, 1, 16, [["order", "x"]], "hi")
        second = compute_message_id("a" * 64, 1, 16, (("order", "x"),), "hi")
        assert first == second

    def test_id_changes_with_content(self):
        assert compute_message_id("a" * 64, 1, 16, [], "one") != compute_message_id("a" * 64, 1, 16, [], "two")

    def test_has_valid_id(self):
        assert Message.from_dict(_wire()).has_valid_id()

    def test_forged_id_is_detected(self):
        message = Message.from_dict(_wire(id="f" * 64))
        assert not message.has_valid_id()


class TestMessageFromDict:
    def test_builds_message(self):
        message = Message.from_dict(_wire())
        assert message.author == "a" * 64
        assert message.kind == ORDER_PROCESS_KIND
        assert message.tags[0] == ("order", "ord-1")

    def test_accepts_author_key(self):
        data = _wire()
        data["author"] = data.pop("pubkey")
        assert Message.from_dict(data).author == "a" * 64

    def test_missing_id_rejected(self):
        with pytest.raises(MalformedMessage) as exc_info:
            Message.from_dict(_wire(id=None))
        assert "id" in exc_info.value.messages

    def test_bad_tags_rejected(self):
        with pytest.raises(MalformedMessage) as exc_info:
            Message.from_dict(_wire(tags=[["order", 5]]))
        assert "tags" in exc_info.value.messages

    def test_non_integer_created_at_rejected(self):
        with pytest.raises(MalformedMessage) as exc_info:
            Message.from_dict(_wire(created_at="yesterday"))
        assert "created_at" in exc_info.value.messages

    def test_to_dict_round_trip(self):
        data = _wire()
        message = Message.from_dict(data)
        assert Message.from_dict(message.to_dict()) == message


class TestMessageTags:
    def test_value_and_first(self):
        message = Message.from_dict(_wire())
        assert message.value("status") == "confirmed"
        assert message.first("type") == ("type", "3")
        assert message.value("missing") is None

    def test_all_returns_repeated_tags(self):
        message = Message.from_dict(_wire(tags=[["item", "a", "1"], ["item", "b", "2"]]))
        assert [tag[1] for tag in message.all("item")] == ["a", "b"]

    def test_order_id(self):
        assert Message.from_dict(_wire()).order_id == "ord-1"


class TestClassification:
    def test_status_update(self):
        assert Message.from_dict(_wire()).classify() == MessageKind.STATUS_UPDATE

    def test_receipt_kind(self):
        assert Message.from_dict(_wire(kind=PAYMENT_RECEIPT_KIND)).classify() == MessageKind.PAYMENT_RECEIPT

    def test_unknown_type_tag(self):
        message = Message.from_dict(_wire(tags=[["type", "9"]]))
        assert message.classify() is None

    def test_unknown_kind(self):
        assert Message.from_dict(_wire(kind=1)).classify() is None


class TestMessageDraft:
    def test_tags_are_normalised(self):
        draft = MessageDraft(kind=ORDER_PROCESS_KIND, tags=[["order", "x"]])
        assert draft.tags == (("order", "x"),)
