"""Tests for the operator CLI working on message dumps."""

import argparse
import json
import sys

import manage
import pytest


@pytest.fixture
def dump(tmp_path, factory):
    messages = [
        factory.creation(amount=10_000),
        factory.status("completed", created_at=1_700_000_001),
        factory.status("confirmed", created_at=1_700_000_002),
    ]
    entries = [message.to_dict() for message in messages] + [{"kind": "not-a-message"}]
    path = tmp_path / "dump.json"
    path.write_text(json.dumps(entries))
    return path


class TestLoadMessages:
    def test_skips_malformed_entries(self, dump, capsys):
        messages = manage.load_messages(dump)
        assert len(messages) == 3
        assert "Skipping entry 3" in capsys.readouterr().err


class TestInspectOrder:
    def test_prints_view_and_anomalies(self, dump, capsys):
        view = manage.inspect_order(dump)
        captured = capsys.readouterr()

        assert view.order_id == "ord-1"
        assert json.loads(captured.out)["status"] == "confirmed"
        assert "Anomaly: completed -> confirmed" in captured.err

    def test_missing_creation_exits(self, tmp_path, factory):
        path = tmp_path / "empty.json"
        path.write_text(json.dumps([factory.status("confirmed").to_dict()]))
        with pytest.raises(SystemExit):
            manage.inspect_order(path)


class TestPlanInvoices:
    def test_parse_share(self):
        share = manage.parse_share("c" * 64 + ":10:curator@shares.test")
        assert share.percentage == 10.0
        assert share.lightning_address == "curator@shares.test"

    def test_parse_share_rejects_garbage(self):
        with pytest.raises(argparse.ArgumentTypeError):
            manage.parse_share("no-percentage")

    def test_plan(self, dump, capsys):
        shares = [manage.parse_share("c" * 64 + ":10")]
        manage.plan_invoices(dump, shares, seller_address="seller@shop.test")
        planned = json.loads(capsys.readouterr().out)

        assert [entry["amount"] for entry in planned] == [9000, 1000]
        assert planned[0]["invoice_type"] == "merchant"

    def test_main_dispatches(self, dump, capsys, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["manage.py", "inspect-order", str(dump), "--order", "ord-1"])
        manage.main()
        assert json.loads(capsys.readouterr().out)["order_id"] == "ord-1"
