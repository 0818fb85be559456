"""Relay market operator CLI.

Works on JSON dumps of raw messages (a list of wire dictionaries), so an
operator can inspect what the reducer and invoice builder make of them
without connecting to any relay.

Usage:
    python src/manage.py inspect-order dump.json [--order ORDER_ID]
    python src/manage.py plan-invoices dump.json --share PUBKEY:PCT[:ADDRESS] [--seller-address ADDR]
"""

import argparse
import dataclasses
import json
import sys
from enum import Enum


def _to_jsonable(value):
    if isinstance(value, Enum):
        return value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {field.name: _to_jsonable(getattr(value, field.name)) for field in dataclasses.fields(value)}
    if isinstance(value, list | tuple):
        return [_to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: _to_jsonable(item) for key, item in value.items()}
    return value


def load_messages(path):
    """Read a message dump, reporting and skipping malformed entries."""
    from messaging.exceptions import MalformedMessage
    from messaging.message import Message

    with open(path) as handle:
        raw = json.load(handle)

    messages = []
    for index, entry in enumerate(raw):
        try:
            messages.append(Message.from_dict(entry))
        except MalformedMessage as exc:
            print(f"Skipping entry {index}: {exc.messages}", file=sys.stderr)
    return messages


def _default_order_id(messages):
    from messaging.message import MessageKind

    creation = next((m for m in messages if m.classify() == MessageKind.ORDER_CREATION and m.order_id), None)
    if creation is None:
        print("No order creation message found; pass --order", file=sys.stderr)
        sys.exit(1)
    return creation.order_id


def inspect_order(path, order_id=None):
    from ordering.reducer import reduce_order
    from shared.settings import get_settings

    messages = load_messages(path)
    order_id = order_id or _default_order_id(messages)
    view = reduce_order(order_id, messages, tolerance=get_settings().receipt_amount_tolerance)

    print(json.dumps(_to_jsonable(view), indent=2))
    for anomaly in view.status_anomalies:
        print(
            f"Anomaly: {anomaly.from_status.value} -> {anomaly.to_status.value} in {anomaly.message_id}",
            file=sys.stderr,
        )
    return view


def parse_share(raw):
    from payments.invoice.builder import ValueShare

    parts = raw.split(":", 2)
    if len(parts) < 2:
        raise argparse.ArgumentTypeError(f"Expected PUBKEY:PCT[:ADDRESS], got {raw!r}")
    try:
        percentage = float(parts[1])
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid percentage in {raw!r}") from None
    return ValueShare(pubkey=parts[0], percentage=percentage, lightning_address=parts[2] if len(parts) > 2 else None)


def plan_invoices(path, shares, order_id=None, seller_address=None):
    from ordering.reducer import reduce_order
    from payments.invoice.builder import SplitConfig, build_invoice_drafts

    messages = load_messages(path)
    order_id = order_id or _default_order_id(messages)
    view = reduce_order(order_id, messages)
    drafts = build_invoice_drafts(view, SplitConfig(seller_lightning_address=seller_address, shares=tuple(shares)))

    print(json.dumps(_to_jsonable(drafts), indent=2))
    return drafts


def main():
    from shared.observability import configure_logging
    from shared.settings import get_settings

    parser = argparse.ArgumentParser(description="Relay market operator tools")
    subparsers = parser.add_subparsers(dest="command", required=True)

    inspect_parser = subparsers.add_parser("inspect-order", help="Reduce a message dump into an order view")
    inspect_parser.add_argument("file", help="JSON file with a list of raw messages")
    inspect_parser.add_argument("--order", help="Order id (default: first order creation in the dump)")

    plan_parser = subparsers.add_parser("plan-invoices", help="Print the invoice set for an order")
    plan_parser.add_argument("file", help="JSON file with a list of raw messages")
    plan_parser.add_argument("--order", help="Order id (default: first order creation in the dump)")
    plan_parser.add_argument(
        "--share",
        type=parse_share,
        action="append",
        default=[],
        help="Value share as PUBKEY:PCT[:LIGHTNING_ADDRESS] (repeatable)",
    )
    plan_parser.add_argument("--seller-address", help="Seller Lightning address")

    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)

    if args.command == "inspect-order":
        inspect_order(args.file, order_id=args.order)
    elif args.command == "plan-invoices":
        plan_invoices(args.file, args.share, order_id=args.order, seller_address=args.seller_address)


if __name__ == "__main__":
    main()
