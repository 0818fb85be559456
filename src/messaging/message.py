"""Message model — immutable, signed, content-addressed records.

Wire kinds:
    14  general buyer/seller communication
    16  order processing, discriminated by a ``type`` tag:
        1 order creation, 2 payment request, 3 status update, 4 shipping update
    17  payment receipt

A message id is the SHA-256 of the canonical serialisation
``[0, author, created_at, kind, tags, content]``, so equal ids imply equal
content.
"""

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum

from messaging.exceptions import MalformedMessage

ORDER_GENERAL_KIND = 14
ORDER_PROCESS_KIND = 16
PAYMENT_RECEIPT_KIND = 17

Tag = tuple[str, ...]


class MessageKind(Enum):
    ORDER_CREATION = "order_creation"
    PAYMENT_REQUEST = "payment_request"
    STATUS_UPDATE = "status_update"
    SHIPPING_UPDATE = "shipping_update"
    PAYMENT_RECEIPT = "payment_receipt"
    GENERAL = "general"


# Values of the ``type`` tag on kind-16 messages
ORDER_MESSAGE_TYPES = {
    "1": MessageKind.ORDER_CREATION,
    "2": MessageKind.PAYMENT_REQUEST,
    "3": MessageKind.STATUS_UPDATE,
    "4": MessageKind.SHIPPING_UPDATE,
}
ORDER_MESSAGE_TYPE_CODES = {kind: code for code, kind in ORDER_MESSAGE_TYPES.items()}


def _normalize_tags(tags) -> tuple[Tag, ...]:
    return tuple(tuple(str(part) for part in tag) for tag in tags)


def compute_message_id(author: str, created_at: int, kind: int, tags, content: str) -> str:
    serialized = json.dumps(
        [0, author, created_at, kind, [list(tag) for tag in _normalize_tags(tags)], content],
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class Message:
    id: str
    author: str
    kind: int
    created_at: int
    tags: tuple[Tag, ...] = ()
    content: str = ""
    sig: str = ""
    encrypted: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", _normalize_tags(self.tags))

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        """Build a message from its wire dictionary, rejecting broken shapes."""
        errors: dict[str, list[str]] = {}

        message_id = data.get("id")
        author = data.get("pubkey", data.get("author"))
        kind = data.get("kind")
        created_at = data.get("created_at")
        tags = data.get("tags", [])
        content = data.get("content", "")

        if not isinstance(message_id, str) or not message_id:
            errors.setdefault("id", []).append("Message id is required")
        if not isinstance(author, str) or not author:
            errors.setdefault("author", []).append("Message author is required")
        if not isinstance(kind, int) or isinstance(kind, bool) or kind < 0:
            errors.setdefault("kind", []).append("Kind must be a non-negative integer")
        if not isinstance(created_at, int) or isinstance(created_at, bool) or created_at <= 0:
            errors.setdefault("created_at", []).append("created_at must be a positive integer")
        if not isinstance(tags, list | tuple) or not all(
            isinstance(tag, list | tuple) and tag and all(isinstance(part, str) for part in tag) for tag in tags
        ):
            errors.setdefault("tags", []).append("Tags must be non-empty lists of strings")
        if not isinstance(content, str):
            errors.setdefault("content", []).append("Content must be a string")

        if errors:
            raise MalformedMessage(errors)

        return cls(
            id=message_id,
            author=author,
            kind=kind,
            created_at=created_at,
            tags=tags,
            content=content,
            sig=data.get("sig", "") or "",
            encrypted=bool(data.get("encrypted", False)),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pubkey": self.author,
            "kind": self.kind,
            "created_at": self.created_at,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
            "encrypted": self.encrypted,
        }

    def first(self, name: str) -> Tag | None:
        return next((tag for tag in self.tags if tag[0] == name), None)

    def value(self, name: str, index: int = 1) -> str | None:
        tag = self.first(name)
        if tag is None or len(tag) <= index:
            return None
        return tag[index]

    def all(self, name: str) -> list[Tag]:
        return [tag for tag in self.tags if tag[0] == name]

    @property
    def order_id(self) -> str | None:
        return self.value("order")

    def classify(self) -> MessageKind | None:
        """Map wire kind + ``type`` tag onto a logical message kind."""
        if self.kind == PAYMENT_RECEIPT_KIND:
            return MessageKind.PAYMENT_RECEIPT
        if self.kind == ORDER_GENERAL_KIND:
            return MessageKind.GENERAL
        if self.kind == ORDER_PROCESS_KIND:
            return ORDER_MESSAGE_TYPES.get(self.value("type") or "")
        return None

    def has_valid_id(self) -> bool:
        return self.id == compute_message_id(self.author, self.created_at, self.kind, self.tags, self.content)


@dataclass(frozen=True)
class MessageDraft:
    """An unsigned message, handed to the signing collaborator."""

    kind: int
    tags: tuple[Tag, ...] = ()
    content: str = ""
    created_at: int | None = None
    encrypted: bool = False
    # Free-form hints for the signer (e.g. encryption recipient)
    hints: dict = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", _normalize_tags(self.tags))
