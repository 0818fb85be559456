"""Signing collaborator port.

Key custody and signature primitives live outside this package. A signer
turns a ``MessageDraft`` into a complete ``Message`` under its own public key.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Callable

from messaging.message import Message, MessageDraft, compute_message_id


class MessageSigner(ABC):
    """Abstract signer holding one identity."""

    @property
    @abstractmethod
    def pubkey(self) -> str: ...

    @abstractmethod
    async def sign(self, draft: MessageDraft) -> Message:
        """Return the signed message. Raises ``SigningError`` on refusal."""
        ...


class FakeSigner(MessageSigner):
    """Deterministic signer for development and tests.

    Computes real content-addressed ids; the signature is a placeholder.
    """

    def __init__(self, pubkey: str, clock: Callable[[], int] | None = None) -> None:
        self._pubkey = pubkey
        self._clock = clock or (lambda: int(time.time()))
        self.signed: list[Message] = []

    @property
    def pubkey(self) -> str:
        return self._pubkey

    async def sign(self, draft: MessageDraft) -> Message:
        created_at = draft.created_at if draft.created_at is not None else self._clock()
        message_id = compute_message_id(self._pubkey, created_at, draft.kind, draft.tags, draft.content)
        message = Message(
            id=message_id,
            author=self._pubkey,
            kind=draft.kind,
            created_at=created_at,
            tags=draft.tags,
            content=draft.content,
            sig=f"fake-sig-{message_id[:16]}",
            encrypted=draft.encrypted,
        )
        self.signed.append(message)
        return message
