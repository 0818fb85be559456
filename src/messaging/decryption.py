"""Lazy decryption of encrypted message content.

Decryption is delegated to a ``ContentDecryptor`` collaborator and happens at
most once per message id. A failure is cached as well: the message is then
treated as absent by readers, and nothing else is affected.
"""

from abc import ABC, abstractmethod

import structlog

from messaging.exceptions import DecryptionError
from messaging.message import Message

logger = structlog.get_logger(__name__)

_FAILED = object()


class ContentDecryptor(ABC):
    @abstractmethod
    def decrypt(self, ciphertext: str, sender: str, recipient: str) -> str:
        """Return the plaintext, or raise ``DecryptionError``."""
        ...


class DecryptionCache:
    def __init__(self, decryptor: ContentDecryptor, viewer: str) -> None:
        self.decryptor = decryptor
        self.viewer = viewer
        self._plaintexts: dict[str, object] = {}

    def plaintext(self, message: Message) -> str | None:
        """Plaintext content of ``message``, or ``None`` if it cannot be read."""
        if not message.encrypted:
            return message.content

        cached = self._plaintexts.get(message.id)
        if cached is None:
            try:
                cached = self.decryptor.decrypt(message.content, message.author, self.viewer)
            except DecryptionError as exc:
                logger.warning("Could not decrypt message", message_id=message.id, error=str(exc))
                cached = _FAILED
            except Exception:
                logger.exception("Decryptor failed", message_id=message.id)
                cached = _FAILED
            self._plaintexts[message.id] = cached

        return None if cached is _FAILED else cached

    def is_readable(self, message: Message) -> bool:
        return self.plaintext(message) is not None

    def __len__(self) -> int:
        return len(self._plaintexts)
