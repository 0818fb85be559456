"""Errors raised by the messaging layer.

Malformed messages and invalid filters are validation errors (the message or
filter is rejected and nothing else is affected); publishing, signing and
decryption failures are transport-level ``MessagingError``s.
"""

from protean.exceptions import ValidationError


class MessagingError(Exception):
    """Base class for message store, publishing and decryption failures."""


class MalformedMessage(ValidationError):
    """A message whose shape or tags do not match its declared kind."""


class FilterValidationError(ValidationError):
    """A subscription filter that no relay will accept. Permanent."""


class PublishError(MessagingError):
    """A drafted message could not be signed or was accepted by no relay."""

    def __init__(self, message: str, rejected: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.rejected = rejected or {}


class SigningError(PublishError):
    """The signing collaborator refused or failed to sign a draft."""


class DecryptionError(MessagingError):
    """Encrypted content could not be decrypted for this viewer."""
