"""Signs drafts and publishes them to the relay pool."""

import structlog

from messaging.exceptions import PublishError, SigningError
from messaging.message import Message, MessageDraft
from messaging.signing import MessageSigner
from messaging.transport.port import RelayTransport

logger = structlog.get_logger(__name__)


class MessagePublisher:
    def __init__(self, signer: MessageSigner, transport: RelayTransport) -> None:
        self.signer = signer
        self.transport = transport

    @property
    def pubkey(self) -> str:
        return self.signer.pubkey

    async def publish(self, draft: MessageDraft) -> Message:
        """Sign and publish a draft. Succeeds when at least one relay accepts."""
        try:
            message = await self.signer.sign(draft)
        except SigningError:
            raise
        except Exception as exc:
            raise SigningError(f"Signer failed: {exc}") from exc

        result = await self.transport.publish(message)
        if not result.success:
            logger.warning("No relay accepted message", message_id=message.id, rejected=result.rejected)
            raise PublishError(f"No relay accepted message {message.id}", rejected=result.rejected)

        logger.info(
            "Message published",
            message_id=message.id,
            kind=message.kind,
            accepted=len(result.accepted),
            rejected=len(result.rejected),
        )
        return message
