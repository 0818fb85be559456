"""Payment proofs.

A paid invoice records how the payment was evidenced, in decreasing order of
strength: the Lightning preimage, a payment receipt message on the log, or a
wallet acknowledgement without a preimage.
"""

import hashlib
from dataclasses import dataclass
from enum import Enum


class ProofType(Enum):
    PREIMAGE = "preimage"
    RECEIPT = "receipt"
    WALLET_ACK = "wallet_ack"


@dataclass(frozen=True)
class PaymentProof:
    proof_type: ProofType
    value: str

    @classmethod
    def from_preimage(cls, preimage: str) -> "PaymentProof":
        return cls(ProofType.PREIMAGE, preimage)

    @classmethod
    def from_receipt(cls, message_id: str) -> "PaymentProof":
        return cls(ProofType.RECEIPT, message_id)

    @classmethod
    def from_wallet_ack(cls, reference: str) -> "PaymentProof":
        return cls(ProofType.WALLET_ACK, reference)


def validate_preimage(preimage: str, payment_hash: str) -> bool:
    """True when ``sha256(preimage) == payment_hash`` (both hex encoded)."""
    try:
        digest = hashlib.sha256(bytes.fromhex(preimage)).hexdigest()
    except ValueError:
        return False
    return digest == payment_hash.lower()


def resolve_proof(preimage: str | None, reference: str | None, fallback: str) -> PaymentProof:
    if preimage:
        return PaymentProof.from_preimage(preimage)
    return PaymentProof.from_wallet_ack(reference or fallback)
