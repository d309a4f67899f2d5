"""Interface to the signed-transaction verifier.

The sign-on flow does not parse or verify blockchain transactions itself. It hands
the opaque payload to a ``SignatureVerifier`` and receives the verified signer
identity and the raw message bytes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class VerifiedTransaction:
    """
    Signer identity and message extracted from a verified transaction.

    Attributes:
        public_key: Signer public key (hex)
        address: Signer address derived for the configured network
        message: Raw message field bytes, including the leading marker byte
    """

    public_key: str
    address: str
    message: bytes


class SignatureVerifier(ABC):
    """Verifies a signed transaction payload."""

    @abstractmethod
    def verify(self, payload: str) -> VerifiedTransaction:
        """
        Deserialize and verify a signed transaction.

        Implementations must check that the declared network matches the
        deployment, that the transaction is a transfer, and that the signature is
        valid for the signer public key.

        Raises:
            SignatureVerificationError: If any of these checks fail
        """
        raise NotImplementedError
