"""Symbol SDK backed signature verifier."""

import logging

from symbolchain.CryptoTypes import PublicKey
from symbolchain.facade.SymbolFacade import SymbolFacade
from symbolchain.sc import TransactionFactory, TransactionType

from symbol.signon.oauth.errors import SignatureVerificationError
from symbol.signon.oauth.signature import SignatureVerifier, VerifiedTransaction

logger = logging.getLogger(__name__)


class SymbolSignatureVerifier(SignatureVerifier):
    """
    Verifies hex encoded, signed Symbol transfer transactions.

    Args:
        network_name: Expected network (``testnet`` or ``mainnet``)
    """

    def __init__(self, network_name: str) -> None:
        self.network_name = network_name.lower()
        self.facade = SymbolFacade(self.network_name)

    def verify(self, payload: str) -> VerifiedTransaction:
        try:
            payload_bytes = bytes.fromhex(payload)
        except ValueError as e:
            raise SignatureVerificationError("Payload is not valid hex") from e

        try:
            transaction = TransactionFactory.deserialize(payload_bytes)
        except Exception as e:
            raise SignatureVerificationError(
                f"Unable to deserialize transaction: {e}"
            ) from e

        network_name = transaction.network.name.lower()
        if network_name != self.network_name:
            raise SignatureVerificationError(
                f"Unsupported network: {transaction.network.name}"
            )

        if transaction.type_ != TransactionType.TRANSFER:
            raise SignatureVerificationError("Unsupported transaction type")

        if not self.facade.verify_transaction(transaction, transaction.signature):
            raise SignatureVerificationError("Invalid transaction signature")

        public_key = PublicKey(transaction.signer_public_key.bytes)
        address = self.facade.network.public_key_to_address(public_key)

        logger.debug("Verified transfer transaction signed by %s", address)

        return VerifiedTransaction(
            public_key=str(public_key),
            address=str(address),
            message=bytes(transaction.message),
        )
