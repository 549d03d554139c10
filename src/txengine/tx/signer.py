"""
Transaction Signer - handles transaction signing.

Produces EIP-155 signatures: the chain id is folded into the signed
payload, so a signature made for one network does not validate on another.
"""

from typing import Optional

import rlp
from rlp.exceptions import DecodingError
import structlog
from eth_account import Account
from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError as KeyValidationError
from eth_utils import big_endian_to_int, keccak, to_checksum_address

from txengine.core.identity import SigningIdentity, validate_private_key
from txengine.core.transaction import DecodedTransaction, SignedTransaction, UnsignedTransaction
from txengine.errors import InvalidInput

logger = structlog.get_logger(__name__)

_LEGACY_FIELD_COUNT = 9
_EIP155_OFFSET = 35


class TransactionSigner:
    """
    Signs, decodes and verifies legacy EIP-155 transactions.

    Signing is a pure function of its inputs; the signer holds no key
    material between calls.
    """

    def sign(
        self,
        unsigned: UnsignedTransaction,
        identity: SigningIdentity,
        chain_id: int,
    ) -> SignedTransaction:
        """
        Sign a transaction for one network.

        Args:
            unsigned: The transaction to sign
            identity: Identity whose address must match the sender
            chain_id: Network the signature is bound to

        Returns:
            Signed transaction

        Raises:
            InvalidInput: If the key is malformed, does not match the sender,
                or the chain id is invalid
        """
        if isinstance(chain_id, bool) or not isinstance(chain_id, int) or chain_id < 1:
            raise InvalidInput(f"Invalid chain id: {chain_id!r}")

        key_hex = validate_private_key(identity.private_key)
        account = Account.from_key(key_hex)

        if account.address != unsigned.from_address:
            raise InvalidInput(
                f"Signing key address {account.address} does not match "
                f"sender {unsigned.from_address}"
            )

        try:
            signed = account.sign_transaction(unsigned.to_signable_dict(chain_id))
        except (TypeError, ValueError) as e:
            raise InvalidInput(f"Transaction cannot be signed: {e}")

        raw = bytes(signed.raw_transaction)
        tx_hash = "0x" + keccak(raw).hex()

        logger.debug(
            "transaction_signed",
            tx_hash=tx_hash[:18] + "...",
            nonce=unsigned.nonce,
            chain_id=chain_id,
        )

        return SignedTransaction(
            transaction=unsigned,
            raw=raw,
            chain_id=chain_id,
            tx_hash=tx_hash,
            v=signed.v,
            r=signed.r,
            s=signed.s,
        )

    def decode(self, raw: bytes) -> DecodedTransaction:
        """
        Decode a raw signed legacy transaction.

        Raises:
            InvalidInput: If the bytes are not a signed legacy transaction
        """
        try:
            fields = rlp.decode(raw)
        except DecodingError as e:
            raise InvalidInput(f"Invalid transaction encoding: {e}")

        if not isinstance(fields, list) or len(fields) != _LEGACY_FIELD_COUNT:
            raise InvalidInput("Not a signed legacy transaction")

        if any(not isinstance(item, bytes) for item in fields):
            raise InvalidInput("Transaction fields must be byte strings")

        nonce, gas_price, gas_limit, to, value, data, v, r, s = fields
        v_int = big_endian_to_int(v)

        if to and len(to) != 20:
            raise InvalidInput("Recipient must be 20 bytes")

        return DecodedTransaction(
            nonce=big_endian_to_int(nonce),
            gas_price=big_endian_to_int(gas_price),
            gas_limit=big_endian_to_int(gas_limit),
            to_address=to_checksum_address(to) if to else None,
            value=big_endian_to_int(value),
            data=data,
            v=v_int,
            r=big_endian_to_int(r),
            s=big_endian_to_int(s),
            chain_id=(v_int - _EIP155_OFFSET) // 2 if v_int >= _EIP155_OFFSET else None,
        )

    def recover_sender(self, raw: bytes, chain_id: int) -> Optional[str]:
        """
        Recover the signer of a raw transaction as if it were signed for `chain_id`.

        Returns:
            Checksummed signer address, or None if the signature is not valid
            for that chain
        """
        decoded = self.decode(raw)

        recovery_id = decoded.v - (2 * chain_id + _EIP155_OFFSET)
        if recovery_id not in (0, 1):
            return None

        to = bytes.fromhex(decoded.to_address[2:]) if decoded.to_address else b""
        signing_hash = keccak(rlp.encode([
            decoded.nonce,
            decoded.gas_price,
            decoded.gas_limit,
            to,
            decoded.value,
            decoded.data,
            chain_id,
            0,
            0,
        ]))

        try:
            signature = keys.Signature(vrs=(recovery_id, decoded.r, decoded.s))
            public_key = signature.recover_public_key_from_msg_hash(signing_hash)
        except (BadSignature, KeyValidationError):
            return None

        return public_key.to_checksum_address()

    def verify(self, signed: SignedTransaction, chain_id: int) -> bool:
        """Check that a signed transaction validates for `chain_id`."""
        return self.recover_sender(signed.raw, chain_id) == signed.transaction.from_address
