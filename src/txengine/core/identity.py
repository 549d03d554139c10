"""
Signing identity and identity-material validation.

A SigningIdentity pairs a secp256k1 private key with its derived
checksummed address. It is owned by the caller and never persisted.
"""

import re
import secrets
from dataclasses import dataclass, field

import structlog
from eth_account import Account
from eth_keys.constants import SECPK1_N
from eth_utils import is_checksum_address, to_checksum_address

from txengine.config import EngineConfig
from txengine.errors import InvalidInput

logger = structlog.get_logger(__name__)

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_PRIVATE_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def normalize_address(address: str) -> str:
    """
    Validate an address and return it in EIP-55 checksummed form.

    All-lowercase and all-uppercase addresses are accepted as-is; mixed-case
    input must carry a valid checksum.

    Raises:
        InvalidInput: If the address is malformed
    """
    if not isinstance(address, str) or not _ADDRESS_RE.match(address):
        raise InvalidInput(f"Invalid address: {address!r}")

    body = address[2:]
    if body != body.lower() and body != body.upper() and not is_checksum_address(address):
        raise InvalidInput(f"Address checksum mismatch: {address}")

    return to_checksum_address(address)


def validate_private_key(private_key: str) -> str:
    """
    Validate a hex private key.

    Args:
        private_key: 64 hex characters, optionally 0x-prefixed

    Returns:
        The key as a 0x-prefixed lowercase hex string

    Raises:
        InvalidInput: If the key has the wrong length, is not hex, or is not
            a valid secp256k1 scalar
    """
    if not isinstance(private_key, str):
        raise InvalidInput("Private key must be a hex string")

    key_hex = private_key.strip()
    if key_hex.startswith(("0x", "0X")):
        key_hex = key_hex[2:]

    if not _PRIVATE_KEY_RE.match(key_hex):
        raise InvalidInput("Private key must be 64 hex characters")

    scalar = int(key_hex, 16)
    if not 0 < scalar < SECPK1_N:
        raise InvalidInput("Private key is not a valid secp256k1 scalar")

    return "0x" + key_hex.lower()


@dataclass(frozen=True)
class SigningIdentity:
    """
    A private key and the address derived from it.

    Attributes:
        private_key: 0x-prefixed hex private key (excluded from repr)
        address: EIP-55 checksummed address
    """

    private_key: str = field(repr=False)
    address: str

    @classmethod
    def from_private_key(cls, private_key: str) -> "SigningIdentity":
        """Create an identity from a hex private key."""
        key_hex = validate_private_key(private_key)
        account = Account.from_key(key_hex)
        return cls(private_key=key_hex, address=account.address)

    @classmethod
    def from_config(cls, config: EngineConfig) -> "SigningIdentity":
        """Create an identity from the configured private key."""
        if config.private_key is None:
            raise InvalidInput("No private key configured")
        return cls.from_private_key(config.private_key.get_secret_value())

    @property
    def short_address(self) -> str:
        return self.address[:10] + "..."


def generate_identity() -> SigningIdentity:
    """
    Generate a new random identity.

    WARNING: The key is not persisted. Fund it only on test networks.
    """
    identity = SigningIdentity.from_private_key(secrets.token_hex(32))
    logger.warning("identity_generated", address=identity.short_address)
    return identity
