"""
Transaction Builder - assembles unsigned transactions.

Chooses the gas limit for the kind of transaction and validates the
fields it can check locally. Call payloads are opaque here; encoding
them is the job of the contract invoker.
"""

from typing import Optional, Union

import structlog

from txengine.config import EngineConfig
from txengine.core.identity import normalize_address
from txengine.core.transaction import UnsignedTransaction
from txengine.errors import InvalidInput

logger = structlog.get_logger(__name__)

Payload = Union[bytes, bytearray, str]


def _require_non_negative_int(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise InvalidInput(f"{name} must not be negative: {value}")
    return value


def _payload_bytes(payload: Optional[Payload]) -> bytes:
    """Accept raw bytes or a hex string (with or without 0x)."""
    if payload is None:
        return b""
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    if isinstance(payload, str):
        body = payload[2:] if payload.startswith(("0x", "0X")) else payload
        try:
            return bytes.fromhex(body)
        except ValueError:
            raise InvalidInput("Payload is not valid hex")
    raise InvalidInput(f"Unsupported payload type: {type(payload).__name__}")


class TransactionBuilder:
    """
    Builds unsigned transactions.

    Gas limits:
    - plain transfer: the protocol constant (21 000)
    - contract invocation: the configured ceiling
    - deployment: the configured deployment ceiling
    """

    def __init__(self, config: EngineConfig):
        """
        Initialize the transaction builder.

        Args:
            config: Engine configuration (gas limits)
        """
        self.config = config

    def build(
        self,
        from_address: str,
        to_address: str,
        value: int,
        nonce: int,
        gas_price: int,
        payload: Optional[Payload] = None,
        gas_limit: Optional[int] = None,
    ) -> UnsignedTransaction:
        """
        Build a transfer or contract invocation.

        Args:
            from_address: Sender address
            to_address: Recipient or contract address
            value: Amount in base units
            nonce: Sender nonce
            gas_price: Fee per gas unit in wei
            payload: Pre-encoded call data; None or empty for a plain transfer
            gas_limit: Override for the default gas limit

        Returns:
            Unsigned transaction

        Raises:
            InvalidInput: If an address or numeric field is malformed
        """
        sender = normalize_address(from_address)
        recipient = normalize_address(to_address)
        _require_non_negative_int("value", value)
        _require_non_negative_int("nonce", nonce)
        _require_non_negative_int("gas_price", gas_price)

        data = _payload_bytes(payload)

        if gas_limit is None:
            gas_limit = self.config.contract_gas_limit if data else self.config.transfer_gas_limit
        else:
            self._check_gas_limit(gas_limit)

        tx = UnsignedTransaction(
            from_address=sender,
            to_address=recipient,
            value=value,
            gas_limit=gas_limit,
            gas_price=gas_price,
            nonce=nonce,
            data=data,
        )

        logger.debug(
            "transaction_built",
            kind=tx.kind.value,
            nonce=nonce,
            gas_limit=gas_limit,
            gas_price=gas_price,
        )
        return tx

    def build_deployment(
        self,
        from_address: str,
        bytecode: Payload,
        nonce: int,
        gas_price: int,
        value: int = 0,
        gas_limit: Optional[int] = None,
    ) -> UnsignedTransaction:
        """
        Build a contract creation transaction (no recipient).

        Args:
            from_address: Deployer address
            bytecode: Creation bytecode, constructor arguments appended
            nonce: Deployer nonce
            gas_price: Fee per gas unit in wei
            value: Endowment in base units
            gas_limit: Override for the deployment gas ceiling
        """
        sender = normalize_address(from_address)
        _require_non_negative_int("value", value)
        _require_non_negative_int("nonce", nonce)
        _require_non_negative_int("gas_price", gas_price)

        data = _payload_bytes(bytecode)
        if not data:
            raise InvalidInput("Deployment bytecode must not be empty")

        if gas_limit is None:
            gas_limit = self.config.deploy_gas_limit
        else:
            self._check_gas_limit(gas_limit)

        logger.debug("deployment_built", nonce=nonce, size=len(data))

        return UnsignedTransaction(
            from_address=sender,
            to_address=None,
            value=value,
            gas_limit=gas_limit,
            gas_price=gas_price,
            nonce=nonce,
            data=data,
        )

    def _check_gas_limit(self, gas_limit: int) -> None:
        _require_non_negative_int("gas_limit", gas_limit)
        if gas_limit < self.config.transfer_gas_limit:
            raise InvalidInput(
                f"gas_limit {gas_limit} is below the intrinsic minimum "
                f"{self.config.transfer_gas_limit}"
            )
