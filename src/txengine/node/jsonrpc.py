"""
Shared JSON-RPC implementation of the node interface.

Transport adapters only move request/response envelopes; this module maps
eth_* methods onto them and translates error objects into the engine's
error taxonomy.
"""

import itertools
from abc import abstractmethod
from typing import Any, List, Optional, Sequence

import structlog

from txengine.core.transaction import LogEntry, TransactionReceipt
from txengine.errors import (
    NetworkError,
    RejectedTransaction,
    RejectionReason,
    classify_rejection,
)
from txengine.node.interface import NodeInterface

logger = structlog.get_logger(__name__)

# Server-side validation failures; other codes are protocol errors.
_REJECTION_CODES = frozenset({-32000, -32003, -32010})


def to_quantity(value: int) -> str:
    """Encode an integer as a JSON-RPC quantity."""
    return hex(value)


def parse_quantity(value: Optional[str]) -> int:
    """Decode a JSON-RPC quantity."""
    if value is None:
        raise NetworkError("Node returned no value")
    try:
        return int(value, 16)
    except (TypeError, ValueError):
        raise NetworkError(f"Node returned a malformed quantity: {value!r}")


def to_data(value: bytes) -> str:
    return "0x" + value.hex()


def parse_data(value: Optional[str]) -> bytes:
    if not value:
        return b""
    try:
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    except ValueError:
        raise NetworkError(f"Node returned malformed data: {value[:20]}...")


def block_tag(block: Any) -> str:
    """Accept an int block number or a tag such as "latest"."""
    if isinstance(block, int):
        return to_quantity(block)
    return block


class JsonRpcNode(NodeInterface):
    """
    Node interface over Ethereum JSON-RPC.

    Subclasses implement `_send`, which delivers one request envelope and
    returns the matching response envelope.
    """

    def __init__(self):
        self._ids = itertools.count(1)

    @abstractmethod
    async def _send(self, payload: dict) -> dict:
        """
        Deliver a request envelope and return the response envelope.

        Raises:
            NetworkError: On any transport failure
        """
        pass

    async def _call(self, method: str, params: Optional[list] = None) -> Any:
        """Make a JSON-RPC call and return its result."""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": next(self._ids),
        }

        response = await self._send(payload)

        if "error" in response and response["error"] is not None:
            raise self._translate_error(method, response["error"])

        return response.get("result")

    def _translate_error(self, method: str, error: Any) -> Exception:
        """Map a JSON-RPC error object to an engine error."""
        if isinstance(error, dict):
            code = error.get("code")
            message = str(error.get("message", "Unknown error"))
        else:
            code = None
            message = str(error)

        if method == "eth_sendRawTransaction":
            reason = classify_rejection(message)
            if reason != RejectionReason.UNKNOWN or code in _REJECTION_CODES:
                logger.warning("tx_rejected", reason=reason.value, error=message)
                return RejectedTransaction(message, reason=reason, code=code)

        logger.error("rpc_error", method=method, code=code, error=message)
        return NetworkError(f"RPC error in {method}: {message}", code=code)

    async def get_chain_id(self) -> int:
        return parse_quantity(await self._call("eth_chainId"))

    async def get_block_number(self) -> int:
        return parse_quantity(await self._call("eth_blockNumber"))

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        result = await self._call("eth_getTransactionCount", [address, block_tag(block)])
        return parse_quantity(result)

    async def get_gas_price(self) -> int:
        return parse_quantity(await self._call("eth_gasPrice"))

    async def get_balance(self, address: str, block: str = "latest") -> int:
        result = await self._call("eth_getBalance", [address, block_tag(block)])
        return parse_quantity(result)

    async def send_raw_transaction(self, raw: bytes) -> str:
        tx_hash = await self._call("eth_sendRawTransaction", [to_data(raw)])
        if not tx_hash:
            raise NetworkError("No transaction hash returned")
        logger.debug("raw_tx_sent", tx_hash=tx_hash)
        return tx_hash

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        result = await self._call("eth_getTransactionReceipt", [tx_hash])

        if not result:
            return None
        if not isinstance(result, dict):
            raise NetworkError(f"Malformed receipt for {tx_hash}: {result!r:.40}")

        # Some nodes return a receipt shell for pending transactions
        if result.get("blockNumber") is None:
            return None

        try:
            return TransactionReceipt.from_rpc(result)
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkError(f"Malformed receipt for {tx_hash}: {e}")

    async def call(self, to: str, data: bytes, block: str = "latest") -> bytes:
        result = await self._call(
            "eth_call",
            [{"to": to, "data": to_data(data)}, block_tag(block)],
        )
        return parse_data(result)

    async def get_logs(
        self,
        from_block: int,
        to_block: int,
        address: Optional[str] = None,
        topics: Optional[Sequence[Optional[str]]] = None,
    ) -> List[LogEntry]:
        log_filter = {
            "fromBlock": to_quantity(from_block),
            "toBlock": to_quantity(to_block),
        }
        if address:
            log_filter["address"] = address
        if topics:
            log_filter["topics"] = list(topics)

        result = await self._call("eth_getLogs", [log_filter])

        try:
            return [LogEntry.from_rpc(item) for item in result or []]
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkError(f"Malformed log entry: {e}")
