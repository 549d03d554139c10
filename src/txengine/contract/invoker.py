"""
Contract Invoker - ABI encoding for contract calls and events.

Payloads produced here are opaque bytes to the rest of the engine: pass
them to `TransactionEngine.invoke()` for state-changing calls, or use
`call()` for read-only queries.
"""

from typing import Any, Dict, List, Optional, Sequence

import structlog
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import keccak

from txengine.contract.events import DecodedEvent, EventQuery
from txengine.core.identity import normalize_address
from txengine.core.transaction import LogEntry
from txengine.errors import InvalidInput
from txengine.node.interface import NodeInterface

logger = structlog.get_logger(__name__)

_DYNAMIC_TYPES = ("string", "bytes")


def _abi_type(param: dict) -> str:
    """Canonical type string of an ABI parameter, expanding tuples."""
    type_str = param["type"]
    if type_str.startswith("tuple"):
        inner = ",".join(_abi_type(c) for c in param.get("components", []))
        return f"({inner}){type_str[len('tuple'):]}"
    return type_str


def _is_hashed_topic(type_str: str) -> bool:
    # Indexed reference types are stored as the keccak of their encoding
    return type_str in _DYNAMIC_TYPES or type_str.endswith("]") or type_str.startswith("(")


class ContractInvoker:
    """
    Encodes calls and decodes results for one contract ABI.

    Args:
        abi: Contract ABI (list of JSON entries)
        address: Deployed contract address, required for `call()` and `events()`
    """

    def __init__(self, abi: List[dict], address: Optional[str] = None):
        self.abi = abi
        self.address = normalize_address(address) if address else None

    def _entry(self, kind: str, name: str) -> dict:
        for entry in self.abi:
            if entry.get("type") == kind and entry.get("name") == name:
                return entry
        raise InvalidInput(f"{kind.capitalize()} {name} not found in ABI")

    def _require_address(self) -> str:
        if self.address is None:
            raise InvalidInput("Contract address is not set")
        return self.address

    # Functions

    def function_signature(self, name: str) -> str:
        func = self._entry("function", name)
        types = [_abi_type(p) for p in func.get("inputs", [])]
        return f"{name}({','.join(types)})"

    def selector(self, name: str) -> bytes:
        """First 4 bytes of the keccak-256 of the function signature."""
        return keccak(text=self.function_signature(name))[:4]

    def encode_call(self, name: str, args: Sequence[Any] = ()) -> bytes:
        """
        ABI-encode a function call.

        Args:
            name: Function name
            args: Positional arguments

        Returns:
            Call payload: selector followed by encoded arguments

        Raises:
            InvalidInput: If the function is unknown or the arguments do not
                match its inputs
        """
        func = self._entry("function", name)
        types = [_abi_type(p) for p in func.get("inputs", [])]

        if len(args) != len(types):
            raise InvalidInput(f"{name} expects {len(types)} arguments, got {len(args)}")

        try:
            encoded = encode(types, list(args)) if types else b""
        except (EncodingError, TypeError, ValueError) as e:
            raise InvalidInput(f"Cannot encode arguments for {name}: {e}")

        return self.selector(name) + encoded

    def decode_output(self, name: str, data: bytes) -> Any:
        """
        ABI-decode a function's return data.

        Returns:
            None for functions without outputs, the value for a single
            output, otherwise a tuple
        """
        func = self._entry("function", name)
        types = [_abi_type(p) for p in func.get("outputs", [])]
        if not types:
            return None

        try:
            decoded = decode(types, data)
        except DecodingError as e:
            raise InvalidInput(f"Cannot decode output of {name}: {e}")

        if len(decoded) == 1:
            return decoded[0]
        return decoded

    async def call(
        self,
        node: NodeInterface,
        name: str,
        args: Sequence[Any] = (),
        block: Any = "latest",
    ) -> Any:
        """
        Execute a read-only call (eth_call) and decode the result.

        Returns:
            Decoded value, or None if the contract returned no data
        """
        address = self._require_address()
        payload = self.encode_call(name, args)

        data = await node.call(address, payload, block)
        logger.debug("contract_called", function=name, size=len(data))

        if not data:
            return None
        return self.decode_output(name, data)

    # Events

    def event_signature(self, name: str) -> str:
        event = self._entry("event", name)
        types = [_abi_type(p) for p in event.get("inputs", [])]
        return f"{name}({','.join(types)})"

    def event_topic(self, name: str) -> str:
        """Topic 0 of a non-anonymous event, 0x-prefixed hex."""
        return "0x" + keccak(text=self.event_signature(name)).hex()

    def decode_log(self, name: str, log: LogEntry) -> DecodedEvent:
        """
        Decode a log against an event ABI.

        Raises:
            InvalidInput: If the log does not belong to the event
        """
        event = self._entry("event", name)
        inputs = event.get("inputs", [])
        topics = list(log.topics)

        if not event.get("anonymous"):
            if not topics or topics[0].lower() != self.event_topic(name):
                raise InvalidInput(f"Log is not a {name} event")
            topics = topics[1:]

        indexed = [p for p in inputs if p.get("indexed")]
        plain = [p for p in inputs if not p.get("indexed")]

        if len(topics) != len(indexed):
            raise InvalidInput(f"{name} expects {len(indexed)} indexed topics, got {len(topics)}")

        args: Dict[str, Any] = {}
        try:
            for param, topic in zip(indexed, topics):
                type_str = _abi_type(param)
                raw = bytes.fromhex(topic[2:])
                if _is_hashed_topic(type_str):
                    args[param["name"]] = raw
                else:
                    args[param["name"]] = decode([type_str], raw)[0]

            values = decode([_abi_type(p) for p in plain], log.data) if plain else ()
        except (DecodingError, ValueError) as e:
            raise InvalidInput(f"Cannot decode {name} log: {e}")

        for param, value in zip(plain, values):
            args[param["name"]] = value

        return DecodedEvent(name=name, args=args, log=log)

    def events(
        self,
        node: NodeInterface,
        name: str,
        from_block: int = 0,
        to_block: Optional[int] = None,
        chunk_size: int = 2000,
    ) -> EventQuery[DecodedEvent]:
        """
        Query decoded events emitted by this contract.

        Args:
            node: Node interface
            name: Event name
            from_block: First block (inclusive)
            to_block: Last block (inclusive); the head when iteration starts if None
            chunk_size: Maximum blocks per eth_getLogs request
        """
        address = self._require_address()
        event = self._entry("event", name)
        topics = None if event.get("anonymous") else [self.event_topic(name)]

        return EventQuery(
            node=node,
            decoder=lambda log: self.decode_log(name, log),
            from_block=from_block,
            to_block=to_block,
            address=address,
            topics=topics,
            chunk_size=chunk_size,
        )
