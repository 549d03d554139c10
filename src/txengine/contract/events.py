"""
Event log queries.

An EventQuery describes a log filter over a block range. Iterating it
issues fresh eth_getLogs requests, one per block-range chunk, so the same
query can be iterated again to re-read the range.
"""

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

import structlog

from txengine.core.transaction import LogEntry
from txengine.errors import InvalidInput
from txengine.node.interface import NodeInterface

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class DecodedEvent:
    """
    A log decoded against an event ABI.

    Attributes:
        name: Event name
        args: Decoded arguments by parameter name. Indexed parameters of
            dynamic type are hashed by the ledger and are returned as the
            raw 32-byte topic.
        log: The log the event was decoded from
    """

    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    log: Optional[LogEntry] = None

    @property
    def block_number(self) -> Optional[int]:
        return self.log.block_number if self.log else None

    @property
    def transaction_hash(self) -> Optional[str]:
        return self.log.transaction_hash if self.log else None


class EventQuery(Generic[T]):
    """
    Lazy, finite, restartable sequence of decoded logs.

    Usage:
        ```python
        query = invoker.events(node, "Transfer", from_block=100, to_block=5000)
        async for event in query:
            print(event.args)
        ```
    """

    def __init__(
        self,
        node: NodeInterface,
        decoder: Callable[[LogEntry], T],
        from_block: int = 0,
        to_block: Optional[int] = None,
        address: Optional[str] = None,
        topics: Optional[Sequence[Optional[str]]] = None,
        chunk_size: int = 2000,
    ):
        """
        Initialize the query.

        Args:
            node: Node interface used for eth_getLogs
            decoder: Turns each raw log into the yielded item
            from_block: First block of the range (inclusive)
            to_block: Last block of the range (inclusive); the head at the
                start of each iteration if None
            address: Emitting contract to filter on
            topics: Topic filter, positionally matched
            chunk_size: Maximum number of blocks per eth_getLogs request
        """
        if isinstance(from_block, bool) or not isinstance(from_block, int) or from_block < 0:
            raise InvalidInput(f"Invalid from_block: {from_block!r}")
        if to_block is not None and (not isinstance(to_block, int) or to_block < from_block):
            raise InvalidInput(f"Invalid to_block: {to_block!r}")
        if chunk_size < 1:
            raise InvalidInput("chunk_size must be positive")

        self.node = node
        self.decoder = decoder
        self.from_block = from_block
        self.to_block = to_block
        self.address = address
        self.topics = list(topics) if topics else None
        self.chunk_size = chunk_size

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[T]:
        to_block = self.to_block
        if to_block is None:
            to_block = await self.node.get_block_number()

        start = self.from_block
        while start <= to_block:
            end = min(start + self.chunk_size - 1, to_block)

            logs = await self.node.get_logs(
                start,
                end,
                address=self.address,
                topics=self.topics,
            )
            logger.debug("logs_fetched", from_block=start, to_block=end, count=len(logs))

            for log in logs:
                yield self.decoder(log)

            start = end + 1

    async def collect(self) -> List[T]:
        """Read the whole range into a list."""
        return [item async for item in self]
