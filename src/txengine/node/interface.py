"""
Abstract interface for EVM node integration.

Defines the contract for ledger access that all node adapters must implement.
A single adapter instance is constructed by the caller and shared by every
component; implementations must be safe for concurrent use by many tasks.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from txengine.core.transaction import LogEntry, TransactionReceipt


class NodeInterface(ABC):
    """
    Abstract interface for EVM node access.

    This interface defines all ledger operations needed by the engine:
    - Account state (pending nonce, balance)
    - Fee suggestion
    - Raw transaction submission
    - Receipt and head queries for confirmation tracking
    - Read-only calls and log queries for contract interaction
    """

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish connection to the node.

        Raises:
            NetworkError: If connection cannot be established
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to the node."""
        pass

    @abstractmethod
    async def get_chain_id(self) -> int:
        """Get the chain id the node serves."""
        pass

    @abstractmethod
    async def get_block_number(self) -> int:
        """Get the number of the most recent block."""
        pass

    @abstractmethod
    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        """
        Get the number of transactions sent from an address.

        Args:
            address: Checksummed account address
            block: Block tag; "pending" includes transactions still in the pool

        Returns:
            Transaction count, i.e. the next usable nonce
        """
        pass

    @abstractmethod
    async def get_gas_price(self) -> int:
        """Get the node's suggested gas price in wei."""
        pass

    @abstractmethod
    async def get_balance(self, address: str, block: str = "latest") -> int:
        """Get an account balance in wei."""
        pass

    @abstractmethod
    async def send_raw_transaction(self, raw: bytes) -> str:
        """
        Submit a signed transaction to the network.

        Args:
            raw: Canonical signed transaction bytes

        Returns:
            Transaction hash reported by the node

        Raises:
            RejectedTransaction: If the node refuses the transaction
            NetworkError: If the node cannot be reached
        """
        pass

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        """
        Get the receipt for a transaction.

        Returns:
            The receipt if the transaction is included, None otherwise
        """
        pass

    @abstractmethod
    async def call(self, to: str, data: bytes, block: str = "latest") -> bytes:
        """Execute a read-only call and return the raw return data."""
        pass

    @abstractmethod
    async def get_logs(
        self,
        from_block: int,
        to_block: int,
        address: Optional[str] = None,
        topics: Optional[Sequence[Optional[str]]] = None,
    ) -> List[LogEntry]:
        """
        Get logs matching a filter over an inclusive block range.

        Args:
            from_block: First block to search
            to_block: Last block to search
            address: Optional emitting contract
            topics: Optional positional topic filter (None matches anything)
        """
        pass

    async def get_confirmation_depth(self, receipt: TransactionReceipt) -> int:
        """
        Get the number of blocks confirming a receipt, including its own block.
        """
        head = await self.get_block_number()
        return max(0, head - receipt.block_number + 1)
