"""
Transaction models.

Represents transactions as they move from construction through signing
to inclusion on-chain.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


class TransactionKind(str, Enum):
    """What a transaction does."""
    TRANSFER = "transfer"               # Plain value transfer
    CONTRACT_CALL = "contract_call"     # Invocation with call payload
    DEPLOYMENT = "deployment"           # Contract creation (no recipient)


class ExecutionStatus(str, Enum):
    """Execution outcome recorded in a receipt."""
    SUCCESS = "success"
    REVERTED = "reverted"


@dataclass(frozen=True)
class UnsignedTransaction:
    """
    A fully specified legacy (EIP-155) transaction awaiting a signature.

    Attributes:
        from_address: Checksummed sender address
        to_address: Checksummed recipient, None for a deployment
        value: Amount transferred in base units (wei)
        gas_limit: Maximum gas the transaction may consume
        gas_price: Fee per unit of gas in wei
        nonce: Sender's sequence number
        data: Opaque call payload or deployment bytecode
    """

    from_address: str
    to_address: Optional[str]
    value: int
    gas_limit: int
    gas_price: int
    nonce: int
    data: bytes = b""

    @property
    def kind(self) -> TransactionKind:
        if self.to_address is None:
            return TransactionKind.DEPLOYMENT
        if self.data:
            return TransactionKind.CONTRACT_CALL
        return TransactionKind.TRANSFER

    @property
    def max_fee(self) -> int:
        """Upper bound on the fee charged, in wei."""
        return self.gas_limit * self.gas_price

    @property
    def max_cost(self) -> int:
        """Value plus maximum fee; the balance the sender must hold."""
        return self.value + self.max_fee

    def to_signable_dict(self, chain_id: int) -> dict:
        """Convert to the dict form accepted by eth-account."""
        tx = {
            "nonce": self.nonce,
            "gasPrice": self.gas_price,
            "gas": self.gas_limit,
            "value": self.value,
            "data": "0x" + self.data.hex(),
            "chainId": chain_id,
        }
        if self.to_address is not None:
            tx["to"] = self.to_address
        return tx

    def to_dict(self) -> dict:
        """Convert to dictionary for display and logging."""
        return {
            "kind": self.kind.value,
            "from": self.from_address,
            "to": self.to_address,
            "value": self.value,
            "gas_limit": self.gas_limit,
            "gas_price": self.gas_price,
            "nonce": self.nonce,
            "data": "0x" + self.data.hex(),
        }


@dataclass(frozen=True)
class SignedTransaction:
    """
    A signed transaction bound to one chain id.

    Attributes:
        transaction: The transaction that was signed
        raw: Canonical RLP encoding including the signature
        chain_id: Chain id folded into the signature (EIP-155)
        tx_hash: Keccak-256 of raw, 0x-prefixed
        v: Recovery value including the chain id
        r: Signature r
        s: Signature s
    """

    transaction: UnsignedTransaction
    raw: bytes
    chain_id: int
    tx_hash: str
    v: int
    r: int
    s: int

    @property
    def raw_hex(self) -> str:
        return "0x" + self.raw.hex()


@dataclass(frozen=True)
class DecodedTransaction:
    """Fields recovered from a raw signed legacy transaction."""

    nonce: int
    gas_price: int
    gas_limit: int
    to_address: Optional[str]
    value: int
    data: bytes
    v: int
    r: int
    s: int
    chain_id: Optional[int]


@dataclass(frozen=True)
class LogEntry:
    """A single event log emitted by a contract."""

    address: str
    topics: Tuple[str, ...]
    data: bytes
    block_number: int
    transaction_hash: str
    log_index: int

    @classmethod
    def from_rpc(cls, data: dict) -> "LogEntry":
        """Parse a log object as returned by eth_getLogs or inside receipts."""
        raw = data.get("data") or "0x"
        return cls(
            address=data["address"],
            topics=tuple(data.get("topics", [])),
            data=bytes.fromhex(raw[2:] if raw.startswith("0x") else raw),
            block_number=int(data.get("blockNumber") or "0x0", 16),
            transaction_hash=data.get("transactionHash", ""),
            log_index=int(data.get("logIndex") or "0x0", 16),
        )


@dataclass(frozen=True)
class TransactionReceipt:
    """
    The network's record of a transaction's inclusion and execution.

    Produced by the node; read-only to the engine.
    """

    transaction_hash: str
    block_number: int
    block_hash: str
    status: ExecutionStatus
    gas_used: int
    effective_gas_price: Optional[int] = None
    contract_address: Optional[str] = None
    logs: Tuple[LogEntry, ...] = ()
    observed_at: datetime = field(default_factory=datetime.utcnow, compare=False)

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    @property
    def fee_paid(self) -> Optional[int]:
        """Actual fee charged in wei, when the node reports the price."""
        if self.effective_gas_price is None:
            return None
        return self.gas_used * self.effective_gas_price

    @classmethod
    def from_rpc(cls, data: dict) -> "TransactionReceipt":
        """Parse an eth_getTransactionReceipt result."""
        status = int(data.get("status") or "0x0", 16)
        effective_price = data.get("effectiveGasPrice")
        return cls(
            transaction_hash=data["transactionHash"],
            block_number=int(data["blockNumber"], 16),
            block_hash=data.get("blockHash", ""),
            status=ExecutionStatus.SUCCESS if status == 1 else ExecutionStatus.REVERTED,
            gas_used=int(data.get("gasUsed") or "0x0", 16),
            effective_gas_price=int(effective_price, 16) if effective_price else None,
            contract_address=data.get("contractAddress"),
            logs=tuple(LogEntry.from_rpc(log) for log in data.get("logs", [])),
        )

    def logs_from(self, address: str) -> List[LogEntry]:
        """Get logs emitted by a specific contract."""
        return [log for log in self.logs if log.address.lower() == address.lower()]
