"""
Confirmation and submission results.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from txengine.core.transaction import ExecutionStatus, SignedTransaction, TransactionReceipt
from txengine.errors import ConfirmationTimeout, ExecutionReverted, NetworkError


class ConfirmationStatus(str, Enum):
    """Outcome of waiting for a transaction."""
    SUCCESS = "success"               # Included, execution succeeded
    REVERTED = "reverted"             # Included, execution failed
    TIMED_OUT = "timed_out"           # No receipt within the bound
    NETWORK_ERROR = "network_error"   # Polling channel failed
    CANCELLED = "cancelled"           # Caller stopped waiting; fate unknown


_TERMINAL = frozenset({
    ConfirmationStatus.SUCCESS,
    ConfirmationStatus.REVERTED,
    ConfirmationStatus.TIMED_OUT,
    ConfirmationStatus.NETWORK_ERROR,
})


@dataclass(frozen=True)
class ConfirmationResult:
    """
    Result of awaiting a transaction.

    Exactly one status is set. `receipt` is present only for SUCCESS and
    REVERTED; `detail` carries the error text for NETWORK_ERROR.
    """

    tx_hash: str
    status: ConfirmationStatus
    receipt: Optional[TransactionReceipt] = None
    detail: Optional[str] = None
    elapsed_seconds: float = 0.0
    polls: int = 0
    timeout_seconds: Optional[float] = None

    @classmethod
    def from_receipt(
        cls,
        receipt: TransactionReceipt,
        elapsed_seconds: float = 0.0,
        polls: int = 0,
    ) -> "ConfirmationResult":
        """Classify a receipt by its execution status."""
        status = (
            ConfirmationStatus.SUCCESS
            if receipt.status == ExecutionStatus.SUCCESS
            else ConfirmationStatus.REVERTED
        )
        return cls(
            tx_hash=receipt.transaction_hash,
            status=status,
            receipt=receipt,
            elapsed_seconds=elapsed_seconds,
            polls=polls,
        )

    @property
    def is_success(self) -> bool:
        return self.status == ConfirmationStatus.SUCCESS

    @property
    def is_terminal(self) -> bool:
        """Whether the ledger outcome (or its absence within the bound) is known."""
        return self.status in _TERMINAL

    def raise_for_status(self) -> TransactionReceipt:
        """
        Return the receipt on success, otherwise raise the matching error.

        Raises:
            ExecutionReverted: If execution failed
            ConfirmationTimeout: If no receipt was seen in time
            NetworkError: If polling failed or was cancelled
        """
        if self.status == ConfirmationStatus.SUCCESS:
            return self.receipt
        if self.status == ConfirmationStatus.REVERTED:
            raise ExecutionReverted(self.tx_hash, self.receipt.block_number)
        if self.status == ConfirmationStatus.TIMED_OUT:
            raise ConfirmationTimeout(self.tx_hash, self.timeout_seconds or self.elapsed_seconds)
        if self.status == ConfirmationStatus.CANCELLED:
            raise NetworkError(f"Waiting for {self.tx_hash} was cancelled")
        raise NetworkError(self.detail or f"Polling for {self.tx_hash} failed")

    def to_dict(self) -> dict:
        return {
            "tx_hash": self.tx_hash,
            "status": self.status.value,
            "block_number": self.receipt.block_number if self.receipt else None,
            "gas_used": self.receipt.gas_used if self.receipt else None,
            "detail": self.detail,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "polls": self.polls,
        }


@dataclass(frozen=True)
class SubmissionResult:
    """A transaction accepted into the node's pending pool."""

    tx_hash: str
    nonce: int
    gas_price: int
    signed: SignedTransaction
    submitted_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def from_address(self) -> str:
        return self.signed.transaction.from_address

    def to_dict(self) -> dict:
        return {
            "tx_hash": self.tx_hash,
            "nonce": self.nonce,
            "gas_price": self.gas_price,
            "from": self.from_address,
            "to": self.signed.transaction.to_address,
            "value": self.signed.transaction.value,
            "chain_id": self.signed.chain_id,
            "submitted_at": self.submitted_at.isoformat(),
        }
