"""
Error taxonomy for transaction submission and confirmation.

InvalidInput is raised before any network call. NetworkError and
RejectedTransaction are surfaced to the caller without retry.
ExecutionReverted and ConfirmationTimeout describe terminal outcomes and
are only raised on request via ConfirmationResult.raise_for_status().
"""

from enum import Enum
from typing import Optional


class TxEngineError(Exception):
    """Base class for all transaction engine errors."""
    pass


class InvalidInput(TxEngineError, ValueError):
    """Raised when a key, address, amount or field is malformed."""
    pass


class NetworkError(TxEngineError):
    """Raised when the node cannot be reached or answers with an RPC error."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class RejectionReason(str, Enum):
    """Why the node refused a signed transaction."""
    NONCE_TOO_LOW = "nonce_too_low"
    DUPLICATE = "duplicate"
    REPLACEMENT_UNDERPRICED = "replacement_underpriced"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INTRINSIC_GAS_TOO_LOW = "intrinsic_gas_too_low"
    GAS_LIMIT_EXCEEDED = "gas_limit_exceeded"
    UNDERPRICED = "underpriced"
    UNKNOWN = "unknown"


class RejectedTransaction(TxEngineError):
    """Raised when the node refuses a transaction at submission time."""

    def __init__(
        self,
        message: str,
        reason: RejectionReason = RejectionReason.UNKNOWN,
        code: Optional[int] = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.code = code

    @property
    def is_nonce_error(self) -> bool:
        """Whether re-deriving the nonce could make a resubmission succeed."""
        return self.reason in (
            RejectionReason.NONCE_TOO_LOW,
            RejectionReason.DUPLICATE,
            RejectionReason.REPLACEMENT_UNDERPRICED,
        )


class ExecutionReverted(TxEngineError):
    """The transaction was included but its execution failed."""

    def __init__(self, tx_hash: str, block_number: Optional[int] = None):
        super().__init__(f"Transaction {tx_hash} reverted in block {block_number}")
        self.tx_hash = tx_hash
        self.block_number = block_number


class ConfirmationTimeout(TxEngineError):
    """No receipt was observed within the confirmation bound."""

    def __init__(self, tx_hash: str, timeout_seconds: float):
        super().__init__(f"Transaction {tx_hash} not confirmed within {timeout_seconds}s")
        self.tx_hash = tx_hash
        self.timeout_seconds = timeout_seconds


# Substrings used by geth, erigon, nethermind and anvil in their rejection
# messages, checked in order.
_REJECTION_PATTERNS = (
    ("nonce too low", RejectionReason.NONCE_TOO_LOW),
    ("invalid nonce", RejectionReason.NONCE_TOO_LOW),
    ("already known", RejectionReason.DUPLICATE),
    ("already imported", RejectionReason.DUPLICATE),
    ("known transaction", RejectionReason.DUPLICATE),
    ("replacement transaction underpriced", RejectionReason.REPLACEMENT_UNDERPRICED),
    ("insufficient funds", RejectionReason.INSUFFICIENT_FUNDS),
    ("intrinsic gas too low", RejectionReason.INTRINSIC_GAS_TOO_LOW),
    ("exceeds block gas limit", RejectionReason.GAS_LIMIT_EXCEEDED),
    ("gas limit reached", RejectionReason.GAS_LIMIT_EXCEEDED),
    ("transaction underpriced", RejectionReason.UNDERPRICED),
    ("fee too low", RejectionReason.UNDERPRICED),
)


def classify_rejection(message: str) -> RejectionReason:
    """
    Map a node's rejection message to a RejectionReason.

    Args:
        message: Error message returned by eth_sendRawTransaction

    Returns:
        The matching reason, or UNKNOWN
    """
    lowered = message.lower()
    for pattern, reason in _REJECTION_PATTERNS:
        if pattern in lowered:
            return reason
    return RejectionReason.UNKNOWN
