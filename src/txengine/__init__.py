"""
EVM Transaction Engine

Submits value transfers and contract calls to an Ethereum-compatible
JSON-RPC node and tracks them to a definite outcome: per-account nonce
ordering, fee lookup, EIP-155 signing, broadcast and bounded confirmation
polling.
"""

__version__ = "0.1.0"

from txengine.config import EngineConfig, NetworkType, NodeProvider
from txengine.core.identity import SigningIdentity, generate_identity
from txengine.core.result import ConfirmationResult, ConfirmationStatus, SubmissionResult
from txengine.core.engine import TransactionEngine
from txengine.contract import ContractInvoker, EventQuery
from txengine.errors import (
    ConfirmationTimeout,
    ExecutionReverted,
    InvalidInput,
    NetworkError,
    RejectedTransaction,
    RejectionReason,
    TxEngineError,
)

__all__ = [
    "EngineConfig",
    "NetworkType",
    "NodeProvider",
    "SigningIdentity",
    "generate_identity",
    "ConfirmationResult",
    "ConfirmationStatus",
    "SubmissionResult",
    "TransactionEngine",
    "ContractInvoker",
    "EventQuery",
    "ConfirmationTimeout",
    "ExecutionReverted",
    "InvalidInput",
    "NetworkError",
    "RejectedTransaction",
    "RejectionReason",
    "TxEngineError",
]
