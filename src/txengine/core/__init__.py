"""
Core engine components.

This module contains the data model shared by every stage (identities,
transactions, receipts, results) and the orchestrating TransactionEngine,
which lives in `txengine.core.engine`.
"""

from txengine.core.identity import SigningIdentity, generate_identity, normalize_address
from txengine.core.transaction import (
    DecodedTransaction,
    ExecutionStatus,
    LogEntry,
    SignedTransaction,
    TransactionKind,
    TransactionReceipt,
    UnsignedTransaction,
)
from txengine.core.result import ConfirmationResult, ConfirmationStatus, SubmissionResult
from txengine.core.units import from_base_units, to_base_units

__all__ = [
    "SigningIdentity",
    "generate_identity",
    "normalize_address",
    "DecodedTransaction",
    "ExecutionStatus",
    "LogEntry",
    "SignedTransaction",
    "TransactionKind",
    "TransactionReceipt",
    "UnsignedTransaction",
    "ConfirmationResult",
    "ConfirmationStatus",
    "SubmissionResult",
    "from_base_units",
    "to_base_units",
]
