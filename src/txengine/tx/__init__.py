"""
Transaction module.

Handles nonce sequencing, fee lookup, construction, signing, broadcast
and confirmation tracking.
"""

from txengine.tx.sequencer import NonceReservation, NonceSequencer
from txengine.tx.fees import FeeEstimator
from txengine.tx.builder import TransactionBuilder
from txengine.tx.signer import TransactionSigner
from txengine.tx.broadcaster import Broadcaster
from txengine.tx.tracker import ConfirmationTracker

__all__ = [
    "NonceReservation",
    "NonceSequencer",
    "FeeEstimator",
    "TransactionBuilder",
    "TransactionSigner",
    "Broadcaster",
    "ConfirmationTracker",
]
