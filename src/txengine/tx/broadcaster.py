"""
Broadcaster - submits signed transactions to the network.
"""

import structlog

from txengine.core.transaction import SignedTransaction
from txengine.errors import NetworkError, RejectedTransaction
from txengine.node.interface import NodeInterface

logger = structlog.get_logger(__name__)


class Broadcaster:
    """
    Sends signed transactions to the node's pending pool.

    Failures are surfaced, never retried: the caller decides whether to
    re-derive a nonce and resubmit.
    """

    def __init__(self, node: NodeInterface):
        self.node = node

    async def submit(self, signed: SignedTransaction) -> str:
        """
        Submit a signed transaction.

        Args:
            signed: Transaction to broadcast

        Returns:
            Keccak-256 content hash of the signed bytes

        Raises:
            RejectedTransaction: If the node refuses the transaction
            NetworkError: If the node cannot be reached
        """
        tx = signed.transaction

        try:
            reported_hash = await self.node.send_raw_transaction(signed.raw)
        except RejectedTransaction as e:
            logger.error(
                "tx_submit_rejected",
                tx_hash=signed.tx_hash,
                nonce=tx.nonce,
                reason=e.reason.value,
                error=str(e),
            )
            raise
        except NetworkError as e:
            logger.error("tx_submit_failed", tx_hash=signed.tx_hash, error=str(e))
            raise

        if reported_hash and reported_hash.lower() != signed.tx_hash.lower():
            logger.warning(
                "tx_hash_mismatch",
                local=signed.tx_hash,
                reported=reported_hash,
            )

        logger.info(
            "tx_submitted",
            tx_hash=signed.tx_hash,
            nonce=tx.nonce,
            kind=tx.kind.value,
            chain_id=signed.chain_id,
        )
        return signed.tx_hash
