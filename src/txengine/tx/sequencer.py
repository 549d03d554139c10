"""
Nonce Sequencer - resolves and serializes per-account nonces.

The pending transaction count reported by the node is the next usable
nonce. Two submissions for the same account that read it concurrently
would both get the same value, so the read-then-submit section is guarded
by a lock scoped to the account address.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, Optional, Tuple

import structlog

from txengine.core.identity import SigningIdentity
from txengine.node.interface import NodeInterface

logger = structlog.get_logger(__name__)

DEFAULT_MARK_TTL_SECONDS = 60.0


class NonceReservation:
    """
    A nonce held for the duration of one submission.

    Call `commit()` once the transaction has been accepted by the node.
    """

    def __init__(self, sequencer: "NonceSequencer", address: str, nonce: int):
        self._sequencer = sequencer
        self.address = address
        self.nonce = nonce
        self.committed = False

    def commit(self) -> None:
        """Record that the nonce has been consumed by an accepted transaction."""
        if self.committed:
            return
        self._sequencer._advance(self.address, self.nonce)
        self.committed = True


class NonceSequencer:
    """
    Issues nonces for signing identities.

    Tracks a local high-water mark per address so that a node whose pending
    count lags behind an accepted submission never causes a nonce to be
    reused. The mark only moves on commit, so a failed submission leaves no
    gap.

    The mark is dropped as soon as the node's pending count reaches it. If
    the node keeps reporting a lower count for longer than `mark_ttl`
    seconds (for example because an accepted transaction was evicted from
    the pool), the mark expires and the node's count is used again.
    `reset()` drops it immediately.
    """

    def __init__(
        self,
        node: NodeInterface,
        mark_ttl: float = DEFAULT_MARK_TTL_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize the sequencer.

        Args:
            node: Node interface for pending-count queries
            mark_ttl: Seconds the local mark may run ahead of the node
            clock: Monotonic time source; defaults to the event loop clock
        """
        self.node = node
        self.mark_ttl = mark_ttl
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}
        # address -> (next nonce, time the mark was last advanced)
        self._next_local: Dict[str, Tuple[int, float]] = {}

    def _key(self, address: str) -> str:
        return address.lower()

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    def lock_for(self, identity: SigningIdentity) -> asyncio.Lock:
        """Get the submission lock for an identity, creating it on first use."""
        key = self._key(identity.address)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def local_mark(self, identity: SigningIdentity) -> Optional[int]:
        """The locally tracked next nonce, if one is held."""
        mark = self._next_local.get(self._key(identity.address))
        return mark[0] if mark else None

    async def next_nonce(self, identity: SigningIdentity) -> int:
        """
        Resolve the next nonce for an identity.

        This is a single unguarded read; use `reserve()` when the nonce will
        be used for a submission.

        Raises:
            NetworkError: If the pending count cannot be queried
        """
        pending = await self.node.get_transaction_count(identity.address, "pending")
        key = self._key(identity.address)
        mark = self._next_local.get(key)

        if mark is None:
            return pending

        local, advanced_at = mark

        if pending >= local:
            del self._next_local[key]
            logger.debug("nonce_mark_cleared", address=identity.short_address, pending=pending)
            return pending

        if self._now() - advanced_at >= self.mark_ttl:
            del self._next_local[key]
            logger.warning(
                "nonce_mark_expired",
                address=identity.short_address,
                pending=pending,
                local=local,
            )
            return pending

        logger.debug(
            "nonce_from_local_mark",
            address=identity.short_address,
            pending=pending,
            local=local,
        )
        return local

    @asynccontextmanager
    async def reserve(self, identity: SigningIdentity) -> AsyncIterator[NonceReservation]:
        """
        Hold the identity's submission lock and yield a nonce reservation.

        Usage:
            ```python
            async with sequencer.reserve(identity) as reservation:
                ...  # build, sign, broadcast with reservation.nonce
                reservation.commit()
            ```
        """
        lock = self.lock_for(identity)
        async with lock:
            nonce = await self.next_nonce(identity)
            reservation = NonceReservation(self, identity.address, nonce)

            logger.debug("nonce_reserved", address=identity.short_address, nonce=nonce)

            try:
                yield reservation
            finally:
                if not reservation.committed:
                    logger.debug(
                        "nonce_released",
                        address=identity.short_address,
                        nonce=nonce,
                    )

    def _advance(self, address: str, nonce: int) -> None:
        key = self._key(address)
        current = self._next_local.get(key)
        if current is None or nonce + 1 > current[0]:
            self._next_local[key] = (nonce + 1, self._now())

    def reset(self, identity: SigningIdentity) -> None:
        """Forget the local mark so the next nonce comes from the node alone."""
        self._next_local.pop(self._key(identity.address), None)
        logger.info("nonce_mark_reset", address=identity.short_address)
