"""
Main TransactionEngine orchestrator.

Wires identity, nonce sequencing, fee lookup, construction, signing,
broadcast and confirmation tracking into one submission service.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, Sequence

import structlog

from txengine.config import EngineConfig
from txengine.contract import ContractInvoker, DecodedEvent, EventQuery
from txengine.core.identity import SigningIdentity, normalize_address
from txengine.core.result import ConfirmationResult, SubmissionResult
from txengine.core.transaction import UnsignedTransaction
from txengine.core.units import Amount, to_base_units
from txengine.errors import NetworkError, RejectedTransaction
from txengine.node import NodeInterface, create_node
from txengine.tx.broadcaster import Broadcaster
from txengine.tx.builder import Payload, TransactionBuilder
from txengine.tx.fees import FeeEstimator
from txengine.tx.sequencer import NonceSequencer
from txengine.tx.signer import TransactionSigner
from txengine.tx.tracker import ConfirmationTracker, ProgressCallback

logger = structlog.get_logger(__name__)

# (nonce, gas_price) -> unsigned transaction
TransactionFactory = Callable[[int, int], UnsignedTransaction]


class TransactionEngine:
    """
    Main transaction engine orchestrator.

    Coordinates all engine components:
    - Nonce reservation per signing identity
    - Fee lookup and transaction construction
    - EIP-155 signing and broadcast
    - Confirmation tracking

    Usage:
        ```python
        engine = TransactionEngine(EngineConfig())
        await engine.initialize()
        submission = await engine.transfer(identity, "0x...", "0.01")
        result = await engine.wait(submission.tx_hash)
        await engine.shutdown()
        ```
    """

    def __init__(
        self,
        config: EngineConfig,
        node: Optional[NodeInterface] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        Initialize the engine.

        Args:
            config: Engine configuration
            node: Node interface (created from config if not provided)
            clock: Time source for confirmation tracking and nonce mark expiry
            sleep: Sleep coroutine for confirmation tracking
        """
        self.config = config
        self.node = node or create_node(config)

        self.sequencer = NonceSequencer(
            self.node,
            mark_ttl=config.nonce_mark_ttl_seconds,
            clock=clock,
        )
        self.fees = FeeEstimator(self.node, config)
        self.builder = TransactionBuilder(config)
        self.signer = TransactionSigner()
        self.broadcaster = Broadcaster(self.node)
        self.tracker = ConfirmationTracker(self.node, config, clock=clock, sleep=sleep)

        # State
        self.chain_id: Optional[int] = None
        self._initialized = False

        # Callbacks
        self._on_submitted: Optional[Callable[[SubmissionResult], None]] = None
        self._on_confirmed: Optional[Callable[[ConfirmationResult], None]] = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Connect to the node and resolve the chain id.

        Must be called before submitting.
        """
        if self._initialized:
            return

        logger.info("engine_initializing", network=self.config.network.value)

        await self.node.connect()

        if self.config.chain_id is not None:
            self.chain_id = self.config.chain_id
        else:
            self.chain_id = await self.node.get_chain_id()

        self._initialized = True
        logger.info("engine_initialized", chain_id=self.chain_id)

    async def shutdown(self) -> None:
        """Disconnect from the node."""
        await self.node.disconnect()
        self._initialized = False
        logger.info("engine_shutdown")

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("Engine not initialized")

    # Submission

    async def submit(
        self,
        identity: SigningIdentity,
        to: str,
        value: int,
        payload: Optional[Payload] = None,
        gas_limit: Optional[int] = None,
    ) -> SubmissionResult:
        """
        Submit a transfer or contract invocation.

        Args:
            identity: Signing identity (sender)
            to: Recipient or contract address
            value: Amount in base units
            payload: Pre-encoded call data
            gas_limit: Override for the default gas limit

        Returns:
            Submission accepted by the node

        Raises:
            InvalidInput: If any field is malformed (before any network call)
            NetworkError: If the node cannot be reached
            RejectedTransaction: If the node refuses the transaction
        """
        recipient = normalize_address(to)

        def factory(nonce: int, gas_price: int) -> UnsignedTransaction:
            return self.builder.build(
                from_address=identity.address,
                to_address=recipient,
                value=value,
                nonce=nonce,
                gas_price=gas_price,
                payload=payload,
                gas_limit=gas_limit,
            )

        return await self._submit(identity, factory)

    async def transfer(
        self,
        identity: SigningIdentity,
        to: str,
        amount: Amount,
    ) -> SubmissionResult:
        """
        Transfer value given in whole coins (e.g. "0.01" ether).

        Raises:
            InvalidInput: If the amount or recipient is malformed
        """
        return await self.submit(identity, to, to_base_units(amount))

    async def invoke(
        self,
        identity: SigningIdentity,
        contract: str,
        payload: Payload,
        value: int = 0,
        gas_limit: Optional[int] = None,
    ) -> SubmissionResult:
        """Submit a state-changing contract call with a pre-encoded payload."""
        return await self.submit(identity, contract, value, payload=payload, gas_limit=gas_limit)

    async def deploy(
        self,
        identity: SigningIdentity,
        bytecode: Payload,
        value: int = 0,
        gas_limit: Optional[int] = None,
    ) -> SubmissionResult:
        """
        Submit a contract creation.

        The created address is reported by the receipt once included.
        """

        def factory(nonce: int, gas_price: int) -> UnsignedTransaction:
            return self.builder.build_deployment(
                from_address=identity.address,
                bytecode=bytecode,
                nonce=nonce,
                gas_price=gas_price,
                value=value,
                gas_limit=gas_limit,
            )

        return await self._submit(identity, factory)

    async def _submit(
        self,
        identity: SigningIdentity,
        factory: TransactionFactory,
    ) -> SubmissionResult:
        """
        Run one submission inside the identity's nonce reservation.

        The transaction is built once with placeholder nonce and fee so that
        malformed input fails before the node is contacted.
        """
        self._require_initialized()
        factory(0, 0)

        async with self.sequencer.reserve(identity) as reservation:
            try:
                gas_price = await self.fees.suggested_fee()
                unsigned = factory(reservation.nonce, gas_price)
                signed = self.signer.sign(unsigned, identity, self.chain_id)
                tx_hash = await self.broadcaster.submit(signed)
            except RejectedTransaction as e:
                logger.error(
                    "submission_rejected",
                    address=identity.short_address,
                    nonce=reservation.nonce,
                    reason=e.reason.value,
                )
                if e.is_nonce_error:
                    self.sequencer.reset(identity)
                raise
            except NetworkError as e:
                logger.error(
                    "submission_failed",
                    address=identity.short_address,
                    nonce=reservation.nonce,
                    error=str(e),
                )
                raise

            reservation.commit()

        result = SubmissionResult(
            tx_hash=tx_hash,
            nonce=reservation.nonce,
            gas_price=gas_price,
            signed=signed,
        )

        logger.info(
            "submission_accepted",
            address=identity.short_address,
            tx_hash=tx_hash[:18] + "...",
            nonce=result.nonce,
        )

        if self._on_submitted:
            self._on_submitted(result)

        return result

    # Confirmation

    async def wait(
        self,
        tx_hash: str,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
        confirmations: Optional[int] = None,
    ) -> ConfirmationResult:
        """
        Wait for a submitted transaction's outcome.

        See `ConfirmationTracker.await_confirmation` for the arguments.
        """
        result = await self.tracker.await_confirmation(
            tx_hash,
            timeout=timeout,
            cancel_event=cancel_event,
            on_progress=on_progress,
            confirmations=confirmations,
        )

        if result.is_terminal and self._on_confirmed:
            self._on_confirmed(result)

        return result

    async def submit_and_wait(
        self,
        identity: SigningIdentity,
        to: str,
        value: int,
        payload: Optional[Payload] = None,
        gas_limit: Optional[int] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ConfirmationResult:
        """
        Submit and then wait for the outcome.

        A rejected or failed broadcast raises; no tracking is started.
        """
        submission = await self.submit(identity, to, value, payload=payload, gas_limit=gas_limit)
        return await self.wait(
            submission.tx_hash,
            timeout=timeout,
            cancel_event=cancel_event,
            on_progress=on_progress,
        )

    # Queries

    async def get_nonce(self, address: str) -> int:
        """Get the pending transaction count of an address as seen by the node."""
        return await self.node.get_transaction_count(normalize_address(address), "pending")

    async def get_balance(self, address: str) -> int:
        """Get the latest balance of an address in base units."""
        return await self.node.get_balance(normalize_address(address))

    async def get_fee(self) -> int:
        """Get the fee per gas unit the next submission would use."""
        return await self.fees.suggested_fee()

    # Contracts

    async def call(
        self,
        contract: ContractInvoker,
        name: str,
        args: Sequence[Any] = (),
        block: Any = "latest",
    ) -> Any:
        """Run a read-only contract call through the engine's node."""
        return await contract.call(self.node, name, args, block)

    def events(
        self,
        contract: ContractInvoker,
        name: str,
        from_block: int = 0,
        to_block: Optional[int] = None,
    ) -> EventQuery[DecodedEvent]:
        """Query a contract's events in chunks of the configured block range."""
        return contract.events(
            self.node,
            name,
            from_block=from_block,
            to_block=to_block,
            chunk_size=self.config.log_chunk_size,
        )

    # Callbacks

    def on_submitted(self, callback: Callable[[SubmissionResult], None]) -> None:
        """Set callback for transactions accepted by the node."""
        self._on_submitted = callback

    def on_confirmed(self, callback: Callable[[ConfirmationResult], None]) -> None:
        """Set callback for terminal confirmation results."""
        self._on_confirmed = callback
