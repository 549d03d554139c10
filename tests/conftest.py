"""
Pytest configuration and shared fixtures for the test suite.
"""

import asyncio
from collections import Counter
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest
from eth_utils import keccak

from txengine.cli import setup_logging
from txengine.config import EngineConfig, NetworkType
from txengine.core.identity import SigningIdentity
from txengine.core.transaction import ExecutionStatus, LogEntry, TransactionReceipt
from txengine.errors import NetworkError, RejectedTransaction, RejectionReason
from txengine.node.interface import NodeInterface
from txengine.tx.signer import TransactionSigner


# ============================================================================
# Constants
# ============================================================================

TEST_CHAIN_ID = 11155111
OTHER_CHAIN_ID = 17000

# Well-known development keys (anvil/hardhat accounts 0 and 1)
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
OTHER_PRIVATE_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
OTHER_ADDRESS = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"

RECIPIENT = "0x" + "aa" * 20

ONE_ETHER = 10 ** 18
GWEI = 10 ** 9


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture(scope="session", autouse=True)
def structured_logging():
    """Route structlog through stdlib logging on stderr, away from command output."""
    setup_logging("DEBUG")


@pytest.fixture
def test_config() -> EngineConfig:
    """Create a test configuration."""
    return EngineConfig(
        network=NetworkType.SEPOLIA,
        chain_id=TEST_CHAIN_ID,
        rpc_url="http://node.test:8545",
        poll_interval_seconds=2.0,
        confirmation_timeout_seconds=300,
        progress_interval_seconds=0.01,
        max_poll_failures=3,
        log_level="DEBUG",
        _env_file=None,
    )


@pytest.fixture
def identity() -> SigningIdentity:
    """Signing identity for TEST_ADDRESS."""
    return SigningIdentity.from_private_key(TEST_PRIVATE_KEY)


@pytest.fixture
def other_identity() -> SigningIdentity:
    """Signing identity for OTHER_ADDRESS."""
    return SigningIdentity.from_private_key(OTHER_PRIVATE_KEY)


# ============================================================================
# Virtual Time
# ============================================================================

class VirtualClock:
    """Clock and sleep pair that advance time without waiting."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def time(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> VirtualClock:
    """Create a virtual clock."""
    return VirtualClock()


# ============================================================================
# Test Data Generators
# ============================================================================

def generate_test_tx_hash(index: int = 0) -> str:
    """Generate a deterministic test transaction hash."""
    return "0x" + f"{index:064x}"


def make_receipt(
    tx_hash: str,
    status: ExecutionStatus = ExecutionStatus.SUCCESS,
    block_number: int = 100,
    gas_used: int = 21_000,
    logs: Sequence[LogEntry] = (),
    contract_address: Optional[str] = None,
) -> TransactionReceipt:
    """Create a receipt for a transaction."""
    return TransactionReceipt(
        transaction_hash=tx_hash,
        block_number=block_number,
        block_hash="0x" + "bb" * 32,
        status=status,
        gas_used=gas_used,
        effective_gas_price=20 * GWEI,
        contract_address=contract_address,
        logs=tuple(logs),
    )


# ============================================================================
# Mock Node Interface
# ============================================================================

class MockNode(NodeInterface):
    """
    In-memory node for testing.

    Accepts signed transactions the way a real pending pool does: the
    sender's pending count must not exceed the nonce, a nonce already in the
    pool is a duplicate, and the sender must afford value plus maximum fee.
    """

    def __init__(self, chain_id: int = TEST_CHAIN_ID, clock: Optional[VirtualClock] = None):
        self.chain_id = chain_id
        self.clock = clock
        self.connected = False
        self.block_number = 100
        self.gas_price = 20 * GWEI

        self.pending_counts: Dict[str, int] = {}
        self.balances: Dict[str, int] = {}
        self.default_balance = 10 * ONE_ETHER
        self.pool: Dict[Tuple[str, int], str] = {}
        self.sent: List[bytes] = []

        self.receipts: Dict[str, TransactionReceipt] = {}
        self.receipt_at_time: Dict[str, float] = {}
        self.receipt_after_polls: Dict[str, int] = {}
        self.receipt_polls: Counter = Counter()
        self.receipt_failures = 0
        self.failures: Dict[str, NetworkError] = {}

        self.call_result = b""
        self.last_call: Optional[Tuple[str, bytes, str]] = None
        self.logs: List[LogEntry] = []
        self.log_requests: List[Tuple[int, int]] = []

        self.calls: Counter = Counter()
        self.call_times: List[Tuple[str, float]] = []

        self._signer = TransactionSigner()

    def _record(self, method: str) -> None:
        self.calls[method] += 1
        self.call_times.append((method, self.clock.now if self.clock else 0.0))
        if method in self.failures:
            raise self.failures[method]

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    async def connect(self) -> None:
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False

    async def get_chain_id(self) -> int:
        self._record("eth_chainId")
        return self.chain_id

    async def get_block_number(self) -> int:
        self._record("eth_blockNumber")
        return self.block_number

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        self._record("eth_getTransactionCount")
        return self.pending_counts.get(address.lower(), 0)

    async def get_gas_price(self) -> int:
        self._record("eth_gasPrice")
        return self.gas_price

    async def get_balance(self, address: str, block: str = "latest") -> int:
        self._record("eth_getBalance")
        return self.balances.get(address.lower(), self.default_balance)

    async def send_raw_transaction(self, raw: bytes) -> str:
        self._record("eth_sendRawTransaction")
        await asyncio.sleep(0)

        decoded = self._signer.decode(raw)
        sender = self._signer.recover_sender(raw, self.chain_id)
        if sender is None:
            raise RejectedTransaction("invalid sender", RejectionReason.UNKNOWN, code=-32000)

        key = sender.lower()
        tx_hash = "0x" + keccak(raw).hex()

        pooled = self.pool.get((key, decoded.nonce))
        if pooled == tx_hash:
            raise RejectedTransaction("already known", RejectionReason.DUPLICATE, code=-32000)
        if pooled is not None:
            raise RejectedTransaction(
                "replacement transaction underpriced",
                RejectionReason.REPLACEMENT_UNDERPRICED,
                code=-32000,
            )
        if decoded.nonce < self.pending_counts.get(key, 0):
            raise RejectedTransaction(
                f"nonce too low: next nonce {self.pending_counts.get(key, 0)}, "
                f"tx nonce {decoded.nonce}",
                RejectionReason.NONCE_TOO_LOW,
                code=-32000,
            )

        cost = decoded.value + decoded.gas_limit * decoded.gas_price
        balance = self.balances.get(key, self.default_balance)
        if balance < cost:
            raise RejectedTransaction(
                f"insufficient funds for gas * price + value: balance {balance}, "
                f"tx cost {cost}",
                RejectionReason.INSUFFICIENT_FUNDS,
                code=-32000,
            )

        self.pool[(key, decoded.nonce)] = tx_hash
        self.pending_counts[key] = max(self.pending_counts.get(key, 0), decoded.nonce + 1)
        self.sent.append(raw)
        return tx_hash

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        self._record("eth_getTransactionReceipt")
        self.receipt_polls[tx_hash] += 1

        if self.receipt_failures > 0:
            self.receipt_failures -= 1
            raise NetworkError("connection reset")

        receipt = self.receipts.get(tx_hash)
        if receipt is None:
            return None

        if tx_hash in self.receipt_at_time:
            now = self.clock.now if self.clock else 0.0
            if now < self.receipt_at_time[tx_hash]:
                return None

        if self.receipt_polls[tx_hash] <= self.receipt_after_polls.get(tx_hash, 0):
            return None

        return receipt

    async def call(self, to: str, data: bytes, block: str = "latest") -> bytes:
        self._record("eth_call")
        self.last_call = (to, data, block)
        return self.call_result

    async def get_logs(
        self,
        from_block: int,
        to_block: int,
        address: Optional[str] = None,
        topics: Optional[Sequence[Optional[str]]] = None,
    ) -> List[LogEntry]:
        self._record("eth_getLogs")
        self.log_requests.append((from_block, to_block))

        result = []
        for log in self.logs:
            if not from_block <= log.block_number <= to_block:
                continue
            if address and log.address.lower() != address.lower():
                continue
            if topics and topics[0] and (not log.topics or log.topics[0] != topics[0]):
                continue
            result.append(log)
        return result

    def schedule_receipt(
        self,
        tx_hash: str,
        status: ExecutionStatus = ExecutionStatus.SUCCESS,
        at_time: Optional[float] = None,
        after_polls: int = 0,
        block_number: Optional[int] = None,
    ) -> TransactionReceipt:
        """Make a receipt available at a virtual time or after some polls."""
        receipt = make_receipt(
            tx_hash,
            status=status,
            block_number=self.block_number if block_number is None else block_number,
        )
        self.receipts[tx_hash] = receipt
        if at_time is not None:
            self.receipt_at_time[tx_hash] = at_time
        if after_polls:
            self.receipt_after_polls[tx_hash] = after_polls
        return receipt


@pytest.fixture
def mock_node(clock) -> MockNode:
    """Create a mock node interface bound to the virtual clock."""
    return MockNode(clock=clock)


@pytest.fixture
def make_engine(test_config, mock_node, clock) -> Callable:
    """Factory for an initialized engine over the mock node."""
    from txengine.core.engine import TransactionEngine

    async def factory(**overrides) -> TransactionEngine:
        config = test_config.model_copy(update=overrides) if overrides else test_config
        engine = TransactionEngine(
            config,
            node=mock_node,
            clock=clock.time,
            sleep=clock.sleep,
        )
        await engine.initialize()
        return engine

    return factory
