"""
Test suite for the TransactionEngine orchestrator.

Tests the full submit path (nonce, fee, build, sign, broadcast), input
validation ahead of any network call, rejection handling and the
submit-then-wait flow.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from eth_utils import keccak

from txengine.core.engine import TransactionEngine
from txengine.core.result import ConfirmationStatus
from txengine.core.transaction import TransactionKind
from txengine.errors import InvalidInput, NetworkError, RejectedTransaction, RejectionReason
from txengine.tx.signer import TransactionSigner

from tests.conftest import GWEI, RECIPIENT, TEST_ADDRESS, TEST_CHAIN_ID


# ============================================================================
# Test Lifecycle
# ============================================================================

class TestLifecycle:
    """Tests for initialize/shutdown."""

    @pytest.mark.asyncio
    async def test_initialize_uses_configured_chain_id(self, make_engine, mock_node):
        """Test that a configured chain id is used without asking the node."""
        engine = await make_engine()

        assert engine.is_initialized
        assert engine.chain_id == TEST_CHAIN_ID
        assert mock_node.connected
        assert mock_node.calls["eth_chainId"] == 0

    @pytest.mark.asyncio
    async def test_initialize_queries_chain_id(self, test_config, mock_node):
        """Test that the chain id comes from the node when not configured."""
        config = test_config.model_copy(update={"chain_id": None})
        mock_node.chain_id = 31337
        engine = TransactionEngine(config, node=mock_node)

        await engine.initialize()

        assert engine.chain_id == 31337

    @pytest.mark.asyncio
    async def test_shutdown_disconnects(self, make_engine, mock_node):
        """Test that shutdown releases the node."""
        engine = await make_engine()

        await engine.shutdown()

        assert not mock_node.connected
        assert not engine.is_initialized

    @pytest.mark.asyncio
    async def test_submit_requires_initialize(self, test_config, mock_node, identity):
        """Test that submitting before initialize fails."""
        engine = TransactionEngine(test_config, node=mock_node)

        with pytest.raises(RuntimeError, match="not initialized"):
            await engine.submit(identity, RECIPIENT, 1)


# ============================================================================
# Test Submission
# ============================================================================

class TestSubmission:
    """Tests for the submit path."""

    @pytest.mark.asyncio
    async def test_transfer_with_pending_nonce(self, make_engine, mock_node, identity):
        """Test a 0.01 transfer from an account with pending nonce 5."""
        mock_node.pending_counts[identity.address.lower()] = 5
        engine = await make_engine()

        submission = await engine.transfer(identity, RECIPIENT, "0.01")

        assert submission.nonce == 5
        assert submission.tx_hash
        assert submission.tx_hash == "0x" + keccak(submission.signed.raw).hex()
        assert submission.gas_price == 20 * GWEI
        assert submission.from_address == TEST_ADDRESS

        decoded = TransactionSigner().decode(mock_node.sent[0])
        assert decoded.nonce == 5
        assert decoded.value == 10 ** 16
        assert decoded.gas_limit == 21_000
        assert decoded.to_address.lower() == RECIPIENT
        assert decoded.chain_id == TEST_CHAIN_ID

    @pytest.mark.asyncio
    async def test_insufficient_funds_rejected(self, make_engine, mock_node, identity):
        """Test that a balance below value plus fee is rejected and nothing is tracked."""
        mock_node.balances[identity.address.lower()] = 10 ** 16
        engine = await make_engine()
        engine.tracker.await_confirmation = AsyncMock()

        with pytest.raises(RejectedTransaction) as exc_info:
            await engine.submit_and_wait(identity, RECIPIENT, 10 ** 16)

        assert exc_info.value.reason == RejectionReason.INSUFFICIENT_FUNDS
        engine.tracker.await_confirmation.assert_not_called()
        assert mock_node.calls["eth_getTransactionReceipt"] == 0

    @pytest.mark.asyncio
    async def test_rejection_does_not_consume_nonce(self, make_engine, mock_node, identity):
        """Test that the next submission reuses a rejected nonce."""
        mock_node.balances[identity.address.lower()] = 0
        engine = await make_engine()

        with pytest.raises(RejectedTransaction):
            await engine.submit(identity, RECIPIENT, 1)

        mock_node.balances[identity.address.lower()] = 10 ** 18
        submission = await engine.submit(identity, RECIPIENT, 1)

        assert submission.nonce == 0

    @pytest.mark.asyncio
    async def test_invalid_input_before_network(self, make_engine, mock_node, identity):
        """Test that malformed input fails without contacting the node."""
        engine = await make_engine()
        calls_before = mock_node.total_calls

        with pytest.raises(InvalidInput):
            await engine.submit(identity, "0x1234", 1)
        with pytest.raises(InvalidInput):
            await engine.submit(identity, RECIPIENT, -1)
        with pytest.raises(InvalidInput):
            await engine.transfer(identity, RECIPIENT, "0.0000000000000000001")
        with pytest.raises(InvalidInput):
            await engine.invoke(identity, RECIPIENT, "0xnothex")
        with pytest.raises(InvalidInput):
            await engine.deploy(identity, b"")

        assert mock_node.total_calls == calls_before

    @pytest.mark.asyncio
    async def test_network_failure_propagates(self, make_engine, mock_node, identity):
        """Test that a transport failure is surfaced without retry."""
        mock_node.failures["eth_sendRawTransaction"] = NetworkError("connection refused")
        engine = await make_engine()

        with pytest.raises(NetworkError):
            await engine.submit(identity, RECIPIENT, 1)

        assert mock_node.calls["eth_sendRawTransaction"] == 1

    @pytest.mark.asyncio
    async def test_nonce_rejection_resets_local_mark(self, make_engine, mock_node, identity):
        """Test that a nonce-class rejection re-derives the next nonce from the node."""
        engine = await make_engine()
        first = await engine.submit(identity, RECIPIENT, 1)
        assert first.nonce == 0

        # First transaction dropped from the pool
        mock_node.pending_counts[identity.address.lower()] = 0
        mock_node.pool.clear()
        mock_node.failures["eth_sendRawTransaction"] = RejectedTransaction(
            "replacement transaction underpriced",
            RejectionReason.REPLACEMENT_UNDERPRICED,
            code=-32000,
        )

        with pytest.raises(RejectedTransaction):
            await engine.submit(identity, RECIPIENT, 1)
        assert engine.sequencer.local_mark(identity) is None

        del mock_node.failures["eth_sendRawTransaction"]
        retry = await engine.submit(identity, RECIPIENT, 1)

        assert retry.nonce == 0

    @pytest.mark.asyncio
    async def test_invoke_uses_contract_gas(self, make_engine, mock_node, identity, test_config):
        """Test that a contract call carries its payload and gas ceiling."""
        engine = await make_engine()

        submission = await engine.invoke(identity, RECIPIENT, b"\xa9\x05\x9c\xbb")

        tx = submission.signed.transaction
        assert tx.kind == TransactionKind.CONTRACT_CALL
        assert tx.gas_limit == test_config.contract_gas_limit
        assert tx.data == b"\xa9\x05\x9c\xbb"

    @pytest.mark.asyncio
    async def test_deploy(self, make_engine, mock_node, identity):
        """Test submitting a contract creation."""
        engine = await make_engine()

        submission = await engine.deploy(identity, "0x6080604052")

        assert submission.signed.transaction.kind == TransactionKind.DEPLOYMENT
        assert TransactionSigner().decode(mock_node.sent[0]).to_address is None

    @pytest.mark.asyncio
    async def test_concurrent_submissions_get_distinct_nonces(self, make_engine, mock_node, identity):
        """Test that concurrent submits for one identity are serialized."""
        engine = await make_engine()

        submissions = await asyncio.gather(*(
            engine.submit(identity, RECIPIENT, value) for value in range(1, 6)
        ))

        assert sorted(s.nonce for s in submissions) == [0, 1, 2, 3, 4]
        assert len(mock_node.sent) == 5

    @pytest.mark.asyncio
    async def test_gas_price_multiplier(self, make_engine, mock_node, identity):
        """Test that the configured multiplier reaches the signed transaction."""
        engine = await make_engine(gas_price_multiplier=1.25)

        submission = await engine.submit(identity, RECIPIENT, 1)

        assert submission.gas_price == 25 * GWEI


# ============================================================================
# Test Confirmation Flow
# ============================================================================

class TestConfirmationFlow:
    """Tests for waiting through the engine."""

    @pytest.mark.asyncio
    async def test_submit_and_wait(self, make_engine, mock_node, identity, clock):
        """Test the combined flow to a SUCCESS result."""
        engine = await make_engine()
        original_send = mock_node.send_raw_transaction

        async def send_and_include(raw: bytes) -> str:
            tx_hash = await original_send(raw)
            mock_node.schedule_receipt(tx_hash, at_time=clock.now + 4)
            return tx_hash

        mock_node.send_raw_transaction = send_and_include

        result = await engine.submit_and_wait(identity, RECIPIENT, 10 ** 15)

        assert result.status == ConfirmationStatus.SUCCESS
        assert result.elapsed_seconds == pytest.approx(4.0)

    @pytest.mark.asyncio
    async def test_callbacks(self, make_engine, mock_node, identity):
        """Test submission and confirmation callbacks."""
        engine = await make_engine()
        submitted = []
        confirmed = []
        engine.on_submitted(submitted.append)
        engine.on_confirmed(confirmed.append)

        submission = await engine.submit(identity, RECIPIENT, 1)
        mock_node.schedule_receipt(submission.tx_hash)
        result = await engine.wait(submission.tx_hash)

        assert submitted == [submission]
        assert confirmed == [result]

    @pytest.mark.asyncio
    async def test_cancelled_wait_skips_confirmed_callback(self, make_engine, identity):
        """Test that a cancelled wait is not reported as an outcome."""
        engine = await make_engine()
        confirmed = []
        engine.on_confirmed(confirmed.append)
        cancel = asyncio.Event()
        cancel.set()

        result = await engine.wait("0x" + "00" * 32, cancel_event=cancel)

        assert result.status == ConfirmationStatus.CANCELLED
        assert confirmed == []


# ============================================================================
# Test Queries
# ============================================================================

class TestQueries:
    """Tests for account and fee queries."""

    @pytest.mark.asyncio
    async def test_get_balance(self, make_engine, mock_node):
        """Test reading a balance."""
        mock_node.balances[RECIPIENT] = 123
        engine = await make_engine()

        assert await engine.get_balance(RECIPIENT) == 123

    @pytest.mark.asyncio
    async def test_get_nonce(self, make_engine, mock_node):
        """Test reading the pending count."""
        mock_node.pending_counts[TEST_ADDRESS.lower()] = 9
        engine = await make_engine()

        assert await engine.get_nonce(TEST_ADDRESS) == 9

    @pytest.mark.asyncio
    async def test_get_fee(self, make_engine):
        """Test reading the fee that would be used."""
        engine = await make_engine()

        assert await engine.get_fee() == 20 * GWEI

    @pytest.mark.asyncio
    async def test_balance_rejects_bad_address(self, make_engine, mock_node):
        """Test address validation on queries."""
        engine = await make_engine()

        with pytest.raises(InvalidInput):
            await engine.get_balance("nope")

        assert mock_node.calls["eth_getBalance"] == 0
