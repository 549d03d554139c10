"""
Command-line interface for the transaction engine.

Provides non-interactive commands for transfers, confirmation waits and
account queries.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

import structlog

from txengine import __version__
from txengine.config import EngineConfig, NetworkType, NodeProvider
from txengine.core.engine import TransactionEngine
from txengine.core.identity import SigningIdentity
from txengine.core.units import from_base_units
from txengine.errors import TxEngineError


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_format
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
        stream=sys.stderr,
    )


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--network",
        choices=[n.value for n in NetworkType],
        help="Network (default: from TXENGINE_NETWORK or sepolia)",
    )
    parser.add_argument(
        "--provider",
        choices=[p.value for p in NodeProvider],
        help="Node transport (default: http)",
    )
    parser.add_argument(
        "--rpc-url",
        help="JSON-RPC endpoint (overrides the network default)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs in JSON format",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="txengine",
        description="Submit and track transactions on EVM networks",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Transfer command
    transfer_parser = subparsers.add_parser(
        "transfer",
        help="Transfer value from the configured key (TXENGINE_PRIVATE_KEY)",
    )
    transfer_parser.add_argument("--to", required=True, help="Recipient address")
    transfer_parser.add_argument(
        "--amount",
        required=True,
        help="Amount in ether, e.g. 0.01",
    )
    transfer_parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Return after broadcast without waiting for a receipt",
    )
    transfer_parser.add_argument(
        "--timeout",
        type=float,
        help="Confirmation timeout in seconds",
    )
    _add_common_arguments(transfer_parser)

    # Wait command
    wait_parser = subparsers.add_parser("wait", help="Wait for a transaction receipt")
    wait_parser.add_argument("--tx-hash", required=True, help="Transaction hash")
    wait_parser.add_argument("--timeout", type=float, help="Timeout in seconds")
    wait_parser.add_argument(
        "--confirmations",
        type=int,
        help="Blocks to wait for, including the inclusion block",
    )
    _add_common_arguments(wait_parser)

    # Nonce command
    nonce_parser = subparsers.add_parser("nonce", help="Show the next nonce")
    nonce_parser.add_argument(
        "--address",
        help="Account address (default: the configured key's address)",
    )
    _add_common_arguments(nonce_parser)

    # Fee command
    fee_parser = subparsers.add_parser("fee", help="Show the suggested gas price")
    _add_common_arguments(fee_parser)

    # Balance command
    balance_parser = subparsers.add_parser("balance", help="Show an account balance")
    balance_parser.add_argument(
        "--address",
        help="Account address (default: the configured key's address)",
    )
    _add_common_arguments(balance_parser)

    return parser


def build_config(args: argparse.Namespace) -> EngineConfig:
    """Create configuration from environment plus command-line overrides."""
    overrides = {
        "log_level": args.log_level,
        "log_json": args.log_json,
    }
    if args.network:
        overrides["network"] = NetworkType(args.network)
    if args.provider:
        overrides["node_provider"] = NodeProvider(args.provider)
    if args.rpc_url:
        overrides["rpc_url"] = args.rpc_url
    return EngineConfig(**overrides)


def _resolve_address(config: EngineConfig, address: Optional[str]) -> str:
    if address:
        return address
    return SigningIdentity.from_config(config).address


async def run_transfer(engine: TransactionEngine, args: argparse.Namespace) -> int:
    """Transfer value and optionally wait for the outcome."""
    identity = SigningIdentity.from_config(engine.config)

    submission = await engine.transfer(identity, args.to, args.amount)
    print(f"Submitted: {submission.tx_hash}")
    print(f"  From:  {identity.address}")
    print(f"  Nonce: {submission.nonce}")
    print(f"  Fee:   {submission.gas_price} wei/gas")

    if args.no_wait:
        return 0

    return await run_wait(engine, argparse.Namespace(
        tx_hash=submission.tx_hash,
        timeout=args.timeout,
        confirmations=None,
    ))


async def run_wait(engine: TransactionEngine, args: argparse.Namespace) -> int:
    """Wait for a transaction and print the outcome."""

    def progress(elapsed: float, polls: int) -> None:
        print(f"  ...waiting {elapsed:.0f}s ({polls} polls)", file=sys.stderr)

    result = await engine.wait(
        args.tx_hash,
        timeout=args.timeout,
        on_progress=progress,
        confirmations=args.confirmations,
    )

    print(f"Status: {result.status.value}")
    if result.receipt:
        print(f"  Block:    {result.receipt.block_number}")
        print(f"  Gas used: {result.receipt.gas_used}")
        if result.receipt.contract_address:
            print(f"  Contract: {result.receipt.contract_address}")
    if result.detail:
        print(f"  Detail:   {result.detail}")

    return 0 if result.is_success else 1


async def run_nonce(engine: TransactionEngine, args: argparse.Namespace) -> int:
    address = _resolve_address(engine.config, args.address)
    print(await engine.get_nonce(address))
    return 0


async def run_fee(engine: TransactionEngine, args: argparse.Namespace) -> int:
    fee = await engine.get_fee()
    print(f"{fee} wei/gas ({from_base_units(fee, digits=9)} gwei)")
    return 0


async def run_balance(engine: TransactionEngine, args: argparse.Namespace) -> int:
    address = _resolve_address(engine.config, args.address)
    balance = await engine.get_balance(address)
    print(f"{address}: {from_base_units(balance)} ETH ({balance} wei)")
    return 0


COMMANDS = {
    "transfer": run_transfer,
    "wait": run_wait,
    "nonce": run_nonce,
    "fee": run_fee,
    "balance": run_balance,
}


async def run_command(args: argparse.Namespace) -> int:
    """Run one command against a freshly initialized engine."""
    config = build_config(args)
    engine = TransactionEngine(config)

    try:
        await engine.initialize()
        return await COMMANDS[args.command](engine, args)
    finally:
        await engine.shutdown()


def main() -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.log_level, args.log_json)

    try:
        exit_code = asyncio.run(run_command(args))
    except (TxEngineError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
