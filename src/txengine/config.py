"""
Configuration management for the transaction engine.

Supports configuration via environment variables and .env files. The
settings object is read once at construction and then passed explicitly
to every component that needs it.
"""

from enum import Enum
from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class NetworkType(str, Enum):
    """EVM networks with well-known chain ids."""
    MAINNET = "mainnet"
    SEPOLIA = "sepolia"
    HOLESKY = "holesky"
    LOCAL = "local"


class NodeProvider(str, Enum):
    """Supported transports for JSON-RPC access."""
    HTTP = "http"
    WEBSOCKET = "websocket"


# Base units per whole coin (wei per ether)
BASE_UNIT_SCALE = 10 ** 18

# Protocol-defined gas for a plain value transfer
TRANSFER_GAS_LIMIT = 21_000


class EngineConfig(BaseSettings):
    """
    Configuration settings for the transaction engine.

    All settings can be configured via environment variables with the TXENGINE_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="TXENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Network settings
    network: NetworkType = Field(
        default=NetworkType.SEPOLIA,
        description="EVM network to connect to"
    )
    chain_id: Optional[int] = Field(
        default=None,
        ge=1,
        description="Explicit chain id (overrides the network default)"
    )

    # Node provider settings
    node_provider: NodeProvider = Field(
        default=NodeProvider.HTTP,
        description="Transport used for JSON-RPC access"
    )
    rpc_url: Optional[str] = Field(
        default=None,
        description="HTTP JSON-RPC endpoint URL"
    )
    ws_url: Optional[str] = Field(
        default=None,
        description="WebSocket JSON-RPC endpoint URL"
    )
    infura_api_key: Optional[str] = Field(
        default=None,
        description="Infura project key used to derive endpoint URLs"
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single JSON-RPC request"
    )

    # Identity settings
    private_key: Optional[SecretStr] = Field(
        default=None,
        description="Hex-encoded secp256k1 private key of the sending account"
    )

    # Confirmation tracking
    poll_interval_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Delay between receipt polls"
    )
    confirmation_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Maximum time to wait for a receipt"
    )
    progress_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Cadence of advisory progress notifications"
    )
    confirmations: int = Field(
        default=1,
        ge=1,
        description="Number of blocks (including the inclusion block) to wait for"
    )
    max_poll_failures: int = Field(
        default=3,
        ge=1,
        description="Consecutive failed polls tolerated before giving up"
    )

    # Nonce sequencing
    nonce_mark_ttl_seconds: float = Field(
        default=60.0,
        gt=0,
        description="How long the local nonce mark may run ahead of the node's pending count"
    )

    # Resource limits and fees
    transfer_gas_limit: int = Field(
        default=TRANSFER_GAS_LIMIT,
        ge=TRANSFER_GAS_LIMIT,
        description="Gas limit for plain value transfers"
    )
    contract_gas_limit: int = Field(
        default=300_000,
        ge=TRANSFER_GAS_LIMIT,
        description="Gas ceiling for contract invocations"
    )
    deploy_gas_limit: int = Field(
        default=3_000_000,
        ge=TRANSFER_GAS_LIMIT,
        description="Gas ceiling for contract deployments"
    )
    gas_price_multiplier: float = Field(
        default=1.0,
        ge=1.0,
        description="Multiplier applied to the node's suggested gas price"
    )

    # Event queries
    log_chunk_size: int = Field(
        default=2000,
        ge=1,
        description="Block range covered by a single eth_getLogs call"
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format"
    )

    @property
    def rpc_endpoint(self) -> str:
        """Get the HTTP endpoint, derived from the network when not set explicitly."""
        if self.rpc_url:
            return self.rpc_url

        if self.network == NetworkType.LOCAL:
            return "http://127.0.0.1:8545"

        if not self.infura_api_key:
            raise ValueError("Either rpc_url or infura_api_key must be configured")

        return f"https://{self.network.value}.infura.io/v3/{self.infura_api_key}"

    @property
    def websocket_endpoint(self) -> str:
        """Get the WebSocket endpoint, derived from the network when not set explicitly."""
        if self.ws_url:
            return self.ws_url

        if self.network == NetworkType.LOCAL:
            return "ws://127.0.0.1:8546"

        if not self.infura_api_key:
            raise ValueError("Either ws_url or infura_api_key must be configured")

        return f"wss://{self.network.value}.infura.io/ws/v3/{self.infura_api_key}"
