"""
HTTP JSON-RPC adapter for node integration.

Provides ledger access via a JSON-RPC endpoint over HTTP(S), such as
Infura, Alchemy or a local geth/anvil node.
"""

from typing import Optional

import httpx
import structlog

from txengine.config import EngineConfig
from txengine.errors import NetworkError
from txengine.node.jsonrpc import JsonRpcNode

logger = structlog.get_logger(__name__)


class HttpRpcAdapter(JsonRpcNode):
    """
    HTTP JSON-RPC adapter.

    Implements the NodeInterface by POSTing JSON-RPC envelopes with httpx.
    """

    def __init__(
        self,
        config: EngineConfig,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the HTTP adapter.

        Args:
            config: Engine configuration
            client: Pre-built HTTP client (the adapter creates one if not provided)
        """
        super().__init__()
        self.config = config
        self.url = config.rpc_endpoint
        self._client = client
        self._owns_client = client is None

    @property
    def headers(self) -> dict:
        return {"Content-Type": "application/json"}

    async def connect(self) -> None:
        """Establish connection (create HTTP client) and verify the endpoint answers."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self.headers,
                timeout=self.config.request_timeout_seconds,
            )
            self._owns_client = True

        chain_id = await self.get_chain_id()
        logger.info("http_node_connected", url=self._redacted_url, chain_id=chain_id)

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.info("http_node_disconnected")

    @property
    def _redacted_url(self) -> str:
        # Infura-style URLs carry the project key in the path
        if self.config.infura_api_key and self.config.infura_api_key in self.url:
            return self.url.replace(self.config.infura_api_key, "***")
        return self.url

    async def _send(self, payload: dict) -> dict:
        if self._client is None:
            await self.connect()

        try:
            response = await self._client.post(self.url, json=payload)
        except httpx.RequestError as e:
            logger.error("http_request_error", method=payload["method"], error=str(e))
            raise NetworkError(f"Request to node failed: {e}")

        if response.status_code != 200:
            # Some providers pair JSON-RPC error objects with 4xx statuses
            error_envelope = self._error_envelope(response)
            if error_envelope is not None:
                return error_envelope

            logger.error(
                "http_request_failed",
                method=payload["method"],
                status=response.status_code,
                error=response.text[:200],
            )
            raise NetworkError(
                f"Node returned HTTP {response.status_code}: {response.text[:200]}",
                code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            raise NetworkError("Node returned a non-JSON response")

        if not isinstance(data, dict):
            raise NetworkError("Node returned an unexpected response envelope")

        return data

    @staticmethod
    def _error_envelope(response: httpx.Response) -> Optional[dict]:
        try:
            data = response.json()
        except ValueError:
            return None
        if isinstance(data, dict) and data.get("error"):
            return data
        return None
