"""
WebSocket JSON-RPC adapter for node integration.

Provides ledger access via JSON-RPC over a persistent WebSocket. Requests
are multiplexed on one connection and matched to responses by id.
"""

import asyncio
import json
from typing import Dict, Optional

import structlog
import websockets
from websockets.asyncio.client import ClientConnection

from txengine.config import EngineConfig
from txengine.errors import NetworkError
from txengine.node.jsonrpc import JsonRpcNode

logger = structlog.get_logger(__name__)


class WebSocketRpcAdapter(JsonRpcNode):
    """
    WebSocket JSON-RPC adapter.

    Implements the NodeInterface using JSON-RPC over WebSocket.
    """

    def __init__(self, config: EngineConfig):
        """
        Initialize the WebSocket adapter.

        Args:
            config: Engine configuration
        """
        super().__init__()
        self.config = config
        self.url = config.websocket_endpoint
        self._ws: Optional[ClientConnection] = None
        self._pending_requests: Dict[int, asyncio.Future] = {}
        self._receive_task: Optional[asyncio.Task] = None
        self._connect_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Establish WebSocket connection to the node."""
        async with self._connect_lock:
            if self._ws is not None:
                return

            try:
                self._ws = await websockets.connect(
                    self.url,
                    ping_interval=30,
                    ping_timeout=10,
                    open_timeout=self.config.request_timeout_seconds,
                )
            except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as e:
                raise NetworkError(f"Failed to connect to node websocket: {e}")

            # Start receive loop
            self._receive_task = asyncio.create_task(self._receive_loop())

            logger.info("ws_node_connected")

    async def disconnect(self) -> None:
        """Close WebSocket connection."""
        ws, self._ws = self._ws, None

        if self._receive_task:
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            self._receive_task = None

        if ws:
            await ws.close()
            logger.info("ws_node_disconnected")

        self._fail_pending(NetworkError("Connection closed"))

    async def _receive_loop(self) -> None:
        """Background task to receive WebSocket messages."""
        try:
            async for message in self._ws:
                try:
                    data = json.loads(message)
                except ValueError:
                    logger.warning("ws_invalid_message", size=len(message))
                    continue

                # Match response to request; subscription notifications carry no id
                request_id = data.get("id") if isinstance(data, dict) else None
                future = self._pending_requests.pop(request_id, None)
                if future is not None and not future.done():
                    future.set_result(data)

        except websockets.ConnectionClosed as e:
            logger.warning("ws_connection_closed", code=getattr(e.rcvd, "code", None))
        finally:
            self._ws = None
            self._fail_pending(NetworkError("Node websocket connection lost"))

    def _fail_pending(self, error: NetworkError) -> None:
        pending = list(self._pending_requests.values())
        self._pending_requests.clear()
        for future in pending:
            if not future.done():
                future.set_exception(error)

    async def _send(self, payload: dict) -> dict:
        """Send a JSON-RPC request and await response."""
        if not self._ws:
            await self.connect()

        request_id = payload["id"]

        # Create future for response
        future = asyncio.get_running_loop().create_future()
        self._pending_requests[request_id] = future

        try:
            await self._ws.send(json.dumps(payload))
            return await asyncio.wait_for(future, timeout=self.config.request_timeout_seconds)
        except asyncio.TimeoutError:
            raise NetworkError(f"Node request timeout: {payload['method']}")
        except websockets.ConnectionClosed as e:
            raise NetworkError(f"Node websocket closed during {payload['method']}: {e}")
        finally:
            self._pending_requests.pop(request_id, None)
