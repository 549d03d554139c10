"""
Node Integration Layer.

Provides abstracted access to EVM ledger state and transaction submission.
Supports multiple transports (HTTP and WebSocket JSON-RPC).
"""

from txengine.config import EngineConfig, NodeProvider
from txengine.node.interface import NodeInterface
from txengine.node.jsonrpc import JsonRpcNode
from txengine.node.http import HttpRpcAdapter
from txengine.node.websocket import WebSocketRpcAdapter


def create_node(config: EngineConfig) -> NodeInterface:
    """Create the adapter selected by the configuration."""
    if config.node_provider == NodeProvider.WEBSOCKET:
        return WebSocketRpcAdapter(config)
    return HttpRpcAdapter(config)


__all__ = [
    "NodeInterface",
    "JsonRpcNode",
    "HttpRpcAdapter",
    "WebSocketRpcAdapter",
    "create_node",
]
