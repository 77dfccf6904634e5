"""Tool server protocol — JSON-RPC session and transports."""

from mcpchat.mcp.models import (
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    ToolContent,
    ToolDescriptor,
    ToolResult,
)
from mcpchat.mcp.session import ClientSession, PendingCall
from mcpchat.mcp.transport import StdioTransport, StreamableHttpTransport, Transport

__all__ = [
    "ClientSession",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "PendingCall",
    "StdioTransport",
    "StreamableHttpTransport",
    "ToolContent",
    "ToolDescriptor",
    "ToolResult",
    "Transport",
]
