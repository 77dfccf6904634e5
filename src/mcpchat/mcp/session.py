"""ClientSession — request/response correlation over a :class:`Transport`.

Responses arrive on the transport's inbound stream in any order.  A
background listener task matches each one to its waiting caller by
JSON-RPC ``id``, so callers get a plain ``await`` contract and any number
of calls may be outstanding at once.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from mcpchat.errors import (
    MCPChatError,
    ProtocolError,
    SessionClosedError,
    ToolInvocationError,
    TransportError,
)
from mcpchat.mcp.models import JsonRpcRequest, JsonRpcResponse, ToolDescriptor, ToolResult
from mcpchat.mcp.transport import Transport

logger = logging.getLogger(__name__)


@dataclass
class PendingCall:
    """An outstanding request waiting for its response."""

    method: str
    future: asyncio.Future[JsonRpcResponse]


class ClientSession:
    """Async context manager wrapping a transport in JSON-RPC call semantics.

    Usage::

        async with ClientSession(StreamableHttpTransport(url)) as session:
            tools = await session.list_tools()
            result = await session.call_tool("list_tables", {})
    """

    def __init__(self, transport: Transport, *, initialize_timeout: float = 10.0) -> None:
        self._transport = transport
        self._initialize_timeout = initialize_timeout
        self._next_id = 1
        self._pending: dict[int | str, PendingCall] = {}
        self._listener: asyncio.Task[None] | None = None
        self._failure: TransportError | None = None
        self._closed = False
        self._tools: list[ToolDescriptor] = []

    async def __aenter__(self) -> ClientSession:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    @property
    def tools(self) -> list[ToolDescriptor]:
        """The catalog from the most recent :meth:`list_tools`."""
        return list(self._tools)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def connect(self) -> None:
        """Connect the transport and attempt the handshake."""
        try:
            await self._transport.connect()
        except TransportError:
            raise
        except Exception as exc:
            raise TransportError(str(exc)) from exc
        await self.initialize()

    async def initialize(self) -> None:
        """Send ``initialize``; servers that don't implement it are tolerated."""
        self._ensure_listener()
        try:
            response = await asyncio.wait_for(
                self._call("initialize"), timeout=self._initialize_timeout
            )
        except (MCPChatError, TimeoutError) as exc:
            logger.debug("initialize skipped: %r", exc)
            return
        if response.error is not None:
            logger.debug("initialize rejected: %s", response.error.message)

    async def list_tools(self) -> list[ToolDescriptor]:
        """Fetch the server's tool catalog."""
        response = await self._call("list_tools")
        if response.error is not None:
            raise ProtocolError(f"list_tools failed: {response.error.message}")
        if not isinstance(response.result, dict):
            raise ProtocolError("list_tools returned no result object")

        raw_tools = response.result.get("tools", [])
        try:
            tools = [ToolDescriptor.model_validate(raw) for raw in raw_tools]
        except (ValidationError, TypeError) as exc:
            raise ProtocolError(f"list_tools returned a malformed catalog: {exc}") from exc
        self._tools = tools
        return list(tools)

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> ToolResult:
        """Invoke a remote tool and return its result payload."""
        response = await self._call("call_tool", {"name": name, "arguments": arguments or {}})
        if response.error is not None:
            raise ToolInvocationError(name, response.error.message)
        try:
            return ToolResult.model_validate(response.result or {})
        except ValidationError as exc:
            raise ProtocolError(f"call_tool {name} returned a malformed result: {exc}") from exc

    async def close(self) -> None:
        """Stop listening, close the transport, and fail every outstanding call."""
        if self._closed:
            return
        self._closed = True

        if self._listener is not None and not self._listener.done():
            self._listener.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listener
        try:
            await self._transport.close()
        finally:
            self._fail_pending(None)

    async def _call(self, method: str, params: dict[str, Any] | None = None) -> JsonRpcResponse:
        """Send a request and wait for the response with the same id."""
        if self._closed:
            raise SessionClosedError(method)
        self._ensure_listener()
        if self._listener is not None and self._listener.done():
            if self._failure is not None:
                raise TransportError(str(self._failure)) from self._failure
            raise SessionClosedError(method)

        request_id = self._next_id
        self._next_id += 1
        future: asyncio.Future[JsonRpcResponse] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = PendingCall(method=method, future=future)

        request = JsonRpcRequest(id=request_id, method=method, params=params or {})
        try:
            await self._transport.send(request.model_dump())
            return await future
        finally:
            self._pending.pop(request_id, None)

    def _ensure_listener(self) -> None:
        if self._listener is None:
            self._listener = asyncio.create_task(self._listen(), name="mcpchat-listener")

    async def _listen(self) -> None:
        """Pump the inbound stream, resolving pending calls by id."""
        try:
            async for message in self._transport.messages():
                self._dispatch(message)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Inbound stream failed: %s", exc)
            error = exc if isinstance(exc, TransportError) else TransportError(str(exc))
            self._failure = error
            self._fail_pending(error)
            return
        logger.debug("Inbound stream ended")
        self._fail_pending(None)

    def _dispatch(self, message: dict[str, Any]) -> None:
        request_id = message.get("id")
        call = None
        if isinstance(request_id, (int, str)) and not isinstance(request_id, bool):
            call = self._pending.pop(request_id, None)
        if call is None:
            logger.debug("Dropping message with unknown id: %r", request_id)
            return
        if call.future.done():
            return
        try:
            response = JsonRpcResponse.model_validate(message)
        except ValidationError as exc:
            call.future.set_exception(
                ProtocolError(f"Malformed response to {call.method}: {exc}")
            )
            return
        call.future.set_result(response)

    def _fail_pending(self, error: Exception | None) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for call in pending:
            if not call.future.done():
                call.future.set_exception(error or SessionClosedError(call.method))
