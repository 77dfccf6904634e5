"""Shared fixtures: an in-memory transport and LiteLLM response mocks."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any
from unittest.mock import MagicMock

import pytest

from mcpchat.config import ChatSettings

Handler = Callable[[dict[str, Any]], Any]


class FakeTransport:
    """Queue-backed transport double.

    Messages pushed with :meth:`push` come out of :meth:`messages` in order;
    :meth:`end` terminates the stream.  When ``handlers`` maps a method name
    to a callable, every request for that method is answered automatically:
    the callable returns a result, or raises to produce an error response.
    """

    def __init__(self, handlers: dict[str, Handler] | None = None) -> None:
        self.handlers = handlers or {}
        self.sent: list[dict[str, Any]] = []
        self.connected = False
        self.closed = False
        self._inbox: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()

    async def connect(self) -> None:
        self.connected = True

    async def send(self, data: dict[str, Any]) -> None:
        self.sent.append(data)
        handler = self.handlers.get(data["method"])
        if handler is None:
            return
        try:
            result = handler(data.get("params", {}))
        except Exception as exc:
            self.push({"jsonrpc": "2.0", "id": data["id"], "error": {"code": -32000, "message": str(exc)}})
        else:
            self.push({"jsonrpc": "2.0", "id": data["id"], "result": result})

    async def messages(self) -> AsyncIterator[dict[str, Any]]:
        while True:
            message = await self._inbox.get()
            if message is None:
                return
            yield message

    async def close(self) -> None:
        self.closed = True

    def push(self, message: dict[str, Any]) -> None:
        self._inbox.put_nowait(message)

    def end(self) -> None:
        self._inbox.put_nowait(None)

    def sent_methods(self) -> list[str]:
        return [m["method"] for m in self.sent]


CATALOG = {
    "tools": [
        {
            "name": "list_tables",
            "description": "List tables in the loaded model",
            "inputSchema": {"type": "object", "properties": {}},
        },
        {
            "name": "get_table_rows",
            "description": "Read rows from a table",
            "inputSchema": {
                "type": "object",
                "properties": {"table": {"type": "string"}},
                "required": ["table"],
            },
        },
    ]
}


@pytest.fixture()
def server() -> FakeTransport:
    """A transport that answers ``initialize``, ``list_tools`` and ``call_tool``."""

    def call_tool(params: dict[str, Any]) -> dict[str, Any]:
        if params["name"] == "broken":
            raise RuntimeError("table does not exist")
        return {"content": [{"type": "text", "text": f"{params['name']} ok"}]}

    return FakeTransport(
        {
            "initialize": lambda _params: {"capabilities": {}},
            "list_tools": lambda _params: CATALOG,
            "call_tool": call_tool,
        }
    )


@pytest.fixture()
def settings() -> ChatSettings:
    return ChatSettings(api_key="test-key", model="model-b", fallback_models=["model-c"])


def make_litellm_response(
    content: str = "",
    tool_calls: list[tuple[str, str, str]] | None = None,
    model: str = "anthropic/model-b",
) -> MagicMock:
    """Create a ``MagicMock`` shaped like a LiteLLM completion response.

    ``tool_calls`` entries are ``(id, name, json_arguments)`` tuples.
    """
    calls = []
    for call_id, name, arguments in tool_calls or []:
        tc = MagicMock()
        tc.id = call_id
        tc.function.name = name
        tc.function.arguments = arguments
        calls.append(tc)

    message = MagicMock()
    message.content = content or None
    message.tool_calls = calls or None

    choice = MagicMock()
    choice.message = message
    choice.finish_reason = "tool_calls" if calls else "stop"

    usage = MagicMock()
    usage.prompt_tokens = 10
    usage.completion_tokens = 20

    response = MagicMock()
    response.choices = [choice]
    response.usage = usage
    response.model = model
    return response


@pytest.fixture()
def litellm_response() -> Callable[..., MagicMock]:
    return make_litellm_response
