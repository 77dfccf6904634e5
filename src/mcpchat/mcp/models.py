"""Wire models — JSON-RPC 2.0 envelopes and tool server payloads.

Implements the message format used by the tool server for catalog
discovery (``list_tools``) and execution (``call_tool``).
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# JSON-RPC 2.0 envelope
# ---------------------------------------------------------------------------


class JsonRpcRequest(BaseModel):
    """A JSON-RPC 2.0 request message."""

    jsonrpc: str = "2.0"
    id: int | str
    method: str
    params: dict[str, Any] = {}


class JsonRpcError(BaseModel):
    """A JSON-RPC 2.0 error object."""

    code: int = 0
    message: str = "RPC Error"
    data: Any = None


class JsonRpcResponse(BaseModel):
    """A JSON-RPC 2.0 response message."""

    jsonrpc: str = "2.0"
    id: int | str | None = None
    result: Any = None
    error: JsonRpcError | None = None


# ---------------------------------------------------------------------------
# Tool server payloads
# ---------------------------------------------------------------------------


class ToolDescriptor(BaseModel):
    """A tool as advertised by ``list_tools``."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict, alias="inputSchema")

    def to_function_schema(self) -> dict[str, Any]:
        """Convert to an OpenAI-compatible function schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema or {"type": "object", "properties": {}},
            },
        }


class ToolContent(BaseModel):
    """One content item of a ``call_tool`` result. Unknown fields are kept."""

    model_config = ConfigDict(extra="allow")

    type: str | None = None
    text: str | None = None


class ToolResult(BaseModel):
    """The payload returned by ``call_tool``."""

    model_config = ConfigDict(populate_by_name=True)

    content: list[ToolContent] = []
    is_error: bool = Field(default=False, alias="isError")

    def dump_content(self) -> list[dict[str, Any]]:
        """Return content items as plain dicts, dropping unset fields."""
        return [item.model_dump(exclude_none=True) for item in self.content]

    @property
    def text(self) -> str:
        """The content serialized as a single JSON string."""
        return json.dumps(self.dump_content(), separators=(",", ":"))
