"""Shared error types for the session, transport, and model layers."""


class MCPChatError(Exception):
    """Base error for all mcpchat failures."""


class ConfigError(MCPChatError):
    """Missing credential or invalid setting at startup."""


class TransportError(MCPChatError):
    """Network-level failure reaching the tool server."""


class ProtocolError(MCPChatError):
    """A response was malformed or carried an error object."""


class ToolInvocationError(ProtocolError):
    """A tool call's response carried an error."""

    def __init__(self, name: str, detail: str = "") -> None:
        self.name = name
        self.detail = detail
        super().__init__(f"Tool {name} failed" + (f": {detail}" if detail else ""))


class SessionClosedError(ProtocolError):
    """The session closed while a call was still waiting for its response."""

    def __init__(self, method: str | None = None) -> None:
        self.method = method
        msg = "Session closed"
        if method:
            msg += f" before {method} received a response"
        super().__init__(msg)


class ModelUnavailableError(MCPChatError):
    """Every candidate model was rejected by the backend as not found."""

    def __init__(self, attempted: list[str]) -> None:
        self.attempted = list(attempted)
        super().__init__("No available model; attempted: " + ", ".join(self.attempted))
