"""mcpchat — interactive chat agent backed by a JSON-RPC tool server."""

from __future__ import annotations

__version__ = "0.1.0"
