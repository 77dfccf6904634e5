"""Conversation and model-response types.

A :class:`ModelResponse` is a sequence of content blocks, each either a
:class:`TextBlock` or a :class:`ToolInvocation`, discriminated on ``type``.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Conversation — per-query turn history
# ---------------------------------------------------------------------------


class Turn(BaseModel):
    """One role-tagged message in the conversation."""

    role: Literal["user", "assistant"]
    content: str


class Conversation(BaseModel):
    """Ordered turns for a single query."""

    turns: list[Turn] = []

    @classmethod
    def start(cls, query: str) -> Conversation:
        """Create a conversation seeded with the user's query."""
        return cls(turns=[Turn(role="user", content=query)])

    def add_user(self, content: str) -> None:
        self.turns.append(Turn(role="user", content=content))

    def to_messages(self) -> list[dict[str, Any]]:
        """Render as chat messages, merging consecutive same-role turns.

        Anthropic requires strict user/assistant alternation, and tool
        results are appended as user turns right after the query.
        """
        merged: list[dict[str, Any]] = []
        for turn in self.turns:
            if merged and merged[-1]["role"] == turn.role:
                merged[-1]["content"] += "\n\n" + turn.content
            else:
                merged.append({"role": turn.role, "content": turn.content})
        return merged

    def __len__(self) -> int:
        return len(self.turns)


# ---------------------------------------------------------------------------
# Model response blocks
# ---------------------------------------------------------------------------


class TextBlock(BaseModel):
    """Plain text produced by the model."""

    type: Literal["text"] = "text"
    text: str


class ToolInvocation(BaseModel):
    """A request from the model to run a tool."""

    type: Literal["tool_use"] = "tool_use"
    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    name: str
    arguments: dict[str, Any] = {}


ContentBlock = Annotated[TextBlock | ToolInvocation, Field(discriminator="type")]


class ModelResponse(BaseModel):
    """One round's output from the model backend."""

    blocks: list[ContentBlock] = []
    model: str = ""
    usage: dict[str, int] = {}

    @property
    def tool_invocations(self) -> list[ToolInvocation]:
        return [block for block in self.blocks if isinstance(block, ToolInvocation)]

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks."""
        return "".join(block.text for block in self.blocks if isinstance(block, TextBlock))
