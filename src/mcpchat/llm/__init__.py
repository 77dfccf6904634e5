"""Model backend — conversation types and the fallback-aware gateway."""

from mcpchat.llm.gateway import ModelGateway, latest_model
from mcpchat.llm.models import (
    ContentBlock,
    Conversation,
    ModelResponse,
    TextBlock,
    ToolInvocation,
    Turn,
)

__all__ = [
    "ContentBlock",
    "Conversation",
    "ModelGateway",
    "ModelResponse",
    "TextBlock",
    "ToolInvocation",
    "Turn",
    "latest_model",
]
