"""QueryOrchestrator — turns one user query into one final answer.

Each round asks the model for a response; any tool invocations in it are
run against the tool server and their results are appended to the
conversation for the next round.  The loop ends when a round requests no
tools, or after :data:`MAX_ROUNDS` rounds.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING

from mcpchat.errors import MCPChatError, ToolInvocationError
from mcpchat.llm.models import Conversation, TextBlock, ToolInvocation
from mcpchat.utils.telemetry import (
    ATTR_ROUND,
    ATTR_ROUNDS,
    ATTR_TOOL_ERROR,
    ATTR_TOOL_NAME,
    get_tracer,
)

if TYPE_CHECKING:
    from mcpchat.llm.gateway import ModelGateway
    from mcpchat.mcp.session import ClientSession

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

MAX_ROUNDS = 5
PREVIEW_LIMIT = 50

_WHITESPACE = re.compile(r"\s+")


def preview(text: str, limit: int = PREVIEW_LIMIT) -> str:
    """Collapse whitespace and truncate to *limit* characters plus ``...``."""
    single_line = _WHITESPACE.sub(" ", text).strip()
    if len(single_line) > limit:
        return single_line[:limit] + "..."
    return single_line


class QueryOrchestrator:
    """Runs the model/tool loop for one query at a time.

    Usage::

        orchestrator = QueryOrchestrator(session, gateway, max_tokens=1000)
        answer = await orchestrator.run("Which tables are in the model?")
    """

    def __init__(
        self,
        session: ClientSession,
        gateway: ModelGateway,
        *,
        model: str | None = None,
        max_tokens: int | None = None,
        max_rounds: int = MAX_ROUNDS,
    ) -> None:
        self.session = session
        self.gateway = gateway
        self.model = model
        self.max_tokens = max_tokens
        self.max_rounds = max_rounds
        self.last_attempted: set[str] = set()
        self.last_rounds = 0

    async def refresh_tools(self) -> None:
        """Re-fetch the tool catalog before a query."""
        await self.session.list_tools()

    async def run(self, query: str) -> str:
        """Answer *query*, invoking tools as the model requests.

        Model errors propagate; tool errors are reported in the output and
        fed back to the model.
        """
        conversation = Conversation.start(query)
        attempted: set[str] = set()
        self.last_attempted = attempted
        output: list[str] = []

        with _tracer.start_as_current_span("query.run") as span:
            rounds = 0
            while rounds < self.max_rounds:
                rounds += 1
                self.last_rounds = rounds
                response = await self.gateway.generate(
                    conversation,
                    model=self.model,
                    max_tokens=self.max_tokens,
                    tools=self.session.tools,
                    attempted=attempted,
                )

                invocations = response.tool_invocations
                logger.debug(
                    "Round %d: %d chars of text, %d tool call(s)",
                    rounds,
                    len(response.text),
                    len(invocations),
                )
                for block in response.blocks:
                    if isinstance(block, TextBlock):
                        output.append(block.text)
                    elif isinstance(block, ToolInvocation):
                        await self._invoke(block, rounds, conversation, output)

                if not invocations:
                    break
            else:
                logger.info("Stopped after %d rounds without a final answer", rounds)

            span.set_attribute(ATTR_ROUNDS, rounds)

        return "\n".join(output)

    async def _invoke(
        self,
        call: ToolInvocation,
        round_number: int,
        conversation: Conversation,
        output: list[str],
    ) -> None:
        output.append(f"[Calling tool {call.name} args={json.dumps(call.arguments)}]")
        with _tracer.start_as_current_span("tool.call") as span:
            span.set_attribute(ATTR_TOOL_NAME, call.name)
            span.set_attribute(ATTR_ROUND, round_number)
            try:
                result = await self.session.call_tool(call.name, call.arguments)
            except MCPChatError as exc:
                detail = exc.detail if isinstance(exc, ToolInvocationError) else str(exc)
                logger.warning("Tool %s failed: %s", call.name, detail)
                span.set_attribute(ATTR_TOOL_ERROR, detail)
                output.append(f"[Tool {call.name} failed: {detail}]")
                conversation.add_user(f"Tool {call.name} error: {detail}")
                return
            if result.is_error:
                logger.warning("Tool %s reported an error result", call.name)
                span.set_attribute(ATTR_TOOL_ERROR, preview(result.text))

        text = result.text
        conversation.add_user(text)
        output.append(f"[Tool {call.name} result: {preview(text)}]")
