"""ModelGateway — async access to the model backend via LiteLLM.

Adds one policy on top of a plain completion call: when the backend rejects
a model id as not found, the next id from the candidate list is tried.  Each
candidate is attempted at most once per query; the caller owns the
``attempted`` set so the bound holds across every round of a query.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import TYPE_CHECKING, Any

import httpx
import litellm

from mcpchat.config import DEFAULT_API_BASE
from mcpchat.errors import ModelUnavailableError
from mcpchat.llm.models import ContentBlock, ModelResponse, TextBlock, ToolInvocation
from mcpchat.utils.telemetry import (
    ATTR_MAX_TOKENS,
    ATTR_MODEL,
    ATTR_MODEL_ATTEMPTED,
    ATTR_TOKENS_COMPLETION,
    ATTR_TOKENS_PROMPT,
    get_tracer,
)

if TYPE_CHECKING:
    from mcpchat.config import ChatSettings
    from mcpchat.llm.models import Conversation
    from mcpchat.mcp.models import ToolDescriptor

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

ANTHROPIC_VERSION = "2023-06-01"
_FAMILY = re.compile(r"sonnet|opus|haiku", re.IGNORECASE)


def latest_model(models: list[str]) -> str | None:
    """Pick the lexicographically latest Claude-family id, else the latest id."""
    if not models:
        return None
    preferred = [m for m in models if _FAMILY.search(m)]
    return max(preferred or models)


class ModelGateway:
    """Generates model responses with candidate-list fallback.

    Usage::

        gateway = ModelGateway(load_settings())
        attempted: set[str] = set()
        response = await gateway.generate(conversation, tools=catalog, attempted=attempted)
    """

    def __init__(self, settings: ChatSettings) -> None:
        self.settings = settings
        self.default_model = settings.model

    def candidates(self, override: str | None = None) -> list[str]:
        """Override first, then the configured default, then the fallback chain."""
        ordered = [override, self.default_model, *self.settings.fallback_models]
        result: list[str] = []
        for model in ordered:
            if model and model not in result:
                result.append(model)
        return result

    async def generate(
        self,
        conversation: Conversation,
        *,
        model: str | None = None,
        max_tokens: int | None = None,
        tools: list[ToolDescriptor] | None = None,
        attempted: set[str] | None = None,
    ) -> ModelResponse:
        """Send the conversation and tool catalog to the first available model.

        Raises:
            ModelUnavailableError: Every candidate was rejected as not found.
        """
        exhausted = attempted if attempted is not None else set()
        candidates = self.candidates(model)
        tokens = max_tokens or self.settings.max_tokens

        with _tracer.start_as_current_span("model.generate") as span:
            span.set_attribute(ATTR_MAX_TOKENS, tokens)
            for candidate in candidates:
                if candidate in exhausted:
                    continue
                span.set_attribute(ATTR_MODEL, candidate)
                try:
                    response = await self._complete(candidate, conversation, tokens, tools)
                except litellm.NotFoundError as exc:
                    logger.warning("Model %s not found, trying next candidate: %s", candidate, exc)
                    exhausted.add(candidate)
                    continue

                span.set_attribute(ATTR_MODEL_ATTEMPTED, sorted(exhausted))
                if response.usage:
                    span.set_attribute(ATTR_TOKENS_PROMPT, response.usage.get("prompt_tokens", 0))
                    span.set_attribute(
                        ATTR_TOKENS_COMPLETION, response.usage.get("completion_tokens", 0)
                    )
                return response

            tried = [c for c in candidates if c in exhausted]
            tried += sorted(exhausted.difference(candidates))
            span.set_attribute(ATTR_MODEL_ATTEMPTED, tried)
            raise ModelUnavailableError(tried)

    async def list_models(self) -> list[str]:
        """Best-effort list of model ids the backend advertises.

        Tries LiteLLM's provider listing first, then ``GET /v1/models``.
        Returns an empty list when both fail.
        """
        try:
            models = await self._list_native()
        except Exception as exc:  # third-party listing raises anything
            logger.info("Native model listing failed: %s", exc)
            models = []
        if models:
            return models

        try:
            return await self._list_http()
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Model listing failed: %s", exc)
            return []

    async def resolve_default_model(self) -> str | None:
        """Fill in the default model from the backend listing when none is configured."""
        if self.default_model:
            return self.default_model
        self.default_model = latest_model(await self.list_models())
        if self.default_model:
            logger.info("Selected latest model: %s", self.default_model)
        return self.default_model

    async def _complete(
        self,
        model: str,
        conversation: Conversation,
        max_tokens: int,
        tools: list[ToolDescriptor] | None,
    ) -> ModelResponse:
        call_kwargs: dict[str, Any] = {
            "model": self._qualify(model),
            "messages": conversation.to_messages(),
            "max_tokens": max_tokens,
            "api_key": self.settings.api_key,
        }
        if self.settings.api_base != DEFAULT_API_BASE:
            call_kwargs["api_base"] = self.settings.api_base
        if tools:
            call_kwargs["tools"] = [tool.to_function_schema() for tool in tools]

        logger.debug("Calling %s with %d turn(s)", model, len(conversation))
        response = await litellm.acompletion(**call_kwargs)  # pyright: ignore[reportUnknownMemberType]
        return self._parse_response(response)

    def _qualify(self, model: str) -> str:
        if "/" in model:
            return model
        return f"{self.settings.provider}/{model}"

    def _parse_response(self, response: Any) -> ModelResponse:
        """Convert a LiteLLM (OpenAI-shaped) response to content blocks."""
        message = response.choices[0].message

        blocks: list[ContentBlock] = []
        if message.content:
            blocks.append(TextBlock(text=message.content))
        for tc in message.tool_calls or []:
            blocks.append(
                ToolInvocation(
                    id=tc.id,
                    name=tc.function.name,
                    arguments=_parse_arguments(tc.function.arguments),
                )
            )

        usage: dict[str, int] = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": int(response.usage.prompt_tokens or 0),
                "completion_tokens": int(response.usage.completion_tokens or 0),
            }
        return ModelResponse(blocks=blocks, model=str(response.model or ""), usage=usage)

    async def _list_native(self) -> list[str]:
        provider = self.settings.provider
        raw = await asyncio.to_thread(
            litellm.get_valid_models,
            check_provider_endpoint=True,
            custom_llm_provider=provider,
            api_key=self.settings.api_key,
            api_base=self.settings.api_base,
        )
        prefix = f"{provider}/"
        return [m.removeprefix(prefix) for m in raw or [] if isinstance(m, str)]

    async def _list_http(self) -> list[str]:
        headers = {"x-api-key": self.settings.api_key, "anthropic-version": ANTHROPIC_VERSION}
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(f"{self.settings.api_base}/v1/models", headers=headers)
            response.raise_for_status()
            data = response.json()
        return [item["id"] for item in data["data"] if isinstance(item.get("id"), str)]


def _parse_arguments(raw: Any) -> dict[str, Any]:
    """Parse tool-call arguments, which arrive as a JSON string."""
    if isinstance(raw, dict):
        return raw
    try:
        result = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return {"raw": raw}
    return result if isinstance(result, dict) else {"value": result}
