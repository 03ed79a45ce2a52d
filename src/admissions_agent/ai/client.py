"""LLM client abstraction with an Anthropic API backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

import anthropic

from admissions_agent.ai.conversation import build_messages
from admissions_agent.ai.tools.base import ToolDefinition
from admissions_agent.config import AnthropicConfig
from admissions_agent.core.errors import LLMError
from admissions_agent.core.models import Message, ToolCall
from admissions_agent.core.types import Role
from admissions_agent.log import get_logger

logger = get_logger(__name__)


@dataclass
class LLMResponse:
    """Unified response from a model call."""

    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def usage(self) -> dict[str, int]:
        return {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}


def dedupe_tool_calls(calls: list[ToolCall]) -> list[ToolCall]:
    """Keep the first call per tool name."""
    seen: set[str] = set()
    unique: list[ToolCall] = []
    for call in calls:
        if call.name in seen:
            continue
        seen.add(call.name)
        unique.append(call)
    if len(unique) != len(calls):
        logger.debug("tool_calls_deduplicated", before=len(calls), after=len(unique))
    return unique


def _as_llm_error(exc: anthropic.APIError) -> LLMError:
    """Keep the SDK error class and HTTP status in the message for fallback categorisation."""
    status = getattr(exc, "status_code", None)
    prefix = f"{type(exc).__name__} {status}" if status else type(exc).__name__
    return LLMError(f"{prefix}: {exc.message}")


class LLMClient(ABC):
    """Abstract base class for model backends."""

    default_model: str = ""

    @abstractmethod
    async def chat(
        self,
        system: str,
        messages: list[Message],
        model: str = "",
        max_tokens: int = 4096,
        temperature: float = 0.7,
        tools: list[ToolDefinition] | None = None,
    ) -> LLMResponse:
        """Send a conversation and return text and/or tool calls."""
        ...

    @abstractmethod
    def stream(
        self,
        system: str,
        messages: list[Message],
        model: str = "",
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> AsyncIterator[str]:
        """Stream text deltas for a tool-free completion."""
        ...

    async def complete(
        self,
        system: str,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> str:
        """One-shot completion used by domain handlers."""
        response = await self.chat(
            system=system,
            messages=[Message.create(Role.USER, prompt)],
            model=self.default_model,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        return response.content


class AnthropicClient(LLMClient):
    """Anthropic API backend using the official SDK."""

    def __init__(self, config: AnthropicConfig, default_model: str):
        self._client = anthropic.AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            max_retries=config.max_retries,
            timeout=config.timeout,
        )
        self.default_model = default_model

    def _request(
        self,
        system: str,
        messages: list[Message],
        model: str,
        max_tokens: int,
        temperature: float,
        tools: list[ToolDefinition] | None = None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model or self.default_model,
            "max_tokens": max_tokens,
            "system": system,
            "messages": build_messages(messages),
            "temperature": temperature,
        }
        if tools:
            kwargs["tools"] = [t.to_api_dict() for t in tools]
        return kwargs

    async def chat(
        self,
        system: str,
        messages: list[Message],
        model: str = "",
        max_tokens: int = 4096,
        temperature: float = 0.7,
        tools: list[ToolDefinition] | None = None,
    ) -> LLMResponse:
        kwargs = self._request(system, messages, model, max_tokens, temperature, tools)
        logger.debug("api_request", model=kwargs["model"], message_count=len(kwargs["messages"]))
        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as exc:
            raise _as_llm_error(exc) from exc
        logger.debug(
            "api_response",
            model=kwargs["model"],
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )

        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(id=block.id, name=block.name, arguments=dict(block.input or {})))

        return LLMResponse(
            content="\n".join(text_parts),
            tool_calls=dedupe_tool_calls(tool_calls),
            finish_reason=response.stop_reason,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

    async def stream(
        self,
        system: str,
        messages: list[Message],
        model: str = "",
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> AsyncIterator[str]:
        kwargs = self._request(system, messages, model, max_tokens, temperature)
        logger.debug("api_stream_request", model=kwargs["model"], message_count=len(kwargs["messages"]))
        try:
            async with self._client.messages.stream(**kwargs) as stream:
                async for text in stream.text_stream:
                    yield text
        except anthropic.APIError as exc:
            raise _as_llm_error(exc) from exc
