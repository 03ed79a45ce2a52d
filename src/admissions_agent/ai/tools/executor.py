"""Tool executor: delegation marker, handler dispatch and idempotence-aware retry."""

from __future__ import annotations

import time
from typing import Any

from admissions_agent.ai.resilience import ResilienceService, RetryConfig
from admissions_agent.ai.tools.base import ToolContext, ToolName
from admissions_agent.ai.tools.registry import ToolRegistry
from admissions_agent.core.errors import UnknownToolError
from admissions_agent.core.models import ToolCall, ToolExecutionResult, UserContext
from admissions_agent.core.types import SPECIALIST_AGENTS
from admissions_agent.log import get_logger

logger = get_logger(__name__)

TOOL_RETRY_CONFIG = RetryConfig(
    max_attempts=2,
    base_delay=0.5,
    max_delay=2.0,
    retryable_errors=(
        "ECONNRESET",
        "ETIMEDOUT",
        "ENOTFOUND",
        "ConnectionError",
        "500",
        "502",
        "503",
        "504",
    ),
)

# Mutating tools: a retry could duplicate the side effect.
NON_RETRYABLE_TOOLS: frozenset[str] = frozenset(
    {
        ToolName.UPDATE_PROFILE,
        ToolName.POLISH_ESSAY,
        ToolName.CREATE_PERSONAL_EVENT,
    }
)

DELEGATION_TARGETS: tuple[str, ...] = tuple(a.value for a in SPECIALIST_AGENTS)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class ToolExecutor:
    """Executes model-requested tool calls against the registry."""

    def __init__(self, registry: ToolRegistry, resilience: ResilienceService):
        self._registry = registry
        self._resilience = resilience

    def is_tool_available(self, name: str) -> bool:
        return self._registry.has(name)

    async def execute(
        self,
        tool_call: ToolCall,
        user_id: str,
        context: UserContext,
        locale: str = "zh",
        conversation_id: str | None = None,
    ) -> ToolExecutionResult:
        start = time.monotonic()
        logger.debug("tool_execute", tool=tool_call.name, tool_call_id=tool_call.id)

        if tool_call.name == ToolName.DELEGATE_TO_AGENT:
            return self._handle_delegation(tool_call, start)

        tool_context = ToolContext(
            user_id=user_id,
            locale=locale,
            profile=context.profile,
            conversation_id=conversation_id,
        )

        async def _call() -> Any:
            return await self._registry.dispatch(tool_call.name, tool_call.arguments, tool_context)

        try:
            if tool_call.name in NON_RETRYABLE_TOOLS:
                result = await _call()
            else:
                result = await self._resilience.with_retry(
                    _call, TOOL_RETRY_CONFIG, operation=f"tool:{tool_call.name}"
                )
        except UnknownToolError as exc:
            logger.warning("tool_unknown", tool=tool_call.name)
            return ToolExecutionResult(success=False, error=str(exc), duration_ms=_elapsed_ms(start))
        except Exception as exc:
            duration = _elapsed_ms(start)
            logger.error("tool_execution_failed", tool=tool_call.name, error=str(exc), duration_ms=duration)
            return ToolExecutionResult(success=False, error=str(exc) or type(exc).__name__, duration_ms=duration)

        duration = _elapsed_ms(start)
        if isinstance(result, dict) and result.get("error"):
            logger.warning("tool_returned_error", tool=tool_call.name, error=result["error"])
            return ToolExecutionResult(success=False, error=str(result["error"]), duration_ms=duration)

        logger.info("tool_executed", tool=tool_call.name, duration_ms=duration)
        return ToolExecutionResult(success=True, result=result, duration_ms=duration)

    async def execute_all(
        self, tool_calls: list[ToolCall], user_id: str, context: UserContext, locale: str = "zh"
    ) -> dict[str, ToolExecutionResult]:
        """Run calls one after another, in order."""
        results: dict[str, ToolExecutionResult] = {}
        for call in tool_calls:
            results[call.id] = await self.execute(call, user_id, context, locale)
        return results

    @staticmethod
    def _handle_delegation(tool_call: ToolCall, start: float) -> ToolExecutionResult:
        agent = tool_call.arguments.get("agent")
        if agent not in DELEGATION_TARGETS:
            return ToolExecutionResult(
                success=False,
                error=f"Invalid agent: {agent}. Valid agents: {', '.join(DELEGATION_TARGETS)}",
                duration_ms=_elapsed_ms(start),
            )
        return ToolExecutionResult(
            success=True,
            result={
                "_delegation": True,
                "targetAgent": agent,
                "task": tool_call.arguments.get("task"),
                "context": tool_call.arguments.get("context"),
            },
            duration_ms=_elapsed_ms(start),
        )
