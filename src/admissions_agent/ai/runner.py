"""Single-agent reasoning loop: model call, tool execution, repeat."""

from __future__ import annotations

import re
from typing import Any, AsyncIterator

from admissions_agent.ai.agents import AgentConfig
from admissions_agent.ai.client import LLMClient
from admissions_agent.ai.prompts import build_system_prompt
from admissions_agent.ai.resilience import ResilienceService
from admissions_agent.ai.tools.base import ToolName
from admissions_agent.ai.tools.executor import ToolExecutor
from admissions_agent.ai.tools.registry import ToolRegistry
from admissions_agent.core.errors import AdmissionsAgentError, AgentNotFoundError
from admissions_agent.core.models import (
    ActionSuggestion,
    AgentResponse,
    ConversationState,
    Message,
    StreamEvent,
    ToolCall,
    ToolExecutionResult,
)
from admissions_agent.core.types import AgentType, Role, StreamEventType
from admissions_agent.log import get_logger
from admissions_agent.memory.service import MemoryService

logger = get_logger(__name__)

MAX_ITERATIONS = 8
TOOL_TIMEOUT_SECONDS = 10.0
LLM_SERVICE = "llm"
MAX_SUGGESTIONS = 5
ITERATION_LIMIT_MESSAGE = "处理您的请求时遇到问题，请尝试简化问题。"

_SUGGESTION_LINE = re.compile(r"^[\d\-\*]\s*[\.）\)]\s*(.+)$")

_ACTION_RULES: tuple[tuple[tuple[str, ...], ActionSuggestion], ...] = (
    (("档案", "profile"), ActionSuggestion("完善档案", "navigate:/profile")),
    (("文书", "essay"), ActionSuggestion("文书管理", "navigate:/essays")),
    (("学校", "排名"), ActionSuggestion("查看排名", "navigate:/ranking")),
)


def extract_suggestions(text: str) -> list[str]:
    """Numbered or bulleted lines of the reply, at most five."""
    suggestions = []
    for line in text.splitlines():
        match = _SUGGESTION_LINE.match(line.strip())
        if match:
            suggestions.append(match.group(1).strip())
    return suggestions[:MAX_SUGGESTIONS]


def generate_actions(text: str) -> list[ActionSuggestion]:
    lowered = text.lower()
    return [
        ActionSuggestion(action.label, action.action)
        for keywords, action in _ACTION_RULES
        if any(k in lowered for k in keywords)
    ]


def build_response(
    agent_type: AgentType,
    message: str,
    tools_used: list[str],
    data: dict[str, Any] | None = None,
) -> AgentResponse:
    return AgentResponse(
        message=message,
        agent_type=agent_type,
        tools_used=list(dict.fromkeys(tools_used)),
        suggestions=extract_suggestions(message),
        actions=generate_actions(message),
        data=data or {},
    )


def delegation_target(config: AgentConfig, call: ToolCall) -> AgentType | None:
    """The requested target if this agent may delegate to it, else None."""
    try:
        target = AgentType(call.arguments.get("agent"))
    except ValueError:
        return None
    return target if target in config.can_delegate else None


def invalid_delegation_error(config: AgentConfig, call: ToolCall) -> str:
    valid = ", ".join(a.value for a in config.can_delegate)
    return f"Invalid agent: {call.arguments.get('agent')}. Valid agents: {valid}"


class AgentRunner:
    """Runs one agent until it answers, delegates, or exhausts its iterations."""

    def __init__(
        self,
        llm: LLMClient,
        executor: ToolExecutor,
        memory: MemoryService,
        registry: ToolRegistry,
        resilience: ResilienceService,
        configs: dict[AgentType, AgentConfig],
        max_iterations: int = MAX_ITERATIONS,
        tool_timeout: float = TOOL_TIMEOUT_SECONDS,
        history_window: int = 20,
    ):
        self._llm = llm
        self._executor = executor
        self._memory = memory
        self._registry = registry
        self._resilience = resilience
        self._configs = configs
        self._max_iterations = max_iterations
        self._tool_timeout = tool_timeout
        self._history_window = history_window

    def config_for(self, agent_type: AgentType) -> AgentConfig:
        config = self._configs.get(agent_type)
        if config is None:
            raise AgentNotFoundError(agent_type)
        return config

    async def run(
        self,
        agent_type: AgentType,
        conversation: ConversationState,
        initial_message: str | None = None,
    ) -> AgentResponse:
        response: AgentResponse | None = None
        async for event in self.run_stream(agent_type, conversation, initial_message):
            if event.type is StreamEventType.DONE:
                response = event.response
        if response is None:
            raise AdmissionsAgentError(f"Agent {agent_type} finished without a response")
        return response

    async def run_stream(
        self,
        agent_type: AgentType,
        conversation: ConversationState,
        initial_message: str | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield tool_start/tool_end around each tool call, then done with the response."""
        config = self.config_for(agent_type)
        tools = self._registry.tools_for(config)
        tools_used: list[str] = []

        if initial_message:
            await self._memory.add_message(conversation, Message.create(Role.USER, initial_message))

        for iteration in range(1, self._max_iterations + 1):
            response = await self._resilience.with_circuit_breaker(
                LLM_SERVICE,
                lambda: self._llm.chat(
                    system=build_system_prompt(config, conversation),
                    messages=self._memory.get_recent_messages(conversation, self._history_window),
                    model=config.model,
                    max_tokens=config.max_tokens,
                    temperature=config.temperature,
                    tools=tools,
                ),
            )

            if not response.tool_calls:
                await self._memory.add_message(
                    conversation,
                    Message.create(
                        Role.ASSISTANT,
                        response.content,
                        agent_type=agent_type,
                        metadata={"usage": response.usage},
                    ),
                )
                logger.info(
                    "agent_answered",
                    agent=agent_type,
                    iterations=iteration,
                    tools_used=len(tools_used),
                )
                yield _done(agent_type, build_response(agent_type, response.content, tools_used))
                return

            await self._memory.add_message(
                conversation,
                Message.create(
                    Role.ASSISTANT,
                    response.content,
                    agent_type=agent_type,
                    tool_calls=response.tool_calls,
                    metadata={"usage": response.usage},
                ),
            )

            delegate = next((c for c in response.tool_calls if c.name == ToolName.DELEGATE_TO_AGENT), None)
            if delegate is not None:
                target = delegation_target(config, delegate)
                if target is not None:
                    logger.info("agent_delegating", agent=agent_type, target=target)
                    yield _done(
                        agent_type,
                        AgentResponse(
                            message="",
                            agent_type=agent_type,
                            tools_used=list(dict.fromkeys(tools_used)),
                            delegated_to=target,
                            data={
                                "task": delegate.arguments.get("task"),
                                "context": delegate.arguments.get("context"),
                            },
                        ),
                    )
                    return

            for call in response.tool_calls:
                tools_used.append(call.name)
                yield StreamEvent(StreamEventType.TOOL_START, agent=agent_type, tool=call.name)
                if call is delegate:
                    result = ToolExecutionResult(success=False, error=invalid_delegation_error(config, call))
                else:
                    result = await self._execute_tool(call, conversation)
                await self._memory.add_message(
                    conversation,
                    Message.create(Role.TOOL, result.to_tool_content(), tool_call_id=call.id),
                )
                yield StreamEvent(
                    StreamEventType.TOOL_END,
                    agent=agent_type,
                    tool=call.name,
                    tool_result={"success": result.success, "durationMs": result.duration_ms},
                )

        logger.warning("agent_iteration_limit", agent=agent_type, max_iterations=self._max_iterations)
        yield _done(
            agent_type,
            AgentResponse(
                message=ITERATION_LIMIT_MESSAGE,
                agent_type=agent_type,
                tools_used=list(dict.fromkeys(tools_used)),
            ),
        )

    async def _execute_tool(self, call: ToolCall, conversation: ConversationState) -> ToolExecutionResult:
        logger.debug("agent_tool_call", tool=call.name, tool_call_id=call.id)

        async def _run():
            return await self._executor.execute(
                call,
                conversation.user_id,
                conversation.context,
                locale=conversation.locale,
                conversation_id=conversation.id,
            )

        try:
            return await self._resilience.with_timeout(_run, self._tool_timeout, f"tool:{call.name}")
        except Exception as exc:
            logger.error("agent_tool_failed", tool=call.name, error=str(exc))
            return ToolExecutionResult(success=False, error=str(exc) or "Tool execution timeout or failed")


def _done(agent_type: AgentType, response: AgentResponse) -> StreamEvent:
    return StreamEvent(StreamEventType.DONE, agent=agent_type, response=response)
