"""Top-level entry point: fast routing, agent runs, delegation and fallbacks."""

from __future__ import annotations

from typing import Any, AsyncIterator

import structlog

from admissions_agent.ai.fallback import FallbackService
from admissions_agent.ai.fast_router import FastRouter
from admissions_agent.ai.runner import AgentRunner
from admissions_agent.ai.workflow import WorkflowEngine, WorkflowEventType
from admissions_agent.core.errors import AdmissionsAgentError
from admissions_agent.core.models import (
    AgentResponse,
    ConversationState,
    Message,
    StreamEvent,
    UserContext,
)
from admissions_agent.core.types import AgentType, MemoryType, Role, StreamEventType
from admissions_agent.log import get_logger
from admissions_agent.memory.service import MemoryService

logger = get_logger(__name__)

MAX_DELEGATION_DEPTH = 3
DELEGATION_TOO_DEEP = "委派层级过深"
DELEGATION_TOO_DEEP_MESSAGE = "委派层级过深，请换个方式描述您的问题，或直接说明需要哪方面的帮助。"


def depth_exceeded_response(agent_type: AgentType, depth: int) -> AgentResponse:
    return AgentResponse(
        message=DELEGATION_TOO_DEEP_MESSAGE,
        agent_type=agent_type,
        data={"error": "delegation_depth_exceeded", "depth": depth},
    )


def _delegation_note(target: AgentType, task: str) -> Message:
    return Message.create(Role.SYSTEM, f"委派给 {target.value} 处理: {task}")


def _memory_context(context: UserContext) -> dict[str, Any]:
    return {
        "recentMemories": len(context.memories),
        "relevantFacts": sum(1 for m in context.memories if m.type is MemoryType.FACT),
        "entities": [m.content for m in context.memories if m.category == "school"],
    }


class Orchestrator:
    """Public API of the agent core. Never lets an exception reach the caller."""

    def __init__(
        self,
        memory: MemoryService,
        runner: AgentRunner,
        workflow: WorkflowEngine,
        router: FastRouter,
        fallback: FallbackService,
        max_delegation_depth: int = MAX_DELEGATION_DEPTH,
        use_workflow: bool = True,
        fast_routing: bool = True,
    ):
        self._memory = memory
        self._runner = runner
        self._workflow = workflow
        self._router = router
        self._fallback = fallback
        self._max_depth = max_delegation_depth
        self._use_workflow = use_workflow
        self._fast_routing = fast_routing

    # ── request / response ──────────────────────────────────────────

    async def handle_message(
        self,
        user_id: str,
        message: str,
        conversation_id: str | None = None,
        locale: str | None = None,
    ) -> AgentResponse:
        with structlog.contextvars.bound_contextvars(user_id=user_id, conversation_id=conversation_id):
            simple = self._simple_response(message)
            if simple is not None:
                return simple

            try:
                conversation = await self._start_turn(user_id, message, conversation_id, locale)
                agent_type = self._route(message)

                response = await self._runner.run(agent_type, conversation)
                depth = 0
                while response.delegated_to is not None:
                    if depth >= self._max_depth:
                        logger.warning("delegation_depth_exceeded", depth=depth + 1, max_depth=self._max_depth)
                        return depth_exceeded_response(response.agent_type, depth + 1)
                    depth += 1
                    target = response.delegated_to
                    task = response.data.get("task") or message
                    logger.info("delegating", source=response.agent_type, target=target, depth=depth)
                    await self._memory.add_message(conversation, _delegation_note(target, task))
                    response = await self._runner.run(target, conversation)

                await self._memory.maybe_summarize(conversation)
                return response
            except Exception as exc:
                logger.error("handle_message_failed", error=str(exc), error_type=type(exc).__name__)
                return self._fallback.get_fallback_response(exc)

    async def call_agent(
        self,
        user_id: str,
        agent_type: AgentType,
        message: str,
        conversation_id: str | None = None,
        locale: str | None = None,
    ) -> AgentResponse:
        """Run one agent directly, skipping routing and delegation."""
        with structlog.contextvars.bound_contextvars(user_id=user_id, conversation_id=conversation_id):
            logger.info("call_agent", agent=agent_type)
            try:
                conversation = await self._start_turn(user_id, message, conversation_id, locale)
                response = await self._runner.run(agent_type, conversation)
                await self._memory.maybe_summarize(conversation)
                return response
            except Exception as exc:
                logger.error("call_agent_failed", agent=agent_type, error=str(exc))
                return self._fallback.get_fallback_response(exc, agent_type)

    # ── streaming ───────────────────────────────────────────────────

    async def handle_message_stream(
        self,
        user_id: str,
        message: str,
        conversation_id: str | None = None,
        locale: str | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield start, content, tool and agent_switch events, then a final done.

        Failures surface as an ``error`` event followed by ``done`` carrying
        the fallback response.
        """
        log = logger.bind(user_id=user_id, conversation_id=conversation_id)

        simple = self._simple_response(message)
        if simple is not None:
            yield StreamEvent(StreamEventType.START, agent=AgentType.ORCHESTRATOR)
            yield StreamEvent(StreamEventType.CONTENT, agent=AgentType.ORCHESTRATOR, content=simple.message)
            yield StreamEvent(StreamEventType.DONE, agent=AgentType.ORCHESTRATOR, response=simple)
            return

        try:
            conversation = await self._start_turn(user_id, message, conversation_id, locale)
            agent_type = self._route(message)
            yield StreamEvent(
                StreamEventType.START,
                agent=agent_type,
                conversation_id=conversation.id,
                data={"memoryContext": _memory_context(conversation.context)},
            )
            async for event in self._stream_agents(agent_type, conversation, message):
                yield event
            await self._memory.maybe_summarize(conversation)
        except Exception as exc:
            log.error("handle_message_stream_failed", error=str(exc), error_type=type(exc).__name__)
            fallback = self._fallback.get_fallback_response(exc)
            yield StreamEvent(StreamEventType.ERROR, error=fallback.message)
            yield StreamEvent(StreamEventType.DONE, response=fallback)

    async def _stream_agents(
        self,
        agent_type: AgentType,
        conversation: ConversationState,
        message: str,
    ) -> AsyncIterator[StreamEvent]:
        """Work-stack loop over (agent, depth) frames; a delegation pushes the next frame."""
        stack: list[tuple[AgentType, int]] = [(agent_type, 0)]

        while stack:
            agent, depth = stack.pop()

            if self._use_workflow:
                response = None
                async for event in self._stream_workflow(agent, conversation):
                    if isinstance(event, AgentResponse):
                        response = event
                    else:
                        yield event
            else:
                response = None
                async for event in self._runner.run_stream(agent, conversation):
                    if event.type is StreamEventType.DONE:
                        response = event.response
                    else:
                        yield event
                if response is not None and response.delegated_to is None and response.message:
                    yield StreamEvent(StreamEventType.CONTENT, agent=agent, content=response.message)

            if response is None:
                raise AdmissionsAgentError(f"Agent {agent} finished without a response")

            if response.delegated_to is not None:
                target = response.delegated_to
                if depth >= self._max_depth:
                    logger.warning("delegation_depth_exceeded", depth=depth + 1, max_depth=self._max_depth)
                    yield StreamEvent(StreamEventType.ERROR, agent=agent, error=DELEGATION_TOO_DEEP)
                    yield StreamEvent(
                        StreamEventType.DONE, agent=agent, response=depth_exceeded_response(agent, depth + 1)
                    )
                    return
                task = response.data.get("task") or message
                logger.info("delegating", source=agent, target=target, depth=depth + 1)
                yield StreamEvent(StreamEventType.AGENT_SWITCH, agent=target, data={"task": task})
                await self._memory.add_message(conversation, _delegation_note(target, task))
                stack.append((target, depth + 1))
                continue

            yield StreamEvent(StreamEventType.DONE, agent=agent, response=response)

    async def _stream_workflow(
        self, agent: AgentType, conversation: ConversationState
    ) -> AsyncIterator[StreamEvent | AgentResponse]:
        """Translate workflow events to stream events; the last item is the AgentResponse."""
        config = self._runner.config_for(agent)
        async for event in self._workflow.run_stream(config, conversation):
            match event.type:
                case WorkflowEventType.PLAN_CONTENT | WorkflowEventType.SOLVE_CONTENT:
                    if event.content:
                        yield StreamEvent(StreamEventType.CONTENT, agent=agent, content=event.content)
                case WorkflowEventType.TOOL_START:
                    yield StreamEvent(StreamEventType.TOOL_START, agent=agent, tool=event.tool)
                case WorkflowEventType.TOOL_END:
                    tool_result = event.tool_result
                    yield StreamEvent(
                        StreamEventType.TOOL_END,
                        agent=agent,
                        tool=event.tool,
                        tool_result=(
                            {"success": tool_result.success, "durationMs": tool_result.duration_ms}
                            if tool_result is not None
                            else None
                        ),
                    )
                case WorkflowEventType.ERROR:
                    if event.cause is not None:
                        raise event.cause
                    raise AdmissionsAgentError(event.error or "Workflow failed")
                case WorkflowEventType.DONE:
                    if event.result is not None:
                        yield event.result.to_response(agent)

    # ── lifecycle ───────────────────────────────────────────────────

    async def get_history(self, user_id: str, conversation_id: str | None = None) -> list[Message]:
        return await self._memory.get_history(user_id, conversation_id)

    async def clear_conversation(self, user_id: str, conversation_id: str | None = None) -> int:
        return await self._memory.clear_conversation(user_id, conversation_id)

    async def refresh_context(self, user_id: str) -> UserContext:
        return await self._memory.refresh_user_context(user_id)

    # ── helpers ─────────────────────────────────────────────────────

    def _simple_response(self, message: str) -> AgentResponse | None:
        if not self._fast_routing:
            return None
        reply = self._router.get_simple_response(message)
        if reply is None:
            return None
        logger.debug("simple_response")
        return AgentResponse(message=reply, agent_type=AgentType.ORCHESTRATOR, data={"fastRoute": True})

    def _route(self, message: str) -> AgentType:
        if not self._fast_routing:
            return AgentType.ORCHESTRATOR
        result = self._router.route(message)
        if not result.should_use_llm and result.agent is not None:
            logger.info("fast_routed", agent=result.agent, confidence=round(result.confidence, 2))
            return result.agent
        return AgentType.ORCHESTRATOR

    async def _start_turn(
        self,
        user_id: str,
        message: str,
        conversation_id: str | None,
        locale: str | None,
    ) -> ConversationState:
        conversation = await self._memory.get_or_create_conversation(user_id, conversation_id, locale)
        await self._memory.add_message(conversation, Message.create(Role.USER, message))
        return conversation
