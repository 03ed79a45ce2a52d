"""Plan / execute / solve workflow for a single agent.

The plan phase makes one model call with tools and collects every tool call
the model wants. The execute phase runs those calls in order without any model
involvement. The solve phase streams a final answer with no tools offered, so
the model cannot start another round of tool use.

``run_stream`` is the only implementation; ``run`` consumes it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, AsyncIterator, Callable, Optional

from admissions_agent.ai.agents import AgentConfig
from admissions_agent.ai.client import LLMClient, LLMResponse, dedupe_tool_calls
from admissions_agent.ai.prompts import build_system_prompt
from admissions_agent.ai.resilience import ResilienceService
from admissions_agent.ai.runner import LLM_SERVICE, build_response, delegation_target, invalid_delegation_error
from admissions_agent.ai.tools.base import ToolDefinition, ToolName
from admissions_agent.ai.tools.executor import ToolExecutor
from admissions_agent.ai.tools.registry import ToolRegistry
from admissions_agent.core.models import AgentResponse, ConversationState, Message, ToolCall, ToolExecutionResult
from admissions_agent.core.types import AgentType, Role
from admissions_agent.log import get_logger
from admissions_agent.memory.service import MemoryService

logger = get_logger(__name__)

TOOL_TIMEOUT_SECONDS = 30.0
SHORT_ANSWER_CHARS = 20

PHASE_WARN_MS: dict[str, int] = {
    "plan": 10_000,
    "execute": 30_000,
    "solve": 15_000,
}

_PLAN_SUFFIX = {
    "zh": """

## 工作流指令（必须严格遵守）
你正处于 **规划阶段**。你的任务是：
1. 分析用户的需求
2. 判断需要调用哪些工具来收集信息或执行操作
3. **一次性** 调用所有需要的工具（不要分多轮）

重要规则：
- 仔细思考后，一次性列出所有需要的工具调用
- 每种工具最多调用一次
- 如果不需要任何工具，直接回复用户即可
- 不要在回复中解释"我要调用什么工具"，直接调用即可""",
    "en": """

## Workflow Instructions (Must Follow Strictly)
You are in the **planning phase**. Your tasks are:
1. Analyze the user's request
2. Determine which tools need to be called to collect information or perform actions
3. Call **all** needed tools at once (do not split into multiple rounds)

Important rules:
- Think carefully, then list all tool calls at once
- Each tool should be called at most once
- If no tools are needed, reply to the user directly
- Do not explain which tools you are calling; just call them""",
}

_SOLVE_SUFFIX = {
    "zh": """

## 工作流指令（必须严格遵守）
你正处于 **总结阶段**。所有工具已经执行完毕，结果已包含在对话历史中。
你的任务是：基于所有工具返回的数据，生成一个完整、友好、有条理的中文回复。

重要规则：
- **绝对不要** 再调用任何工具
- 直接基于已有的工具结果生成回复
- 如果某个工具执行失败，跳过相关内容或告知用户
- 回复要完整、有条理，不要遗漏重要信息""",
    "en": """

## Workflow Instructions (Must Follow Strictly)
You are in the **summarization phase**. All tools have been executed and their results are in the conversation history.
Your task is: Based on all tool results, generate a complete, friendly, well-organized **English** response.

Important rules:
- **Never** call any tools again
- Generate the response directly based on existing tool results
- If a tool failed, skip that content or inform the user
- The response should be complete, organized, and not omit important information""",
}


class WorkflowPhase(StrEnum):
    PLAN = "plan"
    EXECUTE = "execute"
    SOLVE = "solve"
    DONE = "done"


class StepStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class WorkflowEventType(StrEnum):
    PHASE_CHANGE = "phase_change"
    PLAN_CONTENT = "plan_content"
    TOOL_START = "tool_start"
    TOOL_END = "tool_end"
    SOLVE_CONTENT = "solve_content"
    DONE = "done"
    ERROR = "error"


@dataclass
class PlannedStep:
    tool_call: ToolCall
    status: StepStatus = StepStatus.PENDING
    result: Optional[ToolExecutionResult] = None
    error: Optional[str] = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"tool": self.tool_call.name, "status": self.status.value, "durationMs": self.duration_ms}
        if self.error:
            out["error"] = self.error
        return out


@dataclass
class Delegation:
    target: AgentType
    task: Optional[str] = None
    context: Optional[str] = None


@dataclass
class ExecutionPlan:
    planning_content: str
    steps: list[PlannedStep] = field(default_factory=list)
    delegation: Optional[Delegation] = None


@dataclass
class PhaseTiming:
    plan_ms: int = 0
    execute_ms: int = 0
    solve_ms: int = 0
    total_ms: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "planMs": self.plan_ms,
            "executeMs": self.execute_ms,
            "solveMs": self.solve_ms,
            "totalMs": self.total_ms,
        }


@dataclass
class WorkflowResult:
    message: str
    tools_used: list[str]
    plan: ExecutionPlan
    timing: PhaseTiming
    delegation: Optional[Delegation] = None

    def to_response(self, agent_type: AgentType) -> AgentResponse:
        """Client-facing response; plan steps and timing go under ``data.workflow``."""
        workflow = {
            "steps": [s.to_dict() for s in self.plan.steps],
            "timing": self.timing.to_dict(),
        }
        if self.delegation is not None:
            return AgentResponse(
                message="",
                agent_type=agent_type,
                tools_used=list(self.tools_used),
                delegated_to=self.delegation.target,
                data={"task": self.delegation.task, "context": self.delegation.context, "workflow": workflow},
            )
        return build_response(agent_type, self.message, self.tools_used, data={"workflow": workflow})


@dataclass
class WorkflowEvent:
    type: WorkflowEventType
    phase: Optional[WorkflowPhase] = None
    content: Optional[str] = None
    tool: Optional[str] = None
    tool_result: Optional[ToolExecutionResult] = None
    result: Optional[WorkflowResult] = None
    error: Optional[str] = None
    cause: Optional[Exception] = None


def _elapsed_ms(start: float, clock: Callable[[], float]) -> int:
    return int((clock() - start) * 1000)


class WorkflowEngine:
    """Three-phase workflow runner. Collaborators are shared with the AgentRunner."""

    def __init__(
        self,
        llm: LLMClient,
        executor: ToolExecutor,
        memory: MemoryService,
        registry: ToolRegistry,
        resilience: ResilienceService,
        tool_timeout: float = TOOL_TIMEOUT_SECONDS,
        history_window: int = 20,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._llm = llm
        self._executor = executor
        self._memory = memory
        self._registry = registry
        self._resilience = resilience
        self._tool_timeout = tool_timeout
        self._history_window = history_window
        self._clock = clock

    async def run(self, config: AgentConfig, conversation: ConversationState) -> WorkflowResult:
        """Non-streaming entry point. Re-raises the error that stopped the workflow."""
        result: WorkflowResult | None = None
        async for event in self.run_stream(config, conversation):
            if event.type is WorkflowEventType.ERROR:
                if event.cause is not None:
                    raise event.cause
                raise RuntimeError(event.error or "Workflow failed")
            if event.type is WorkflowEventType.DONE:
                result = event.result
        if result is None:
            raise RuntimeError("Workflow finished without a result")
        return result

    async def run_stream(
        self,
        config: AgentConfig,
        conversation: ConversationState,
        tools: list[ToolDefinition] | None = None,
    ) -> AsyncIterator[WorkflowEvent]:
        agent_type = config.type
        tools = self._registry.tools_for(config) if tools is None else tools
        total_start = self._clock()

        try:
            # ── plan ────────────────────────────────────────────────
            yield WorkflowEvent(WorkflowEventType.PHASE_CHANGE, phase=WorkflowPhase.PLAN)
            plan_start = self._clock()
            plan = await self._plan(config, conversation, tools)
            plan_ms = _elapsed_ms(plan_start, self._clock)
            self._warn_if_slow(agent_type, "plan", plan_ms)
            logger.info("workflow_planned", agent=agent_type, steps=len(plan.steps), duration_ms=plan_ms)

            if plan.delegation is not None:
                yield WorkflowEvent(
                    WorkflowEventType.DONE,
                    result=WorkflowResult(
                        message="",
                        tools_used=[],
                        plan=plan,
                        timing=PhaseTiming(plan_ms=plan_ms, total_ms=_elapsed_ms(total_start, self._clock)),
                        delegation=plan.delegation,
                    ),
                )
                return

            if not plan.steps:
                if plan.planning_content:
                    await self._memory.add_message(
                        conversation,
                        Message.create(Role.ASSISTANT, plan.planning_content, agent_type=agent_type),
                    )
                    yield WorkflowEvent(WorkflowEventType.PLAN_CONTENT, content=plan.planning_content)
                yield WorkflowEvent(
                    WorkflowEventType.DONE,
                    result=WorkflowResult(
                        message=plan.planning_content,
                        tools_used=[],
                        plan=plan,
                        timing=PhaseTiming(plan_ms=plan_ms, total_ms=_elapsed_ms(total_start, self._clock)),
                    ),
                )
                return

            # ── execute ─────────────────────────────────────────────
            yield WorkflowEvent(WorkflowEventType.PHASE_CHANGE, phase=WorkflowPhase.EXECUTE)
            execute_start = self._clock()
            await self._memory.add_message(
                conversation,
                Message.create(
                    Role.ASSISTANT,
                    plan.planning_content,
                    agent_type=agent_type,
                    tool_calls=[s.tool_call for s in plan.steps],
                ),
            )
            for step in plan.steps:
                yield WorkflowEvent(WorkflowEventType.TOOL_START, tool=step.tool_call.name)
                await self._execute_step(config, step, conversation)
                yield WorkflowEvent(WorkflowEventType.TOOL_END, tool=step.tool_call.name, tool_result=step.result)
            execute_ms = _elapsed_ms(execute_start, self._clock)
            self._warn_if_slow(agent_type, "execute", execute_ms)
            logger.info("workflow_executed", agent=agent_type, duration_ms=execute_ms)

            # ── solve ───────────────────────────────────────────────
            yield WorkflowEvent(WorkflowEventType.PHASE_CHANGE, phase=WorkflowPhase.SOLVE)
            solve_start = self._clock()
            chunks: list[str] = []
            async for chunk in self._solve(config, conversation):
                chunks.append(chunk)
                yield WorkflowEvent(WorkflowEventType.SOLVE_CONTENT, content=chunk)
            solve_ms = _elapsed_ms(solve_start, self._clock)
            self._warn_if_slow(agent_type, "solve", solve_ms)
            logger.info("workflow_solved", agent=agent_type, duration_ms=solve_ms)

            yield WorkflowEvent(
                WorkflowEventType.DONE,
                result=WorkflowResult(
                    message="".join(chunks),
                    tools_used=list(
                        dict.fromkeys(s.tool_call.name for s in plan.steps if s.status is StepStatus.SUCCESS)
                    ),
                    plan=plan,
                    timing=PhaseTiming(
                        plan_ms=plan_ms,
                        execute_ms=execute_ms,
                        solve_ms=solve_ms,
                        total_ms=_elapsed_ms(total_start, self._clock),
                    ),
                ),
            )
        except Exception as exc:
            logger.error("workflow_failed", agent=agent_type, error=str(exc))
            yield WorkflowEvent(WorkflowEventType.ERROR, error=str(exc) or "Workflow failed", cause=exc)

    # ── phases ──────────────────────────────────────────────────────

    async def _plan(
        self,
        config: AgentConfig,
        conversation: ConversationState,
        tools: list[ToolDefinition],
    ) -> ExecutionPlan:
        response = await self._resilience.with_circuit_breaker(
            LLM_SERVICE,
            lambda: self._llm.chat(
                system=build_system_prompt(config, conversation, _suffix(_PLAN_SUFFIX, conversation.locale)),
                messages=self._memory.get_recent_messages(conversation, self._history_window),
                model=config.model,
                max_tokens=config.max_tokens,
                temperature=config.temperature,
                tools=tools,
            ),
        )
        return self._parse_plan(config, response)

    @staticmethod
    def _parse_plan(config: AgentConfig, response: LLMResponse) -> ExecutionPlan:
        if not response.tool_calls:
            return ExecutionPlan(planning_content=response.content)

        calls = dedupe_tool_calls(response.tool_calls)
        delegate = next((c for c in calls if c.name == ToolName.DELEGATE_TO_AGENT), None)
        if delegate is not None:
            target = delegation_target(config, delegate)
            if target is not None:
                logger.info("workflow_delegating", agent=config.type, target=target)
                return ExecutionPlan(
                    planning_content=response.content,
                    delegation=Delegation(
                        target=target,
                        task=delegate.arguments.get("task"),
                        context=delegate.arguments.get("context"),
                    ),
                )

        return ExecutionPlan(
            planning_content=response.content,
            steps=[PlannedStep(tool_call=c) for c in calls],
        )

    async def _execute_step(self, config: AgentConfig, step: PlannedStep, conversation: ConversationState) -> None:
        """Run one step exactly once and record its tool message."""
        step.status = StepStatus.RUNNING
        start = self._clock()
        call = step.tool_call

        if call.name == ToolName.DELEGATE_TO_AGENT:
            result = ToolExecutionResult(success=False, error=invalid_delegation_error(config, call))
        else:

            async def _run() -> ToolExecutionResult:
                return await self._executor.execute(
                    call,
                    conversation.user_id,
                    conversation.context,
                    locale=conversation.locale,
                    conversation_id=conversation.id,
                )

            try:
                result = await self._resilience.with_timeout(_run, self._tool_timeout, f"tool:{call.name}")
            except Exception as exc:
                logger.error("workflow_tool_failed", tool=call.name, error=str(exc))
                result = ToolExecutionResult(success=False, error=str(exc) or "Tool execution failed")

        step.duration_ms = _elapsed_ms(start, self._clock)
        step.result = result
        if result.success:
            step.status = StepStatus.SUCCESS
        else:
            step.status = StepStatus.FAILED
            step.error = result.error or "Tool execution failed"
            result.error = step.error

        await self._memory.add_message(
            conversation,
            Message.create(Role.TOOL, result.to_tool_content(), tool_call_id=call.id),
        )

    async def _solve(self, config: AgentConfig, conversation: ConversationState) -> AsyncIterator[str]:
        agent_type = config.type
        system = build_system_prompt(config, conversation, _suffix(_SOLVE_SUFFIX, conversation.locale))
        messages = self._memory.get_recent_messages(conversation, self._history_window)

        parts: list[str] = []
        async for chunk in self._llm.stream(
            system=system,
            messages=messages,
            model=config.model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        ):
            if chunk:
                parts.append(chunk)
                yield chunk
        content = "".join(parts)

        if not content.strip():
            logger.warning("workflow_solve_empty_stream", agent=agent_type)
            response = await self._resilience.with_circuit_breaker(
                LLM_SERVICE,
                lambda: self._llm.chat(
                    system=system,
                    messages=messages,
                    model=config.model,
                    max_tokens=config.max_tokens,
                    temperature=config.temperature,
                ),
            )
            content = response.content
            if content:
                yield content
            else:
                logger.error("workflow_solve_empty", agent=agent_type)

        has_tool_results = any(m.role is Role.TOOL for m in conversation.messages)
        if has_tool_results and 0 < len(content) < SHORT_ANSWER_CHARS:
            logger.warning("workflow_solve_short", agent=agent_type, chars=len(content))

        await self._memory.add_message(
            conversation,
            Message.create(Role.ASSISTANT, content, agent_type=agent_type),
        )

    @staticmethod
    def _warn_if_slow(agent_type: AgentType, phase: str, duration_ms: int) -> None:
        threshold = PHASE_WARN_MS.get(phase)
        if threshold and duration_ms > threshold:
            logger.warning("workflow_phase_slow", agent=agent_type, phase=phase, duration_ms=duration_ms, threshold_ms=threshold)


def _suffix(table: dict[str, str], locale: str) -> str:
    return table.get(locale, table["zh"])
