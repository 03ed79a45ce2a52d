"""Tests for the orchestrator: routing, delegation chains, streaming and fallbacks."""

from __future__ import annotations

import json
from typing import Any

import pytest
from conftest import delegate_response, text_response, tool_response

from admissions_agent.ai.fallback import AGENT_FALLBACKS, FallbackService
from admissions_agent.ai.fast_router import FastRouter
from admissions_agent.ai.orchestrator import DELEGATION_TOO_DEEP, DELEGATION_TOO_DEEP_MESSAGE, Orchestrator
from admissions_agent.ai.runner import AgentRunner
from admissions_agent.ai.tools.base import ToolContext, ToolHandler
from admissions_agent.ai.tools.executor import ToolExecutor
from admissions_agent.ai.tools.registry import ToolRegistry
from admissions_agent.core.types import AgentType, Role, StreamEventType

# Matches no routing rule, so the orchestrator agent handles it.
UNROUTED = "今天天气怎么样"

PING_PONG = [
    delegate_response("essay", "写文书"),
    delegate_response("orchestrator", "这不是文书问题"),
    delegate_response("essay", "还是写文书"),
    delegate_response("orchestrator", "仍然不是文书问题"),
]


async def _collect(stream):
    return [event async for event in stream]


# ── request / response ──────────────────────────────────────────────


@pytest.mark.asyncio
async def test_greeting_skips_the_model(orchestrator, llm, memory):
    response = await orchestrator.handle_message("u1", "你好")

    assert llm.call_count == 0
    assert response.agent_type is AgentType.ORCHESTRATOR
    assert response.data == {"fastRoute": True}
    assert await memory.list_conversations("u1") == []


@pytest.mark.asyncio
async def test_fast_route_starts_at_specialist(orchestrator, llm):
    llm.responses = [text_response("请把文书内容发给我")]

    response = await orchestrator.handle_message("u1", "请帮我润色文书")

    assert response.agent_type is AgentType.ESSAY
    assert "polish_essay" in [t.name for t in llm.chat_calls[0]["tools"]]


@pytest.mark.asyncio
async def test_unrouted_message_goes_to_orchestrator(orchestrator, llm):
    llm.responses = [text_response("我是留学助手，天气问题帮不上忙")]

    response = await orchestrator.handle_message("u1", UNROUTED)

    assert response.agent_type is AgentType.ORCHESTRATOR
    assert [t.name for t in llm.chat_calls[0]["tools"]] == ["delegate_to_agent", "search_cases"]


@pytest.mark.asyncio
async def test_single_delegation(orchestrator, llm, memory):
    llm.responses = [delegate_response("school", "推荐波士顿的学校"), text_response("推荐 BU 和 MIT")]

    response = await orchestrator.handle_message("u1", UNROUTED, conversation_id="c1")

    assert response.agent_type is AgentType.SCHOOL
    assert response.message == "推荐 BU 和 MIT"
    conversation = await memory.get_or_create_conversation("u1", "c1")
    note = next(m for m in conversation.messages if m.role is Role.SYSTEM)
    assert note.content == "委派给 school 处理: 推荐波士顿的学校"
    # the specialist sees the delegation note
    assert llm.chat_calls[1]["messages"][-1].role is Role.SYSTEM


@pytest.mark.asyncio
async def test_delegation_chain_is_cut_at_max_depth(orchestrator, llm):
    llm.responses = list(PING_PONG)

    response = await orchestrator.handle_message("u1", UNROUTED)

    assert len(llm.chat_calls) == 4
    assert response.message == DELEGATION_TOO_DEEP_MESSAGE
    assert response.data == {"error": "delegation_depth_exceeded", "depth": 4}


@pytest.mark.asyncio
async def test_history_is_in_insertion_order(orchestrator, llm):
    llm.responses = [text_response("第一条回复"), text_response("第二条回复")]

    await orchestrator.handle_message("u1", UNROUTED, conversation_id="c1")
    await orchestrator.handle_message("u1", "那明天呢", conversation_id="c1")

    history = await orchestrator.get_history("u1", "c1")
    assert [m.content for m in history] == [UNROUTED, "第一条回复", "那明天呢", "第二条回复"]


@pytest.mark.asyncio
async def test_model_failure_returns_fallback(orchestrator, llm):
    llm.responses = [ConnectionError("ECONNRESET")]

    response = await orchestrator.handle_message("u1", UNROUTED)

    assert response.data["fallback"] is True
    assert response.data["category"] == "network"
    assert response.data["originalError"] == "ECONNRESET"


@pytest.mark.asyncio
async def test_call_agent_uses_agent_fallback(orchestrator, llm):
    llm.responses = [RuntimeError("boom")]

    response = await orchestrator.call_agent("u1", AgentType.ESSAY, "看看我的文书")

    assert response.message == AGENT_FALLBACKS[AgentType.ESSAY].message
    assert response.agent_type is AgentType.ESSAY


@pytest.mark.asyncio
async def test_call_agent_skips_routing(orchestrator, llm):
    llm.responses = [text_response("档案已读取")]

    response = await orchestrator.call_agent("u1", AgentType.PROFILE, "请帮我润色文书")

    assert response.agent_type is AgentType.PROFILE


@pytest.mark.asyncio
async def test_clear_conversation(orchestrator, llm):
    await orchestrator.handle_message("u1", UNROUTED, conversation_id="c1")

    assert await orchestrator.clear_conversation("u1", "c1") == 2
    assert await orchestrator.get_history("u1", "c1") == []


# ── streaming ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_stream_greeting(orchestrator, llm):
    events = await _collect(orchestrator.handle_message_stream("u1", "hi"))

    assert [e.type for e in events] == [StreamEventType.START, StreamEventType.CONTENT, StreamEventType.DONE]
    assert llm.call_count == 0


@pytest.mark.asyncio
async def test_stream_workflow_with_tool(orchestrator, llm):
    llm.responses = [tool_response("search_cases", {"schoolName": "MIT"})]
    llm.streams = [["暂时没有 MIT 的公开案例，", "可以换个学校试试。"]]

    events = await _collect(orchestrator.handle_message_stream("u1", UNROUTED))

    assert [e.type for e in events] == [
        StreamEventType.START,
        StreamEventType.TOOL_START,
        StreamEventType.TOOL_END,
        StreamEventType.CONTENT,
        StreamEventType.CONTENT,
        StreamEventType.DONE,
    ]
    start, _, tool_end, *_, done = events
    assert start.conversation_id is not None
    assert set(start.data["memoryContext"]) == {"recentMemories", "relevantFacts", "entities"}
    assert tool_end.tool == "search_cases"
    assert tool_end.tool_result["success"] is True
    assert done.response.message == "暂时没有 MIT 的公开案例，可以换个学校试试。"
    assert done.response.tools_used == ["search_cases"]


@pytest.mark.asyncio
async def test_stream_delegation_switches_agent(orchestrator, llm):
    llm.responses = [delegate_response("timeline", "整理截止日期"), text_response("ED 截止在 11 月 1 日")]

    events = await _collect(orchestrator.handle_message_stream("u1", UNROUTED))

    switch = next(e for e in events if e.type is StreamEventType.AGENT_SWITCH)
    assert switch.agent is AgentType.TIMELINE
    assert switch.data == {"task": "整理截止日期"}
    assert events[-1].type is StreamEventType.DONE
    assert events[-1].response.agent_type is AgentType.TIMELINE


@pytest.mark.asyncio
async def test_stream_delegation_chain_is_cut_at_max_depth(orchestrator, llm, memory):
    llm.responses = list(PING_PONG)

    events = await _collect(orchestrator.handle_message_stream("u1", UNROUTED))

    assert len(llm.chat_calls) == 4
    # the fourth delegation is refused before it is announced or recorded
    assert [e.type for e in events].count(StreamEventType.AGENT_SWITCH) == 3
    conversation = await memory.get_or_create_conversation("u1", events[0].conversation_id)
    assert sum(1 for m in conversation.messages if m.role is Role.SYSTEM) == 3
    error, done = events[-2:]
    assert error.type is StreamEventType.ERROR
    assert error.error == DELEGATION_TOO_DEEP
    assert done.type is StreamEventType.DONE
    assert done.response.data["depth"] == 4


@pytest.mark.asyncio
async def test_stream_failure_yields_error_then_done(orchestrator, llm):
    llm.responses = [ConnectionError("ECONNRESET")]

    events = await _collect(orchestrator.handle_message_stream("u1", UNROUTED))

    error, done = events[-2:]
    assert error.type is StreamEventType.ERROR
    assert done.type is StreamEventType.DONE
    assert error.error == done.response.message
    assert done.response.data["fallback"] is True


@pytest.mark.asyncio
async def test_stream_without_workflow_uses_runner(memory, runner, workflow, llm):
    orchestrator = Orchestrator(
        memory=memory,
        runner=runner,
        workflow=workflow,
        router=FastRouter(),
        fallback=FallbackService("production"),
        use_workflow=False,
    )
    llm.responses = [text_response("你好，请问需要什么帮助？")]

    events = await _collect(orchestrator.handle_message_stream("u1", UNROUTED))

    assert [e.type for e in events] == [StreamEventType.START, StreamEventType.CONTENT, StreamEventType.DONE]
    assert llm.stream_calls == []


@pytest.mark.asyncio
async def test_fast_routing_disabled(memory, runner, workflow, llm):
    orchestrator = Orchestrator(
        memory=memory,
        runner=runner,
        workflow=workflow,
        router=FastRouter(),
        fallback=FallbackService("production"),
        fast_routing=False,
    )

    response = await orchestrator.handle_message("u1", "你好")

    assert llm.call_count == 1
    assert response.agent_type is AgentType.ORCHESTRATOR


@pytest.mark.asyncio
async def test_stream_without_workflow_reports_tool_calls(memory, runner, workflow, llm):
    orchestrator = Orchestrator(
        memory=memory,
        runner=runner,
        workflow=workflow,
        router=FastRouter(),
        fallback=FallbackService("production"),
        use_workflow=False,
    )
    llm.responses = [tool_response("search_cases", {"schoolName": "MIT"}), text_response("暂时没有 MIT 的案例")]

    events = await _collect(orchestrator.handle_message_stream("u1", UNROUTED))

    assert [e.type for e in events] == [
        StreamEventType.START,
        StreamEventType.TOOL_START,
        StreamEventType.TOOL_END,
        StreamEventType.CONTENT,
        StreamEventType.DONE,
    ]
    assert events[2].tool == "search_cases"
    assert events[-1].response.tools_used == ["search_cases"]


# ── failing tools ───────────────────────────────────────────────────


class BrokenProfileHandler(ToolHandler):
    @property
    def category(self) -> str:
        return "profile"

    @property
    def methods(self) -> frozenset[str]:
        return frozenset({"get", "update"})

    async def execute(self, method: str, args: dict[str, Any], context: ToolContext) -> Any:
        raise RuntimeError("profile service down")


@pytest.mark.asyncio
async def test_handler_failure_still_yields_a_normal_response(memory, llm, resilience, agent_configs, workflow):
    registry = ToolRegistry()
    registry.register_handler(BrokenProfileHandler())
    runner = AgentRunner(llm, ToolExecutor(registry, resilience), memory, registry, resilience, agent_configs)
    orchestrator = Orchestrator(
        memory=memory,
        runner=runner,
        workflow=workflow,
        router=FastRouter(),
        fallback=FallbackService("production"),
    )
    llm.responses = [
        delegate_response("profile", "读取档案"),
        tool_response("get_profile"),
        text_response("档案暂时无法读取，请稍后再试"),
    ]

    response = await orchestrator.handle_message("u1", UNROUTED, conversation_id="c1")

    assert response.agent_type is AgentType.PROFILE
    assert response.message == "档案暂时无法读取，请稍后再试"
    assert "fallback" not in response.data
    conversation = await memory.get_or_create_conversation("u1", "c1")
    tool_message = next(m for m in conversation.messages if m.role is Role.TOOL)
    assert json.loads(tool_message.content) == {"error": "profile service down"}
