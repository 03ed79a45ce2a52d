"""Tests for the single-agent tool loop."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
from conftest import delegate_response, text_response, tool_response

from admissions_agent.ai.runner import ITERATION_LIMIT_MESSAGE, AgentRunner, extract_suggestions, generate_actions
from admissions_agent.ai.tools.base import ToolContext, ToolHandler
from admissions_agent.ai.tools.executor import ToolExecutor
from admissions_agent.ai.tools.registry import ToolRegistry
from admissions_agent.core.errors import AgentNotFoundError
from admissions_agent.core.types import AgentType, Role, StreamEventType


@pytest.mark.asyncio
async def test_direct_answer(runner, memory, llm):
    llm.responses = [text_response("建议如下：\n1. 先完善档案\n2. 准备文书")]
    conversation = await memory.get_or_create_conversation("u1")

    response = await runner.run(AgentType.ORCHESTRATOR, conversation, "我该从哪里开始？")

    assert response.agent_type is AgentType.ORCHESTRATOR
    assert response.suggestions == ["先完善档案", "准备文书"]
    assert [a.action for a in response.actions] == ["navigate:/profile", "navigate:/essays"]
    assert [m.role for m in conversation.messages] == [Role.USER, Role.ASSISTANT]
    assert conversation.messages[1].agent_type is AgentType.ORCHESTRATOR


@pytest.mark.asyncio
async def test_tool_result_is_fed_back(runner, seeded_repo, memory, llm):
    llm.responses = [tool_response("get_profile"), text_response("你的 GPA 是 3.8")]
    conversation = await memory.get_or_create_conversation("u1")

    response = await runner.run(AgentType.PROFILE, conversation, "看看我的档案")

    assert response.message == "你的 GPA 是 3.8"
    assert response.tools_used == ["get_profile"]
    tool_message = conversation.messages[2]
    assert tool_message.role is Role.TOOL
    assert tool_message.tool_call_id == conversation.messages[1].tool_calls[0].id
    assert json.loads(tool_message.content)["gpa"] == 3.8
    # second model call sees the tool result
    assert llm.chat_calls[1]["messages"][-1].role is Role.TOOL


@pytest.mark.asyncio
async def test_iteration_cap(runner, memory, llm):
    llm.default = lambda: tool_response("get_profile")
    conversation = await memory.get_or_create_conversation("u1")

    response = await runner.run(AgentType.ESSAY, conversation, "帮我看看")

    assert len(llm.chat_calls) == 8
    assert response.message == ITERATION_LIMIT_MESSAGE
    assert response.tools_used == ["get_profile"]


@pytest.mark.asyncio
async def test_tool_error_does_not_stop_the_loop(runner, memory, llm):
    llm.responses = [tool_response("web_search", {"query": "MIT"}), text_response("暂时无法搜索")]
    conversation = await memory.get_or_create_conversation("u1")

    response = await runner.run(AgentType.SCHOOL, conversation, "搜一下MIT")

    assert response.message == "暂时无法搜索"
    tool_message = next(m for m in conversation.messages if m.role is Role.TOOL)
    assert "error" in json.loads(tool_message.content)


@pytest.mark.asyncio
async def test_delegation_stops_the_loop(runner, memory, llm):
    llm.responses = [delegate_response("orchestrator", "用户想聊选校")]
    conversation = await memory.get_or_create_conversation("u1")

    response = await runner.run(AgentType.ESSAY, conversation, "顺便帮我选校")

    assert response.delegated_to is AgentType.ORCHESTRATOR
    assert response.message == ""
    assert response.data["task"] == "用户想聊选校"
    assert len(llm.chat_calls) == 1


@pytest.mark.asyncio
async def test_delegation_outside_allowed_targets_is_a_tool_error(runner, memory, llm):
    llm.responses = [delegate_response("school"), text_response("我只能帮你处理文书")]
    conversation = await memory.get_or_create_conversation("u1")

    response = await runner.run(AgentType.ESSAY, conversation, "推荐学校")

    assert response.delegated_to is None
    assert response.message == "我只能帮你处理文书"
    tool_message = next(m for m in conversation.messages if m.role is Role.TOOL)
    assert json.loads(tool_message.content)["error"].startswith("Invalid agent: school")


@pytest.mark.asyncio
async def test_agent_tools_and_locale_reach_the_model(runner, memory, llm):
    conversation = await memory.get_or_create_conversation("u1", locale="en")

    await runner.run(AgentType.ESSAY, conversation, "Review my essay")

    call = llm.chat_calls[0]
    names = [t.name for t in call["tools"]]
    assert names[0] == "delegate_to_agent"
    assert "polish_essay" in names
    assert "search_schools" not in names
    assert "Please respond to the user in English." in call["system"]
    assert "Today is" in call["system"]


@pytest.mark.asyncio
async def test_model_errors_propagate(runner, memory, llm):
    llm.responses = [ConnectionError("ECONNRESET")]
    conversation = await memory.get_or_create_conversation("u1")

    with pytest.raises(ConnectionError):
        await runner.run(AgentType.ORCHESTRATOR, conversation, "你好呀，帮我看看申请")


def test_unknown_agent(runner):
    with pytest.raises(AgentNotFoundError):
        runner.config_for("forum")


def test_extract_suggestions_caps_at_five():
    text = "\n".join(f"{i}. 建议{i}" for i in range(1, 8))

    assert extract_suggestions(text) == [f"建议{i}" for i in range(1, 6)]


def test_generate_actions_matches_keywords():
    assert [a.label for a in generate_actions("学校排名很重要")] == ["查看排名"]
    assert generate_actions("没有关键词") == []


class HangingProfileHandler(ToolHandler):
    """Never returns."""

    @property
    def category(self) -> str:
        return "profile"

    @property
    def methods(self) -> frozenset[str]:
        return frozenset({"get", "update"})

    async def execute(self, method: str, args: dict[str, Any], context: ToolContext) -> Any:
        await asyncio.Event().wait()


@pytest.mark.asyncio
async def test_slow_tool_times_out(llm, memory, resilience, agent_configs):
    registry = ToolRegistry()
    registry.register_handler(HangingProfileHandler())
    runner = AgentRunner(
        llm, ToolExecutor(registry, resilience), memory, registry, resilience, agent_configs, tool_timeout=0.05
    )
    llm.responses = [tool_response("get_profile"), text_response("暂时读不到档案")]
    conversation = await memory.get_or_create_conversation("u1")

    response = await runner.run(AgentType.PROFILE, conversation, "看看我的档案")

    assert response.message == "暂时读不到档案"
    tool_message = next(m for m in conversation.messages if m.role is Role.TOOL)
    assert json.loads(tool_message.content) == {"error": "tool:get_profile timeout after 0.05s"}


@pytest.mark.asyncio
async def test_run_stream_reports_tool_calls(runner, seeded_repo, memory, llm):
    llm.responses = [tool_response("get_profile"), text_response("你的 GPA 是 3.8")]
    conversation = await memory.get_or_create_conversation("u1")

    events = [e async for e in runner.run_stream(AgentType.PROFILE, conversation, "看看我的档案")]

    assert [e.type for e in events] == [StreamEventType.TOOL_START, StreamEventType.TOOL_END, StreamEventType.DONE]
    assert events[1].tool == "get_profile"
    assert events[1].tool_result["success"] is True
    assert events[-1].response.message == "你的 GPA 是 3.8"
