"""Tests for the plan / execute / solve workflow."""

from __future__ import annotations

import json

import pytest
import pytest_asyncio
from conftest import delegate_response, text_response, tool_response

from admissions_agent.ai.client import LLMResponse
from admissions_agent.ai.workflow import StepStatus, WorkflowEventType, WorkflowPhase
from admissions_agent.core.models import Message, ToolCall
from admissions_agent.core.types import AgentType, Role


@pytest_asyncio.fixture
async def conversation(memory):
    conv = await memory.get_or_create_conversation("u1")
    await memory.add_message(conv, Message.create(Role.USER, "帮我分析一下档案"))
    return conv


async def _collect(workflow, config, conversation):
    return [event async for event in workflow.run_stream(config, conversation)]


@pytest.mark.asyncio
async def test_no_tools_answers_from_plan(workflow, agent_configs, conversation, llm):
    llm.responses = [text_response("你好，有什么可以帮你？")]

    events = await _collect(workflow, agent_configs[AgentType.PROFILE], conversation)

    assert [e.type for e in events] == [
        WorkflowEventType.PHASE_CHANGE,
        WorkflowEventType.PLAN_CONTENT,
        WorkflowEventType.DONE,
    ]
    assert events[-1].result.message == "你好，有什么可以帮你？"
    assert llm.stream_calls == []
    assert conversation.messages[-1].role is Role.ASSISTANT


@pytest.mark.asyncio
async def test_plan_execute_solve(workflow, agent_configs, seeded_repo, conversation, llm):
    llm.responses = [tool_response("get_profile", content="我先看看档案")]
    llm.streams = [["你的 GPA 3.8 ", "和 SAT 1500 都很有竞争力。"]]

    events = await _collect(workflow, agent_configs[AgentType.PROFILE], conversation)

    assert [e.type for e in events] == [
        WorkflowEventType.PHASE_CHANGE,
        WorkflowEventType.PHASE_CHANGE,
        WorkflowEventType.TOOL_START,
        WorkflowEventType.TOOL_END,
        WorkflowEventType.PHASE_CHANGE,
        WorkflowEventType.SOLVE_CONTENT,
        WorkflowEventType.SOLVE_CONTENT,
        WorkflowEventType.DONE,
    ]
    assert [e.phase for e in events if e.type is WorkflowEventType.PHASE_CHANGE] == [
        WorkflowPhase.PLAN,
        WorkflowPhase.EXECUTE,
        WorkflowPhase.SOLVE,
    ]
    result = events[-1].result
    assert result.message == "你的 GPA 3.8 和 SAT 1500 都很有竞争力。"
    assert result.tools_used == ["get_profile"]
    assert result.plan.steps[0].status is StepStatus.SUCCESS

    roles = [m.role for m in conversation.messages]
    assert roles == [Role.USER, Role.ASSISTANT, Role.TOOL, Role.ASSISTANT]
    assert conversation.messages[1].tool_calls[0].name == "get_profile"
    assert json.loads(conversation.messages[2].content)["gpa"] == 3.8

    assert len(llm.chat_calls) == 1
    assert "规划阶段" in llm.chat_calls[0]["system"]
    assert "总结阶段" in llm.stream_calls[0]["system"]


@pytest.mark.asyncio
async def test_duplicate_tool_calls_run_once(workflow, agent_configs, conversation, llm):
    llm.responses = [
        LLMResponse(
            content="",
            tool_calls=[ToolCall("a", "get_profile"), ToolCall("b", "get_profile")],
            finish_reason="tool_use",
        )
    ]
    llm.streams = [["档案目前为空，建议先补充 GPA 和标化成绩。"]]

    result = await workflow.run(agent_configs[AgentType.PROFILE], conversation)

    assert len(result.plan.steps) == 1
    assert [m.tool_call_id for m in conversation.messages if m.role is Role.TOOL] == ["a"]


@pytest.mark.asyncio
async def test_empty_stream_falls_back_to_chat(workflow, agent_configs, conversation, llm):
    llm.responses = [tool_response("get_profile"), text_response("档案为空，建议先补充 GPA 和标化成绩。")]
    llm.streams = [[]]

    result = await workflow.run(agent_configs[AgentType.PROFILE], conversation)

    assert result.message == "档案为空，建议先补充 GPA 和标化成绩。"
    assert len(llm.chat_calls) == 2
    assert llm.chat_calls[1]["tools"] is None
    assert conversation.messages[-1].content == result.message


@pytest.mark.asyncio
async def test_failed_step_is_recorded_and_solve_continues(workflow, agent_configs, conversation, llm):
    llm.responses = [tool_response("web_search", {"query": "MIT"})]
    llm.streams = [["搜索暂时不可用，我们先从你的档案入手分析。"]]

    result = await workflow.run(agent_configs[AgentType.SCHOOL], conversation)

    step = result.plan.steps[0]
    assert step.status is StepStatus.FAILED
    assert "Unknown tool" in step.error
    assert result.tools_used == []
    tool_message = next(m for m in conversation.messages if m.role is Role.TOOL)
    assert json.loads(tool_message.content) == {"error": step.error}
    assert result.message.startswith("搜索暂时不可用")


@pytest.mark.asyncio
async def test_delegation_ends_workflow(workflow, agent_configs, conversation, llm):
    llm.responses = [delegate_response("orchestrator", "需要选校建议")]

    result = await workflow.run(agent_configs[AgentType.ESSAY], conversation)
    response = result.to_response(AgentType.ESSAY)

    assert result.delegation.target is AgentType.ORCHESTRATOR
    assert response.delegated_to is AgentType.ORCHESTRATOR
    assert response.data["task"] == "需要选校建议"
    assert llm.stream_calls == []
    assert [m.role for m in conversation.messages] == [Role.USER]


@pytest.mark.asyncio
async def test_invalid_delegation_becomes_failed_step(workflow, agent_configs, conversation, llm):
    llm.responses = [delegate_response("timeline")]
    llm.streams = [["我只负责文书相关问题，规划问题请直接问我。"]]

    result = await workflow.run(agent_configs[AgentType.ESSAY], conversation)

    assert result.delegation is None
    assert result.plan.steps[0].status is StepStatus.FAILED
    assert result.plan.steps[0].error.startswith("Invalid agent: timeline")


@pytest.mark.asyncio
async def test_response_carries_workflow_data(workflow, agent_configs, conversation, llm):
    llm.responses = [tool_response("get_profile")]
    llm.streams = [["建议：\n1. 补充标化成绩\n2. 完善活动经历"]]

    result = await workflow.run(agent_configs[AgentType.PROFILE], conversation)
    response = result.to_response(AgentType.PROFILE)

    workflow_data = response.data["workflow"]
    assert workflow_data["steps"][0]["tool"] == "get_profile"
    assert workflow_data["steps"][0]["status"] == "success"
    assert set(workflow_data["timing"]) == {"planMs", "executeMs", "solveMs", "totalMs"}
    assert response.suggestions == ["补充标化成绩", "完善活动经历"]


@pytest.mark.asyncio
async def test_model_failure_surfaces_as_error_event(workflow, agent_configs, conversation, llm):
    llm.responses = [RuntimeError("model down")]

    events = await _collect(workflow, agent_configs[AgentType.PROFILE], conversation)

    assert events[-1].type is WorkflowEventType.ERROR
    assert events[-1].error == "model down"


@pytest.mark.asyncio
async def test_run_reraises_the_cause(workflow, agent_configs, conversation, llm):
    llm.responses = [ConnectionError("ECONNRESET")]

    with pytest.raises(ConnectionError):
        await workflow.run(agent_configs[AgentType.PROFILE], conversation)
