"""Tests for converting stored messages to Anthropic API messages."""

from __future__ import annotations

from admissions_agent.ai.conversation import build_messages
from admissions_agent.core.models import Message, ToolCall
from admissions_agent.core.types import AgentType, Role


def test_plain_turns():
    history = [
        Message.create(Role.USER, "你好"),
        Message.create(Role.ASSISTANT, "你好！", agent_type=AgentType.ORCHESTRATOR),
    ]

    assert build_messages(history) == [
        {"role": "user", "content": "你好"},
        {"role": "assistant", "content": "你好！"},
    ]


def test_tool_exchange():
    call = ToolCall("call_1", "get_profile", {})
    history = [
        Message.create(Role.USER, "看看档案"),
        Message.create(Role.ASSISTANT, "我查一下", tool_calls=[call]),
        Message.create(Role.TOOL, '{"gpa": 3.8}', tool_call_id="call_1"),
        Message.create(Role.ASSISTANT, "GPA 3.8"),
    ]

    messages = build_messages(history)

    assert messages[1] == {
        "role": "assistant",
        "content": [
            {"type": "text", "text": "我查一下"},
            {"type": "tool_use", "id": "call_1", "name": "get_profile", "input": {}},
        ],
    }
    assert messages[2] == {
        "role": "user",
        "content": [{"type": "tool_result", "tool_use_id": "call_1", "content": '{"gpa": 3.8}'}],
    }
    assert messages[3] == {"role": "assistant", "content": "GPA 3.8"}


def test_unanswered_tool_call_is_dropped():
    call = ToolCall("call_1", "delegate_to_agent", {"agent": "essay", "task": "润色"})
    history = [
        Message.create(Role.USER, "帮我润色"),
        Message.create(Role.ASSISTANT, "", tool_calls=[call]),
        Message.create(Role.SYSTEM, "委派给 essay 处理: 润色"),
    ]

    assert build_messages(history) == [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": "帮我润色"},
                {"type": "text", "text": "[委派给 essay 处理: 润色]"},
            ],
        }
    ]


def test_orphan_tool_result_is_dropped():
    history = [
        Message.create(Role.TOOL, '{"gpa": 3.8}', tool_call_id="call_0"),
        Message.create(Role.ASSISTANT, "GPA 3.8"),
        Message.create(Role.USER, "谢谢"),
    ]

    # leading assistant turn is removed so the request starts with the user
    assert build_messages(history) == [{"role": "user", "content": "谢谢"}]
