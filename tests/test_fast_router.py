"""Tests for keyword/pattern fast routing."""

from __future__ import annotations

import pytest

from admissions_agent.ai.fast_router import FastRouter
from admissions_agent.core.types import AgentType


@pytest.fixture
def router() -> FastRouter:
    return FastRouter()


def test_greeting_is_simple_qa(router):
    result = router.route("你好")

    assert result.agent is None
    assert result.confidence == 1.0
    assert result.matched_keywords == ["simple_qa"]
    assert result.should_use_llm is False
    assert router.get_simple_response("你好！").startswith("你好！我是你的留学申请助手")


def test_thanks_is_simple_qa(router):
    assert router.get_simple_response("谢谢你") == "不客气！还有其他申请问题随时问我。"
    assert router.get_simple_response("Thanks!") == "不客气！还有其他申请问题随时问我。"


def test_long_message_is_never_simple_qa(router):
    assert router.get_simple_response("hello, can you help me choose schools for next year") is None


def test_essay_polish_routes_without_llm(router):
    result = router.route("请帮我润色文书")

    assert result.agent is AgentType.ESSAY
    assert result.should_use_llm is False
    assert result.confidence >= 0.7
    assert "文书" in result.matched_keywords
    assert "润色" in result.matched_keywords


def test_school_recommendation_routes_without_llm(router):
    result = router.route("推荐学校并对比录取率")

    assert result.agent is AgentType.SCHOOL
    assert result.should_use_llm is False
    assert result.confidence == pytest.approx(0.9)


def test_deadline_question_routes_to_timeline(router):
    result = router.route("ED截止日期是什么时候")

    assert result.agent is AgentType.TIMELINE
    assert result.should_use_llm is False


def test_weak_match_keeps_best_agent_but_uses_llm(router):
    result = router.route("我想了解一下排名")

    assert result.agent is AgentType.SCHOOL
    assert result.confidence == pytest.approx(0.15 * 0.9)
    assert result.should_use_llm is True


def test_no_match(router):
    result = router.route("今天天气怎么样")

    assert result.agent is None
    assert result.confidence == 0.0
    assert result.should_use_llm is True


def test_threshold_is_configurable():
    strict = FastRouter(threshold=0.95)

    assert strict.route("请帮我润色文书").should_use_llm is True


def test_extract_intent_keywords(router):
    assert router.extract_intent_keywords("请帮我润色文书") == ["文书", "润色"]


def test_needs_tool_call(router):
    assert router.needs_tool_call("帮我查一下MIT的信息") is True
    assert router.needs_tool_call("你好") is False
