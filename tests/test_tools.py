"""Tests for the domain tool handlers and rule-based scoring."""

from __future__ import annotations

import pytest
from conftest import text_response

from admissions_agent.ai.tools import scoring
from admissions_agent.ai.tools.base import ToolContext, parse_json_object
from admissions_agent.ai.tools.essay import EssayToolHandler
from admissions_agent.ai.tools.profile import ProfileToolHandler
from admissions_agent.ai.tools.school import SchoolToolHandler
from admissions_agent.ai.tools.timeline import PERSONAL_TASK_TEMPLATES, TimelineToolHandler
from admissions_agent.core.errors import LLMError
from admissions_agent.storage.models import EssayRecord, SchoolRecord


@pytest.fixture
def ctx() -> ToolContext:
    return ToolContext(user_id="u1")


# ── scoring ─────────────────────────────────────────────────────────


def test_overall_score_without_school(sample_profile):
    assert scoring.academic_score(sample_profile) == pytest.approx(80.5)
    assert scoring.activity_score(sample_profile) == pytest.approx(42.0)
    assert scoring.award_score(sample_profile) == pytest.approx(35.0)
    assert scoring.overall_score(sample_profile) == pytest.approx(59.85)


def test_selective_school_is_a_reach(sample_profile):
    mit = SchoolRecord(id="mit", name="MIT", acceptance_rate=3.9, sat_25=1520, sat_75=1580)

    est = scoring.estimate(sample_profile, mit)

    assert est.tier == "reach"
    assert est.probability == pytest.approx(0.05)
    assert est.to_dict()["chance"] == "low"


def test_open_school_is_a_safety(sample_profile):
    asu = SchoolRecord(id="asu", name="ASU", acceptance_rate=89.0, sat_25=1120, sat_75=1360)

    est = scoring.estimate(sample_profile, asu)

    assert est.tier == "safety"
    assert est.probability == pytest.approx(0.95)
    assert est.to_dict()["percentage"] == "95%"


@pytest.mark.parametrize(
    "probability, tier",
    [(0.29, "reach"), (0.3, "match"), (0.7, "match"), (0.71, "safety")],
)
def test_tier_boundaries(probability, tier):
    assert scoring.tier_for(probability) == tier


def test_parse_json_object_ignores_surrounding_text():
    assert parse_json_object('好的：\n{"a": 1}\n以上') == {"a": 1}
    assert parse_json_object("没有 JSON") is None


# ── profile ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_get_empty_profile(admissions_repo, ctx):
    result = await ProfileToolHandler(admissions_repo).execute("get", {}, ctx)

    assert "message" in result


@pytest.mark.asyncio
async def test_update_target_schools(seeded_repo, ctx):
    handler = ProfileToolHandler(seeded_repo)

    result = await handler.execute("update", {"field": "targetSchools", "value": "MIT，BU"}, ctx)
    profile = await handler.execute("get", {}, ctx)

    assert result["success"] is True
    assert profile["targetSchools"] == ["MIT", "BU"]
    assert profile["testScores"][0]["type"] == "SAT"


@pytest.mark.asyncio
async def test_update_rejects_other_fields(seeded_repo, ctx):
    result = await ProfileToolHandler(seeded_repo).execute("update", {"field": "gpa", "value": "4.0"}, ctx)

    assert result == {"error": "不允许更新字段: gpa"}


# ── school ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_search_by_rank_range(seeded_repo, llm, ctx):
    result = await SchoolToolHandler(seeded_repo, llm).execute("search", {"rankRange": "1-50"}, ctx)

    assert [s["id"] for s in result["schools"]] == ["mit", "bu"]
    assert result["schools"][0]["acceptanceRate"] == "3.9%"
    assert result["schools"][1]["tuition"] == "$65,168"


@pytest.mark.asyncio
async def test_search_rejects_bad_rank_range(seeded_repo, llm, ctx):
    result = await SchoolToolHandler(seeded_repo, llm).execute("search", {"rankRange": "top 20"}, ctx)

    assert "error" in result


@pytest.mark.asyncio
async def test_details_by_chinese_name(seeded_repo, llm, ctx):
    result = await SchoolToolHandler(seeded_repo, llm).execute("details", {"schoolName": "波士顿"}, ctx)

    assert result["id"] == "bu"
    assert result["satRange"] == "1370-1510"
    assert result["deadlines"] == {"ed": "11-01", "rd": "01-04"}


@pytest.mark.asyncio
async def test_compare_by_ids_and_names(seeded_repo, llm, ctx):
    result = await SchoolToolHandler(seeded_repo, llm).execute(
        "compare", {"schoolIds": "mit", "schoolNames": "Arizona State, 麻省理工"}, ctx
    )

    assert [s["name"] for s in result["comparison"]] == [
        "Massachusetts Institute of Technology",
        "Arizona State University",
    ]
    assert result["aspects"] == ["ranking", "tuition", "admission", "location"]


@pytest.mark.asyncio
async def test_recommend_groups_by_tier(seeded_repo, llm, ctx):
    result = await SchoolToolHandler(seeded_repo, llm).execute("recommend", {}, ctx)

    assert [s["id"] for s in result["reach"]] == ["bu", "mit"]
    assert result["match"] == []
    assert [s["id"] for s in result["safety"]] == ["asu"]


@pytest.mark.asyncio
async def test_recommend_needs_a_profile(admissions_repo, llm, ctx):
    result = await SchoolToolHandler(admissions_repo, llm).execute("recommend", {}, ctx)

    assert "error" in result


@pytest.mark.asyncio
async def test_admission_chance_merges_model_analysis(seeded_repo, llm, ctx):
    llm.responses = [text_response('{"chance": "low", "percentage": "5%", "analysis": "竞争激烈"}')]

    result = await SchoolToolHandler(seeded_repo, llm).execute("admission_chance", {"schoolId": "mit"}, ctx)

    assert result["school"] == "Massachusetts Institute of Technology"
    assert result["analysis"] == "竞争激烈"
    assert result["estimate"]["tier"] == "reach"


@pytest.mark.asyncio
async def test_admission_chance_falls_back_to_rules(seeded_repo, llm, ctx):
    llm.responses = [LLMError("InternalServerError 500: overloaded")]

    result = await SchoolToolHandler(seeded_repo, llm).execute("admission_chance", {"schoolId": "asu"}, ctx)

    assert result["source"] == "rule"
    assert result["tier"] == "safety"


# ── timeline ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_deadlines_for_round(seeded_repo, llm, ctx):
    result = await TimelineToolHandler(seeded_repo, llm).execute(
        "deadlines", {"schoolNames": "波士顿大学", "round": "ED"}, ctx
    )

    assert result == {"deadlines": [{"school": "波士顿大学", "deadlines": {"ED": "11-01"}}]}


@pytest.mark.asyncio
async def test_create_timeline_parses_model_json(seeded_repo, llm, ctx):
    llm.responses = [text_response('{"timeline": [{"month": "2025年8月", "tasks": ["备考"]}], "tips": []}')]

    result = await TimelineToolHandler(seeded_repo, llm).execute("create", {"targetSchools": "MIT"}, ctx)

    assert result["timeline"][0]["tasks"] == ["备考"]
    assert "目标学校: MIT" in llm.chat_calls[0]["messages"][0].content


@pytest.mark.asyncio
async def test_personal_event_is_seeded_with_tasks(seeded_repo, llm, ctx):
    handler = TimelineToolHandler(seeded_repo, llm)

    created = await handler.execute(
        "create_personal_event", {"title": "12月 SAT", "category": "TEST", "eventDate": "2025-12-06"}, ctx
    )
    listed = await handler.execute("personal_events", {"category": "TEST"}, ctx)

    tasks = created["event"]["tasks"]
    assert [t["title"] for t in tasks] == PERSONAL_TASK_TEMPLATES["TEST"]
    assert tasks[0] == {"title": "报名注册", "sortOrder": 0, "completed": False}
    assert listed["count"] == 1
    assert listed["events"][0]["title"] == "12月 SAT"


@pytest.mark.asyncio
async def test_personal_event_rejects_unknown_category(seeded_repo, llm, ctx):
    result = await TimelineToolHandler(seeded_repo, llm).execute(
        "create_personal_event", {"title": "x", "category": "PARTY"}, ctx
    )

    assert result == {"error": "无效的事件分类: PARTY"}


# ── essay ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_list_essays(admissions_repo, llm, ctx):
    await admissions_repo.save_essay(
        EssayRecord(id="e1", user_id="u1", title="Common App", content="I built a robot in my garage")
    )

    result = await EssayToolHandler(admissions_repo, llm).execute("list", {}, ctx)

    assert result["count"] == 1
    assert result["essays"][0]["wordCount"] == 7


@pytest.mark.asyncio
async def test_review_saved_essay(admissions_repo, llm, ctx):
    await admissions_repo.save_essay(
        EssayRecord(id="e1", user_id="u1", title="Common App", prompt="Tell us a story", content="My essay")
    )
    llm.responses = [text_response('{"score": 7, "summary": "不错"}')]

    result = await EssayToolHandler(admissions_repo, llm).execute("review", {"essayId": "e1"}, ctx)

    assert result == {"score": 7, "summary": "不错"}
    assert "题目: Tell us a story" in llm.chat_calls[0]["messages"][0].content


@pytest.mark.asyncio
async def test_polish_defaults_to_formal_and_keeps_plain_text(admissions_repo, llm):
    llm.responses = [text_response("Polished essay text")]
    ctx = ToolContext(user_id="u1", locale="en")

    result = await EssayToolHandler(admissions_repo, llm).execute(
        "polish", {"content": "draft", "style": "funny"}, ctx
    )

    assert result == {"style": "formal", "polished": "Polished essay text"}
    assert llm.chat_calls[0]["system"].endswith("Respond in English.")


@pytest.mark.asyncio
async def test_outline_needs_a_prompt(admissions_repo, llm, ctx):
    result = await EssayToolHandler(admissions_repo, llm).execute("outline", {}, ctx)

    assert result == {"error": "请提供文书题目"}
    assert llm.call_count == 0
