"""Timeline tool handler: deadlines, generated plans and personal events."""

from __future__ import annotations

from typing import Any

from admissions_agent.ai.client import LLMClient
from admissions_agent.ai.tools.base import ToolContext, ToolHandler, parse_json_object, reply_language
from admissions_agent.storage.admissions_repo import AdmissionsRepository
from admissions_agent.storage.models import PersonalEventRecord, SchoolRecord

PERSONAL_TASK_TEMPLATES: dict[str, list[str]] = {
    "COMPETITION": ["了解竞赛规则和要求", "报名注册", "备赛准备", "参加竞赛", "查看结果"],
    "TEST": ["报名注册", "制定备考计划", "完成模考练习", "参加考试", "送分"],
    "SUMMER_PROGRAM": ["研究项目/学校", "准备申请材料", "提交申请", "面试准备", "确认录取"],
    "INTERNSHIP": ["搜索实习机会", "准备简历/CV", "提交申请", "面试准备", "确认 Offer"],
    "ACTIVITY": ["了解活动详情", "报名/注册", "准备所需材料", "参与活动", "总结记录"],
    "MATERIAL": ["确认需要的材料清单", "联系相关人员/机构", "准备材料内容", "提交/寄送", "确认收到"],
    "OTHER": ["了解详情", "准备", "执行", "完成"],
}

_TIMELINE_PROMPT = """你是申请规划顾问。根据目标学校创建详细的申请时间线。

时间线应包括:
1. 标化考试准备和报名
2. 学校研究和选校
3. 文书写作时间
4. 推荐信联系
5. 各轮次申请截止
6. 面试准备

返回JSON格式:
{
  "timeline": [
    { "month": "2025年8月", "tasks": ["任务1", "任务2"] }
  ],
  "keyDates": [
    { "date": "2025-11-01", "event": "ED截止", "schools": ["学校1"] }
  ],
  "tips": ["建议1", "建议2"]
}"""


def _split(value: Any) -> list[str]:
    if not value:
        return []
    return [s.strip() for s in str(value).replace("，", ",").split(",") if s.strip()]


class TimelineToolHandler(ToolHandler):
    def __init__(self, repo: AdmissionsRepository, llm: LLMClient):
        self._repo = repo
        self._llm = llm

    @property
    def category(self) -> str:
        return "timeline"

    @property
    def methods(self) -> frozenset[str]:
        return frozenset({"deadlines", "create", "personal_events", "create_personal_event"})

    async def execute(self, method: str, args: dict[str, Any], context: ToolContext) -> Any:
        match method:
            case "deadlines":
                return await self._deadlines(args)
            case "create":
                return await self._create_timeline(args, context)
            case "personal_events":
                return await self._personal_events(context.user_id, args.get("category"))
            case "create_personal_event":
                return await self._create_personal_event(context.user_id, args)
            case _:
                raise ValueError(f"Unknown timeline method: {method}")

    async def _resolve_schools(self, args: dict[str, Any]) -> list[SchoolRecord]:
        schools = await self._repo.get_schools(_split(args.get("schoolIds")))
        seen = {s.id for s in schools}
        for name in _split(args.get("schoolNames")):
            school = await self._repo.find_school_by_name(name)
            if school is not None and school.id not in seen:
                schools.append(school)
                seen.add(school.id)
        return schools

    async def _deadlines(self, args: dict[str, Any]) -> dict[str, Any]:
        schools = await self._resolve_schools(args)
        if not schools:
            return {"error": "请提供学校ID或名称"}

        round_ = args.get("round")
        deadlines = []
        for school in schools:
            all_deadlines = school.deadlines
            deadlines.append(
                {
                    "school": school.name_zh or school.name,
                    "deadlines": (
                        {round_: all_deadlines.get(round_.lower())} if round_ else all_deadlines
                    ),
                }
            )
        return {"deadlines": deadlines}

    async def _create_timeline(self, args: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        targets = args.get("targetSchools")
        if not targets and context.profile is not None:
            targets = ", ".join(context.profile.target_schools)
        lines = [f"目标学校: {targets or '未指定'}"]
        if args.get("startDate"):
            lines.append(f"开始日期: {args['startDate']}")

        text = await self._llm.complete(
            _TIMELINE_PROMPT + reply_language(context.locale), "\n".join(lines), temperature=0.5
        )
        return parse_json_object(text) or {"timeline": text}

    async def _personal_events(self, user_id: str, category: str | None) -> dict[str, Any]:
        events = await self._repo.list_personal_events(user_id, category)
        if not events:
            return {"message": "暂无个人事件"}
        return {"count": len(events), "events": [e.to_dict() for e in events]}

    async def _create_personal_event(self, user_id: str, args: dict[str, Any]) -> dict[str, Any]:
        title = args.get("title")
        category = args.get("category")
        if not title:
            return {"error": "请提供事件名称"}
        if category not in PERSONAL_TASK_TEMPLATES:
            return {"error": f"无效的事件分类: {category}"}

        event = await self._repo.create_personal_event(
            PersonalEventRecord(
                id="",
                user_id=user_id,
                title=title,
                category=category,
                deadline=args.get("deadline"),
                event_date=args.get("eventDate"),
                description=args.get("description"),
                tasks=[
                    {"title": t, "sortOrder": i, "completed": False}
                    for i, t in enumerate(PERSONAL_TASK_TEMPLATES[category])
                ],
            )
        )
        return {"success": True, "event": event.to_dict()}
