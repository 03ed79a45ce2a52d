"""School tool handler: search, details, comparison, recommendation, admission chance."""

from __future__ import annotations

import re
from typing import Any

from admissions_agent.ai.client import LLMClient
from admissions_agent.ai.tools import scoring
from admissions_agent.ai.tools.base import ToolContext, ToolHandler, parse_json_object, reply_language
from admissions_agent.core.errors import LLMError
from admissions_agent.core.models import ProfileSnapshot
from admissions_agent.log import get_logger
from admissions_agent.storage.admissions_repo import AdmissionsRepository
from admissions_agent.storage.models import SchoolRecord

logger = get_logger(__name__)

_RANK_RANGE = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*$")

_CHANCE_PROMPT = """你是留学顾问，请分析学生申请该校的录取概率。

学生档案:
- GPA: {gpa}/{gpa_scale}
- 标化: {scores}
- 目标专业: {major}

学校信息:
- {school} (排名 #{rank})
- 录取率: {rate}

规则模型预估: {estimate}

返回JSON格式:
{{
  "chance": "high/medium/low",
  "percentage": "预估录取概率百分比",
  "analysis": "详细分析",
  "suggestions": ["提升建议1", "提升建议2"]
}}"""


def _split(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    return [s.strip() for s in str(value).replace("，", ",").split(",") if s.strip()]


def _format_rate(rate: float | None) -> str:
    return f"{rate:.1f}%" if rate is not None else "N/A"


def _format_money(amount: int | None) -> str:
    return f"${amount:,}" if amount is not None else "N/A"


def _display(school: SchoolRecord) -> dict[str, Any]:
    data = school.summary()
    data["acceptanceRate"] = _format_rate(school.acceptance_rate)
    data["tuition"] = _format_money(school.tuition)
    return data


class SchoolToolHandler(ToolHandler):
    def __init__(self, repo: AdmissionsRepository, llm: LLMClient):
        self._repo = repo
        self._llm = llm

    @property
    def category(self) -> str:
        return "school"

    @property
    def methods(self) -> frozenset[str]:
        return frozenset({"search", "details", "compare", "recommend", "admission_chance"})

    async def execute(self, method: str, args: dict[str, Any], context: ToolContext) -> Any:
        match method:
            case "search":
                return await self._search(args)
            case "details":
                return await self._details(args.get("schoolId"), args.get("schoolName"))
            case "compare":
                return await self._compare(args)
            case "recommend":
                return await self._recommend(args, context)
            case "admission_chance":
                return await self._admission_chance(args, context)
            case _:
                raise ValueError(f"Unknown school method: {method}")

    async def _find(self, school_id: str | None, school_name: str | None) -> SchoolRecord | None:
        if school_id:
            school = await self._repo.get_school(school_id)
            if school is not None:
                return school
        if school_name:
            return await self._repo.find_school_by_name(school_name)
        return None

    async def _profile(self, context: ToolContext) -> ProfileSnapshot | None:
        return context.profile or await self._repo.get_profile(context.user_id)

    async def _search(self, args: dict[str, Any]) -> dict[str, Any]:
        rank_min = rank_max = None
        if args.get("rankRange"):
            match = _RANK_RANGE.match(str(args["rankRange"]))
            if not match:
                return {"error": '排名范围格式应为 "起始-结束"，如 "1-20"'}
            rank_min, rank_max = int(match.group(1)), int(match.group(2))

        max_tuition = args.get("maxTuition")
        schools = await self._repo.search_schools(
            query=args.get("query"),
            rank_min=rank_min,
            rank_max=rank_max,
            max_tuition=int(max_tuition) if max_tuition else None,
            state=args.get("state"),
        )
        return {"count": len(schools), "schools": [_display(s) for s in schools]}

    async def _details(self, school_id: str | None, school_name: str | None) -> dict[str, Any]:
        school = await self._find(school_id, school_name)
        if school is None:
            return {"error": "未找到该学校"}
        data = school.to_dict()
        data["acceptanceRate"] = _format_rate(school.acceptance_rate)
        data["tuition"] = _format_money(school.tuition)
        return data

    async def _compare(self, args: dict[str, Any]) -> dict[str, Any]:
        schools = await self._repo.get_schools(_split(args.get("schoolIds")))
        known = {s.id for s in schools}
        for name in _split(args.get("schoolNames")):
            school = await self._repo.find_school_by_name(name)
            if school is not None and school.id not in known:
                schools.append(school)
                known.add(school.id)

        if not schools:
            return {"error": "请提供要对比的学校ID或名称"}

        return {
            "aspects": _split(args.get("aspects")) or ["ranking", "tuition", "admission", "location"],
            "comparison": [
                {
                    "name": s.name,
                    "nameZh": s.name_zh,
                    "rank": s.us_news_rank,
                    "acceptanceRate": _format_rate(s.acceptance_rate),
                    "tuition": _format_money(s.tuition),
                    "state": s.state,
                    "satRange": f"{s.sat_25}-{s.sat_75}" if s.sat_25 and s.sat_75 else None,
                }
                for s in schools
            ],
        }

    async def _recommend(self, args: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        profile = await self._profile(context)
        if profile is None or (profile.gpa is None and not profile.test_scores):
            return {"error": "请先完善档案信息（GPA或标化成绩）以获取推荐"}

        count = int(args.get("count") or 9)
        preference = args.get("preference")
        tiers: dict[str, list[dict[str, Any]]] = {"reach": [], "match": [], "safety": []}

        for school in await self._repo.list_ranked_schools():
            if preference and preference not in school.metadata.get("tags", []):
                continue
            est = scoring.estimate(profile, school)
            tiers[est.tier].append(
                {
                    "id": school.id,
                    "name": school.name,
                    "nameZh": school.name_zh,
                    "rank": school.us_news_rank,
                    "probability": round(est.probability, 2),
                    "reason": f"录取率 {_format_rate(school.acceptance_rate)}，预估录取概率 {est.probability:.0%}",
                }
            )

        per_tier = max(1, count // 3)
        # Reach schools closest to a match first; the others by rank.
        tiers["reach"].sort(key=lambda s: -s["probability"])
        return {
            "academicScore": round(scoring.academic_score(profile), 1),
            "preference": preference,
            "reach": tiers["reach"][:per_tier],
            "match": tiers["match"][:per_tier],
            "safety": tiers["safety"][:per_tier],
        }

    async def _admission_chance(self, args: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        school = await self._find(args.get("schoolId"), args.get("schoolName"))
        if school is None:
            return {"error": "未找到该学校"}
        profile = await self._profile(context)
        if profile is None:
            return {"error": "用户档案为空，请先完善档案信息"}

        est = scoring.estimate(profile, school)
        prompt = _CHANCE_PROMPT.format(
            gpa=profile.gpa or "N/A",
            gpa_scale=profile.gpa_scale,
            scores=", ".join(f"{s['type']}: {s['score']}" for s in profile.test_scores) or "N/A",
            major=profile.target_major or "N/A",
            school=school.name,
            rank=school.us_news_rank or "N/A",
            rate=_format_rate(school.acceptance_rate),
            estimate=f"{est.probability:.0%} ({est.tier})",
        )
        try:
            text = await self._llm.complete(prompt + reply_language(context.locale), "请分析录取概率", temperature=0.5)
        except LLMError as exc:
            logger.warning("admission_chance_llm_failed", school=school.name, error=str(exc))
            return {"school": school.name, "source": "rule", **est.to_dict()}

        parsed = parse_json_object(text)
        if parsed is None:
            return {"school": school.name, "analysis": text, **est.to_dict()}
        return {"school": school.name, "estimate": est.to_dict(), **parsed}
