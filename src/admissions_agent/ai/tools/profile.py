"""Profile tool handler."""

from __future__ import annotations

from typing import Any

from admissions_agent.ai.tools.base import ToolContext, ToolHandler
from admissions_agent.core.models import ProfileSnapshot
from admissions_agent.log import get_logger
from admissions_agent.storage.admissions_repo import AdmissionsRepository

logger = get_logger(__name__)

UPDATABLE_FIELDS = ("targetMajor", "targetSchools", "budgetTier")


def profile_to_dict(profile: ProfileSnapshot) -> dict[str, Any]:
    return {
        "gpa": profile.gpa,
        "gpaScale": profile.gpa_scale,
        "grade": profile.grade,
        "targetMajor": profile.target_major,
        "targetSchools": profile.target_schools,
        "budgetTier": profile.budget_tier,
        "testScores": profile.test_scores,
        "activities": profile.activities,
        "awards": profile.awards,
    }


class ProfileToolHandler(ToolHandler):
    def __init__(self, repo: AdmissionsRepository):
        self._repo = repo

    @property
    def category(self) -> str:
        return "profile"

    @property
    def methods(self) -> frozenset[str]:
        return frozenset({"get", "update"})

    async def execute(self, method: str, args: dict[str, Any], context: ToolContext) -> Any:
        match method:
            case "get":
                return await self._get(context.user_id)
            case "update":
                return await self._update(context.user_id, args.get("field", ""), args.get("value"))
            case _:
                raise ValueError(f"Unknown profile method: {method}")

    async def _get(self, user_id: str) -> dict[str, Any]:
        profile = await self._repo.get_profile(user_id)
        if profile is None:
            return {"message": "用户档案为空，建议先完善档案信息"}
        return profile_to_dict(profile)

    async def _update(self, user_id: str, field: str, value: Any) -> dict[str, Any]:
        if field not in UPDATABLE_FIELDS:
            return {"error": f"不允许更新字段: {field}"}
        if value is None or value == "":
            return {"error": "请提供新的值"}

        if field == "targetSchools" and isinstance(value, str):
            value = [s.strip() for s in value.replace("，", ",").split(",") if s.strip()]

        updated = await self._repo.update_profile_field(user_id, field, value)
        if not updated:
            return {"error": "用户档案不存在，请先创建档案"}

        logger.info("profile_updated", user_id=user_id, field=field)
        return {"success": True, "field": field, "value": value, "message": f"已更新 {field}"}
