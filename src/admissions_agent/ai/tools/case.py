"""Admission case lookup."""

from __future__ import annotations

from typing import Any

from admissions_agent.ai.tools.base import ToolContext, ToolHandler
from admissions_agent.storage.admissions_repo import AdmissionsRepository


class CaseToolHandler(ToolHandler):
    def __init__(self, repo: AdmissionsRepository):
        self._repo = repo

    @property
    def category(self) -> str:
        return "case"

    @property
    def methods(self) -> frozenset[str]:
        return frozenset({"search"})

    async def execute(self, method: str, args: dict[str, Any], context: ToolContext) -> Any:
        if method != "search":
            raise ValueError(f"Unknown case method: {method}")

        year = args.get("year")
        cases = await self._repo.search_cases(
            school_name=args.get("schoolName"),
            major=args.get("major"),
            year=int(year) if year else None,
            gpa_range=args.get("gpaRange"),
        )
        if not cases:
            return {"message": "未找到匹配的案例"}
        return {"count": len(cases), "cases": [c.to_dict() for c in cases]}
