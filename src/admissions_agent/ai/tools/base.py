"""Tool definitions and the handler interface behind them."""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Optional

from admissions_agent.core.models import ProfileSnapshot

DELEGATE_HANDLER = "delegate"

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def parse_json_object(text: str) -> Optional[dict[str, Any]]:
    """Extract the outermost JSON object from model output, or None."""
    match = _JSON_OBJECT.search(text or "")
    if not match:
        return None
    try:
        value = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def reply_language(locale: str) -> str:
    return "\n\nRespond in English." if locale == "en" else ""


class ToolName(StrEnum):
    DELEGATE_TO_AGENT = "delegate_to_agent"

    GET_PROFILE = "get_profile"
    UPDATE_PROFILE = "update_profile"

    SEARCH_SCHOOLS = "search_schools"
    GET_SCHOOL_DETAILS = "get_school_details"
    COMPARE_SCHOOLS = "compare_schools"
    RECOMMEND_SCHOOLS = "recommend_schools"
    ANALYZE_ADMISSION_CHANCE = "analyze_admission_chance"

    GET_ESSAYS = "get_essays"
    REVIEW_ESSAY = "review_essay"
    POLISH_ESSAY = "polish_essay"
    GENERATE_OUTLINE = "generate_outline"
    BRAINSTORM_IDEAS = "brainstorm_ideas"

    SEARCH_CASES = "search_cases"

    GET_DEADLINES = "get_deadlines"
    CREATE_TIMELINE = "create_timeline"
    GET_PERSONAL_EVENTS = "get_personal_events"
    CREATE_PERSONAL_EVENT = "create_personal_event"


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    parameters: dict[str, Any]
    handler: str  # "category.method" or "delegate"

    @property
    def category(self) -> str:
        return self.handler.split(".", 1)[0]

    @property
    def method(self) -> str:
        return self.handler.split(".", 1)[1] if "." in self.handler else ""

    def to_api_dict(self) -> dict[str, Any]:
        """Serialize to the Anthropic API tool definition format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters,
        }


@dataclass
class ToolContext:
    """Per-call information handlers may need besides their arguments."""

    user_id: str
    locale: str = "zh"
    profile: Optional[ProfileSnapshot] = None
    conversation_id: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)


class ToolHandler(ABC):
    """A dispatch table for one handler category (profile, school, ...)."""

    @property
    @abstractmethod
    def category(self) -> str:
        """Category prefix used in ToolDefinition.handler."""
        ...

    @property
    @abstractmethod
    def methods(self) -> frozenset[str]:
        """Methods this handler can execute."""
        ...

    @abstractmethod
    async def execute(self, method: str, args: dict[str, Any], context: ToolContext) -> Any:
        """Run one method and return a JSON-serialisable result."""
        ...
