"""System prompt assembly shared by the runner and the workflow engine."""

from __future__ import annotations

from datetime import date

from admissions_agent.ai.agents import AgentConfig, localized_system_prompt
from admissions_agent.core.models import ConversationState
from admissions_agent.memory.service import MemoryService

_SECTIONS = {
    "zh": {"date": "## 当前时间\n今天是 {date}", "user": "## 当前用户信息", "summary": "## 对话摘要"},
    "en": {"date": "## Current Date\nToday is {date}", "user": "## Current User Info", "summary": "## Conversation Summary"},
}


def format_date(day: date, locale: str) -> str:
    if locale == "en":
        return f"{day.strftime('%B')} {day.day}, {day.year}"
    return f"{day.year}年{day.month}月{day.day}日"


def build_system_prompt(
    config: AgentConfig,
    conversation: ConversationState,
    suffix: str = "",
    today: date | None = None,
) -> str:
    """Localized base prompt, current date, user context and rolling summary."""
    locale = conversation.locale
    sections = _SECTIONS.get(locale, _SECTIONS["zh"])
    day = today or date.today()

    prompt = localized_system_prompt(config, locale)
    prompt += "\n\n" + sections["date"].format(date=format_date(day, locale))
    prompt += f"\n\n{sections['user']}\n" + MemoryService.get_context_summary(conversation.context, locale)
    if conversation.summary:
        prompt += f"\n\n{sections['summary']}\n{conversation.summary}"
    return prompt + suffix
