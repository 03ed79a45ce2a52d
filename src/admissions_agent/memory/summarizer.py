"""Rolling conversation summaries for long conversations."""

from __future__ import annotations

from dataclasses import dataclass, field

from admissions_agent.ai.client import LLMClient
from admissions_agent.ai.tools.base import parse_json_object
from admissions_agent.core.errors import LLMError
from admissions_agent.core.models import Message
from admissions_agent.core.types import Role
from admissions_agent.log import get_logger

logger = get_logger(__name__)

MAX_CHARS_PER_MESSAGE = 500

SUMMARY_PROMPT = """你是一个对话分析专家。分析留学咨询对话，提取关键信息。
输出格式为 JSON：
{
  "summary": "对话的简短摘要（2-3句话）",
  "keyTopics": ["讨论的主要话题"],
  "decisions": ["做出的决定，如选校、文书主题、竞赛计划等"],
  "nextSteps": ["建议的下一步行动"]
}"""

TOPIC_KEYWORDS = (
    "学校", "文书", "GPA", "活动", "推荐", "截止", "申请",
    "竞赛", "夏校", "实习", "考试", "材料", "时间线",
)


@dataclass
class ConversationSummary:
    summary: str
    key_topics: list[str] = field(default_factory=list)
    decisions: list[str] = field(default_factory=list)
    next_steps: list[str] = field(default_factory=list)

    def render(self) -> str:
        text = self.summary
        if self.decisions:
            text += "\n已做决定: " + "；".join(self.decisions)
        if self.next_steps:
            text += "\n下一步: " + "；".join(self.next_steps)
        return text


def _format_for_prompt(messages: list[Message]) -> str:
    lines = []
    for m in messages:
        if m.role not in (Role.USER, Role.ASSISTANT) or not m.content:
            continue
        who = "用户" if m.role is Role.USER else (m.agent_type.value if m.agent_type else "AI")
        content = m.content[:MAX_CHARS_PER_MESSAGE]
        if len(m.content) > MAX_CHARS_PER_MESSAGE:
            content += "..."
        lines.append(f"[{who}]: {content}")
    return "请分析以下留学咨询对话：\n\n" + "\n\n".join(lines)


def fallback_summary(messages: list[Message]) -> ConversationSummary:
    """Keyword digest used when the model is unavailable."""
    topics: list[str] = []
    for m in messages:
        if m.role is not Role.USER:
            continue
        for keyword in TOPIC_KEYWORDS:
            if keyword in m.content and keyword not in topics:
                topics.append(keyword)
    return ConversationSummary(
        summary=f"对话包含 {len(messages)} 条消息，主要讨论了 {'、'.join(topics) or '留学相关话题'}。",
        key_topics=topics,
    )


class ConversationSummarizer:
    def __init__(self, llm: LLMClient | None):
        self._llm = llm

    async def summarize(self, messages: list[Message], previous: str | None = None) -> ConversationSummary:
        if not messages:
            return ConversationSummary(summary=previous or "")
        if self._llm is None:
            return fallback_summary(messages)

        prompt = _format_for_prompt(messages)
        if previous:
            prompt = f"之前的摘要：{previous}\n\n{prompt}"

        try:
            text = await self._llm.complete(SUMMARY_PROMPT, prompt, temperature=0.3, max_tokens=1500)
        except LLMError as exc:
            logger.warning("summary_llm_failed", error=str(exc), message_count=len(messages))
            return fallback_summary(messages)

        parsed = parse_json_object(text)
        if parsed is None or not parsed.get("summary"):
            return fallback_summary(messages)
        return ConversationSummary(
            summary=str(parsed["summary"]),
            key_topics=list(parsed.get("keyTopics") or []),
            decisions=list(parsed.get("decisions") or []),
            next_steps=list(parsed.get("nextSteps") or []),
        )
