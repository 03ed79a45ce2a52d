"""Keyword and pattern router that skips the model for high-confidence intents."""

from __future__ import annotations

import re
from dataclasses import dataclass

from admissions_agent.core.models import RoutingResult
from admissions_agent.core.types import AgentType
from admissions_agent.log import get_logger

logger = get_logger(__name__)

PATTERN_WEIGHT = 0.5
KEYWORD_WEIGHT = 0.15
MULTI_MATCH_BONUS = 0.2
MULTI_MATCH_MIN = 3
SIMPLE_QA_MAX_LENGTH = 20
CONFIDENCE_THRESHOLD = 0.7


@dataclass(frozen=True)
class RoutingRule:
    agent: AgentType
    confidence: float
    keywords: tuple[str, ...]
    patterns: tuple[re.Pattern[str], ...]


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


ROUTING_RULES: tuple[RoutingRule, ...] = (
    RoutingRule(
        agent=AgentType.ESSAY,
        confidence=0.9,
        keywords=(
            "文书", "essay", "ps", "个人陈述", "personal statement", "润色", "修改",
            "评估", "写作", "大纲", "outline", "brainstorm", "头脑风暴", "续写", "补充",
            "supplement", "为什么选择", "why", "活动描述", "activity",
        ),
        patterns=_compile(
            r"帮我(写|修改|润色|评估|分析)(一下)?.*文书",
            r"文书.*怎么写",
            r"(review|polish|edit).*essay",
            r"how.*write.*essay",
        ),
    ),
    RoutingRule(
        agent=AgentType.SCHOOL,
        confidence=0.9,
        keywords=(
            "选校", "学校推荐", "推荐学校", "录取率", "录取概率", "排名", "ranking", "对比",
            "比较", "哪个学校", "申请难度", "竞争", "匹配度", "保底", "冲刺", "top", "藤校",
            "ivy", "常春藤", "公立", "私立",
        ),
        patterns=_compile(
            r"推荐.*学校",
            r".*学校.*怎么样",
            r"(我|我的).*录取(概率|机会|可能)",
            r"哪(个|些|所)学校",
            r".*学校.*对比",
            r"recommend.*school",
        ),
    ),
    RoutingRule(
        agent=AgentType.PROFILE,
        confidence=0.9,
        keywords=(
            "档案", "背景", "竞争力", "gpa", "成绩", "活动", "提升", "软实力", "硬实力",
            "短板", "优势", "分析", "评估", "定位", "亮点", "科研", "实习",
        ),
        patterns=_compile(
            r"(我的|分析.*)(档案|背景|竞争力)",
            r"怎么(提升|提高|增强)",
            r"我.*有.*优势",
            r"profile.*analy",
        ),
    ),
    RoutingRule(
        agent=AgentType.TIMELINE,
        confidence=0.9,
        keywords=(
            "时间", "规划", "计划", "截止", "deadline", "日期", "ed", "ea", "rd", "提前",
            "常规", "什么时候", "还来得及", "进度", "时间线", "timeline",
        ),
        patterns=_compile(
            r"(申请)?时间(线|表|规划)",
            r"截止(日期|时间)",
            r"什么时候(提交|申请|准备)",
            r"来得及",
            r"deadline",
        ),
    ),
)

SIMPLE_QA: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(r"^(你好|您好|嗨|哈喽|hi|hello|hey)[\s!！。.~～]*$", re.IGNORECASE),
        "你好！我是你的留学申请助手，可以帮你选校、写文书、分析背景和规划申请时间线。有什么可以帮你的吗？",
    ),
    (
        re.compile(r"^(谢谢|多谢|感谢|谢啦|thanks|thank you|thx)[\s!！。.~～]*(你|您)?[\s!！。.~～]*$", re.IGNORECASE),
        "不客气！还有其他申请问题随时问我。",
    ),
)

_TOOL_INDICATORS = _compile(
    r"查(询|找|看|一下)",
    r"有(哪些|什么|多少)",
    r"列(出|举)",
    r"搜索",
    r"分析|评估|预测|计算",
    r"写|生成|创建|制定",
    r"对比|比较|哪个更",
)


class FastRouter:
    """Routes messages to a specialist agent without a model call when confident."""

    def __init__(
        self,
        threshold: float = CONFIDENCE_THRESHOLD,
        rules: tuple[RoutingRule, ...] = ROUTING_RULES,
    ):
        self._threshold = threshold
        self._rules = rules

    def route(self, message: str) -> RoutingResult:
        normalized = message.lower().strip()

        if self._check_simple_qa(normalized) is not None:
            return RoutingResult(
                agent=None, confidence=1.0, matched_keywords=["simple_qa"], should_use_llm=False
            )

        best: RoutingResult | None = None
        for rule in self._rules:
            score, matched = self._match_rule(normalized, rule)
            if score <= 0:
                continue
            confidence = min(score * rule.confidence, 1.0)
            if best is None or confidence > best.confidence:
                best = RoutingResult(agent=rule.agent, confidence=confidence, matched_keywords=matched)

        if best is not None and best.confidence >= self._threshold:
            logger.debug(
                "fast_route",
                agent=best.agent,
                confidence=round(best.confidence, 2),
                keywords=best.matched_keywords,
            )
            best.should_use_llm = False
            return best

        if best is None:
            return RoutingResult(agent=None, confidence=0.0)
        return best

    def get_simple_response(self, message: str) -> str | None:
        return self._check_simple_qa(message.lower().strip())

    def extract_intent_keywords(self, message: str) -> list[str]:
        """Rule keywords found in the message, deduplicated in rule order."""
        normalized = message.lower()
        found: list[str] = []
        for rule in self._rules:
            for keyword in rule.keywords:
                if keyword in normalized and keyword not in found:
                    found.append(keyword)
        return found

    def needs_tool_call(self, message: str) -> bool:
        return any(p.search(message) for p in _TOOL_INDICATORS)

    @staticmethod
    def _check_simple_qa(normalized: str) -> str | None:
        if len(normalized) >= SIMPLE_QA_MAX_LENGTH:
            return None
        for pattern, response in SIMPLE_QA:
            if pattern.search(normalized):
                return response
        return None

    @staticmethod
    def _match_rule(normalized: str, rule: RoutingRule) -> tuple[float, list[str]]:
        score = 0.0
        matched: list[str] = []

        for pattern in rule.patterns:
            if pattern.search(normalized):
                score += PATTERN_WEIGHT
                matched.append(f"pattern:{pattern.pattern[:20]}")

        for keyword in rule.keywords:
            if keyword in normalized:
                score += KEYWORD_WEIGHT
                matched.append(keyword)

        # Pattern hits count towards the bonus too.
        if len(matched) >= MULTI_MATCH_MIN:
            score += MULTI_MATCH_BONUS

        return min(score, 1.0), matched
