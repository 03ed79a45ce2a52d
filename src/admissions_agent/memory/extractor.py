"""Rule-based extraction of facts, preferences and decisions from user messages."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional

from admissions_agent.core.models import MemoryRecord
from admissions_agent.core.types import MemoryType

_SCHOOL_SUFFIX = r"(?:大学|学院|University|College|MIT|Stanford|Harvard|Yale|Princeton|Berkeley|UCLA|Columbia|CMU|NYU|Duke)"

# (label, max) ordered by max; the first scale that fits the value wins.
GPA_SCALES: tuple[tuple[str, float], ...] = (
    ("4.0", 4.0),
    ("4.3", 4.3),
    ("5.0", 5.0),
    ("10", 10.0),
    ("100", 100.0),
)

Validator = Callable[[str, re.Match], Optional[str]]


def _int_in_range(low: int, high: int) -> Validator:
    def validate(value: str, match: re.Match[str]) -> Optional[str]:
        try:
            num = int(value)
        except ValueError:
            return None
        return str(num) if low <= num <= high else None

    return validate


def _validate_ielts(value: str, match: re.Match[str]) -> Optional[str]:
    try:
        num = float(value)
    except ValueError:
        return None
    return f"{num:.1f}" if 0 <= num <= 9 else None


def _validate_gpa(value: str, match: re.Match[str]) -> Optional[str]:
    """Normalise a GPA, detecting its scale from an explicit denominator or its size."""
    try:
        num = float(value)
    except ValueError:
        return None
    if num < 0:
        return None

    scale: tuple[str, float] | None = None
    denominator = match.group(2) if match.re.groups >= 2 else None
    if denominator:
        try:
            top = float(denominator)
        except ValueError:
            top = 0.0
        scale = next((s for s in GPA_SCALES if abs(s[1] - top) < 0.1), None)
    if scale is None:
        scale = next((s for s in GPA_SCALES if num <= s[1]), None)
    if scale is None or num > scale[1]:
        return None

    label, top = scale
    if label == "4.0":
        return f"{num:.2f}"
    digits = 1 if top >= 10 else 2
    return f"{num:.{digits}f} ({label}制, 约合 {num / top * 4.0:.2f}/4.0)"


def _validate_text(min_length: int = 2, max_length: int = 100) -> Validator:
    def validate(value: str, match: re.Match[str]) -> Optional[str]:
        trimmed = value.strip()
        if not min_length <= len(trimmed) <= max_length:
            return None
        return trimmed

    return validate


def _slug(value: str) -> str:
    return re.sub(r"\s+", "_", value.strip().lower())


@dataclass(frozen=True)
class ExtractionRule:
    id: str
    label: str
    type: MemoryType
    category: str
    patterns: tuple[re.Pattern[str], ...]
    base_importance: float
    validate: Validator
    key: Callable[[str], str]
    boosts: tuple[tuple[str, float], ...] = ()

    def importance(self, text: str) -> float:
        boost = sum(b for condition, b in self.boosts if condition.lower() in text.lower())
        return min(1.0, self.base_importance + boost)


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


EXTRACTION_RULES: tuple[ExtractionRule, ...] = (
    ExtractionRule(
        id="gpa",
        label="GPA",
        type=MemoryType.FACT,
        category="academic",
        patterns=_compile(
            r"(?:我的?)?(?:GPA|绩点)\s*(?:是|为|有)?\s*([\d.]+)(?:\s*/\s*([\d.]+))?",
            r"(?:GPA|绩点)\s*[:：]\s*([\d.]+)(?:\s*/\s*([\d.]+))?",
        ),
        base_importance=0.9,
        validate=_validate_gpa,
        key=lambda v: "user:gpa",
        boosts=(("unweighted", 0.05), ("weighted", 0.03), ("最终", 0.02)),
    ),
    ExtractionRule(
        id="sat",
        label="SAT",
        type=MemoryType.FACT,
        category="test_score",
        patterns=_compile(
            r"SAT\s*(?:成绩|分数)?\s*(?:是|为|有|考了)?\s*[:：]?\s*(1[0-6]\d{2}|[4-9]\d{2})",
            r"(1[0-6]\d{2}|[4-9]\d{2})\s*(?:分|分数)?\s*(?:的\s*)?SAT",
        ),
        base_importance=0.9,
        validate=_int_in_range(400, 1600),
        key=lambda v: "user:sat",
        boosts=(("1550", 0.05), ("1500", 0.03), ("最高", 0.02)),
    ),
    ExtractionRule(
        id="act",
        label="ACT",
        type=MemoryType.FACT,
        category="test_score",
        patterns=_compile(
            r"ACT\s*(?:成绩|分数)?\s*(?:是|为|有|考了)?\s*[:：]?\s*(3[0-6]|[12]?\d)",
        ),
        base_importance=0.9,
        validate=_int_in_range(1, 36),
        key=lambda v: "user:act",
        boosts=(("35", 0.05), ("34", 0.03)),
    ),
    ExtractionRule(
        id="toefl",
        label="TOEFL",
        type=MemoryType.FACT,
        category="test_score",
        patterns=_compile(
            r"(?:TOEFL|托福)\s*(?:成绩|分数)?\s*(?:是|为|有|考了)?\s*[:：]?\s*(1[0-2]\d|\d{1,2})",
            r"(1[0-2]\d|\d{1,2})\s*(?:分|分数)?\s*(?:的\s*)?(?:TOEFL|托福)",
        ),
        base_importance=0.85,
        validate=_int_in_range(0, 120),
        key=lambda v: "user:toefl",
        boosts=(("110", 0.05), ("100", 0.03)),
    ),
    ExtractionRule(
        id="ielts",
        label="IELTS",
        type=MemoryType.FACT,
        category="test_score",
        patterns=_compile(
            r"(?:IELTS|雅思)\s*(?:成绩|分数)?\s*(?:是|为|有|考了)?\s*([0-9](?:\.[05])?)",
        ),
        base_importance=0.85,
        validate=_validate_ielts,
        key=lambda v: "user:ielts",
        boosts=(("8.0", 0.05), ("7.5", 0.03)),
    ),
    ExtractionRule(
        id="ed_decision",
        label="ED 决定",
        type=MemoryType.DECISION,
        category="application",
        patterns=_compile(
            r"(?:ED|早申|绑定|提前决定)\s*(?:申请|选择|定了|决定)?\s*([\u4e00-\u9fa5a-zA-Z\s]*?" + _SCHOOL_SUFFIX + ")",
            r"(?:决定|已经|要)\s*ED\s*([\u4e00-\u9fa5a-zA-Z\s]+)",
        ),
        base_importance=0.95,
        validate=_validate_text(),
        key=lambda v: "user:ed_decision",
        boosts=(("确定", 0.05), ("最终", 0.05)),
    ),
    ExtractionRule(
        id="target_school",
        label="目标学校",
        type=MemoryType.PREFERENCE,
        category="school",
        patterns=_compile(
            r"(?:想|要|打算|计划|准备)(?:申请|去|上)\s*([\u4e00-\u9fa5a-zA-Z\s]*?" + _SCHOOL_SUFFIX + ")",
            r"(?:梦校|dream school)\s*(?:是|为)?\s*([\u4e00-\u9fa5a-zA-Z\s]+)",
        ),
        base_importance=0.85,
        validate=_validate_text(),
        key=lambda v: f"school:{_slug(v)}",
        boosts=(("梦校", 0.1), ("ED", 0.1), ("第一志愿", 0.1)),
    ),
    ExtractionRule(
        id="intended_major",
        label="意向专业",
        type=MemoryType.PREFERENCE,
        category="academic",
        patterns=_compile(
            r"(?:学|读)\s*(计算机|CS|Computer Science|工程|Engineering|商科|Business|经济|Economics|数学|Mathematics|物理|Physics|生物|Biology|化学|Chemistry|心理学|Psychology|艺术|Art)",
            r"(?:想学|打算学|意向专业|major)\s*(?:是|为|[:：])?\s*([\u4e00-\u9fa5a-zA-Z ]+)",
        ),
        base_importance=0.8,
        validate=_validate_text(2, 40),
        key=lambda v: "user:intended_major",
        boosts=(("STEM", 0.05), ("确定", 0.05)),
    ),
    ExtractionRule(
        id="location_preference",
        label="地区偏好",
        type=MemoryType.PREFERENCE,
        category="preference",
        patterns=_compile(
            r"(?:喜欢|想去|偏好|prefer)\s*(东海岸|西海岸|East Coast|West Coast|加州|California|纽约|New York|波士顿|Boston|中部|南部)",
        ),
        base_importance=0.6,
        validate=_validate_text(),
        key=lambda v: "user:location_pref",
        boosts=(("明确", 0.1), ("必须", 0.15)),
    ),
    ExtractionRule(
        id="application_round",
        label="申请轮次",
        type=MemoryType.DECISION,
        category="application",
        patterns=_compile(
            r"(?:准备|打算|计划)\s*(?:申请)?\s*(EA|ED2|ED|RD|REA|SCEA)",
        ),
        base_importance=0.8,
        validate=lambda v, m: v.strip().upper() or None,
        key=lambda v: f"round:{v.upper()}",
        boosts=(("ED", 0.1), ("REA", 0.1)),
    ),
)


class MemoryExtractor:
    """Applies extraction rules to a user message. One memory per rule at most."""

    def __init__(self, rules: tuple[ExtractionRule, ...] = EXTRACTION_RULES):
        self._rules = rules

    def extract(self, text: str) -> list[MemoryRecord]:
        found: dict[str, MemoryRecord] = {}
        for rule in self._rules:
            record = self._apply(rule, text)
            if record is not None and record.key not in found:
                found[record.key] = record
        return list(found.values())

    @staticmethod
    def _apply(rule: ExtractionRule, text: str) -> Optional[MemoryRecord]:
        for pattern in rule.patterns:
            match = pattern.search(text)
            if not match:
                continue
            normalized = rule.validate(match.group(1), match)
            if normalized is None:
                continue
            return MemoryRecord(
                type=rule.type,
                category=rule.category,
                content=f"{rule.label}: {normalized}",
                key=rule.key(normalized),
                importance=rule.importance(match.group(0)),
            )
        return None
