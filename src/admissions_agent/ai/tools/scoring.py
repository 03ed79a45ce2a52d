"""Rule-based profile scoring used for school tiers and admission estimates.

Scores are on a 0-100 scale. The overall score weights academics 0.5,
activities 0.3 and awards 0.2. Probability scales the school's acceptance
rate by 1.2 per 10 points above or below 50, clamped to [0.05, 0.95].
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal

from admissions_agent.core.models import ProfileSnapshot
from admissions_agent.storage.models import SchoolRecord

WEIGHTS = {"academic": 0.5, "activity": 0.3, "award": 0.2}

AWARD_LEVEL_POINTS = {
    "INTERNATIONAL": 20,
    "NATIONAL": 15,
    "STATE": 8,
    "REGIONAL": 5,
    "SCHOOL": 2,
}

LEADERSHIP_KEYWORDS = (
    "president",
    "founder",
    "captain",
    "director",
    "head",
    "chair",
    "editor-in-chief",
    "lead",
    "社长",
    "主席",
    "队长",
    "创始人",
    "负责人",
)

Tier = Literal["reach", "match", "safety"]


def normal_cdf(z: float) -> float:
    return 0.5 * (1.0 + math.erf(z / math.sqrt(2)))


def percentile_in_range(score: float, p25: float, p75: float) -> float:
    """Percentile of `score` assuming a normal distribution with the given IQR."""
    if p75 <= p25:
        return 0.5
    mu = (p25 + p75) / 2
    sigma = (p75 - p25) / (2 * 0.6745)
    return normal_cdf((score - mu) / sigma)


def normalize_gpa(gpa: float, scale: float) -> float:
    if scale and scale != 4.0:
        return gpa / scale * 4.0
    return gpa


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def academic_score(profile: ProfileSnapshot, school: SchoolRecord | None = None) -> float:
    score = 50.0
    if profile.gpa:
        score += normalize_gpa(profile.gpa, profile.gpa_scale) / 4.0 * 40 - 20

    sat = profile.score_for("SAT")
    act = profile.score_for("ACT")
    if sat:
        if school and school.sat_25 and school.sat_75:
            score += (percentile_in_range(sat, school.sat_25, school.sat_75) - 0.5) * 2 * 15
        else:
            score += _clamp((sat - 1400) / 50 * 5, -15, 15)
    elif act:
        score += _clamp((act / 36 * 1600 - 1400) / 50 * 5, -15, 15)

    toefl = profile.score_for("TOEFL")
    if toefl:
        score += _clamp((toefl - 100) / 4, -5, 5)

    return _clamp(score, 0, 100)


def activity_score(profile: ProfileSnapshot) -> float:
    if not profile.activities:
        return 30.0
    score = 30.0 + min(len(profile.activities), 8) * 7
    for activity in profile.activities:
        role = str(activity.get("role") or "").lower()
        if any(k in role for k in LEADERSHIP_KEYWORDS):
            score += 5
    return _clamp(score, 0, 100)


def award_score(profile: ProfileSnapshot) -> float:
    if not profile.awards:
        return 20.0
    points = sum(AWARD_LEVEL_POINTS.get(str(a.get("level") or "").upper(), 2) for a in profile.awards)
    return _clamp(20.0 + points, 0, 100)


def overall_score(profile: ProfileSnapshot, school: SchoolRecord | None = None) -> float:
    return (
        academic_score(profile, school) * WEIGHTS["academic"]
        + activity_score(profile) * WEIGHTS["activity"]
        + award_score(profile) * WEIGHTS["award"]
    )


def admission_probability(overall: float, school: SchoolRecord) -> float:
    base_rate = school.acceptance_rate / 100 if school.acceptance_rate else 0.3
    probability = base_rate * 1.2 ** ((overall - 50) / 10)
    return _clamp(probability, 0.05, 0.95)


def tier_for(probability: float) -> Tier:
    """Reach below 30%, safety above 70%, match in between."""
    if probability < 0.3:
        return "reach"
    if probability > 0.7:
        return "safety"
    return "match"


@dataclass
class AdmissionEstimate:
    probability: float
    tier: Tier
    academic: float
    overall: float

    @property
    def chance(self) -> str:
        return {"reach": "low", "match": "medium", "safety": "high"}[self.tier]

    def to_dict(self) -> dict[str, object]:
        return {
            "chance": self.chance,
            "percentage": f"{round(self.probability * 100)}%",
            "tier": self.tier,
            "academicScore": round(self.academic, 1),
            "overallScore": round(self.overall, 1),
        }


def estimate(profile: ProfileSnapshot, school: SchoolRecord) -> AdmissionEstimate:
    overall = overall_score(profile, school)
    probability = admission_probability(overall, school)
    return AdmissionEstimate(
        probability=probability,
        tier=tier_for(probability),
        academic=academic_score(profile, school),
        overall=overall,
    )
