"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass
class SchoolRecord:
    id: str
    name: str
    name_zh: Optional[str] = None
    us_news_rank: Optional[int] = None
    acceptance_rate: Optional[float] = None  # percent, e.g. 3.9
    tuition: Optional[int] = None
    state: Optional[str] = None
    city: Optional[str] = None
    is_private: bool = True
    sat_25: Optional[int] = None
    sat_75: Optional[int] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def deadlines(self) -> dict[str, str]:
        return dict(self.metadata.get("deadlines") or {})

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "nameZh": self.name_zh,
            "rank": self.us_news_rank,
            "acceptanceRate": self.acceptance_rate,
            "tuition": self.tuition,
            "location": ", ".join(p for p in (self.city, self.state) if p),
        }

    def to_dict(self) -> dict[str, Any]:
        data = self.summary()
        data.update(
            {
                "isPrivate": self.is_private,
                "satRange": f"{self.sat_25}-{self.sat_75}" if self.sat_25 and self.sat_75 else None,
                "deadlines": self.deadlines,
                "essayPrompts": self.metadata.get("essayPrompts", []),
            }
        )
        return data


@dataclass
class EssayRecord:
    id: str
    user_id: str
    title: str
    prompt: Optional[str] = None
    content: str = ""
    status: str = "draft"
    school_id: Optional[str] = None
    updated_at: Optional[str] = None

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "prompt": self.prompt,
            "status": self.status,
            "schoolId": self.school_id,
            "wordCount": len(self.content.split()),
            "updatedAt": self.updated_at,
        }


@dataclass
class AdmissionCaseRecord:
    id: str
    school_id: Optional[str]
    year: int
    result: str  # ADMITTED | REJECTED | WAITLISTED | DEFERRED
    round: Optional[str] = None
    major: Optional[str] = None
    gpa_range: Optional[str] = None
    sat_range: Optional[str] = None
    toefl_range: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    visibility: str = "ANONYMOUS"
    school_name: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "school": self.school_name,
            "year": self.year,
            "round": self.round,
            "result": self.result,
            "major": self.major,
            "gpaRange": self.gpa_range,
            "satRange": self.sat_range,
            "toeflRange": self.toefl_range,
            "tags": self.tags,
        }


@dataclass
class PersonalEventRecord:
    id: str
    user_id: str
    title: str
    category: str
    deadline: Optional[str] = None
    event_date: Optional[str] = None
    description: Optional[str] = None
    status: str = "NOT_STARTED"
    tasks: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("user_id")
        return data
