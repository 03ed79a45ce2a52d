"""Data models shared across the agent core."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from admissions_agent.core.types import AgentType, MemoryType, Role, StreamEventType


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str = "msg") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolCall:
        return cls(id=data["id"], name=data["name"], arguments=data.get("arguments") or {})


@dataclass(frozen=True)
class Message:
    """A single conversation turn. Never mutated after creation."""

    id: str
    role: Role
    content: str
    agent_type: Optional[AgentType] = None
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    @classmethod
    def create(
        cls,
        role: Role,
        content: str,
        agent_type: AgentType | None = None,
        tool_calls: list[ToolCall] | tuple[ToolCall, ...] | None = None,
        tool_call_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Message:
        return cls(
            id=new_id(),
            role=role,
            content=content,
            agent_type=agent_type,
            tool_calls=tuple(tool_calls or ()),
            tool_call_id=tool_call_id,
            metadata=dict(metadata or {}),
        )


@dataclass
class ToolExecutionResult:
    success: bool
    result: Any = None
    error: Optional[str] = None
    duration_ms: int = 0

    def to_tool_content(self) -> str:
        """Render as the JSON body of a tool-role message."""
        payload = self.result if self.success else {"error": self.error}
        return json.dumps(payload, ensure_ascii=False, default=str)


@dataclass
class ActionSuggestion:
    label: str
    action: str

    def to_dict(self) -> dict[str, str]:
        return {"label": self.label, "action": self.action}


@dataclass
class AgentResponse:
    message: str
    agent_type: AgentType
    tools_used: list[str] = field(default_factory=list)
    delegated_to: Optional[AgentType] = None
    suggestions: list[str] = field(default_factory=list)
    actions: list[ActionSuggestion] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Client-facing JSON shape."""
        out: dict[str, Any] = {
            "message": self.message,
            "agentType": self.agent_type.value,
        }
        if self.tools_used:
            out["toolsUsed"] = list(self.tools_used)
        if self.delegated_to is not None:
            out["delegatedTo"] = self.delegated_to.value
        if self.suggestions:
            out["suggestions"] = list(self.suggestions)
        if self.actions:
            out["actions"] = [a.to_dict() for a in self.actions]
        if self.data:
            out["data"] = self.data
        return out


@dataclass
class RoutingResult:
    agent: Optional[AgentType]
    confidence: float
    matched_keywords: list[str] = field(default_factory=list)
    should_use_llm: bool = True


@dataclass
class ProfileSnapshot:
    gpa: Optional[float] = None
    gpa_scale: float = 4.0
    test_scores: list[dict[str, Any]] = field(default_factory=list)
    activities: list[dict[str, Any]] = field(default_factory=list)
    awards: list[dict[str, Any]] = field(default_factory=list)
    target_major: Optional[str] = None
    target_schools: list[str] = field(default_factory=list)
    budget_tier: Optional[str] = None
    grade: Optional[str] = None

    def score_for(self, test_type: str) -> Optional[float]:
        for item in self.test_scores:
            if str(item.get("type", "")).upper() == test_type.upper():
                return item.get("score")
        return None

    def is_empty(self) -> bool:
        return (
            self.gpa is None
            and not self.test_scores
            and not self.activities
            and not self.awards
            and not self.target_major
        )


@dataclass
class MemoryRecord:
    """A fact, preference or decision learned about the user."""

    type: MemoryType
    category: str
    content: str
    key: str
    importance: float = 0.5
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class UserContext:
    user_id: str
    profile: Optional[ProfileSnapshot] = None
    preferences: dict[str, Any] = field(default_factory=dict)
    memories: list[MemoryRecord] = field(default_factory=list)


@dataclass
class ConversationState:
    id: str
    user_id: str
    context: UserContext
    messages: list[Message] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    summary: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def locale(self) -> str:
        return self.metadata.get("locale") or "zh"


@dataclass
class StreamEvent:
    type: StreamEventType
    agent: Optional[AgentType] = None
    conversation_id: Optional[str] = None
    content: Optional[str] = None
    tool: Optional[str] = None
    tool_result: Any = None
    response: Optional[AgentResponse] = None
    error: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type.value}
        if self.agent is not None:
            out["agent"] = self.agent.value
        if self.conversation_id is not None:
            out["conversationId"] = self.conversation_id
        if self.content is not None:
            out["content"] = self.content
        if self.tool is not None:
            out["tool"] = self.tool
        if self.tool_result is not None:
            out["toolResult"] = self.tool_result
        if self.response is not None:
            out["response"] = self.response.to_dict()
        if self.error is not None:
            out["error"] = self.error
        out.update(self.data)
        return out
